from fastapi import APIRouter, Depends

from nek.api.deps import get_current_user
from nek.models.schemas import UserProfile

router = APIRouter()


@router.get("", response_model=UserProfile)
def me(user=Depends(get_current_user)):
    return UserProfile.model_validate(user)
