from fastapi import APIRouter, Depends, Query, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from nek.core.security import create_token
from nek.db.session import get_db
from nek.models.schemas import (
    PasswordResetConfirm,
    PasswordResetRequest,
    Token,
    UserCreate,
    UserLogin,
    UserOut,
)
from nek.services import accounts
from nek.services.notifications import EmailDispatcher, get_dispatcher

router = APIRouter()


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: UserCreate, db: Session = Depends(get_db), dispatcher: EmailDispatcher = Depends(get_dispatcher)):
    return accounts.register_user(db, payload, dispatcher)


@router.post("/login", response_model=Token)
def login(payload: UserLogin, db: Session = Depends(get_db)):
    user = accounts.authenticate(db, payload.email, payload.password)
    return {"access_token": create_token(user.id, user.role), "token_type": "bearer"}


@router.post("/token", response_model=Token)
def token(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    # OAuth2 form flow used by the interactive docs
    user = accounts.authenticate(db, form_data.username, form_data.password)
    return {"access_token": create_token(user.id, user.role), "token_type": "bearer"}


@router.post("/password-reset/request")
def password_reset_request(
    payload: PasswordResetRequest,
    db: Session = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_dispatcher),
):
    return accounts.request_password_reset(db, payload.email, dispatcher)


@router.get("/password-reset/validate")
def password_reset_validate(email: str = Query(...), token: str = Query(...), db: Session = Depends(get_db)):
    return {"valid": accounts.validate_reset_token(db, email, token)}


@router.post("/password-reset/confirm")
def password_reset_confirm(payload: PasswordResetConfirm, db: Session = Depends(get_db)):
    accounts.confirm_password_reset(db, payload.email, payload.token, payload.password)
    return {"message": "Password reset successful"}
