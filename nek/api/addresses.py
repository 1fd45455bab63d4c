from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from nek.api.deps import get_current_user
from nek.db.session import get_db
from nek.models.schemas import AddressIn, AddressOut, AddressUpdate
from nek.services import addresses

router = APIRouter()


@router.get("", response_model=List[AddressOut])
def list_addresses(user=Depends(get_current_user), db: Session = Depends(get_db)):
    return addresses.list_addresses(db, user)


@router.post("", response_model=AddressOut, status_code=status.HTTP_201_CREATED)
def create_address(payload: AddressIn, user=Depends(get_current_user), db: Session = Depends(get_db)):
    return addresses.create_address(db, user, payload)


@router.patch("/{address_id}", response_model=AddressOut)
def update_address(address_id: str, payload: AddressUpdate, user=Depends(get_current_user), db: Session = Depends(get_db)):
    return addresses.update_address(db, user, address_id, payload)


@router.post("/{address_id}/default", response_model=AddressOut)
def set_default_address(address_id: str, user=Depends(get_current_user), db: Session = Depends(get_db)):
    return addresses.set_default(db, user, address_id)


@router.delete("/{address_id}")
def delete_address(address_id: str, user=Depends(get_current_user), db: Session = Depends(get_db)):
    addresses.delete_address(db, user, address_id)
    return {"success": True}
