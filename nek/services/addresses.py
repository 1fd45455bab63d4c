from typing import List

from sqlalchemy.orm import Session

from nek.core.errors import NotFoundError
from nek.db.models import Address, User
from nek.models.schemas import AddressIn, AddressUpdate


def list_addresses(db: Session, user: User) -> List[Address]:
    return (
        db.query(Address)
        .filter(Address.user_id == user.id)
        .order_by(Address.created_at.desc())
        .all()
    )


def _owned(db: Session, user: User, address_id: str) -> Address:
    address = db.query(Address).filter(Address.id == address_id, Address.user_id == user.id).first()
    if not address:
        raise NotFoundError("Address not found")
    return address


def _clear_defaults(db: Session, user: User, keep_id=None):
    query = db.query(Address).filter(Address.user_id == user.id, Address.is_default.is_(True))
    if keep_id:
        query = query.filter(Address.id != keep_id)
    query.update({Address.is_default: False}, synchronize_session="fetch")
    # the partial unique index is checked per statement, so the clear must
    # reach the database before the new default is written
    db.flush()


def create_address(db: Session, user: User, payload: AddressIn) -> Address:
    data = payload.model_dump()
    make_default = data.pop("is_default")
    address = Address(user_id=user.id, is_default=False, **data)
    db.add(address)
    try:
        if make_default:
            db.flush()
            _clear_defaults(db, user, keep_id=address.id)
            address.is_default = True
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(address)
    return address


def update_address(db: Session, user: User, address_id: str, payload: AddressUpdate) -> Address:
    address = _owned(db, user, address_id)
    data = payload.model_dump(exclude_unset=True)
    make_default = data.pop("is_default", None)
    for key, value in data.items():
        setattr(address, key, value)
    try:
        if make_default:
            _clear_defaults(db, user, keep_id=address.id)
            address.is_default = True
        elif make_default is False:
            address.is_default = False
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(address)
    return address


def set_default(db: Session, user: User, address_id: str) -> Address:
    """Make ``address_id`` the owner's only default address in one transaction."""
    address = _owned(db, user, address_id)
    try:
        _clear_defaults(db, user, keep_id=address.id)
        address.is_default = True
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(address)
    return address


def delete_address(db: Session, user: User, address_id: str):
    address = _owned(db, user, address_id)
    db.delete(address)
    db.commit()
