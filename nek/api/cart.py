from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from nek.api.deps import get_current_user, get_optional_user
from nek.db.models import User
from nek.db.session import get_db
from nek.models.schemas import CartItemIn, CartItemOut, CartQuantity, CartSync, CouponCheck
from nek.services import cart_service, pricing

router = APIRouter()


@router.get("", response_model=List[CartItemOut])
def get_cart(user: Optional[User] = Depends(get_optional_user), db: Session = Depends(get_db)):
    # anonymous carts live on the client
    if user is None:
        return []
    return [CartItemOut.model_validate(i) for i in cart_service.list_cart(db, user)]


@router.post("", response_model=CartItemOut, status_code=status.HTTP_201_CREATED)
def add_to_cart(item: CartItemIn, user=Depends(get_current_user), db: Session = Depends(get_db)):
    saved = cart_service.upsert_item(db, user, item.product_id, item.variant_id, item.quantity)
    return CartItemOut.model_validate(saved)


@router.post("/sync", response_model=List[CartItemOut])
def sync_cart(payload: CartSync, user=Depends(get_current_user), db: Session = Depends(get_db)):
    return [CartItemOut.model_validate(i) for i in cart_service.sync_cart(db, user, payload.items)]


@router.post("/coupon")
def check_coupon(payload: CouponCheck):
    return pricing.validate_coupon(payload.code)


@router.patch("/{item_id}", response_model=CartItemOut)
def update_item(item_id: str, payload: CartQuantity, user=Depends(get_current_user), db: Session = Depends(get_db)):
    return CartItemOut.model_validate(cart_service.update_quantity(db, user, item_id, payload.quantity))


@router.delete("/{item_id}")
def remove_item(item_id: str, user=Depends(get_current_user), db: Session = Depends(get_db)):
    cart_service.remove_item(db, user, item_id)
    return {"success": True}
