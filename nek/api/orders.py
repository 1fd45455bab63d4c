from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from nek.api.deps import get_current_user
from nek.db.session import get_db
from nek.models.schemas import OrderCreate, OrderOut
from nek.services import orders_service
from nek.services.notifications import EmailDispatcher, get_dispatcher

router = APIRouter()


@router.get("", response_model=List[OrderOut])
def my_orders(user_id: Optional[str] = Query(None, alias="userId"), user=Depends(get_current_user), db: Session = Depends(get_db)):
    return [OrderOut.model_validate(o) for o in orders_service.list_orders_for(db, user, user_id)]


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreate,
    user=Depends(get_current_user),
    db: Session = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_dispatcher),
):
    order = orders_service.create_order(db, user, payload, dispatcher)
    return OrderOut.model_validate(order)


@router.get("/number/{order_number}", response_model=OrderOut)
def track_order(order_number: str, user=Depends(get_current_user), db: Session = Depends(get_db)):
    return OrderOut.model_validate(orders_service.get_order_by_number(db, user, order_number))


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, user=Depends(get_current_user), db: Session = Depends(get_db)):
    return OrderOut.model_validate(orders_service.get_order_for(db, user, order_id))


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(order_id: str, user=Depends(get_current_user), db: Session = Depends(get_db)):
    return OrderOut.model_validate(orders_service.cancel_order(db, user, order_id))
