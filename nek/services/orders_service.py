import csv
import io
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from nek.core.config import ORDER_NUMBER_PREFIX
from nek.core.errors import BusinessRuleError, NotFoundError
from nek.db.models import CartItem, Order, OrderItem, Product, User, Variant
from nek.models.schemas import AdminOrderUpdate, OrderCreate
from nek.services import pricing
from nek.services.catalog import clamp_page
from nek.services.notifications import EmailDispatcher, order_confirmation_email
from nek.services.order_status import Capability, OrderStatus, PaymentStatus, transition

logger = logging.getLogger(__name__)

BASE36 = string.digits + string.ascii_uppercase

CSV_HEADERS = [
    "Order Number",
    "Customer Name",
    "Customer Email",
    "Status",
    "Payment Status",
    "Total",
    "Items",
    "Tracking Number",
    "Created At",
    "Updated At",
]


def generate_order_number(now: Optional[float] = None) -> str:
    millis = int((now if now is not None else time.time()) * 1000)
    suffix = "".join(secrets.choice(BASE36) for _ in range(9))
    return f"{ORDER_NUMBER_PREFIX}-{millis}-{suffix}"


def _order_query(db: Session):
    return db.query(Order).options(selectinload(Order.items), selectinload(Order.user))


def create_order(db: Session, user: User, payload: OrderCreate, dispatcher: EmailDispatcher) -> Order:
    """Place an order from a cart snapshot.

    The order row, its items, the inventory decrements and the removal of
    the purchased cart lines commit together. Each decrement only succeeds
    while enough stock remains, so two orders racing for the last unit
    cannot both go through.
    """
    variants = {}
    lines = []
    for line in payload.items:
        variant = variants.get(line.variant_id)
        if variant is None:
            variant = (
                db.query(Variant)
                .filter(Variant.id == line.variant_id, Variant.product_id == line.product_id)
                .first()
            )
            if variant is None:
                raise NotFoundError(f"Product variant {line.variant_id} not found")
            variants[line.variant_id] = variant
        lines.append((line, variant))

    totals = pricing.compute_totals(
        [(variant.price, line.quantity) for line, variant in lines],
        shipping_method=payload.shipping_method,
        coupon_code=payload.coupon_code,
    )
    shipping_address = payload.shipping_address.model_dump()
    billing_address = (payload.billing_address or payload.shipping_address).model_dump()

    order = Order(
        order_number=generate_order_number(),
        user_id=user.id,
        shipping_address=shipping_address,
        billing_address=billing_address,
        shipping_method=payload.shipping_method,
        coupon_code=payload.coupon_code.strip().upper() if totals["discount"] else None,
        status=OrderStatus.PENDING.value,
        payment_method=payload.payment_method,
        payment_status=payload.payment_status,
        items=[
            OrderItem(
                product_id=line.product_id,
                variant_id=variant.id,
                quantity=line.quantity,
                price=variant.price,
            )
            for line, variant in lines
        ],
        **totals,
    )

    try:
        db.add(order)
        for line, variant in lines:
            updated = (
                db.query(Variant)
                .filter(Variant.id == variant.id, Variant.inventory >= line.quantity)
                .update({Variant.inventory: Variant.inventory - line.quantity}, synchronize_session="fetch")
            )
            if not updated:
                raise BusinessRuleError(f"Insufficient inventory for {variant.sku}")
        db.query(CartItem).filter(
            CartItem.user_id == user.id,
            CartItem.variant_id.in_(list(variants)),
        ).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Created order %s for user %s (total %s)", order.order_number, user.id, order.total)
    dispatcher.enqueue(order_confirmation_email(
        shipping_address.get("email") or user.email, order.order_number, order.total,
    ))
    return order


def list_orders_for(db: Session, user: User, user_id: Optional[str] = None):
    target = user_id if (user.is_admin and user_id) else user.id
    return (
        _order_query(db)
        .filter(Order.user_id == target)
        .order_by(Order.created_at.desc())
        .all()
    )


def _visible(order: Optional[Order], user: User) -> Order:
    # other customers' orders look exactly like missing ones
    if not order or (order.user_id != user.id and not user.is_admin):
        raise NotFoundError("Order not found")
    return order


def get_order_for(db: Session, user: User, order_id: str) -> Order:
    return _visible(_order_query(db).filter(Order.id == order_id).first(), user)


def get_order_by_number(db: Session, user: User, order_number: str) -> Order:
    return _visible(_order_query(db).filter(Order.order_number == order_number).first(), user)


def cancel_order(db: Session, user: User, order_id: str) -> Order:
    order = _order_query(db).filter(Order.id == order_id).first()
    if not order or order.user_id != user.id:
        raise NotFoundError("Order not found")

    transition(order, OrderStatus.CANCELLED, Capability.CUSTOMER)
    db.commit()
    logger.info("Order %s cancelled by customer", order.order_number)
    return order


def admin_get_order(db: Session, order_id: str) -> Order:
    order = _order_query(db).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def admin_update_order(db: Session, order_id: str, changes: AdminOrderUpdate) -> Order:
    order = admin_get_order(db, order_id)
    data = changes.model_dump(exclude_unset=True)

    new_status = data.pop("status", None)
    if new_status:
        transition(order, new_status, Capability.ADMIN)
    for key, value in data.items():
        if key == "payment_status" and value is None:
            continue
        setattr(order, key, value)

    db.commit()
    db.refresh(order)
    logger.info("Admin updated order %s: %s", order.order_number, sorted(changes.model_fields_set))
    return order


def _admin_filter(query, search=None, status=None, payment_status=None, start_date=None, end_date=None):
    if status and status != "all":
        query = query.filter(Order.status == status)
    if payment_status and payment_status != "all":
        query = query.filter(Order.payment_status == payment_status)
    if start_date:
        query = query.filter(Order.created_at >= start_date)
    if end_date:
        query = query.filter(Order.created_at <= end_date)
    if search:
        term = f"%{search.strip()}%"
        query = query.outerjoin(User, Order.user_id == User.id).filter(or_(
            Order.order_number.ilike(term),
            User.email.ilike(term),
            User.first_name.ilike(term),
            User.last_name.ilike(term),
        ))
    return query


def admin_list_orders(
    db: Session,
    search: Optional[str] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    export: bool = False,
) -> dict:
    if export:
        page, page_size = clamp_page(page, page_size, low=1, high=5000, default=1000)
    else:
        page, page_size = clamp_page(page, page_size)

    base = _admin_filter(db.query(Order), search, status, payment_status, start_date, end_date)

    total = base.count()
    paid_revenue = (
        base.filter(Order.payment_status == PaymentStatus.PAID.value)
        .with_entities(func.coalesce(func.sum(Order.total), 0))
        .scalar()
    )
    status_counts = dict(base.with_entities(Order.status, func.count(Order.id)).group_by(Order.status).all())
    payment_counts = dict(
        base.with_entities(Order.payment_status, func.count(Order.id)).group_by(Order.payment_status).all()
    )
    orders = (
        base.options(selectinload(Order.items), selectinload(Order.user))
        .order_by(Order.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    return {
        "data": orders,
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": max(1, -(-total // page_size)),
        },
        "metrics": {
            "total_orders": total,
            "paid_revenue": float(paid_revenue or 0),
            "status_counts": status_counts,
            "payment_counts": payment_counts,
        },
        "filters": {
            "statuses": [s.value for s in OrderStatus],
            "payment_statuses": [s.value for s in PaymentStatus],
        },
    }


def iso(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def orders_to_csv(orders: Iterable[Order]) -> str:
    """Render orders as CSV with every field quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for order in orders:
        shipping = order.shipping_address or {}
        customer_name = f"{shipping.get('first_name', '')} {shipping.get('last_name', '')}".strip()
        writer.writerow([
            order.order_number,
            customer_name,
            shipping.get("email") or (order.user.email if order.user else ""),
            order.status,
            order.payment_status,
            order.total,
            order.item_count,
            order.tracking_number or "",
            iso(order.created_at),
            iso(order.updated_at),
        ])
    return buffer.getvalue().rstrip("\n")


def order_stats(db: Session) -> dict:
    counts = dict(db.query(Order.status, func.count(Order.id)).group_by(Order.status).all())
    revenue = (
        db.query(func.coalesce(func.sum(Order.total), 0))
        .filter(Order.payment_status == PaymentStatus.PAID.value)
        .scalar()
    )
    total_inventory = db.query(func.coalesce(func.sum(Variant.inventory), 0)).scalar()
    return {
        "orders": {
            "total": sum(counts.values()),
            **{s.value: counts.get(s.value, 0) for s in OrderStatus},
            "total_revenue": float(revenue or 0),
        },
        "products": {
            "total": db.query(func.count(Product.id)).scalar(),
            "total_inventory": int(total_inventory or 0),
        },
    }
