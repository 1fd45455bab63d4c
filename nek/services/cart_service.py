import logging
from typing import Iterable, List

from sqlalchemy.orm import Session, selectinload

from nek.core.errors import NotFoundError
from nek.db.models import CartItem, Product, User, Variant
from nek.models.schemas import CartItemIn

logger = logging.getLogger(__name__)


def _with_relations(query):
    return query.options(
        selectinload(CartItem.product).selectinload(Product.variants),
        selectinload(CartItem.variant),
    )


def list_cart(db: Session, user: User) -> List[CartItem]:
    return (
        _with_relations(db.query(CartItem))
        .filter(CartItem.user_id == user.id)
        .order_by(CartItem.created_at)
        .all()
    )


def _check_variant(db: Session, product_id: str, variant_id: str):
    exists = (
        db.query(Variant.id)
        .filter(Variant.id == variant_id, Variant.product_id == product_id)
        .first()
    )
    if not exists:
        raise NotFoundError("Product variant not found")


def upsert_item(db: Session, user: User, product_id: str, variant_id: str, quantity: int) -> CartItem:
    """Set the quantity of a (product, variant) line, creating it if needed."""
    _check_variant(db, product_id, variant_id)
    item = (
        db.query(CartItem)
        .filter(
            CartItem.user_id == user.id,
            CartItem.product_id == product_id,
            CartItem.variant_id == variant_id,
        )
        .first()
    )
    if item:
        item.quantity = quantity
    else:
        item = CartItem(user_id=user.id, product_id=product_id, variant_id=variant_id, quantity=quantity)
        db.add(item)
    db.commit()
    db.refresh(item)
    return item


def _owned_item(db: Session, user: User, item_id: str) -> CartItem:
    item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.user_id == user.id).first()
    if not item:
        raise NotFoundError("Cart item not found")
    return item


def update_quantity(db: Session, user: User, item_id: str, quantity: int) -> CartItem:
    item = _owned_item(db, user, item_id)
    item.quantity = quantity
    db.commit()
    db.refresh(item)
    return item


def remove_item(db: Session, user: User, item_id: str):
    item = _owned_item(db, user, item_id)
    db.delete(item)
    db.commit()


def merge_items(items: Iterable[CartItemIn]) -> List[CartItemIn]:
    """Collapse lines sharing a (product, variant) key, summing quantities."""
    merged = {}
    for item in items:
        key = (item.product_id, item.variant_id)
        if key in merged:
            merged[key].quantity += item.quantity
        else:
            merged[key] = CartItemIn(product_id=item.product_id, variant_id=item.variant_id, quantity=item.quantity)
    return list(merged.values())


def sync_cart(db: Session, user: User, items: Iterable[CartItemIn]) -> List[CartItem]:
    """Replace the server cart with the merged client cart.

    One-directional and last-write-wins: whatever the server held before is
    discarded. Delete and insert are committed together.
    """
    merged = merge_items(items)
    for item in merged:
        _check_variant(db, item.product_id, item.variant_id)

    try:
        db.query(CartItem).filter(CartItem.user_id == user.id).delete(synchronize_session=False)
        db.add_all([
            CartItem(user_id=user.id, product_id=i.product_id, variant_id=i.variant_id, quantity=i.quantity)
            for i in merged
        ])
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Synced cart for user %s (%d lines)", user.id, len(merged))
    return list_cart(db, user)
