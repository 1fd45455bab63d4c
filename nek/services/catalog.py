import logging
from decimal import Decimal
from typing import Optional

from slugify import slugify
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from nek.core.config import LOW_INVENTORY_THRESHOLD
from nek.core.errors import BusinessRuleError, ConflictError, NotFoundError
from nek.db.models import CartItem, Product, Variant
from nek.models.schemas import ProductCreate, ProductOut, ProductUpdate, VariantIn

logger = logging.getLogger(__name__)

ACTIVE = "ACTIVE"
ARCHIVED = "ARCHIVED"


def clamp_page(page: int, page_size: Optional[int], low: int = 5, high: int = 50, default: int = 10):
    page = max(1, page or 1)
    page_size = max(low, min(high, default if page_size is None else page_size))
    return page, page_size


def _variant_fields(data: VariantIn) -> dict:
    return {
        "size": data.size,
        "material": data.material,
        "price": Decimal(str(data.price)),
        "inventory": data.inventory,
        "sku": data.sku,
        "image": str(data.image) if data.image else None,
    }


# --- Storefront ---

def list_products(
    db: Session,
    category: Optional[str] = None,
    featured: Optional[bool] = None,
    material: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock: bool = False,
    q: Optional[str] = None,
):
    query = db.query(Product).options(selectinload(Product.variants)).filter(Product.status == ACTIVE)

    if category:
        query = query.filter(Product.category == category)
    if featured is not None:
        query = query.filter(Product.featured.is_(featured))

    variant_filters = []
    if material:
        variant_filters.append(Variant.material == material)
    if min_price is not None:
        variant_filters.append(Variant.price >= Decimal(str(min_price)))
    if max_price is not None:
        variant_filters.append(Variant.price <= Decimal(str(max_price)))
    if in_stock:
        variant_filters.append(Variant.inventory > 0)
    if variant_filters:
        query = query.filter(Product.variants.any(*variant_filters))

    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(term),
            Product.description.ilike(term),
            Product.category.ilike(term),
        ))

    return query.order_by(Product.created_at.desc()).all()


def get_product(db: Session, id_or_slug: str) -> Product:
    """Lookup by id or slug. Archived products are still returned."""
    product = (
        db.query(Product)
        .options(selectinload(Product.variants))
        .filter(or_(Product.id == id_or_slug, Product.slug == id_or_slug))
        .first()
    )
    if not product:
        raise NotFoundError("Product not found")
    return product


# --- Back office ---

def _admin_filter(query, search=None, category=None, featured=None, status=None):
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(term),
            Product.description.ilike(term),
            Product.slug.ilike(term),
            Product.category.ilike(term),
        ))
    if category and category != "all":
        query = query.filter(Product.category == category)
    if featured == "true":
        query = query.filter(Product.featured.is_(True))
    elif featured == "false":
        query = query.filter(Product.featured.is_(False))
    if status:
        if status.lower() != "all":
            query = query.filter(Product.status == status.upper())
    else:
        query = query.filter(Product.status == ACTIVE)
    return query


def admin_list_products(
    db: Session,
    search: Optional[str] = None,
    category: Optional[str] = None,
    featured: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    page_size: int = 10,
) -> dict:
    page, page_size = clamp_page(page, page_size)
    base = _admin_filter(db.query(Product), search, category, featured, status)

    total = base.count()
    featured_count = base.filter(Product.featured.is_(True)).count()
    product_ids = base.with_entities(Product.id).subquery()
    total_inventory = (
        db.query(func.coalesce(func.sum(Variant.inventory), 0))
        .filter(Variant.product_id.in_(product_ids.select()))
        .scalar()
    )
    products = (
        base.options(selectinload(Product.variants))
        .order_by(Product.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    rows = []
    for product in products:
        prices = [float(v.price) for v in product.variants]
        row = ProductOut.model_validate(product).model_dump()
        row.update(
            min_price=min(prices) if prices else 0,
            max_price=max(prices) if prices else 0,
            total_inventory=sum(v.inventory for v in product.variants),
            low_inventory=any(v.inventory <= LOW_INVENTORY_THRESHOLD for v in product.variants),
        )
        rows.append(row)

    categories = [
        c for (c,) in db.query(Product.category).distinct().order_by(Product.category).all() if c
    ]

    return {
        "data": rows,
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": max(1, -(-total // page_size)),
        },
        "filters": {"categories": categories},
        "metrics": {
            "total_products": total,
            "featured_products": featured_count,
            "total_inventory": int(total_inventory or 0),
            "low_inventory_products": sum(1 for r in rows if r["low_inventory"]),
            "price_range": {
                "min": min((r["min_price"] for r in rows), default=0),
                "max": max((r["max_price"] for r in rows), default=0),
            },
        },
    }


def is_slug_available(db: Session, slug: str, exclude_id: Optional[str] = None) -> bool:
    query = db.query(Product.id).filter(Product.slug == slug)
    if exclude_id:
        query = query.filter(Product.id != exclude_id)
    return query.first() is None


def unique_slug(db: Session, name: str) -> str:
    base_slug = slugify(name)
    slug = base_slug
    counter = 1
    while not is_slug_available(db, slug):
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


def _check_skus(db: Session, skus, exclude_variant_ids=()):
    seen = set()
    for sku in skus:
        if sku in seen:
            raise ConflictError(f"Duplicate SKU in request: {sku}")
        seen.add(sku)
    if not seen:
        return
    query = db.query(Variant.sku).filter(Variant.sku.in_(seen))
    if exclude_variant_ids:
        query = query.filter(Variant.id.notin_(list(exclude_variant_ids)))
    taken = query.first()
    if taken:
        raise ConflictError(f"SKU already exists: {taken[0]}")


def create_product(db: Session, payload: ProductCreate) -> Product:
    if payload.slug:
        if not is_slug_available(db, payload.slug):
            raise ConflictError("Slug already exists. Please choose another.")
        slug = payload.slug
    else:
        slug = unique_slug(db, payload.name)

    _check_skus(db, [v.sku for v in payload.variants])

    product = Product(
        name=payload.name.strip(),
        slug=slug,
        description=payload.description.strip(),
        category=payload.category.strip(),
        featured=payload.featured,
        status=payload.status,
        images=[str(url) for url in payload.images],
        variants=[Variant(**_variant_fields(v)) for v in payload.variants],
    )
    db.add(product)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Slug or SKU already exists. Please choose another.")
    logger.info("Created product %s (%s)", product.slug, product.id)
    return product


def update_product(db: Session, product_id: str, payload: ProductUpdate) -> Product:
    """Apply product edits, variant upserts/deletes and inventory deltas atomically.

    Order of operations: scalar fields, variant upserts, variant deletions,
    then inventory adjustments. Any failure rolls back everything, including
    edits that had already been applied earlier in the same request.
    """
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Product not found")

    if payload.slug and not is_slug_available(db, payload.slug, exclude_id=product_id):
        raise ConflictError("Slug already exists. Please choose another.")

    try:
        _apply_product_changes(db, product, payload)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Slug or SKU already exists. Please choose another.")
    except Exception:
        db.rollback()
        raise

    db.refresh(product)
    logger.info("Updated product %s", product.id)
    return product


def _apply_product_changes(db: Session, product: Product, payload: ProductUpdate):
    fields = payload.model_dump(
        exclude_unset=True,
        exclude={"variants", "delete_variant_ids", "inventory_adjustments"},
    )
    for key, value in fields.items():
        if value is None:
            continue
        if key == "images":
            value = [str(url) for url in payload.images]
        elif isinstance(value, str):
            value = value.strip()
        setattr(product, key, value)

    existing = {v.id: v for v in product.variants}
    if payload.variants:
        _check_skus(
            db,
            [v.sku for v in payload.variants],
            exclude_variant_ids=[v.id for v in payload.variants if v.id],
        )
        for data in payload.variants:
            if data.id:
                variant = existing.get(data.id)
                if variant is None:
                    raise NotFoundError(f"Variant {data.id} not found on this product")
                for key, value in _variant_fields(data).items():
                    setattr(variant, key, value)
            else:
                product.variants.append(Variant(**_variant_fields(data)))

    if payload.delete_variant_ids:
        doomed = [existing[vid] for vid in payload.delete_variant_ids if vid in existing]
        if doomed:
            db.query(CartItem).filter(
                CartItem.variant_id.in_([v.id for v in doomed])
            ).delete(synchronize_session=False)
        for variant in doomed:
            product.variants.remove(variant)

    db.flush()

    for adjustment in payload.inventory_adjustments:
        variant = (
            db.query(Variant)
            .filter(Variant.id == adjustment.variant_id, Variant.product_id == product.id)
            .with_for_update()
            .first()
        )
        if variant is None:
            raise NotFoundError("Variant not found for inventory adjustment")
        next_inventory = variant.inventory + adjustment.delta
        if next_inventory < 0:
            raise BusinessRuleError(
                f"Inventory cannot be negative (variant {variant.sku}: {variant.inventory} {adjustment.delta:+d})"
            )
        variant.inventory = next_inventory


def archive_product(db: Session, product_id: str) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Product not found")
    product.status = ARCHIVED
    db.commit()
    db.refresh(product)
    logger.info("Archived product %s", product.id)
    return product
