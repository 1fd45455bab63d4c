from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from nek.db.session import get_db
from nek.models.schemas import ProductOut
from nek.services import catalog

router = APIRouter()


@router.get("", response_model=List[ProductOut])
def list_products(
    category: Optional[str] = None,
    featured: Optional[bool] = None,
    material: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock: bool = False,
    q: Optional[str] = None,
    db: Session = Depends(get_db),
):
    products = catalog.list_products(
        db,
        category=category,
        featured=featured,
        material=material,
        min_price=min_price,
        max_price=max_price,
        in_stock=in_stock,
        q=q,
    )
    return [ProductOut.model_validate(p) for p in products]


@router.get("/{id_or_slug}", response_model=ProductOut)
def get_product(id_or_slug: str, db: Session = Depends(get_db)):
    return ProductOut.model_validate(catalog.get_product(db, id_or_slug))
