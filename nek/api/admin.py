import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from sqlalchemy.orm import Session

from nek.api.deps import get_admin_user
from nek.core.config import MAX_UPLOAD_MB
from nek.db.session import get_db
from nek.models.schemas import AdminOrderUpdate, OrderOut, ProductCreate, ProductOut, ProductUpdate, SlugCheck
from nek.services import catalog, orders_service
from nek.services.images import get_image_host, upload_image
from nek.services.notifications import EmailDispatcher, diagnostic_email, get_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(get_admin_user)])


# --- Products ---

@router.get("/products")
def list_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    featured: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    page_size: int = Query(10, alias="pageSize"),
    db: Session = Depends(get_db),
):
    return catalog.admin_list_products(
        db,
        search=search,
        category=category,
        featured=featured,
        status=status,
        page=page,
        page_size=page_size,
    )


@router.post("/products", response_model=ProductOut, status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    return ProductOut.model_validate(catalog.create_product(db, payload))


@router.post("/products/slug")
def check_slug(payload: SlugCheck, db: Session = Depends(get_db)):
    return {"available": catalog.is_slug_available(db, payload.slug, payload.exclude_id)}


@router.post("/products/upload")
async def upload_product_image(file: UploadFile = File(...), image_host=Depends(get_image_host)):
    # one byte past the limit is enough to reject an oversized file
    data = await file.read(MAX_UPLOAD_MB * 1024 * 1024 + 1)
    return {"url": upload_image(image_host, data, file.content_type)}


@router.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: str, db: Session = Depends(get_db)):
    return ProductOut.model_validate(catalog.get_product(db, product_id))


@router.patch("/products/{product_id}", response_model=ProductOut)
def update_product(product_id: str, payload: ProductUpdate, db: Session = Depends(get_db)):
    return ProductOut.model_validate(catalog.update_product(db, product_id, payload))


@router.delete("/products/{product_id}", response_model=ProductOut)
def archive_product(product_id: str, db: Session = Depends(get_db)):
    return ProductOut.model_validate(catalog.archive_product(db, product_id))


# --- Orders ---

@router.get("/orders")
def list_orders(
    search: Optional[str] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = 1,
    page_size: Optional[int] = Query(None, alias="pageSize"),
    format: Optional[str] = None,
    db: Session = Depends(get_db),
):
    export = format == "csv"
    result = orders_service.admin_list_orders(
        db,
        search=search,
        status=status,
        payment_status=payment_status,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
        export=export,
    )
    if export:
        filename = f"orders-{datetime.now(timezone.utc):%Y-%m-%d}.csv"
        return Response(
            content=orders_service.orders_to_csv(result["data"]),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    result["data"] = [OrderOut.model_validate(o).model_dump(mode="json") for o in result["data"]]
    return result


@router.get("/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db)):
    return OrderOut.model_validate(orders_service.admin_get_order(db, order_id))


@router.patch("/orders/{order_id}", response_model=OrderOut)
def update_order(order_id: str, payload: AdminOrderUpdate, db: Session = Depends(get_db)):
    return OrderOut.model_validate(orders_service.admin_update_order(db, order_id, payload))


@router.get("/stats")
def stats(db: Session = Depends(get_db)):
    return orders_service.order_stats(db)


@router.post("/test-email")
def send_test_email(to: str = Query(...), dispatcher: EmailDispatcher = Depends(get_dispatcher)):
    result = dispatcher.send_now(diagnostic_email(to))
    if not result["success"]:
        logger.warning("Diagnostic email to %s failed: %s", to, result["error"])
    return result
