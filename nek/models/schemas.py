from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator

from nek.core.config import (
    MAX_PRODUCT_IMAGES,
    MAX_VARIANTS_PER_PRODUCT,
    PASSWORD_MIN_LENGTH,
    SHIPPING_RATES,
)

OrderStatusName = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentStatusName = Literal["pending", "paid", "failed"]
ProductStatusName = Literal["ACTIVE", "ARCHIVED"]
SLUG_PATTERN = r"^[a-z0-9-]+$"


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Auth ---

class UserCreate(BaseModel):
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    email: EmailStr
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)


# --- Addresses ---

class AddressIn(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(..., min_length=3, max_length=30)
    address_line1: str = Field(..., min_length=1, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    zip_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=1, max_length=80)
    is_default: bool = False


class AddressUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=3, max_length=30)
    address_line1: Optional[str] = Field(None, min_length=1, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, min_length=1, max_length=100)
    state: Optional[str] = Field(None, min_length=1, max_length=100)
    zip_code: Optional[str] = Field(None, min_length=1, max_length=20)
    country: Optional[str] = Field(None, min_length=1, max_length=80)
    is_default: Optional[bool] = None

    # fields may be omitted, but required columns cannot be cleared
    @field_validator(
        "first_name", "last_name", "email", "phone", "address_line1",
        "city", "state", "zip_code", "country",
    )
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class AddressOut(ORMModel):
    id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: str
    zip_code: str
    country: str
    is_default: bool
    created_at: Optional[datetime] = None


class UserOut(ORMModel):
    id: str
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: str
    created_at: Optional[datetime] = None


class UserProfile(UserOut):
    addresses: List[AddressOut] = []


# --- Catalog ---

class VariantIn(BaseModel):
    id: Optional[str] = None
    size: Optional[str] = Field(None, max_length=50)
    material: str = Field(..., min_length=1, max_length=120)
    price: float = Field(..., ge=0)
    inventory: int = Field(..., ge=0)
    sku: str = Field(..., min_length=1, max_length=120)
    image: Optional[HttpUrl] = None

    @field_validator("size", "image", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("material", "sku")
    @classmethod
    def strip(cls, value: str) -> str:
        return value.strip()


class VariantOut(ORMModel):
    id: str
    size: Optional[str] = None
    material: str
    price: float
    inventory: int
    sku: str
    image: Optional[str] = None


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=120)
    slug: Optional[str] = Field(None, min_length=2, max_length=160, pattern=SLUG_PATTERN)
    description: str = Field(..., min_length=10)
    category: str = Field(..., min_length=2, max_length=80)
    featured: bool = False
    status: ProductStatusName = "ACTIVE"
    images: List[HttpUrl] = Field(..., min_length=1, max_length=MAX_PRODUCT_IMAGES)
    variants: List[VariantIn] = Field(..., min_length=1, max_length=MAX_VARIANTS_PER_PRODUCT)


class InventoryAdjustment(BaseModel):
    variant_id: str
    delta: int


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=120)
    slug: Optional[str] = Field(None, min_length=2, max_length=160, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(None, min_length=10)
    category: Optional[str] = Field(None, min_length=2, max_length=80)
    featured: Optional[bool] = None
    status: Optional[ProductStatusName] = None
    images: Optional[List[HttpUrl]] = Field(None, min_length=1, max_length=MAX_PRODUCT_IMAGES)
    variants: Optional[List[VariantIn]] = Field(None, max_length=MAX_VARIANTS_PER_PRODUCT)
    delete_variant_ids: List[str] = []
    inventory_adjustments: List[InventoryAdjustment] = []


class ProductOut(ORMModel):
    id: str
    name: str
    slug: str
    description: str
    category: str
    images: List[str]
    featured: bool
    status: str
    variants: List[VariantOut] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SlugCheck(BaseModel):
    slug: str = Field(..., min_length=2, max_length=160, pattern=SLUG_PATTERN)
    exclude_id: Optional[str] = None


# --- Cart ---

class CartItemIn(BaseModel):
    product_id: str
    variant_id: str
    quantity: int = Field(1, ge=1)


class CartQuantity(BaseModel):
    quantity: int = Field(..., ge=1)


class CartSync(BaseModel):
    items: List[CartItemIn]


class CartItemOut(ORMModel):
    id: str
    product_id: str
    variant_id: str
    quantity: int
    product: Optional[ProductOut] = None
    variant: Optional[VariantOut] = None


class CouponCheck(BaseModel):
    code: str


# --- Orders ---

class AddressSnapshot(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    address_line1: str = Field(..., min_length=1)
    address_line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class OrderLineIn(BaseModel):
    product_id: str
    variant_id: str
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    items: List[OrderLineIn] = Field(..., min_length=1)
    shipping_address: AddressSnapshot
    billing_address: Optional[AddressSnapshot] = None
    shipping_method: str = "standard"
    payment_method: str = Field(..., min_length=1, max_length=40)
    payment_status: PaymentStatusName = "pending"
    coupon_code: Optional[str] = None

    @field_validator("shipping_method")
    @classmethod
    def known_shipping_method(cls, value: str) -> str:
        if value not in SHIPPING_RATES:
            raise ValueError(f"shipping_method must be one of {', '.join(SHIPPING_RATES)}")
        return value


class OrderItemOut(ORMModel):
    id: str
    product_id: str
    variant_id: str
    quantity: int
    price: float


class OrderOut(ORMModel):
    id: str
    order_number: str
    user_id: str
    shipping_address: dict
    billing_address: dict
    shipping_method: str
    coupon_code: Optional[str] = None
    subtotal: float
    discount: float
    shipping: float
    tax: float
    total: float
    status: str
    payment_method: str
    payment_status: str
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    admin_notes: Optional[str] = None
    items: List[OrderItemOut] = []
    item_count: int = 0
    created_at: datetime
    updated_at: datetime


class AdminOrderUpdate(BaseModel):
    status: Optional[OrderStatusName] = None
    payment_status: Optional[PaymentStatusName] = None
    tracking_number: Optional[str] = Field(None, max_length=100)
    estimated_delivery: Optional[datetime] = None
    admin_notes: Optional[str] = None
