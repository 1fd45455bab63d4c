import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from nek.db.session import Base


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(30))
    password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")
    created_at = Column(DateTime(timezone=True), default=utcnow)

    addresses = relationship("Address", back_populates="user", order_by="Address.created_at.desc()")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class Product(Base):
    __tablename__ = "products"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(120), nullable=False)
    slug = Column(String(160), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(80), index=True, nullable=False)
    images = Column(JSON, nullable=False, default=list)
    featured = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="ACTIVE", index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    variants = relationship(
        "Variant",
        back_populates="product",
        order_by="Variant.created_at",
        cascade="all, delete-orphan",
    )


class Variant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (
        CheckConstraint("inventory >= 0", name="check_non_negative_inventory"),
        CheckConstraint("price >= 0", name="check_non_negative_price"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    product_id = Column(String(32), ForeignKey("products.id"), index=True, nullable=False)
    size = Column(String(50))
    material = Column(String(120), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    inventory = Column(Integer, nullable=False, default=0)
    sku = Column(String(120), unique=True, nullable=False)
    image = Column(String(500))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    product = relationship("Product", back_populates="variants")


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", "variant_id", name="uq_cart_user_product_variant"),
        CheckConstraint("quantity > 0", name="check_positive_cart_quantity"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
    product_id = Column(String(32), ForeignKey("products.id"), nullable=False)
    variant_id = Column(String(32), ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    product = relationship("Product")
    variant = relationship("Variant")


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=new_id)
    order_number = Column(String(40), unique=True, index=True, nullable=False)
    user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
    shipping_address = Column(JSON, nullable=False)
    billing_address = Column(JSON, nullable=False)
    shipping_method = Column(String(20), nullable=False, default="standard")
    coupon_code = Column(String(40))
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    shipping = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_method = Column(String(40), nullable=False)
    payment_status = Column(String(20), nullable=False, default="pending", index=True)
    tracking_number = Column(String(100))
    estimated_delivery = Column(DateTime(timezone=True))
    admin_notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String(32), primary_key=True, default=new_id)
    order_id = Column(String(32), ForeignKey("orders.id"), index=True, nullable=False)
    product_id = Column(String(32), ForeignKey("products.id"), nullable=False)
    # kept as plain ids so deleting a variant never rewrites order history
    variant_id = Column(String(32), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")


class Address(Base):
    __tablename__ = "addresses"
    __table_args__ = (
        # one default per owner
        Index(
            "uq_address_default_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("is_default = 1"),
            postgresql_where=text("is_default"),
        ),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=False)
    address_line1 = Column(String(255), nullable=False)
    address_line2 = Column(String(255))
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    zip_code = Column(String(20), nullable=False)
    country = Column(String(80), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="addresses")


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(255), index=True, nullable=False)
    token = Column(String(64), unique=True, nullable=False)
    expires = Column(DateTime(timezone=True), nullable=False)
