from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from nek.core.security import create_token, hash_password
from nek.db.models import Product, User, Variant
from nek.db.session import Base, build_engine, get_db
from nek.main import app
from nek.services.images import get_image_host
from nek.services.notifications import EmailDispatcher, get_dispatcher

PASSWORD = "secret123"

ADDRESS = {
    "first_name": "Jane",
    "last_name": "Doe",
    "email": "jane.shipping@example.com",
    "phone": "555-0100",
    "address_line1": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "zip_code": "62701",
    "country": "US",
}


class RecordingTransport:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, message):
        if self.fail:
            raise RuntimeError("SMTP down")
        self.sent.append(message)


class FakeImageHost:
    def __init__(self):
        self.uploads = []

    def upload(self, data, content_type):
        self.uploads.append((data, content_type))
        return f"https://cdn.example.com/products/{len(self.uploads)}.png"


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def Session(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def mailer():
    transport = RecordingTransport()
    dispatcher = EmailDispatcher(transport)
    yield dispatcher
    dispatcher.stop()


@pytest.fixture
def image_host():
    return FakeImageHost()


@pytest.fixture
def client(Session, mailer, image_host):
    def override_get_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: mailer
    app.dependency_overrides[get_image_host] = lambda: image_host
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(Session):
    def _make(email="jane@example.com", role="user", password=PASSWORD, first_name="Jane"):
        with Session() as db:
            user = User(
                email=email,
                first_name=first_name,
                last_name="Doe",
                password=hash_password(password),
                role=role,
            )
            db.add(user)
            db.commit()
            return user

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", role="admin", first_name="Ada")


@pytest.fixture
def auth():
    def _headers(user):
        return {"Authorization": f"Bearer {create_token(user.id, user.role)}"}

    return _headers


@pytest.fixture
def shipping_address():
    return dict(ADDRESS)


@pytest.fixture
def make_product(Session):
    def _make(name="Gold Ring", variants=(("RING-GOLD-7", "100.00", 5),), status="ACTIVE",
              category="rings", featured=False, material="Gold", slug=None):
        with Session() as db:
            product = Product(
                name=name,
                slug=slug or name.lower().replace(" ", "-"),
                description="A handcrafted piece.",
                category=category,
                images=["https://cdn.example.com/products/ring.png"],
                featured=featured,
                status=status,
                variants=[
                    Variant(sku=sku, price=Decimal(price), inventory=inventory, material=material, size="7")
                    for sku, price, inventory in variants
                ],
            )
            db.add(product)
            db.commit()
            return product

    return _make


@pytest.fixture
def product(make_product):
    return make_product()
