import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nek.api import addresses, admin, auth, cart, debug, orders, products, users
from nek.core.config import APP_NAME, CORS_ORIGINS, LOG_LEVEL
from nek.core.errors import register_exception_handlers
from nek.db.session import init_db
from nek.services.notifications import dispatcher

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    dispatcher.start()
    logger.info("%s started", APP_NAME)
    yield
    dispatcher.stop()


app = FastAPI(title=APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(users.router, prefix="/api/user", tags=["user"])
app.include_router(products.router, prefix="/api/products", tags=["products"])
app.include_router(cart.router, prefix="/api/cart", tags=["cart"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(addresses.router, prefix="/api/account/addresses", tags=["addresses"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(debug.router, prefix="/api/debug", tags=["debug"])


@app.get("/")
def root():
    return {"status": "ok", "app": APP_NAME}
