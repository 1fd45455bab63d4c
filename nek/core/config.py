import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

APP_NAME = os.getenv("APP_NAME", "NEK Store Backend")
SITE_URL = os.getenv("SITE_URL", "http://localhost:3000")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./nek.db")
DB_HEALTH_TIMEOUT_SECONDS = int(os.getenv("DB_HEALTH_TIMEOUT_SECONDS", "10"))
DB_RETRY_ATTEMPTS = int(os.getenv("DB_RETRY_ATTEMPTS", "3"))
DB_RETRY_DELAY_SECONDS = float(os.getenv("DB_RETRY_DELAY_SECONDS", "1"))

SECRET_KEY = os.getenv("SECRET_KEY", "changeme")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
PASSWORD_MIN_LENGTH = 6
PASSWORD_RESET_TTL_MINUTES = 60

# mail
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
EMAIL_FROM = os.getenv("EMAIL_FROM", "NEK <orders@nek.example>")

# image host
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")
SUPABASE_BUCKET = os.getenv("SUPABASE_BUCKET", "nek-products")
MAX_UPLOAD_MB = 5

# catalog
MAX_PRODUCT_IMAGES = 8
MAX_VARIANTS_PER_PRODUCT = 25
LOW_INVENTORY_THRESHOLD = 5

# checkout
TAX_RATE = Decimal("0.08")
SHIPPING_RATES = {
    "standard": Decimal("15.99"),
    "express": Decimal("24.99"),
    "overnight": Decimal("39.99"),
}
COUPONS = {
    "SAVE10": Decimal("0.10"),
}
ORDER_NUMBER_PREFIX = "NEK"
