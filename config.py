import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "kiransales")

# Security/JWT
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGO = "HS256"
JWT_EXPIRES_MIN = int(os.getenv("JWT_EXPIRES_MIN", str(60 * 24 * 7)))
AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "kiran-sales-user")

# Orders
TAX_RATE = float(os.getenv("TAX_RATE", "0.18"))
LEGACY_ORDER_LOOKUP = _flag("LEGACY_ORDER_LOOKUP", "1")
STRICT_ORDER_TOTALS = _flag("STRICT_ORDER_TOTALS", "0")

# Local storage fallbacks
UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join("public", "uploads"))
PRODUCTS_FALLBACK_FILE = os.getenv("PRODUCTS_FALLBACK_FILE", os.path.join("data", "products.json"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
