import os

from dotenv import load_dotenv

# .env from the working directory
load_dotenv()


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cosmo_os.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_STAGE = ENV_NORMALIZED in {"stage", "staging"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

# Public links (rider delivery confirmation)
APP_PUBLIC_URL = os.getenv("APP_PUBLIC_URL", "http://localhost:3000").strip().rstrip("/")

# Identity provider (bearer tokens for staff)
IDENTITY_JWT_SECRET = os.getenv("IDENTITY_JWT_SECRET", "")
IDENTITY_JWT_ALGORITHMS = [
    alg.strip() for alg in os.getenv("IDENTITY_JWT_ALGORITHMS", "HS256").split(",") if alg.strip()
]
IDENTITY_JWT_AUDIENCE = os.getenv("IDENTITY_JWT_AUDIENCE", "").strip() or None
IDENTITY_JWT_ISSUER = os.getenv("IDENTITY_JWT_ISSUER", "").strip() or None

# Identity provider management API (machine-to-machine)
IDENTITY_DOMAIN = os.getenv("IDENTITY_DOMAIN", "").strip()
IDENTITY_M2M_CLIENT_ID = os.getenv("IDENTITY_M2M_CLIENT_ID", "").strip()
IDENTITY_M2M_CLIENT_SECRET = os.getenv("IDENTITY_M2M_CLIENT_SECRET", "").strip()
IDENTITY_DB_CONNECTION = os.getenv("IDENTITY_DB_CONNECTION", "").strip()
IDENTITY_TOKEN_REFRESH_MARGIN_SECONDS = int(os.getenv("IDENTITY_TOKEN_REFRESH_MARGIN_SECONDS", "60"))

# SMS provider
SMS_HTTP_TIMEOUT_SECONDS = float(os.getenv("SMS_HTTP_TIMEOUT_SECONDS", "5"))
SMS_COUNTRY_CODE = os.getenv("SMS_COUNTRY_CODE", "94").strip() or "94"

# Shopify Admin API (direct fulfillment on invoice completion)
SHOPIFY_ADMIN_ACCESS_TOKEN = os.getenv("SHOPIFY_ADMIN_ACCESS_TOKEN", "").strip()
SHOPIFY_ADMIN_API_VERSION = os.getenv("SHOPIFY_ADMIN_API_VERSION", "2025-10").strip()
SHOPIFY_HTTP_TIMEOUT_SECONDS = float(os.getenv("SHOPIFY_HTTP_TIMEOUT_SECONDS", "10"))

# Webhooks / fulfillment
WEBHOOK_ERROR_MAX_LENGTH = int(os.getenv("WEBHOOK_ERROR_MAX_LENGTH", "10000"))
RIDER_TOKEN_MIN_LENGTH = int(os.getenv("RIDER_TOKEN_MIN_LENGTH", "16"))
AUTO_CREATE_SCHEMA = _env_flag("AUTO_CREATE_SCHEMA", "1" if IS_DEV else "0")
