import os

from dotenv import load_dotenv

# Loads the .env at the project root
load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./salonpos.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

# Reverse proxies in front of the app; X-Forwarded-For is ignored when 0
TRUSTED_PROXY_COUNT = int(os.getenv("TRUSTED_PROXY_COUNT", "0"))

# Auth (JWT)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-only-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", str(60 * 24)))

# Signed grants handed to an owner whose email the POS did not disclose
GRANT_SECRET = os.getenv("GRANT_SECRET", JWT_SECRET_KEY)
GRANT_MAX_AGE_SECONDS = int(os.getenv("GRANT_MAX_AGE_SECONDS", "900"))

# POS (Square)
POS_ENV = os.getenv("POS_ENV", "sandbox").strip().lower()
POS_PRODUCTION_BASE_URL = "https://connect.squareup.com"
POS_SANDBOX_BASE_URL = "https://connect.squareupsandbox.com"
POS_BASE_URL = os.getenv(
    "POS_BASE_URL",
    POS_PRODUCTION_BASE_URL if POS_ENV == "production" else POS_SANDBOX_BASE_URL,
).rstrip("/")
POS_API_VERSION = os.getenv("POS_API_VERSION", "2025-10-16")
POS_APPLICATION_ID = os.getenv("POS_APPLICATION_ID", "")
POS_APPLICATION_SECRET = os.getenv("POS_APPLICATION_SECRET", "")
POS_TIMEOUT_SECONDS = float(os.getenv("POS_TIMEOUT_SECONDS", "20"))
POS_SYNC_PAGE_LIMIT = int(os.getenv("POS_SYNC_PAGE_LIMIT", "100"))

# Staff onboarding
PIN_TTL_HOURS = int(os.getenv("PIN_TTL_HOURS", "24"))
PIN_MAX_FAILED_ATTEMPTS = int(os.getenv("PIN_MAX_FAILED_ATTEMPTS", "8"))
PIN_ATTEMPT_WINDOW_MINUTES = int(os.getenv("PIN_ATTEMPT_WINDOW_MINUTES", "10"))
PIN_LOCK_MINUTES = int(os.getenv("PIN_LOCK_MINUTES", "10"))
MIN_PASSWORD_LENGTH = int(os.getenv("MIN_PASSWORD_LENGTH", "8"))

AUTO_CREATE_TABLES = _flag("AUTO_CREATE_TABLES", "1" if IS_DEV else "0")
