"""
Application configuration from environment variables.

Load with python-dotenv in main so env vars are available before imports.
Secrets (encryption key, client secrets, API keys) are not validated at
module load: each operation resolves the ones it needs with get_secret, so a
missing Microsoft secret does not stop password sign-in from working.
"""
import os

from errors import FailedPrecondition


def get_secret(name: str, required: bool = True) -> str:
    """
    Read a secret from the environment. Raises FailedPrecondition when
    required and missing; returns "" for a missing optional secret.
    """
    value = os.getenv(name)
    if not value or not value.strip():
        if required:
            raise FailedPrecondition(f"Missing secret: {name}")
        return ""
    return value


def _int_env(key: str, default: int) -> int:
    try:
        return max(1, int(os.getenv(key, str(default))))
    except ValueError:
        return default


def _float_env(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


# --- Google OAuth ---
GOOGLE_TOKEN_URI = os.getenv("GOOGLE_TOKEN_URI", "https://oauth2.googleapis.com/token")

# --- Microsoft OAuth (msal) ---
MICROSOFT_AUTHORITY = os.getenv("MICROSOFT_AUTHORITY", "https://login.microsoftonline.com/common")
# Space-separated; msal adds openid/profile/offline_access itself
MICROSOFT_SCOPES = os.getenv("MICROSOFT_SCOPES", "user.read mail.read offline_access").split()

# --- Identity Toolkit (email/password) ---
IDENTITY_TOOLKIT_URL = os.getenv(
    "IDENTITY_TOOLKIT_URL", "https://identitytoolkit.googleapis.com/v1"
).rstrip("/")

# --- reCAPTCHA ---
RECAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"
RECAPTCHA_MIN_SCORE = _float_env("RECAPTCHA_MIN_SCORE", 0.5)

# Request timeouts (connect, read) in seconds for identity provider and reCAPTCHA calls
PROVIDER_REQUEST_TIMEOUT = (
    _int_env("PROVIDER_CONNECT_TIMEOUT", 5),
    _int_env("PROVIDER_READ_TIMEOUT", 30),
)

# --- Session credential returned by sign-up ---
JWT_ALGORITHM = "HS256"
# Lifetime in seconds of the sign-up session JWT
_JWT_MAX_AGE_RAW = os.getenv("JWT_MAX_AGE", "3600")
try:
    JWT_MAX_AGE = max(60, int(_JWT_MAX_AGE_RAW))
except ValueError:
    JWT_MAX_AGE = 3600

# Frontend origin allowed by CORS
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

# Database URL (SQLite default; use Postgres URL in production)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tokens.db")

# Skip create_all at startup (set in production when using migrations)
SKIP_DB_INIT = os.getenv("SKIP_DB_INIT", "false").lower() in ("1", "true", "yes")

# Environment: development | production (affects .env loading)
ENV = os.getenv("ENV", "development").lower()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
