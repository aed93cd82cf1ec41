import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


# =====================================================
# ENV
# =====================================================
ENV = os.getenv("ENV", "development")

# =====================================================
# DATABASE
# =====================================================
MONGO_URI = os.getenv("MONGO_URI") or os.getenv("MONGODB_URI")

# =====================================================
# JWT
# =====================================================
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_DAYS = int(os.getenv("ACCESS_TOKEN_DAYS", 30))

# =====================================================
# PRICING FLOORS
# =====================================================
DEFAULT_SHIPPING_RATE = float(os.getenv("DEFAULT_SHIPPING_RATE", 5.0))
DEFAULT_TAX_PERCENT = float(os.getenv("DEFAULT_TAX_PERCENT", 0))

# =====================================================
# RETURNS
# =====================================================
STRICT_RETURN_TRANSITIONS = _env_bool("STRICT_RETURN_TRANSITIONS")

# =====================================================
# RETENTION
# =====================================================
AUDIT_TTL_DAYS = int(os.getenv("AUDIT_TTL_DAYS", 365))
NOTIFICATION_TTL_DAYS = int(os.getenv("NOTIFICATION_TTL_DAYS", 90))

# =====================================================
# SIDE EFFECTS
# =====================================================
SIDE_EFFECT_POLL_SECONDS = float(os.getenv("SIDE_EFFECT_POLL_SECONDS", 1))

# =====================================================
# CORS
# =====================================================
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")

# --------------------------------------------------
# SMTP
# --------------------------------------------------
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")


def validate_production_env() -> None:
    if (ENV or "").lower() != "production":
        return

    required = {
        "JWT_SECRET": JWT_SECRET,
        "MONGODB_URI": MONGO_URI,
    }

    invalid = []
    for key, value in required.items():
        val = (value or "").strip()
        if not val or val.startswith("CHANGE_THIS"):
            invalid.append(key)

    if invalid:
        raise RuntimeError(f"Production env misconfigured. Invalid keys: {', '.join(sorted(invalid))}")
