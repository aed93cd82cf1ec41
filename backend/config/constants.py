# backend/config/constants.py

# -----------------------------
# PRICING
# -----------------------------
from config.env import DEFAULT_SHIPPING_RATE, DEFAULT_TAX_PERCENT

NO_SELLER_BUCKET = "_none"           # tax bucket for lines without a seller
MONEY_PLACES = 2

# -----------------------------
# PAGINATION
# -----------------------------

DEFAULT_PAGE_SIZE = 10
DEFAULT_ADMIN_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# -----------------------------
# AUDIT EXPORT
# -----------------------------

AUDIT_EXPORT_DEFAULT_LIMIT = 5000
AUDIT_EXPORT_MAX_LIMIT = 20000

# -----------------------------
# WORKERS
# -----------------------------

AUDIT_CLEANUP_INTERVAL_SECONDS = 60 * 60  # hourly
