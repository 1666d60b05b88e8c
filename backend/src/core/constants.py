"""Application constants and configuration values."""

from decimal import Decimal

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_REFERENCE_LENGTH = 255
MAX_CODE_LENGTH = 50

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # Front desk dev server (Vite)
    FRONTEND_URL,  # Production URL if FRONTEND_URL is set accordingly
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Money columns are DECIMAL(10, 2)
MONEY_PLACES = Decimal("0.01")
MAX_MONEY_AMOUNT = Decimal("99999999.99")

# Line quantities are stored as SMALLINT-range integers
MAX_LINE_QUANTITY = 32767

# Seconds a client should wait before retrying a conflicting billing operation
CONFLICT_RETRY_AFTER_SECONDS = 1

# Scheduler job ids
BILLING_AUDIT_JOB_ID = "invoice_consistency_audit"
