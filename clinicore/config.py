"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Institution header (printed on every document) ───────────────────
INSTITUTION_NAME = "CHILD MENTAL HAVEN"
INSTITUTION_TAGLINE = "COMPREHENSIVE MENTAL HEALTH / REHABILITATION"
INSTITUTION_ADDRESS_LINES = (
    "Northern Bypass Roysambu, Nairobi",
    "Behind Treat Hotel",
    "P.O. Box 1079-00600, Nairobi",
)
INSTITUTION_PHONE = "0725133444 / 0732-313173"
INSTITUTION_EMAIL = "childmentalhaven@gmail.com"
INSTITUTION_LOGO_URL = os.getenv("INSTITUTION_LOGO_URL", "/static/logo.png")

# ── Formatting ───────────────────────────────────────────────────────
CURRENCY_LABEL = "Ksh"
MISSING_FIELD_PLACEHOLDER = ""
PRESCRIPTION_VALIDITY_DAYS = 30

# ── API server ───────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
TOKEN_EXPIRY_HOURS = 8

# ── CLI exports ──────────────────────────────────────────────────────
EXPORT_DIR = os.getenv("EXPORT_DIR", "exports")


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
