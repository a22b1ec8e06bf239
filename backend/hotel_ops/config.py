from __future__ import annotations

"""Application-level configuration.

All values are read from the environment once, at import time. A `.env` file
next to the backend root is loaded first when present (development fallback).

These are defaults only: stores and services take explicit constructor
arguments, so tests never depend on the environment.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]

env_path = ROOT_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _env_flag(name: str, default: bool = True) -> bool:
    """Read a boolean-like flag from environment.

    Accepted falsy values: "0", "false", "off", "no" (case-insensitive).
    Anything else (or unset) falls back to `default`.
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"0", "false", "off", "no"}:
        return False
    if value in {"1", "true", "on", "yes"}:
        return True
    return default


APP_NAME = "Hotel Ops"
APP_VERSION = "1.0.0"
LOG_LEVEL = os.environ.get("HOTEL_OPS_LOG_LEVEL", "INFO")

# Billing
DEFAULT_TAX_RATE = float(os.environ.get("HOTEL_OPS_DEFAULT_TAX_RATE", "10"))
BILL_DUE_DAYS = int(os.environ.get("HOTEL_OPS_BILL_DUE_DAYS", "30"))
# Overpayment leaves a negative balance_due (credit owed to the guest)
ALLOW_OVERPAYMENT: bool = _env_flag("HOTEL_OPS_ALLOW_OVERPAYMENT", default=True)

# Reservations
REFUND_POLICY = os.environ.get("HOTEL_OPS_REFUND_POLICY", "standard")

# Storage backend: memory | mongo | record_api
STORE_BACKEND = os.environ.get("HOTEL_OPS_STORE_BACKEND", "memory")
STORE_LATENCY_MIN_MS = int(os.environ.get("HOTEL_OPS_STORE_LATENCY_MIN_MS", "0"))
STORE_LATENCY_MAX_MS = int(os.environ.get("HOTEL_OPS_STORE_LATENCY_MAX_MS", "0"))

MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.environ.get("DB_NAME", "hotel_ops")

# Remote record API
RECORD_API_BASE_URL = os.environ.get("HOTEL_OPS_RECORD_API_BASE_URL", "http://localhost:8080")
RECORD_API_KEY = os.environ.get("HOTEL_OPS_RECORD_API_KEY", "")
RECORD_API_TIMEOUT_SECONDS = float(os.environ.get("HOTEL_OPS_RECORD_API_TIMEOUT_SECONDS", "10"))
