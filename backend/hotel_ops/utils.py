from __future__ import annotations

import math
import secrets
import string
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_instant(value: Any) -> Optional[datetime]:
    """Coerce an ISO string, date or datetime into an aware UTC datetime.

    Naive values are assumed to be UTC. Returns None for empty input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        raw = str(value).strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def days_until(target: datetime, now: datetime) -> int:
    """Whole days from now until target, rounded up (same-day future = 1)."""
    return math.ceil((target - now) / timedelta(days=1))


def nights_between(check_in: datetime, check_out: datetime) -> int:
    return max(0, math.ceil((check_out - check_in) / timedelta(days=1)))


def round_money(value: float) -> float:
    return round(float(value), 2)


def safe_float(v: Any, default: float = 0.0) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


def safe_int(v: Any, default: Optional[int] = 0) -> Optional[int]:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def generate_code(prefix: str, length: int = 6) -> str:
    alphabet = string.digits
    return f"{prefix}-{''.join(secrets.choice(alphabet) for _ in range(length))}"


def generate_transaction_id(now: Optional[datetime] = None) -> str:
    ts = int((now or now_utc()).timestamp() * 1000)
    return generate_code(f"TXN-{ts}", 4)


def generate_group_id(now: Optional[datetime] = None) -> str:
    return f"GRP-{int((now or now_utc()).timestamp() * 1000)}"


def format_invoice_number(created_at: datetime, sequence: int) -> str:
    return f"INV-{created_at.strftime('%Y%m%d')}-{sequence:04d}"


def serialize_doc(doc: Any) -> Any:
    """Recursively convert records into JSON-serializable structures."""
    if doc is None:
        return None

    if isinstance(doc, datetime):
        return doc.isoformat()

    if isinstance(doc, date):
        return doc.isoformat()

    if isinstance(doc, (list, tuple)):
        return [serialize_doc(x) for x in doc]

    if isinstance(doc, dict):
        return {k: serialize_doc(v) for k, v in doc.items()}

    return doc
