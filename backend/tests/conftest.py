"""Shared test configuration and fixtures for hotel_ops tests.

Key principles:
- Every test gets a fresh in-memory context; nothing is shared between tests.
- Time-dependent behaviour takes an explicit ``now`` so results are stable.
- AnyIO is the single async runner via pytest-anyio (@pytest.mark.anyio).
- Mongo-backed tests only run when MONGO_URL is set.
"""

from typing import Any, Dict, List

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Ensure backend root is on sys.path so that `hotel_ops` is importable
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from hotel_ops.context import HotelOpsContext, build_memory_context


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio event loop."""

    return "asyncio"


@pytest.fixture
def now() -> datetime:
    return NOW


def _seed() -> Dict[str, List[Dict[str, Any]]]:
    return {
        "guests": [
            {
                "id": 1,
                "first_name": "Ada",
                "last_name": "Lovelace",
                "email": "ada@example.com",
                "account_type": "individual",
                "stay_history": [],
            },
            {
                "id": 2,
                "first_name": "Grace",
                "last_name": "Hopper",
                "email": "grace@acme.example",
                "account_type": "corporate",
                "company_name": "Acme Corp",
                "credit_limit": 5000,
                "payment_terms": "net30",
                "stay_history": [],
            },
        ],
        "rooms": [
            {"id": 1, "number": "101", "type": "Standard", "floor": 1, "status": "Available", "rate": 100.0},
            {"id": 2, "number": "102", "type": "Standard", "floor": 1, "status": "Available", "rate": 100.0},
            {"id": 3, "number": "201", "type": "Suite", "floor": 2, "status": "Available", "rate": 250.0},
            {"id": 4, "number": "202", "type": "Deluxe", "floor": 2, "status": "Maintenance", "rate": 180.0},
        ],
    }


@pytest.fixture
def ctx() -> HotelOpsContext:
    """Fresh in-memory context with two guests and four rooms."""

    return build_memory_context(seed=_seed(), latency_ms=(0, 0), default_tax_rate=10.0, allow_overpayment=True)
