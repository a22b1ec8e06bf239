"""Status and enum values shared by stores, services and reports.

Values are the display strings the front desk works with; they are stored
verbatim on records.
"""
from __future__ import annotations

from typing import Literal

# ── Rooms ───────────────────────────────────────────────
ROOM_AVAILABLE = "Available"
ROOM_OCCUPIED = "Occupied"
ROOM_CLEANING = "Cleaning"
ROOM_DIRTY = "Dirty"
ROOM_MAINTENANCE = "Maintenance"
ROOM_OUT_OF_ORDER = "Out of Order"

ROOM_STATUSES = [
    ROOM_AVAILABLE,
    ROOM_OCCUPIED,
    ROOM_CLEANING,
    ROOM_DIRTY,
    ROOM_MAINTENANCE,
    ROOM_OUT_OF_ORDER,
]

# ── Bills ───────────────────────────────────────────────
PAYMENT_PENDING = "Pending"
PAYMENT_PARTIAL = "Partial"
PAYMENT_PAID = "Paid"
PAYMENT_OVERDUE = "Overdue"
PAYMENT_REFUNDED = "Refunded"

PAYMENT_STATUSES = [
    PAYMENT_PENDING,
    PAYMENT_PARTIAL,
    PAYMENT_PAID,
    PAYMENT_OVERDUE,
    PAYMENT_REFUNDED,
]

AdjustmentType = Literal["discount", "fee", "correction"]

# ── Tasks ───────────────────────────────────────────────
TASK_PENDING = "Pending"
TASK_IN_PROGRESS = "In Progress"
TASK_COMPLETED = "Completed"
TASK_CANCELLED = "Cancelled"

TASK_STATUSES = [TASK_PENDING, TASK_IN_PROGRESS, TASK_COMPLETED, TASK_CANCELLED]
TASK_PRIORITIES = ["Low", "Medium", "High", "Urgent"]

# ── Guests ──────────────────────────────────────────────
ACCOUNT_INDIVIDUAL = "individual"
ACCOUNT_CORPORATE = "corporate"
