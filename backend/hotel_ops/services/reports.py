from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from hotel_ops.constants.statuses import (
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    PAYMENT_PENDING,
    ROOM_AVAILABLE,
    ROOM_CLEANING,
    ROOM_DIRTY,
    ROOM_MAINTENANCE,
    ROOM_OCCUPIED,
    ROOM_OUT_OF_ORDER,
    ROOM_STATUSES,
)
from hotel_ops.domain.reservation_state_machine import CANCELLED, PENDING
from hotel_ops.repositories.bill_repository import BillRepository
from hotel_ops.repositories.reservation_repository import ReservationRepository
from hotel_ops.repositories.room_repository import RoomRepository
from hotel_ops.utils import now_utc, parse_instant, round_money, safe_float

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

RANGE_DAYS = {"7days": 7, "30days": 30, "90days": 90}
DEFAULT_RANGE = "30days"
CHART_ROOM_STATUSES = (ROOM_AVAILABLE, ROOM_OCCUPIED, ROOM_CLEANING, ROOM_MAINTENANCE)
ATTENTION_ROOM_STATUSES = (ROOM_DIRTY, ROOM_OUT_OF_ORDER, ROOM_MAINTENANCE)
OCCUPANCY_TREND_DAYS = 7


def _percent(part: float, whole: float) -> int:
    """part/whole as a whole percentage, halves rounded up; 0 when whole is 0."""
    if not whole:
        return 0
    return int(math.floor(part / whole * 100 + 0.5))


def _on_or_after(value: Any, start: datetime) -> bool:
    at = parse_instant(value)
    return at is not None and at >= start


def _count_status(items: Iterable[Record], status: str, field: str = "status") -> int:
    return sum(1 for item in items if item.get(field) == status)


def date_range_start(range_key: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Start of a reporting window: last 7/30/90 days or the current month.

    Unknown keys fall back to the last 30 days.
    """
    now = now or now_utc()
    if range_key == "thismonth":
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    days = RANGE_DAYS.get(range_key or "", RANGE_DAYS[DEFAULT_RANGE])
    return now - timedelta(days=days)


def window_refunds(bills: Iterable[Record], start: datetime) -> float:
    """Refunds processed since ``start``, across every bill.

    A refund without ``processed_at`` is dated by its bill's ``created_at``.
    """
    total = 0.0
    for bill in bills:
        for refund in bill.get("refunds") or []:
            stamp = refund.get("processed_at") or bill.get("created_at")
            if _on_or_after(stamp, start):
                total += safe_float(refund.get("amount"))
    return round_money(total)


def _bill_revenue(bill: Record) -> float:
    # pre-tax revenue; bills stored before subtotals existed only carry a total
    subtotal = bill.get("subtotal")
    return safe_float(subtotal if subtotal is not None else bill.get("total_amount"))


def compute_report_stats(
    reservations: List[Record],
    rooms: List[Record],
    bills: List[Record],
    start: datetime,
) -> Dict[str, Any]:
    """Headline numbers for the reporting window starting at ``start``.

    Reservations are in the window by check-in, bills by creation. The
    outstanding and partial counts cover every bill: they describe the
    current backlog rather than the window.
    """
    window_reservations = [r for r in reservations if _on_or_after(r.get("check_in"), start)]
    window_bills = [b for b in bills if _on_or_after(b.get("created_at"), start)]
    paid_bills = [b for b in window_bills if b.get("payment_status") == PAYMENT_PAID]

    gross = round_money(sum(_bill_revenue(b) for b in paid_bills))
    tax = round_money(sum(safe_float(b.get("tax_amount")) for b in paid_bills))
    refunds = window_refunds(bills, start)

    occupied = _count_status(rooms, ROOM_OCCUPIED)
    bookings = len(window_reservations)
    cancelled = _count_status(window_reservations, CANCELLED)

    return {
        "total_revenue": gross,
        "total_tax_collected": tax,
        "total_refunds": refunds,
        "net_revenue": round_money(gross - refunds),
        "occupancy_rate": _percent(occupied, len(rooms)),
        "average_daily_rate": round_money(gross / bookings) if bookings else 0.0,
        "total_bookings": bookings,
        "cancellation_rate": _percent(cancelled, bookings),
        "outstanding_payments": _count_status(bills, PAYMENT_PENDING, "payment_status"),
        "partial_payments": _count_status(bills, PAYMENT_PARTIAL, "payment_status"),
        "average_tax_rate": round(tax / gross * 100, 2) if gross > 0 else 0.0,
    }


def occupied_on(reservations: Iterable[Record], day: datetime) -> int:
    """Non-cancelled reservations with ``check_in <= day < check_out``."""
    count = 0
    for r in reservations:
        if r.get("status") == CANCELLED:
            continue
        check_in = parse_instant(r.get("check_in"))
        check_out = parse_instant(r.get("check_out"))
        if check_in is not None and check_out is not None and check_in <= day < check_out:
            count += 1
    return count


def build_chart_series(
    reservations: List[Record],
    rooms: List[Record],
    bills: List[Record],
    start: datetime,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Chart-ready series: daily revenue, room status mix, 7-day occupancy."""
    now = now or now_utc()

    buckets: Dict[str, float] = {}
    for bill in bills:
        if bill.get("payment_status") != PAYMENT_PAID:
            continue
        created = parse_instant(bill.get("created_at"))
        if created is None or created < start:
            continue
        day = created.date().isoformat()
        buckets[day] = buckets.get(day, 0.0) + safe_float(bill.get("total_amount"))
    revenue = [{"day": day, "amount": round_money(buckets[day])} for day in sorted(buckets)]

    room_status = {status: _count_status(rooms, status) for status in CHART_ROOM_STATUSES}

    occupancy = []
    for offset in range(OCCUPANCY_TREND_DAYS - 1, -1, -1):
        day = now - timedelta(days=offset)
        occupancy.append(
            {
                "day": day.date().isoformat(),
                "occupancy": _percent(occupied_on(reservations, day), len(rooms)),
            }
        )

    return {"revenue": revenue, "room_status": room_status, "occupancy": occupancy}


def dashboard_summary(
    reservations: List[Record],
    rooms: List[Record],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Front-desk snapshot for today."""
    now = now or now_utc()
    today = now.date()

    arrivals = []
    month_revenue = 0.0
    for r in reservations:
        check_in = parse_instant(r.get("check_in"))
        if check_in is None:
            continue
        if check_in.date() == today:
            arrivals.append(r)
        if (check_in.year, check_in.month) == (now.year, now.month) and r.get("status") != CANCELLED:
            month_revenue += safe_float(r.get("total_amount"))

    occupied = _count_status(rooms, ROOM_OCCUPIED)
    return {
        "total_rooms": len(rooms),
        "occupied_rooms": occupied,
        "occupancy_rate": _percent(occupied, len(rooms)),
        "today_arrivals": len(arrivals),
        "arrivals": arrivals,
        "out_of_order_rooms": _count_status(rooms, ROOM_OUT_OF_ORDER),
        "dirty_rooms": _count_status(rooms, ROOM_DIRTY),
        "monthly_revenue": round_money(month_revenue),
        "pending_reservations": _count_status(reservations, PENDING),
        "room_status_counts": {status: _count_status(rooms, status) for status in ROOM_STATUSES},
        "rooms_needing_attention": [room for room in rooms if room.get("status") in ATTENTION_ROOM_STATUSES],
    }


class ReportsService:
    """Loads the three collections and runs the report functions over them."""

    def __init__(
        self,
        reservations: ReservationRepository,
        rooms: RoomRepository,
        bills: BillRepository,
    ) -> None:
        self.reservations = reservations
        self.rooms = rooms
        self.bills = bills

    async def _load(self) -> tuple[List[Record], List[Record], List[Record]]:
        return (
            await self.reservations.get_all(),
            await self.rooms.get_all(),
            await self.bills.get_all(),
        )

    async def get_report(self, range_key: str = DEFAULT_RANGE, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or now_utc()
        start = date_range_start(range_key, now)
        reservations, rooms, bills = await self._load()
        logger.info(
            "report range=%s start=%s reservations=%d bills=%d",
            range_key,
            start.isoformat(),
            len(reservations),
            len(bills),
        )
        return {
            "range": range_key if range_key == "thismonth" or range_key in RANGE_DAYS else DEFAULT_RANGE,
            "start": start,
            "generated_at": now,
            "stats": compute_report_stats(reservations, rooms, bills, start),
            "charts": build_chart_series(reservations, rooms, bills, start, now),
        }

    async def get_dashboard(self, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        reservations, rooms, _ = await self._load()
        return dashboard_summary(reservations, rooms, now)
