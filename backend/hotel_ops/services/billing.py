from __future__ import annotations

"""Billing engine: invoices, payments, refunds, adjustments and tax reporting.

Money is rounded to cents on every write. A bill always satisfies::

    subtotal     = original_subtotal + sum(adjustments)   (discounts negative)
    tax_amount   = subtotal * tax_rate / 100
    total_amount = subtotal + tax_amount
    balance_due  = total_amount - (amount_paid - amount_refunded)

Guards:
- a refund can never exceed what was paid (409);
- overpayment is allowed by default and leaves a negative balance_due (a
  credit); it is rejected with 409 when ``allow_overpayment`` is off;
- an adjustment that would push the subtotal below zero is rejected (409).
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from hotel_ops.config import ALLOW_OVERPAYMENT, BILL_DUE_DAYS, DEFAULT_TAX_RATE
from hotel_ops.constants.statuses import (
    PAYMENT_OVERDUE,
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    PAYMENT_PENDING,
    PAYMENT_REFUNDED,
    PAYMENT_STATUSES,
)
from hotel_ops.errors import AppError
from hotel_ops.repositories.bill_repository import BillRepository
from hotel_ops.repositories.reservation_repository import ReservationRepository
from hotel_ops.schemas import (
    AdjustmentRequest,
    BillCreate,
    BillUpdate,
    PaymentRequest,
    RefundRequest,
    parse_command,
)
from hotel_ops.utils import (
    format_invoice_number,
    generate_transaction_id,
    now_utc,
    parse_instant,
    round_money,
    safe_float,
)

logger = logging.getLogger(__name__)

# Half a cent; amounts are compared after rounding to cents.
_EPSILON = 0.005

CHARGE_FIELDS = ("room_charges", "additional_charges", "tax_rate")
# Computed by the billing operations; a plain update never writes them
PROTECTED_FIELDS = frozenset({
    "id",
    "created_at",
    "original_subtotal",
    "subtotal",
    "tax_amount",
    "total_amount",
    "amount_paid",
    "amount_refunded",
    "balance_due",
    "payment_history",
    "refunds",
    "adjustments",
})


@dataclass
class BillTotals:
    subtotal: float
    tax_amount: float
    total_amount: float


def compute_totals(subtotal: float, tax_rate: float) -> BillTotals:
    subtotal = round_money(subtotal)
    tax_amount = round_money(subtotal * float(tax_rate) / 100.0)
    return BillTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        total_amount=round_money(subtotal + tax_amount),
    )


def sum_amounts(entries: Iterable[Dict[str, Any]]) -> float:
    return round_money(sum(safe_float(e.get("amount")) for e in entries or []))


def adjustment_total(adjustments: Iterable[Dict[str, Any]]) -> float:
    """Discounts subtract; fees and corrections add. Order does not matter."""
    total = 0.0
    for adj in adjustments or []:
        amount = safe_float(adj.get("amount"))
        total += -amount if adj.get("type") == "discount" else amount
    return round_money(total)


def original_subtotal_of(bill: Dict[str, Any]) -> float:
    if bill.get("original_subtotal") is not None:
        return round_money(bill["original_subtotal"])
    charges = [safe_float(c) for c in bill.get("additional_charges") or []]
    return round_money(safe_float(bill.get("room_charges")) + sum(charges))


def compute_payment_status(total_amount: float, amount_paid: float, amount_refunded: float = 0.0) -> str:
    """Derive a bill's payment status from its running totals.

    - something was refunded and nothing net remains -> Refunded
    - nothing paid -> Pending
    - net paid covers the total -> Paid
    - otherwise -> Partial
    """
    net_paid = amount_paid - amount_refunded
    if amount_refunded > 0 and net_paid <= _EPSILON:
        return PAYMENT_REFUNDED
    if amount_paid <= 0:
        return PAYMENT_PENDING
    if net_paid >= total_amount - _EPSILON:
        return PAYMENT_PAID
    return PAYMENT_PARTIAL


def payment_projection(total_amount: float, payments: List[Dict[str, Any]], refunds: List[Dict[str, Any]]) -> Dict[str, float]:
    paid = sum_amounts(payments)
    refunded = sum_amounts(refunds)
    return {
        "amount_paid": paid,
        "amount_refunded": refunded,
        "balance_due": round_money(total_amount - (paid - refunded)),
    }


def _window_bound(value: Any, *, end: bool) -> Optional[datetime]:
    # A bare date as the upper bound covers that whole day
    dt = parse_instant(value)
    if dt is None:
        return None
    is_bare_date = (isinstance(value, date) and not isinstance(value, datetime)) or (
        isinstance(value, str) and len(value.strip()) == 10
    )
    if end and is_bare_date:
        dt = dt + timedelta(days=1) - timedelta(microseconds=1)
    return dt


class BillingService:
    """Invoices for reservations and everything that changes their balance."""

    def __init__(
        self,
        bills: BillRepository,
        reservations: Optional[ReservationRepository] = None,
        *,
        default_tax_rate: float = DEFAULT_TAX_RATE,
        allow_overpayment: bool = ALLOW_OVERPAYMENT,
        due_days: int = BILL_DUE_DAYS,
    ) -> None:
        self.bills = bills
        self.reservations = reservations
        self.default_tax_rate = float(default_tax_rate)
        self.allow_overpayment = allow_overpayment
        self.due_days = due_days

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def get_all(self) -> List[Dict[str, Any]]:
        return await self.bills.get_all()

    async def get_by_id(self, bill_id: int) -> Dict[str, Any]:
        return await self.bills.get_by_id(bill_id)

    async def delete(self, bill_id: int) -> Dict[str, Any]:
        return await self.bills.delete(bill_id)

    async def get_by_reservation(self, reservation_id: int) -> List[Dict[str, Any]]:
        return await self.bills.list_by_reservation(reservation_id)

    async def create(self, data: Dict[str, Any] | BillCreate, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        cmd: BillCreate = parse_command(BillCreate, data)
        now = now or now_utc()

        guest_name = cmd.guest_name
        room_number = cmd.room_number
        if self.reservations is not None and (guest_name is None or room_number is None):
            reservation = await self.reservations.get_by_id(cmd.reservation_id)
            guest_name = guest_name if guest_name is not None else reservation.get("guest_name", "")
            room_number = room_number if room_number is not None else reservation.get("room_number", "")

        tax_rate = cmd.tax_rate if cmd.tax_rate is not None else self.default_tax_rate
        additional = [round_money(c) for c in cmd.additional_charges]
        original_subtotal = round_money(cmd.room_charges + sum(additional))
        totals = compute_totals(original_subtotal, tax_rate)

        doc: Dict[str, Any] = {
            "reservation_id": cmd.reservation_id,
            "guest_name": guest_name or "",
            "room_number": room_number or "",
            "room_charges": round_money(cmd.room_charges),
            "additional_charges": additional,
            "tax_rate": tax_rate,
            "original_subtotal": original_subtotal,
            "subtotal": totals.subtotal,
            "tax_amount": totals.tax_amount,
            "total_amount": totals.total_amount,
            "payment_status": PAYMENT_PENDING,
            "payment_history": [],
            "refunds": [],
            "adjustments": [],
            "amount_paid": 0.0,
            "amount_refunded": 0.0,
            "balance_due": totals.total_amount,
            "notes": cmd.notes,
            "created_at": now,
            "due_date": now + timedelta(days=self.due_days),
        }
        bill = await self.bills.create(doc)

        # The invoice sequence is the bill's own identity
        invoice_number = format_invoice_number(parse_instant(bill["created_at"]), int(bill["id"]))
        bill = await self.bills.update(bill["id"], {"invoice_number": invoice_number})
        logger.info(
            "bill created id=%s invoice=%s reservation=%s total=%.2f",
            bill["id"],
            invoice_number,
            cmd.reservation_id,
            totals.total_amount,
        )
        return bill

    async def update(self, bill_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Merge fields into a bill; charge changes recompute every total.

        Totals, balances and the payment/refund/adjustment ledgers are owned by
        the billing operations and are dropped from the patch.
        """

        status = fields.get("payment_status")
        if status is not None and status not in PAYMENT_STATUSES:
            raise AppError(422, "invalid_payment_status", f"Unknown payment status: {status}", {"status": status})

        ignored = sorted(k for k in fields if k in PROTECTED_FIELDS)
        if ignored:
            logger.warning("bill update id=%s ignored derived fields %s", bill_id, ignored)
        cmd: BillUpdate = parse_command(BillUpdate, {k: v for k, v in fields.items() if k not in PROTECTED_FIELDS})
        fields = cmd.model_dump(exclude_unset=True)

        if not any(f in fields for f in CHARGE_FIELDS):
            return await self.bills.update(bill_id, fields)

        bill = await self.bills.get_by_id(bill_id)
        changes = {k: v for k, v in fields.items() if v is not None}
        merged = {**bill, **changes}
        charges = [round_money(safe_float(c)) for c in merged.get("additional_charges") or []]
        original_subtotal = round_money(safe_float(merged.get("room_charges")) + sum(charges))
        subtotal = round_money(original_subtotal + adjustment_total(bill.get("adjustments") or []))
        if subtotal < 0:
            raise AppError(409, "adjustment_exceeds_subtotal", "Subtotal cannot be negative", {"id": bill_id})
        totals = compute_totals(subtotal, safe_float(merged.get("tax_rate"), self.default_tax_rate))
        patch = {
            **changes,
            "additional_charges": charges,
            "original_subtotal": original_subtotal,
            "subtotal": totals.subtotal,
            "tax_amount": totals.tax_amount,
            "total_amount": totals.total_amount,
        }
        patch.update(self._refresh_balance(bill, totals.total_amount))
        return await self.bills.update(bill_id, patch)

    # ------------------------------------------------------------------
    # Payments / refunds / adjustments
    # ------------------------------------------------------------------

    def _refresh_balance(
        self,
        bill: Dict[str, Any],
        total_amount: float,
        payments: Optional[List[Dict[str, Any]]] = None,
        refunds: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        payments = payments if payments is not None else bill.get("payment_history") or []
        refunds = refunds if refunds is not None else bill.get("refunds") or []
        projection = payment_projection(total_amount, payments, refunds)
        out: Dict[str, Any] = dict(projection)
        if payments or refunds:
            out["payment_status"] = compute_payment_status(
                total_amount, projection["amount_paid"], projection["amount_refunded"]
            )
        return out

    async def process_payment(
        self,
        bill_id: int,
        amount: float,
        method: str = "Cash",
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        req: PaymentRequest = parse_command(PaymentRequest, {"amount": amount, "method": method})
        bill = await self.bills.get_by_id(bill_id)
        now = now or now_utc()

        payment = {
            "amount": round_money(req.amount),
            "method": req.method,
            "transaction_id": generate_transaction_id(now),
            "processed_at": now,
        }
        payments = list(bill.get("payment_history") or []) + [payment]
        total = safe_float(bill.get("total_amount"))
        patch = self._refresh_balance(bill, total, payments=payments)

        if not self.allow_overpayment and patch["balance_due"] < -_EPSILON:
            raise AppError(
                409,
                "payment_exceeds_total",
                "Payment would exceed the bill total",
                {"id": bill_id, "balance_due": safe_float(bill.get("balance_due"), total)},
            )

        patch["payment_history"] = payments
        updated = await self.bills.update(bill_id, patch)
        logger.info(
            "payment processed bill=%s amount=%.2f method=%s status=%s",
            bill_id,
            payment["amount"],
            req.method,
            updated["payment_status"],
        )
        return updated

    async def process_refund(
        self,
        bill_id: int,
        amount: float,
        reason: str,
        method: str = "Original Payment Method",
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        req: RefundRequest = parse_command(RefundRequest, {"amount": amount, "reason": reason, "method": method})
        bill = await self.bills.get_by_id(bill_id)
        now = now or now_utc()

        refund = {
            "amount": round_money(req.amount),
            "reason": req.reason,
            "method": req.method,
            "processed_at": now,
        }
        refunds = list(bill.get("refunds") or []) + [refund]
        paid = sum_amounts(bill.get("payment_history") or [])
        refunded = sum_amounts(refunds)
        if refunded > paid + _EPSILON:
            raise AppError(
                409,
                "refund_exceeds_paid",
                "Refund cannot exceed the amount paid",
                {"id": bill_id, "amount_paid": paid, "amount_refunded": round_money(refunded - refund["amount"])},
            )

        patch = self._refresh_balance(bill, safe_float(bill.get("total_amount")), refunds=refunds)
        patch["refunds"] = refunds
        updated = await self.bills.update(bill_id, patch)
        logger.info(
            "refund processed bill=%s amount=%.2f reason=%s status=%s",
            bill_id,
            refund["amount"],
            req.reason,
            updated["payment_status"],
        )
        return updated

    async def add_adjustment(
        self,
        bill_id: int,
        type: str,
        amount: float,
        reason: str,
        applied_by: str = "Front Desk",
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        req: AdjustmentRequest = parse_command(
            AdjustmentRequest,
            {"type": type, "amount": amount, "reason": reason, "applied_by": applied_by},
        )
        bill = await self.bills.get_by_id(bill_id)
        now = now or now_utc()

        adjustment = {
            "type": req.type,
            "amount": round_money(req.amount),
            "reason": req.reason,
            "applied_by": req.applied_by,
            "applied_at": now,
        }
        adjustments = list(bill.get("adjustments") or []) + [adjustment]
        original_subtotal = original_subtotal_of(bill)
        new_subtotal = round_money(original_subtotal + adjustment_total(adjustments))
        if new_subtotal < 0:
            raise AppError(
                409,
                "adjustment_exceeds_subtotal",
                "Adjustment would make the subtotal negative",
                {"id": bill_id, "original_subtotal": original_subtotal},
            )

        totals = compute_totals(new_subtotal, safe_float(bill.get("tax_rate"), self.default_tax_rate))
        patch: Dict[str, Any] = {
            "adjustments": adjustments,
            "original_subtotal": original_subtotal,
            "subtotal": totals.subtotal,
            "tax_amount": totals.tax_amount,
            "total_amount": totals.total_amount,
        }
        patch.update(self._refresh_balance(bill, totals.total_amount))
        updated = await self.bills.update(bill_id, patch)
        logger.info(
            "adjustment applied bill=%s type=%s amount=%.2f total=%.2f",
            bill_id,
            req.type,
            adjustment["amount"],
            totals.total_amount,
        )
        return updated

    async def mark_overdue(self, *, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Flag unpaid bills whose due date has passed as Overdue."""

        now = now or now_utc()
        candidates = await self.bills.find(
            lambda b: b.get("payment_status") in (PAYMENT_PENDING, PAYMENT_PARTIAL)
            and b.get("due_date") is not None
            and parse_instant(b["due_date"]) < now
        )
        updated: List[Dict[str, Any]] = []
        for bill in candidates:
            updated.append(await self.bills.update(bill["id"], {"payment_status": PAYMENT_OVERDUE}))
        if updated:
            logger.info("marked %d bill(s) overdue", len(updated))
        return updated

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def get_tax_report(self, start_date: Any, end_date: Any) -> Dict[str, Any]:
        """Tax collected on Paid bills created inside [start_date, end_date].

        ``average_tax_rate`` is the plain mean of per-bill rates (what the
        front desk has always shown); ``effective_tax_rate`` weights by revenue
        and is the figure to use when rates differ between bills.
        """

        start = _window_bound(start_date, end=False)
        end = _window_bound(end_date, end=True)

        def in_window(bill: Dict[str, Any]) -> bool:
            if bill.get("payment_status") != PAYMENT_PAID:
                return False
            created = parse_instant(bill.get("created_at"))
            if created is None:
                return False
            if start is not None and created < start:
                return False
            if end is not None and created > end:
                return False
            return True

        bills = await self.bills.find(in_window)
        tax_collected = round_money(sum(safe_float(b.get("tax_amount")) for b in bills))
        revenue = round_money(sum(safe_float(b.get("subtotal")) for b in bills))
        rates = [safe_float(b.get("tax_rate")) for b in bills]

        return {
            "period": {
                "from": start.isoformat() if start else None,
                "to": end.isoformat() if end else None,
            },
            "tax_collected": tax_collected,
            "revenue": revenue,
            "bill_count": len(bills),
            "average_tax_rate": round(sum(rates) / len(rates), 2) if rates else 0.0,
            "effective_tax_rate": round(tax_collected / revenue * 100.0, 2) if revenue else 0.0,
        }
