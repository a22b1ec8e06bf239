from __future__ import annotations

from datetime import timedelta

import pytest

from hotel_ops.errors import AppError, NotFoundError
from hotel_ops.services.billing import BillingService, compute_payment_status


async def _bill(ctx, now, **overrides):
    data = {
        "reservation_id": 1,
        "room_charges": 200.0,
        "additional_charges": [15.0, 5.0],
        "tax_rate": 10.0,
        "guest_name": "Ada Lovelace",
        "room_number": "101",
    }
    data.update(overrides)
    return await ctx.billing.create(data, now=now)


@pytest.mark.anyio
async def test_create_bill_computes_totals_and_invoice_number(ctx, now):
    bill = await _bill(ctx, now)

    assert bill["original_subtotal"] == 220.0
    assert bill["subtotal"] == 220.0
    assert bill["tax_amount"] == 22.0
    assert bill["total_amount"] == 242.0
    assert bill["balance_due"] == 242.0
    assert bill["payment_status"] == "Pending"
    assert bill["invoice_number"] == "INV-20260310-0001"
    assert bill["due_date"] == now + timedelta(days=30)


@pytest.mark.anyio
async def test_create_bill_snapshots_guest_and_room_from_reservation(ctx, now):
    reservation = await ctx.reservations.create(
        {
            "guest_id": 1,
            "room_id": 3,
            "check_in": now + timedelta(days=3),
            "check_out": now + timedelta(days=5),
        },
        now=now,
    )

    bill = await ctx.billing.create(
        {"reservation_id": reservation["id"], "room_charges": reservation["total_amount"]},
        now=now,
    )

    assert bill["guest_name"] == "Ada Lovelace"
    assert bill["room_number"] == "201"
    assert bill["tax_rate"] == 10.0
    assert bill["total_amount"] == 550.0
    assert await ctx.billing.get_by_reservation(reservation["id"]) == [bill]


@pytest.mark.anyio
async def test_comma_separated_extras_drop_non_numeric_entries(ctx, now):
    bill = await _bill(ctx, now, additional_charges="15, 5, minibar, -3")

    assert bill["additional_charges"] == [15.0, 5.0]
    assert bill["total_amount"] == 242.0


@pytest.mark.anyio
async def test_payment_then_refund_walks_the_status(ctx, now):
    bill = await _bill(ctx, now)

    partial = await ctx.billing.process_payment(bill["id"], 100.0, "Credit Card", now=now)
    assert partial["payment_status"] == "Partial"
    assert partial["balance_due"] == 142.0

    paid = await ctx.billing.process_payment(bill["id"], 142.0, now=now)
    assert paid["payment_status"] == "Paid"
    assert paid["balance_due"] == 0.0
    assert paid["amount_paid"] == 242.0
    assert [p["method"] for p in paid["payment_history"]] == ["Credit Card", "Cash"]
    assert all(p["transaction_id"].startswith("TXN-") for p in paid["payment_history"])

    refunded = await ctx.billing.process_refund(bill["id"], 50.0, "Late checkout waived", now=now)
    assert refunded["payment_status"] == "Partial"
    assert refunded["amount_refunded"] == 50.0
    assert refunded["balance_due"] == 50.0
    assert refunded["refunds"][0]["method"] == "Original Payment Method"

    full = await ctx.billing.process_refund(bill["id"], 192.0, "Stay cancelled", now=now)
    assert full["payment_status"] == "Refunded"


@pytest.mark.anyio
async def test_refund_cannot_exceed_amount_paid(ctx, now):
    bill = await _bill(ctx, now)
    await ctx.billing.process_payment(bill["id"], 100.0, now=now)

    with pytest.raises(AppError) as exc:
        await ctx.billing.process_refund(bill["id"], 150.0, "Goodwill", now=now)

    assert exc.value.status_code == 409
    assert exc.value.code == "refund_exceeds_paid"
    assert (await ctx.billing.get_by_id(bill["id"]))["refunds"] == []


@pytest.mark.anyio
@pytest.mark.parametrize("amount", [0, -10])
async def test_non_positive_payment_is_rejected(ctx, now, amount):
    bill = await _bill(ctx, now)

    with pytest.raises(AppError) as exc:
        await ctx.billing.process_payment(bill["id"], amount, now=now)

    assert exc.value.status_code == 422
    assert exc.value.code == "validation_error"


@pytest.mark.anyio
async def test_overpayment_leaves_a_credit_unless_disabled(ctx, now):
    bill = await _bill(ctx, now)

    over = await ctx.billing.process_payment(bill["id"], 300.0, now=now)
    assert over["payment_status"] == "Paid"
    assert over["balance_due"] == -58.0

    strict = BillingService(ctx.bill_repo, ctx.reservation_repo, allow_overpayment=False)
    other = await _bill(ctx, now)
    with pytest.raises(AppError) as exc:
        await strict.process_payment(other["id"], 300.0, now=now)
    assert exc.value.code == "payment_exceeds_total"


@pytest.mark.anyio
async def test_adjustments_recompute_totals(ctx, now):
    bill = await _bill(ctx, now)

    discounted = await ctx.billing.add_adjustment(bill["id"], "discount", 20.0, "Loyalty", now=now)
    assert discounted["subtotal"] == 200.0
    assert discounted["tax_amount"] == 20.0
    assert discounted["total_amount"] == 220.0
    assert discounted["original_subtotal"] == 220.0
    assert discounted["adjustments"][0]["applied_by"] == "Front Desk"

    with_fee = await ctx.billing.add_adjustment(bill["id"], "fee", 10.0, "Late checkout", "Manager", now=now)
    assert with_fee["subtotal"] == 210.0
    assert with_fee["total_amount"] == 231.0

    corrected = await ctx.billing.add_adjustment(bill["id"], "correction", -5.0, "Minibar miscount", now=now)
    assert corrected["subtotal"] == 205.0
    assert corrected["balance_due"] == 225.5


@pytest.mark.anyio
async def test_adjustment_after_full_payment_leaves_credit(ctx, now):
    bill = await _bill(ctx, now)
    await ctx.billing.process_payment(bill["id"], 242.0, now=now)

    adjusted = await ctx.billing.add_adjustment(bill["id"], "discount", 20.0, "Noise complaint", now=now)

    assert adjusted["total_amount"] == 220.0
    assert adjusted["payment_status"] == "Paid"
    assert adjusted["balance_due"] == -22.0


@pytest.mark.anyio
async def test_adjustment_cannot_make_subtotal_negative(ctx, now):
    bill = await _bill(ctx, now)

    with pytest.raises(AppError) as exc:
        await ctx.billing.add_adjustment(bill["id"], "discount", 500.0, "Typo", now=now)
    assert exc.value.code == "adjustment_exceeds_subtotal"

    with pytest.raises(AppError) as exc:
        await ctx.billing.add_adjustment(bill["id"], "discount", -5.0, "Sign", now=now)
    assert exc.value.code == "validation_error"


@pytest.mark.anyio
async def test_update_charges_recomputes_and_keeps_adjustments(ctx, now):
    bill = await _bill(ctx, now)
    await ctx.billing.add_adjustment(bill["id"], "discount", 20.0, "Loyalty", now=now)

    updated = await ctx.billing.update(bill["id"], {"room_charges": 300.0})

    assert updated["original_subtotal"] == 320.0
    assert updated["subtotal"] == 300.0
    assert updated["total_amount"] == 330.0
    assert updated["balance_due"] == 330.0

    noted = await ctx.billing.update(bill["id"], {"notes": "VIP"})
    assert noted["notes"] == "VIP"
    assert noted["total_amount"] == 330.0


@pytest.mark.anyio
async def test_update_parses_comma_separated_extras(ctx, now):
    bill = await _bill(ctx, now, additional_charges=[])

    updated = await ctx.billing.update(bill["id"], {"additional_charges": "15, 5, minibar"})

    assert updated["additional_charges"] == [15.0, 5.0]
    assert updated["subtotal"] == 220.0
    assert updated["total_amount"] == 242.0


@pytest.mark.anyio
async def test_update_cannot_overwrite_derived_totals_or_ledgers(ctx, now):
    bill = await _bill(ctx, now)
    await ctx.billing.process_payment(bill["id"], 100.0, now=now)

    updated = await ctx.billing.update(
        bill["id"],
        {
            "subtotal": 1000.0,
            "total_amount": 1.0,
            "balance_due": 0.0,
            "payment_history": [],
            "adjustments": [{"type": "discount", "amount": 500.0}],
            "notes": "kept",
        },
    )

    assert updated["subtotal"] == 220.0
    assert updated["tax_amount"] == 22.0
    assert updated["total_amount"] == 242.0
    assert updated["balance_due"] == 142.0
    assert len(updated["payment_history"]) == 1
    assert updated["adjustments"] == []
    assert updated["notes"] == "kept"


@pytest.mark.anyio
async def test_update_rejects_negative_room_charges(ctx, now):
    bill = await _bill(ctx, now)

    with pytest.raises(AppError) as exc:
        await ctx.billing.update(bill["id"], {"room_charges": -1.0})

    assert exc.value.code == "validation_error"
    assert (await ctx.billing.get_by_id(bill["id"]))["total_amount"] == 242.0


@pytest.mark.anyio
async def test_mark_overdue_only_touches_unpaid_bills_past_due(ctx, now):
    unpaid = await _bill(ctx, now)
    settled = await _bill(ctx, now)
    await ctx.billing.process_payment(settled["id"], 242.0, now=now)

    assert await ctx.billing.mark_overdue(now=now) == []

    later = now + timedelta(days=31)
    overdue = await ctx.billing.mark_overdue(now=later)

    assert [b["id"] for b in overdue] == [unpaid["id"]]
    assert (await ctx.billing.get_by_id(unpaid["id"]))["payment_status"] == "Overdue"
    assert (await ctx.billing.get_by_id(settled["id"]))["payment_status"] == "Paid"

    recovered = await ctx.billing.process_payment(unpaid["id"], 242.0, now=later)
    assert recovered["payment_status"] == "Paid"


@pytest.mark.anyio
async def test_tax_report_covers_paid_bills_in_window(ctx, now):
    a = await _bill(ctx, now, room_charges=200.0, additional_charges=[], tax_rate=10.0)
    b = await _bill(ctx, now, room_charges=100.0, additional_charges=[], tax_rate=20.0)
    old = await _bill(ctx, now - timedelta(days=40), room_charges=100.0, additional_charges=[])
    await _bill(ctx, now, room_charges=999.0)  # unpaid

    for bill in (a, b, old):
        await ctx.billing.process_payment(bill["id"], bill["total_amount"], now=now)

    report = await ctx.billing.get_tax_report("2026-03-01", "2026-03-10")

    assert report["bill_count"] == 2
    assert report["tax_collected"] == 40.0
    assert report["revenue"] == 300.0
    assert report["average_tax_rate"] == 15.0
    assert report["effective_tax_rate"] == 13.33
    assert report["period"]["from"].startswith("2026-03-01")
    assert report["period"]["to"].startswith("2026-03-10T23:59:59")


@pytest.mark.anyio
async def test_unknown_bill_raises_not_found(ctx, now):
    with pytest.raises(NotFoundError) as exc:
        await ctx.billing.process_payment(404, 10.0, now=now)
    assert exc.value.code == "bill_not_found"


def test_payment_status_rules():
    assert compute_payment_status(100.0, 0.0) == "Pending"
    assert compute_payment_status(100.0, 40.0) == "Partial"
    assert compute_payment_status(100.0, 100.0) == "Paid"
    assert compute_payment_status(100.0, 120.0, 20.0) == "Paid"
    assert compute_payment_status(100.0, 100.0, 100.0) == "Refunded"


@pytest.mark.anyio
async def test_update_rejects_unknown_payment_status(ctx, now):
    bill = await _bill(ctx, now)

    with pytest.raises(AppError) as exc:
        await ctx.billing.update(bill["id"], {"payment_status": "Settled-ish"})
    assert exc.value.code == "invalid_payment_status"
