from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from hotel_ops.services.reports import (
    build_chart_series,
    compute_report_stats,
    dashboard_summary,
    date_range_start,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _days(n: float) -> datetime:
    return NOW + timedelta(days=n)


RESERVATIONS = [
    {"id": 1, "status": "Confirmed", "check_in": _days(-5), "check_out": _days(1), "total_amount": 600.0},
    {"id": 2, "status": "Cancelled", "check_in": _days(-3), "check_out": _days(-1), "total_amount": 200.0},
    {"id": 3, "status": "Checked Out", "check_in": _days(-60), "check_out": _days(-58), "total_amount": 200.0},
    {"id": 4, "status": "Pending", "check_in": _days(2), "check_out": _days(4), "total_amount": 200.0},
]

ROOMS = [
    {"id": 1, "number": "101", "status": "Occupied"},
    {"id": 2, "number": "102", "status": "Available"},
    {"id": 3, "number": "201", "status": "Maintenance"},
]

BILLS = [
    {
        "id": 1,
        "created_at": _days(-2),
        "payment_status": "Paid",
        "subtotal": 200.0,
        "tax_amount": 20.0,
        "total_amount": 220.0,
        "refunds": [{"amount": 20.0, "processed_at": _days(-1)}],
    },
    {
        "id": 2,
        "created_at": _days(-10),
        "payment_status": "Paid",
        "subtotal": 100.0,
        "tax_amount": 10.0,
        "total_amount": 110.0,
    },
    {
        "id": 3,
        "created_at": _days(-40),
        "payment_status": "Paid",
        "subtotal": 500.0,
        "tax_amount": 50.0,
        "total_amount": 550.0,
        "refunds": [
            {"amount": 30.0, "processed_at": _days(-35)},
            {"amount": 10.0, "processed_at": _days(-1)},
        ],
    },
    {"id": 4, "created_at": _days(-1), "payment_status": "Pending", "subtotal": 50.0, "total_amount": 55.0},
    {"id": 5, "created_at": _days(-45), "payment_status": "Partial", "subtotal": 80.0, "total_amount": 88.0},
]


def test_date_range_start():
    assert date_range_start("7days", NOW) == _days(-7)
    assert date_range_start("90days", NOW) == _days(-90)
    assert date_range_start("thismonth", NOW) == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert date_range_start("last-decade", NOW) == _days(-30)
    assert date_range_start(None, NOW) == _days(-30)


def test_report_stats_over_thirty_days():
    stats = compute_report_stats(RESERVATIONS, ROOMS, BILLS, _days(-30))

    assert stats["total_revenue"] == 300.0
    assert stats["total_tax_collected"] == 30.0
    # refunds are dated by when they were processed, not by their bill
    assert stats["total_refunds"] == 30.0
    assert stats["net_revenue"] == 270.0
    assert stats["occupancy_rate"] == 33
    assert stats["total_bookings"] == 3
    assert stats["average_daily_rate"] == 100.0
    assert stats["cancellation_rate"] == 33
    # backlog counts ignore the window
    assert stats["outstanding_payments"] == 1
    assert stats["partial_payments"] == 1
    assert stats["average_tax_rate"] == 10.0


def test_report_stats_with_no_data():
    stats = compute_report_stats([], [], [], _days(-7))

    assert stats["total_revenue"] == 0.0
    assert stats["occupancy_rate"] == 0
    assert stats["average_daily_rate"] == 0.0
    assert stats["cancellation_rate"] == 0
    assert stats["average_tax_rate"] == 0.0


def test_zero_subtotal_is_revenue_of_zero():
    bills = [
        {"created_at": _days(-1), "payment_status": "Paid", "subtotal": 0.0, "tax_amount": 0.0, "total_amount": 15.0},
        # stored without a subtotal: the total stands in
        {"created_at": _days(-1), "payment_status": "Paid", "tax_amount": 10.0, "total_amount": 110.0},
    ]

    assert compute_report_stats([], [], bills, _days(-7))["total_revenue"] == 110.0


def test_percentages_round_half_up():
    rooms = [{"status": "Occupied"}] + [{"status": "Available"}] * 7
    assert compute_report_stats([], rooms, [], _days(-7))["occupancy_rate"] == 13


def test_chart_series():
    charts = build_chart_series(RESERVATIONS, ROOMS, BILLS, _days(-30), NOW)

    assert charts["revenue"] == [
        {"day": "2026-02-28", "amount": 110.0},
        {"day": "2026-03-08", "amount": 220.0},
    ]
    assert charts["room_status"] == {"Available": 1, "Occupied": 1, "Cleaning": 0, "Maintenance": 1}
    assert [p["day"] for p in charts["occupancy"]] == [
        "2026-03-04",
        "2026-03-05",
        "2026-03-06",
        "2026-03-07",
        "2026-03-08",
        "2026-03-09",
        "2026-03-10",
    ]
    # the cancelled stay overlapping 7-9 March is not counted
    assert [p["occupancy"] for p in charts["occupancy"]] == [0, 33, 33, 33, 33, 33, 33]


def test_dashboard_summary():
    reservations = [
        {"status": "Confirmed", "check_in": NOW.replace(hour=15), "total_amount": 200.0},
        {"status": "Checked In", "check_in": datetime(2026, 3, 2, tzinfo=timezone.utc), "total_amount": 300.0},
        {"status": "Cancelled", "check_in": datetime(2026, 3, 5, tzinfo=timezone.utc), "total_amount": 1000.0},
        {"status": "Pending", "check_in": datetime(2026, 2, 20, tzinfo=timezone.utc), "total_amount": 50.0},
        {"status": "Pending", "check_in": "2026-03-25T14:00:00Z", "total_amount": 100.0},
    ]
    rooms = [
        {"number": "101", "status": "Occupied"},
        {"number": "102", "status": "Dirty"},
        {"number": "103", "status": "Out of Order"},
        {"number": "104", "status": "Available"},
    ]

    summary = dashboard_summary(reservations, rooms, NOW)

    assert summary["today_arrivals"] == 1
    assert summary["arrivals"][0]["total_amount"] == 200.0
    assert summary["total_rooms"] == 4
    assert summary["occupied_rooms"] == 1
    assert summary["occupancy_rate"] == 25
    assert summary["out_of_order_rooms"] == 1
    assert summary["dirty_rooms"] == 1
    assert summary["monthly_revenue"] == 600.0
    assert summary["pending_reservations"] == 2
    assert summary["room_status_counts"]["Available"] == 1
    assert [r["number"] for r in summary["rooms_needing_attention"]] == ["102", "103"]


@pytest.mark.anyio
async def test_reports_service_reads_the_stores(ctx, now):
    bill = await ctx.billing.create(
        {"reservation_id": 1, "room_charges": 200.0, "guest_name": "Ada", "room_number": "101"},
        now=now,
    )
    await ctx.billing.process_payment(bill["id"], 220.0, now=now)
    await ctx.reservations.create(
        {"guest_id": 1, "room_id": 1, "check_in": now - timedelta(days=1), "check_out": now + timedelta(days=1)},
        now=now,
    )

    report = await ctx.reports.get_report("7days", now=now)

    assert report["range"] == "7days"
    assert report["start"] == now - timedelta(days=7)
    assert report["stats"]["total_revenue"] == 200.0
    assert report["stats"]["total_tax_collected"] == 20.0
    assert report["stats"]["total_bookings"] == 1
    assert report["stats"]["average_daily_rate"] == 200.0
    assert report["charts"]["revenue"] == [{"day": "2026-03-10", "amount": 220.0}]
    assert report["charts"]["room_status"]["Maintenance"] == 1

    fallback = await ctx.reports.get_report("fortnight", now=now)
    assert fallback["range"] == "30days"

    dashboard = await ctx.reports.get_dashboard(now=now)
    assert dashboard["total_rooms"] == 4
