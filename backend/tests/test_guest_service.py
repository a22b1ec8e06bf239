from __future__ import annotations

import pytest

from hotel_ops.errors import AppError, NotFoundError


@pytest.mark.anyio
async def test_corporate_accounts(ctx):
    corporate = await ctx.guests.get_corporate_accounts()
    assert [g["company_name"] for g in corporate] == ["Acme Corp"]

    account = await ctx.guests.get_corporate_account_by_id(2)
    assert account["credit_limit"] == 5000

    with pytest.raises(NotFoundError) as exc:
        await ctx.guests.get_corporate_account_by_id(1)
    assert exc.value.code == "corporate_account_not_found"


@pytest.mark.anyio
async def test_guest_crud(ctx):
    guest = await ctx.guests.create({"first_name": "Alan", "last_name": "Turing", "preferences": ["quiet room"]})
    assert guest["id"] == 3

    updated = await ctx.guests.update(guest["id"], {"vip_status": True, "address": {"city": "Manchester"}})
    assert updated["vip_status"] is True
    assert updated["address"]["city"] == "Manchester"
    assert updated["address"]["street"] == ""

    removed = await ctx.guests.delete(guest["id"])
    assert removed["id"] == guest["id"]
    with pytest.raises(NotFoundError):
        await ctx.guests.get_by_id(guest["id"])


@pytest.mark.anyio
async def test_record_stay_appends(ctx, now):
    reservation = {"id": 9, "room_number": "101", "check_in": now, "check_out": now, "total_amount": 120.0}

    await ctx.guests.record_stay(1, reservation)
    guest = await ctx.guests.record_stay(1, {**reservation, "id": 10})

    assert [s["reservation_id"] for s in guest["stay_history"]] == [9, 10]


@pytest.mark.anyio
async def test_room_status_updates(ctx, now):
    assert [r["number"] for r in await ctx.rooms.get_available()] == ["101", "102", "201"]

    dirty = await ctx.rooms.update_status(1, "Dirty", now=now)
    assert dirty["status"] == "Dirty"
    assert dirty.get("last_cleaned") is None

    clean = await ctx.rooms.update_status(1, "Available", now=now)
    assert clean["last_cleaned"] == now

    with pytest.raises(AppError) as exc:
        await ctx.rooms.update_status(1, "Haunted", now=now)
    assert exc.value.code == "invalid_room_status"


@pytest.mark.anyio
async def test_room_create_fills_defaults(ctx):
    room = await ctx.rooms.create({"number": "301", "rate": 220.0})

    assert room["id"] == 5
    assert room["status"] == "Available"
    assert room["amenities"] == []
