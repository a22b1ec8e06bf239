from __future__ import annotations

import logging
from typing import Any, Dict, List

from hotel_ops.constants.statuses import ACCOUNT_CORPORATE
from hotel_ops.errors import NotFoundError
from hotel_ops.repositories.guest_repository import GuestRepository

logger = logging.getLogger(__name__)


def full_name(guest: Dict[str, Any]) -> str:
    return f"{guest.get('first_name') or ''} {guest.get('last_name') or ''}".strip()


class GuestService:
    """Guest profiles, corporate accounts and stay history."""

    def __init__(self, guests: GuestRepository) -> None:
        self.guests = guests

    async def get_all(self) -> List[Dict[str, Any]]:
        return await self.guests.get_all()

    async def get_by_id(self, guest_id: int) -> Dict[str, Any]:
        return await self.guests.get_by_id(guest_id)

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        guest = await self.guests.create(fields)
        logger.info("guest created id=%s account_type=%s", guest["id"], guest.get("account_type"))
        return guest

    async def update(self, guest_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self.guests.update(guest_id, fields)

    async def delete(self, guest_id: int) -> Dict[str, Any]:
        guest = await self.guests.delete(guest_id)
        logger.info("guest deleted id=%s", guest_id)
        return guest

    async def get_corporate_accounts(self) -> List[Dict[str, Any]]:
        return await self.guests.list_corporate()

    async def get_corporate_account_by_id(self, guest_id: int) -> Dict[str, Any]:
        guest = await self.guests.get_by_id(guest_id)
        if guest.get("account_type") != ACCOUNT_CORPORATE:
            raise NotFoundError("corporate_account", guest_id)
        return guest

    async def record_stay(self, guest_id: int, reservation: Dict[str, Any]) -> Dict[str, Any]:
        """Append a completed stay to the guest's history (append-only)."""

        guest = await self.guests.get_by_id(guest_id)
        stay = {
            "reservation_id": reservation.get("id"),
            "room_number": reservation.get("room_number"),
            "check_in": reservation.get("check_in"),
            "check_out": reservation.get("check_out"),
            "total_amount": reservation.get("total_amount"),
        }
        history = list(guest.get("stay_history") or []) + [stay]
        return await self.guests.update(guest_id, {"stay_history": history})
