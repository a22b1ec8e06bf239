from __future__ import annotations

from typing import Any, Dict, List

from hotel_ops.domain.reservation_state_machine import PENDING
from hotel_ops.repositories.base_repository import EntityRepository, Record


class ReservationRepository(EntityRepository):
    entity = "reservation"

    def _defaults(self) -> Dict[str, Any]:
        return {
            "status": PENDING,
            "total_amount": 0.0,
            "special_requests": "",
            "group_id": None,
            "is_group_booking": False,
            "group_size": None,
            "corporate_account": None,
            "cancellation_policy": "standard",
            "cancellation": None,
            "modification_history": [],
        }

    async def list_by_group(self, group_id: str) -> List[Record]:
        return await self.find(lambda r: group_id is not None and r.get("group_id") == group_id)

    async def list_by_guest(self, guest_id: int) -> List[Record]:
        return await self.find(lambda r: r.get("guest_id") == guest_id)
