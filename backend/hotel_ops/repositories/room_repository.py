from __future__ import annotations

from typing import Any, Dict, List

from hotel_ops.constants.statuses import ROOM_AVAILABLE
from hotel_ops.repositories.base_repository import EntityRepository, Record


class RoomRepository(EntityRepository):
    entity = "room"

    def _defaults(self) -> Dict[str, Any]:
        return {
            "number": "",
            "type": "Standard",
            "status": ROOM_AVAILABLE,
            "rate": 0.0,
            "amenities": [],
            "notes": "",
            "last_cleaned": None,
        }

    async def list_by_status(self, status: str) -> List[Record]:
        return await self.find(lambda r: r.get("status") == status)
