from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from hotel_ops.constants.statuses import ROOM_AVAILABLE, ROOM_STATUSES
from hotel_ops.errors import AppError
from hotel_ops.repositories.room_repository import RoomRepository
from hotel_ops.utils import now_utc

logger = logging.getLogger(__name__)


class RoomService:
    def __init__(self, rooms: RoomRepository) -> None:
        self.rooms = rooms

    async def get_all(self) -> List[Dict[str, Any]]:
        return await self.rooms.get_all()

    async def get_by_id(self, room_id: int) -> Dict[str, Any]:
        return await self.rooms.get_by_id(room_id)

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self.rooms.create(fields)

    async def update(self, room_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self.rooms.update(room_id, fields)

    async def delete(self, room_id: int) -> Dict[str, Any]:
        return await self.rooms.delete(room_id)

    async def get_available(self) -> List[Dict[str, Any]]:
        return await self.rooms.list_by_status(ROOM_AVAILABLE)

    async def update_status(self, room_id: int, status: str, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Set a room's housekeeping status.

        Moving a room to Available stamps ``last_cleaned``; any other status
        keeps the previous stamp.
        """
        if status not in ROOM_STATUSES:
            raise AppError(422, "invalid_room_status", f"Unknown room status: {status}", {"status": status})

        patch: Dict[str, Any] = {"status": status}
        if status == ROOM_AVAILABLE:
            patch["last_cleaned"] = now or now_utc()
        room = await self.rooms.update(room_id, patch)
        logger.info("room %s status -> %s", room.get("number"), status)
        return room
