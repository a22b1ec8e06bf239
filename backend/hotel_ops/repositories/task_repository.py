from __future__ import annotations

from typing import Any, Dict

from hotel_ops.constants.statuses import TASK_PENDING
from hotel_ops.repositories.base_repository import EntityRepository
from hotel_ops.utils import now_utc, safe_int


class TaskRepository(EntityRepository):
    """Housekeeping and maintenance tasks.

    ``room_id`` arrives from forms as a string or empty value; it is stored as
    an int or None.
    """

    entity = "task"

    def _defaults(self) -> Dict[str, Any]:
        return {
            "title": "",
            "description": "",
            "room_id": None,
            "assigned_to": "",
            "priority": "Medium",
            "status": TASK_PENDING,
            "scheduled_date": None,
            "estimated_duration": 0,
        }

    def _prepare_create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        doc = super()._prepare_create(fields)
        now = now_utc()
        doc["room_id"] = safe_int(doc.get("room_id"), None) or None
        doc["created_at"] = now
        doc["updated_at"] = now
        return doc

    def _prepare_update(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        doc = super()._prepare_update(fields)
        if "room_id" in doc:
            room_id = safe_int(doc["room_id"], None) or None
            if room_id is None:
                # an empty room on the form keeps the stored room
                doc.pop("room_id")
            else:
                doc["room_id"] = room_id
        doc["updated_at"] = now_utc()
        return doc
