from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from hotel_ops.constants.statuses import TASK_PRIORITIES, TASK_STATUSES
from hotel_ops.errors import AppError
from hotel_ops.repositories.task_repository import TaskRepository
from hotel_ops.utils import parse_instant, safe_int

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _created_key(task: Dict[str, Any]) -> datetime:
    return parse_instant(task.get("created_at")) or _EPOCH


class TaskService:
    """Housekeeping and maintenance tasks."""

    def __init__(self, tasks: TaskRepository) -> None:
        self.tasks = tasks

    async def get_all(self) -> List[Dict[str, Any]]:
        """All tasks, newest first."""
        items = await self.tasks.get_all()
        return sorted(items, key=_created_key, reverse=True)

    async def get_by_id(self, task_id: int) -> Dict[str, Any]:
        return await self.tasks.get_by_id(task_id)

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        self._check_enums(fields)
        task = await self.tasks.create(fields)
        logger.info("task created id=%s room_id=%s priority=%s", task["id"], task.get("room_id"), task.get("priority"))
        return task

    async def update(self, task_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        self._check_enums(fields)
        return await self.tasks.update(task_id, fields)

    async def delete(self, task_id: int) -> Dict[str, Any]:
        return await self.tasks.delete(task_id)

    async def get_by_room(self, room_id: Any) -> List[Dict[str, Any]]:
        wanted = safe_int(room_id, None)
        return await self.tasks.find(lambda t: wanted is not None and t.get("room_id") == wanted)

    async def get_by_status(self, status: str) -> List[Dict[str, Any]]:
        wanted = (status or "").lower()
        return await self.tasks.find(lambda t: str(t.get("status") or "").lower() == wanted)

    async def get_by_assignee(self, assigned_to: str) -> List[Dict[str, Any]]:
        # substring match, so "maria" finds "Maria Lopez"
        wanted = (assigned_to or "").lower()
        return await self.tasks.find(lambda t: wanted in str(t.get("assigned_to") or "").lower())

    async def get_by_priority(self, priority: str) -> List[Dict[str, Any]]:
        wanted = (priority or "").lower()
        return await self.tasks.find(lambda t: str(t.get("priority") or "").lower() == wanted)

    async def update_status(self, task_id: int, status: str) -> Dict[str, Any]:
        if status not in TASK_STATUSES:
            raise AppError(422, "invalid_task_status", f"Unknown task status: {status}", {"status": status})
        task = await self.tasks.update(task_id, {"status": status})
        logger.info("task %s status -> %s", task_id, status)
        return task

    @staticmethod
    def _check_enums(fields: Dict[str, Any]) -> None:
        status = fields.get("status")
        if status is not None and status not in TASK_STATUSES:
            raise AppError(422, "invalid_task_status", f"Unknown task status: {status}", {"status": status})
        priority = fields.get("priority")
        if priority is not None and priority not in TASK_PRIORITIES:
            raise AppError(422, "invalid_task_priority", f"Unknown task priority: {priority}", {"priority": priority})
