from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, List

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from hotel_ops.errors import NotFoundError
from hotel_ops.repositories.base_repository import Record, apply_patch, entity_label
from hotel_ops.utils import now_utc

logger = logging.getLogger(__name__)

COUNTERS_COLLECTION = "counters"


def get_collection(db: AsyncIOMotorDatabase, name: str) -> AsyncIOMotorCollection:
    """Return a Motor collection from the given database.

    This is the only place where stores should obtain collections.
    """

    return db[name]


class MongoRecordStore:
    """Record store backed by a Motor collection.

    Documents use the integer record id as ``_id``; ids come from a per-store
    sequence in the ``counters`` collection, so they are never reused.
    ``_id`` never leaves this class.
    """

    def __init__(self, db: AsyncIOMotorDatabase, name: str) -> None:
        self.name = name
        self._db = db
        self._col = get_collection(db, name)

    async def _next_id(self) -> int:
        counter = await get_collection(self._db, COUNTERS_COLLECTION).find_one_and_update(
            {"_id": self.name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["seq"])

    async def get_all(self) -> List[Record]:
        cursor = self._col.find({}, {"_id": 0}).sort("id", 1)
        return await cursor.to_list(length=None)

    async def get_by_id(self, record_id: int) -> Record:
        doc = await self._col.find_one({"_id": int(record_id)}, {"_id": 0})
        if not doc:
            raise NotFoundError(entity_label(self.name), record_id)
        return doc

    async def create(self, fields: Dict[str, Any]) -> Record:
        record_id = await self._next_id()
        record: Record = copy.deepcopy(dict(fields or {}))
        record["id"] = record_id
        record.setdefault("created_at", now_utc())
        await self._col.insert_one({**record, "_id": record_id})
        logger.debug("%s: created id=%s", self.name, record_id)
        return record

    async def update(self, record_id: int, fields: Dict[str, Any]) -> Record:
        current = await self.get_by_id(record_id)
        merged = apply_patch(current, fields)
        await self._col.replace_one({"_id": int(record_id)}, {**merged, "_id": int(record_id)})
        return merged

    async def delete(self, record_id: int) -> Record:
        doc = await self._col.find_one_and_delete({"_id": int(record_id)}, projection={"_id": 0})
        if not doc:
            raise NotFoundError(entity_label(self.name), record_id)
        logger.debug("%s: deleted id=%s", self.name, record_id)
        return doc

    async def find(self, predicate: Callable[[Record], bool]) -> List[Record]:
        return [doc for doc in await self.get_all() if predicate(doc)]
