from __future__ import annotations

"""Record store contract and the in-memory implementation.

Every entity (guests, rooms, reservations, bills, tasks) is kept in a
``RecordStore``: a collection of plain dict records keyed by an integer ``id``
that the store assigns. Three backends implement the contract:

- ``InMemoryRecordStore`` (this module): process-local, optional simulated latency.
- ``MongoRecordStore``: a Motor collection.
- ``RecordApiStore``: a remote record API over HTTP.

Callers always receive copies; mutating a returned record never changes the
stored one.
"""

import asyncio
import copy
import logging
import random
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from hotel_ops.errors import NotFoundError
from hotel_ops.utils import now_utc

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

# Fields merged one level deep by apply_patch instead of being replaced.
NESTED_MERGE_FIELDS = frozenset({"address", "loyalty_program", "corporate_account"})

# Fields a patch can never change.
IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


def entity_label(collection: str) -> str:
    """Singular entity name for a collection, e.g. guests -> guest."""
    return collection[:-1] if collection.endswith("s") else collection


def apply_patch(record: Record, patch: Dict[str, Any]) -> Record:
    """Return a new record with ``patch`` merged over ``record``.

    Merge rules:
    - fields absent from the patch are kept as they are;
    - ``id`` and ``created_at`` are immutable and ignored in the patch;
    - fields in NESTED_MERGE_FIELDS merge one level deep when both the stored
      and the patched value are dicts (``{"address": {"city": "X"}}`` keeps the
      street); a non-dict patch value replaces the field;
    - every other field, lists included, is replaced by the patched value.
    """

    merged = copy.deepcopy(record)
    for key, value in (patch or {}).items():
        if key in IMMUTABLE_FIELDS:
            continue
        current = merged.get(key)
        if key in NESTED_MERGE_FIELDS and isinstance(current, dict) and isinstance(value, dict):
            nested = dict(current)
            nested.update(copy.deepcopy(value))
            merged[key] = nested
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class RecordStore(Protocol):
    """Minimal store interface shared by all backends.

    All methods are async to match network-backed stores.
    """

    name: str

    async def get_all(self) -> List[Record]:  # pragma: no cover - interface
        ...

    async def get_by_id(self, record_id: int) -> Record:  # pragma: no cover - interface
        ...

    async def create(self, fields: Dict[str, Any]) -> Record:  # pragma: no cover - interface
        ...

    async def update(self, record_id: int, fields: Dict[str, Any]) -> Record:  # pragma: no cover - interface
        ...

    async def delete(self, record_id: int) -> Record:  # pragma: no cover - interface
        ...

    async def find(self, predicate: Callable[[Record], bool]) -> List[Record]:  # pragma: no cover - interface
        ...


class InMemoryRecordStore:
    """Process-local record store.

    Guarantees:
    - ids increase monotonically and are never reused, even after delete;
    - ``get_all`` returns a snapshot in insertion order;
    - ``latency_ms=(min, max)`` sleeps a random duration before each call,
      mimicking network I/O (0, 0 disables it).
    """

    def __init__(
        self,
        name: str,
        *,
        seed: Optional[Iterable[Record]] = None,
        latency_ms: Tuple[int, int] = (0, 0),
    ) -> None:
        self.name = name
        self._records: List[Record] = [copy.deepcopy(r) for r in (seed or [])]
        self._next_id: int = max((int(r["id"]) for r in self._records), default=0) + 1
        self._latency_ms = latency_ms

    @property
    def entity(self) -> str:
        return entity_label(self.name)

    async def _delay(self) -> None:
        low, high = self._latency_ms
        if high <= 0:
            return
        await asyncio.sleep(random.uniform(low, high) / 1000.0)

    def _index_of(self, record_id: int) -> int:
        for idx, rec in enumerate(self._records):
            if rec["id"] == record_id:
                return idx
        raise NotFoundError(self.entity, record_id)

    async def get_all(self) -> List[Record]:
        await self._delay()
        return copy.deepcopy(self._records)

    async def get_by_id(self, record_id: int) -> Record:
        await self._delay()
        return copy.deepcopy(self._records[self._index_of(int(record_id))])

    async def create(self, fields: Dict[str, Any]) -> Record:
        await self._delay()
        record: Record = copy.deepcopy(dict(fields or {}))
        record["id"] = self._next_id
        record.setdefault("created_at", now_utc())
        self._next_id += 1
        self._records.append(record)
        logger.debug("%s: created id=%s", self.name, record["id"])
        return copy.deepcopy(record)

    async def update(self, record_id: int, fields: Dict[str, Any]) -> Record:
        await self._delay()
        idx = self._index_of(int(record_id))
        self._records[idx] = apply_patch(self._records[idx], fields)
        return copy.deepcopy(self._records[idx])

    async def delete(self, record_id: int) -> Record:
        await self._delay()
        idx = self._index_of(int(record_id))
        removed = self._records.pop(idx)
        logger.debug("%s: deleted id=%s", self.name, record_id)
        return removed

    async def find(self, predicate: Callable[[Record], bool]) -> List[Record]:
        await self._delay()
        return [copy.deepcopy(r) for r in self._records if predicate(r)]


class EntityRepository:
    """Typed access to one entity's store.

    Subclasses fill type-specific defaults on create and add query helpers;
    reads and writes go through the injected ``RecordStore`` so the same
    repository works on every backend.
    """

    entity: str = "record"

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    @property
    def store(self) -> RecordStore:
        return self._store

    def _defaults(self) -> Dict[str, Any]:
        return {}

    def _prepare_create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        doc = self._defaults()
        doc.update(copy.deepcopy(dict(fields or {})))
        return doc

    def _prepare_update(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return dict(fields or {})

    async def get_all(self) -> List[Record]:
        return await self._store.get_all()

    async def get_by_id(self, record_id: int) -> Record:
        return await self._store.get_by_id(record_id)

    async def create(self, fields: Dict[str, Any]) -> Record:
        return await self._store.create(self._prepare_create(fields))

    async def update(self, record_id: int, fields: Dict[str, Any]) -> Record:
        return await self._store.update(record_id, self._prepare_update(fields))

    async def delete(self, record_id: int) -> Record:
        return await self._store.delete(record_id)

    async def find(self, predicate: Callable[[Record], bool]) -> List[Record]:
        return await self._store.find(predicate)
