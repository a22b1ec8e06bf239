from __future__ import annotations

"""Composition root.

Builds the repositories and services for one storage backend. Nothing here is
a module-level singleton: callers (and tests) own the context they build.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import httpx
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from hotel_ops.config import (
    APP_NAME,
    APP_VERSION,
    DB_NAME,
    LOG_LEVEL,
    MONGO_URL,
    RECORD_API_TIMEOUT_SECONDS,
    STORE_BACKEND,
    STORE_LATENCY_MAX_MS,
    STORE_LATENCY_MIN_MS,
)
from hotel_ops.domain.refund_policy import RefundPolicy
from hotel_ops.repositories.base_repository import InMemoryRecordStore, RecordStore
from hotel_ops.repositories.bill_repository import BillRepository
from hotel_ops.repositories.guest_repository import GuestRepository
from hotel_ops.repositories.mongo_repository import MongoRecordStore
from hotel_ops.repositories.record_api_repository import GUEST_FIELD_MAP, RecordApiStore, guest_display_name
from hotel_ops.repositories.reservation_repository import ReservationRepository
from hotel_ops.repositories.room_repository import RoomRepository
from hotel_ops.repositories.task_repository import TaskRepository
from hotel_ops.services.billing import BillingService
from hotel_ops.services.guests import GuestService
from hotel_ops.services.reports import ReportsService
from hotel_ops.services.reservations import ReservationService
from hotel_ops.services.rooms import RoomService
from hotel_ops.services.tasks import TaskService

logger = logging.getLogger(__name__)

COLLECTIONS = ("guests", "rooms", "reservations", "bills", "tasks")


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@dataclass
class HotelOpsContext:
    guest_repo: GuestRepository
    room_repo: RoomRepository
    reservation_repo: ReservationRepository
    bill_repo: BillRepository
    task_repo: TaskRepository

    guests: GuestService
    rooms: RoomService
    reservations: ReservationService
    billing: BillingService
    tasks: TaskService
    reports: ReportsService


def _assemble(stores: Mapping[str, RecordStore], **service_options: Any) -> HotelOpsContext:
    guest_repo = GuestRepository(stores["guests"])
    room_repo = RoomRepository(stores["rooms"])
    reservation_repo = ReservationRepository(stores["reservations"])
    bill_repo = BillRepository(stores["bills"])
    task_repo = TaskRepository(stores["tasks"])

    guests = GuestService(guest_repo)
    rooms = RoomService(room_repo)

    reservation_options: Dict[str, Any] = {}
    billing_options: Dict[str, Any] = {}
    if service_options.get("refund_policy") is not None:
        reservation_options["refund_policy"] = service_options["refund_policy"]
    if service_options.get("default_tax_rate") is not None:
        reservation_options["default_tax_rate"] = service_options["default_tax_rate"]
        billing_options["default_tax_rate"] = service_options["default_tax_rate"]
    if service_options.get("allow_overpayment") is not None:
        billing_options["allow_overpayment"] = service_options["allow_overpayment"]

    return HotelOpsContext(
        guest_repo=guest_repo,
        room_repo=room_repo,
        reservation_repo=reservation_repo,
        bill_repo=bill_repo,
        task_repo=task_repo,
        guests=guests,
        rooms=rooms,
        reservations=ReservationService(reservation_repo, rooms=rooms, guests=guests, **reservation_options),
        billing=BillingService(bill_repo, reservation_repo, **billing_options),
        tasks=TaskService(task_repo),
        reports=ReportsService(reservation_repo, room_repo, bill_repo),
    )


def build_memory_context(
    *,
    seed: Optional[Mapping[str, Iterable[Dict[str, Any]]]] = None,
    latency_ms: Tuple[int, int] = (STORE_LATENCY_MIN_MS, STORE_LATENCY_MAX_MS),
    refund_policy: Optional[RefundPolicy] = None,
    default_tax_rate: Optional[float] = None,
    allow_overpayment: Optional[bool] = None,
) -> HotelOpsContext:
    """In-process stores, optionally seeded per collection name."""
    seed = seed or {}
    stores = {
        name: InMemoryRecordStore(name, seed=seed.get(name), latency_ms=latency_ms)
        for name in COLLECTIONS
    }
    return _assemble(
        stores,
        refund_policy=refund_policy,
        default_tax_rate=default_tax_rate,
        allow_overpayment=allow_overpayment,
    )


def create_mongo_client(url: Optional[str] = None) -> AsyncIOMotorClient:
    # tz_aware so datetimes come back comparable with now_utc()
    return AsyncIOMotorClient(url or MONGO_URL, tz_aware=True)


def build_mongo_context(db: AsyncIOMotorDatabase, **service_options: Any) -> HotelOpsContext:
    stores = {name: MongoRecordStore(db, name) for name in COLLECTIONS}
    return _assemble(stores, **service_options)


def build_record_api_context(
    client: Optional[httpx.AsyncClient] = None,
    *,
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    **service_options: Any,
) -> HotelOpsContext:
    """Stores backed by the hosted record API; guests use the mapped columns."""
    def store(name: str, **kwargs: Any) -> RecordApiStore:
        return RecordApiStore(
            name,
            client=client,
            base_url=base_url,
            api_key=api_key,
            timeout=RECORD_API_TIMEOUT_SECONDS,
            **kwargs,
        )

    stores = {name: store(name) for name in COLLECTIONS}
    stores["guests"] = store("guests", field_map=GUEST_FIELD_MAP, display_name=guest_display_name)
    return _assemble(stores, **service_options)


def build_context(backend: Optional[str] = None, **options: Any) -> HotelOpsContext:
    """Build a context for ``HOTEL_OPS_STORE_BACKEND`` (or an explicit backend)."""
    backend = (backend or STORE_BACKEND).lower()
    logger.info("%s %s: building context backend=%s", APP_NAME, APP_VERSION, backend)
    if backend == "memory":
        return build_memory_context(**options)
    if backend == "mongo":
        client = create_mongo_client()
        return build_mongo_context(client[DB_NAME], **options)
    if backend == "record_api":
        return build_record_api_context(**options)
    raise ValueError(f"Unsupported store backend: {backend}")
