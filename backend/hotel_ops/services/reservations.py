from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from hotel_ops.config import DEFAULT_TAX_RATE, REFUND_POLICY
from hotel_ops.constants.statuses import ROOM_DIRTY, ROOM_OCCUPIED
from hotel_ops.domain.refund_policy import REFUND_POLICIES, RefundPolicy, compute_refund, get_refund_policy
from hotel_ops.domain.reservation_state_machine import (
    CANCELLED,
    CHECKED_IN,
    CHECKED_OUT,
    CONFIRMED,
    ReservationStateTransitionError,
    is_terminal,
    validate_transition,
)
from hotel_ops.errors import AppError, NotFoundError
from hotel_ops.repositories.reservation_repository import ReservationRepository
from hotel_ops.schemas import GroupReservationCreate, ReservationCreate, parse_command
from hotel_ops.services.guests import GuestService, full_name
from hotel_ops.services.rooms import RoomService
from hotel_ops.utils import generate_group_id, nights_between, now_utc, parse_instant, round_money, safe_float

logger = logging.getLogger(__name__)

# Keys of an update payload that describe the change instead of being part of it
META_FIELDS = frozenset({"modification_reason", "modified_by"})
# Keys an update can never touch directly
PROTECTED_FIELDS = frozenset({"id", "created_at", "modification_history"})


class ReservationService:
    """Reservation lifecycle: booking, change tracking, stay transitions and cancellation.

    Related rooms and guests are touched through their own services, one call
    each; there is no cross-entity transaction (a failed room update after a
    check-in leaves the reservation checked in).
    """

    def __init__(
        self,
        reservations: ReservationRepository,
        *,
        rooms: Optional[RoomService] = None,
        guests: Optional[GuestService] = None,
        refund_policy: Optional[RefundPolicy] = None,
        default_tax_rate: float = DEFAULT_TAX_RATE,
    ) -> None:
        self.reservations = reservations
        self.rooms = rooms
        self.guests = guests
        self.refund_policy = refund_policy or get_refund_policy(REFUND_POLICY)
        self.default_tax_rate = float(default_tax_rate)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all(self) -> List[Dict[str, Any]]:
        return await self.reservations.get_all()

    async def get_by_id(self, reservation_id: int) -> Dict[str, Any]:
        return await self.reservations.get_by_id(reservation_id)

    async def delete(self, reservation_id: int) -> Dict[str, Any]:
        return await self.reservations.delete(reservation_id)

    async def get_group_reservations(self, group_id: str) -> List[Dict[str, Any]]:
        return await self.reservations.list_by_group(group_id)

    async def get_by_guest(self, guest_id: int) -> List[Dict[str, Any]]:
        return await self.reservations.list_by_guest(guest_id)

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def quote_stay(
        self,
        room: Dict[str, Any],
        check_in: Any,
        check_out: Any,
        tax_rate: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Nightly rate x nights, plus tax for display.

        A reservation's total_amount is the untaxed subtotal; tax is applied
        on the bill.
        """
        start = parse_instant(check_in)
        end = parse_instant(check_out)
        nights = nights_between(start, end) if start and end else 0
        subtotal = round_money(nights * safe_float(room.get("rate")))
        rate = self.default_tax_rate if tax_rate is None else float(tax_rate)
        tax_amount = round_money(subtotal * rate / 100.0)
        return {
            "nights": nights,
            "subtotal": subtotal,
            "tax_amount": tax_amount,
            "total": round_money(subtotal + tax_amount),
        }

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        data: Dict[str, Any],
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any] | List[Dict[str, Any]]:
        """Create one reservation, or a whole group when ``is_group_booking`` is set.

        Group creation returns the list of created reservations.
        """
        if data.get("is_group_booking") or data.get("group_rooms"):
            return await self.create_group(data, now=now)
        return await self.create_single(data, now=now)

    async def _snapshot(
        self,
        guest_id: Optional[int],
        room_id: Optional[int],
        guest_name: Optional[str],
        room_number: Optional[str],
    ) -> Dict[str, Any]:
        room: Optional[Dict[str, Any]] = None
        if room_id is not None and self.rooms is not None:
            room = await self.rooms.get_by_id(room_id)
            if room_number is None:
                room_number = str(room.get("number", ""))
        if guest_name is None and guest_id is not None and self.guests is not None:
            guest_name = full_name(await self.guests.get_by_id(guest_id))
        return {"guest_name": guest_name or "", "room_number": room_number or "", "room": room}

    def _total_for(self, explicit: Optional[float], room: Optional[Dict[str, Any]], check_in: datetime, check_out: datetime) -> float:
        if explicit is not None:
            return round_money(explicit)
        if room is not None:
            return self.quote_stay(room, check_in, check_out)["subtotal"]
        return 0.0

    async def create_single(self, data: Dict[str, Any] | ReservationCreate, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        cmd: ReservationCreate = parse_command(ReservationCreate, data)
        now = now or now_utc()
        check_in = parse_instant(cmd.check_in)
        check_out = parse_instant(cmd.check_out)

        snap = await self._snapshot(cmd.guest_id, cmd.room_id, cmd.guest_name, cmd.room_number)
        doc = cmd.model_dump()
        doc.update(
            {
                "check_in": check_in,
                "check_out": check_out,
                "guest_name": snap["guest_name"],
                "room_number": snap["room_number"],
                "total_amount": self._total_for(cmd.total_amount, snap["room"], check_in, check_out),
                "cancellation_policy": cmd.cancellation_policy or self.refund_policy.name,
                "group_id": None,
                "is_group_booking": False,
                "group_size": None,
                "cancellation": None,
                "modification_history": [],
                "created_at": now,
            }
        )
        reservation = await self.reservations.create(doc)
        logger.info(
            "reservation created id=%s room=%s check_in=%s",
            reservation["id"],
            reservation["room_number"],
            check_in.date().isoformat(),
        )
        return reservation

    async def _new_group_id(self, now: datetime) -> str:
        candidate = now
        group_id = generate_group_id(candidate)
        while await self.reservations.list_by_group(group_id):
            candidate = candidate + timedelta(milliseconds=1)
            group_id = generate_group_id(candidate)
        return group_id

    async def create_group(
        self,
        data: Dict[str, Any] | GroupReservationCreate,
        *,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Create one reservation per room under a shared group id.

        Members are inserted one at a time; if any insert fails the members
        already created are deleted again before the error is re-raised.
        """
        cmd: GroupReservationCreate = parse_command(GroupReservationCreate, data)
        now = now or now_utc()
        check_in = parse_instant(cmd.check_in)
        check_out = parse_instant(cmd.check_out)
        group_id = await self._new_group_id(now)
        group_size = len(cmd.group_rooms)
        corporate = cmd.corporate_account.model_dump() if cmd.corporate_account else None
        shared = cmd.model_dump(exclude={"group_rooms", "check_in", "check_out", "corporate_account", "is_group_booking"})

        created: List[Dict[str, Any]] = []
        try:
            for room_cmd in cmd.group_rooms:
                snap = await self._snapshot(room_cmd.guest_id, room_cmd.room_id, room_cmd.guest_name, room_cmd.room_number)
                doc = {**shared, **room_cmd.model_dump()}
                doc.update(
                    {
                        "check_in": check_in,
                        "check_out": check_out,
                        "guest_name": snap["guest_name"],
                        "room_number": snap["room_number"],
                        "special_requests": room_cmd.special_requests or cmd.special_requests,
                        "total_amount": self._total_for(room_cmd.total_amount, snap["room"], check_in, check_out),
                        "corporate_account": corporate,
                        "cancellation_policy": cmd.cancellation_policy or self.refund_policy.name,
                        "group_id": group_id,
                        "is_group_booking": True,
                        "group_size": group_size,
                        "cancellation": None,
                        "modification_history": [],
                        "created_at": now,
                    }
                )
                created.append(await self.reservations.create(doc))
        except Exception:
            logger.warning(
                "group %s failed after %d of %d reservation(s); rolling back",
                group_id,
                len(created),
                group_size,
            )
            await self._rollback(created)
            raise

        logger.info("group %s created with %d reservation(s)", group_id, group_size)
        return created

    async def _rollback(self, created: List[Dict[str, Any]]) -> None:
        for reservation in reversed(created):
            try:
                await self.reservations.delete(reservation["id"])
            except AppError as exc:
                # compensation is best-effort; the original error still propagates
                logger.warning("rollback of reservation %s failed: %s", reservation["id"], exc)

    # ------------------------------------------------------------------
    # Update (the single write path after creation)
    # ------------------------------------------------------------------

    async def update(
        self,
        reservation_id: int,
        fields: Dict[str, Any],
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Apply a partial update and record what changed.

        ``modified_by`` and ``modification_reason`` describe the change and are
        stored on the history entry, not on the reservation.
        """
        current = await self.reservations.get_by_id(reservation_id)
        now = now or now_utc()

        patch = {k: v for k, v in (fields or {}).items() if k not in META_FIELDS and k not in PROTECTED_FIELDS}
        for key in ("check_in", "check_out"):
            if key in patch:
                patch[key] = parse_instant(patch[key])

        check_in = patch.get("check_in", parse_instant(current.get("check_in")))
        check_out = patch.get("check_out", parse_instant(current.get("check_out")))
        if check_in is not None and check_out is not None and check_out <= check_in:
            raise AppError(
                422,
                "invalid_stay_dates",
                "check_out must be after check_in",
                {"id": reservation_id},
            )

        if "status" in patch and patch["status"] != current.get("status"):
            validate_transition(current.get("status"), patch["status"])

        changes = {
            key: {"from": current.get(key), "to": value}
            for key, value in patch.items()
            if current.get(key) != value
        }
        entry = {
            "timestamp": now,
            "changes": changes,
            "modified_by": (fields or {}).get("modified_by") or "system",
            "reason": (fields or {}).get("modification_reason") or "",
        }
        patch["modification_history"] = list(current.get("modification_history") or []) + [entry]
        patch["last_modified"] = now
        return await self.reservations.update(reservation_id, patch)

    # ------------------------------------------------------------------
    # Stay transitions
    # ------------------------------------------------------------------

    async def _transition(
        self,
        reservation_id: int,
        target: str,
        *,
        modified_by: str,
        reason: str,
        now: Optional[datetime],
    ) -> Dict[str, Any]:
        current = await self.reservations.get_by_id(reservation_id)
        validate_transition(current.get("status"), target)
        return await self.update(
            reservation_id,
            {"status": target, "modified_by": modified_by, "modification_reason": reason},
            now=now,
        )

    async def confirm(self, reservation_id: int, *, modified_by: str = "system", now: Optional[datetime] = None) -> Dict[str, Any]:
        return await self._transition(reservation_id, CONFIRMED, modified_by=modified_by, reason="confirmed", now=now)

    async def check_in(self, reservation_id: int, *, modified_by: str = "system", now: Optional[datetime] = None) -> Dict[str, Any]:
        reservation = await self._transition(
            reservation_id, CHECKED_IN, modified_by=modified_by, reason="checked in", now=now
        )
        if self.rooms is not None and reservation.get("room_id") is not None:
            await self.rooms.update_status(reservation["room_id"], ROOM_OCCUPIED, now=now)
        return reservation

    async def check_out(self, reservation_id: int, *, modified_by: str = "system", now: Optional[datetime] = None) -> Dict[str, Any]:
        reservation = await self._transition(
            reservation_id, CHECKED_OUT, modified_by=modified_by, reason="checked out", now=now
        )
        if self.rooms is not None and reservation.get("room_id") is not None:
            await self.rooms.update_status(reservation["room_id"], ROOM_DIRTY, now=now)
        if self.guests is not None and reservation.get("guest_id") is not None:
            try:
                await self.guests.record_stay(reservation["guest_id"], reservation)
            except NotFoundError:
                logger.warning(
                    "stay for reservation %s not recorded: guest %s no longer exists",
                    reservation_id,
                    reservation["guest_id"],
                )
        return reservation

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def _policy_for(self, reservation: Dict[str, Any], override: Optional[RefundPolicy]) -> RefundPolicy:
        if override is not None:
            return override
        return REFUND_POLICIES.get(reservation.get("cancellation_policy") or "", self.refund_policy)

    async def cancel_with_refund(
        self,
        reservation_id: int,
        reason: str,
        refund_amount: Optional[float] = None,
        *,
        cancelled_by: str = "system",
        policy: Optional[RefundPolicy] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Cancel a reservation and record the refund owed.

        Without an explicit (non-zero) refund_amount the refund comes from the
        reservation's refund policy and the days left until check-in.
        """
        current = await self.reservations.get_by_id(reservation_id)
        now = now or now_utc()
        status = current.get("status")
        if is_terminal(status):
            raise ReservationStateTransitionError(current=status, target=CANCELLED)

        refund = compute_refund(
            total_amount=safe_float(current.get("total_amount")),
            check_in=current.get("check_in"),
            now=now,
            policy=self._policy_for(current, policy),
            requested_amount=refund_amount,
        )
        cancellation = {
            "cancelled_at": now,
            "reason": reason,
            "refund_amount": refund.refund_amount,
            "refund_percentage": refund.refund_percentage,
            "refund_basis": refund.basis,
            "refund_processed": False,
            "policy": refund.policy,
            "days_before_check_in": refund.days_before_check_in,
        }
        updated = await self.update(
            reservation_id,
            {
                "status": CANCELLED,
                "cancellation": cancellation,
                "modified_by": cancelled_by,
                "modification_reason": reason,
            },
            now=now,
        )
        logger.info(
            "reservation %s cancelled: refund=%.2f policy=%s days_before=%s",
            reservation_id,
            refund.refund_amount,
            refund.policy,
            refund.days_before_check_in,
        )
        return updated

    async def mark_refund_processed(self, reservation_id: int, *, modified_by: str = "system", now: Optional[datetime] = None) -> Dict[str, Any]:
        """Flag a cancelled reservation's refund as paid out."""

        current = await self.reservations.get_by_id(reservation_id)
        cancellation = current.get("cancellation")
        if not cancellation:
            raise AppError(
                409,
                "reservation_not_cancelled",
                "Reservation has no cancellation to settle",
                {"id": reservation_id},
            )
        settled = {**cancellation, "refund_processed": True, "refund_processed_at": now or now_utc()}
        return await self.update(
            reservation_id,
            {"cancellation": settled, "modified_by": modified_by, "modification_reason": "refund processed"},
            now=now,
        )
