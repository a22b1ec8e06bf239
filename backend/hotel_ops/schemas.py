"""
Command schemas for reservations, billing and housekeeping.

Records themselves are stored as plain dicts; these models validate the
payloads of the operations that compute something from their input.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hotel_ops.constants.statuses import AdjustmentType
from hotel_ops.domain.reservation_state_machine import ReservationStatus
from hotel_ops.utils import parse_instant


# ============================================================================
# 1) Reservations
# ============================================================================

class CorporateAccountSnapshot(BaseModel):
    """Company details copied onto a reservation at booking time"""
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    company_name: str = ""
    contact_person: str = ""
    email: str = ""
    phone: str = ""
    billing_address: str = ""


class _StayDates(BaseModel):
    check_in: datetime
    check_out: datetime

    @field_validator("check_in", "check_out", mode="after")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        # date-only and naive values are taken as UTC so both ends compare
        return parse_instant(v)

    @model_validator(mode="after")
    def check_out_after_check_in(self) -> "_StayDates":
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


class ReservationCreate(_StayDates):
    """Single reservation. Unknown fields (guest_count, source, ...) are kept."""
    model_config = ConfigDict(extra="allow")

    guest_id: Optional[int] = None
    room_id: Optional[int] = None
    guest_name: Optional[str] = None
    room_number: Optional[str] = None
    status: ReservationStatus = "Pending"
    total_amount: Optional[float] = Field(default=None, ge=0)
    special_requests: str = ""
    corporate_account: Optional[CorporateAccountSnapshot] = None
    cancellation_policy: Optional[str] = None


class GroupRoom(BaseModel):
    """One room of a group booking"""
    model_config = ConfigDict(extra="allow")

    guest_id: Optional[int] = None
    room_id: int
    guest_name: Optional[str] = None
    room_number: Optional[str] = None
    special_requests: str = ""
    total_amount: Optional[float] = Field(default=None, ge=0)


class GroupReservationCreate(_StayDates):
    """Several rooms booked together under one group id"""
    model_config = ConfigDict(extra="allow")

    is_group_booking: bool = True
    group_rooms: List[GroupRoom] = Field(..., min_length=1)
    status: ReservationStatus = "Confirmed"
    special_requests: str = ""
    corporate_account: Optional[CorporateAccountSnapshot] = None
    cancellation_policy: Optional[str] = None


# ============================================================================
# 2) Billing
# ============================================================================

def _parse_charge_list(v: Any) -> Any:
    # "15, 5, abc" -> [15.0, 5.0]; non-numeric entries are dropped
    if isinstance(v, str):
        out: List[float] = []
        for part in v.split(","):
            try:
                amount = float(part.strip())
            except ValueError:
                continue
            if amount > 0:
                out.append(amount)
        return out
    return v if v is not None else []


class BillCreate(BaseModel):
    """Create an invoice for a reservation"""
    reservation_id: int
    room_charges: float = Field(..., ge=0)
    additional_charges: List[float] = Field(default_factory=list)
    tax_rate: Optional[float] = Field(default=None, ge=0, le=100)
    guest_name: Optional[str] = None
    room_number: Optional[str] = None
    notes: str = ""

    @field_validator("additional_charges", mode="before")
    @classmethod
    def parse_charges(cls, v: Any) -> Any:
        return _parse_charge_list(v)


class BillUpdate(BaseModel):
    """Charge fields of a bill update; other keys pass through untouched."""
    model_config = ConfigDict(extra="allow")

    room_charges: Optional[float] = Field(default=None, ge=0)
    additional_charges: Optional[List[float]] = None
    tax_rate: Optional[float] = Field(default=None, ge=0, le=100)

    @field_validator("additional_charges", mode="before")
    @classmethod
    def parse_charges(cls, v: Any) -> Any:
        return _parse_charge_list(v)


class PaymentRequest(BaseModel):
    amount: float = Field(..., gt=0)
    method: str = Field(default="Cash", min_length=1)


class RefundRequest(BaseModel):
    amount: float = Field(..., gt=0)
    reason: str = Field(..., min_length=1)
    method: str = "Original Payment Method"


class AdjustmentRequest(BaseModel):
    """Post-hoc change to a bill's subtotal.

    discount and fee take a non-negative amount; a correction may be negative.
    """
    type: AdjustmentType
    amount: float
    reason: str = Field(..., min_length=1)
    applied_by: str = "Front Desk"

    @model_validator(mode="after")
    def amount_sign(self) -> "AdjustmentRequest":
        if self.type in ("discount", "fee") and self.amount < 0:
            raise ValueError(f"{self.type} amount must be >= 0")
        return self


def parse_command(model: type[BaseModel], data: Any) -> Any:
    """Validate a command payload, raising AppError(422) on failure."""
    from pydantic import ValidationError

    from hotel_ops.errors import validation_error

    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise validation_error(exc) from exc
