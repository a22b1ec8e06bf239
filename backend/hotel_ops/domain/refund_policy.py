from __future__ import annotations

"""Cancellation refund policies and the pure refund calculator.

Two tierings have been used at the front desk:

- ``standard``: 100% at 7+ days before check-in, 50% at 3+ days, else nothing.
  This is the policy reservations are cancelled under unless configured
  otherwise.
- ``front_desk``: 90% at more than 7 days, 50% at more than 3, 25% at more
  than 0, nothing on the day of arrival.

Both are kept as named tables so the business rule lives in one place and the
active one is a configuration choice (``HOTEL_OPS_REFUND_POLICY``).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Literal, Optional, Tuple

from hotel_ops.utils import days_until, parse_instant, round_money


@dataclass(frozen=True)
class RefundTier:
    min_days_before_check_in: int
    refund_percentage: float


@dataclass(frozen=True)
class RefundPolicy:
    name: str
    tiers: Tuple[RefundTier, ...]

    def percentage_for(self, days_before_check_in: int) -> float:
        """Return the refund percentage of the first tier the lead time reaches."""
        for tier in sorted(self.tiers, key=lambda t: t.min_days_before_check_in, reverse=True):
            if days_before_check_in >= tier.min_days_before_check_in:
                return tier.refund_percentage
        return 0.0


STANDARD_POLICY = RefundPolicy(
    name="standard",
    tiers=(
        RefundTier(min_days_before_check_in=7, refund_percentage=100.0),
        RefundTier(min_days_before_check_in=3, refund_percentage=50.0),
    ),
)

# Day counts are whole days rounded up, so "more than 7" is "at least 8".
FRONT_DESK_POLICY = RefundPolicy(
    name="front_desk",
    tiers=(
        RefundTier(min_days_before_check_in=8, refund_percentage=90.0),
        RefundTier(min_days_before_check_in=4, refund_percentage=50.0),
        RefundTier(min_days_before_check_in=1, refund_percentage=25.0),
    ),
)

REFUND_POLICIES: Dict[str, RefundPolicy] = {
    STANDARD_POLICY.name: STANDARD_POLICY,
    FRONT_DESK_POLICY.name: FRONT_DESK_POLICY,
}


def get_refund_policy(name: str) -> RefundPolicy:
    try:
        return REFUND_POLICIES[name]
    except KeyError:
        raise ValueError(f"Unsupported refund policy: {name}") from None


@dataclass
class RefundComputation:
    total_amount: float
    days_before_check_in: int
    refund_percentage: float
    refund_amount: float
    basis: Literal["policy", "manual"]
    policy: str


def compute_refund(
    *,
    total_amount: float,
    check_in: datetime | str,
    now: datetime,
    policy: RefundPolicy = STANDARD_POLICY,
    requested_amount: Optional[float] = None,
) -> RefundComputation:
    """Compute the refund owed for cancelling a reservation.

    - A requested amount that is missing or zero falls back to the policy.
    - A requested amount is clamped into ``[0, total_amount]``.
    - The result is rounded to cents and is never negative.
    """
    total = max(0.0, float(total_amount or 0.0))
    check_in_at = parse_instant(check_in)
    days = days_until(check_in_at, now) if check_in_at else 0

    if requested_amount:
        refund = max(0.0, min(float(requested_amount), total))
        pct = (refund / total * 100.0) if total > 0 else 0.0
        basis: Literal["policy", "manual"] = "manual"
    else:
        pct = policy.percentage_for(days)
        refund = total * pct / 100.0
        basis = "policy"

    return RefundComputation(
        total_amount=round_money(total),
        days_before_check_in=days,
        refund_percentage=round(pct, 2),
        refund_amount=round_money(refund),
        basis=basis,
        policy=policy.name,
    )
