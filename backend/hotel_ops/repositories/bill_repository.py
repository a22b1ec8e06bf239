from __future__ import annotations

from typing import Any, Dict, List

from hotel_ops.constants.statuses import PAYMENT_PENDING
from hotel_ops.repositories.base_repository import EntityRepository, Record


class BillRepository(EntityRepository):
    entity = "bill"

    def _defaults(self) -> Dict[str, Any]:
        return {
            "payment_status": PAYMENT_PENDING,
            "additional_charges": [],
            "payment_history": [],
            "refunds": [],
            "adjustments": [],
            "notes": "",
        }

    async def list_by_reservation(self, reservation_id: int) -> List[Record]:
        return await self.find(lambda b: b.get("reservation_id") == reservation_id)
