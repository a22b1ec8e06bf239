from __future__ import annotations

from typing import Any, Dict, List

from hotel_ops.constants.statuses import ACCOUNT_CORPORATE, ACCOUNT_INDIVIDUAL
from hotel_ops.repositories.base_repository import EntityRepository, Record
from hotel_ops.utils import now_utc


class GuestRepository(EntityRepository):
    entity = "guest"

    def _defaults(self) -> Dict[str, Any]:
        return {
            "first_name": "",
            "last_name": "",
            "email": "",
            "phone": "",
            "id_type": "",
            "id_number": "",
            "address": {"street": "", "city": "", "state": "", "zip_code": ""},
            "preferences": [],
            "vip_status": False,
            "loyalty_program": {
                "tier": "",
                "points": 0,
                "join_date": now_utc().date().isoformat(),
            },
            "account_type": ACCOUNT_INDIVIDUAL,
            "payment_terms": "net30",
            "credit_limit": 0,
            "corporate_discount": 0,
            "stay_history": [],
        }

    def _prepare_create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        doc = super()._prepare_create(fields)
        # a partial loyalty block keeps the remaining defaults
        loyalty = dict(self._defaults()["loyalty_program"])
        loyalty.update((fields or {}).get("loyalty_program") or {})
        doc["loyalty_program"] = loyalty
        return doc

    async def list_corporate(self) -> List[Record]:
        return await self.find(lambda g: g.get("account_type") == ACCOUNT_CORPORATE)
