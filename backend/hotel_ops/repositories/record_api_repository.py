from __future__ import annotations

"""Record store backed by a hosted record API.

Wire contract (one HTTP request per store method, JSON bodies):

- ``GET    /tables/{table}/records``        -> ``{"success", "data": [...]}``
- ``GET    /tables/{table}/records/{id}``   -> ``{"success", "data": {...}}``
- ``POST   /tables/{table}/records``        body ``{"records": [...]}``
- ``PATCH  /tables/{table}/records``        body ``{"records": [{"Id": ..., ...}]}``
- ``DELETE /tables/{table}/records``        body ``{"RecordIds": [...]}``

Write calls answer ``{"success", "message", "results": [{"success", "message", "data"}]}``.

Remote tables use their own column names; a ``FieldMapping`` table converts
between local record fields and remote columns in both directions. Without a
mapping table records are sent as-is (datetimes as ISO strings).
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from hotel_ops.config import RECORD_API_BASE_URL, RECORD_API_KEY, RECORD_API_TIMEOUT_SECONDS
from hotel_ops.errors import AppError, NotFoundError
from hotel_ops.repositories.base_repository import NESTED_MERGE_FIELDS, Record, entity_label
from hotel_ops.utils import safe_float, safe_int, serialize_doc

logger = logging.getLogger(__name__)


def _identity(value: Any) -> Any:
    return value


@dataclass(frozen=True)
class FieldMapping:
    """One local field <-> one remote column.

    ``local`` may be a dotted path into a nested dict (``loyalty_program.tier``).
    """

    local: str
    remote: str
    to_remote: Callable[[Any], Any] = _identity
    to_local: Callable[[Any], Any] = _identity


def _json_dump(value: Any) -> str:
    return json.dumps(serialize_doc(value)) if value else ""


def _json_load(default_factory: Callable[[], Any]) -> Callable[[Any], Any]:
    def _load(raw: Any) -> Any:
        if isinstance(raw, (dict, list)):
            return raw
        if not raw:
            return default_factory()
        try:
            return json.loads(raw)
        except ValueError:
            return default_factory()

    return _load


def _join_list(value: Any) -> str:
    return ",".join(str(v) for v in value) if isinstance(value, list) else ""


def _split_list(raw: Any) -> List[str]:
    if isinstance(raw, list):
        return raw
    return [part.strip() for part in str(raw or "").split(",") if part.strip()]


GUEST_FIELD_MAP: Sequence[FieldMapping] = (
    FieldMapping("first_name", "first_name_c"),
    FieldMapping("last_name", "last_name_c"),
    FieldMapping("email", "email_c"),
    FieldMapping("phone", "phone_c"),
    FieldMapping("id_type", "id_type_c"),
    FieldMapping("id_number", "id_number_c"),
    FieldMapping("address", "address_c", _json_dump, _json_load(dict)),
    FieldMapping("preferences", "preferences_c", _join_list, _split_list),
    FieldMapping("vip_status", "vip_status_c", bool, bool),
    FieldMapping("loyalty_program.tier", "loyalty_program_c"),
    FieldMapping("loyalty_program.points", "loyalty_points_c", safe_int, safe_int),
    FieldMapping("loyalty_program.join_date", "join_date_c"),
    FieldMapping("account_type", "account_type_c"),
    FieldMapping("company_name", "company_name_c"),
    FieldMapping("company_registration", "company_registration_c"),
    FieldMapping("tax_id", "tax_id_c"),
    FieldMapping("billing_contact", "billing_contact_c"),
    FieldMapping("credit_limit", "credit_limit_c", safe_float, safe_float),
    FieldMapping("payment_terms", "payment_terms_c"),
    FieldMapping("corporate_discount", "corporate_discount_c", safe_float, safe_float),
    FieldMapping("stay_history", "stay_history_c", _json_dump, _json_load(list)),
)

_MISSING = object()


def _get_path(record: Dict[str, Any], path: str) -> Any:
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _set_path(record: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = record
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def guest_display_name(record: Dict[str, Any]) -> Optional[str]:
    if "first_name" not in record and "last_name" not in record:
        return None
    return f"{record.get('first_name') or ''} {record.get('last_name') or ''}".strip()


def to_remote_record(
    record: Dict[str, Any],
    field_map: Optional[Sequence[FieldMapping]],
    display_name: Optional[Callable[[Dict[str, Any]], Optional[str]]] = None,
) -> Dict[str, Any]:
    """Map local fields to remote columns; fields absent locally are not sent."""

    if field_map is None:
        out = {k: v for k, v in serialize_doc(record).items() if k != "id"}
    else:
        out = {}
        for mapping in field_map:
            value = _get_path(record, mapping.local)
            if value is _MISSING:
                continue
            out[mapping.remote] = serialize_doc(mapping.to_remote(value))
    if display_name is not None:
        name = display_name(record)
        if name is not None:
            out["Name"] = name
    return out


def to_local_record(remote: Dict[str, Any], field_map: Optional[Sequence[FieldMapping]]) -> Record:
    """Map remote columns back to local fields, keeping the record identity."""

    if field_map is None:
        local = {k: v for k, v in remote.items() if k not in {"Id", "CreatedOn"}}
    else:
        local = {}
        for mapping in field_map:
            if mapping.remote in remote:
                _set_path(local, mapping.local, mapping.to_local(remote[mapping.remote]))
    if "Id" in remote:
        local["id"] = int(remote["Id"])
    if "CreatedOn" in remote:
        local.setdefault("created_at", remote["CreatedOn"])
    return local


class RecordApiStore:
    """Record store talking to the hosted record API.

    Failures are surfaced as AppError and are never retried here; the caller
    owns any retry policy.
    """

    def __init__(
        self,
        table: str,
        *,
        name: Optional[str] = None,
        field_map: Optional[Sequence[FieldMapping]] = None,
        display_name: Optional[Callable[[Dict[str, Any]], Optional[str]]] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.table = table
        self.name = name or table
        self.field_map = field_map
        self.display_name = display_name
        self._client = client
        self.base_url = (base_url or RECORD_API_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else RECORD_API_KEY
        self.timeout = float(timeout or RECORD_API_TIMEOUT_SECONDS or 10.0)

    @property
    def records_url(self) -> str:
        return f"{self.base_url}/tables/{self.table}/records"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, method: str, url: str, *, record_id: Any = None, **kwargs: Any) -> Dict[str, Any]:
        try:
            if self._client is not None:
                resp = await self._client.request(method, url, headers=self._headers(), **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TransportError as exc:
            logger.warning("record api %s %s failed: %s", method, url, exc)
            raise AppError(
                503,
                "record_api_unavailable",
                "Record API is unavailable",
                {"table": self.table},
                retryable=True,
            ) from exc

        if resp.status_code == 404 and record_id is not None:
            raise NotFoundError(entity_label(self.name), record_id)

        try:
            body = resp.json()
        except ValueError:
            body = {}

        if resp.status_code >= 400 or not body.get("success", False):
            if record_id is not None and method == "GET":
                raise NotFoundError(entity_label(self.name), record_id)
            message = body.get("message") or f"Record API returned HTTP {resp.status_code}"
            logger.warning("record api %s %s rejected: %s", method, url, message)
            raise AppError(
                502,
                "record_api_error",
                message,
                {"table": self.table, "http_status": resp.status_code},
            )
        return body

    def _first_result(self, body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        results = body.get("results")
        if results is None:
            return body.get("data")
        failed = [r for r in results if not r.get("success")]
        if failed:
            raise AppError(
                502,
                "record_api_error",
                failed[0].get("message") or "Record API rejected the record",
                {"table": self.table, "failed": failed},
            )
        return results[0].get("data") if results else None

    async def get_all(self) -> List[Record]:
        body = await self._request("GET", self.records_url)
        return [to_local_record(r, self.field_map) for r in body.get("data") or []]

    async def get_by_id(self, record_id: int) -> Record:
        body = await self._request("GET", f"{self.records_url}/{int(record_id)}", record_id=record_id)
        data = body.get("data")
        if not data:
            raise NotFoundError(entity_label(self.name), record_id)
        return to_local_record(data, self.field_map)

    async def create(self, fields: Dict[str, Any]) -> Record:
        payload = to_remote_record(fields, self.field_map, self.display_name)
        body = await self._request("POST", self.records_url, json={"records": [payload]})
        data = self._first_result(body)
        if not data:
            raise AppError(502, "record_api_error", "Record API returned no record", {"table": self.table})
        return to_local_record(data, self.field_map)

    def _whole_column_fields(self, fields: Dict[str, Any]) -> List[str]:
        # nested dicts stored in one remote column are replaced wholesale there
        keys = [k for k in NESTED_MERGE_FIELDS if isinstance(fields.get(k), dict)]
        if self.field_map is None:
            return keys
        mapped = {m.local for m in self.field_map}
        return [k for k in keys if k in mapped]

    async def update(self, record_id: int, fields: Dict[str, Any]) -> Record:
        partial = self._whole_column_fields(fields)
        if partial:
            current = await self.get_by_id(record_id)
            fields = dict(fields)
            for key in partial:
                stored = current.get(key)
                if isinstance(stored, dict):
                    fields[key] = {**stored, **fields[key]}
        payload = to_remote_record(fields, self.field_map, self.display_name)
        payload["Id"] = int(record_id)
        body = await self._request(
            "PATCH", self.records_url, record_id=record_id, json={"records": [payload]}
        )
        data = self._first_result(body)
        if not data:
            raise NotFoundError(entity_label(self.name), record_id)
        return to_local_record(data, self.field_map)

    async def delete(self, record_id: int) -> Record:
        body = await self._request(
            "DELETE", self.records_url, record_id=record_id, json={"RecordIds": [int(record_id)]}
        )
        data = self._first_result(body)
        return to_local_record(data, self.field_map) if data else {"id": int(record_id)}

    async def find(self, predicate: Callable[[Record], bool]) -> List[Record]:
        return [r for r in await self.get_all() if predicate(r)]
