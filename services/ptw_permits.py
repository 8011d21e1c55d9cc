"""Permit-to-work writes against the hosted backend."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import Client, create_client

from core.settings import SUPABASE


logger = logging.getLogger("hsse.permits")

REQUIRED_FIELDS = ("project_id", "type_id", "planned_start_time", "planned_end_time")

INSERT_FIELDS = (
    "project_id",
    "type_id",
    "job_description",
    "work_scope",
    "location_details",
    "site_id",
    "building_id",
    "floor_zone_id",
    "planned_start_time",
    "planned_end_time",
    "emergency_contact_name",
    "emergency_contact_number",
)


class PermitSubmissionError(RuntimeError):
    """The backend refused the permit (validation, auth or database error)."""


def _api_message(exc: Exception) -> str:
    return getattr(exc, "message", None) or str(exc) or exc.__class__.__name__


def _validation_messages(result: Any) -> str:
    errors = result.get("errors") if isinstance(result, dict) else None
    messages: List[str] = []
    for entry in errors or []:
        if isinstance(entry, dict) and entry.get("message"):
            messages.append(str(entry["message"]))
    return "; ".join(messages) or "Validation failed"


class PermitGateway:
    def __init__(
        self,
        client: Optional[Client] = None,
        *,
        tenant_id: Optional[str] = None,
        user_id: Optional[str] = None,
        table: str = SUPABASE.permits_table,
        validate_function: str = SUPABASE.validate_function,
    ) -> None:
        self.client = client
        self.tenant_id = tenant_id if tenant_id is not None else SUPABASE.tenant_id
        self.user_id = user_id if user_id is not None else SUPABASE.user_id
        self.table = table
        self.validate_function = validate_function

    def _ensure_client(self) -> Client:
        if self.client is not None:
            return self.client
        if not SUPABASE.configured:
            raise PermitSubmissionError("Backend connection is not configured")
        self.client = create_client(SUPABASE.url, SUPABASE.key)
        return self.client

    def validate(self, payload: Dict[str, Any]) -> None:
        missing = [name for name in REQUIRED_FIELDS if not payload.get(name)]
        if missing:
            raise PermitSubmissionError(f"Missing required fields: {', '.join(missing)}")

        client = self._ensure_client()
        body = {
            "project_id": payload.get("project_id"),
            "type_id": payload.get("type_id"),
            "worker_ids": payload.get("worker_ids") or [],
            "planned_start_time": payload.get("planned_start_time"),
            "planned_end_time": payload.get("planned_end_time"),
            "site_id": payload.get("site_id"),
        }
        try:
            result = client.functions.invoke(
                self.validate_function,
                invoke_options={"body": body, "responseType": "json"},
            )
        except Exception as exc:
            raise PermitSubmissionError("Failed to validate permit request") from exc

        if isinstance(result, (bytes, str)):
            try:
                result = json.loads(result)
            except json.JSONDecodeError as exc:
                raise PermitSubmissionError("Failed to validate permit request") from exc

        if not isinstance(result, dict) or not result.get("is_valid"):
            raise PermitSubmissionError(_validation_messages(result))

    def create_permit(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.tenant_id or not self.user_id:
            raise PermitSubmissionError("No tenant")
        self.validate(payload)

        client = self._ensure_client()
        record = {name: payload.get(name) for name in INSERT_FIELDS}
        record.update(
            applicant_id=self.user_id,
            tenant_id=self.tenant_id,
            created_by=self.user_id,
        )
        try:
            response = client.table(self.table).insert(record).execute()
        except APIError as exc:
            raise PermitSubmissionError(_api_message(exc)) from exc

        rows = response.data or []
        if not rows:
            raise PermitSubmissionError("Permit insert returned no row")
        created = dict(rows[0])

        worker_ids = payload.get("worker_ids") or []
        if worker_ids:
            work_scope = json.dumps(
                {"worker_ids": worker_ids, "permit_holder_id": payload.get("permit_holder_id")}
            )
            try:
                client.table(self.table).update({"work_scope": work_scope}).eq("id", created["id"]).execute()
                created["work_scope"] = work_scope
            except APIError as exc:
                # The permit row already exists; failing here would queue a duplicate insert.
                logger.error("Failed to store worker assignments for permit %s: %s", created["id"], _api_message(exc))
        return created


__all__ = ["PermitGateway", "PermitSubmissionError", "REQUIRED_FIELDS"]
