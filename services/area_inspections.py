"""Area inspection reads and writes against the hosted backend."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import Client, create_client

from core.settings import SUPABASE


logger = logging.getLogger("hsse.inspections")

SESSION_COLUMNS = (
    "id, template_id, period, status, site_id, building_id, floor_zone_id, "
    "scope_notes, weather_conditions, attendees, gps_boundary, "
    "started_at, completed_at, inspector_id, tenant_id, created_at, updated_at, "
    "template:inspection_templates(id, name, name_ar, requires_photos, requires_gps)"
)

TEMPLATE_ITEM_COLUMNS = (
    "id, template_id, question, question_ar, response_type, is_critical, "
    "is_required, sort_order, instructions, instructions_ar"
)

RESPONSE_FIELDS = (
    "response_value",
    "result",
    "notes",
    "photo_paths",
    "gps_lat",
    "gps_lng",
    "gps_accuracy",
    "responded_by",
    "responded_at",
)

FINDING_FIELDS = (
    "classification",
    "risk_level",
    "status",
    "description",
    "recommendation",
    "due_date",
    "created_by",
)


class AreaSyncError(RuntimeError):
    """An inspection response or finding could not be written."""


def _api_message(exc: Exception) -> str:
    return getattr(exc, "message", None) or str(exc) or exc.__class__.__name__


def _rows(response) -> Any:
    # maybe_single() yields no response at all when nothing matched
    return getattr(response, "data", None) if response is not None else None


class AreaInspectionGateway:
    def __init__(
        self,
        client: Optional[Client] = None,
        *,
        tenant_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        self.client = client
        self.tenant_id = tenant_id if tenant_id is not None else SUPABASE.tenant_id
        self.user_id = user_id if user_id is not None else SUPABASE.user_id

    def _ensure_client(self) -> Client:
        if self.client is not None:
            return self.client
        if not SUPABASE.configured:
            raise AreaSyncError("Backend connection is not configured")
        self.client = create_client(SUPABASE.url, SUPABASE.key)
        return self.client

    # ---------- reads (prefetch) ----------
    def fetch_session(self, session_id: str) -> Dict[str, Any]:
        client = self._ensure_client()
        try:
            response = (
                client.table(SUPABASE.sessions_table)
                .select(SESSION_COLUMNS)
                .eq("id", session_id)
                .single()
                .execute()
            )
        except APIError as exc:
            raise AreaSyncError(_api_message(exc)) from exc
        session = _rows(response)
        if not session:
            raise AreaSyncError(f"Inspection session {session_id} not found")
        return dict(session)

    def fetch_template_items(self, template_id: str) -> List[Dict[str, Any]]:
        client = self._ensure_client()
        try:
            response = (
                client.table(SUPABASE.template_items_table)
                .select(TEMPLATE_ITEM_COLUMNS)
                .eq("template_id", template_id)
                .is_("deleted_at", "null")
                .order("sort_order")
                .execute()
            )
        except APIError as exc:
            raise AreaSyncError(_api_message(exc)) from exc
        return list(_rows(response) or [])

    # ---------- writes ----------
    def _response_id(self, session_id: str, template_item_id: str) -> Optional[str]:
        response = (
            self._ensure_client()
            .table(SUPABASE.responses_table)
            .select("id")
            .eq("session_id", session_id)
            .eq("template_item_id", template_item_id)
            .maybe_single()
            .execute()
        )
        row = _rows(response)
        return row["id"] if row else None

    def save_response(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Insert the answer for a template item, or update the existing one."""

        if not self.tenant_id:
            raise AreaSyncError("No tenant")
        session_id = payload.get("session_id")
        template_item_id = payload.get("template_item_id")
        if not session_id or not template_item_id:
            raise AreaSyncError("Response needs session_id and template_item_id")

        record = {name: payload.get(name) for name in RESPONSE_FIELDS}
        record["photo_paths"] = record["photo_paths"] or []
        table = self._ensure_client().table(SUPABASE.responses_table)
        try:
            existing_id = self._response_id(session_id, template_item_id)
            if existing_id:
                table.update(record).eq("id", existing_id).execute()
                return {"id": existing_id, **record}
            record.update(
                session_id=session_id,
                template_item_id=template_item_id,
                tenant_id=self.tenant_id,
            )
            response = table.insert(record).execute()
        except APIError as exc:
            raise AreaSyncError(_api_message(exc)) from exc
        rows = _rows(response) or []
        return dict(rows[0]) if rows else record

    def create_finding(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create the finding raised by a failed response, once per response.

        Findings captured offline only know the template item they answer, so
        the server-side response id is looked up here. That lookup needs the
        response to be synced first.
        """

        if not self.tenant_id:
            raise AreaSyncError("No tenant")
        session_id = payload.get("session_id")
        template_item_id = payload.get("template_item_id")
        client = self._ensure_client()
        try:
            response_id = payload.get("response_id") or self._response_id(session_id, template_item_id)
            if not response_id:
                raise AreaSyncError("Could not find synced response for finding")

            existing = _rows(
                client.table(SUPABASE.findings_table)
                .select("id")
                .eq("response_id", response_id)
                .is_("deleted_at", "null")
                .maybe_single()
                .execute()
            )
            if existing:
                logger.info("Finding for response %s already exists", response_id)
                return dict(existing)

            record = {name: payload.get(name) for name in FINDING_FIELDS}
            record.update(
                tenant_id=self.tenant_id,
                session_id=session_id,
                response_id=response_id,
                reference_id="",
            )
            response = client.table(SUPABASE.findings_table).insert(record).execute()
        except APIError as exc:
            raise AreaSyncError(_api_message(exc)) from exc
        rows = _rows(response) or []
        return dict(rows[0]) if rows else record


__all__ = ["AreaInspectionGateway", "AreaSyncError"]
