# ui/pages/permits.py
import flet as ft

from datetime_utils import from_epoch_ms
from models.queued_mutation import SyncStatus
from services.offline_permits import PERMIT_FORM_KEY
from storage.offline_cache import CacheWriteError
from ui.dialogs import confirm


_STATUS_COLORS = {
    SyncStatus.PENDING: ft.Colors.AMBER_700,
    SyncStatus.SYNCING: ft.Colors.BLUE_700,
    SyncStatus.SYNCED: ft.Colors.GREEN_700,
    SyncStatus.FAILED: ft.Colors.RED_700,
}

# form field name -> label
_FIELDS = (
    ("project_id", "Project ID"),
    ("type_id", "Permit type ID"),
    ("site_id", "Site ID"),
    ("job_description", "Job description"),
    ("location_details", "Location details"),
    ("planned_start_time", "Planned start (ISO 8601)"),
    ("planned_end_time", "Planned end (ISO 8601)"),
    ("emergency_contact_name", "Emergency contact"),
    ("emergency_contact_number", "Emergency phone"),
)


class PermitsPage:
    def __init__(self, app):
        self.app = app
        self.permits = app.permits

        self.fields = {
            name: ft.TextField(label=label, expand=True, on_blur=self.on_field_blur)
            for name, label in _FIELDS
        }
        self.workers_tf = ft.TextField(
            label="Worker IDs",
            hint_text="comma separated",
            expand=True,
            on_blur=self.on_field_blur,
        )
        self.submit_btn = ft.FilledButton("Submit permit", icon=ft.Icons.SEND, on_click=self.on_submit)
        self.clear_btn = ft.TextButton("Clear form", icon=ft.Icons.CLEAR, on_click=self.on_clear)

        form_rows = []
        names = [name for name, _ in _FIELDS]
        for i in range(0, len(names), 3):
            form_rows.append(ft.Row([self.fields[n] for n in names[i : i + 3]], spacing=12))
        form_rows.append(ft.Row([self.workers_tf], spacing=12))
        form_rows.append(ft.Row([self.submit_btn, self.clear_btn], spacing=12))

        form_card = ft.Card(
            content=ft.Container(
                content=ft.Column(
                    [ft.Text("New permit to work", size=18, weight=ft.FontWeight.W_600), *form_rows],
                    spacing=12,
                ),
                padding=16,
            )
        )

        self.pending_title = ft.Text(size=18, weight=ft.FontWeight.W_600)
        self.sync_btn = ft.OutlinedButton("Sync now", icon=ft.Icons.SYNC, on_click=self.on_sync)
        self.queue_list = ft.ListView(expand=True, spacing=8)

        queue_card = ft.Card(
            expand=True,
            content=ft.Container(
                padding=12,
                content=ft.Column(
                    [
                        ft.Row(
                            [self.pending_title, self.sync_btn],
                            alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                        ),
                        self.queue_list,
                    ],
                    expand=True,
                ),
            ),
        )

        self.view = ft.Container(
            content=ft.Column([form_card, queue_card], expand=True, spacing=16),
            expand=True,
            padding=20,
        )
        self.restore_draft()

    # ---------- form ----------
    def _collect(self) -> dict:
        data = {name: (tf.value or "").strip() or None for name, tf in self.fields.items()}
        workers = [w.strip() for w in (self.workers_tf.value or "").split(",") if w.strip()]
        if workers:
            data["worker_ids"] = workers
        return data

    def _reset_form(self):
        for tf in self.fields.values():
            tf.value = ""
        self.workers_tf.value = ""

    def restore_draft(self):
        draft = self.permits.load_draft() or {}
        for name, tf in self.fields.items():
            tf.value = draft.get(name) or ""
        self.workers_tf.value = ", ".join(draft.get("worker_ids") or [])

    def on_field_blur(self, _):
        try:
            self.permits.save_draft(self._collect())
        except CacheWriteError as exc:
            self.app.notifier.warning(f"Draft not saved: {exc}")

    def on_clear(self, _):
        self._reset_form()
        self.permits.form_progress.clear(PERMIT_FORM_KEY)
        self.app.page.update()

    def on_submit(self, _):
        self.submit_btn.disabled = True
        self.app.page.update()
        self.app.page.run_task(self._submit)

    async def _submit(self):
        try:
            result = await self.permits.create_permit(self._collect())
        except CacheWriteError as exc:
            self.app.notifier.error(f"Permit could not be stored offline: {exc}")
            result = None
        finally:
            self.submit_btn.disabled = False
        if result is not None and result.success:
            self._reset_form()
        self.load()

    # ---------- queue ----------
    def _format_created(self, value) -> str:
        dt = from_epoch_ms(value)
        if dt is None:
            return "—"
        return dt.astimezone().strftime("%Y-%m-%d %H:%M")

    def _row(self, item) -> ft.Control:
        payload = item.payload
        title = payload.get("job_description") or payload.get("project_id") or item.local_id
        subtitle = [f"Queued {self._format_created(item.created_at)}"]
        if item.attempts:
            subtitle.append(f"attempts: {item.attempts}")
        details = [ft.Text(" · ".join(subtitle), size=12, color=ft.Colors.GREY_700)]
        if item.sync_error:
            details.append(ft.Text(item.sync_error, size=12, color=ft.Colors.RED_700))

        busy = item.sync_status == SyncStatus.SYNCING
        return ft.Container(
            padding=10,
            border_radius=8,
            bgcolor=ft.Colors.with_opacity(0.04, ft.Colors.BLACK),
            content=ft.Row(
                [
                    ft.Container(
                        content=ft.Text(item.sync_status.value, color=ft.Colors.WHITE, size=12),
                        bgcolor=_STATUS_COLORS[item.sync_status],
                        padding=ft.padding.symmetric(horizontal=8, vertical=2),
                        border_radius=10,
                    ),
                    ft.Column([ft.Text(title, weight=ft.FontWeight.W_500), *details], expand=True, spacing=2),
                    ft.IconButton(
                        icon=ft.Icons.REFRESH,
                        tooltip="Retry",
                        disabled=busy or not self.app.network.is_online,
                        on_click=lambda e, lid=item.local_id: self.on_retry(lid),
                    ),
                    ft.IconButton(
                        icon=ft.Icons.DELETE_OUTLINE,
                        tooltip="Discard",
                        disabled=busy,
                        on_click=lambda e, lid=item.local_id: self.on_discard(lid),
                    ),
                ],
                vertical_alignment=ft.CrossAxisAlignment.CENTER,
            ),
        )

    def load(self):
        items = self.permits.pending_permits()
        self.pending_title.value = f"Pending permits ({len(items)})"
        self.sync_btn.disabled = not items or not self.app.network.is_online or self.permits.queue.is_syncing
        self.queue_list.controls = [self._row(item) for item in items] or [
            ft.Text("Nothing waiting to sync", color=ft.Colors.GREY_600)
        ]
        self.app.page.update()

    def activate_from_menu(self):
        self.load()

    def on_sync(self, _):
        self.app.page.run_task(self._sync)

    async def _sync(self):
        await self.permits.sync_pending_permits()
        self.load()

    def on_retry(self, local_id: str):
        async def _retry():
            await self.permits.retry_permit(local_id)
            self.load()

        self.app.page.run_task(_retry)

    def on_discard(self, local_id: str):
        def _do():
            self.permits.discard_permit(local_id)
            self.app.notifier.info("Queued permit discarded")
            self.load()

        confirm(
            self.app.page,
            title="Discard permit?",
            message="The queued permit will be removed from this device and cannot be recovered.",
            on_confirm=_do,
        )
