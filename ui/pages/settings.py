# ui/pages/settings.py
from datetime import timezone
import flet as ft

from ui.dialogs import confirm


class SettingsPage:
    def __init__(self, app):
        self.app = app

        self.status_network = ft.Text()
        self.status_queue = ft.Text()
        self.status_inspections = ft.Text()
        self.last_sync = ft.Text()

        self.probe_btn = ft.ElevatedButton(
            "Check connection",
            icon=ft.Icons.WIFI_FIND,
            on_click=self.check_connection,
        )
        self.sync_btn = ft.OutlinedButton(
            "Sync queued items",
            icon=ft.Icons.SYNC,
            on_click=self.sync_now,
        )
        self.clear_btn = ft.OutlinedButton(
            "Clear synced entries",
            icon=ft.Icons.CLEANING_SERVICES,
            on_click=self.clear_synced,
        )
        self.drafts_btn = ft.OutlinedButton(
            "Clear form drafts",
            icon=ft.Icons.DELETE_SWEEP,
            on_click=self.clear_drafts,
        )
        self.refresh_log_btn = ft.TextButton(
            "Refresh log",
            icon=ft.Icons.ARTICLE,
            on_click=self.refresh_log,
        )

        self.log_view = ft.Text("", selectable=True)

        content = ft.Column(
            controls=[
                ft.Text("Settings", size=24, weight=ft.FontWeight.BOLD),
                self.status_network,
                self.status_queue,
                self.status_inspections,
                self.last_sync,
                ft.Row([self.probe_btn, self.sync_btn, self.clear_btn, self.drafts_btn], spacing=12, wrap=True),
                ft.Column([
                    ft.Text("Sync log", size=18, weight=ft.FontWeight.W_600),
                    ft.Container(self.log_view, height=200, padding=10, bgcolor=ft.Colors.SURFACE_VARIANT),
                    self.refresh_log_btn,
                ], spacing=8),
            ],
            expand=True,
            spacing=16,
        )

        self.view = ft.Container(content=content, expand=True, padding=20)
        self.refresh_status()

    def _format_dt(self, value) -> str:
        if not value:
            return "—"
        if getattr(value, "tzinfo", None) is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")

    def refresh_status(self):
        status = self.app.sync_status() or {}
        self.status_network.value = "Network: " + ("online" if status.get("online") else "offline")
        self.status_queue.value = (
            f"Queued permits: {status.get('pending', 0)} pending, "
            f"{status.get('failed', 0)} failed, {status.get('synced', 0)} synced"
            + (" (sync running)" if status.get("syncing") else "")
        )
        self.status_inspections.value = (
            f"Queued inspection items: {status.get('inspections_pending', 0)} pending, "
            f"{status.get('inspections_failed', 0)} failed"
        )
        self.last_sync.value = "Last sync: " + self._format_dt(status.get("lastSyncAt"))
        self.log_view.value = self.app.read_sync_log()

    def activate_from_menu(self):
        self.refresh_status()
        self.app.page.update()

    def check_connection(self, _):
        async def _probe():
            await self.app.check_connection()
            self.refresh_status()
            self.app.page.update()

        self.app.page.run_task(_probe)

    def sync_now(self, _):
        async def _sync():
            await self.app.sync_all()
            self.refresh_status()
            self.app.page.update()

        self.app.page.run_task(_sync)

    def clear_synced(self, _):
        removed = self.app.clear_synced()
        self.app.notifier.info(f"Removed {removed} synced entr{'y' if removed == 1 else 'ies'}")
        self.refresh_status()
        self.app.page.update()

    def refresh_log(self, _):
        self.log_view.value = self.app.read_sync_log()
        self.app.page.update()

    def clear_drafts(self, _):
        def _do():
            self.app.clear_form_drafts()
            self.app.notifier.info("Form drafts cleared")

        confirm(
            self.app.page,
            title="Clear form drafts?",
            message="Unsaved form progress on this device will be removed.",
            on_confirm=_do,
            confirm_label="Clear",
        )
