# ui/app_shell.py
from __future__ import annotations

import asyncio
import logging
import flet as ft

from core.settings import NETWORK, SYNC_LOG_PATH, UI

from .pages.permits import PermitsPage
from .pages.settings import SettingsPage
from .notifier import SnackBarNotifier

from services.network_status import NetworkMonitor
from services.offline_area_inspection import OfflineAreaInspection
from services.offline_permits import OfflinePermitCreation
from storage.offline_cache import CACHE_STORES, OfflineDataCache


logger = logging.getLogger("hsse.ui")


class AppShell:
    def __init__(self, page: ft.Page):
        self.page = page

        self.page.title = UI.app_title
        self.page.horizontal_alignment = ft.CrossAxisAlignment.STRETCH
        self.page.vertical_alignment = ft.MainAxisAlignment.START

        # --- offline stack (before the pages, they read from it) ---
        self.cache = OfflineDataCache()
        self.network = NetworkMonitor(online=False)
        self.notifier = SnackBarNotifier(page)
        self.permits = OfflinePermitCreation(self.cache, self.network, notifier=self.notifier)
        self.inspections = OfflineAreaInspection(self.cache, self.network, notifier=self.notifier)
        self.network.subscribe(self._on_network_change)

        self._permits = PermitsPage(self)
        self._settings = SettingsPage(self)

        self.content = ft.Container(expand=True)
        self.net_icon = ft.Icon(ft.Icons.CLOUD_OFF, color=UI.offline_color, tooltip="Offline")

        self.nav = ft.NavigationRail(
            selected_index=0,
            label_type=ft.NavigationRailLabelType.ALL,
            min_width=90,
            min_extended_width=200,
            group_alignment=-0.9,
            on_change=self.on_nav_change,
            leading=ft.Container(self.net_icon, padding=ft.padding.only(top=8)),
            destinations=[
                ft.NavigationRailDestination(
                    icon=ft.Icons.ASSIGNMENT_OUTLINED,
                    selected_icon=ft.Icons.ASSIGNMENT,
                    label="Permits",
                ),
                ft.NavigationRailDestination(
                    icon=ft.Icons.SETTINGS_OUTLINED,
                    selected_icon=ft.Icons.SETTINGS,
                    label="Settings",
                ),
            ],
        )

        self.root = ft.Row(
            controls=[
                ft.Container(self.nav, width=88, bgcolor=UI.nav_bg),
                ft.VerticalDivider(width=1),
                self.content,
            ],
            expand=True,
            spacing=0,
        )

        self._watch_task: asyncio.Task | None = None
        self._active_view: str | None = None  # "permits" | "settings"

    # ---------- network ----------
    def _render_network(self):
        online = self.network.is_online
        self.net_icon.name = ft.Icons.CLOUD_DONE if online else ft.Icons.CLOUD_OFF
        self.net_icon.color = UI.online_color if online else UI.offline_color
        self.net_icon.tooltip = "Online" if online else "Offline"

    def _on_network_change(self, online: bool):
        self._render_network()
        self.page.update()
        if online:
            self.page.run_task(self._refresh_after_sync)

    async def _refresh_after_sync(self):
        # The queues schedule their own auto-sync on reconnect; wait for them.
        for task in (self.permits.queue.auto_sync_task, self.inspections.auto_sync_task):
            if task is None:
                continue
            try:
                await task
            except Exception as exc:
                logger.error("Auto-sync failed: %s", exc)
        self.refresh_active()

    async def check_connection(self) -> bool:
        online = await asyncio.to_thread(self.network.check)
        self.network.set_online(online)
        return online

    def _start_network_watch(self):
        self._stop_network_watch()
        self._watch_task = self.page.run_task(self.network.watch, NETWORK.poll_interval_sec)

    def _stop_network_watch(self):
        if self._watch_task:
            self._watch_task.cancel()
        self._watch_task = None

    # ---------- mount ----------
    def mount(self):
        pruned = self.cache.prune_expired()
        if pruned:
            logger.info("Pruned %d expired cache entr%s", pruned, "y" if pruned == 1 else "ies")

        self.page.controls.clear()
        self.page.add(self.root)

        self._active_view = "permits"
        self.content.content = self._permits.view
        self._render_network()
        self.page.update()

        self._permits.activate_from_menu()
        self._start_network_watch()

    def shutdown(self):
        self._stop_network_watch()
        self.permits.close()
        self.inspections.close()
        self.network.unsubscribe(self._on_network_change)

    def refresh_active(self):
        if self._active_view == "permits":
            self._permits.load()
        elif self._active_view == "settings":
            self._settings.activate_from_menu()

    # ---------- navigation ----------
    def on_nav_change(self, e: ft.ControlEvent):
        idx = int(e.control.selected_index)

        if idx == 0:
            self._active_view = "permits"
            self.content.content = self._permits.view
            self._permits.activate_from_menu()
        else:
            self._active_view = "settings"
            self.content.content = self._settings.view
            self._settings.activate_from_menu()

        self.page.update()

    # ---------- helpers for pages ----------
    def sync_status(self) -> dict:
        status = self.permits.queue.status()
        status["inspections_pending"] = self.inspections.pending_count
        status["inspections_failed"] = self.inspections.failed_count
        return status

    async def sync_all(self):
        await self.permits.sync_pending_permits()
        await self.inspections.sync_all()

    def clear_synced(self) -> int:
        return self.permits.queue.clear_synced() + self.inspections.clear_synced()

    def clear_form_drafts(self):
        self.cache.clear_store(CACHE_STORES.FORM_PROGRESS)

    def read_sync_log(self, lines: int = UI.log_tail_lines) -> str:
        try:
            with open(SYNC_LOG_PATH, "r", encoding="utf-8") as fh:
                content = fh.readlines()
        except FileNotFoundError:
            return "No sync log yet."
        content = [line.rstrip("\n") for line in content[-lines:]]
        return "\n".join(content)
