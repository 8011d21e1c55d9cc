from __future__ import annotations

import flet as ft

from services.notifications import Notifier


_COLORS = {
    "info": ft.Colors.BLUE_GREY_700,
    "success": ft.Colors.GREEN_700,
    "warning": ft.Colors.AMBER_800,
    "error": ft.Colors.RED_700,
}


class SnackBarNotifier(Notifier):
    def __init__(self, page: ft.Page):
        self.page = page

    def _show(self, level: str, message: str) -> None:
        self.page.snack_bar = ft.SnackBar(ft.Text(message), bgcolor=_COLORS.get(level))
        self.page.snack_bar.open = True
        self.page.update()
