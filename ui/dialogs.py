import flet as ft


def open_alert_dialog(page: ft.Page, *, title: str, content: ft.Control, actions: list[ft.Control]):
    dlg = ft.AlertDialog(
        modal=True,
        title=ft.Text(title),
        content=content,
        actions=actions,
        actions_alignment=ft.MainAxisAlignment.END,
    )
    page.dialog = dlg
    dlg.open = True
    page.update()
    return dlg


def close_alert_dialog(page: ft.Page):
    if page.dialog:
        page.dialog.open = False
        page.update()


def confirm(page: ft.Page, *, title: str, message: str, on_confirm, confirm_label: str = "Discard"):
    def _yes(e):
        close_alert_dialog(page)
        on_confirm()

    def _no(e):
        close_alert_dialog(page)

    return open_alert_dialog(
        page,
        title=title,
        content=ft.Text(message),
        actions=[
            ft.TextButton("Cancel", on_click=_no),
            ft.FilledButton(confirm_label, on_click=_yes),
        ],
    )
