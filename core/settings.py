"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env or os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "HSSE Field"


DATA_DIR = get_default_data_dir(APP_NAME)
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "offline.db"
SYNC_LOG_PATH = LOG_DIR / "sync.log"

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


@dataclass(frozen=True)
class OfflineSettings:
    queue_max_age_ms: int = 7 * DAY_MS
    form_progress_max_age_ms: int = 24 * HOUR_MS
    default_stale_time_ms: int = 5 * MINUTE_MS
    default_max_age_ms: int = DAY_MS
    sync_error_max_len: int = 1000
    inspection_max_age_ms: int = 7 * DAY_MS


OFFLINE = OfflineSettings()


@dataclass(frozen=True)
class SupabaseSettings:
    url: str = os.environ.get("HSSE_SUPABASE_URL", "")
    key: str = os.environ.get("HSSE_SUPABASE_KEY", "")
    tenant_id: str = os.environ.get("HSSE_TENANT_ID", "")
    user_id: str = os.environ.get("HSSE_USER_ID", "")
    permits_table: str = "ptw_permits"
    validate_function: str = "validate-permit-request"
    sessions_table: str = "inspection_sessions"
    template_items_table: str = "inspection_template_items"
    responses_table: str = "area_inspection_responses"
    findings_table: str = "area_inspection_findings"

    @property
    def configured(self) -> bool:
        return bool(self.url and self.key)


SUPABASE = SupabaseSettings()


@dataclass(frozen=True)
class NetworkSettings:
    probe_host: str = os.environ.get("HSSE_PROBE_HOST", "")
    probe_port: int = 443
    probe_timeout_sec: float = 3.0
    poll_interval_sec: int = 15


NETWORK = NetworkSettings()


@dataclass(frozen=True)
class UISettings:
    app_title: str = APP_NAME
    theme_mode: str = "system"
    color_scheme_seed: str = "#0F766E"
    window_min_width: int = 900
    window_min_height: int = 600
    nav_bg: str = "#F1F5F9"
    online_color: str = "#16A34A"
    offline_color: str = "#DC2626"
    log_tail_lines: int = 100


UI = UISettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "LOG_DIR",
    "DB_PATH",
    "SYNC_LOG_PATH",
    "MINUTE_MS",
    "HOUR_MS",
    "DAY_MS",
    "OFFLINE",
    "SUPABASE",
    "NETWORK",
    "UI",
    "get_default_data_dir",
]
