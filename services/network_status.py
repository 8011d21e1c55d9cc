"""Connectivity signal with change notifications."""
from __future__ import annotations

import asyncio
import logging
import socket
from typing import Callable, Optional
from urllib.parse import urlparse

from core.settings import NETWORK, SUPABASE


logger = logging.getLogger("hsse.network")


def _default_probe_target() -> tuple[str, int]:
    host = NETWORK.probe_host
    port = NETWORK.probe_port
    if not host and SUPABASE.url:
        parsed = urlparse(SUPABASE.url)
        host = parsed.hostname or ""
        if parsed.port:
            port = parsed.port
        elif parsed.scheme == "http":
            port = 80
    return host, port


def tcp_probe(host: str, port: int, timeout: float = NETWORK.probe_timeout_sec) -> bool:
    if not host:
        return False
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class NetworkMonitor:
    def __init__(
        self,
        online: bool = True,
        *,
        probe: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._online = bool(online)
        self._listeners: set[Callable[[bool], None]] = set()
        if probe is None:
            host, port = _default_probe_target()
            probe = lambda: tcp_probe(host, port)  # noqa: E731
        self._probe = probe

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: Callable[[bool], None]) -> None:
        self._listeners.add(callback)

    def unsubscribe(self, callback: Callable[[bool], None]) -> None:
        self._listeners.discard(callback)

    def set_online(self, value: bool) -> bool:
        """Update reachability; returns True when the state actually changed."""

        value = bool(value)
        if value == self._online:
            return False
        self._online = value
        logger.info("Network is now %s", "online" if value else "offline")
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as exc:
                logger.error("Network listener %r failed: %s", listener, exc)
        return True

    def check(self) -> bool:
        try:
            return bool(self._probe())
        except Exception as exc:
            logger.warning("Connectivity probe failed: %s", exc)
            return False

    def probe(self) -> bool:
        reachable = self.check()
        self.set_online(reachable)
        return reachable

    async def watch(self, interval_sec: Optional[float] = None) -> None:
        """Poll the probe until cancelled."""

        interval = interval_sec or NETWORK.poll_interval_sec
        while True:
            # Listeners fire on the loop thread, not the probe worker.
            self.set_online(await asyncio.to_thread(self.check))
            await asyncio.sleep(interval)


__all__ = ["NetworkMonitor", "tcp_probe"]
