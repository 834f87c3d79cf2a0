"""
Network availability check used before an analysis is sent.

The check is advisory: it only decides whether to attempt the remote call.
A call can still fail mid-flight, which surfaces as a service error.
"""

import asyncio
from typing import Protocol

import httpx

from config.config import Settings
from config.logging_config import get_logger

logger = get_logger(__name__)


class ConnectivityProbe(Protocol):
    async def is_online(self) -> bool:
        ...


class StaticConnectivityProbe:
    """Reports a fixed availability, driven by the OFFLINE_MODE setting."""

    def __init__(self, online: bool = True):
        self.online = online

    async def is_online(self) -> bool:
        return self.online


class TcpConnectivityProbe:
    """
    Opens a TCP connection to the analysis host to check reachability.

    Only the connection is attempted; nothing is sent.
    """

    def __init__(self, base_url: str, timeout_seconds: float = 2.0):
        url = httpx.URL(base_url)
        self.host = url.host
        self.port = url.port or (443 if url.scheme == "https" else 80)
        self.timeout_seconds = timeout_seconds

    async def is_online(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout_seconds,
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.warning(
                "Connectivity probe failed",
                host=self.host,
                port=self.port,
                error=str(e) or type(e).__name__,
            )
            return False
        writer.close()
        await writer.wait_closed()
        return True


def get_connectivity_probe(settings: Settings) -> ConnectivityProbe:
    """Build the probe selected by settings.connectivity_probe."""
    if settings.offline_mode:
        return StaticConnectivityProbe(online=False)
    if settings.connectivity_probe == "tcp":
        return TcpConnectivityProbe(
            settings.analysis_base_url,
            timeout_seconds=settings.connectivity_timeout_seconds,
        )
    return StaticConnectivityProbe(online=True)
