"""
Port allocation for preview servers.

Probing is advisory: a candidate that looks free may still be taken by the
time we bind it. The bind is authoritative; a failed bind just moves on to
the next candidate.
"""

import asyncio
import socket
import sys
from typing import Optional, Set, Tuple

from previewhub.core.config import settings
from previewhub.core.exceptions import PortExhaustedError
from previewhub.core.logging_config import logger


async def is_port_available(port: int, host: str = None, timeout: float = None) -> bool:
    """Check whether nothing is accepting connections on ``host:port``"""
    host = host or settings.PREVIEW_PROBE_HOST
    timeout = timeout if timeout is not None else settings.PREVIEW_PROBE_TIMEOUT

    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    except asyncio.TimeoutError:
        # Something holds the port but is not answering
        return False
    except OSError:
        return True

    writer.close()
    try:
        await writer.wait_closed()
    except OSError as e:
        logger.debug(f"Probe connection to port {port} closed with error: {e}")
    return False


def bind_socket(host: str, port: int, backlog: int = 128) -> socket.socket:
    """
    Bind and listen on ``host:port``.

    Listening right away makes the claim exclusive, so a second bind of the
    same port (even with SO_REUSEADDR) fails.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        if sys.platform != "win32":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(backlog)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


class PortAllocator:
    """Hands out ports starting at ``base_port``, remembering the ones in use"""

    def __init__(
        self,
        base_port: Optional[int] = None,
        max_attempts: Optional[int] = None,
        bind_host: Optional[str] = None,
        probe_host: Optional[str] = None,
        probe_timeout: Optional[float] = None,
    ):
        self.base_port = base_port if base_port is not None else settings.PREVIEW_BASE_PORT
        self.max_attempts = max_attempts if max_attempts is not None else settings.PREVIEW_PORT_ATTEMPTS
        self.bind_host = bind_host or settings.PREVIEW_BIND_HOST
        self.probe_host = probe_host or settings.PREVIEW_PROBE_HOST
        self.probe_timeout = probe_timeout if probe_timeout is not None else settings.PREVIEW_PROBE_TIMEOUT
        self.ports_in_use: Set[int] = set()

    async def allocate(self) -> Tuple[int, socket.socket]:
        """
        Find and bind a free port.

        Returns:
            (port, listening socket); the caller owns the socket

        Raises:
            PortExhaustedError: if no candidate could be bound
        """
        for port in range(self.base_port, self.base_port + self.max_attempts):
            if port in self.ports_in_use:
                continue

            if not await is_port_available(port, self.probe_host, self.probe_timeout):
                continue

            # Another create may have claimed it while we were probing
            if port in self.ports_in_use:
                continue

            try:
                sock = bind_socket(self.bind_host, port)
            except OSError as e:
                logger.debug(f"Port {port} probed free but bind failed: {e}")
                continue

            self.ports_in_use.add(port)
            return port, sock

        raise PortExhaustedError(self.base_port, self.max_attempts)

    def release(self, port: int) -> None:
        """Make a port available to future allocations"""
        self.ports_in_use.discard(port)
