"""
Process shutdown for preview servers.

SIGINT/SIGTERM set an event; the main coroutine waits on it and then awaits
``stop_all_servers()`` so no listener outlives a normal shutdown. Directories
of a process that is killed outright (SIGKILL, crash) are left on disk.
"""

import asyncio
import signal
from typing import Optional, TYPE_CHECKING

from previewhub.core.logging_config import logger

if TYPE_CHECKING:
    from previewhub.modules.preview.manager import PreviewServerManager


SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_shutdown_handlers(loop: Optional[asyncio.AbstractEventLoop] = None) -> asyncio.Event:
    """
    Register SIGINT/SIGTERM handlers on the running loop.

    Returns:
        Event that is set once a shutdown signal arrives
    """
    loop = loop or asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _handle(sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, shutting down")
        shutdown_event.set()

    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, _handle, sig)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(_handle, signal.Signals(signum)))

    return shutdown_event


def remove_shutdown_handlers(loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    """Restore default signal handling"""
    loop = loop or asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.remove_signal_handler(sig)
        except NotImplementedError:
            signal.signal(sig, signal.SIG_DFL)


async def run_until_shutdown(
    manager: "PreviewServerManager",
    shutdown_event: Optional[asyncio.Event] = None,
) -> None:
    """Block until a shutdown signal, then stop every preview server"""
    installed = shutdown_event is None
    if installed:
        shutdown_event = install_shutdown_handlers()

    try:
        await shutdown_event.wait()
    finally:
        logger.info("Stopping all preview servers before exit")
        await manager.stop_all_servers()
        if installed:
            remove_shutdown_handlers()
