"""
Preview Server Manager
Runs ephemeral static preview servers for generated projects

Each preview gets its own port, its own directory under the preview root and
its own uvicorn server running inside the current event loop. The registry
holds at most ``max_servers`` previews; creating one more evicts the oldest.
"""

import asyncio
import contextlib
import re
import secrets
import socket
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import uvicorn

from previewhub.core.config import settings
from previewhub.core.exceptions import PreviewNotFoundError, PreviewStartupError
from previewhub.core.logging_config import logger
from previewhub.core.preview_url import get_preview_url
from previewhub.modules.preview.files import (
    FileValue,
    ResolvedFile,
    create_directory,
    materialize_files,
    remove_directory,
    resolve_files,
)
from previewhub.modules.preview.ports import PortAllocator
from previewhub.modules.preview.site import create_preview_app


class PreviewState(str, Enum):
    CREATING = "creating"
    RUNNING = "running"
    STOPPING = "stopping"
    GONE = "gone"


class EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves process signals to the host application"""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


@dataclass
class PreviewServerInfo:
    """Result of creating a preview"""
    port: int
    url: str
    server_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"port": self.port, "url": self.url, "server_id": self.server_id}


@dataclass
class PreviewInstance:
    """A running preview server"""
    id: str
    project_id: str
    port: int
    url: str
    root_directory: Path
    server: EmbeddedServer
    task: asyncio.Task
    sock: socket.socket
    state: PreviewState = PreviewState.RUNNING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None
    # Held by file updates and by stop while it removes the directory
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "port": self.port, "url": self.url}


class PreviewServerManager:
    """Creates, updates and tears down preview servers"""

    def __init__(
        self,
        root_path: Optional[Path] = None,
        base_port: Optional[int] = None,
        max_servers: Optional[int] = None,
        port_attempts: Optional[int] = None,
        bind_host: Optional[str] = None,
        probe_host: Optional[str] = None,
        startup_timeout: Optional[float] = None,
    ):
        self.root_path = Path(root_path).resolve() if root_path else settings.preview_root_path
        self.max_servers = max_servers if max_servers is not None else settings.PREVIEW_MAX_SERVERS
        if self.max_servers < 1:
            raise ValueError(f"max_servers must be at least 1, got {self.max_servers}")
        self.startup_timeout = startup_timeout if startup_timeout is not None else settings.PREVIEW_STARTUP_TIMEOUT
        self.port_allocator = PortAllocator(
            base_port=base_port,
            max_attempts=port_attempts,
            bind_host=bind_host,
            probe_host=probe_host,
        )

        # Insertion ordered: oldest first
        self.servers: Dict[str, PreviewInstance] = {}
        self._stopping: Dict[str, PreviewInstance] = {}
        self._pending_creates = 0

    # ==================== PUBLIC API ====================

    async def create_preview_server(
        self,
        project_id: str,
        files: Optional[Mapping[str, FileValue]] = None,
    ) -> PreviewServerInfo:
        """
        Materialize ``files`` and serve them on a fresh port.

        Args:
            project_id: Caller's project identifier (used in the server id)
            files: Mapping of relative path -> content or {content, type}

        Returns:
            PreviewServerInfo with port, url and server_id

        Raises:
            InvalidFilePathError / ValidationError: bad file entries (nothing created)
            PortExhaustedError: no port could be bound
            FileSystemError: writing the files failed
            PreviewStartupError: the listener did not come up
        """
        resolved = resolve_files(files)

        self._pending_creates += 1
        try:
            await self._evict_for_capacity()
            return await self._start_preview(project_id, resolved)
        finally:
            self._pending_creates -= 1

    async def stop_preview_server(self, server_id: str) -> None:
        """Stop a preview and delete its files. Unknown ids are ignored."""
        instance = self.servers.pop(server_id, None)
        if instance is None:
            logger.debug(f"Stop requested for unknown preview {server_id}")
            return

        instance.state = PreviewState.STOPPING
        self._stopping[server_id] = instance
        try:
            await self._close_listener(instance)
            async with instance.lock:
                try:
                    await remove_directory(instance.root_directory)
                except OSError as e:
                    logger.warning(f"Failed to cleanup project files for {server_id}: {e}")
        finally:
            self.port_allocator.release(instance.port)
            self._stopping.pop(server_id, None)
            instance.state = PreviewState.GONE

        logger.log_preview_event(server_id, "stopped", port=instance.port)

    async def stop_all_servers(self) -> None:
        """Stop every registered preview concurrently"""
        server_ids = list(self.servers)
        if not server_ids:
            return

        results = await asyncio.gather(
            *(self.stop_preview_server(server_id) for server_id in server_ids),
            return_exceptions=True
        )
        for server_id, result in zip(server_ids, results):
            if isinstance(result, BaseException):
                logger.error(f"Error stopping preview {server_id}: {result}")

        logger.info(f"Stopped {len(server_ids)} preview servers")

    def get_active_servers(self) -> List[Dict[str, Any]]:
        """Snapshot of running previews, oldest first"""
        return [
            instance.to_dict()
            for instance in self.servers.values()
            if instance.state == PreviewState.RUNNING
        ]

    def get_server(self, server_id: str) -> PreviewInstance:
        """Look up a running preview"""
        instance = self.servers.get(server_id)
        if instance is None or instance.state != PreviewState.RUNNING:
            raise PreviewNotFoundError(server_id)
        return instance

    async def update_preview_files(
        self,
        server_id: str,
        files: Mapping[str, FileValue],
    ) -> int:
        """
        Write ``files`` into a running preview's directory.

        Files not mentioned are kept; the server keeps running on the same port.
        A stop that starts meanwhile waits for the writes before removing the
        directory; an update that starts after a stop raises PreviewNotFoundError.

        Returns:
            Number of files written
        """
        instance = self.get_server(server_id)
        resolved = resolve_files(files)

        async with instance.lock:
            if instance.state != PreviewState.RUNNING:
                raise PreviewNotFoundError(server_id)
            await materialize_files(instance.root_directory, resolved)
        instance.updated_at = datetime.now(timezone.utc)

        logger.log_preview_event(server_id, f"updated {len(resolved)} files", port=instance.port)
        return len(resolved)

    # ==================== INTERNALS ====================

    async def _evict_for_capacity(self) -> None:
        # In-flight creates count too, so concurrent creates cannot overshoot
        while self.servers and len(self.servers) + self._pending_creates > self.max_servers:
            oldest_id = next(iter(self.servers))
            logger.info(f"Preview capacity reached ({self.max_servers}), evicting {oldest_id}")
            try:
                await self.stop_preview_server(oldest_id)
            except Exception as e:
                logger.log_error_with_context(e, "preview eviction", server_id=oldest_id)
                self.servers.pop(oldest_id, None)

    def _generate_server_id(self, project_id: str) -> str:
        safe_project = re.sub(r"[^A-Za-z0-9_-]", "-", project_id or "project")[:64]
        while True:
            server_id = f"{settings.PREVIEW_ID_PREFIX}_{safe_project}_{secrets.token_hex(4)}"
            if server_id not in self.servers and server_id not in self._stopping:
                return server_id

    async def _start_preview(self, project_id: str, files: List[ResolvedFile]) -> PreviewServerInfo:
        server_id = self._generate_server_id(project_id)
        port, sock = await self.port_allocator.allocate()
        root_directory = self.root_path / server_id

        server: Optional[EmbeddedServer] = None
        task: Optional[asyncio.Task] = None
        try:
            await create_directory(root_directory)
            await materialize_files(root_directory, files)
            server, task = await self._start_listener(server_id, root_directory, sock, port)

            # Concurrent creates may have filled the registry while this one was starting
            while self.servers and len(self.servers) >= self.max_servers:
                await self.stop_preview_server(next(iter(self.servers)))
        except (Exception, asyncio.CancelledError):
            if task is not None:
                server.should_exit = True
                await self._await_server_task(server_id, task)
            sock.close()
            self.port_allocator.release(port)
            try:
                await remove_directory(root_directory)
            except OSError as cleanup_error:
                logger.warning(f"Failed to cleanup {root_directory} after failed create: {cleanup_error}")
            raise

        url = get_preview_url(port)
        self.servers[server_id] = PreviewInstance(
            id=server_id,
            project_id=project_id,
            port=port,
            url=url,
            root_directory=root_directory,
            server=server,
            task=task,
            sock=sock,
        )

        logger.log_preview_event(server_id, f"started at {url}", port=port, files=len(files))
        return PreviewServerInfo(port=port, url=url, server_id=server_id)

    async def _start_listener(
        self,
        server_id: str,
        root_directory: Path,
        sock: socket.socket,
        port: int,
    ) -> Tuple[EmbeddedServer, asyncio.Task]:
        app = create_preview_app(root_directory, server_id)
        config = uvicorn.Config(
            app,
            host=self.port_allocator.bind_host,
            port=port,
            lifespan="off",
            access_log=False,
            log_config=None,
            timeout_graceful_shutdown=5,
        )
        server = EmbeddedServer(config)
        task = asyncio.create_task(server.serve(sockets=[sock]), name=f"preview:{server_id}")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.startup_timeout
        while not server.started:
            if task.done():
                error = None if task.cancelled() else task.exception()
                raise PreviewStartupError(server_id, port, str(error or "server exited")) from error
            if loop.time() > deadline:
                server.should_exit = True
                await self._await_server_task(server_id, task)
                raise PreviewStartupError(server_id, port, f"not started after {self.startup_timeout}s")
            await asyncio.sleep(0.02)

        return server, task

    async def _close_listener(self, instance: PreviewInstance) -> None:
        instance.server.should_exit = True
        await self._await_server_task(instance.id, instance.task)
        instance.sock.close()

    async def _await_server_task(self, server_id: str, task: asyncio.Task) -> None:
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.startup_timeout + 5)
        except asyncio.TimeoutError:
            logger.warning(f"Preview {server_id} did not shut down in time, cancelling")
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
        except Exception as e:
            logger.warning(f"Preview {server_id} listener exited with error: {e}")
