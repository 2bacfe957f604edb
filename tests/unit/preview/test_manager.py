"""
Unit Tests for PreviewServerManager
Previews run real listeners; requests go over 127.0.0.1
"""
import asyncio

import pytest

from previewhub.core.exceptions import (
    InvalidFilePathError,
    PortExhaustedError,
    PreviewNotFoundError,
    PreviewStartupError,
)
from previewhub.modules.preview import ports
from previewhub.modules.preview.manager import PreviewServerManager, PreviewState


SITE = {
    "index.html": "<h1>Hello Preview</h1>",
    "js/app.js": {"content": "console.log('hi')", "type": "javascript"},
}


async def _assert_closed(port: int):
    with pytest.raises(OSError):
        _, writer = await asyncio.open_connection("127.0.0.1", port)
        writer.close()


class TestCreatePreview:
    """Tests for create_preview_server"""

    @pytest.mark.asyncio
    async def test_serves_files_over_http(self, manager, http_client):
        info = await manager.create_preview_server("site", SITE)

        index = await http_client.get(f"http://127.0.0.1:{info.port}/")
        script = await http_client.get(f"http://127.0.0.1:{info.port}/js/app.js")

        assert index.status_code == 200
        assert index.text == "<h1>Hello Preview</h1>"
        assert script.text == "console.log('hi')"
        assert index.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_registers_running_instance(self, manager, preview_root):
        info = await manager.create_preview_server("site", SITE)

        instance = manager.get_server(info.server_id)
        assert instance.state == PreviewState.RUNNING
        assert instance.port == info.port
        assert instance.root_directory == preview_root.resolve() / info.server_id
        assert (instance.root_directory / "js" / "app.js").is_file()
        assert info.url.endswith(f":{info.port}")

    @pytest.mark.asyncio
    async def test_ids_and_ports_are_unique(self, manager):
        first = await manager.create_preview_server("site", SITE)
        second = await manager.create_preview_server("site", SITE)

        assert first.server_id != second.server_id
        assert first.port != second.port
        assert first.server_id.startswith("preview_site_")

    @pytest.mark.asyncio
    async def test_project_id_is_sanitized(self, manager):
        info = await manager.create_preview_server("my site/v1", {})

        assert info.server_id.startswith("preview_my-site-v1_")

    @pytest.mark.asyncio
    async def test_listing_when_no_index(self, manager, http_client):
        info = await manager.create_preview_server("files", {"a.txt": "A", "b.bin": b"\x00\x01"})

        response = await http_client.get(f"http://127.0.0.1:{info.port}/")

        assert '<a href="/a.txt">a.txt</a>' in response.text
        assert '<a href="/b.bin" download>b.bin</a>' in response.text

    @pytest.mark.asyncio
    async def test_api_placeholder_over_http(self, manager, http_client):
        info = await manager.create_preview_server("site", SITE)

        response = await http_client.post(f"http://127.0.0.1:{info.port}/api/login", json={"user": "a"})

        data = response.json()
        assert data["method"] == "POST"
        assert data["path"] == "/api/login"
        assert data["body"] == {"user": "a"}

    @pytest.mark.asyncio
    async def test_invalid_path_creates_nothing(self, manager, preview_root):
        with pytest.raises(InvalidFilePathError):
            await manager.create_preview_server("bad", {"index.html": "ok", "../escape.txt": "x"})

        assert manager.servers == {}
        assert manager.port_allocator.ports_in_use == set()
        assert not preview_root.exists() or list(preview_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_port_exhaustion_leaves_nothing(self, manager, preview_root, monkeypatch):
        async def never_free(port, host=None, timeout=None):
            return False

        monkeypatch.setattr(ports, "is_port_available", never_free)

        with pytest.raises(PortExhaustedError):
            await manager.create_preview_server("site", SITE)

        assert manager.servers == {}
        assert not preview_root.exists() or list(preview_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_startup_failure_rolls_back(self, manager, preview_root, monkeypatch):
        async def failing_listener(server_id, root_directory, sock, port):
            raise PreviewStartupError(server_id, port, "boom")

        monkeypatch.setattr(manager, "_start_listener", failing_listener)

        with pytest.raises(PreviewStartupError):
            await manager.create_preview_server("site", SITE)

        assert manager.servers == {}
        assert manager.port_allocator.ports_in_use == set()
        assert list(preview_root.iterdir()) == []


class TestCapacity:
    """Tests for FIFO eviction"""

    @pytest.mark.asyncio
    async def test_oldest_is_evicted(self, manager):
        created = [await manager.create_preview_server(f"p{i}", SITE) for i in range(4)]
        evicted = manager.servers.get(created[0].server_id)

        assert evicted is None
        assert len(manager.servers) == 3
        assert [s["id"] for s in manager.get_active_servers()] == [c.server_id for c in created[1:]]
        assert not (manager.root_path / created[0].server_id).exists()

    @pytest.mark.asyncio
    async def test_concurrent_creates_respect_capacity(self, manager, preview_root):
        results = await asyncio.gather(
            *(manager.create_preview_server(f"c{i}", SITE) for i in range(6))
        )

        assert len(results) == 6
        assert len(manager.servers) == 3
        running_ports = [instance.port for instance in manager.servers.values()]
        assert len(set(running_ports)) == 3
        assert {p.name for p in preview_root.iterdir()} == set(manager.servers)

    @pytest.mark.asyncio
    async def test_cancel_during_final_capacity_check_rolls_back(self, preview_root, base_port, monkeypatch):
        manager = PreviewServerManager(root_path=preview_root, base_port=base_port, max_servers=1)
        try:
            first = await manager.create_preview_server("first", SITE)

            async def skip_early_eviction():
                return None

            evicting = asyncio.Event()

            async def hanging_stop(server_id):
                evicting.set()
                await asyncio.sleep(3600)

            # Leave eviction to the check that runs once the listener is up
            monkeypatch.setattr(manager, "_evict_for_capacity", skip_early_eviction)
            monkeypatch.setattr(manager, "stop_preview_server", hanging_stop)

            create = asyncio.create_task(manager.create_preview_server("second", SITE))
            await asyncio.wait_for(evicting.wait(), timeout=10)
            create.cancel()
            with pytest.raises(asyncio.CancelledError):
                await create

            assert list(manager.servers) == [first.server_id]
            assert manager.port_allocator.ports_in_use == {first.port}
            assert [p.name for p in preview_root.iterdir()] == [first.server_id]
            leftover = [t for t in asyncio.all_tasks() if t.get_name().startswith("preview:preview_second_")]
            assert leftover == []
        finally:
            monkeypatch.undo()
            await manager.stop_all_servers()

    def test_max_servers_must_be_positive(self, preview_root):
        with pytest.raises(ValueError):
            PreviewServerManager(root_path=preview_root, max_servers=0)


class TestStopPreview:
    """Tests for stop_preview_server and stop_all_servers"""

    @pytest.mark.asyncio
    async def test_stop_closes_port_and_removes_files(self, manager):
        info = await manager.create_preview_server("site", SITE)
        instance = manager.get_server(info.server_id)

        await manager.stop_preview_server(info.server_id)

        assert info.server_id not in manager.servers
        assert instance.state == PreviewState.GONE
        assert not instance.root_directory.exists()
        assert info.port not in manager.port_allocator.ports_in_use
        await _assert_closed(info.port)

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, manager):
        info = await manager.create_preview_server("site", SITE)

        await manager.stop_preview_server(info.server_id)
        await manager.stop_preview_server(info.server_id)
        await manager.stop_preview_server("preview_unknown_0000")

        assert manager.servers == {}

    @pytest.mark.asyncio
    async def test_stop_all(self, manager, preview_root):
        infos = [await manager.create_preview_server(f"p{i}", SITE) for i in range(3)]

        await manager.stop_all_servers()

        assert manager.servers == {}
        assert manager.get_active_servers() == []
        assert list(preview_root.iterdir()) == []
        for info in infos:
            await _assert_closed(info.port)

    @pytest.mark.asyncio
    async def test_stop_all_when_empty(self, manager):
        await manager.stop_all_servers()

        assert manager.servers == {}


class TestUpdatePreview:
    """Tests for update_preview_files"""

    @pytest.mark.asyncio
    async def test_update_merges_files(self, manager, http_client):
        info = await manager.create_preview_server("site", {"index.html": "v1", "a.txt": "old"})

        updated = await manager.update_preview_files(info.server_id, {"a.txt": "new", "b.txt": "added"})

        base = f"http://127.0.0.1:{info.port}"
        assert updated == 2
        assert (await http_client.get(f"{base}/index.html")).text == "v1"
        assert (await http_client.get(f"{base}/a.txt")).text == "new"
        assert (await http_client.get(f"{base}/b.txt")).text == "added"
        instance = manager.get_server(info.server_id)
        assert instance.port == info.port
        assert instance.updated_at is not None

    @pytest.mark.asyncio
    async def test_stop_during_update_removes_directory(self, manager):
        info = await manager.create_preview_server("site", SITE)
        root = manager.get_server(info.server_id).root_directory
        bulk = {f"bulk/{i}.txt": "x" * 100 for i in range(2000)}

        update = asyncio.create_task(manager.update_preview_files(info.server_id, bulk))
        await asyncio.sleep(0.01)
        await manager.stop_preview_server(info.server_id)
        result = (await asyncio.gather(update, return_exceptions=True))[0]

        assert result == 2000 or isinstance(result, PreviewNotFoundError)
        assert manager.servers == {}
        assert not root.exists()

    @pytest.mark.asyncio
    async def test_update_after_stop_started_is_rejected(self, manager):
        info = await manager.create_preview_server("site", SITE)
        instance = manager.get_server(info.server_id)

        async with instance.lock:
            update = asyncio.create_task(manager.update_preview_files(info.server_id, {"late.txt": "x"}))
            await asyncio.sleep(0.01)
            instance.state = PreviewState.STOPPING

        with pytest.raises(PreviewNotFoundError):
            await update
        assert not (instance.root_directory / "late.txt").exists()
        instance.state = PreviewState.RUNNING

    @pytest.mark.asyncio
    async def test_update_unknown_preview(self, manager):
        with pytest.raises(PreviewNotFoundError):
            await manager.update_preview_files("preview_missing_0000", {"a.txt": "x"})

    @pytest.mark.asyncio
    async def test_update_rejects_bad_path(self, manager):
        info = await manager.create_preview_server("site", SITE)

        with pytest.raises(InvalidFilePathError):
            await manager.update_preview_files(info.server_id, {"/etc/passwd": "x"})

        assert manager.get_server(info.server_id).state == PreviewState.RUNNING

    @pytest.mark.asyncio
    async def test_get_unknown_server(self, manager):
        with pytest.raises(PreviewNotFoundError) as exc_info:
            manager.get_server("nope")

        assert exc_info.value.code == "PREVIEW_NOT_FOUND"
