"""
PreviewHub - Test Configuration and Fixtures
"""
import os
import socket
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Set testing environment
os.environ['ENVIRONMENT'] = 'testing'
os.environ['LOG_FILE'] = ''

from previewhub.main import create_app
from previewhub.modules.preview import PreviewServerManager


def find_free_port() -> int:
    """Ask the OS for a port that is free right now"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def preview_root(tmp_path: Path) -> Path:
    """Directory that holds materialized previews"""
    return tmp_path / "preview-projects"


@pytest.fixture
def base_port() -> int:
    return find_free_port()


@pytest_asyncio.fixture
async def manager(preview_root: Path, base_port: int) -> AsyncGenerator[PreviewServerManager, None]:
    """Manager with a small capacity; every preview is stopped afterwards"""
    preview_manager = PreviewServerManager(
        root_path=preview_root,
        base_port=base_port,
        max_servers=3,
        port_attempts=50,
    )
    yield preview_manager
    await preview_manager.stop_all_servers()


@pytest_asyncio.fixture
async def http_client() -> AsyncGenerator[AsyncClient, None]:
    """Plain client for talking to running previews over real sockets"""
    async with AsyncClient(timeout=5.0) as client:
        yield client


@pytest_asyncio.fixture
async def client(manager: PreviewServerManager) -> AsyncGenerator[AsyncClient, None]:
    """Control API client bound to the test manager"""
    app = create_app(manager=manager)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac
