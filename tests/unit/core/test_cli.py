"""
Unit Tests for the command line parser
"""
import argparse
import asyncio
import signal
import sys

import pytest

from previewhub.cli import _run_preview, create_parser, main
from previewhub.core.config import settings
from previewhub.core.exceptions import PortExhaustedError
from previewhub.modules.preview import PreviewServerManager


class TestCLI:

    def test_serve_defaults(self):
        args = create_parser().parse_args(["serve"])

        assert args.command == "serve"
        assert args.port == settings.SERVER_PORT
        assert args.reload is False

    def test_preview_options(self):
        args = create_parser().parse_args(["preview", "./site", "-i", "landing", "--base-port", "6100"])

        assert args.directory == "./site"
        assert args.project_id == "landing"
        assert args.base_port == 6100

    def test_no_command_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 1

    def test_preview_missing_directory(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["preview", str(tmp_path / "missing")])

        assert exc_info.value.code == 1

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
    @pytest.mark.asyncio
    async def test_failed_preview_restores_signal_handlers(self, tmp_path, monkeypatch):
        (tmp_path / "index.html").write_text("<h1>x</h1>")

        async def no_ports(self, project_id, files=None):
            raise PortExhaustedError(5000, 1)

        monkeypatch.setattr(PreviewServerManager, "create_preview_server", no_ports)
        args = argparse.Namespace(directory=str(tmp_path), project_id="site", base_port=5000)

        with pytest.raises(PortExhaustedError):
            await _run_preview(args)

        loop = asyncio.get_running_loop()
        assert loop.remove_signal_handler(signal.SIGINT) is False
        assert loop.remove_signal_handler(signal.SIGTERM) is False
