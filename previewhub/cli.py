#!/usr/bin/env python3
"""
PreviewHub CLI - Main Entry Point

Usage:
    previewhub serve                     # Run the control API
    previewhub serve --port 9000         # ...on another port
    previewhub preview ./my-site         # Serve a local directory until Ctrl+C
    previewhub --help                    # Show help
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from previewhub.core.config import settings
from previewhub.core.exceptions import PreviewHubError


console = Console()


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog="previewhub",
        description="PreviewHub - live previews for AI generated projects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  previewhub serve                       Start the control API on port 8000
  previewhub preview ./dist              Preview a local build
  previewhub preview ./site -i landing   Preview with a project id
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Run the preview control API")
    serve_parser.add_argument("--host", default=settings.SERVER_HOST, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=settings.SERVER_PORT, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    preview_parser = subparsers.add_parser("preview", help="Serve a local directory as a preview")
    preview_parser.add_argument("directory", help="Directory with the project files")
    preview_parser.add_argument("--project-id", "-i", default=None, help="Project id (default: directory name)")
    preview_parser.add_argument("--base-port", type=int, default=settings.PREVIEW_BASE_PORT, help="First port to try")

    return parser


def run_serve(args: argparse.Namespace) -> int:
    import uvicorn

    console.print(f"[cyan]Starting {settings.APP_NAME} on http://{args.host}:{args.port}[/cyan]")
    uvicorn.run("previewhub.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


async def _run_preview(args: argparse.Namespace) -> int:
    from previewhub.modules.preview import PreviewServerManager, run_until_shutdown
    from previewhub.modules.preview.files import load_directory
    from previewhub.modules.preview.shutdown import install_shutdown_handlers, remove_shutdown_handlers

    directory = Path(args.directory).resolve()
    files = load_directory(directory)
    project_id = args.project_id or directory.name

    manager = PreviewServerManager(base_port=args.base_port)
    shutdown_event = install_shutdown_handlers()

    try:
        info = await manager.create_preview_server(project_id, files)

        console.print(f"\n[green]✓ Preview running:[/green] [bold]{info.url}[/bold]")
        console.print(f"  Server ID: {info.server_id}")
        console.print(f"  Files:     {len(files)}")
        console.print("\n[dim]Press Ctrl+C to stop[/dim]")

        await run_until_shutdown(manager, shutdown_event)
    finally:
        remove_shutdown_handlers()

    console.print("\n[yellow]Preview stopped[/yellow]")
    return 0


def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        sys.exit(run_serve(args))

    elif args.command == "preview":
        try:
            sys.exit(asyncio.run(_run_preview(args)))
        except PreviewHubError as e:
            console.print(f"\n[red]✗ {e.message}[/red]")
            sys.exit(1)

    parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
    main()
