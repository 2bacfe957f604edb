"""
Per-preview web app.

Each preview server runs one of these apps over its own root directory:
- GET /<path>     -> static file, else the root index.html, else a file listing
- ANY /api/<path> -> JSON placeholder (generated projects have no live backend)
"""

import html
import json
from pathlib import Path
from typing import Any, List, Optional
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse

from previewhub.core.middleware import PreviewHeadersMiddleware
from previewhub.modules.preview.files import is_text_file, list_materialized_files


API_PLACEHOLDER_MESSAGE = "API endpoint placeholder - implement your backend logic here"

API_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]

LISTING_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Project Preview</title>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; padding: 20px; }}
        .header {{ border-bottom: 1px solid #eee; padding-bottom: 20px; margin-bottom: 20px; }}
        .files {{ list-style: none; padding: 0; }}
        .files li {{ padding: 8px 0; border-bottom: 1px solid #f5f5f5; }}
        .files li:last-child {{ border-bottom: none; }}
        .files a {{ text-decoration: none; color: #007acc; }}
        .files a:hover {{ text-decoration: underline; }}
    </style>
</head>
<body>
    <div class="header">
        <h1>Project Preview</h1>
        <p>Your generated project files are ready!</p>
    </div>
    <ul class="files">{items}</ul>
</body>
</html>"""


def render_file_listing(file_names: List[str]) -> str:
    """HTML page linking every file; non-text files get a download link"""
    items = []
    for name in file_names:
        href = "/" + quote(name)
        download = "" if is_text_file(name) else " download"
        items.append(f'<li><a href="{href}"{download}>{html.escape(name)}</a></li>')
    return LISTING_TEMPLATE.format(items="".join(items))


def resolve_static_path(root: Path, request_path: str) -> Optional[Path]:
    """
    Map a URL path to a file inside ``root``.

    Directories resolve to their index.html. Anything outside ``root`` or
    missing resolves to None.
    """
    candidate = (root / request_path.lstrip("/")).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    if candidate.is_dir():
        candidate = candidate / "index.html"
    return candidate if candidate.is_file() else None


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    text = raw.decode("utf-8", errors="replace")
    if "json" in request.headers.get("content-type", ""):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass
    return text


def create_preview_app(root_directory: Path, server_id: str = "") -> FastAPI:
    """Build the web app that serves one preview's root directory"""
    root = Path(root_directory).resolve()

    app = FastAPI(
        title=f"Preview {server_id}".strip(),
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.add_middleware(PreviewHeadersMiddleware)
    app.state.root_directory = root
    app.state.server_id = server_id

    @app.api_route("/api/{api_path:path}", methods=API_METHODS)
    async def api_placeholder(api_path: str, request: Request):
        # Real files under api/ still win for reads
        if request.method in ("GET", "HEAD"):
            static_file = resolve_static_path(root, f"api/{api_path}")
            if static_file:
                return FileResponse(static_file)

        return JSONResponse({
            "message": API_PLACEHOLDER_MESSAGE,
            "method": request.method,
            "path": request.url.path,
            "body": await _read_body(request),
        })

    @app.api_route("/{file_path:path}", methods=["GET", "HEAD"])
    async def serve_files(file_path: str):
        static_file = resolve_static_path(root, file_path)
        if static_file:
            return FileResponse(static_file)

        # SPA routing: unknown paths fall back to the root index.html
        index_path = root / "index.html"
        if index_path.is_file():
            return FileResponse(index_path)

        return HTMLResponse(render_file_listing(list_materialized_files(root)))

    return app
