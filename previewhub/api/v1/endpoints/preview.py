"""
Preview API Endpoints
Create, update, list and stop live previews of generated projects
"""

from fastapi import APIRouter, Depends, Request

from previewhub.core.exceptions import ValidationError
from previewhub.core.logging_config import logger
from previewhub.modules.preview import ai_response_parser, PreviewServerManager
from previewhub.schemas.preview import (
    ActivePreviewList,
    CreateFromResponseRequest,
    CreatePreviewRequest,
    PreviewServerResponse,
    StopResponse,
    UpdateFilesRequest,
    UpdateFilesResponse,
    to_file_mapping,
)


router = APIRouter(prefix="/previews", tags=["Previews"])


def get_preview_manager(request: Request) -> PreviewServerManager:
    """The manager owned by the running application"""
    return request.app.state.preview_manager


@router.post("", response_model=PreviewServerResponse, status_code=201)
async def create_preview(
    body: CreatePreviewRequest,
    manager: PreviewServerManager = Depends(get_preview_manager)
):
    """Materialize the files and start a preview server for them"""
    files = to_file_mapping(body.files)
    info = await manager.create_preview_server(body.project_id, files)

    return PreviewServerResponse(**info.to_dict(), files=sorted(files))


@router.post("/from-response", response_model=PreviewServerResponse, status_code=201)
async def create_preview_from_response(
    body: CreateFromResponseRequest,
    manager: PreviewServerManager = Depends(get_preview_manager)
):
    """
    Start a preview straight from a code-generation response.

    The response is scanned for fenced file blocks (```html:index.html).
    """
    files = ai_response_parser.extract_files(body.response)
    if not files:
        raise ValidationError("No files found in response", field="response")

    project_id = body.project_id or "generated"
    logger.info(f"Parsed {len(files)} files from response for project {project_id}")

    info = await manager.create_preview_server(project_id, files)
    return PreviewServerResponse(**info.to_dict(), files=list(files))


@router.get("", response_model=ActivePreviewList)
async def list_previews(manager: PreviewServerManager = Depends(get_preview_manager)):
    """Running previews, oldest first"""
    servers = manager.get_active_servers()
    return ActivePreviewList(servers=servers, count=len(servers), max_servers=manager.max_servers)


@router.put("/{server_id}/files", response_model=UpdateFilesResponse)
async def update_preview_files(
    server_id: str,
    body: UpdateFilesRequest,
    manager: PreviewServerManager = Depends(get_preview_manager)
):
    """Merge files into a running preview"""
    updated = await manager.update_preview_files(server_id, to_file_mapping(body.files))
    return UpdateFilesResponse(server_id=server_id, updated=updated)


@router.delete("/{server_id}", response_model=StopResponse)
async def stop_preview(
    server_id: str,
    manager: PreviewServerManager = Depends(get_preview_manager)
):
    """Stop a preview. Stopping an unknown preview succeeds."""
    known = server_id in manager.servers
    await manager.stop_preview_server(server_id)
    return StopResponse(stopped=1 if known else 0)


@router.delete("", response_model=StopResponse)
async def stop_all_previews(manager: PreviewServerManager = Depends(get_preview_manager)):
    """Stop every preview"""
    count = len(manager.servers)
    await manager.stop_all_servers()
    return StopResponse(stopped=count)
