from fastapi import APIRouter, Request

from previewhub.api.v1.endpoints import preview

api_router = APIRouter()

api_router.include_router(preview.router)


@api_router.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Health check with preview capacity"""
    manager = request.app.state.preview_manager
    return {
        "status": "healthy",
        "service": "previewhub",
        "active_previews": len(manager.get_active_servers()),
        "max_previews": manager.max_servers,
    }
