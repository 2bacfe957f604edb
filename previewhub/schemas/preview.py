"""
Preview API schemas
"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Union

from previewhub.modules.preview.files import FileRecord


class PreviewFile(BaseModel):
    """File record with optional language/type tag"""
    content: str
    type: Optional[str] = None


PreviewFileValue = Union[str, PreviewFile]


def to_file_mapping(files: Dict[str, PreviewFileValue]) -> Dict[str, Union[str, FileRecord]]:
    """Convert request models to the manager's file values"""
    return {
        path: value if isinstance(value, str) else FileRecord(content=value.content, type=value.type)
        for path, value in files.items()
    }


class CreatePreviewRequest(BaseModel):
    """Create a preview from a file mapping"""
    project_id: str = Field(..., min_length=1, max_length=128)
    files: Dict[str, PreviewFileValue] = Field(default_factory=dict)


class CreateFromResponseRequest(BaseModel):
    """Create a preview from a raw code-generation response"""
    response: str = Field(..., min_length=1)
    project_id: Optional[str] = Field(None, max_length=128)


class UpdateFilesRequest(BaseModel):
    """Merge files into a running preview"""
    files: Dict[str, PreviewFileValue]


class PreviewServerResponse(BaseModel):
    """Created preview"""
    server_id: str
    port: int
    url: str
    files: List[str] = []


class ActivePreview(BaseModel):
    id: str
    port: int
    url: str


class ActivePreviewList(BaseModel):
    servers: List[ActivePreview]
    count: int
    max_servers: int


class UpdateFilesResponse(BaseModel):
    success: bool = True
    server_id: str
    updated: int


class StopResponse(BaseModel):
    success: bool = True
    stopped: int = 0
