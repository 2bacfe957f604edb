"""
Preview Module - ephemeral static preview servers for generated projects
"""

from previewhub.modules.preview.files import FileRecord, ResolvedFile, resolve_files
from previewhub.modules.preview.manager import (
    PreviewInstance,
    PreviewServerInfo,
    PreviewServerManager,
    PreviewState,
)
from previewhub.modules.preview.ports import PortAllocator, is_port_available
from previewhub.modules.preview.response_parser import ai_response_parser, AIResponseParser
from previewhub.modules.preview.shutdown import install_shutdown_handlers, run_until_shutdown

__all__ = [
    # Singleton instances (ready to use)
    'ai_response_parser',

    # Classes
    'PreviewServerManager',
    'PreviewInstance',
    'PreviewServerInfo',
    'PreviewState',
    'PortAllocator',
    'AIResponseParser',
    'FileRecord',
    'ResolvedFile',

    # Functions
    'resolve_files',
    'is_port_available',
    'install_shutdown_handlers',
    'run_until_shutdown',
]
