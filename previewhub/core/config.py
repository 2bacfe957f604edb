from pydantic_settings import BaseSettings
from typing import List, Any
from pathlib import Path
import json


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "PreviewHub"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    API_VERSION: str = "v1"

    # Control API server
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # ==========================================
    # Preview Servers
    # ==========================================
    PREVIEW_BASE_PORT: int = 5000
    PREVIEW_MAX_SERVERS: int = 10
    PREVIEW_PORT_ATTEMPTS: int = 100
    PREVIEW_BIND_HOST: str = "0.0.0.0"  # Wildcard interface
    PREVIEW_PROBE_HOST: str = "127.0.0.1"
    PREVIEW_PROBE_TIMEOUT: float = 0.5  # seconds
    PREVIEW_STARTUP_TIMEOUT: float = 5.0  # seconds
    PREVIEW_ROOT_DIR: str = "preview-projects"
    PREVIEW_ID_PREFIX: str = "preview"

    # Public base for preview links, e.g. "http://192.168.1.10" (port appended)
    SANDBOX_PUBLIC_URL: str = ""

    @property
    def preview_root_path(self) -> Path:
        """Absolute directory holding every materialized preview"""
        return Path(self.PREVIEW_ROOT_DIR).resolve()

    # ==========================================
    # CORS (stored as comma-separated string, parsed to list)
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    # ==========================================
    # Request limits
    # ==========================================
    MAX_REQUEST_SIZE: int = 10485760  # 10MB

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings


# Create settings instance
settings = Settings()
