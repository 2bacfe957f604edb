"""
Custom Exceptions for PreviewHub
================================

Usage:
    from previewhub.core.exceptions import PreviewNotFoundError

    if server_id not in registry:
        raise PreviewNotFoundError(server_id)
"""

from typing import Optional, Any, Dict


class PreviewHubError(Exception):
    """Base exception for all PreviewHub errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Resource Errors (404-type)
# ============================================

class NotFoundError(PreviewHubError):
    """Base class for not found errors"""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class PreviewNotFoundError(NotFoundError):
    """Preview server not registered"""

    def __init__(self, server_id: str):
        super().__init__("Preview", server_id)


# ============================================
# Validation Errors (400-type)
# ============================================

class ValidationError(PreviewHubError):
    """Input validation failed"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class InvalidFilePathError(ValidationError):
    """File path is absolute or escapes the project root"""

    def __init__(self, file_path: str, reason: str = "path escapes the project root"):
        super().__init__(f"Invalid file path '{file_path}': {reason}", field="files")
        self.code = "INVALID_FILE_PATH"
        self.details["file_path"] = file_path


# ============================================
# Preview Server Errors
# ============================================

class PreviewServerError(PreviewHubError):
    """Preview server operation failed"""

    def __init__(self, message: str, code: str = "PREVIEW_ERROR", server_id: Optional[str] = None):
        super().__init__(message, code=code)
        if server_id:
            self.details["server_id"] = server_id


class PortExhaustedError(PreviewServerError):
    """No free port found within the attempt ceiling"""

    def __init__(self, base_port: int, attempts: int):
        super().__init__(
            f"No available ports found in range {base_port}-{base_port + attempts - 1}",
            code="PORT_EXHAUSTED"
        )
        self.details.update({"base_port": base_port, "attempts": attempts})


class FileSystemError(PreviewServerError):
    """Directory or file write failed while materializing a preview"""

    def __init__(self, message: str, path: Optional[str] = None, server_id: Optional[str] = None):
        super().__init__(message, code="FILESYSTEM_ERROR", server_id=server_id)
        if path:
            self.details["path"] = path


class PreviewStartupError(PreviewServerError):
    """Preview listener did not come up"""

    def __init__(self, server_id: str, port: int, reason: str = "listener did not start"):
        super().__init__(
            f"Preview server {server_id} failed to start on port {port}: {reason}",
            code="PREVIEW_STARTUP_FAILED",
            server_id=server_id
        )
        self.details["port"] = port


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: PreviewHubError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.to_dict()
    }
