"""
Preview URL Generation - Single Source of Truth

- Local development: http://localhost:{port}
- Shared host: {SANDBOX_PUBLIC_URL}:{port} (any port already in the base is dropped)
"""

from urllib.parse import urlparse

from previewhub.core.config import settings


def get_preview_url(port: int) -> str:
    """
    Generate the public preview URL for a port.

    Examples:
        Local dev:    http://localhost:5000
        Shared host:  http://192.168.1.100:5000
    """
    base = settings.SANDBOX_PUBLIC_URL
    if base and base not in ("", "http://localhost"):
        return _get_sandbox_url(base, port)

    return get_preview_url_internal(port)


def get_preview_url_internal(port: int) -> str:
    """URL for reaching a preview from within this process (health checks, tests)"""
    return f"http://localhost:{port}"


def _get_sandbox_url(base: str, port: int) -> str:
    base = base.rstrip("/")

    parsed = urlparse(base)
    if parsed.port:
        base = f"{parsed.scheme}://{parsed.hostname}"

    return f"{base}:{port}"
