# API endpoints
from . import preview

__all__ = ["preview"]
