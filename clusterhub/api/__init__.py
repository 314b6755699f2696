"""REST API."""

from .routes import router, get_registry

__all__ = ["router", "get_registry"]
