"""API routers for Delivery Core."""

from . import containers

__all__ = ["containers"]
