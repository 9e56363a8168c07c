"""Route registration functions for the visitbot server."""

from .health_routes import register_health_routes
from .visit_routes import register_visit_routes

__all__ = ["register_health_routes", "register_visit_routes"]
