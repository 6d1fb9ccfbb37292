"""
Routers package
FastAPI route handlers organized by domain
"""
from . import builds
from . import integrations
from . import history

__all__ = [
    "builds",
    "integrations",
    "history",
]
