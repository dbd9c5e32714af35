"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.imports import router as imports_router
from routes.mapping_templates import router as mapping_templates_router

__all__ = [
    "imports_router",
    "mapping_templates_router",
]
