"""
Module Recruitments Module

Per-module TA recruitment: the quota ledger, the module status controller
and the staff/coordinator endpoints that drive them.

API Endpoints:
- GET /admin/modules/{id} - Module detail
- POST /admin/modules/{id}/{action} - Staff status action
- GET /lecturer/modules - Coordinated modules
- PATCH /lecturer/modules/{id} - Submit requirements
"""

from .admin_router import router as admin_router
from .lecturer_router import router as lecturer_router

__all__ = ["admin_router", "lecturer_router"]
