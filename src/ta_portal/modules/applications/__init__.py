"""
Applications Module

The application state machine (apply, accept, reject, withdraw) and the
applicant/coordinator views over it.

API Endpoints:
- GET /ta/requests, POST /ta/apply, GET /ta/applied-modules,
  GET /ta/accepted-modules, DELETE /ta/applications/{id}
- GET /lecturer/handle-requests, PATCH /lecturer/applications/{id}/accept,
  PATCH /lecturer/applications/{id}/reject, GET /lecturer/modules/with-ta-requests
"""

from .lecturer_router import router as lecturer_router
from .router import router

__all__ = ["lecturer_router", "router"]
