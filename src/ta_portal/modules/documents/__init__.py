"""
Documents Module

The document gate: accepted applicants submit documents, the CSE office
reviews them and appoints TAs.
"""

from .office_router import router as office_router
from .router import router

__all__ = ["office_router", "router"]
