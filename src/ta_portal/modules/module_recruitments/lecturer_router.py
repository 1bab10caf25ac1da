"""
Module Recruitment Lecturer Router

Endpoints for module coordinators.

Endpoints:
- GET /lecturer/modules - Modules the caller coordinates
- PATCH /lecturer/modules/{id} - Submit or revise TA requirements
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ta_portal.core.auth import CurrentUser, require_lecturer
from ta_portal.core.database import get_db
from ta_portal.core.exceptions import RecruitmentError, http_error, internal_error
from ta_portal.core.rate_limit import user_rate_limit
from ta_portal.modules.module_recruitments import service
from ta_portal.modules.module_recruitments.schemas import (
    ModuleRecruitmentResponse,
    ModuleRequirementsUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/modules",
    response_model=list[ModuleRecruitmentResponse],
    summary="List Coordinated Modules",
)
async def list_my_modules(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_lecturer),
) -> list[ModuleRecruitmentResponse]:
    try:
        return await service.list_coordinator_modules(db, user)
    except Exception as e:
        logger.exception(f"Error listing modules for coordinator {user.id}: {e}")
        raise internal_error() from e


@router.patch(
    "/modules/{module_id}",
    response_model=ModuleRecruitmentResponse,
    summary="Submit Module Requirements",
    description="""
Submit the number of TAs required per role, the weekly hours and free-text
requirements.

- `pending-changes`: submitting moves the module to `changes-submitted`
- `changes-submitted`: the submission is revised in place
- `advertised` / `full`: positions are resized; raising the count on a full
  module reopens it, lowering it below accepted + pending applications is refused
""",
    dependencies=[Depends(user_rate_limit("submit_requirements", limit=20, window_seconds=60))],
    responses={
        200: {"description": "Requirements saved"},
        400: {
            "description": "Not editable in this status, or below committed positions",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "REQUIRED_BELOW_COMMITTED",
                            "message": "Cannot set required undergraduate TAs to 1: "
                            "2 positions are already accepted or claimed.",
                        }
                    }
                }
            },
        },
        403: {"description": "Caller is not a coordinator of this module"},
        404: {"description": "Module not found"},
        409: {"description": "Module changed concurrently; retry"},
    },
)
async def submit_requirements(
    module_id: UUID,
    data: ModuleRequirementsUpdate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_lecturer),
) -> ModuleRecruitmentResponse:
    try:
        return await service.submit_requirements(db, module_id, user, data)
    except RecruitmentError as e:
        logger.warning(f"Requirement update on module {module_id} refused: {e.message}")
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Error updating requirements of module {module_id}: {e}")
        raise internal_error() from e
