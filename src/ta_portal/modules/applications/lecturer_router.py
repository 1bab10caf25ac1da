"""
Coordinator Application Router

Endpoints:
- GET /lecturer/handle-requests - Pending applications grouped by module
- PATCH /lecturer/applications/{id}/accept - Accept an application
- PATCH /lecturer/applications/{id}/reject - Reject an application
- GET /lecturer/modules/with-ta-requests - Modules with accepted TAs + document status

Accept and reject are only honoured for coordinators of the application's
module.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ta_portal.core.auth import CurrentUser, require_lecturer
from ta_portal.core.database import get_db
from ta_portal.core.exceptions import RecruitmentError, http_error, internal_error
from ta_portal.core.rate_limit import user_rate_limit
from ta_portal.modules.applications import service
from ta_portal.modules.applications.schemas import DecisionResponse, ModuleApplicationsResponse

logger = logging.getLogger(__name__)

router = APIRouter()

DECISION_RESPONSES = {
    200: {"description": "Decision recorded"},
    400: {
        "description": "Application already processed, or module no longer takes decisions",
        "content": {
            "application/json": {
                "example": {
                    "detail": {
                        "error": "ALREADY_PROCESSED",
                        "message": "Application 3fa85f64-5717-4562-b3fc-2c963f66afa6 has "
                        "already been accepted.",
                    }
                }
            }
        },
    },
    403: {"description": "Caller is not a coordinator of the module"},
    404: {"description": "Application not found"},
    409: {
        "description": "Ledger changed concurrently; re-read and retry",
        "content": {
            "application/json": {
                "example": {
                    "detail": {
                        "error": "CONCURRENT_MODIFICATION",
                        "message": "undergraduate quota of module "
                        "3fa85f64-5717-4562-b3fc-2c963f66afa6 was modified concurrently. "
                        "Please retry.",
                        "retryable": True,
                    }
                }
            }
        },
    },
}


@router.get(
    "/handle-requests",
    response_model=list[ModuleApplicationsResponse],
    summary="Coordinator Inbox",
)
async def handle_requests(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_lecturer),
) -> list[ModuleApplicationsResponse]:
    try:
        return await service.coordinator_inbox(db, user)
    except Exception as e:
        logger.exception(f"Error loading inbox for coordinator {user.id}: {e}")
        raise internal_error() from e


@router.patch(
    "/applications/{application_id}/accept",
    response_model=DecisionResponse,
    summary="Accept Application",
    description="Accept a pending application. The module becomes `full` once every "
    "open role has no remaining positions.",
    dependencies=[Depends(user_rate_limit("decide_application", limit=60, window_seconds=60))],
    responses=DECISION_RESPONSES,
)
async def accept_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_lecturer),
) -> DecisionResponse:
    try:
        return await service.accept(db, application_id, user)
    except RecruitmentError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Error accepting application {application_id}: {e}")
        raise internal_error() from e


@router.patch(
    "/applications/{application_id}/reject",
    response_model=DecisionResponse,
    summary="Reject Application",
    description="Reject a pending application. Remaining positions are unchanged.",
    dependencies=[Depends(user_rate_limit("decide_application", limit=60, window_seconds=60))],
    responses=DECISION_RESPONSES,
)
async def reject_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_lecturer),
) -> DecisionResponse:
    try:
        return await service.reject(db, application_id, user)
    except RecruitmentError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Error rejecting application {application_id}: {e}")
        raise internal_error() from e


@router.get(
    "/modules/with-ta-requests",
    response_model=list[ModuleApplicationsResponse],
    summary="Modules With Accepted TAs",
)
async def modules_with_ta_requests(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_lecturer),
) -> list[ModuleApplicationsResponse]:
    try:
        return await service.modules_with_accepted_tas(db, user)
    except Exception as e:
        logger.exception(f"Error loading accepted TAs for coordinator {user.id}: {e}")
        raise internal_error() from e
