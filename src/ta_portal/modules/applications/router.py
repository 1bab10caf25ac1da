"""
Applicant Router

Endpoints for undergraduate and postgraduate applicants. The applicant's
role always comes from their token.

Endpoints:
- GET /ta/requests - Advertised modules open to the caller's role
- POST /ta/apply - Apply for a module
- GET /ta/applied-modules - The caller's pending applications
- GET /ta/accepted-modules - The caller's accepted modules with document status
- DELETE /ta/applications/{id} - Withdraw a pending application
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ta_portal.core.auth import CurrentUser, require_applicant
from ta_portal.core.database import get_db
from ta_portal.core.exceptions import RecruitmentError, http_error, internal_error
from ta_portal.core.rate_limit import user_rate_limit
from ta_portal.modules.applications import service
from ta_portal.modules.applications.schemas import (
    AcceptedModuleResponse,
    ApplicationResponse,
    AppliedModuleResponse,
    ApplyRequest,
    WithdrawResponse,
)
from ta_portal.modules.module_recruitments import service as module_service
from ta_portal.modules.module_recruitments.schemas import OpenPositionResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/requests",
    response_model=list[OpenPositionResponse],
    summary="List Open Positions",
    description="Advertised modules open to the caller's role, with that role's counts.",
)
async def list_open_positions(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_applicant),
) -> list[OpenPositionResponse]:
    try:
        role = service.applicant_role_for(user)
        return await module_service.list_open_positions(db, role)
    except RecruitmentError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Error listing open positions: {e}")
        raise internal_error() from e


@router.post(
    "/apply",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Apply for a TA Position",
    description="""
Apply for a TA position on an advertised module.

The quota check and the `applied` increment are a single conditional
update: when two applicants race for the last open slot, exactly one
succeeds and the other receives `QUOTA_EXHAUSTED`.
""",
    dependencies=[Depends(user_rate_limit("apply", limit=20, window_seconds=60))],
    responses={
        201: {"description": "Application created (status: pending)"},
        400: {
            "description": "Business refusal",
            "content": {
                "application/json": {
                    "examples": {
                        "quota_exhausted": {
                            "summary": "No open slot",
                            "value": {
                                "detail": {
                                    "error": "QUOTA_EXHAUSTED",
                                    "message": "No undergraduate TA positions are open for module "
                                    "3fa85f64-5717-4562-b3fc-2c963f66afa6.",
                                }
                            },
                        },
                        "duplicate": {
                            "summary": "Already applied",
                            "value": {
                                "detail": {
                                    "error": "DUPLICATE_APPLICATION",
                                    "message": "You have already applied for module "
                                    "3fa85f64-5717-4562-b3fc-2c963f66afa6.",
                                }
                            },
                        },
                        "not_eligible": {
                            "summary": "Module closed to the caller's role",
                            "value": {
                                "detail": {
                                    "error": "ROLE_NOT_ELIGIBLE",
                                    "message": "Module 3fa85f64-5717-4562-b3fc-2c963f66afa6 is "
                                    "not open to postgraduate applicants.",
                                }
                            },
                        },
                    }
                }
            },
        },
        404: {"description": "Module not found"},
        409: {"description": "Ledger changed concurrently; retry"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def apply(
    data: ApplyRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_applicant),
) -> ApplicationResponse:
    try:
        return await service.apply(db, user, data)
    except RecruitmentError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Error applying for module {data.module_id}: {e}")
        raise internal_error() from e


@router.get(
    "/applied-modules",
    response_model=list[AppliedModuleResponse],
    summary="List Pending Applications",
)
async def list_applied_modules(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_applicant),
) -> list[AppliedModuleResponse]:
    try:
        return await service.list_applied_modules(db, user)
    except Exception as e:
        logger.exception(f"Error listing applications of {user.id}: {e}")
        raise internal_error() from e


@router.get(
    "/accepted-modules",
    response_model=list[AcceptedModuleResponse],
    summary="List Accepted Modules",
)
async def list_accepted_modules(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_applicant),
) -> list[AcceptedModuleResponse]:
    try:
        return await service.list_accepted_modules(db, user)
    except Exception as e:
        logger.exception(f"Error listing accepted modules of {user.id}: {e}")
        raise internal_error() from e


@router.delete(
    "/applications/{application_id}",
    response_model=WithdrawResponse,
    summary="Withdraw Application",
    description="Withdraw one of your own pending applications. Its slot claim is released.",
    dependencies=[Depends(user_rate_limit("withdraw", limit=20, window_seconds=60))],
    responses={
        200: {"description": "Application withdrawn"},
        400: {"description": "Application already decided, or module closed"},
        403: {"description": "Not your application"},
        404: {"description": "Application not found"},
        409: {"description": "Ledger changed concurrently; retry"},
    },
)
async def withdraw_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_applicant),
) -> WithdrawResponse:
    try:
        return await service.withdraw(db, application_id, user)
    except RecruitmentError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Error withdrawing application {application_id}: {e}")
        raise internal_error() from e
