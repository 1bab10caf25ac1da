"""
CSE Office Router

Document review and TA appointment. Open to the CSE office and admins.

Endpoints:
- GET /cse-office/documents - List submissions (filter by status / series)
- PATCH /cse-office/documents/{id}/review - Record a review decision
- PATCH /cse-office/modules/{moduleId}/applicants/{applicantId}/appoint - Appoint a TA
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ta_portal.core.auth import CurrentUser, require_staff
from ta_portal.core.database import get_db
from ta_portal.core.exceptions import RecruitmentError, http_error, internal_error
from ta_portal.core.rate_limit import user_rate_limit
from ta_portal.modules.documents import service
from ta_portal.modules.documents.models import DocumentStatus
from ta_portal.modules.documents.schemas import (
    AppointResponse,
    DocumentSubmissionResponse,
    ReviewDocumentsRequest,
    SubmissionListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/documents",
    response_model=SubmissionListResponse,
    summary="List Document Submissions",
)
async def list_documents(
    status_filter: DocumentStatus | None = Query(None, alias="status"),
    recruitment_series_id: UUID | None = Query(None, alias="recSeriesId"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    staff: CurrentUser = Depends(require_staff),
) -> SubmissionListResponse:
    try:
        return await service.list_submissions(
            db,
            status=status_filter,
            recruitment_series_id=recruitment_series_id,
            limit=limit,
            offset=offset,
        )
    except Exception as e:
        logger.exception(f"Error listing document submissions: {e}")
        raise internal_error() from e


@router.patch(
    "/documents/{submission_id}/review",
    response_model=DocumentSubmissionResponse,
    summary="Review Documents",
    description="Record `approved`, `rejected` or `additional-required`; the applicant is notified.",
    dependencies=[Depends(user_rate_limit("review_documents", limit=60, window_seconds=60))],
    responses={
        200: {"description": "Review recorded"},
        404: {"description": "Submission not found"},
        422: {"description": "Invalid decision"},
    },
)
async def review_documents(
    submission_id: UUID,
    data: ReviewDocumentsRequest,
    db: AsyncSession = Depends(get_db),
    staff: CurrentUser = Depends(require_staff),
) -> DocumentSubmissionResponse:
    try:
        return await service.review_submission(db, submission_id, staff, data)
    except RecruitmentError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Error reviewing submission {submission_id}: {e}")
        raise internal_error() from e


@router.patch(
    "/modules/{module_id}/applicants/{applicant_id}/appoint",
    response_model=AppointResponse,
    summary="Appoint TA",
    description="Appoint an accepted applicant whose documents are complete. "
    "Each applicant is appointed at most once.",
    dependencies=[Depends(user_rate_limit("appoint", limit=60, window_seconds=60))],
    responses={
        200: {"description": "TA appointed"},
        400: {
            "description": "Already appointed, documents missing, or module not appointing",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "ALREADY_APPOINTED",
                            "message": "Application 3fa85f64-5717-4562-b3fc-2c963f66afa6 "
                            "has already been appointed.",
                        }
                    }
                }
            },
        },
        404: {"description": "Module not found"},
        409: {"description": "Ledger changed concurrently; retry"},
    },
)
async def appoint_ta(
    module_id: UUID,
    applicant_id: UUID,
    db: AsyncSession = Depends(get_db),
    staff: CurrentUser = Depends(require_staff),
) -> AppointResponse:
    try:
        return await service.appoint(db, module_id, applicant_id, staff)
    except RecruitmentError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Error appointing {applicant_id} to module {module_id}: {e}")
        raise internal_error() from e
