"""
Applicant Document Router

Endpoints:
- POST /ta/submit-documents - Create (201) or update (200) the caller's submission
- GET /ta/documents?recSeriesId= - The caller's submission for a recruitment series
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ta_portal.core.auth import CurrentUser, require_applicant
from ta_portal.core.database import get_db
from ta_portal.core.exceptions import RecruitmentError, http_error, internal_error
from ta_portal.core.rate_limit import user_rate_limit
from ta_portal.modules.documents import service
from ta_portal.modules.documents.schemas import (
    DocumentSubmissionResponse,
    SubmitDocumentsRequest,
    SubmitDocumentsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/submit-documents",
    response_model=SubmitDocumentsResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Documents",
    description="""
Submit bank/identity details and documents for an accepted application.

Required: `cv`, `nicCopy`, `bankPassbookCopy`, plus `degreeCertificate` for
postgraduates. Documents already on file count towards the checklist, so a
resubmission only needs to include what changed.
""",
    dependencies=[Depends(user_rate_limit("submit_documents", limit=10, window_seconds=60))],
    responses={
        200: {"description": "Existing submission updated"},
        201: {"description": "Submission created"},
        400: {
            "description": "No accepted application, module not collecting documents, "
            "or a required document is missing",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "MISSING_REQUIRED_DOCUMENT",
                            "message": "Missing required documents: degree_certificate",
                        }
                    }
                }
            },
        },
        404: {"description": "Module not found"},
        409: {"description": "Concurrent submission; retry"},
    },
)
async def submit_documents(
    data: SubmitDocumentsRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_applicant),
) -> SubmitDocumentsResponse:
    try:
        result = await service.submit_documents(db, user, data)
    except RecruitmentError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Error submitting documents for module {data.module_id}: {e}")
        raise internal_error() from e

    if not result.created:
        response.status_code = status.HTTP_200_OK
    return result


@router.get(
    "/documents",
    response_model=DocumentSubmissionResponse | None,
    summary="Get My Document Submission",
)
async def get_my_documents(
    recruitment_series_id: UUID = Query(..., alias="recSeriesId"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_applicant),
) -> DocumentSubmissionResponse | None:
    try:
        return await service.get_my_submission(db, user, recruitment_series_id)
    except Exception as e:
        logger.exception(f"Error loading documents of {user.id}: {e}")
        raise internal_error() from e
