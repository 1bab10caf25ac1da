"""
Document Gate Service

1. Accepted applicants submit bank/identity details and documents
2. The first complete checklist for an application bumps ``doc_submitted`` once
3. The CSE office reviews submissions
4. Staff appoint TAs whose documents were counted, bumping ``appointed`` once

Both counters are guarded twice: a conditional stamp on the application
(``documents_counted_at IS NULL`` / ``appointed_at IS NULL``) and a version
compare-and-swap on the ledger row. Both run with the module row locked, so
the stage checked on it holds until commit.
"""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ta_portal.core.auth import CurrentUser
from ta_portal.core.exceptions import (
    AlreadyAppointedError,
    ConcurrentModificationError,
    DocumentsNotSubmittedError,
    DocumentSubmissionNotFoundError,
    InvalidStatusTransitionError,
    MissingRequiredDocumentError,
    ModuleNotAcceptingDocumentsError,
    NoAcceptedApplicationError,
    RecruitmentError,
)
from ta_portal.modules.applications import repository as applications_repository
from ta_portal.modules.applications.models import ApplicationStatus
from ta_portal.modules.documents import repository
from ta_portal.modules.documents.checklist import merge_documents, missing_documents
from ta_portal.modules.documents.models import DocumentStatus, DocumentSubmission
from ta_portal.modules.documents.schemas import (
    AppointResponse,
    DocumentSubmissionResponse,
    ReviewDocumentsRequest,
    SubmissionListResponse,
    SubmitDocumentsRequest,
    SubmitDocumentsResponse,
)
from ta_portal.modules.module_recruitments import ledger
from ta_portal.modules.module_recruitments import repository as module_repository
from ta_portal.modules.module_recruitments import service as module_service
from ta_portal.modules.module_recruitments.schemas import RoleCountsResponse
from ta_portal.modules.module_recruitments.status import accepts_appointments, accepts_documents
from ta_portal.modules.notifications import dispatcher
from ta_portal.modules.notifications.events import (
    NotificationEvent,
    NotificationType,
    module_context,
)

logger = logging.getLogger(__name__)


def _to_response(submission: DocumentSubmission) -> DocumentSubmissionResponse:
    return DocumentSubmissionResponse.model_validate(submission)


async def submit_documents(
    db: AsyncSession,
    user: CurrentUser,
    data: SubmitDocumentsRequest,
) -> SubmitDocumentsResponse:
    """
    Create or update the caller's document submission for a module's series.

    The whole request is refused if, after merging with what is on file, a
    required document is still missing.

    Raises:
        NoAcceptedApplicationError: If the caller has no accepted application for the module
        ModuleRecruitmentNotFoundError: If the module doesn't exist
        ModuleNotAcceptingDocumentsError: If the module is not collecting documents
        MissingRequiredDocumentError: If the checklist is incomplete
        ConcurrentModificationError: If a concurrent submission or ledger write won
    """
    application = await applications_repository.get_by_applicant_and_module(
        db, user.id, data.module_id
    )
    if application is None or application.status != ApplicationStatus.ACCEPTED:
        raise NoAcceptedApplicationError(data.module_id)

    module = await module_service.get_module(db, data.module_id)
    if not accepts_documents(module.module_status):
        raise ModuleNotAcceptingDocumentsError(module.id, module.module_status.value)

    existing = await repository.get_by_applicant_and_series(
        db, user.id, module.recruitment_series_id
    )
    documents = merge_documents(
        existing.documents if existing else None, data.documents.as_entries()
    )
    missing = missing_documents(documents, application.role)
    if missing:
        logger.warning(f"Document submission by {user.id} for module {module.id} missing {missing}")
        raise MissingRequiredDocumentError(missing)

    module_id, application_id, role = module.id, application.id, application.role
    try:
        # ============================================
        # ATOMIC TRANSACTION: submission upsert + first-time doc count
        # ============================================
        locked = await module_service.lock_module(db, module_id)
        if not accepts_documents(locked.module_status):
            raise ModuleNotAcceptingDocumentsError(module_id, locked.module_status.value)

        submission = await repository.upsert(
            db,
            existing,
            applicant_id=user.id,
            applicant_email=user.email,
            recruitment_series_id=module.recruitment_series_id,
            details=data.details.model_dump(exclude_unset=True) if data.details else {},
            documents=documents,
            status=DocumentStatus.SUBMITTED,
        )

        counted = await applications_repository.mark_documents_counted(db, application_id)
        if counted:
            current = await module_service.read_counts(db, module_id, role)
            updated = ledger.count_documents(current)
            if await module_repository.swap_counts(db, module_id, role, current, updated) is None:
                raise ConcurrentModificationError(f"{role.value} quota of module {module_id}")

        await db.commit()
        # ============================================
        # END ATOMIC TRANSACTION
        # ============================================
    except IntegrityError as e:
        # Two first submissions for the same series raced on the unique index
        await db.rollback()
        logger.warning(f"Concurrent document submission by {user.id}: {e}")
        raise ConcurrentModificationError("Document submission") from e
    except RecruitmentError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to save documents for {user.id}: {e}", exc_info=True)
        raise

    created = existing is None
    logger.info(
        f"Documents {'created' if created else 'updated'} for applicant {user.id}, "
        f"module {module_id}, counted={counted}"
    )
    return SubmitDocumentsResponse(
        submission=_to_response(submission),
        created=created,
        counted=counted,
        message="Documents submitted." if created else "Documents updated.",
    )


async def get_my_submission(
    db: AsyncSession, user: CurrentUser, recruitment_series_id: UUID
) -> DocumentSubmissionResponse | None:
    submission = await repository.get_by_applicant_and_series(db, user.id, recruitment_series_id)
    return _to_response(submission) if submission else None


async def list_submissions(
    db: AsyncSession,
    status: DocumentStatus | None = None,
    recruitment_series_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> SubmissionListResponse:
    submissions, total = await repository.list_submissions(
        db, status=status, recruitment_series_id=recruitment_series_id, limit=limit, offset=offset
    )
    return SubmissionListResponse(
        items=[_to_response(s) for s in submissions],
        total=total,
        limit=limit,
        offset=offset,
    )


async def review_submission(
    db: AsyncSession,
    submission_id: UUID,
    reviewer: CurrentUser,
    data: ReviewDocumentsRequest,
) -> DocumentSubmissionResponse:
    """
    Record the CSE office's review decision and notify the applicant.

    Raises:
        DocumentSubmissionNotFoundError: If the submission doesn't exist
    """
    submission = await repository.get_by_id(db, submission_id)
    if not submission:
        raise DocumentSubmissionNotFoundError(submission_id)

    try:
        submission = await repository.record_review(
            db, submission, data.decision, reviewer.id, data.note
        )
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to review submission {submission_id}: {e}", exc_info=True)
        raise

    logger.info(f"Submission {submission_id} reviewed by {reviewer.id}: {data.decision.value}")

    await dispatcher.publish(
        NotificationEvent(
            type=NotificationType.DOCUMENTS_REVIEWED,
            recipients=[submission.applicant_email],
            context={"decision": data.decision.value, "note": data.note},
        )
    )
    return _to_response(submission)


async def appoint(
    db: AsyncSession,
    module_id: UUID,
    applicant_id: UUID,
    actor: CurrentUser,
) -> AppointResponse:
    """
    Appoint an accepted applicant whose documents were counted.

    Raises:
        ModuleRecruitmentNotFoundError: If the module doesn't exist
        InvalidStatusTransitionError: If the module is not collecting documents or closed
        NoAcceptedApplicationError: If the applicant has no accepted application
        DocumentsNotSubmittedError: If the applicant's documents were never completed
        AlreadyAppointedError: If the applicant was already appointed
        ConcurrentModificationError: If the ledger row changed underneath us
    """
    module = await module_service.get_module(db, module_id)
    if not accepts_appointments(module.module_status):
        raise InvalidStatusTransitionError(module.module_status.value, "appoint a TA to")

    application = await applications_repository.get_by_applicant_and_module(
        db, applicant_id, module_id
    )
    if application is None or application.status != ApplicationStatus.ACCEPTED:
        raise NoAcceptedApplicationError(module_id, applicant_id)
    if application.is_appointed:
        raise AlreadyAppointedError(application.id)
    if not application.documents_counted:
        raise DocumentsNotSubmittedError(application.id)

    application_id, role = application.id, application.role
    try:
        module = await module_service.lock_module(db, module_id)
        if not accepts_appointments(module.module_status):
            raise InvalidStatusTransitionError(module.module_status.value, "appoint a TA to")

        if not await applications_repository.mark_appointed(db, application_id):
            fresh = await applications_repository.get_fresh(db, application_id)
            if fresh is not None and fresh.is_appointed:
                raise AlreadyAppointedError(application_id)
            raise ConcurrentModificationError(f"Application {application_id}")

        current = await module_service.read_counts(db, module_id, role)
        updated = ledger.appoint(current)
        if await module_repository.swap_counts(db, module_id, role, current, updated) is None:
            raise ConcurrentModificationError(f"{role.value} quota of module {module_id}")

        await db.commit()
    except RecruitmentError as e:
        await db.rollback()
        logger.warning(f"Appointment of {applicant_id} to module {module_id} refused: {e.message}")
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to appoint {applicant_id} to module {module_id}: {e}", exc_info=True)
        raise

    logger.info(f"Applicant {applicant_id} appointed to module {module_id} by {actor.id}")

    await dispatcher.publish(
        NotificationEvent(
            type=NotificationType.TA_APPOINTED,
            recipients=[application.applicant_email],
            context=module_context(module),
        )
    )
    return AppointResponse(
        application_id=application_id,
        applicant_id=applicant_id,
        module_id=module_id,
        status=application.status,
        appointed_at=application.appointed_at,
        counts=RoleCountsResponse.from_counts(updated),
        message="TA appointed.",
    )
