"""
Document Submission Repository

Reads and writes for document submissions. The upsert flushes so a
concurrent first submission for the same (applicant, series) surfaces as an
IntegrityError inside the caller's transaction.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from .models import DocumentStatus, DocumentSubmission


async def get_by_id(db: AsyncSession, submission_id: UUID) -> DocumentSubmission | None:
    return await db.get(DocumentSubmission, submission_id)


async def get_by_applicant_and_series(
    db: AsyncSession, applicant_id: UUID, recruitment_series_id: UUID
) -> DocumentSubmission | None:
    result = await db.execute(
        select(DocumentSubmission).where(
            DocumentSubmission.applicant_id == applicant_id,
            DocumentSubmission.recruitment_series_id == recruitment_series_id,
        )
    )
    return result.scalar_one_or_none()


async def get_statuses(
    db: AsyncSession, keys: list[tuple[UUID, UUID]]
) -> dict[tuple[UUID, UUID], DocumentStatus]:
    """Submission status per (applicant_id, recruitment_series_id)."""
    if not keys:
        return {}
    result = await db.execute(
        select(
            DocumentSubmission.applicant_id,
            DocumentSubmission.recruitment_series_id,
            DocumentSubmission.status,
        ).where(
            tuple_(DocumentSubmission.applicant_id, DocumentSubmission.recruitment_series_id).in_(
                list(set(keys))
            )
        )
    )
    return {(row[0], row[1]): row[2] for row in result.all()}


async def list_submissions(
    db: AsyncSession,
    status: DocumentStatus | None = None,
    recruitment_series_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[DocumentSubmission], int]:
    """Paginated submissions, most recently updated first, with the total count."""
    query = select(DocumentSubmission)
    if status is not None:
        query = query.where(DocumentSubmission.status == status)
    if recruitment_series_id is not None:
        query = query.where(DocumentSubmission.recruitment_series_id == recruitment_series_id)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(DocumentSubmission.updated_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def upsert(
    db: AsyncSession,
    existing: DocumentSubmission | None,
    *,
    applicant_id: UUID,
    applicant_email: str,
    recruitment_series_id: UUID,
    details: dict[str, Any],
    documents: dict[str, Any],
    status: DocumentStatus,
) -> DocumentSubmission:
    """Create the submission, or overwrite ``existing`` in place."""
    if existing is None:
        submission = DocumentSubmission(
            applicant_id=applicant_id,
            applicant_email=applicant_email,
            recruitment_series_id=recruitment_series_id,
            documents=documents,
            status=status,
            **details,
        )
        db.add(submission)
    else:
        submission = existing
        for key, value in details.items():
            setattr(submission, key, value)
        # Reassign so the JSONB column is flagged dirty
        submission.documents = documents
        submission.status = status

    await db.flush()
    return submission


async def record_review(
    db: AsyncSession,
    submission: DocumentSubmission,
    decision: DocumentStatus,
    reviewer_id: UUID,
    note: str | None,
) -> DocumentSubmission:
    submission.status = decision
    submission.review_note = note
    submission.reviewed_by = reviewer_id
    submission.reviewed_at = datetime.now(UTC)
    await db.flush()
    return submission
