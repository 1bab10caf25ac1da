"""
Application Repository

Database operations for TA applications. Like the module recruitment
repository, nothing here commits; status changes are conditional UPDATEs so
two concurrent decisions on one application cannot both land.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ta_portal.modules.module_recruitments.models import ApplicantRole

from .models import Application, ApplicationStatus


async def create(
    db: AsyncSession,
    *,
    applicant_id: UUID,
    applicant_email: str,
    module_id: UUID,
    recruitment_series_id: UUID,
    role: ApplicantRole,
    ta_hours: float | None,
) -> Application:
    """
    Insert a pending application.

    Flushes so a unique (applicant, module) violation surfaces here as
    IntegrityError, inside the caller's transaction.
    """
    application = Application(
        applicant_id=applicant_id,
        applicant_email=applicant_email,
        module_id=module_id,
        recruitment_series_id=recruitment_series_id,
        role=role,
        ta_hours=ta_hours,
        status=ApplicationStatus.PENDING,
        status_changed_at=datetime.now(UTC),
    )
    db.add(application)
    await db.flush()
    return application


async def get_by_id(db: AsyncSession, application_id: UUID) -> Application | None:
    return await db.get(Application, application_id)


async def get_fresh(db: AsyncSession, application_id: UUID) -> Application | None:
    """Re-read an application from the database, bypassing the identity map."""
    result = await db.execute(
        select(Application)
        .where(Application.id == application_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_by_applicant_and_module(
    db: AsyncSession, applicant_id: UUID, module_id: UUID
) -> Application | None:
    result = await db.execute(
        select(Application).where(
            Application.applicant_id == applicant_id,
            Application.module_id == module_id,
        )
    )
    return result.scalar_one_or_none()


async def list_by_applicant(
    db: AsyncSession,
    applicant_id: UUID,
    status: ApplicationStatus | None = None,
) -> list[Application]:
    """An applicant's applications, newest first, optionally filtered by status."""
    query = select(Application).where(Application.applicant_id == applicant_id)
    if status is not None:
        query = query.where(Application.status == status)
    result = await db.execute(query.order_by(Application.created_at.desc()))
    return list(result.scalars().all())


async def list_by_modules(
    db: AsyncSession,
    module_ids: list[UUID],
    status: ApplicationStatus | None = None,
) -> list[Application]:
    """Applications for any of ``module_ids``, oldest first."""
    if not module_ids:
        return []
    query = select(Application).where(Application.module_id.in_(module_ids))
    if status is not None:
        query = query.where(Application.status == status)
    result = await db.execute(query.order_by(Application.created_at))
    return list(result.scalars().all())


async def list_accepted_for_module(db: AsyncSession, module_id: UUID) -> list[Application]:
    return await list_by_modules(db, [module_id], ApplicationStatus.ACCEPTED)


async def transition_status(
    db: AsyncSession,
    application_id: UUID,
    new_status: ApplicationStatus,
    decided_by: UUID,
) -> Application | None:
    """
    Move a pending application to ``new_status``.

    Returns:
        The updated application, or None if it was no longer pending
    """
    result = await db.execute(
        update(Application)
        .where(Application.id == application_id, Application.status == ApplicationStatus.PENDING)
        .values(status=new_status, decided_by=decided_by, status_changed_at=datetime.now(UTC))
        .returning(Application)
        .execution_options(synchronize_session="fetch")
    )
    return result.scalar_one_or_none()


async def delete_pending(db: AsyncSession, application_id: UUID) -> bool:
    """Delete an application only while it is still pending."""
    result = await db.execute(
        delete(Application)
        .where(Application.id == application_id, Application.status == ApplicationStatus.PENDING)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


async def mark_documents_counted(db: AsyncSession, application_id: UUID) -> bool:
    """
    Stamp the first complete document submission for an accepted application.

    Returns False if it was already stamped, so the ledger is only
    incremented once per application.
    """
    result = await db.execute(
        update(Application)
        .where(
            Application.id == application_id,
            Application.status == ApplicationStatus.ACCEPTED,
            Application.documents_counted_at.is_(None),
        )
        .values(documents_counted_at=datetime.now(UTC))
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


async def mark_appointed(db: AsyncSession, application_id: UUID) -> bool:
    """Stamp an appointment. Returns False if already appointed or documents not counted."""
    result = await db.execute(
        update(Application)
        .where(
            Application.id == application_id,
            Application.status == ApplicationStatus.ACCEPTED,
            Application.documents_counted_at.is_not(None),
            Application.appointed_at.is_(None),
        )
        .values(appointed_at=datetime.now(UTC))
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1
