"""
Application Service

The application state machine:

    (apply) -> pending --accept--> accepted
                       --reject--> rejected
                       --withdraw--> (deleted)

Each transition writes the application row and its role's ledger row in ONE
transaction:

- Apply claims a slot with a single conditional UPDATE
  (``remaining - (applied - reviewed) > 0``), so two applicants racing for
  the last slot cannot both succeed.
- Accept / reject / withdraw lock the module row and re-check its status,
  move the application with a conditional ``WHERE status = 'pending'`` and
  then compare-and-swap the ledger row on its ``version``. A lost race rolls
  everything back.

Events are published after the commit and never affect the outcome.
"""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ta_portal.core.auth import CurrentUser, UserRole
from ta_portal.core.exceptions import (
    AlreadyProcessedError,
    ApplicationNotFoundError,
    ConcurrentModificationError,
    DuplicateApplicationError,
    InvalidStatusTransitionError,
    ModuleNotAcceptingApplicationsError,
    ModuleRecruitmentNotFoundError,
    NotAuthorizedError,
    QuotaExhaustedError,
    RecruitmentError,
    RequestMismatchError,
    RoleNotEligibleError,
)
from ta_portal.modules.applications import repository
from ta_portal.modules.applications.models import Application, ApplicationStatus
from ta_portal.modules.applications.schemas import (
    AcceptedModuleResponse,
    ApplicantRow,
    ApplicationResponse,
    AppliedModuleResponse,
    ApplyRequest,
    DecisionResponse,
    ModuleApplicationsResponse,
    WithdrawResponse,
)
from ta_portal.modules.documents import repository as documents_repository
from ta_portal.modules.module_recruitments import ledger
from ta_portal.modules.module_recruitments import repository as module_repository
from ta_portal.modules.module_recruitments import service as module_service
from ta_portal.modules.module_recruitments.models import ApplicantRole, ModuleRecruitment
from ta_portal.modules.module_recruitments.schemas import RoleCountsResponse, counts_for
from ta_portal.modules.module_recruitments.status import (
    accepts_applications,
    accepts_decisions,
)
from ta_portal.modules.notifications import dispatcher
from ta_portal.modules.notifications.events import (
    NotificationEvent,
    NotificationType,
    module_context,
)

logger = logging.getLogger(__name__)

_APPLICANT_ROLES = {
    UserRole.UNDERGRADUATE: ApplicantRole.UNDERGRADUATE,
    UserRole.POSTGRADUATE: ApplicantRole.POSTGRADUATE,
}


def applicant_role_for(user: CurrentUser) -> ApplicantRole:
    """
    The ledger bucket a caller applies into, taken from their token.

    Raises:
        NotAuthorizedError: If the caller is not an undergraduate or postgraduate
    """
    role = _APPLICANT_ROLES.get(user.role)
    if role is None:
        raise NotAuthorizedError("Only undergraduate and postgraduate students can apply.")
    return role


def _to_response(application: Application) -> ApplicationResponse:
    return ApplicationResponse(
        id=application.id,
        applicant_id=application.applicant_id,
        module_id=application.module_id,
        recruitment_series_id=application.recruitment_series_id,
        role=application.role,
        ta_hours=application.ta_hours,
        status=application.status,
        decided_by=application.decided_by,
        status_changed_at=application.status_changed_at,
        created_at=application.created_at,
    )


# ============================================
# Apply
# ============================================


async def _claim_refusal(
    db: AsyncSession, module_id: UUID, role: ApplicantRole
) -> RecruitmentError:
    """Work out why a slot claim matched no row, from a fresh read."""
    module = await module_repository.get_fresh(db, module_id)
    if module is None:
        return ModuleRecruitmentNotFoundError(module_id)
    if not accepts_applications(module.module_status):
        return ModuleNotAcceptingApplicationsError(module_id, module.module_status.value)

    counts = await module_service.read_counts(db, module_id, role)
    if counts.open_slots <= 0:
        return QuotaExhaustedError(module_id, role.value)
    return ConcurrentModificationError(f"{role.value} quota of module {module_id}")


async def apply(db: AsyncSession, user: CurrentUser, data: ApplyRequest) -> ApplicationResponse:
    """
    Submit an application and claim one of the role's open slots.

    Args:
        db: Database session
        user: The applicant (role taken from the token)
        data: Module, optional role/series cross-checks and offered hours

    Returns:
        ApplicationResponse for the new pending application

    Raises:
        ModuleRecruitmentNotFoundError: If the module doesn't exist
        ModuleNotAcceptingApplicationsError: If the module is not advertised
        RoleNotEligibleError: If the module is closed to the caller's role
        DuplicateApplicationError: If the caller already applied
        QuotaExhaustedError: If no slot is open for the caller's role
        RequestMismatchError: If userRole/recSeriesId disagree with token/module
    """
    role = applicant_role_for(user)
    if data.user_role is not None and data.user_role is not role:
        raise RequestMismatchError(
            f"userRole '{data.user_role.value}' does not match your account role '{role.value}'.",
            "ROLE_MISMATCH",
        )

    module = await module_service.get_module(db, data.module_id)

    if (
        data.recruitment_series_id is not None
        and data.recruitment_series_id != module.recruitment_series_id
    ):
        raise RequestMismatchError(
            "recSeriesId does not match the module's recruitment series.", "SERIES_MISMATCH"
        )
    if not accepts_applications(module.module_status):
        raise ModuleNotAcceptingApplicationsError(module.id, module.module_status.value)
    if not module.is_open_for(role):
        raise RoleNotEligibleError(module.id, role.value)

    module_id = module.id
    existing = await repository.get_by_applicant_and_module(db, user.id, module.id)
    if existing:
        logger.warning(f"Duplicate application by {user.id} for module {module.id}")
        raise DuplicateApplicationError(module.id)

    try:
        # ============================================
        # ATOMIC TRANSACTION: slot claim + application insert
        # ============================================
        quota = await module_repository.claim_slot(db, module.id, role)
        if quota is None:
            raise await _claim_refusal(db, module.id, role)

        application = await repository.create(
            db,
            applicant_id=user.id,
            applicant_email=user.email,
            module_id=module.id,
            recruitment_series_id=module.recruitment_series_id,
            role=role,
            ta_hours=data.ta_hours,
        )
        await db.commit()
        # ============================================
        # END ATOMIC TRANSACTION
        # ============================================
    except IntegrityError as e:
        # Concurrent duplicate: the unique (applicant, module) index fired
        await db.rollback()
        logger.warning(f"Duplicate application by {user.id} for module {module_id} (race)")
        raise DuplicateApplicationError(module_id) from e
    except RecruitmentError as e:
        await db.rollback()
        logger.warning(f"Application by {user.id} for module {module_id} refused: {e.message}")
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to create application for module {module_id}: {e}", exc_info=True)
        raise

    logger.info(
        f"Application {application.id} created: applicant={user.id}, module={module.id}, "
        f"role={role.value}, applied={quota.applied}"
    )

    await dispatcher.publish(
        NotificationEvent(
            type=NotificationType.APPLICATION_RECEIVED,
            recipients=[user.email],
            context=module_context(module),
        )
    )
    return _to_response(application)


# ============================================
# Accept / Reject
# ============================================


async def _load_for_decision(
    db: AsyncSession, application_id: UUID, actor: CurrentUser, verb: str
) -> tuple[Application, ModuleRecruitment]:
    application = await repository.get_by_id(db, application_id)
    if not application:
        raise ApplicationNotFoundError(application_id)

    module = await module_service.get_module(db, application.module_id)
    if not module.is_coordinator(actor.id):
        logger.warning(f"User {actor.id} tried to {verb} application {application_id}")
        raise NotAuthorizedError("Only the module's coordinators can decide its applications.")

    if not application.is_pending:
        raise AlreadyProcessedError(application.id, application.status.value)
    _check_decisions_open(module, f"{verb} an application for")
    return application, module


def _check_decisions_open(module: ModuleRecruitment, attempted: str) -> None:
    if not accepts_decisions(module.module_status):
        raise InvalidStatusTransitionError(module.module_status.value, attempted)


async def _status_miss(db: AsyncSession, application_id: UUID) -> RecruitmentError:
    fresh = await repository.get_fresh(db, application_id)
    if fresh is None:
        return ApplicationNotFoundError(application_id)
    return AlreadyProcessedError(application_id, fresh.status.value)


async def _decide(
    db: AsyncSession,
    application_id: UUID,
    actor: CurrentUser,
    decision: ApplicationStatus,
) -> DecisionResponse:
    verb = "accept" if decision is ApplicationStatus.ACCEPTED else "reject"
    logger.info(f"Coordinator {actor.id} {verb}ing application {application_id}")

    application, module = await _load_for_decision(db, application_id, actor, verb)
    role = application.role

    try:
        # ============================================
        # ATOMIC TRANSACTION: application status + ledger row (+ module status)
        # ============================================
        module = await module_service.lock_module(db, module.id)
        _check_decisions_open(module, f"{verb} an application for")

        if await repository.transition_status(db, application.id, decision, actor.id) is None:
            raise await _status_miss(db, application.id)

        current = await module_service.read_counts(db, module.id, role)
        updated = ledger.accept(current) if verb == "accept" else ledger.reject(current)
        if await module_repository.swap_counts(db, module.id, role, current, updated) is None:
            raise ConcurrentModificationError(f"{role.value} quota of module {module.id}")

        module_status = module.module_status
        if decision is ApplicationStatus.ACCEPTED:
            module_status = await module_service.reevaluate_capacity(db, module.id)

        await db.commit()
        # ============================================
        # END ATOMIC TRANSACTION
        # ============================================
    except RecruitmentError as e:
        await db.rollback()
        logger.warning(f"Could not {verb} application {application_id}: {e.message}")
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to {verb} application {application_id}: {e}", exc_info=True)
        raise

    logger.info(
        f"Application {application_id} {decision.value} by {actor.id}. "
        f"{role.value}: remaining={updated.remaining}, accepted={updated.accepted}, "
        f"reviewed={updated.reviewed}; module status={module_status.value}"
    )

    event_type = (
        NotificationType.APPLICATION_ACCEPTED
        if decision is ApplicationStatus.ACCEPTED
        else NotificationType.APPLICATION_REJECTED
    )
    await dispatcher.publish(
        NotificationEvent(
            type=event_type,
            recipients=[application.applicant_email],
            context=module_context(module),
        )
    )

    return DecisionResponse(
        application_id=application.id,
        status=decision,
        module_id=module.id,
        module_status=module_status,
        counts=RoleCountsResponse.from_counts(updated),
        message=f"Application {decision.value}.",
    )


async def accept(db: AsyncSession, application_id: UUID, actor: CurrentUser) -> DecisionResponse:
    """
    Accept a pending application: remaining -1, accepted +1, reviewed +1.

    Raises:
        ApplicationNotFoundError: If the application doesn't exist
        NotAuthorizedError: If the actor is not a coordinator of the module
        AlreadyProcessedError: If the application is no longer pending
        InvalidStatusTransitionError: If the module no longer takes decisions
        ConcurrentModificationError: If the ledger row changed underneath us
    """
    return await _decide(db, application_id, actor, ApplicationStatus.ACCEPTED)


async def reject(db: AsyncSession, application_id: UUID, actor: CurrentUser) -> DecisionResponse:
    """
    Reject a pending application: reviewed +1. ``remaining`` and ``applied``
    are unchanged. Raises the same errors as ``accept``.
    """
    return await _decide(db, application_id, actor, ApplicationStatus.REJECTED)


# ============================================
# Withdraw
# ============================================


async def withdraw(db: AsyncSession, application_id: UUID, user: CurrentUser) -> WithdrawResponse:
    """
    Delete the caller's own pending application and release its claim.

    Raises:
        ApplicationNotFoundError: If the application doesn't exist
        NotAuthorizedError: If the caller does not own it
        AlreadyProcessedError: If it was already accepted or rejected
        InvalidStatusTransitionError: If the module is closed
    """
    application = await repository.get_by_id(db, application_id)
    if not application:
        raise ApplicationNotFoundError(application_id)
    if application.applicant_id != user.id:
        raise NotAuthorizedError("You can only withdraw your own applications.")
    if not application.is_pending:
        raise AlreadyProcessedError(application.id, application.status.value)

    module = await module_service.get_module(db, application.module_id)
    _check_decisions_open(module, "withdraw an application from")

    module_id, role = application.module_id, application.role
    try:
        module = await module_service.lock_module(db, module_id)
        _check_decisions_open(module, "withdraw an application from")

        if not await repository.delete_pending(db, application_id):
            raise await _status_miss(db, application_id)

        current = await module_service.read_counts(db, module_id, role)
        released = ledger.release(current)
        if await module_repository.swap_counts(db, module_id, role, current, released) is None:
            raise ConcurrentModificationError(f"{role.value} quota of module {module_id}")

        await db.commit()
    except RecruitmentError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to withdraw application {application_id}: {e}", exc_info=True)
        raise

    logger.info(f"Application {application_id} withdrawn by {user.id}")
    return WithdrawResponse(application_id=application_id)


# ============================================
# Read views
# ============================================


def _applied_row(application: Application, module: ModuleRecruitment) -> dict:
    return {
        "application_id": application.id,
        "module_id": module.id,
        "module_code": module.module_code,
        "module_name": module.module_name,
        "semester": module.semester,
        "year": module.year,
        "module_status": module.module_status,
        "role": application.role,
        "ta_hours": application.ta_hours,
        "status": application.status,
        "applied_at": application.created_at,
    }


async def list_applied_modules(
    db: AsyncSession, user: CurrentUser
) -> list[AppliedModuleResponse]:
    """The caller's pending applications."""
    applications = await repository.list_by_applicant(db, user.id, ApplicationStatus.PENDING)
    modules = await module_repository.get_many(db, [a.module_id for a in applications])
    return [
        AppliedModuleResponse(**_applied_row(a, modules[a.module_id]))
        for a in applications
        if a.module_id in modules
    ]


async def list_accepted_modules(
    db: AsyncSession, user: CurrentUser
) -> list[AcceptedModuleResponse]:
    """The caller's accepted applications with their document progress."""
    applications = await repository.list_by_applicant(db, user.id, ApplicationStatus.ACCEPTED)
    modules = await module_repository.get_many(db, [a.module_id for a in applications])
    doc_statuses = await documents_repository.get_statuses(
        db, [(a.applicant_id, a.recruitment_series_id) for a in applications]
    )

    rows = []
    for application in applications:
        module = modules.get(application.module_id)
        if module is None:
            continue
        doc_status = doc_statuses.get((application.applicant_id, application.recruitment_series_id))
        rows.append(
            AcceptedModuleResponse(
                **_applied_row(application, module),
                document_due_date=module.document_due_date,
                document_status=doc_status.value if doc_status else None,
                documents_counted=application.documents_counted,
                appointed=application.is_appointed,
            )
        )
    return rows


async def _coordinator_view(
    db: AsyncSession,
    user: CurrentUser,
    status: ApplicationStatus,
    include_empty: bool,
) -> list[ModuleApplicationsResponse]:
    modules = await module_repository.list_for_coordinator(db, user.id)
    applications = await repository.list_by_modules(db, [m.id for m in modules], status)
    doc_statuses = await documents_repository.get_statuses(
        db, [(a.applicant_id, a.recruitment_series_id) for a in applications]
    )

    by_module: dict[UUID, list[ApplicantRow]] = {m.id: [] for m in modules}
    for application in applications:
        doc_status = doc_statuses.get((application.applicant_id, application.recruitment_series_id))
        by_module[application.module_id].append(
            ApplicantRow(
                application_id=application.id,
                applicant_id=application.applicant_id,
                applicant_email=application.applicant_email,
                role=application.role,
                ta_hours=application.ta_hours,
                status=application.status,
                applied_at=application.created_at,
                document_status=doc_status.value if doc_status else None,
                documents_counted=application.documents_counted,
                appointed=application.is_appointed,
            )
        )

    return [
        ModuleApplicationsResponse(
            module_id=module.id,
            module_code=module.module_code,
            module_name=module.module_name,
            module_status=module.module_status,
            required_ta_hours=module.required_ta_hours,
            undergraduate_counts=RoleCountsResponse.from_counts(
                counts_for(module, ApplicantRole.UNDERGRADUATE)
            ),
            postgraduate_counts=RoleCountsResponse.from_counts(
                counts_for(module, ApplicantRole.POSTGRADUATE)
            ),
            applications=by_module[module.id],
        )
        for module in modules
        if include_empty or by_module[module.id]
    ]


async def coordinator_inbox(
    db: AsyncSession, user: CurrentUser
) -> list[ModuleApplicationsResponse]:
    """Pending applications across the caller's modules, grouped by module."""
    return await _coordinator_view(db, user, ApplicationStatus.PENDING, include_empty=True)


async def modules_with_accepted_tas(
    db: AsyncSession, user: CurrentUser
) -> list[ModuleApplicationsResponse]:
    """The caller's modules that have accepted TAs, with document status per TA."""
    return await _coordinator_view(db, user, ApplicationStatus.ACCEPTED, include_empty=False)

