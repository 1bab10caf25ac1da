"""
Module Recruitment Service

Business logic for the module lifecycle:
1. Staff status actions (request changes, advertise, start documents, close, archive)
2. Coordinator requirement edits (required TA counts per role, hours, text)
3. Automatic ``advertised <-> full`` re-evaluation after ledger writes
4. Read views for admins, coordinators and applicants

Every write runs in the caller's session and is committed here; a failure
rolls the whole transaction back. Notifications are published only after
the commit succeeds.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ta_portal.core.auth import CurrentUser
from ta_portal.core.config import settings
from ta_portal.core.exceptions import (
    ConcurrentModificationError,
    InvalidStatusTransitionError,
    ModuleRecruitmentNotFoundError,
    NotAuthorizedError,
    RecruitmentError,
    RequiredBelowCommittedError,
    RoleNotEligibleError,
)
from ta_portal.modules.module_recruitments import ledger, repository
from ta_portal.modules.module_recruitments.ledger import (
    LedgerInvariantError,
    RoleCounts,
)
from ta_portal.modules.module_recruitments.models import (
    ApplicantRole,
    ModuleRecruitment,
    ModuleStatus,
)
from ta_portal.modules.module_recruitments.schemas import (
    ModuleActionResponse,
    ModuleRecruitmentResponse,
    ModuleRequirementsUpdate,
    OpenPositionResponse,
    counts_for,
)
from ta_portal.modules.module_recruitments.status import (
    EDITABLE_STATUSES,
    STAFF_ACTIONS,
    ModuleAction,
    accepts_decisions,
    allowed_actions,
    capacity_action,
    next_status,
)
from ta_portal.modules.notifications import dispatcher
from ta_portal.modules.notifications.events import (
    NotificationEvent,
    NotificationType,
    module_context,
)

logger = logging.getLogger(__name__)


def mailing_list_for(role: ApplicantRole) -> str:
    if role is ApplicantRole.UNDERGRADUATE:
        return settings.undergraduate_mailing_list
    return settings.postgraduate_mailing_list


# ============================================
# Shared helpers (also used by the application and document services)
# ============================================


async def get_module(db: AsyncSession, module_id: UUID) -> ModuleRecruitment:
    """
    Raises:
        ModuleRecruitmentNotFoundError: If the module doesn't exist
    """
    module = await repository.get_by_id(db, module_id)
    if not module:
        logger.warning(f"Module not found: {module_id}")
        raise ModuleRecruitmentNotFoundError(module_id)
    return module


async def read_counts(db: AsyncSession, module_id: UUID, role: ApplicantRole) -> RoleCounts:
    """Fresh ledger snapshot for one role of a module."""
    quota = await repository.get_quota(db, module_id, role)
    if quota is None:
        raise LedgerInvariantError([f"no ledger row for {role.value} on module {module_id}"])
    return RoleCounts.from_row(quota)


async def lock_module(db: AsyncSession, module_id: UUID) -> ModuleRecruitment:
    """
    Lock the module row for the rest of the caller's transaction.

    Status actions write the same row, so a stage gate checked on the
    returned module still holds at commit. Take this lock before touching
    any ledger row of the module.

    Raises:
        ModuleRecruitmentNotFoundError: If the module doesn't exist
    """
    module = await repository.lock_for_status_update(db, module_id)
    if module is None:
        raise ModuleRecruitmentNotFoundError(module_id)
    return module


async def reevaluate_capacity(db: AsyncSession, module_id: UUID) -> ModuleStatus:
    """
    Apply the automatic ``mark_full`` / ``reopen`` transition the ledger calls
    for, inside the caller's transaction.

    Returns:
        The module's status after re-evaluation

    Raises:
        InvalidStatusTransitionError: If the module stopped taking decisions
    """
    module = await lock_module(db, module_id)
    if not accepts_decisions(module.module_status):
        raise InvalidStatusTransitionError(module.module_status.value, "re-evaluate capacity of")

    counts = {role: await read_counts(db, module_id, role) for role in module.open_roles()}
    action = capacity_action(module.module_status, counts)
    if action is None:
        return module.module_status

    previous = module.module_status
    target = next_status(previous, action)
    if await repository.set_status(db, module_id, previous, target) is None:
        raise ConcurrentModificationError(f"Module {module_id}")

    logger.info(f"Module {module_id} automatically moved {previous.value} -> {target.value}")
    return target


def _staff_actions(status: ModuleStatus) -> list[str]:
    return [action.value for action in allowed_actions(status) if action in STAFF_ACTIONS]


# ============================================
# Read views
# ============================================


async def get_module_detail(db: AsyncSession, module_id: UUID) -> ModuleRecruitmentResponse:
    module = await get_module(db, module_id)
    return ModuleRecruitmentResponse.from_module(module, _staff_actions(module.module_status))


async def list_open_positions(db: AsyncSession, role: ApplicantRole) -> list[OpenPositionResponse]:
    """Advertised modules open to ``role``, with that role's counts only."""
    modules = await repository.list_advertised_for_role(db, role)

    positions = []
    for module in modules:
        counts = counts_for(module, role)
        positions.append(
            OpenPositionResponse(
                module_id=module.id,
                recruitment_series_id=module.recruitment_series_id,
                module_code=module.module_code,
                module_name=module.module_name,
                semester=module.semester,
                year=module.year,
                required_ta_hours=module.required_ta_hours,
                requirements=module.requirements,
                application_due_date=module.application_due_date,
                role=role,
                required=counts.required,
                remaining=counts.remaining,
                open_slots=max(counts.open_slots, 0),
            )
        )
    return positions


async def list_coordinator_modules(
    db: AsyncSession, user: CurrentUser
) -> list[ModuleRecruitmentResponse]:
    modules = await repository.list_for_coordinator(db, user.id)
    return [ModuleRecruitmentResponse.from_module(module) for module in modules]


# ============================================
# Staff status actions
# ============================================


async def _events_for_action(
    db: AsyncSession, module: ModuleRecruitment, action: ModuleAction
) -> list[NotificationEvent]:
    if action is ModuleAction.ADVERTISE:
        return [
            NotificationEvent(
                type=NotificationType.MODULE_ADVERTISED,
                recipients=[mailing_list_for(role)],
                context={
                    **module_context(module),
                    "role": role.value,
                    "required_ta_hours": module.required_ta_hours,
                },
            )
            for role in module.open_roles()
        ]

    if action is ModuleAction.START_DOCUMENTS:
        from ta_portal.modules.applications import repository as applications_repository

        accepted = await applications_repository.list_accepted_for_module(db, module.id)
        if not accepted:
            return []
        due_date = module.document_due_date.date().isoformat() if module.document_due_date else None
        return [
            NotificationEvent(
                type=NotificationType.DOCUMENTS_REQUESTED,
                recipients=[application.applicant_email for application in accepted],
                context={**module_context(module), "due_date": due_date},
            )
        ]

    return []


async def perform_action(
    db: AsyncSession,
    module_id: UUID,
    action: ModuleAction,
    actor: CurrentUser,
) -> ModuleActionResponse:
    """
    Apply a staff action to a module.

    Args:
        db: Database session
        module_id: Module recruitment UUID
        action: One of the staff actions
        actor: Admin performing the action

    Returns:
        ModuleActionResponse with the previous and new status

    Raises:
        ModuleRecruitmentNotFoundError: If the module doesn't exist
        InvalidStatusTransitionError: If the action isn't legal from the current status
        ConcurrentModificationError: If the status changed underneath us
    """
    logger.info(f"User {actor.id} requested '{action.value}' on module {module_id}")

    module = await get_module(db, module_id)
    previous = module.module_status

    if action not in STAFF_ACTIONS:
        raise InvalidStatusTransitionError(
            previous.value, action.value, allowed=_staff_actions(previous)
        )
    target = next_status(previous, action)

    try:
        if await repository.set_status(db, module_id, previous, target) is None:
            raise ConcurrentModificationError(f"Module {module_id}")

        final = target
        if action is ModuleAction.ADVERTISE:
            # A module advertised with no positions left is full straight away
            final = await reevaluate_capacity(db, module_id)

        events = await _events_for_action(db, module, action)
        await db.commit()
    except RecruitmentError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to apply '{action.value}' to module {module_id}: {e}", exc_info=True)
        raise

    logger.info(f"Module {module_id}: {previous.value} -> {final.value} by {actor.id}")
    await dispatcher.publish_all(events)

    return ModuleActionResponse(
        module_id=module_id,
        previous_status=previous,
        module_status=final,
        message=f"Module moved from {previous.value} to {final.value}.",
    )


# ============================================
# Coordinator requirement edits
# ============================================


async def _resize_role(
    db: AsyncSession,
    module: ModuleRecruitment,
    role: ApplicantRole,
    required: int | None,
) -> None:
    if required is None:
        return
    if not module.is_open_for(role):
        if required > 0:
            raise RoleNotEligibleError(module.id, role.value)
        return

    current = await read_counts(db, module.id, role)
    try:
        resized = ledger.resize(current, required)
    except LedgerInvariantError as e:
        raise RequiredBelowCommittedError(role.value, required, current.committed) from e

    if resized == current:
        return
    if await repository.swap_counts(db, module.id, role, current, resized) is None:
        raise ConcurrentModificationError(f"{role.value} quota of module {module.id}")


async def submit_requirements(
    db: AsyncSession,
    module_id: UUID,
    user: CurrentUser,
    data: ModuleRequirementsUpdate,
) -> ModuleRecruitmentResponse:
    """
    A coordinator submits (or revises) a module's TA requirements.

    In ``pending-changes`` / ``changes-submitted`` this is the submit-changes
    action. In ``advertised`` / ``full`` the positions are resized in place
    and the module is re-evaluated: raising ``required`` on a full module
    reopens it.

    Raises:
        ModuleRecruitmentNotFoundError: If the module doesn't exist
        NotAuthorizedError: If the user is not one of the module's coordinators
        InvalidStatusTransitionError: If requirements can't be edited in this status
        RequiredBelowCommittedError: If a role would drop below its accepted + pending count
        ConcurrentModificationError: If the ledger changed underneath us
    """
    module = await get_module(db, module_id)

    if not module.is_coordinator(user.id):
        logger.warning(f"User {user.id} is not a coordinator of module {module_id}")
        raise NotAuthorizedError("Only the module's coordinators can edit its requirements.")

    if module.module_status not in EDITABLE_STATUSES:
        raise InvalidStatusTransitionError(module.module_status.value, "edit requirements of")

    try:
        module = await lock_module(db, module_id)
        previous = module.module_status
        if previous not in EDITABLE_STATUSES:
            raise InvalidStatusTransitionError(previous.value, "edit requirements of")

        await _resize_role(db, module, ApplicantRole.UNDERGRADUATE, data.required_undergraduates)
        await _resize_role(db, module, ApplicantRole.POSTGRADUATE, data.required_postgraduates)

        details = data.model_dump(include={"required_ta_hours", "requirements"}, exclude_unset=True)
        if details:
            await repository.update_details(db, module, **details)

        if previous is ModuleStatus.PENDING_CHANGES:
            target = next_status(previous, ModuleAction.SUBMIT_CHANGES)
            if await repository.set_status(db, module_id, previous, target) is None:
                raise ConcurrentModificationError(f"Module {module_id}")
        elif previous in (ModuleStatus.ADVERTISED, ModuleStatus.FULL):
            await reevaluate_capacity(db, module_id)

        await db.commit()
    except RecruitmentError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to update requirements of module {module_id}: {e}", exc_info=True)
        raise

    logger.info(f"Coordinator {user.id} updated requirements of module {module_id}")

    module = await repository.get_fresh(db, module_id)
    return ModuleRecruitmentResponse.from_module(module)
