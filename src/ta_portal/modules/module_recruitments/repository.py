"""
Module Recruitment Repository

Reads and conditional writes for module recruitments and their quota
ledger rows. Nothing here commits: the calling service owns the
transaction, so a ledger write and the application write it accompanies
are committed (or rolled back) together.

Every ledger mutation is a single UPDATE ... WHERE <condition> RETURNING.
A None result means the condition did not hold when the row was written;
the caller decides whether that is a business refusal or a lost race.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .ledger import RoleCounts
from .models import ApplicantRole, ModuleRecruitment, ModuleStatus, RoleQuota


async def create(
    db: AsyncSession,
    *,
    recruitment_series_id: UUID,
    module_code: str,
    module_name: str,
    semester: str,
    year: str,
    coordinators: list[UUID],
    open_for_undergraduates: bool = True,
    open_for_postgraduates: bool = True,
    required_undergraduates: int = 0,
    required_postgraduates: int = 0,
) -> ModuleRecruitment:
    """Create a module recruitment with a ledger row per open role."""
    module = ModuleRecruitment(
        recruitment_series_id=recruitment_series_id,
        module_code=module_code,
        module_name=module_name,
        semester=semester,
        year=year,
        coordinators=coordinators,
        open_for_undergraduates=open_for_undergraduates,
        open_for_postgraduates=open_for_postgraduates,
        module_status=ModuleStatus.INITIALISED,
    )
    required = {
        ApplicantRole.UNDERGRADUATE: required_undergraduates,
        ApplicantRole.POSTGRADUATE: required_postgraduates,
    }
    module.quotas = [
        RoleQuota(role=role, **RoleCounts.opened(required[role]).counters())
        for role in module.open_roles()
    ]

    db.add(module)
    await db.flush()
    return module


async def get_by_id(db: AsyncSession, module_id: UUID) -> ModuleRecruitment | None:
    """Get a module recruitment (quotas are loaded eagerly)."""
    return await db.get(ModuleRecruitment, module_id)


async def get_many(db: AsyncSession, module_ids: list[UUID]) -> dict[UUID, ModuleRecruitment]:
    if not module_ids:
        return {}
    result = await db.execute(
        select(ModuleRecruitment).where(ModuleRecruitment.id.in_(module_ids))
    )
    return {module.id: module for module in result.scalars().all()}


async def get_quota(db: AsyncSession, module_id: UUID, role: ApplicantRole) -> RoleQuota | None:
    """Fresh read of one ledger row, bypassing the identity map."""
    result = await db.execute(
        select(RoleQuota)
        .where(RoleQuota.module_id == module_id, RoleQuota.role == role)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_advertised_for_role(
    db: AsyncSession, role: ApplicantRole
) -> list[ModuleRecruitment]:
    """Advertised modules open to ``role``."""
    eligibility = (
        ModuleRecruitment.open_for_undergraduates
        if role is ApplicantRole.UNDERGRADUATE
        else ModuleRecruitment.open_for_postgraduates
    )
    result = await db.execute(
        select(ModuleRecruitment)
        .where(
            ModuleRecruitment.module_status == ModuleStatus.ADVERTISED,
            eligibility.is_(True),
        )
        .order_by(ModuleRecruitment.module_code)
    )
    return list(result.scalars().all())


async def list_for_coordinator(db: AsyncSession, user_id: UUID) -> list[ModuleRecruitment]:
    """Modules listing ``user_id`` among their coordinators, newest first."""
    result = await db.execute(
        select(ModuleRecruitment)
        .where(ModuleRecruitment.coordinators.any(user_id))
        .order_by(ModuleRecruitment.created_at.desc())
    )
    return list(result.scalars().all())


# ============================================
# Conditional ledger writes
# ============================================


async def claim_slot(db: AsyncSession, module_id: UUID, role: ApplicantRole) -> RoleQuota | None:
    """
    Increment ``applied`` only if the module is advertised and an open slot
    remains, in one statement.

    Open slot: remaining - (applied - reviewed) > 0. Two concurrent callers
    racing for the last slot serialize on the row lock; the second one
    re-evaluates the predicate and matches nothing.

    Returns:
        The updated ledger row, or None if no slot could be claimed
    """
    advertised = (
        select(ModuleRecruitment.id)
        .where(
            ModuleRecruitment.id == module_id,
            ModuleRecruitment.module_status == ModuleStatus.ADVERTISED,
        )
        .scalar_subquery()
    )
    result = await db.execute(
        update(RoleQuota)
        .where(
            RoleQuota.module_id == advertised,
            RoleQuota.role == role,
            RoleQuota.remaining - (RoleQuota.applied - RoleQuota.reviewed) > 0,
        )
        .values(applied=RoleQuota.applied + 1, version=RoleQuota.version + 1)
        .returning(RoleQuota)
        .execution_options(synchronize_session="fetch")
    )
    return result.scalar_one_or_none()


async def swap_counts(
    db: AsyncSession,
    module_id: UUID,
    role: ApplicantRole,
    expected: RoleCounts,
    new: RoleCounts,
) -> RoleQuota | None:
    """
    Compare-and-swap a ledger row.

    Writes ``new``'s counters only if the row still carries
    ``expected.version``, and bumps the version.

    Returns:
        The updated ledger row, or None if another writer got there first
    """
    result = await db.execute(
        update(RoleQuota)
        .where(
            RoleQuota.module_id == module_id,
            RoleQuota.role == role,
            RoleQuota.version == expected.version,
        )
        .values(**new.counters(), version=expected.version + 1)
        .returning(RoleQuota)
        .execution_options(synchronize_session="fetch")
    )
    return result.scalar_one_or_none()


async def set_status(
    db: AsyncSession,
    module_id: UUID,
    expected: ModuleStatus,
    new: ModuleStatus,
) -> ModuleRecruitment | None:
    """
    Move a module from ``expected`` to ``new``.

    Returns:
        The updated module, or None if its status was no longer ``expected``
    """
    result = await db.execute(
        update(ModuleRecruitment)
        .where(ModuleRecruitment.id == module_id, ModuleRecruitment.module_status == expected)
        .values(module_status=new)
        .returning(ModuleRecruitment)
        .execution_options(synchronize_session="fetch")
    )
    return result.scalar_one_or_none()


async def update_details(
    db: AsyncSession,
    module: ModuleRecruitment,
    **fields,
) -> ModuleRecruitment:
    """Update descriptive (non-ledger) fields of a module."""
    for key, value in fields.items():
        if hasattr(module, key) and key not in ("quotas", "module_status", "id"):
            setattr(module, key, value)
    await db.flush()
    return module


async def get_fresh(db: AsyncSession, module_id: UUID) -> ModuleRecruitment | None:
    """Re-read a module and its ledger rows, bypassing the identity map."""
    result = await db.execute(
        select(ModuleRecruitment)
        .where(ModuleRecruitment.id == module_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def lock_for_status_update(db: AsyncSession, module_id: UUID) -> ModuleRecruitment | None:
    """
    SELECT ... FOR UPDATE on the module row.

    Serializes capacity re-evaluation per module: a second writer waits here
    and then reads the ledger rows the first one committed.
    """
    result = await db.execute(
        select(ModuleRecruitment)
        .where(ModuleRecruitment.id == module_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
