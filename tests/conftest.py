"""
Shared fixtures: a mocked session, callers for each portal role, and
factories for module recruitments and applications.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from ta_portal.core.auth import CurrentUser, UserRole
from ta_portal.modules.applications.models import Application, ApplicationStatus
from ta_portal.modules.module_recruitments.ledger import RoleCounts
from ta_portal.modules.module_recruitments.models import (
    ApplicantRole,
    ModuleRecruitment,
    ModuleStatus,
    RoleQuota,
)


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def undergraduate():
    return CurrentUser(id=uuid4(), email="ug@uni.test", role=UserRole.UNDERGRADUATE)


@pytest.fixture
def postgraduate():
    return CurrentUser(id=uuid4(), email="pg@uni.test", role=UserRole.POSTGRADUATE)


@pytest.fixture
def coordinator():
    return CurrentUser(id=uuid4(), email="lecturer@uni.test", role=UserRole.LECTURER)


@pytest.fixture
def admin():
    return CurrentUser(id=uuid4(), email="admin@uni.test", role=UserRole.ADMIN)


def build_module(
    status: ModuleStatus = ModuleStatus.ADVERTISED,
    *,
    undergraduate: RoleCounts | None = None,
    postgraduate: RoleCounts | None = None,
    coordinators: list | None = None,
) -> ModuleRecruitment:
    """
    A transient module recruitment. A role given as None is closed to
    applicants and gets no ledger row.
    """
    module = ModuleRecruitment(
        id=uuid4(),
        recruitment_series_id=uuid4(),
        module_code="CS3042",
        module_name="Database Systems",
        semester="5",
        year="2026",
        coordinators=coordinators or [],
        required_ta_hours=6.0,
        requirements=None,
        application_due_date=None,
        document_due_date=None,
        open_for_undergraduates=undergraduate is not None,
        open_for_postgraduates=postgraduate is not None,
        module_status=status,
        created_at=datetime.now(UTC),
        updated_at=datetime.now(UTC),
    )
    quotas = []
    for role, counts in (
        (ApplicantRole.UNDERGRADUATE, undergraduate),
        (ApplicantRole.POSTGRADUATE, postgraduate),
    ):
        if counts is not None:
            quotas.append(
                RoleQuota(
                    id=uuid4(),
                    module_id=module.id,
                    role=role,
                    version=counts.version,
                    **counts.counters(),
                )
            )
    module.quotas = quotas
    return module


def build_application(
    module: ModuleRecruitment,
    applicant: CurrentUser,
    role: ApplicantRole = ApplicantRole.UNDERGRADUATE,
    status: ApplicationStatus = ApplicationStatus.PENDING,
    *,
    documents_counted: bool = False,
    appointed: bool = False,
):
    now = datetime.now(UTC)
    application = MagicMock(spec=Application)
    application.id = uuid4()
    application.applicant_id = applicant.id
    application.applicant_email = applicant.email
    application.module_id = module.id
    application.recruitment_series_id = module.recruitment_series_id
    application.role = role
    application.ta_hours = None
    application.status = status
    application.decided_by = None
    application.status_changed_at = None
    application.documents_counted_at = now if documents_counted else None
    application.appointed_at = now if appointed else None
    application.documents_counted = documents_counted
    application.is_appointed = appointed
    application.is_pending = status is ApplicationStatus.PENDING
    application.created_at = now
    return application


@pytest.fixture
def make_module():
    return build_module


@pytest.fixture
def make_application():
    return build_application
