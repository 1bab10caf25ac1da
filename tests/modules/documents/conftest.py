"""
Fixtures for document gate tests.
"""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from ta_portal.modules.documents.models import DocumentStatus

SERVICE = "ta_portal.modules.documents.service"


@pytest.fixture
def mocks():
    """Patch the collaborators of the document service."""
    with (
        patch(f"{SERVICE}.repository") as repo,
        patch(f"{SERVICE}.applications_repository") as applications_repo,
        patch(f"{SERVICE}.module_repository") as module_repo,
        patch(f"{SERVICE}.module_service") as module_service,
        patch(f"{SERVICE}.dispatcher") as dispatcher,
    ):
        dispatcher.publish = AsyncMock()
        # The locked row is the module get_module returned unless a test overrides it
        module_service.lock_module = AsyncMock(
            side_effect=lambda db, module_id: module_service.get_module.return_value
        )
        yield SimpleNamespace(
            repo=repo,
            applications_repo=applications_repo,
            module_repo=module_repo,
            module_service=module_service,
            dispatcher=dispatcher,
        )


def file_entry(name: str) -> dict:
    return {"submitted": True, "fileUrl": f"https://files.test/{name}.pdf"}


@pytest.fixture
def make_submission():
    def _make(applicant, module, documents=None, status=DocumentStatus.SUBMITTED):
        now = datetime.now(UTC)
        return SimpleNamespace(
            id=uuid4(),
            applicant_id=applicant.id,
            applicant_email=applicant.email,
            recruitment_series_id=module.recruitment_series_id,
            name_as_in_bank_account=None,
            address=None,
            nic_number=None,
            bank=None,
            branch=None,
            account_number=None,
            documents=documents or {},
            status=status,
            review_note=None,
            reviewed_by=None,
            reviewed_at=None,
            created_at=now,
            updated_at=now,
        )

    return _make


@pytest.fixture
def base_documents():
    """The three documents every applicant must provide, in wire form."""
    return {
        "cv": file_entry("cv"),
        "nicCopy": file_entry("nic"),
        "bankPassbookCopy": file_entry("passbook"),
    }
