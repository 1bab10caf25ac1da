"""
Unit tests for the document gate service.

These tests cover:
- Submitting documents (first count, resubmission, checklist refusals)
- CSE office review
- Appointing TAs
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from ta_portal.core.exceptions import (
    AlreadyAppointedError,
    DocumentsNotSubmittedError,
    InvalidStatusTransitionError,
    MissingRequiredDocumentError,
    ModuleNotAcceptingDocumentsError,
    NoAcceptedApplicationError,
)
from ta_portal.modules.applications.models import ApplicationStatus
from ta_portal.modules.documents.models import DocumentStatus
from ta_portal.modules.documents.schemas import ReviewDocumentsRequest, SubmitDocumentsRequest
from ta_portal.modules.documents.service import appoint, review_submission, submit_documents
from ta_portal.modules.module_recruitments.ledger import RoleCounts
from ta_portal.modules.module_recruitments.models import ApplicantRole, ModuleStatus
from ta_portal.modules.notifications.events import NotificationType

ACCEPTED_ONE = RoleCounts(required=1, remaining=0, applied=1, reviewed=1, accepted=1)
COUNTED_ONE = RoleCounts(
    required=1, remaining=0, applied=1, reviewed=1, accepted=1, doc_submitted=1
)


def submit_request(module, documents, details=None):
    body = {"moduleId": str(module.id), "documents": documents}
    if details is not None:
        body["details"] = details
    return SubmitDocumentsRequest.model_validate(body)


class TestSubmitDocuments:
    @pytest.mark.asyncio
    async def test_first_complete_submission_is_counted(
        self,
        mock_db,
        mocks,
        undergraduate,
        make_module,
        make_application,
        make_submission,
        base_documents,
    ):
        module = make_module(ModuleStatus.GETTING_DOCUMENTS, undergraduate=ACCEPTED_ONE)
        application = make_application(module, undergraduate, status=ApplicationStatus.ACCEPTED)
        mocks.applications_repo.get_by_applicant_and_module = AsyncMock(return_value=application)
        mocks.applications_repo.mark_documents_counted = AsyncMock(return_value=True)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_service.read_counts = AsyncMock(return_value=ACCEPTED_ONE)
        mocks.module_repo.swap_counts = AsyncMock(return_value=MagicMock())
        mocks.repo.get_by_applicant_and_series = AsyncMock(return_value=None)
        mocks.repo.upsert = AsyncMock(
            side_effect=lambda db, existing, **kw: make_submission(
                undergraduate, module, kw["documents"]
            )
        )

        result = await submit_documents(
            mock_db,
            undergraduate,
            submit_request(module, base_documents, {"bank": "People's Bank"}),
        )

        assert result.created is True
        assert result.counted is True
        assert result.submission.status is DocumentStatus.SUBMITTED

        upsert_kwargs = mocks.repo.upsert.await_args.kwargs
        assert upsert_kwargs["details"] == {"bank": "People's Bank"}
        assert set(upsert_kwargs["documents"]) >= {"cv", "nic_copy", "bank_passbook_copy"}

        counted = mocks.module_repo.swap_counts.await_args.args[4]
        assert counted.doc_submitted == 1
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resubmission_is_not_counted_twice(
        self,
        mock_db,
        mocks,
        undergraduate,
        make_module,
        make_application,
        make_submission,
        base_documents,
    ):
        module = make_module(ModuleStatus.GETTING_DOCUMENTS, undergraduate=COUNTED_ONE)
        application = make_application(
            module, undergraduate, status=ApplicationStatus.ACCEPTED, documents_counted=True
        )
        on_file = make_submission(
            undergraduate,
            module,
            {
                "cv": {"submitted": True, "fileUrl": "https://files.test/cv.pdf"},
                "nic_copy": {"submitted": True, "fileUrl": "https://files.test/nic.pdf"},
                "bank_passbook_copy": {"submitted": True, "fileUrl": "https://files.test/pb.pdf"},
            },
        )
        mocks.applications_repo.get_by_applicant_and_module = AsyncMock(return_value=application)
        mocks.applications_repo.mark_documents_counted = AsyncMock(return_value=False)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_repo.swap_counts = AsyncMock()
        mocks.repo.get_by_applicant_and_series = AsyncMock(return_value=on_file)
        mocks.repo.upsert = AsyncMock(return_value=on_file)

        # Only the CV is replaced; the rest stays on file
        result = await submit_documents(
            mock_db, undergraduate, submit_request(module, {"cv": base_documents["cv"]})
        )

        assert result.created is False
        assert result.counted is False
        mocks.module_repo.swap_counts.assert_not_called()
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_postgraduate_without_degree_certificate(
        self, mock_db, mocks, postgraduate, make_module, make_application, base_documents
    ):
        module = make_module(ModuleStatus.GETTING_DOCUMENTS, postgraduate=ACCEPTED_ONE)
        application = make_application(
            module, postgraduate, ApplicantRole.POSTGRADUATE, ApplicationStatus.ACCEPTED
        )
        mocks.applications_repo.get_by_applicant_and_module = AsyncMock(return_value=application)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.repo.get_by_applicant_and_series = AsyncMock(return_value=None)
        mocks.repo.upsert = AsyncMock()

        with pytest.raises(MissingRequiredDocumentError) as exc:
            await submit_documents(mock_db, postgraduate, submit_request(module, base_documents))

        assert exc.value.missing == ["degree_certificate"]
        mocks.repo.upsert.assert_not_called()

    @pytest.mark.asyncio
    async def test_without_accepted_application(
        self, mock_db, mocks, undergraduate, make_module, make_application, base_documents
    ):
        module = make_module(ModuleStatus.GETTING_DOCUMENTS, undergraduate=ACCEPTED_ONE)
        pending = make_application(module, undergraduate)
        mocks.applications_repo.get_by_applicant_and_module = AsyncMock(return_value=pending)

        with pytest.raises(NoAcceptedApplicationError):
            await submit_documents(mock_db, undergraduate, submit_request(module, base_documents))

    @pytest.mark.asyncio
    async def test_module_not_collecting_documents(
        self, mock_db, mocks, undergraduate, make_module, make_application, base_documents
    ):
        module = make_module(ModuleStatus.FULL, undergraduate=ACCEPTED_ONE)
        application = make_application(module, undergraduate, status=ApplicationStatus.ACCEPTED)
        mocks.applications_repo.get_by_applicant_and_module = AsyncMock(return_value=application)
        mocks.module_service.get_module = AsyncMock(return_value=module)

        with pytest.raises(ModuleNotAcceptingDocumentsError):
            await submit_documents(mock_db, undergraduate, submit_request(module, base_documents))

    @pytest.mark.asyncio
    async def test_module_closed_before_submission(
        self, mock_db, mocks, undergraduate, make_module, make_application, base_documents
    ):
        """Collecting on the first read, but the locked row is already closed."""
        module = make_module(ModuleStatus.GETTING_DOCUMENTS, undergraduate=ACCEPTED_ONE)
        closed = make_module(ModuleStatus.CLOSED, undergraduate=ACCEPTED_ONE)
        closed.id = module.id
        application = make_application(module, undergraduate, status=ApplicationStatus.ACCEPTED)
        mocks.applications_repo.get_by_applicant_and_module = AsyncMock(return_value=application)
        mocks.applications_repo.mark_documents_counted = AsyncMock()
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_service.lock_module = AsyncMock(return_value=closed)
        mocks.repo.get_by_applicant_and_series = AsyncMock(return_value=None)
        mocks.repo.upsert = AsyncMock()

        with pytest.raises(ModuleNotAcceptingDocumentsError):
            await submit_documents(mock_db, undergraduate, submit_request(module, base_documents))

        mocks.repo.upsert.assert_not_called()
        mocks.applications_repo.mark_documents_counted.assert_not_called()
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()


class TestReview:
    @pytest.mark.asyncio
    async def test_review_records_decision_and_notifies(
        self, mock_db, mocks, admin, undergraduate, make_module, make_submission
    ):
        module = make_module(ModuleStatus.GETTING_DOCUMENTS, undergraduate=COUNTED_ONE)
        submission = make_submission(undergraduate, module)
        reviewed = make_submission(undergraduate, module, status=DocumentStatus.APPROVED)
        mocks.repo.get_by_id = AsyncMock(return_value=submission)
        mocks.repo.record_review = AsyncMock(return_value=reviewed)

        result = await review_submission(
            mock_db, submission.id, admin, ReviewDocumentsRequest(decision="approved")
        )

        assert result.status is DocumentStatus.APPROVED
        mock_db.commit.assert_awaited_once()
        event = mocks.dispatcher.publish.await_args.args[0]
        assert event.type is NotificationType.DOCUMENTS_REVIEWED
        assert event.recipients == [undergraduate.email]

    def test_submitted_is_not_a_review_decision(self):
        with pytest.raises(ValueError):
            ReviewDocumentsRequest(decision="submitted")


class TestAppoint:
    @pytest.mark.asyncio
    async def test_appoint_counts_once(
        self, mock_db, mocks, admin, undergraduate, make_module, make_application
    ):
        module = make_module(ModuleStatus.GETTING_DOCUMENTS, undergraduate=COUNTED_ONE)
        application = make_application(
            module, undergraduate, status=ApplicationStatus.ACCEPTED, documents_counted=True
        )
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_service.read_counts = AsyncMock(return_value=COUNTED_ONE)
        mocks.applications_repo.get_by_applicant_and_module = AsyncMock(return_value=application)
        mocks.applications_repo.mark_appointed = AsyncMock(return_value=True)
        mocks.module_repo.swap_counts = AsyncMock(return_value=MagicMock())

        result = await appoint(mock_db, module.id, undergraduate.id, admin)

        assert result.counts.appointed == 1
        assert result.counts.doc_submitted == 1
        mock_db.commit.assert_awaited_once()
        assert mocks.dispatcher.publish.await_args.args[0].type is NotificationType.TA_APPOINTED

    @pytest.mark.asyncio
    async def test_appoint_twice(
        self, mock_db, mocks, admin, undergraduate, make_module, make_application
    ):
        module = make_module(ModuleStatus.CLOSED, undergraduate=COUNTED_ONE)
        application = make_application(
            module,
            undergraduate,
            status=ApplicationStatus.ACCEPTED,
            documents_counted=True,
            appointed=True,
        )
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.applications_repo.get_by_applicant_and_module = AsyncMock(return_value=application)
        mocks.applications_repo.mark_appointed = AsyncMock()

        with pytest.raises(AlreadyAppointedError):
            await appoint(mock_db, module.id, undergraduate.id, admin)

        mocks.applications_repo.mark_appointed.assert_not_called()

    @pytest.mark.asyncio
    async def test_appoint_before_documents(
        self, mock_db, mocks, admin, undergraduate, make_module, make_application
    ):
        module = make_module(ModuleStatus.GETTING_DOCUMENTS, undergraduate=ACCEPTED_ONE)
        application = make_application(module, undergraduate, status=ApplicationStatus.ACCEPTED)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.applications_repo.get_by_applicant_and_module = AsyncMock(return_value=application)

        with pytest.raises(DocumentsNotSubmittedError):
            await appoint(mock_db, module.id, undergraduate.id, admin)

    @pytest.mark.asyncio
    async def test_appoint_while_advertised(self, mock_db, mocks, admin, make_module):
        module = make_module(ModuleStatus.ADVERTISED, undergraduate=ACCEPTED_ONE)
        mocks.module_service.get_module = AsyncMock(return_value=module)

        with pytest.raises(InvalidStatusTransitionError):
            await appoint(mock_db, module.id, module.id, admin)

    @pytest.mark.asyncio
    async def test_module_archived_before_appointment(
        self, mock_db, mocks, admin, undergraduate, make_module, make_application
    ):
        module = make_module(ModuleStatus.CLOSED, undergraduate=COUNTED_ONE)
        archived = make_module(ModuleStatus.ARCHIVED, undergraduate=COUNTED_ONE)
        archived.id = module.id
        application = make_application(
            module, undergraduate, status=ApplicationStatus.ACCEPTED, documents_counted=True
        )
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_service.lock_module = AsyncMock(return_value=archived)
        mocks.applications_repo.get_by_applicant_and_module = AsyncMock(return_value=application)
        mocks.applications_repo.mark_appointed = AsyncMock()
        mocks.module_repo.swap_counts = AsyncMock()

        with pytest.raises(InvalidStatusTransitionError):
            await appoint(mock_db, module.id, undergraduate.id, admin)

        mocks.applications_repo.mark_appointed.assert_not_called()
        mocks.module_repo.swap_counts.assert_not_called()
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()
