"""
Unit tests for the application service layer.

These tests cover:
- Applying (slot claim, refusals, duplicates, request cross-checks)
- Accepting and rejecting (ledger deltas, idempotence, lost races)
- Withdrawing a pending application
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from ta_portal.core.exceptions import (
    AlreadyProcessedError,
    ConcurrentModificationError,
    DuplicateApplicationError,
    InvalidStatusTransitionError,
    ModuleNotAcceptingApplicationsError,
    NotAuthorizedError,
    QuotaExhaustedError,
    RequestMismatchError,
    RoleNotEligibleError,
)
from ta_portal.modules.applications.models import ApplicationStatus
from ta_portal.modules.applications.schemas import ApplyRequest
from ta_portal.modules.applications.service import accept, apply, reject, withdraw
from ta_portal.modules.module_recruitments.ledger import RoleCounts
from ta_portal.modules.module_recruitments.models import ApplicantRole, ModuleStatus
from ta_portal.modules.notifications.events import NotificationType


class TestApply:
    @pytest.mark.asyncio
    async def test_apply_claims_a_slot(
        self, mock_db, mocks, undergraduate, make_module, make_application
    ):
        """Successful apply claims a slot and notifies the applicant."""
        module = make_module(undergraduate=RoleCounts.opened(2))
        application = make_application(module, undergraduate)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.repo.get_by_applicant_and_module = AsyncMock(return_value=None)
        mocks.repo.create = AsyncMock(return_value=application)
        mocks.module_repo.claim_slot = AsyncMock(return_value=MagicMock(applied=1))

        result = await apply(mock_db, undergraduate, ApplyRequest(module_id=module.id))

        assert result.id == application.id
        assert result.status is ApplicationStatus.PENDING
        assert result.role is ApplicantRole.UNDERGRADUATE
        mocks.module_repo.claim_slot.assert_awaited_once_with(
            mock_db, module.id, ApplicantRole.UNDERGRADUATE
        )
        mock_db.commit.assert_awaited_once()

        event = mocks.dispatcher.publish.await_args.args[0]
        assert event.type is NotificationType.APPLICATION_RECEIVED
        assert event.recipients == [undergraduate.email]

    @pytest.mark.asyncio
    async def test_apply_when_no_open_slot(self, mock_db, mocks, undergraduate, make_module):
        """Last slot already claimed by a pending application."""
        module = make_module(undergraduate=RoleCounts(required=1, remaining=1, applied=1))
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_service.read_counts = AsyncMock(
            return_value=RoleCounts(required=1, remaining=1, applied=1)
        )
        mocks.repo.get_by_applicant_and_module = AsyncMock(return_value=None)
        mocks.repo.create = AsyncMock()
        mocks.module_repo.claim_slot = AsyncMock(return_value=None)
        mocks.module_repo.get_fresh = AsyncMock(return_value=module)

        with pytest.raises(QuotaExhaustedError):
            await apply(mock_db, undergraduate, ApplyRequest(module_id=module.id))

        mocks.repo.create.assert_not_called()
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()
        mocks.dispatcher.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_apply_when_module_filled_before_claim(
        self, mock_db, mocks, undergraduate, make_module
    ):
        module = make_module(undergraduate=RoleCounts.opened(1))
        filled = make_module(ModuleStatus.FULL, undergraduate=RoleCounts.opened(1))
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.repo.get_by_applicant_and_module = AsyncMock(return_value=None)
        mocks.module_repo.claim_slot = AsyncMock(return_value=None)
        mocks.module_repo.get_fresh = AsyncMock(return_value=filled)

        with pytest.raises(ModuleNotAcceptingApplicationsError):
            await apply(mock_db, undergraduate, ApplyRequest(module_id=module.id))

    @pytest.mark.asyncio
    async def test_apply_to_module_not_advertised(
        self, mock_db, mocks, undergraduate, make_module
    ):
        module = make_module(ModuleStatus.CHANGES_SUBMITTED, undergraduate=RoleCounts.opened(1))
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_repo.claim_slot = AsyncMock()

        with pytest.raises(ModuleNotAcceptingApplicationsError):
            await apply(mock_db, undergraduate, ApplyRequest(module_id=module.id))

        mocks.module_repo.claim_slot.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [ModuleStatus.CLOSED, ModuleStatus.ARCHIVED])
    async def test_apply_to_closed_module(
        self, mock_db, mocks, undergraduate, make_module, status
    ):
        module = make_module(status, undergraduate=RoleCounts.opened(1))
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_repo.claim_slot = AsyncMock()

        with pytest.raises(ModuleNotAcceptingApplicationsError):
            await apply(mock_db, undergraduate, ApplyRequest(module_id=module.id))

        mocks.module_repo.claim_slot.assert_not_called()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_module_closed_before_claim(self, mock_db, mocks, undergraduate, make_module):
        """The claim's own status condition refuses a module closed after the first read."""
        module = make_module(undergraduate=RoleCounts.opened(1))
        closed = make_module(ModuleStatus.CLOSED, undergraduate=RoleCounts.opened(1))
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.repo.get_by_applicant_and_module = AsyncMock(return_value=None)
        mocks.repo.create = AsyncMock()
        mocks.module_repo.claim_slot = AsyncMock(return_value=None)
        mocks.module_repo.get_fresh = AsyncMock(return_value=closed)

        with pytest.raises(ModuleNotAcceptingApplicationsError):
            await apply(mock_db, undergraduate, ApplyRequest(module_id=module.id))

        mocks.repo.create.assert_not_called()
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_apply_to_module_closed_to_role(
        self, mock_db, mocks, undergraduate, make_module
    ):
        module = make_module(postgraduate=RoleCounts.opened(1))
        mocks.module_service.get_module = AsyncMock(return_value=module)

        with pytest.raises(RoleNotEligibleError):
            await apply(mock_db, undergraduate, ApplyRequest(module_id=module.id))

    @pytest.mark.asyncio
    async def test_apply_twice(self, mock_db, mocks, undergraduate, make_module, make_application):
        module = make_module(undergraduate=RoleCounts.opened(2))
        existing = make_application(module, undergraduate)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.repo.get_by_applicant_and_module = AsyncMock(return_value=existing)
        mocks.module_repo.claim_slot = AsyncMock()

        with pytest.raises(DuplicateApplicationError):
            await apply(mock_db, undergraduate, ApplyRequest(module_id=module.id))

        mocks.module_repo.claim_slot.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_hits_unique_index(
        self, mock_db, mocks, undergraduate, make_module
    ):
        """The insert loses to a concurrent apply by the same applicant."""
        module = make_module(undergraduate=RoleCounts.opened(2))
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.repo.get_by_applicant_and_module = AsyncMock(return_value=None)
        mocks.repo.create = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("duplicate key"))
        )
        mocks.module_repo.claim_slot = AsyncMock(return_value=MagicMock(applied=1))

        with pytest.raises(DuplicateApplicationError):
            await apply(mock_db, undergraduate, ApplyRequest(module_id=module.id))

        mock_db.rollback.assert_awaited_once()
        mocks.dispatcher.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_user_role_must_match_token(self, mock_db, undergraduate):
        with pytest.raises(RequestMismatchError) as exc:
            await apply(
                mock_db,
                undergraduate,
                ApplyRequest(module_id=uuid4(), user_role="postgraduate"),
            )
        assert exc.value.error_code == "ROLE_MISMATCH"

    @pytest.mark.asyncio
    async def test_series_must_match_module(self, mock_db, mocks, undergraduate, make_module):
        module = make_module(undergraduate=RoleCounts.opened(1))
        mocks.module_service.get_module = AsyncMock(return_value=module)

        with pytest.raises(RequestMismatchError) as exc:
            await apply(
                mock_db,
                undergraduate,
                ApplyRequest(module_id=module.id, recSeriesId=uuid4()),
            )
        assert exc.value.error_code == "SERIES_MISMATCH"

    @pytest.mark.asyncio
    async def test_staff_cannot_apply(self, mock_db, coordinator):
        with pytest.raises(NotAuthorizedError):
            await apply(mock_db, coordinator, ApplyRequest(module_id=uuid4()))


class TestDecisions:
    @pytest.mark.asyncio
    async def test_accept_updates_ledger(
        self, mock_db, mocks, undergraduate, coordinator, make_module, make_application
    ):
        """Accept: remaining -1, accepted +1, reviewed +1, applied unchanged."""
        module = make_module(undergraduate=RoleCounts.opened(2), coordinators=[coordinator.id])
        application = make_application(module, undergraduate)
        current = RoleCounts(required=2, remaining=2, applied=1, version=1)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.repo.transition_status = AsyncMock(return_value=application)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_service.read_counts = AsyncMock(return_value=current)
        mocks.module_service.reevaluate_capacity = AsyncMock(return_value=ModuleStatus.ADVERTISED)
        mocks.module_repo.swap_counts = AsyncMock(return_value=MagicMock())

        result = await accept(mock_db, application.id, coordinator)

        assert result.status is ApplicationStatus.ACCEPTED
        assert result.counts.remaining == 1
        assert result.counts.accepted == 1
        assert result.counts.reviewed == 1
        assert result.counts.applied == 1

        expected, new = mocks.module_repo.swap_counts.await_args.args[3:]
        assert expected is current
        assert new.accepted == 1
        mocks.module_service.reevaluate_capacity.assert_awaited_once_with(mock_db, module.id)
        mock_db.commit.assert_awaited_once()

        event = mocks.dispatcher.publish.await_args.args[0]
        assert event.type is NotificationType.APPLICATION_ACCEPTED
        assert event.recipients == [undergraduate.email]

    @pytest.mark.asyncio
    async def test_accepting_last_position_fills_module(
        self, mock_db, mocks, undergraduate, coordinator, make_module, make_application
    ):
        module = make_module(undergraduate=RoleCounts.opened(1), coordinators=[coordinator.id])
        application = make_application(module, undergraduate)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.repo.transition_status = AsyncMock(return_value=application)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_service.read_counts = AsyncMock(
            return_value=RoleCounts(required=1, remaining=1, applied=1)
        )
        mocks.module_service.reevaluate_capacity = AsyncMock(return_value=ModuleStatus.FULL)
        mocks.module_repo.swap_counts = AsyncMock(return_value=MagicMock())

        result = await accept(mock_db, application.id, coordinator)

        assert result.counts.remaining == 0
        assert result.module_status is ModuleStatus.FULL

    @pytest.mark.asyncio
    async def test_reject_keeps_remaining(
        self, mock_db, mocks, undergraduate, coordinator, make_module, make_application
    ):
        """Reject: reviewed +1 only; the module is not re-evaluated."""
        module = make_module(undergraduate=RoleCounts.opened(2), coordinators=[coordinator.id])
        application = make_application(module, undergraduate)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.repo.transition_status = AsyncMock(return_value=application)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_service.read_counts = AsyncMock(
            return_value=RoleCounts(required=2, remaining=2, applied=1)
        )
        mocks.module_service.reevaluate_capacity = AsyncMock()
        mocks.module_repo.swap_counts = AsyncMock(return_value=MagicMock())

        result = await reject(mock_db, application.id, coordinator)

        assert result.status is ApplicationStatus.REJECTED
        assert result.counts.remaining == 2
        assert result.counts.reviewed == 1
        assert result.counts.accepted == 0
        mocks.module_service.reevaluate_capacity.assert_not_called()
        event = mocks.dispatcher.publish.await_args.args[0]
        assert event.type is NotificationType.APPLICATION_REJECTED

    @pytest.mark.asyncio
    async def test_second_accept_is_already_processed(
        self, mock_db, mocks, undergraduate, coordinator, make_module, make_application
    ):
        """Accepting an already-accepted application leaves the ledger alone."""
        module = make_module(undergraduate=RoleCounts.opened(2), coordinators=[coordinator.id])
        application = make_application(module, undergraduate, status=ApplicationStatus.ACCEPTED)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.repo.transition_status = AsyncMock()
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_repo.swap_counts = AsyncMock()

        with pytest.raises(AlreadyProcessedError) as exc:
            await accept(mock_db, application.id, coordinator)

        assert exc.value.current_status == "accepted"
        mocks.repo.transition_status.assert_not_called()
        mocks.module_repo.swap_counts.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_decision_on_same_application(
        self, mock_db, mocks, undergraduate, coordinator, make_module, make_application
    ):
        """The conditional status write finds the application already decided."""
        module = make_module(undergraduate=RoleCounts.opened(2), coordinators=[coordinator.id])
        application = make_application(module, undergraduate)
        decided = make_application(module, undergraduate, status=ApplicationStatus.REJECTED)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.repo.transition_status = AsyncMock(return_value=None)
        mocks.repo.get_fresh = AsyncMock(return_value=decided)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_repo.swap_counts = AsyncMock()

        with pytest.raises(AlreadyProcessedError):
            await accept(mock_db, application.id, coordinator)

        mocks.module_repo.swap_counts.assert_not_called()
        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lost_ledger_race_is_retryable(
        self, mock_db, mocks, undergraduate, coordinator, make_module, make_application
    ):
        module = make_module(undergraduate=RoleCounts.opened(2), coordinators=[coordinator.id])
        application = make_application(module, undergraduate)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.repo.transition_status = AsyncMock(return_value=application)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_service.read_counts = AsyncMock(
            return_value=RoleCounts(required=2, remaining=2, applied=1)
        )
        mocks.module_repo.swap_counts = AsyncMock(return_value=None)

        with pytest.raises(ConcurrentModificationError) as exc:
            await accept(mock_db, application.id, coordinator)

        assert exc.value.to_detail()["retryable"] is True
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()
        mocks.dispatcher.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_only_coordinators_decide(
        self, mock_db, mocks, undergraduate, coordinator, make_module, make_application
    ):
        module = make_module(undergraduate=RoleCounts.opened(2))
        application = make_application(module, undergraduate)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.module_service.get_module = AsyncMock(return_value=module)

        with pytest.raises(NotAuthorizedError):
            await reject(mock_db, application.id, coordinator)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("decide", [accept, reject])
    @pytest.mark.parametrize("status", [ModuleStatus.CLOSED, ModuleStatus.ARCHIVED])
    async def test_closed_module_refuses_decisions(
        self,
        mock_db,
        mocks,
        undergraduate,
        coordinator,
        make_module,
        make_application,
        decide,
        status,
    ):
        module = make_module(
            status, undergraduate=RoleCounts.opened(2), coordinators=[coordinator.id]
        )
        application = make_application(module, undergraduate)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.repo.transition_status = AsyncMock()
        mocks.module_service.get_module = AsyncMock(return_value=module)

        with pytest.raises(InvalidStatusTransitionError):
            await decide(mock_db, application.id, coordinator)

        mocks.repo.transition_status.assert_not_called()
        mock_db.commit.assert_not_called()
        mocks.dispatcher.publish.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("decide", [accept, reject])
    async def test_close_committed_before_decision(
        self, mock_db, mocks, undergraduate, coordinator, make_module, make_application, decide
    ):
        """The module reads advertised, but the locked row is already closed."""
        module = make_module(undergraduate=RoleCounts.opened(2), coordinators=[coordinator.id])
        closed = make_module(
            ModuleStatus.CLOSED, undergraduate=RoleCounts.opened(2), coordinators=[coordinator.id]
        )
        closed.id = module.id
        application = make_application(module, undergraduate)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.repo.transition_status = AsyncMock(return_value=application)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_service.lock_module = AsyncMock(return_value=closed)
        mocks.module_repo.swap_counts = AsyncMock()

        with pytest.raises(InvalidStatusTransitionError):
            await decide(mock_db, application.id, coordinator)

        mocks.module_service.lock_module.assert_awaited_once_with(mock_db, module.id)
        mocks.repo.transition_status.assert_not_called()
        mocks.module_repo.swap_counts.assert_not_called()
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()
        mocks.dispatcher.publish.assert_not_called()


class TestWithdraw:
    @pytest.mark.asyncio
    async def test_withdraw_releases_claim(
        self, mock_db, mocks, undergraduate, make_module, make_application
    ):
        module = make_module(undergraduate=RoleCounts.opened(1))
        application = make_application(module, undergraduate)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.repo.delete_pending = AsyncMock(return_value=True)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_service.read_counts = AsyncMock(
            return_value=RoleCounts(required=1, remaining=1, applied=1)
        )
        mocks.module_repo.swap_counts = AsyncMock(return_value=MagicMock())

        result = await withdraw(mock_db, application.id, undergraduate)

        assert result.application_id == application.id
        released = mocks.module_repo.swap_counts.await_args.args[4]
        assert released.applied == 0
        assert released.open_slots == 1
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_withdraw_someone_elses_application(
        self, mock_db, mocks, undergraduate, postgraduate, make_module, make_application
    ):
        module = make_module(undergraduate=RoleCounts.opened(1))
        application = make_application(module, undergraduate)
        mocks.repo.get_by_id = AsyncMock(return_value=application)

        with pytest.raises(NotAuthorizedError):
            await withdraw(mock_db, application.id, postgraduate)

    @pytest.mark.asyncio
    async def test_withdraw_decided_application(
        self, mock_db, mocks, undergraduate, make_module, make_application
    ):
        module = make_module(undergraduate=RoleCounts.opened(1))
        application = make_application(module, undergraduate, status=ApplicationStatus.REJECTED)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.repo.delete_pending = AsyncMock()

        with pytest.raises(AlreadyProcessedError):
            await withdraw(mock_db, application.id, undergraduate)

        mocks.repo.delete_pending.assert_not_called()

    @pytest.mark.asyncio
    async def test_withdraw_from_closed_module(
        self, mock_db, mocks, undergraduate, make_module, make_application
    ):
        module = make_module(ModuleStatus.CLOSED, undergraduate=RoleCounts.opened(1))
        application = make_application(module, undergraduate)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.repo.delete_pending = AsyncMock()
        mocks.module_service.get_module = AsyncMock(return_value=module)

        with pytest.raises(InvalidStatusTransitionError):
            await withdraw(mock_db, application.id, undergraduate)

        mocks.repo.delete_pending.assert_not_called()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_committed_before_withdraw(
        self, mock_db, mocks, undergraduate, make_module, make_application
    ):
        module = make_module(undergraduate=RoleCounts.opened(1))
        closed = make_module(ModuleStatus.CLOSED, undergraduate=RoleCounts.opened(1))
        closed.id = module.id
        application = make_application(module, undergraduate)
        mocks.repo.get_by_id = AsyncMock(return_value=application)
        mocks.repo.delete_pending = AsyncMock(return_value=True)
        mocks.module_service.get_module = AsyncMock(return_value=module)
        mocks.module_service.lock_module = AsyncMock(return_value=closed)
        mocks.module_repo.swap_counts = AsyncMock()

        with pytest.raises(InvalidStatusTransitionError):
            await withdraw(mock_db, application.id, undergraduate)

        mocks.repo.delete_pending.assert_not_called()
        mocks.module_repo.swap_counts.assert_not_called()
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_called()
