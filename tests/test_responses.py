"""Tests for contractor accept/decline handling"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import Update, select
from sqlalchemy.exc import OperationalError

from shieldmatch.db.models import Contractor, MatchRequestStatus, Project
from shieldmatch.exceptions import PersistenceError
from shieldmatch.schemas.matching import MatchRequestRecord
from shieldmatch.schemas.notifications import DeliveryResult, NotificationChannel
from shieldmatch.services.notifications import SMSInvitationSender
from shieldmatch.services.repository import MatchRepository
from shieldmatch.services.responses import RESPONSE_MESSAGES, JobResponseService, JobResponseStatus
from tests.factories import contractor_fields, make_contractor, project_fields


class RecordingSender:
    def __init__(self, channel: NotificationChannel):
        self.channel = channel
        self.filled = []
        self.accepted = []

    async def send_job_filled(self, contractor, project):
        self.filled.append(contractor.company_name)
        return DeliveryResult(channel=self.channel, recipient="x", delivered=True)

    async def send_job_accepted(self, contractor, project):
        self.accepted.append(contractor.company_name)
        return DeliveryResult(channel=self.channel, recipient="x", delivered=True)


@pytest.fixture
def winner():
    return make_contractor(company_name="Winner")


@pytest.fixture
def loser():
    return make_contractor(company_name="Loser")


@pytest.fixture
def project_row():
    return SimpleNamespace(**project_fields(), assigned_contractor_id=None)


@pytest.fixture
def repository(project_row, winner, loser):
    repo = AsyncMock()
    repo.get_project.return_value = project_row
    repo.list_invited_contractors.return_value = [winner, loser]
    repo.accept_match_request.return_value = True
    repo.update_match_request_status.return_value = True
    return repo


class TestJobResponseService:
    """Accept and decline flows"""

    async def test_accept_assigns_and_notifies(self, repository, token_service, project_row, winner):
        email = RecordingSender(NotificationChannel.EMAIL)
        service = JobResponseService(repository, token_service, [email])
        token = token_service.issue(str(project_row.id), str(winner.id), "accept")

        response = await service.respond(token, "accept")

        assert response.status == JobResponseStatus.ACCEPTED
        assert response.message == RESPONSE_MESSAGES[JobResponseStatus.ACCEPTED]
        assert response.contractor_id == winner.id
        repository.accept_match_request.assert_awaited_once_with(project_row.id, winner.id)
        repository.update_match_request_status.assert_not_awaited()
        assert email.filled == ["Loser"]
        assert email.accepted == []

    async def test_winner_gets_sms_confirmation(self, repository, token_service, project_row, winner):
        transport = AsyncMock()
        transport.is_simulated = True
        transport.send.return_value = True
        sms = SMSInvitationSender(transport)
        service = JobResponseService(repository, token_service, [sms])

        await service.respond(token_service.issue(str(project_row.id), str(winner.id), "accept"), "accept")

        bodies = [call.args[1] for call in transport.send.await_args_list]
        assert len(bodies) == 2
        assert any(body.startswith("🎉 Congratulations") for body in bodies)
        assert any("has been filled" in body for body in bodies)

    async def test_accept_when_already_assigned_to_other(
        self, repository, token_service, project_row, winner, loser
    ):
        project_row.assigned_contractor_id = loser.id
        service = JobResponseService(repository, token_service)

        response = await service.respond(
            token_service.issue(str(project_row.id), str(winner.id), "accept"), "accept"
        )

        assert response.status == JobResponseStatus.ALREADY_FILLED
        repository.accept_match_request.assert_not_awaited()

    async def test_repeat_accept_by_winner_is_acknowledged(self, repository, token_service, project_row, winner):
        project_row.assigned_contractor_id = winner.id
        service = JobResponseService(repository, token_service)

        response = await service.respond(
            token_service.issue(str(project_row.id), str(winner.id), "accept"), "accept"
        )

        assert response.status == JobResponseStatus.ACCEPTED
        repository.accept_match_request.assert_not_awaited()

    async def test_lost_race_reports_filled(self, repository, token_service, project_row, winner):
        repository.accept_match_request.return_value = False
        email = RecordingSender(NotificationChannel.EMAIL)
        service = JobResponseService(repository, token_service, [email])

        response = await service.respond(
            token_service.issue(str(project_row.id), str(winner.id), "accept"), "accept"
        )

        assert response.status == JobResponseStatus.ALREADY_FILLED
        repository.update_match_request_status.assert_not_awaited()
        assert email.filled == []

    async def test_uninvited_contractor(self, repository, token_service, project_row):
        outsider = make_contractor(company_name="Outsider")
        service = JobResponseService(repository, token_service)

        response = await service.respond(
            token_service.issue(str(project_row.id), str(outsider.id), "accept"), "accept"
        )

        assert response.status == JobResponseStatus.NOT_FOUND

    async def test_missing_project(self, repository, token_service, project_row, winner):
        repository.get_project.return_value = None
        service = JobResponseService(repository, token_service)

        response = await service.respond(
            token_service.issue(str(project_row.id), str(winner.id), "accept"), "accept"
        )

        assert response.status == JobResponseStatus.NOT_FOUND

    async def test_decline(self, repository, token_service, project_row, loser):
        service = JobResponseService(repository, token_service)

        response = await service.respond(
            token_service.issue(str(project_row.id), str(loser.id), "decline"), "decline"
        )

        assert response.status == JobResponseStatus.DECLINED
        repository.update_match_request_status.assert_awaited_once_with(
            project_row.id, loser.id, MatchRequestStatus.DECLINED
        )

    async def test_decline_without_invitation(self, repository, token_service, project_row, loser):
        repository.update_match_request_status.return_value = False
        service = JobResponseService(repository, token_service)

        response = await service.respond(
            token_service.issue(str(project_row.id), str(loser.id), "decline"), "decline"
        )

        assert response.status == JobResponseStatus.NOT_FOUND

    async def test_assigned_contractor_cannot_decline(self, repository, token_service, project_row, winner):
        project_row.assigned_contractor_id = winner.id
        service = JobResponseService(repository, token_service)

        response = await service.respond(
            token_service.issue(str(project_row.id), str(winner.id), "decline"), "decline"
        )

        assert response.status == JobResponseStatus.ALREADY_ACCEPTED
        repository.update_match_request_status.assert_not_awaited()

    async def test_decline_for_missing_project(self, repository, token_service, project_row, loser):
        repository.get_project.return_value = None
        service = JobResponseService(repository, token_service)

        response = await service.respond(
            token_service.issue(str(project_row.id), str(loser.id), "decline"), "decline"
        )

        assert response.status == JobResponseStatus.NOT_FOUND
        repository.update_match_request_status.assert_not_awaited()

    async def test_decline_token_cannot_accept(self, repository, token_service, project_row, winner):
        service = JobResponseService(repository, token_service)
        token = token_service.issue(str(project_row.id), str(winner.id), "decline")

        response = await service.respond(token, "accept")

        assert response.status == JobResponseStatus.INVALID
        repository.get_project.assert_not_awaited()

    async def test_garbage_token(self, repository, token_service):
        response = await JobResponseService(repository, token_service).respond("nope", "accept")

        assert response.status == JobResponseStatus.INVALID
        assert response.project_id is None

    async def test_non_uuid_identifiers(self, repository, token_service):
        token = token_service.issue("project-1", "contractor-1", "accept")

        response = await JobResponseService(repository, token_service).respond(token, "accept")

        assert response.status == JobResponseStatus.INVALID

    async def test_persistence_error(self, repository, token_service, project_row, winner):
        repository.accept_match_request.side_effect = PersistenceError("deadlock")
        service = JobResponseService(repository, token_service)

        response = await service.respond(
            token_service.issue(str(project_row.id), str(winner.id), "accept"), "accept"
        )

        assert response.status == JobResponseStatus.ERROR
        assert "deadlock" not in response.message


class TestFirstAcceptWins:
    """Concurrent acceptance against a real session"""

    async def test_second_acceptance_is_rejected(self, test_db, token_service):
        project = Project(**project_fields())
        first = Contractor(**contractor_fields(company_name="First"))
        second = Contractor(**contractor_fields(company_name="Second"))
        test_db.add_all([project, first, second])
        await test_db.commit()
        project_id, first_id, second_id = project.id, first.id, second.id

        repository = MatchRepository(test_db)
        await repository.upsert_match_requests(
            [MatchRequestRecord(project_id=project_id, contractor_id=c) for c in (first_id, second_id)]
        )
        service = JobResponseService(repository, token_service)

        one = await service.respond(token_service.issue(str(project_id), str(first_id), "accept"), "accept")
        two = await service.respond(token_service.issue(str(project_id), str(second_id), "accept"), "accept")

        assert one.status == JobResponseStatus.ACCEPTED
        assert two.status == JobResponseStatus.ALREADY_FILLED

        statuses = {r.contractor_id: r.status for r in await repository.list_match_requests(project_id)}
        assert statuses == {first_id: MatchRequestStatus.ACCEPTED, second_id: MatchRequestStatus.SENT}

    async def test_failed_accept_leaves_project_open_and_retry_completes(self, test_db, token_service):
        project = Project(**project_fields())
        winner = Contractor(**contractor_fields(company_name="Winner"))
        other = Contractor(**contractor_fields(company_name="Other"))
        test_db.add_all([project, winner, other])
        await test_db.commit()
        project_id, winner_id, other_id = project.id, winner.id, other.id

        repository = MatchRepository(test_db)
        await repository.upsert_match_requests(
            [MatchRequestRecord(project_id=project_id, contractor_id=c) for c in (winner_id, other_id)]
        )
        email = RecordingSender(NotificationChannel.EMAIL)
        service = JobResponseService(repository, token_service, [email])
        token = token_service.issue(str(project_id), str(winner_id), "accept")

        execute = test_db.execute
        failures = []

        async def execute_failing_once(statement, *args, **kwargs):
            if isinstance(statement, Update) and "UPDATE match_requests" in str(statement) and not failures:
                failures.append(statement)
                raise OperationalError("UPDATE match_requests", {}, Exception("database is locked"))
            return await execute(statement, *args, **kwargs)

        with patch.object(test_db, "execute", execute_failing_once):
            first = await service.respond(token, "accept")

            assigned = await test_db.scalar(select(Project.assigned_contractor_id).where(Project.id == project_id))
            assert first.status == JobResponseStatus.ERROR
            assert assigned is None
            assert email.filled == []

            second = await service.respond(token, "accept")

        assert second.status == JobResponseStatus.ACCEPTED
        statuses = {r.contractor_id: r.status for r in await repository.list_match_requests(project_id)}
        assert statuses == {winner_id: MatchRequestStatus.ACCEPTED, other_id: MatchRequestStatus.SENT}
        assert email.filled == ["Other"]
