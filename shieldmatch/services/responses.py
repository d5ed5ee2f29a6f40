"""Handling of contractor accept/decline link clicks"""

import enum
import logging
from collections.abc import Sequence
from uuid import UUID

from pydantic import BaseModel

from shieldmatch.db.models import MatchRequestStatus
from shieldmatch.exceptions import PersistenceError
from shieldmatch.schemas.matching import ContractorProfile, ProjectDetails
from shieldmatch.services.notifications import EmailInvitationSender, SMSInvitationSender
from shieldmatch.services.repository import MatchRepository
from shieldmatch.services.tokens import TokenAction, TokenService

logger = logging.getLogger(__name__)


class JobResponseStatus(str, enum.Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    ALREADY_FILLED = "already_filled"
    ALREADY_ACCEPTED = "already_accepted"
    ERROR = "error"


# Messages are shown to contractors; diagnostics stay in the logs
RESPONSE_MESSAGES = {
    JobResponseStatus.ACCEPTED: "You've got the job! The homeowner's contact details are on their way.",
    JobResponseStatus.DECLINED: "You have declined this job opportunity.",
    JobResponseStatus.INVALID: "This invitation has expired or is invalid.",
    JobResponseStatus.NOT_FOUND: "We couldn't find this job or your invitation to it.",
    JobResponseStatus.ALREADY_FILLED: "This job has already been assigned to another contractor.",
    JobResponseStatus.ALREADY_ACCEPTED: "You have already accepted this job. Contact support if you can no longer take it.",
    JobResponseStatus.ERROR: "Failed to process your response. Please try again.",
}


class JobResponse(BaseModel):
    status: JobResponseStatus
    message: str
    project_id: UUID | None = None
    contractor_id: UUID | None = None


def _response(status: JobResponseStatus, project_id: UUID | None = None, contractor_id: UUID | None = None) -> JobResponse:
    return JobResponse(
        status=status,
        message=RESPONSE_MESSAGES[status],
        project_id=project_id,
        contractor_id=contractor_id,
    )


def _parse_uuid(value: str) -> UUID | None:
    try:
        return UUID(value)
    except ValueError:
        return None


class JobResponseService:
    """Verifies link tokens and records the contractor's decision.

    The first contractor to accept is assigned the project; the other
    invited contractors are then told the job is filled.
    """

    def __init__(
        self,
        repository: MatchRepository,
        token_service: TokenService,
        senders: Sequence[EmailInvitationSender | SMSInvitationSender] = (),
    ):
        self.repository = repository
        self.token_service = token_service
        self.senders = list(senders)

    async def respond(self, token: str, action: TokenAction) -> JobResponse:
        payload = self.token_service.verify(token, expected_action=action)
        if payload is None:
            return _response(JobResponseStatus.INVALID)

        project_id = _parse_uuid(payload.project_id)
        contractor_id = _parse_uuid(payload.contractor_id)
        if project_id is None or contractor_id is None:
            return _response(JobResponseStatus.INVALID)

        try:
            if action == "accept":
                return await self._accept(project_id, contractor_id)
            return await self._decline(project_id, contractor_id)
        except PersistenceError as e:
            logger.error(f"Failed to record {action} for project {project_id} by {contractor_id}: {e}")
            return _response(JobResponseStatus.ERROR, project_id, contractor_id)

    async def _decline(self, project_id: UUID, contractor_id: UUID) -> JobResponse:
        project = await self.repository.get_project(project_id)
        if project is None:
            return _response(JobResponseStatus.NOT_FOUND, project_id, contractor_id)

        # The assigned contractor keeps the job; withdrawing goes through support
        if project.assigned_contractor_id == contractor_id:
            return _response(JobResponseStatus.ALREADY_ACCEPTED, project_id, contractor_id)

        updated = await self.repository.update_match_request_status(
            project_id, contractor_id, MatchRequestStatus.DECLINED
        )
        if not updated:
            return _response(JobResponseStatus.NOT_FOUND, project_id, contractor_id)

        logger.info(f"Contractor {contractor_id} declined project {project_id}")
        return _response(JobResponseStatus.DECLINED, project_id, contractor_id)

    async def _accept(self, project_id: UUID, contractor_id: UUID) -> JobResponse:
        project = await self.repository.get_project(project_id)
        if project is None:
            return _response(JobResponseStatus.NOT_FOUND, project_id, contractor_id)

        if project.assigned_contractor_id is not None:
            if project.assigned_contractor_id == contractor_id:
                return _response(JobResponseStatus.ACCEPTED, project_id, contractor_id)
            return _response(JobResponseStatus.ALREADY_FILLED, project_id, contractor_id)

        details = ProjectDetails.model_validate(project)
        invited = [
            ContractorProfile.model_validate(contractor)
            for contractor in await self.repository.list_invited_contractors(project_id)
        ]
        if not any(contractor.id == contractor_id for contractor in invited):
            return _response(JobResponseStatus.NOT_FOUND, project_id, contractor_id)

        if not await self.repository.accept_match_request(project_id, contractor_id):
            return _response(JobResponseStatus.ALREADY_FILLED, project_id, contractor_id)

        logger.info(f"Contractor {contractor_id} accepted project {project_id}")
        await self._notify_outcome(details, contractor_id, invited)
        return _response(JobResponseStatus.ACCEPTED, project_id, contractor_id)

    async def _notify_outcome(
        self,
        project: ProjectDetails,
        winner_id: UUID,
        invited: list[ContractorProfile],
    ) -> None:
        for profile in invited:
            for sender in self.senders:
                if profile.id != winner_id:
                    delivery = await sender.send_job_filled(profile, project)
                elif isinstance(sender, SMSInvitationSender):
                    delivery = await sender.send_job_accepted(profile, project)
                else:
                    continue

                if not delivery.delivered:
                    logger.warning(
                        f"Could not send {sender.channel.value} outcome notice to {profile.company_name}: {delivery.error}"
                    )
