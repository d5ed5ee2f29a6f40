"""Contractor matching workflow - scores, persists and notifies for one project"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from shieldmatch.config import Settings
from shieldmatch.db.models import ProjectStatus
from shieldmatch.exceptions import (
    DuplicateMatchRequestError,
    PermissionDeniedError,
    PersistenceError,
)
from shieldmatch.schemas.matching import (
    ContractorProfile,
    MatchRequestRecord,
    ProjectDetails,
    ScoredContractor,
    WorkflowOutcome,
    WorkflowResult,
)
from shieldmatch.schemas.notifications import DeliveryResult, NotificationChannel
from shieldmatch.services.repository import MatchRepository
from shieldmatch.services.scoring import score_contractors, select_top_contractors
from shieldmatch.services.tokens import TokenService

logger = logging.getLogger(__name__)


class InvitationSender(Protocol):
    channel: NotificationChannel

    async def send_invitation(
        self,
        contractor: ContractorProfile,
        project: ProjectDetails,
        accept_url: str,
        decline_url: str,
        reasons: list[str],
    ) -> DeliveryResult: ...


def build_job_urls(base_url: str, accept_token: str, decline_token: str) -> tuple[str, str]:
    base = base_url.rstrip("/")
    return f"{base}/accept-job/{accept_token}", f"{base}/decline-job/{decline_token}"


class MatchingWorkflow:
    """
    Runs contractor matching for a project:

    1. fetch active contractors
    2. score and select the top candidates
    3. upsert one match request per selected contractor
    4. notify each contractor in turn, pausing between sends
    5. mark the project as matched

    Failures before persistence completes end the run with success=False.
    Notification failures are recorded but never fail the run.
    """

    def __init__(
        self,
        repository: MatchRepository,
        token_service: TokenService,
        senders: Sequence[InvitationSender],
        settings: Settings,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self.token_service = token_service
        self.senders = list(senders)
        self.settings = settings
        self._sleep = sleep
        self._clock = clock

    @staticmethod
    def _failed(
        outcome: WorkflowOutcome,
        errors: list[str],
        matched: int = 0,
    ) -> WorkflowResult:
        return WorkflowResult(
            success=False,
            outcome=outcome,
            matched_contractors=matched,
            errors=errors,
        )

    async def run_for_project(self, project_id: UUID) -> WorkflowResult:
        """Load a project and run matching for it"""
        try:
            project = await self.repository.get_project(project_id)
        except PersistenceError as e:
            logger.error(f"Could not load project {project_id}: {e}")
            return self._failed(WorkflowOutcome.FAILED_PERSISTENCE, [f"Failed to load project: {e}"])

        if project is None:
            return self._failed(WorkflowOutcome.FAILED_PERSISTENCE, [f"Project {project_id} not found"])
        return await self.run(project)

    async def run(self, project: Any) -> WorkflowResult:
        """Match, persist and notify for one project"""
        details = ProjectDetails.model_validate(project)
        errors: list[str] = []
        logger.info(f"Starting contractor matching for project {details.id}")

        # Step 1: fetch contractors
        try:
            contractors = await self.repository.list_active_contractors()
        except PersistenceError as e:
            logger.error(f"Failed to fetch contractors for project {details.id}: {e}")
            errors.append(f"Failed to fetch contractors: {e}")
            return self._failed(WorkflowOutcome.FAILED_NO_CONTRACTORS, errors)

        if not contractors:
            errors.append("No active contractors found")
            return self._failed(WorkflowOutcome.FAILED_NO_CONTRACTORS, errors)

        # Step 2: score and select
        now = self._clock() if self._clock else None
        ranked = score_contractors(details, contractors, now=now)
        selected = select_top_contractors(ranked, min(self.settings.max_matches, len(contractors)))

        if not selected:
            errors.append(
                f"No contractors matched the project criteria. Available contractors: {len(contractors)}, "
                f"but none serve your area or handle {details.peril.value} damage."
            )
            return self._failed(WorkflowOutcome.FAILED_NO_MATCH, errors)

        logger.info(
            f"Selected {len(selected)} of {len(contractors)} contractors for project {details.id}: "
            + ", ".join(f"{match.contractor.company_name} ({match.score})" for match in selected)
        )

        # Step 3: persist match requests
        persisted = await self._persist_match_requests(details, selected, errors)
        if persisted is None:
            return self._failed(WorkflowOutcome.FAILED_PERSISTENCE, errors, matched=len(selected))

        # Step 4: notify
        sent_by_channel = await self._notify_contractors(details, selected, errors)

        # Step 5: mark matched
        try:
            await self.repository.update_project_status(details.id, ProjectStatus.MATCHED)
        except PersistenceError as e:
            logger.warning(f"Project {details.id} matched but status update failed: {e}")

        emails_sent = sent_by_channel[NotificationChannel.EMAIL]
        sms_sent = sent_by_channel[NotificationChannel.SMS]
        logger.info(
            f"Matching complete for project {details.id}: {len(selected)} matched, "
            f"{emails_sent} emails and {sms_sent} SMS sent, {len(errors)} notes"
        )
        return WorkflowResult(
            success=True,
            outcome=WorkflowOutcome.SUCCEEDED,
            matched_contractors=len(selected),
            notifications_sent=emails_sent + sms_sent,
            emails_sent=emails_sent,
            sms_sent=sms_sent,
            match_requests=persisted,
            errors=errors,
        )

    async def _persist_match_requests(
        self,
        project: ProjectDetails,
        selected: list[ScoredContractor],
        errors: list[str],
    ) -> list[MatchRequestRecord] | None:
        records = [
            MatchRequestRecord(project_id=project.id, contractor_id=match.contractor.id)
            for match in selected
        ]
        try:
            return await self.repository.upsert_match_requests(records)
        except DuplicateMatchRequestError as e:
            logger.warning(f"Duplicate match requests for project {project.id}, reusing existing rows: {e}")
            try:
                existing = await self.repository.list_match_requests(project.id)
            except PersistenceError as fetch_error:
                errors.append(f"Failed to recover match requests after duplicate error: {fetch_error}")
                return None
            errors.append("Duplicate match requests detected; using existing records.")
            return existing
        except PermissionDeniedError as e:
            logger.error(f"Permission denied writing match requests for project {project.id}: {e}")
            errors.append(
                "Authorization error: the database role is not allowed to upsert match_requests. "
                "Grant INSERT and UPDATE on match_requests to the application role and re-run matching."
            )
            return None
        except PersistenceError as e:
            logger.error(f"Failed to create match requests for project {project.id}: {e}")
            errors.append(f"Failed to create match requests: {e}")
            return None

    async def _notify_contractors(
        self,
        project: ProjectDetails,
        selected: list[ScoredContractor],
        errors: list[str],
    ) -> dict[NotificationChannel, int]:
        sent = {channel: 0 for channel in NotificationChannel}
        attempts = 0

        for index, match in enumerate(selected):
            contractor = match.contractor
            accept_token = self.token_service.issue(str(project.id), str(contractor.id), "accept")
            decline_token = self.token_service.issue(str(project.id), str(contractor.id), "decline")
            accept_url, decline_url = build_job_urls(self.settings.app_base_url, accept_token, decline_token)

            for sender in self.senders:
                attempts += 1
                try:
                    delivery = await sender.send_invitation(
                        contractor, project, accept_url, decline_url, match.reasons
                    )
                except Exception as e:
                    logger.error(f"{sender.channel.value} invitation to {contractor.id} raised: {e}", exc_info=True)
                    errors.append(f"Note: {sender.channel.value} error for {contractor.company_name}: {e}")
                    continue

                if delivery.delivered:
                    sent[sender.channel] += 1
                    logger.info(f"✅ {sender.channel.value} invitation sent to {delivery.recipient}")
                else:
                    recipient = delivery.recipient or contractor.company_name
                    logger.warning(f"❌ {sender.channel.value} invitation to {recipient} failed: {delivery.error}")
                    errors.append(
                        f"Note: {sender.channel.value} not sent to {recipient} - {delivery.error or 'delivery failed'}"
                    )

            if index < len(selected) - 1:
                await self._sleep(self.settings.notification_delay_seconds)

        if attempts > 0 and sum(sent.values()) == 0:
            logger.warning(f"All notifications failed for project {project.id}")
            errors.append(
                "All notifications failed to send. The matching process succeeded, but contractors "
                "weren't notified. Check the email/SMS configuration or notify contractors manually."
            )
        return sent
