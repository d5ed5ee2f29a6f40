"""FastAPI dependencies wiring services to the request session"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shieldmatch.config import Settings, get_settings
from shieldmatch.db.database import get_db
from shieldmatch.services.notifications import build_senders
from shieldmatch.services.repository import MatchRepository
from shieldmatch.services.responses import JobResponseService
from shieldmatch.services.tokens import TokenService
from shieldmatch.services.workflow import MatchingWorkflow


def get_token_service(settings: Settings = Depends(get_settings)) -> TokenService:
    return TokenService.from_settings(settings)


def get_matching_workflow(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    token_service: TokenService = Depends(get_token_service),
) -> MatchingWorkflow:
    return MatchingWorkflow(
        MatchRepository(db),
        token_service,
        build_senders(settings),
        settings,
    )


def get_job_response_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    token_service: TokenService = Depends(get_token_service),
) -> JobResponseService:
    return JobResponseService(MatchRepository(db), token_service, build_senders(settings))
