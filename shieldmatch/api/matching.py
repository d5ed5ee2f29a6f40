"""API endpoints for running contractor matching"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends

from shieldmatch.api.dependencies import get_matching_workflow
from shieldmatch.schemas.matching import MatchingRunResponse
from shieldmatch.services.workflow import MatchingWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/matching", tags=["matching"])


@router.post("/projects/{project_id}")
async def run_matching(
    project_id: UUID,
    workflow: MatchingWorkflow = Depends(get_matching_workflow),
) -> MatchingRunResponse:
    """
    Match contractors to a project and send invitations.

    Safe to call again for the same project; match requests are upserted.
    The result carries operator diagnostics and is not meant for homeowners.
    """
    result = await workflow.run_for_project(project_id)
    if not result.success:
        logger.warning(f"Matching failed for project {project_id}: {result.outcome.value}")
    return MatchingRunResponse(project_id=project_id, result=result)
