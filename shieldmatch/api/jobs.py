"""Accept/decline endpoints behind the links sent to contractors"""

from fastapi import APIRouter, Depends, HTTPException, status

from shieldmatch.api.dependencies import get_job_response_service
from shieldmatch.services.responses import JobResponse, JobResponseService, JobResponseStatus

router = APIRouter(tags=["jobs"])

ERROR_STATUS_CODES = {
    JobResponseStatus.INVALID: status.HTTP_410_GONE,
    JobResponseStatus.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    JobResponseStatus.ALREADY_FILLED: status.HTTP_409_CONFLICT,
    JobResponseStatus.ALREADY_ACCEPTED: status.HTTP_409_CONFLICT,
    JobResponseStatus.ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _raise_for_status(response: JobResponse) -> JobResponse:
    status_code = ERROR_STATUS_CODES.get(response.status)
    if status_code is not None:
        raise HTTPException(status_code=status_code, detail=response.message)
    return response


@router.get("/accept-job/{token}")
async def accept_job(
    token: str,
    service: JobResponseService = Depends(get_job_response_service),
) -> JobResponse:
    """Accept a job invitation"""
    return _raise_for_status(await service.respond(token, "accept"))


@router.get("/decline-job/{token}")
async def decline_job(
    token: str,
    service: JobResponseService = Depends(get_job_response_service),
) -> JobResponse:
    """Decline a job invitation"""
    return _raise_for_status(await service.respond(token, "decline"))
