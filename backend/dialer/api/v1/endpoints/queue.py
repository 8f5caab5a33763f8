"""
Outbound Call Queue Endpoints
Enqueue a batch of leads, poll job status and call logs, cancel a job
"""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException, Request, Depends
from pydantic import BaseModel

from dialer.api.v1.dependencies import (
    CurrentUser,
    get_current_user,
    get_queue_runner,
    get_status_service,
)
from dialer.domain.errors import InvalidInput, QueueError
from dialer.domain.services.queue_runner import QueueRunner
from dialer.domain.services.status_service import QueueStatusService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue", tags=["queue"])


class EnqueueResponse(BaseModel):
    """Response for a newly created queue job"""
    job_id: str
    status: str
    total_leads: int
    message: str


def to_http_exception(error: QueueError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)


@router.post("", response_model=EnqueueResponse)
async def enqueue_leads(
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    runner: QueueRunner = Depends(get_queue_runner)
):
    """
    Start calling a batch of leads, one at a time.

    Body: `{"leads": [{"first": ..., "last": ..., "phone": ..., "email": ...}, ...]}`

    Returns as soon as the first call is placed. Progress is observed by
    polling `GET /queue/{job_id}`.
    """
    try:
        try:
            body = await request.json()
        except ValueError:
            raise InvalidInput("Request body must be JSON")
        if not isinstance(body, dict):
            raise InvalidInput("Request body must be a JSON object")

        job = await runner.enqueue(current_user.id, body.get("leads"))

        return EnqueueResponse(
            job_id=job.id,
            status=job.status.value,
            total_leads=job.total_leads,
            message=f"Queue started for {job.total_leads} leads. The first call is now in progress.",
        )

    except QueueError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Queue initialization failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Queue initialization failed")


@router.get("", response_model=List[Dict[str, Any]])
async def list_queue_jobs(
    current_user: CurrentUser = Depends(get_current_user),
    status_service: QueueStatusService = Depends(get_status_service)
):
    """List the current user's queue jobs, newest first."""
    try:
        return await status_service.list_jobs(current_user.id)
    except Exception as e:
        logger.error(f"Failed to list queue jobs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list queue jobs")


@router.get("/calls/{conversation_id}")
async def get_call_log(
    conversation_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    status_service: QueueStatusService = Depends(get_status_service)
):
    """Outcome, transcript and analysis of one call. 404 unless the caller owns it."""
    try:
        return await status_service.get_call(current_user.id, conversation_id)
    except QueueError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to fetch call log {conversation_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch call log")


@router.get("/{job_id}")
async def get_queue_job(
    job_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    status_service: QueueStatusService = Depends(get_status_service)
):
    """
    Poll a queue job.

    404 for jobs that do not exist and for jobs owned by someone else.
    """
    try:
        return await status_service.get_status(current_user.id, job_id)
    except QueueError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"[QueueStatus] error for job {job_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch queue job status.")


@router.post("/{job_id}/cancel")
async def cancel_queue_job(
    job_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    runner: QueueRunner = Depends(get_queue_runner)
):
    """Stop a queued or running job. Finished jobs return 409."""
    try:
        job = await runner.cancel(current_user.id, job_id)
        return job.to_status_dict()
    except QueueError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to cancel queue job {job_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to cancel queue job")


@router.get("/{job_id}/calls", response_model=List[Dict[str, Any]])
async def list_job_calls(
    job_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    status_service: QueueStatusService = Depends(get_status_service)
):
    """Every dial attempt of a job, including leads the provider rejected."""
    try:
        return await status_service.list_calls(current_user.id, job_id)
    except QueueError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to list calls for job {job_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list calls")
