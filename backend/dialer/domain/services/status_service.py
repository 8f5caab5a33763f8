"""
Queue Status Service
Read-only projections of queue jobs and their calls for polling clients
"""
from typing import Any, Dict, List, Optional

from dialer.domain.errors import NotFound
from dialer.domain.interfaces.call_log_store import CallLogStore
from dialer.domain.interfaces.job_store import JobStore


class QueueStatusService:
    """Owner-scoped reads. Never mutates a job."""

    def __init__(self, store: JobStore, call_logs: Optional[CallLogStore] = None):
        self.store = store
        self.call_logs = call_logs

    async def get_status(self, owner_id: str, job_id: str) -> Dict[str, Any]:
        """
        Full job projection.

        Raises:
            NotFound: job does not exist or belongs to another owner
                (same error either way)
        """
        job = await self.store.get_job(job_id)
        if job is None or job.owner_id != owner_id:
            raise NotFound("Job not found")
        return job.to_status_dict()

    async def list_jobs(self, owner_id: str) -> List[Dict[str, Any]]:
        """Job history for the owner, newest first, without the lead lists."""
        jobs = await self.store.list_jobs_by_owner(owner_id)
        summaries = []
        for job in jobs:
            summary = job.to_status_dict()
            summary.pop("leads", None)
            summaries.append(summary)
        return summaries

    async def get_call(self, owner_id: str, conversation_id: str) -> Dict[str, Any]:
        """
        Call log entry for one conversation.

        Raises:
            NotFound: no such call, or it belongs to another owner
        """
        log = await self.call_logs.get_call_log(conversation_id) if self.call_logs else None
        if log is None or log.owner_id != owner_id:
            raise NotFound("Call not found")
        return log.to_status_dict()

    async def list_calls(self, owner_id: str, job_id: str) -> List[Dict[str, Any]]:
        """Every dial attempt of an owned job, in dialing order."""
        job = await self.store.get_job(job_id)
        if job is None or job.owner_id != owner_id:
            raise NotFound("Job not found")
        if self.call_logs is None:
            return []
        return [log.to_status_dict() for log in await self.call_logs.list_call_logs_by_job(job_id)]
