"""
In-Memory Job Store
Process-local JobStore used in development and tests
"""
import asyncio
import logging
from typing import Dict, List, Optional, Any

from dialer.domain.interfaces.job_store import JobStore
from dialer.domain.models.queue_job import QueueJob

logger = logging.getLogger(__name__)


class InMemoryJobStore(JobStore):
    """
    Keeps serialized rows in a dict.

    Rows are stored via `to_row()` so callers never share mutable state
    with the store, the same as with a real database.
    """

    def __init__(self):
        self._rows: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def insert_job(self, job: QueueJob) -> None:
        async with self._lock:
            if job.id in self._rows:
                raise ValueError(f"Job {job.id} already exists")
            self._rows[job.id] = job.to_row()

    async def get_job(self, job_id: str) -> Optional[QueueJob]:
        row = self._rows.get(job_id)
        return QueueJob.from_row(row) if row else None

    async def compare_and_advance(
        self,
        job_id: str,
        expected_index: int,
        expected_conversation_id: str,
        new_state: QueueJob
    ) -> bool:
        async with self._lock:
            row = self._rows.get(job_id)
            if row is None:
                return False

            current = QueueJob.from_row(row)
            if current.is_terminal:
                return False
            if current.current_index != expected_index:
                return False
            if current.current_conversation_id != (expected_conversation_id or ""):
                return False

            self._rows[job_id] = new_state.to_row()
            return True

    async def list_jobs_by_owner(self, owner_id: str) -> List[QueueJob]:
        jobs = [QueueJob.from_row(r) for r in self._rows.values() if r["owner_id"] == owner_id]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    async def find_by_conversation(self, conversation_id: str) -> Optional[QueueJob]:
        if not conversation_id:
            return None
        for row in self._rows.values():
            if row["current_conversation_id"] == conversation_id:
                job = QueueJob.from_row(row)
                if not job.is_terminal:
                    return job
        return None
