"""
Supabase Job Store
JobStore backed by the `call_queue_jobs` table
"""
import logging
from typing import List, Optional

from supabase import Client

from dialer.domain.interfaces.job_store import JobStore
from dialer.domain.models.queue_job import QueueJob, QueueJobStatus

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [QueueJobStatus.QUEUED.value, QueueJobStatus.RUNNING.value]


class SupabaseJobStore(JobStore):
    """
    Row store on Supabase (PostgREST).

    Conditional writes are a single UPDATE filtered on the expected
    pointer, conversation id and an active status. PostgREST returns the
    updated rows, so an empty result means another writer got there first.
    """

    TABLE = "call_queue_jobs"

    def __init__(self, supabase: Client):
        self._supabase = supabase

    async def insert_job(self, job: QueueJob) -> None:
        try:
            self._supabase.table(self.TABLE).insert(job.to_row()).execute()
        except Exception as e:
            logger.error(f"Failed to insert queue job {job.id}: {e}")
            raise

    async def get_job(self, job_id: str) -> Optional[QueueJob]:
        response = self._supabase.table(self.TABLE).select("*").eq("id", job_id).limit(1).execute()
        if not response.data:
            return None
        return QueueJob.from_row(response.data[0])

    async def compare_and_advance(
        self,
        job_id: str,
        expected_index: int,
        expected_conversation_id: str,
        new_state: QueueJob
    ) -> bool:
        row = new_state.to_row()
        # Immutable columns
        for column in ("id", "owner_id", "leads", "total_leads", "created_at"):
            row.pop(column, None)

        try:
            response = (
                self._supabase.table(self.TABLE)
                .update(row)
                .eq("id", job_id)
                .eq("current_index", expected_index)
                .eq("current_conversation_id", expected_conversation_id or "")
                .in_("status", ACTIVE_STATUSES)
                .execute()
            )
        except Exception as e:
            logger.error(f"Conditional update failed for job {job_id}: {e}")
            raise

        return bool(response.data)

    async def list_jobs_by_owner(self, owner_id: str) -> List[QueueJob]:
        response = (
            self._supabase.table(self.TABLE)
            .select("*")
            .eq("owner_id", owner_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [QueueJob.from_row(r) for r in response.data or []]

    async def find_by_conversation(self, conversation_id: str) -> Optional[QueueJob]:
        if not conversation_id:
            return None
        response = (
            self._supabase.table(self.TABLE)
            .select("*")
            .eq("current_conversation_id", conversation_id)
            .in_("status", ACTIVE_STATUSES)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return QueueJob.from_row(response.data[0])
