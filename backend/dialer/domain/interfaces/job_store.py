"""
Job Store Interface
Abstract row store for queue jobs
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from dialer.domain.models.queue_job import QueueJob


class JobStore(ABC):
    """
    Durable store for QueueJob records.

    `compare_and_advance` is the only mutation after insert. Every writer
    goes through it, which serializes progress on a single job.
    """

    @abstractmethod
    async def insert_job(self, job: QueueJob) -> None:
        """Persist a newly created job"""
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[QueueJob]:
        """Fetch a job by id, None if absent"""
        pass

    @abstractmethod
    async def compare_and_advance(
        self,
        job_id: str,
        expected_index: int,
        expected_conversation_id: str,
        new_state: QueueJob
    ) -> bool:
        """
        Replace the stored job with `new_state` if, and only if, the stored
        row still has `expected_index`, `expected_conversation_id` and a
        non-terminal status.

        Returns:
            True if the write was applied
        """
        pass

    @abstractmethod
    async def list_jobs_by_owner(self, owner_id: str) -> List[QueueJob]:
        """All jobs of one owner, newest first"""
        pass

    @abstractmethod
    async def find_by_conversation(self, conversation_id: str) -> Optional[QueueJob]:
        """Non-terminal job whose in-flight call is `conversation_id`"""
        pass
