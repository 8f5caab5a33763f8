"""
Call Log Store Interface
Abstract store for per-call records written by the queue runner
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from dialer.domain.models.call import CallOutcome
from dialer.domain.models.call_log import CallLog


class CallLogStore(ABC):
    """One row per dial attempt, looked up by conversation id or job"""

    @abstractmethod
    async def insert_call_log(self, log: CallLog) -> None:
        """Persist a new call attempt"""
        pass

    @abstractmethod
    async def complete_call_log(
        self,
        conversation_id: str,
        outcome: CallOutcome,
        transcript: Optional[Any] = None,
        analysis: Optional[Any] = None
    ) -> None:
        """Mark the call with `conversation_id` as ended with `outcome`"""
        pass

    @abstractmethod
    async def get_call_log(self, conversation_id: str) -> Optional[CallLog]:
        pass

    @abstractmethod
    async def list_call_logs_by_job(self, job_id: str) -> List[CallLog]:
        """Attempts for a job in dialing order"""
        pass
