"""
In-Memory Call Log Store
Process-local CallLogStore used in development and tests
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from dialer.domain.interfaces.call_log_store import CallLogStore
from dialer.domain.models.call import CallOutcome
from dialer.domain.models.call_log import CallLog, CallLogStatus


class InMemoryCallLogStore(CallLogStore):

    def __init__(self):
        self._rows: Dict[str, Dict[str, Any]] = {}

    async def insert_call_log(self, log: CallLog) -> None:
        self._rows[log.id] = log.to_row()

    async def complete_call_log(
        self,
        conversation_id: str,
        outcome: CallOutcome,
        transcript: Optional[Any] = None,
        analysis: Optional[Any] = None
    ) -> None:
        for row in self._rows.values():
            if row["conversation_id"] == conversation_id:
                row["status"] = CallLogStatus.ENDED.value
                row["outcome"] = CallOutcome(outcome).value
                row["ended_at"] = datetime.utcnow().isoformat()
                if transcript is not None:
                    row["transcript"] = transcript
                if analysis is not None:
                    row["analysis"] = analysis

    async def get_call_log(self, conversation_id: str) -> Optional[CallLog]:
        for row in self._rows.values():
            if conversation_id and row["conversation_id"] == conversation_id:
                return CallLog.from_row(row)
        return None

    async def list_call_logs_by_job(self, job_id: str) -> List[CallLog]:
        logs = [CallLog.from_row(r) for r in self._rows.values() if r["job_id"] == job_id]
        return sorted(logs, key=lambda log: (log.lead_index, log.started_at))
