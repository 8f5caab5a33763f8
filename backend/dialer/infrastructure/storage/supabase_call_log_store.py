"""
Supabase Call Log Store
CallLogStore backed by the `call_logs` table
"""
import logging
from datetime import datetime
from typing import Any, List, Optional

from supabase import Client

from dialer.domain.interfaces.call_log_store import CallLogStore
from dialer.domain.models.call import CallOutcome
from dialer.domain.models.call_log import CallLog, CallLogStatus

logger = logging.getLogger(__name__)


class SupabaseCallLogStore(CallLogStore):
    """Call history shown on the dashboard's call log page."""

    TABLE = "call_logs"

    def __init__(self, supabase: Client):
        self._supabase = supabase

    async def insert_call_log(self, log: CallLog) -> None:
        try:
            self._supabase.table(self.TABLE).upsert(log.to_row()).execute()
        except Exception as e:
            logger.error(f"Failed to insert call log {log.id}: {e}")
            raise

    async def complete_call_log(
        self,
        conversation_id: str,
        outcome: CallOutcome,
        transcript: Optional[Any] = None,
        analysis: Optional[Any] = None
    ) -> None:
        update_data = {
            "status": CallLogStatus.ENDED.value,
            "outcome": CallOutcome(outcome).value,
            "ended_at": datetime.utcnow().isoformat(),
        }
        if transcript is not None:
            update_data["transcript"] = transcript
        if analysis is not None:
            update_data["analysis"] = analysis

        self._supabase.table(self.TABLE).update(update_data).eq("conversation_id", conversation_id).execute()

    async def get_call_log(self, conversation_id: str) -> Optional[CallLog]:
        response = (
            self._supabase.table(self.TABLE)
            .select("*")
            .eq("conversation_id", conversation_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return CallLog.from_row(response.data[0])

    async def list_call_logs_by_job(self, job_id: str) -> List[CallLog]:
        response = (
            self._supabase.table(self.TABLE)
            .select("*")
            .eq("job_id", job_id)
            .order("started_at")
            .execute()
        )
        logs = [CallLog.from_row(r) for r in response.data or []]
        return sorted(logs, key=lambda log: log.lead_index)
