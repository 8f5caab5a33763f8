"""
Call Log Model
One row per call attempt made by a queue job
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from dialer.domain.models.call import CallOutcome


class CallLogStatus(str, Enum):
    """Where a call attempt ended up"""
    INITIATED = "initiated"   # Placed, waiting for the completion webhook
    ENDED = "ended"           # Outcome known
    REJECTED = "rejected"     # Refused by the provider before ringing
    ERROR = "error"           # Job-level failure while dialing this lead


class CallLog(BaseModel):
    """
    Record of a single dial attempt for one lead.

    Placed calls are keyed by the provider's conversation id. Attempts the
    provider refused never get one and use a generated id.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    job_id: str
    lead_index: int = Field(ge=0)
    lead_id: Optional[str] = None

    conversation_id: Optional[str] = None
    agent_id: Optional[str] = None
    to_number: Optional[str] = None
    from_number: Optional[str] = None

    status: CallLogStatus = CallLogStatus.INITIATED
    outcome: Optional[CallOutcome] = None
    error: str = ""

    transcript: Optional[Any] = None
    analysis: Optional[Any] = None
    dynamic_variables: Dict[str, Any] = Field(default_factory=dict)

    started_at: datetime = Field(default_factory=datetime.utcnow)
    ended_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        """Serialize for the `call_logs` table (owner stored as `user_id`)."""
        return {
            "id": self.id,
            "user_id": self.owner_id,
            "job_id": self.job_id,
            "lead_index": self.lead_index,
            "lead_id": self.lead_id,
            "conversation_id": self.conversation_id,
            "agent_id": self.agent_id,
            "to_number": self.to_number,
            "from_number": self.from_number,
            "status": CallLogStatus(self.status).value,
            "outcome": CallOutcome(self.outcome).value if self.outcome else None,
            "error": self.error,
            "transcript": self.transcript,
            "analysis": self.analysis,
            "dynamic_variables": self.dynamic_variables,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "CallLog":
        data = dict(data)
        data["owner_id"] = data.pop("user_id", None) or data.get("owner_id")
        for dt_field in ["started_at", "ended_at"]:
            if data.get(dt_field) and isinstance(data[dt_field], str):
                data[dt_field] = datetime.fromisoformat(data[dt_field].replace("Z", "+00:00"))
        data["error"] = data.get("error") or ""
        data["dynamic_variables"] = data.get("dynamic_variables") or {}
        return cls(**data)

    def to_status_dict(self) -> Dict[str, Any]:
        """Projection returned to the dashboard."""
        row = self.to_row()
        row.pop("user_id")
        return row
