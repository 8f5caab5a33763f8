"""
Queue Job Model
One batch outbound-calling job: an ordered list of lead snapshots dialed one at a time
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Set, Any

from pydantic import BaseModel, Field

from dialer.domain.errors import InvalidTransition
from dialer.domain.models.lead import LeadSnapshot


class QueueJobStatus(str, Enum):
    """Lifecycle of a queue job"""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: Set[QueueJobStatus] = {
    QueueJobStatus.COMPLETED,
    QueueJobStatus.FAILED,
    QueueJobStatus.CANCELLED,
}

# running -> running is the per-lead progress step
ALLOWED_TRANSITIONS: Dict[QueueJobStatus, Set[QueueJobStatus]] = {
    QueueJobStatus.QUEUED: {
        QueueJobStatus.RUNNING,
        QueueJobStatus.FAILED,
        QueueJobStatus.CANCELLED,
    },
    QueueJobStatus.RUNNING: {
        QueueJobStatus.RUNNING,
        QueueJobStatus.COMPLETED,
        QueueJobStatus.FAILED,
        QueueJobStatus.CANCELLED,
    },
    QueueJobStatus.COMPLETED: set(),
    QueueJobStatus.FAILED: set(),
    QueueJobStatus.CANCELLED: set(),
}


def assert_transition(current: QueueJobStatus, target: QueueJobStatus) -> None:
    """Raise InvalidTransition unless current -> target is in the table."""
    current = QueueJobStatus(current)
    target = QueueJobStatus(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Cannot move job from '{current.value}' to '{target.value}'"
        )


class QueueJob(BaseModel):
    """
    Persistent record of an outbound call queue job.

    Counters only grow. `current_index` is advanced by the queue runner
    after the outcome of the lead at that index is recorded, so
    `completed + failed == current_index` whenever no call is pending.
    """

    # Identity
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str

    # Lifecycle
    status: QueueJobStatus = QueueJobStatus.QUEUED

    # Leads (copied at enqueue time)
    leads: List[LeadSnapshot] = Field(default_factory=list)
    total_leads: int = Field(default=0, ge=0)
    current_index: int = Field(default=0, ge=0)

    # Progress counters
    initiated: int = Field(default=0, ge=0)
    completed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)

    # In-flight call ("" when idle)
    current_conversation_id: str = ""
    current_lead: Optional[LeadSnapshot] = None

    error: str = ""

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def create(cls, owner_id: str, leads: List[LeadSnapshot]) -> "QueueJob":
        """New job in `queued` state with the pointer on the first lead."""
        return cls(
            owner_id=owner_id,
            leads=list(leads),
            total_leads=len(leads),
            current_lead=leads[0] if leads else None,
        )

    @property
    def is_terminal(self) -> bool:
        return QueueJobStatus(self.status) in TERMINAL_STATUSES

    @property
    def is_exhausted(self) -> bool:
        return self.current_index >= self.total_leads

    @property
    def lead_at_pointer(self) -> Optional[LeadSnapshot]:
        if self.is_exhausted:
            return None
        return self.leads[self.current_index]

    def evolve(self, **changes: Any) -> "QueueJob":
        """
        Copy of this job with `changes` applied.

        Status changes are checked against the transition table and
        `updated_at` is refreshed.
        """
        target = changes.get("status")
        if target is not None:
            assert_transition(self.status, target)
        changes["updated_at"] = datetime.utcnow()
        return self.model_copy(update=changes)

    def to_row(self) -> Dict[str, Any]:
        """Serialize for the row store."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "status": QueueJobStatus(self.status).value,
            "leads": [lead.model_dump() for lead in self.leads],
            "total_leads": self.total_leads,
            "current_index": self.current_index,
            "initiated": self.initiated,
            "completed": self.completed,
            "failed": self.failed,
            "current_conversation_id": self.current_conversation_id,
            "current_lead": self.current_lead.model_dump() if self.current_lead else None,
            "error": self.error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "QueueJob":
        """Deserialize from the row store."""
        data = dict(data)
        for dt_field in ["created_at", "updated_at"]:
            if data.get(dt_field) and isinstance(data[dt_field], str):
                data[dt_field] = datetime.fromisoformat(data[dt_field].replace("Z", "+00:00"))
        data["current_conversation_id"] = data.get("current_conversation_id") or ""
        data["error"] = data.get("error") or ""
        return cls(**data)

    def to_status_dict(self) -> Dict[str, Any]:
        """Read-only projection returned to the polling client."""
        row = self.to_row()
        row["job_id"] = row.pop("id")
        return row

    def __repr__(self) -> str:
        return (
            f"QueueJob(id={self.id[:8]}..., "
            f"status={QueueJobStatus(self.status).value}, "
            f"index={self.current_index}/{self.total_leads}, "
            f"completed={self.completed}, failed={self.failed})"
        )
