"""Domain models"""

from .lead import LeadSnapshot, to_e164, is_e164
from .call import CallOutcome, AgentConfig, DispatchResult, CallCompletion
from .queue_job import QueueJob, QueueJobStatus, ALLOWED_TRANSITIONS

__all__ = [
    "LeadSnapshot",
    "to_e164",
    "is_e164",
    "CallOutcome",
    "AgentConfig",
    "DispatchResult",
    "CallCompletion",
    "QueueJob",
    "QueueJobStatus",
    "ALLOWED_TRANSITIONS",
]
