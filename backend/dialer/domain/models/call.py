"""
Call Models
Outcome and dispatch types exchanged with the voice/telephony gateway
"""
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field


class CallOutcome(str, Enum):
    """Final outcome of one dispatched call"""
    COMPLETED = "completed"
    FAILED = "failed"
    NO_ANSWER = "no_answer"
    BUSY = "busy"
    TIMEOUT = "timeout"       # No completion callback before the watchdog deadline

    @property
    def is_success(self) -> bool:
        return self is CallOutcome.COMPLETED


class AgentConfig(BaseModel):
    """Owner's voice agent and the number it calls from"""
    agent_id: str
    agent_phone_number_id: str
    from_number: Optional[str] = None


class DispatchResult(BaseModel):
    """Result of a call the gateway accepted"""
    conversation_id: str
    call_sid: Optional[str] = None
    to_number: str
    dynamic_variables: Dict[str, Any] = Field(default_factory=dict)


class CallCompletion(BaseModel):
    """Provider notification that a conversation ended"""
    conversation_id: str
    outcome: CallOutcome
    event_type: str = "call_ended"
    transcript: Optional[Any] = None
    analysis: Optional[Any] = None
