"""
Completion Listener
Turns the voice provider's post-call webhooks into queue progress
"""
import json
import logging
from typing import Any, Dict, Optional

from dialer.domain.errors import InvalidInput
from dialer.domain.interfaces.job_store import JobStore
from dialer.domain.models.call import CallCompletion, CallOutcome
from dialer.domain.services.queue_runner import QueueRunner
from dialer.domain.services.webhook_signature import verify_signature

logger = logging.getLogger(__name__)


# Free-form outcome strings to CallOutcome
OUTCOME_MAP: Dict[str, CallOutcome] = {
    "completed": CallOutcome.COMPLETED,
    "done": CallOutcome.COMPLETED,
    "answered": CallOutcome.COMPLETED,
    "success": CallOutcome.COMPLETED,
    "failed": CallOutcome.FAILED,
    "error": CallOutcome.FAILED,
    "rejected": CallOutcome.FAILED,
    "cancelled": CallOutcome.FAILED,
    "busy": CallOutcome.BUSY,
    "no_answer": CallOutcome.NO_ANSWER,
    "no-answer": CallOutcome.NO_ANSWER,
    "unanswered": CallOutcome.NO_ANSWER,
    "timeout": CallOutcome.TIMEOUT,
}

# Conversation statuses that mean the call has not finished yet
IN_PROGRESS_STATUSES = {"initiated", "in-progress", "in_progress", "processing", "started", "ringing"}


def _first(*values: Any) -> Any:
    """First value that is not None"""
    for value in values:
        if value is not None:
            return value
    return None


def _dig(payload: Dict[str, Any], *path: str) -> Any:
    value: Any = payload
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def parse_completion(payload: Dict[str, Any]) -> Optional[CallCompletion]:
    """
    Extract (conversation id, outcome) from a provider webhook, along with
    the transcript and analysis when the provider sends them.

    Accepts the direct shape `{conversation_id, outcome}` as well as the
    provider's event envelopes:
    - post_call_transcription: data.status "done" / "failed"
    - call_initiation_failure: data.failure_reason (busy, no-answer, ...)

    Returns:
        CallCompletion, or None for events that do not end a call
    """
    if not isinstance(payload, dict):
        return None

    conversation_id = _first(
        payload.get("conversation_id"),
        _dig(payload, "data", "conversation_id"),
        _dig(payload, "conversation", "id"),
        _dig(payload, "data", "conversation", "id"),
    )
    if not conversation_id:
        return None

    event_type = str(_first(payload.get("type"), payload.get("event_type"), payload.get("event")) or "call_ended")

    explicit = payload.get("outcome")
    if explicit is not None:
        explicit = str(explicit).lower()
        if explicit in IN_PROGRESS_STATUSES:
            return None
        outcome = OUTCOME_MAP.get(explicit, CallOutcome.FAILED)
    elif event_type == "call_initiation_failure":
        reason = str(_dig(payload, "data", "failure_reason") or "failed").lower()
        outcome = OUTCOME_MAP.get(reason, CallOutcome.FAILED)
    elif event_type == "post_call_transcription":
        status = str(_first(_dig(payload, "data", "status"), payload.get("status")) or "").lower()
        if not status or status in IN_PROGRESS_STATUSES:
            return None
        outcome = OUTCOME_MAP.get(status, CallOutcome.FAILED)
    else:
        # Audio uploads and other informational events
        return None

    return CallCompletion(
        conversation_id=str(conversation_id),
        outcome=outcome,
        event_type=event_type,
        transcript=_first(payload.get("transcript"), _dig(payload, "data", "transcript")),
        analysis=_first(payload.get("analysis"), _dig(payload, "data", "analysis")),
    )


class CompletionListener:
    """
    Machine-to-machine entry point for call completion.

    Unknown and stale conversation ids are acknowledged without effect so
    provider retries and late deliveries are harmless.
    """

    def __init__(
        self,
        store: JobStore,
        runner: QueueRunner,
        webhook_secret: str,
        tolerance_seconds: int = 1800
    ):
        self.store = store
        self.runner = runner
        self.webhook_secret = webhook_secret
        self.tolerance_seconds = tolerance_seconds

    async def handle(self, raw_body: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
        """
        Authenticate, parse and apply one webhook delivery.

        Raises:
            SignatureInvalid: authentication failed, nothing was changed
            InvalidInput: body is not a JSON object
        """
        verify_signature(
            self.webhook_secret,
            raw_body,
            signature_header,
            tolerance_seconds=self.tolerance_seconds,
        )

        try:
            payload = json.loads(raw_body or b"{}")
        except ValueError as e:
            raise InvalidInput("Webhook body is not valid JSON") from e
        if not isinstance(payload, dict):
            raise InvalidInput("Webhook body must be a JSON object")

        completion = parse_completion(payload)
        if completion is None:
            logger.debug(f"Webhook acknowledged without action: type={payload.get('type')}")
            return {"status": "ignored", "reason": "not_a_completion"}

        job = await self.store.find_by_conversation(completion.conversation_id)
        if job is None:
            logger.info(f"No active job for conversation {completion.conversation_id}, ignoring")
            return {"status": "ignored", "reason": "unknown_conversation"}

        advanced = await self.runner.advance(
            job.id,
            job.current_index,
            completion.conversation_id,
            completion.outcome,
            completion=completion,
        )
        if not advanced:
            return {"status": "ignored", "reason": "stale", "job_id": job.id}

        logger.info(
            f"Conversation {completion.conversation_id} ended ({completion.outcome.value}), "
            f"job {job.id} advanced"
        )
        return {"status": "advanced", "job_id": job.id, "outcome": completion.outcome.value}
