"""
Queue Runner
Owns the lifecycle of an outbound call queue job

Leads are dialed strictly one at a time. Dispatch returns as soon as the
call is placed; the job moves on when the provider's completion webhook
(or the watchdog) reports the outcome.
"""
import logging
from typing import Any, List, Optional

from pydantic import ValidationError

from dialer.domain.errors import (
    InvalidInput,
    InvalidTransition,
    NotFound,
    ProviderError,
    Unauthorized,
)
from dialer.domain.interfaces.call_log_store import CallLogStore
from dialer.domain.interfaces.job_store import JobStore
from dialer.domain.models.call import CallCompletion, CallOutcome, DispatchResult
from dialer.domain.models.call_log import CallLog, CallLogStatus
from dialer.domain.models.lead import LeadSnapshot
from dialer.domain.models.queue_job import QueueJob, QueueJobStatus
from dialer.domain.services.call_dispatcher import CallDispatcher
from dialer.domain.services.deadline_tracker import CallDeadlineTracker

logger = logging.getLogger(__name__)


class QueueRunner:
    """
    State machine for queue jobs.

    Every write goes through `JobStore.compare_and_advance` keyed on the
    job's current index and in-flight conversation id, so a duplicate or
    late webhook can never move the pointer twice or skip a lead.
    """

    # Attempts at a cancel that keeps losing the compare-and-swap to progress
    CANCEL_ATTEMPTS = 3

    def __init__(
        self,
        store: JobStore,
        dispatcher: CallDispatcher,
        deadlines: Optional[CallDeadlineTracker] = None,
        call_timeout_seconds: float = 900,
        max_leads_per_job: int = 500,
        call_logs: Optional[CallLogStore] = None
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.deadlines = deadlines
        self.call_timeout_seconds = call_timeout_seconds
        self.max_leads_per_job = max_leads_per_job
        self.call_logs = call_logs

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def enqueue(self, owner_id: Optional[str], raw_leads: Any) -> QueueJob:
        """
        Create a job for `raw_leads` and dial the first one.

        Raises:
            Unauthorized: no caller identity
            InvalidInput: empty, oversized or malformed lead list (no job is created)
        """
        if not owner_id:
            raise Unauthorized("Unauthorized")

        leads = self.parse_leads(raw_leads)

        job = QueueJob.create(owner_id, leads)
        await self.store.insert_job(job)
        logger.info(f"Queue job {job.id} created for user {owner_id} with {job.total_leads} leads")

        running = job.evolve(status=QueueJobStatus.RUNNING)
        if not await self.store.compare_and_advance(job.id, 0, "", running):
            # Only a concurrent cancel can get here
            return await self._reload(job.id)

        return await self._dispatch_current(running)

    async def advance(
        self,
        job_id: str,
        expected_index: int,
        expected_conversation_id: str,
        outcome: CallOutcome,
        completion: Optional[CallCompletion] = None
    ) -> bool:
        """
        Record the outcome of the in-flight call and move to the next lead.

        `completion` carries the transcript and analysis for the call log.

        No-op (returns False) when the job is gone, terminal, or no longer
        on `expected_index` / `expected_conversation_id`.
        """
        job = await self.store.get_job(job_id)
        if job is None or job.is_terminal:
            logger.info(f"Ignoring outcome for job {job_id}: job missing or finished")
            return False

        if (
            not expected_conversation_id
            or job.current_index != expected_index
            or job.current_conversation_id != expected_conversation_id
        ):
            logger.info(
                f"Ignoring stale outcome for job {job_id}: expected "
                f"index={expected_index} conversation={expected_conversation_id}, "
                f"job is at index={job.current_index} conversation={job.current_conversation_id or '-'}"
            )
            return False

        next_job = await self._record_outcome(job, outcome)
        if next_job is None:
            return False

        await self._clear_deadline(job.id, expected_conversation_id)
        await self._complete_call_log(expected_conversation_id, outcome, completion)

        if not next_job.is_terminal:
            await self._dispatch_current(next_job)

        return True

    async def expire(self, job_id: str, conversation_id: str) -> bool:
        """Watchdog entry point: the call never reported back, count it as timed out."""
        job = await self.store.get_job(job_id)
        if job is None or job.current_conversation_id != conversation_id:
            return False

        logger.warning(f"Call {conversation_id} of job {job_id} timed out waiting for completion")
        return await self.advance(job_id, job.current_index, conversation_id, CallOutcome.TIMEOUT)

    async def cancel(self, owner_id: str, job_id: str) -> QueueJob:
        """
        Stop a queued or running job. Calls already placed are not hung up,
        their completion webhooks are ignored.

        Raises:
            NotFound: job missing or not owned by `owner_id`
            InvalidTransition: job already finished
        """
        for _ in range(self.CANCEL_ATTEMPTS):
            job = await self.store.get_job(job_id)
            if job is None or job.owner_id != owner_id:
                raise NotFound("Job not found")

            cancelled = job.evolve(status=QueueJobStatus.CANCELLED)
            if await self.store.compare_and_advance(
                job.id, job.current_index, job.current_conversation_id, cancelled
            ):
                if job.current_conversation_id:
                    await self._clear_deadline(job.id, job.current_conversation_id)
                logger.info(f"Queue job {job_id} cancelled at index {job.current_index}/{job.total_leads}")
                return cancelled

        raise InvalidTransition("Job is changing too quickly to cancel, try again")

    # ------------------------------------------------------------------
    # Lead parsing
    # ------------------------------------------------------------------

    def parse_leads(self, raw_leads: Any) -> List[LeadSnapshot]:
        """Validate the submitted list and take immutable snapshots."""
        if not isinstance(raw_leads, list) or not raw_leads:
            raise InvalidInput("No leads provided")

        if len(raw_leads) > self.max_leads_per_job:
            raise InvalidInput(
                f"Too many leads: {len(raw_leads)} (max {self.max_leads_per_job} per job)"
            )

        leads: List[LeadSnapshot] = []
        for index, raw in enumerate(raw_leads):
            if not isinstance(raw, dict):
                raise InvalidInput(f"Lead {index} is not an object")
            try:
                leads.append(LeadSnapshot.model_validate(raw))
            except ValidationError as e:
                problems = "; ".join(
                    f"{'.'.join(str(p) for p in err['loc']) or 'lead'}: {err['msg']}"
                    for err in e.errors()
                )
                raise InvalidInput(f"Lead {index} is invalid: {problems}") from e

        return leads

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _dispatch_current(self, job: QueueJob) -> QueueJob:
        """
        Dial the lead under the pointer.

        Immediate rejections count as a failed lead and the loop moves on to
        the next one without waiting for a webhook that will never arrive.
        """
        while not job.is_terminal and not job.is_exhausted:
            lead = job.lead_at_pointer

            try:
                result = await self.dispatcher.dispatch(job.owner_id, lead, job_id=job.id)
            except ProviderError as e:
                if e.fatal:
                    await self._log_attempt(job, CallLogStatus.ERROR, error=e.message)
                    return await self._fail_job(job, e.message)
                logger.warning(
                    f"Job {job.id} lead {job.current_index} rejected by provider: {e.message}"
                )
                await self._log_attempt(job, CallLogStatus.REJECTED, error=e.message)
                next_job = await self._record_outcome(job, CallOutcome.FAILED, attempted=True)
                if next_job is None:
                    return await self._reload(job.id)
                job = next_job
                continue
            except Exception as e:
                logger.error(f"Unexpected dispatch error for job {job.id}: {e}", exc_info=True)
                await self._log_attempt(job, CallLogStatus.ERROR, error=f"Dispatch failed: {e}")
                return await self._fail_job(job, f"Dispatch failed: {e}")

            await self._log_attempt(job, CallLogStatus.INITIATED, result=result)

            dispatched = job.evolve(
                current_conversation_id=result.conversation_id,
                current_lead=lead,
                initiated=job.initiated + 1,
            )
            try:
                recorded = await self.store.compare_and_advance(job.id, job.current_index, "", dispatched)
            except Exception as e:
                # Placed call cannot be tracked
                logger.error(
                    f"Failed to record conversation {result.conversation_id} for job {job.id}: {e}",
                    exc_info=True
                )
                return await self._abort_untracked(job, f"Failed to record dispatched call: {e}")

            if not recorded:
                logger.warning(
                    f"Job {job.id} changed while dialing lead {job.current_index}; "
                    f"conversation {result.conversation_id} will not be tracked"
                )
                return await self._reload(job.id)

            logger.info(
                f"Job {job.id} dialing lead {job.current_index + 1}/{job.total_leads} "
                f"(conversation={result.conversation_id})"
            )
            await self._register_deadline(job.id, result.conversation_id)
            return dispatched

        return job

    async def _record_outcome(
        self,
        job: QueueJob,
        outcome: CallOutcome,
        attempted: bool = False
    ) -> Optional[QueueJob]:
        """
        Count the outcome of the lead under the pointer and step past it.

        `attempted` marks a dispatch the gateway refused outright; it still
        counts as initiated so `initiated >= completed + failed` holds.
        """
        next_index = job.current_index + 1
        changes = {
            "current_index": next_index,
            "completed": job.completed + (1 if outcome.is_success else 0),
            "failed": job.failed + (0 if outcome.is_success else 1),
            "initiated": job.initiated + (1 if attempted else 0),
            "current_conversation_id": "",
        }

        if next_index >= job.total_leads:
            changes["status"] = QueueJobStatus.COMPLETED
            changes["current_lead"] = None
        else:
            changes["status"] = QueueJobStatus.RUNNING
            changes["current_lead"] = job.leads[next_index]

        next_job = job.evolve(**changes)
        if not await self.store.compare_and_advance(
            job.id, job.current_index, job.current_conversation_id, next_job
        ):
            logger.info(f"Lost update on job {job.id} at index {job.current_index}")
            return None

        logger.info(
            f"Job {job.id} lead {job.current_index} -> {outcome.value} "
            f"(completed={next_job.completed}, failed={next_job.failed}, "
            f"index={next_job.current_index}/{next_job.total_leads})"
        )
        if next_job.is_terminal:
            logger.info(f"Queue job {job.id} completed")
        return next_job

    async def _fail_job(self, job: QueueJob, error: str) -> QueueJob:
        """Abort the job: the current lead counts as failed, the rest are abandoned."""
        failed_job = job.evolve(
            status=QueueJobStatus.FAILED,
            error=error or "Unknown provider error",
            current_index=job.total_leads,
            current_conversation_id="",
            current_lead=None,
            initiated=job.initiated + 1,
            failed=job.failed + 1,
        )
        if not await self.store.compare_and_advance(
            job.id, job.current_index, job.current_conversation_id, failed_job
        ):
            return await self._reload(job.id)

        logger.error(
            f"Queue job {job.id} failed at lead {job.current_index}/{job.total_leads}: {failed_job.error}"
        )
        return failed_job

    async def _abort_untracked(self, job: QueueJob, error: str) -> QueueJob:
        """
        Fail the job after a call was placed but could not be recorded.

        If the store is still down the job is returned unchanged and the
        error is logged; the caller's request still succeeds.
        """
        try:
            return await self._fail_job(job, error)
        except Exception as e:
            logger.error(f"Failed to mark job {job.id} as failed: {e}", exc_info=True)
            return job

    async def _reload(self, job_id: str) -> QueueJob:
        job = await self.store.get_job(job_id)
        if job is None:
            raise NotFound("Job not found")
        return job

    async def _register_deadline(self, job_id: str, conversation_id: str) -> None:
        if self.deadlines is None:
            return
        try:
            await self.deadlines.register(job_id, conversation_id, self.call_timeout_seconds)
        except Exception as e:
            # The call is placed; losing the deadline only disables the timeout for it
            logger.error(f"Failed to register deadline for job {job_id}: {e}")

    async def _clear_deadline(self, job_id: str, conversation_id: str) -> None:
        if self.deadlines is None:
            return
        try:
            await self.deadlines.clear(job_id, conversation_id)
        except Exception as e:
            logger.warning(f"Failed to clear deadline for job {job_id}: {e}")

    # ------------------------------------------------------------------
    # Call logs
    # ------------------------------------------------------------------

    async def _log_attempt(
        self,
        job: QueueJob,
        status: CallLogStatus,
        result: Optional[DispatchResult] = None,
        error: str = ""
    ) -> None:
        """Record a dial attempt for the lead under the pointer. Never raises."""
        if self.call_logs is None:
            return

        lead = job.lead_at_pointer
        variables = result.dynamic_variables if result else {}
        log = CallLog(
            owner_id=job.owner_id,
            job_id=job.id,
            lead_index=job.current_index,
            lead_id=lead.id,
            to_number=result.to_number if result else lead.phone,
            status=status,
            error=error,
        )
        if result is not None:
            log = log.model_copy(update={
                "id": result.conversation_id,
                "conversation_id": result.conversation_id,
                "agent_id": variables.get("agent_id") or None,
                "from_number": variables.get("from_number") or None,
                "dynamic_variables": variables,
            })
        if status is not CallLogStatus.INITIATED:
            log = log.model_copy(update={"outcome": CallOutcome.FAILED, "ended_at": log.started_at})

        try:
            await self.call_logs.insert_call_log(log)
        except Exception as e:
            logger.error(f"Failed to write call log for job {job.id} lead {job.current_index}: {e}")

    async def _complete_call_log(
        self,
        conversation_id: str,
        outcome: CallOutcome,
        completion: Optional[CallCompletion] = None
    ) -> None:
        if self.call_logs is None:
            return
        try:
            await self.call_logs.complete_call_log(
                conversation_id,
                outcome,
                transcript=completion.transcript if completion else None,
                analysis=completion.analysis if completion else None,
            )
        except Exception as e:
            logger.error(f"Failed to update call log {conversation_id}: {e}")
