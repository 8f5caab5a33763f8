"""
Call Dispatcher
Places exactly one call for exactly one lead
"""
import asyncio
import logging
from typing import Optional, Dict, Any

from dialer.domain.errors import ProviderNotConfigured, ProviderRejected, ProviderUnavailable
from dialer.domain.interfaces.agent_directory import AgentDirectory
from dialer.domain.interfaces.voice_gateway import VoiceGateway
from dialer.domain.models.call import AgentConfig, DispatchResult
from dialer.domain.models.lead import LeadSnapshot, is_e164

logger = logging.getLogger(__name__)


class CallDispatcher:
    """
    Resolves the owner's agent, builds the agent's dynamic variables and
    asks the voice gateway to dial.

    Transient provider failures are retried a bounded number of times with
    exponential backoff. Rejections and configuration problems are not.
    """

    def __init__(
        self,
        gateway: VoiceGateway,
        agents: AgentDirectory,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        test_mode: bool = False,
        test_phone_number: str = ""
    ):
        self.gateway = gateway
        self.agents = agents
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.test_mode = test_mode
        self.test_phone_number = test_phone_number

    async def dispatch(
        self,
        owner_id: str,
        lead: LeadSnapshot,
        job_id: Optional[str] = None
    ) -> DispatchResult:
        """
        Place one call.

        Raises:
            ProviderNotConfigured: owner has no usable agent, or test mode misconfigured
            ProviderRejected: gateway refused this call
            ProviderUnavailable: gateway unreachable after all attempts
        """
        agent = await self.agents.get_agent_config(owner_id)
        if agent is None:
            raise ProviderNotConfigured(
                "No voice agent found. Please create one before proceeding."
            )

        to_number = self._resolve_to_number(lead)
        dynamic_variables = self.build_dynamic_variables(owner_id, lead, agent, to_number, job_id)

        attempt = 1
        while True:
            try:
                result = await self.gateway.place_call(agent, to_number, dynamic_variables)
                break
            except ProviderUnavailable as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        f"Voice provider unavailable after {attempt} attempts "
                        f"(job={job_id}, to={to_number}): {e}"
                    )
                    raise
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    f"Voice provider unavailable (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                await asyncio.sleep(delay)
                attempt += 1

        if not result.conversation_id:
            raise ProviderRejected("No conversation id returned by voice provider")

        logger.info(
            f"Call placed: conversation={result.conversation_id} job={job_id} "
            f"lead={lead.display_name} to={to_number} (mode: {'TEST' if self.test_mode else 'LIVE'})"
        )
        return result

    def _resolve_to_number(self, lead: LeadSnapshot) -> str:
        if not self.test_mode:
            return lead.phone
        if not is_e164(self.test_phone_number):
            raise ProviderNotConfigured(
                "TEST_MODE is true but TEST_PHONE_NUMBER is not a valid E.164 number."
            )
        return self.test_phone_number

    def build_dynamic_variables(
        self,
        owner_id: str,
        lead: LeadSnapshot,
        agent: AgentConfig,
        to_number: str,
        job_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Variables the voice agent can reference in its prompt, echoed back on webhooks."""
        return {
            "user_id": owner_id,
            "lead_id": lead.id or "",
            "agent_id": agent.agent_id,
            "to_number": to_number,
            "from_number": agent.from_number or "",
            "Lead_First_Name": lead.first_name,
            "Lead_Last_Name": lead.last_name,
            "Lead_Email": lead.email or "",
            "Lead_Phone": lead.phone,
            "test_mode": "true" if self.test_mode else "false",
            "queue_job_id": job_id or "",
        }
