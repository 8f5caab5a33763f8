"""
ElevenLabs Voice Gateway
Places outbound calls through ElevenLabs Conversational AI over the owner's Twilio number
"""
import logging
from typing import Optional, Dict, Any

import httpx

from dialer.domain.errors import ProviderRejected, ProviderUnavailable, ProviderNotConfigured
from dialer.domain.interfaces.voice_gateway import VoiceGateway
from dialer.domain.models.call import AgentConfig, DispatchResult

logger = logging.getLogger(__name__)


class ElevenLabsGateway(VoiceGateway):
    """
    Thin client for `POST /v1/convai/twilio/outbound-call`.

    Error mapping:
    - transport error, timeout, 5xx -> ProviderUnavailable
    - 401 / 403                     -> ProviderNotConfigured
    - any other 4xx (bad number, quota) -> ProviderRejected
    """

    OUTBOUND_CALL_PATH = "/v1/convai/twilio/outbound-call"
    DEFAULT_TIMEOUT = 15.0

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.elevenlabs.io",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "elevenlabs"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def place_call(
        self,
        agent: AgentConfig,
        to_number: str,
        dynamic_variables: Dict[str, Any]
    ) -> DispatchResult:
        if not self._api_key:
            raise ProviderNotConfigured("ELEVENLABS_API_KEY is not configured")

        payload = {
            "agent_id": agent.agent_id,
            "agent_phone_number_id": agent.agent_phone_number_id,
            "to_number": to_number,
            "conversation_initiation_client_data": {
                "dynamic_variables": dynamic_variables,
            },
        }

        logger.info(
            f"Placing outbound call: agent={agent.agent_id} "
            f"from={agent.from_number} to={to_number}"
        )

        try:
            response = await self._get_client().post(
                f"{self._base_url}{self.OUTBOUND_CALL_PATH}",
                json=payload,
                headers={
                    "xi-api-key": self._api_key,
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"ElevenLabs request failed: {e}")
            raise ProviderUnavailable(f"Voice provider unreachable: {e}") from e

        body = self._json_or_empty(response)

        if response.status_code >= 500:
            raise ProviderUnavailable(
                f"Voice provider error ({response.status_code})", details=body
            )
        if response.status_code in (401, 403):
            raise ProviderNotConfigured(
                self._error_message(body, "Voice provider rejected the account credentials"),
                details=body,
            )
        if response.status_code >= 400:
            raise ProviderRejected(
                self._error_message(body, f"Call rejected by provider ({response.status_code})"),
                details=body,
            )

        # success=false comes back with a 200 when the call could not be started
        if body.get("success") is False:
            raise ProviderRejected(self._error_message(body, "Call could not be started"), details=body)

        conversation_id = body.get("conversation_id") or body.get("conversationId")
        if not conversation_id:
            raise ProviderRejected("No conversation id returned by voice provider", details=body)

        return DispatchResult(
            conversation_id=conversation_id,
            call_sid=body.get("callSid") or body.get("call_sid"),
            to_number=to_number,
            dynamic_variables=dynamic_variables,
        )

    @staticmethod
    def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _error_message(body: Dict[str, Any], fallback: str) -> str:
        detail = body.get("detail")
        if isinstance(detail, dict):
            detail = detail.get("message")
        elif detail is not None and not isinstance(detail, str):
            detail = str(detail)
        return body.get("error") or body.get("message") or detail or fallback

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
