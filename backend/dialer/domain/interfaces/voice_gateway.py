"""
Voice Gateway Interface
Abstract voice-agent/telephony provider that places outbound calls
"""
from abc import ABC, abstractmethod
from typing import Dict, Any

from dialer.domain.models.call import AgentConfig, DispatchResult


class VoiceGateway(ABC):
    """Places a single outbound call through a voice agent"""

    @abstractmethod
    async def place_call(
        self,
        agent: AgentConfig,
        to_number: str,
        dynamic_variables: Dict[str, Any]
    ) -> DispatchResult:
        """
        Ask the provider to dial `to_number` with the owner's agent.

        Raises:
            ProviderRejected: provider refused this call
            ProviderUnavailable: network failure or provider outage
            ProviderNotConfigured: credentials or agent unusable
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release resources"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name"""
        pass
