"""
Agent Directory Interface
Resolves the voice agent configuration owned by a user
"""
from abc import ABC, abstractmethod
from typing import Optional

from dialer.domain.models.call import AgentConfig


class AgentDirectory(ABC):
    """Looks up which agent and number place calls for an owner"""

    @abstractmethod
    async def get_agent_config(self, owner_id: str) -> Optional[AgentConfig]:
        """Agent configuration for `owner_id`, None if provider setup is incomplete"""
        pass
