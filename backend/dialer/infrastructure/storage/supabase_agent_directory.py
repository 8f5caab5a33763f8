"""
Supabase Agent Directory
Reads the owner's ElevenLabs agent and Twilio number from `user_agents`
"""
import logging
from typing import Optional

from supabase import Client

from dialer.domain.interfaces.agent_directory import AgentDirectory
from dialer.domain.models.call import AgentConfig

logger = logging.getLogger(__name__)


class SupabaseAgentDirectory(AgentDirectory):
    """Agent provisioning happens elsewhere; this only reads the result."""

    TABLE = "user_agents"

    def __init__(self, supabase: Client):
        self._supabase = supabase

    async def get_agent_config(self, owner_id: str) -> Optional[AgentConfig]:
        response = (
            self._supabase.table(self.TABLE)
            .select("agent_id, agent_phone_number_id, twilio_number")
            .eq("user_id", owner_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None

        row = response.data[0]
        if not row.get("agent_id") or not row.get("agent_phone_number_id"):
            logger.info(f"Agent setup incomplete for user {owner_id}")
            return None

        return AgentConfig(
            agent_id=row["agent_id"],
            agent_phone_number_id=row["agent_phone_number_id"],
            from_number=row.get("twilio_number"),
        )
