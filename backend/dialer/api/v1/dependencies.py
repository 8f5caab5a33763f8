"""
API Dependencies
Shared dependencies for authentication, Supabase access and queue services
"""
import os
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, Request, status, Header
from supabase import create_client, Client
from pydantic import BaseModel
from dotenv import load_dotenv

from dialer.core.config import ConfigManager, get_settings
from dialer.domain.interfaces.agent_directory import AgentDirectory
from dialer.domain.interfaces.call_log_store import CallLogStore
from dialer.domain.interfaces.job_store import JobStore
from dialer.domain.interfaces.voice_gateway import VoiceGateway
from dialer.domain.services.call_dispatcher import CallDispatcher
from dialer.domain.services.completion_listener import CompletionListener
from dialer.domain.services.deadline_tracker import CallDeadlineTracker
from dialer.domain.services.queue_runner import QueueRunner
from dialer.domain.services.status_service import QueueStatusService
from dialer.infrastructure.storage.supabase_agent_directory import SupabaseAgentDirectory
from dialer.infrastructure.storage.supabase_call_log_store import SupabaseCallLogStore
from dialer.infrastructure.storage.supabase_job_store import SupabaseJobStore
from dialer.infrastructure.voice.elevenlabs_gateway import ElevenLabsGateway

load_dotenv()

# Cookie set by the dashboard's Supabase session
SESSION_COOKIE = "sb-access-token"


class CurrentUser(BaseModel):
    """Current authenticated user model"""
    id: str
    email: str
    name: Optional[str] = None


def get_supabase() -> Client:
    """
    Get Supabase client with validation.

    Raises:
        RuntimeError: If Supabase URL or SERVICE_KEY is not configured
    """
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_KEY")

    if not url:
        raise RuntimeError(
            "SUPABASE_URL is not configured. "
            "Set SUPABASE_URL environment variable."
        )
    if not key:
        raise RuntimeError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set SUPABASE_SERVICE_KEY environment variable."
        )

    return create_client(url, key)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def extract_access_token(authorization: Optional[str], request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the session cookie."""
    if authorization:
        parts = authorization.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise _unauthorized("Invalid authorization header format. Use: Bearer <token>")
        return parts[1]
    return request.cookies.get(SESSION_COOKIE)


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
    supabase: Client = Depends(get_supabase)
) -> CurrentUser:
    """
    Dependency to get the current authenticated user.

    Raises:
        HTTPException: 401 if no session or the token is invalid
    """
    token = extract_access_token(authorization, request)
    if not token:
        raise _unauthorized("Unauthorized")

    try:
        user_response = supabase.auth.get_user(token)
    except Exception as e:
        raise _unauthorized(f"Token validation failed: {str(e)}")

    if not user_response or not user_response.user:
        raise _unauthorized("Invalid or expired token")

    auth_user = user_response.user
    metadata = getattr(auth_user, "user_metadata", None) or {}

    return CurrentUser(
        id=str(auth_user.id),
        email=auth_user.email or "",
        name=metadata.get("full_name") or metadata.get("name"),
    )


@lru_cache
def get_config() -> ConfigManager:
    return ConfigManager()


def get_job_store(supabase: Client = Depends(get_supabase)) -> JobStore:
    return SupabaseJobStore(supabase)


def get_agent_directory(supabase: Client = Depends(get_supabase)) -> AgentDirectory:
    return SupabaseAgentDirectory(supabase)


def get_call_log_store(supabase: Client = Depends(get_supabase)) -> CallLogStore:
    return SupabaseCallLogStore(supabase)


@lru_cache
def get_voice_gateway() -> VoiceGateway:
    settings = get_settings()
    return ElevenLabsGateway(
        api_key=settings.elevenlabs_api_key,
        base_url=settings.elevenlabs_base_url,
    )


@lru_cache
def get_deadline_tracker() -> Optional[CallDeadlineTracker]:
    """Redis deadline tracker, None when REDIS_URL is not set (no watchdog)."""
    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        return None
    return CallDeadlineTracker(redis_url=redis_url)


def get_call_dispatcher(
    agents: AgentDirectory = Depends(get_agent_directory),
    gateway: VoiceGateway = Depends(get_voice_gateway)
) -> CallDispatcher:
    config = get_config()
    settings = get_settings()
    return CallDispatcher(
        gateway=gateway,
        agents=agents,
        max_attempts=config.get("queue.dispatch_retry.max_attempts", 3),
        backoff_seconds=config.get("queue.dispatch_retry.backoff_seconds", 0.5),
        test_mode=settings.test_mode,
        test_phone_number=settings.test_phone_number,
    )


def get_queue_runner(
    store: JobStore = Depends(get_job_store),
    dispatcher: CallDispatcher = Depends(get_call_dispatcher),
    deadlines: Optional[CallDeadlineTracker] = Depends(get_deadline_tracker),
    call_logs: CallLogStore = Depends(get_call_log_store)
) -> QueueRunner:
    config = get_config()
    return QueueRunner(
        store=store,
        dispatcher=dispatcher,
        deadlines=deadlines,
        call_timeout_seconds=config.get("queue.call_timeout_seconds", 900),
        max_leads_per_job=config.get("queue.max_leads_per_job", 500),
        call_logs=call_logs,
    )


def get_status_service(
    store: JobStore = Depends(get_job_store),
    call_logs: CallLogStore = Depends(get_call_log_store)
) -> QueueStatusService:
    return QueueStatusService(store, call_logs)


def get_completion_listener(
    store: JobStore = Depends(get_job_store),
    runner: QueueRunner = Depends(get_queue_runner)
) -> CompletionListener:
    return CompletionListener(
        store=store,
        runner=runner,
        webhook_secret=get_settings().elevenlabs_webhook_secret,
        tolerance_seconds=get_config().get("webhooks.signature_tolerance_seconds", 1800),
    )
