"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter
from dialer.api.v1.endpoints import queue, webhooks

api_router = APIRouter()

# Webhook first: POST /queue/webhook must not be shadowed by /queue/{job_id} routes
api_router.include_router(webhooks.router)
api_router.include_router(queue.router)
