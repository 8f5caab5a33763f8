"""
Webhooks API Endpoints
Post-call webhooks from the voice provider that drive queue progress

Machine-to-machine: no session auth, authenticated by HMAC signature.
"""
import logging

from fastapi import APIRouter, Request, HTTPException, Depends

from dialer.api.v1.dependencies import get_completion_listener
from dialer.domain.errors import InvalidInput, SignatureInvalid
from dialer.domain.services.completion_listener import CompletionListener
from dialer.domain.services.webhook_signature import SIGNATURE_HEADER

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue", tags=["webhooks"])


@router.post("/webhook")
async def call_completed_webhook(
    request: Request,
    listener: CompletionListener = Depends(get_completion_listener)
):
    """
    Handle a call completion delivery.

    - 200 when the job advanced
    - 200 for unknown, stale or duplicate conversation ids (no effect)
    - 401 when the signature does not verify (no effect)
    """
    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        return await listener.handle(raw_body, signature)
    except SignatureInvalid as e:
        logger.warning(f"Rejected webhook from {request.client.host if request.client else '?'}: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except InvalidInput as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error in call completion webhook: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Webhook processing failed")
