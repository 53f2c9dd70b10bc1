"""Stripe webhook ingestion endpoint."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from ....application.services.event_verifier import EventVerifier
from ....application.services.webhook_dispatcher import WebhookDispatcher
from ....core.dependencies import get_event_verifier, get_webhook_dispatcher
from ....domain.exceptions import ConfigurationError, InvalidSignature, MalformedEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Stripe Webhook"])


@router.post("/webhook", include_in_schema=False)
@router.post("/api/stripe/webhook", include_in_schema=False)
async def stripe_webhook(
    request: Request,
    verifier: EventVerifier = Depends(get_event_verifier),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> Dict[str, Any]:
    """Verify a Stripe delivery and reconcile local state with it.

    The body is read raw; a 2xx tells Stripe not to redeliver.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        event = verifier.verify(payload, signature)
    except (InvalidSignature, MalformedEvent) as exc:
        logger.warning("Rejected webhook delivery: %s", exc.message)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Webhook Error: {exc.message}",
        ) from exc
    except ConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=exc.message,
        ) from exc

    try:
        result = await run_in_threadpool(dispatcher.dispatch, event)
    except Exception as exc:
        logger.exception("Error processing webhook event %s", event.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error processing webhook event",
        ) from exc

    return result.to_dict()
