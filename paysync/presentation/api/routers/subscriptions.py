"""API router for user subscription management."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from ....application.services.subscription_service import SubscriptionService
from ....core.dependencies import get_subscription_service
from ....domain.exceptions import ReconciliationError
from ....domain.models import User
from ..dependencies import get_current_user, to_http_error
from ..schemas.subscription import (
    CancelSubscriptionRequest,
    ChangePlanRequest,
    CreateSubscriptionRequest,
    UpdateSubscriptionPaymentRequest,
)

router = APIRouter(prefix="/api/subscriptions", tags=["Subscriptions"])


@router.post("")
def create_subscription(
    payload: CreateSubscriptionRequest,
    user: User = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    """Subscribe the current user to a price."""
    try:
        subscription = subscription_service.create(
            user.id,
            payload.price_id,
            payment_method_id=payload.payment_method_id,
            trial_days=payload.trial_days,
        )
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    return {"message": "Subscription created successfully", "subscription": subscription}


@router.post("/cancel")
def cancel_subscription(
    payload: Optional[CancelSubscriptionRequest] = None,
    user: User = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    immediate = payload.immediate if payload else False
    try:
        subscription = subscription_service.cancel(user.id, immediate=immediate)
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    message = "Subscription canceled" if immediate else "Subscription will be canceled at the end of the billing period"
    return {"message": message, "subscription": subscription.to_dict()}


@router.get("/current")
def get_current_subscription(
    refresh: bool = False,
    user: User = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    """Get current user subscription, optionally re-read from Stripe."""
    try:
        subscription = subscription_service.current(user.id, refresh=refresh)
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    return {
        "has_subscription": subscription.id is not None,
        "subscription": subscription.to_dict() if subscription.id else None,
    }


@router.post("/change-plan")
def change_plan(
    payload: ChangePlanRequest,
    user: User = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    """Move the current subscription to another price."""
    try:
        subscription = subscription_service.change_plan(
            user.id,
            payload.price_id,
            proration_behavior=payload.proration_behavior,
        )
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    return {"message": "Subscription plan changed successfully", "subscription": subscription}


@router.post("/update-payment")
def update_subscription_payment(
    payload: UpdateSubscriptionPaymentRequest,
    user: User = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    try:
        subscription = subscription_service.update_payment_method(user.id, payload.payment_method_id)
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    return {"message": "Subscription payment method updated", "subscription": subscription}
