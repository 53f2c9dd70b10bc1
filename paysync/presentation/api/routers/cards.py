"""API router for the current user's saved cards."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from ....application.services.card_service import CardService
from ....core.dependencies import get_card_service
from ....domain.exceptions import ReconciliationError
from ....domain.models import User
from ..dependencies import get_current_user, to_http_error
from ..schemas.card import AddCardRequest, UpdateCardRequest

router = APIRouter(prefix="/api/cards", tags=["Cards"])


@router.get("")
def list_cards(
    user: User = Depends(get_current_user),
    card_service: CardService = Depends(get_card_service),
) -> Dict[str, Any]:
    try:
        cards = card_service.list_cards(user.id)
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    return {"cards": [card.to_dict() for card in cards]}


@router.post("", status_code=status.HTTP_201_CREATED)
def add_card(
    payload: AddCardRequest,
    user: User = Depends(get_current_user),
    card_service: CardService = Depends(get_card_service),
) -> Dict[str, Any]:
    """Attach a card to the current user's Stripe customer."""
    try:
        card = card_service.add_card(user.id, payload.payment_method_id, make_default=payload.make_default)
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    return {"message": "Card added successfully", "card": card.to_dict()}


@router.post("/{card_id}/set-default")
def set_default_card(
    card_id: str,
    user: User = Depends(get_current_user),
    card_service: CardService = Depends(get_card_service),
) -> Dict[str, Any]:
    try:
        card = card_service.set_default(user.id, card_id)
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    return {"message": "Default payment method updated successfully", "card": card.to_dict()}


@router.put("/{card_id}")
def update_card(
    card_id: str,
    payload: UpdateCardRequest,
    user: User = Depends(get_current_user),
    card_service: CardService = Depends(get_card_service),
) -> Dict[str, Any]:
    try:
        card = card_service.update_card(user.id, card_id, payload.exp_month, payload.exp_year)
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    return {"message": "Card updated successfully", "card": card.to_dict()}


@router.delete("/{card_id}")
def delete_card(
    card_id: str,
    user: User = Depends(get_current_user),
    card_service: CardService = Depends(get_card_service),
) -> Dict[str, Any]:
    try:
        default_id = card_service.delete_card(user.id, card_id)
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    return {"message": "Card deleted successfully", "default_payment_method_id": default_id}
