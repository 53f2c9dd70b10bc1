"""Saved-card management for a user's Stripe customer."""

from __future__ import annotations

import logging
from typing import List, Optional

from ...domain.exceptions import PaymentMethodError, PaymentMethodNotOwned, UserNotFound
from ...domain.models import SavedCard, User
from ...domain.models.events import object_id
from ...domain.ports.persistence import UserRepository
from ...domain.ports.processor import PaymentProcessor

logger = logging.getLogger(__name__)


class CardService:
    """Lists, attaches, updates and detaches cards.

    The user's default card is kept in step with the customer's
    ``invoice_settings.default_payment_method`` on Stripe. The local copy is
    what checkout and subscription creation fall back to when a request
    names no card.
    """

    def __init__(self, users: UserRepository, processor: PaymentProcessor) -> None:
        self.users = users
        self.processor = processor

    def list_cards(self, user_id: int) -> List[SavedCard]:
        user = self._get_customer(user_id)
        return [
            SavedCard.from_payment_method(method, user.default_payment_method_id)
            for method in self.processor.list_payment_methods(user.customer_id)
        ]

    def add_card(self, user_id: int, payment_method_id: str, make_default: bool = False) -> SavedCard:
        """
        Attach a tokenised card to the user's customer.

        The card becomes the default when asked to, or when the user has no
        default card yet.

        Args:
            user_id: User ID
            payment_method_id: Stripe payment method created client-side
            make_default: Make this the default card

        Returns:
            The attached card

        Raises:
            PaymentMethodError: If the user has no Stripe customer
            ProcessorUnavailable: If Stripe rejects or cannot attach the card
        """
        user = self._get_customer(user_id)
        method = self.processor.attach_payment_method(payment_method_id, user.customer_id)
        default_id = user.default_payment_method_id
        if make_default or not default_id:
            self.processor.set_customer_default_payment_method(user.customer_id, method["id"])
            self.users.set_default_payment_method(user.id, method["id"])
            default_id = method["id"]
        logger.info("Card %s attached for user %s", method["id"], user.id)
        return SavedCard.from_payment_method(method, default_id)

    def set_default(self, user_id: int, payment_method_id: str) -> SavedCard:
        user = self._get_customer(user_id)
        method = self._owned_method(user, payment_method_id)
        self.processor.set_customer_default_payment_method(user.customer_id, payment_method_id)
        self.users.set_default_payment_method(user.id, payment_method_id)
        logger.info("Default card for user %s set to %s", user.id, payment_method_id)
        return SavedCard.from_payment_method(method, payment_method_id)

    def update_card(self, user_id: int, payment_method_id: str, exp_month: int, exp_year: int) -> SavedCard:
        """Change the expiry date of one of the user's cards."""
        user = self._get_customer(user_id)
        self._owned_method(user, payment_method_id)
        method = self.processor.update_payment_method(
            payment_method_id,
            card={"exp_month": exp_month, "exp_year": exp_year},
        )
        return SavedCard.from_payment_method(method, user.default_payment_method_id)

    def delete_card(self, user_id: int, payment_method_id: str) -> Optional[str]:
        """
        Detach a card from the user's customer.

        Deleting the default card promotes the first remaining card, or
        clears the default when none is left.

        Returns:
            The default card ID after the deletion
        """
        user = self._get_customer(user_id)
        self._owned_method(user, payment_method_id)

        default_id = user.default_payment_method_id
        if default_id == payment_method_id:
            remaining = [
                method["id"]
                for method in self.processor.list_payment_methods(user.customer_id)
                if method["id"] != payment_method_id
            ]
            default_id = remaining[0] if remaining else None
            self.processor.set_customer_default_payment_method(user.customer_id, default_id)
            self.users.replace_default_payment_method(user.id, payment_method_id, default_id)

        self.processor.detach_payment_method(payment_method_id)
        logger.info("Card %s detached for user %s", payment_method_id, user.id)
        return default_id

    def _get_customer(self, user_id: int) -> User:
        user = self.users.get_user_by_id(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        if not user.customer_id:
            raise PaymentMethodError("No Stripe customer is linked to this account")
        return user

    def _owned_method(self, user: User, payment_method_id: str) -> dict:
        method = self.processor.retrieve_payment_method(payment_method_id)
        if object_id(method.get("customer")) != user.customer_id:
            raise PaymentMethodNotOwned("This card does not belong to your account")
        return method
