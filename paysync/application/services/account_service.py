"""Service for authenticated account access and account deletion."""

from __future__ import annotations

import logging
from typing import Optional

import jwt

from ...domain.exceptions import ProcessorUnavailable, UserNotFound
from ...domain.models import DeletionFeedback, SubscriptionStatus, User
from ...domain.ports.persistence import PersistenceGateway
from ...domain.ports.processor import PaymentProcessor

logger = logging.getLogger(__name__)


def anonymize_email(email: str) -> str:
    """Keep just enough of an address to spot repeat feedback."""
    domain = email.split("@", 1)[1] if "@" in email else ""
    return f"{email[:3]}***@***{domain[-3:]}"


class AccountService:
    """Resolves bearer tokens to users and removes accounts."""

    def __init__(
        self,
        store: PersistenceGateway,
        processor: PaymentProcessor,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
    ) -> None:
        self.store = store
        self.processor = processor
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm

    def verify_token(self, token: str) -> Optional[dict]:
        """
        Verify and decode a JWT.

        Args:
            token: JWT token string

        Returns:
            Decoded payload if valid, None otherwise
        """
        try:
            return jwt.decode(token, self.jwt_secret, algorithms=[self.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    def get_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        return self.store.get_user_by_id(user_id)

    def delete_account(self, user_id: int, reason: Optional[str] = None) -> Optional[DeletionFeedback]:
        """
        Delete a user along with their orders and payment history.

        The live subscription is canceled and the Stripe customer deleted
        first. Stripe failures are logged and do not block the deletion.

        Args:
            user_id: User ID
            reason: Optional free-text reason, stored with an anonymised email

        Returns:
            The stored feedback record, if a reason was given

        Raises:
            UserNotFound: If the user does not exist
        """
        user = self.store.get_user_by_id(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")

        if user.subscription.id and user.subscription.status != SubscriptionStatus.CANCELED.value:
            try:
                self.processor.cancel_subscription(user.subscription.id)
                logger.info("Subscription %s canceled for user %s", user.subscription.id, user.id)
            except ProcessorUnavailable as exc:
                logger.error("Error canceling subscription %s: %s", user.subscription.id, exc.message)

        if user.customer_id:
            try:
                self.processor.delete_customer(user.customer_id)
                logger.info("Stripe customer %s deleted for user %s", user.customer_id, user.id)
            except ProcessorUnavailable as exc:
                logger.error("Error deleting Stripe customer %s: %s", user.customer_id, exc.message)

        feedback = None
        if reason:
            feedback = self.store.record_deletion_feedback(
                reason=reason,
                had_subscription=user.has_subscription,
                email=anonymize_email(user.email),
            )

        self.store.delete_user(user.id)
        logger.info("User %s deleted", user.id)
        return feedback
