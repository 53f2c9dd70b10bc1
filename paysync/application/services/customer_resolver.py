from __future__ import annotations

import logging
from typing import Mapping, Optional

from ...domain.exceptions import UserNotFound
from ...domain.models import User
from ...domain.ports.persistence import UserRepository

logger = logging.getLogger(__name__)

_METADATA_USER_KEYS = ("userId", "user_id")


class CustomerResolver:
    """Maps a Stripe customer id and/or event metadata to one local user."""

    def __init__(self, users: UserRepository) -> None:
        self._users = users

    def resolve(self, customer_id: Optional[str], metadata: Optional[Mapping[str, str]] = None) -> User:
        """
        Resolve the user an event belongs to.

        The application user id carried in metadata is tried first; the
        stored Stripe customer id is the fallback.

        Args:
            customer_id: Stripe customer id from the event object
            metadata: Event object metadata written by this application

        Returns:
            The matching User

        Raises:
            UserNotFound: If neither lookup yields a user
        """
        user = self._from_metadata(metadata or {})
        if user is not None:
            if customer_id and user.customer_id and user.customer_id != customer_id:
                logger.warning(
                    "Metadata user %s has customer %s but event names customer %s; using metadata",
                    user.id,
                    user.customer_id,
                    customer_id,
                )
            return user

        if customer_id:
            user = self._users.get_user_by_customer_id(customer_id)
            if user is not None:
                logger.debug("Found user %s by customer id %s", user.id, customer_id)
                return user

        raise UserNotFound(
            f"No user found for customer ID: {customer_id}",
            details={"customer_id": customer_id, "metadata": dict(metadata or {})},
        )

    def _from_metadata(self, metadata: Mapping[str, str]) -> Optional[User]:
        for key in _METADATA_USER_KEYS:
            raw = metadata.get(key)
            if not raw:
                continue
            try:
                user_id = int(raw)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric %s in metadata: %r", key, raw)
                continue
            user = self._users.get_user_by_id(user_id)
            if user is not None:
                return user
            logger.warning("Metadata %s=%s does not match a local user", key, raw)
        return None
