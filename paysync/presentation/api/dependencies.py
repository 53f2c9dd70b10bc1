from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...application.services.account_service import AccountService
from ...core.dependencies import get_account_service
from ...domain.exceptions import (
    OrderNotFound,
    PaymentDeclined,
    PaymentMethodError,
    PaymentMethodNotOwned,
    ProcessorUnavailable,
    ReconciliationError,
    SubscriptionError,
    UserNotFound,
)
from ...domain.models import User

_bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    account_service: AccountService = Depends(get_account_service),
) -> User:
    """Dependency to get current authenticated user."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header",
        )

    payload = account_service.verify_token(credentials.credentials)
    if not payload or "user_id" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    try:
        user_id = int(payload["user_id"])
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user = account_service.get_by_id(user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


_ERROR_STATUS = (
    (PaymentDeclined, status.HTTP_402_PAYMENT_REQUIRED),
    (PaymentMethodNotOwned, status.HTTP_403_FORBIDDEN),
    (UserNotFound, status.HTTP_404_NOT_FOUND),
    (OrderNotFound, status.HTTP_404_NOT_FOUND),
    (SubscriptionError, status.HTTP_400_BAD_REQUEST),
    (PaymentMethodError, status.HTTP_400_BAD_REQUEST),
    (ProcessorUnavailable, status.HTTP_502_BAD_GATEWAY),
)


def to_http_error(exc: ReconciliationError) -> HTTPException:
    """Translate a domain error raised by a request-driven service call."""
    code = next(
        (code for error_type, code in _ERROR_STATUS if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    detail = {"message": exc.message, **exc.details} if exc.details else exc.message
    return HTTPException(status_code=code, detail=detail)
