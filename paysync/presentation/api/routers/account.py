from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from ....application.services.account_service import AccountService
from ....core.dependencies import get_account_service
from ....domain.exceptions import ReconciliationError
from ....domain.models import User
from ..dependencies import get_current_user, to_http_error
from ..schemas.account import DeleteAccountRequest

router = APIRouter(prefix="/api/account", tags=["Account"])


@router.delete("")
def delete_account(
    payload: Optional[DeleteAccountRequest] = None,
    user: User = Depends(get_current_user),
    account_service: AccountService = Depends(get_account_service),
) -> Dict[str, Any]:
    """Delete the current user, their orders and payment history."""
    try:
        account_service.delete_account(user.id, reason=payload.reason if payload else None)
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    return {"message": "User account deleted successfully"}
