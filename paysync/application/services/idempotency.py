from __future__ import annotations

from ...domain.ports.persistence import LedgerRepository


class IdempotencyGuard:
    """Answers whether an event's ledger effect is already recorded.

    The answer may be stale by the time the caller writes. It only saves
    enrichment round trips; the ledger write itself suppresses duplicates.
    """

    def __init__(self, ledger: LedgerRepository) -> None:
        self._ledger = ledger

    def payment_applied(self, user_id: int, payment_intent_id: str) -> bool:
        return self._ledger.has_payment_intent(user_id, payment_intent_id)

    def invoice_applied(self, user_id: int, invoice_id: str) -> bool:
        return self._ledger.has_invoice(user_id, invoice_id)
