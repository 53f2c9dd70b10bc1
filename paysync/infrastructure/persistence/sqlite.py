import json
import sqlite3
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ...domain.models import (
    Address,
    DeletionFeedback,
    NewOrder,
    Order,
    OrderItem,
    PaymentRecord,
    SubscriptionDescriptor,
    User,
)
from ...domain.models.order import TERMINAL_ORDER_STATUSES
from ...domain.ports.persistence import PersistenceGateway


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLitePersistence(PersistenceGateway):
    """SQLite-backed implementation of the persistence gateway.

    Users are the unit of ownership. Payment records and orders live in their
    own tables keyed by ``(user_id, payment_intent_id)``, ``(user_id,
    invoice_id)`` and ``(user_id, order_ref)`` so that duplicate suppression
    and terminal-state protection are enforced by single statements rather
    than by a read followed by a write.
    """

    def __init__(self, path: Path) -> None:
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        self._conn.execute("PRAGMA foreign_keys = ON")
        terminal = ", ".join(f"'{status}'" for status in sorted(TERMINAL_ORDER_STATUSES))
        with self._conn:
            self._conn.executescript(
                f"""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    customer_id TEXT,
                    default_payment_method_id TEXT,
                    subscription_id TEXT,
                    subscription_status TEXT,
                    subscription_price_id TEXT,
                    subscription_period_end TEXT,
                    cancel_at_period_end INTEGER NOT NULL DEFAULT 0,
                    subscription_billing TEXT NOT NULL DEFAULT '{{}}',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_users_customer_id
                    ON users(customer_id);

                CREATE TABLE IF NOT EXISTS payment_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    payment_intent_id TEXT,
                    invoice_id TEXT,
                    amount INTEGER NOT NULL,
                    currency TEXT NOT NULL,
                    status TEXT NOT NULL
                        CHECK (status IN ('succeeded', 'processing', 'failed', 'canceled')),
                    error_message TEXT,
                    payment_method_id TEXT,
                    payment_method_last4 TEXT,
                    order_ref TEXT,
                    subscription_id TEXT,
                    created_at TEXT NOT NULL,
                    CHECK (payment_intent_id IS NOT NULL OR invoice_id IS NOT NULL),
                    UNIQUE(user_id, payment_intent_id),
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );

                CREATE UNIQUE INDEX IF NOT EXISTS idx_payment_records_invoice
                    ON payment_records(user_id, invoice_id)
                    WHERE invoice_id IS NOT NULL;

                CREATE TABLE IF NOT EXISTS orders (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    order_ref TEXT NOT NULL,
                    payment_intent_id TEXT NOT NULL,
                    customer_id TEXT,
                    total_amount INTEGER NOT NULL,
                    currency TEXT NOT NULL,
                    items TEXT NOT NULL,
                    shipping_address TEXT,
                    billing_address TEXT,
                    status TEXT NOT NULL,
                    payment_status TEXT NOT NULL,
                    payment_method_id TEXT,
                    payment_method_last4 TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(user_id, order_ref),
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_orders_user_created
                    ON orders(user_id, created_at DESC);

                CREATE TABLE IF NOT EXISTS deletion_feedback (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    reason TEXT NOT NULL,
                    had_subscription INTEGER NOT NULL DEFAULT 0,
                    email TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                """
            )
        self._terminal_clause = f"status NOT IN ({terminal})"

    def close(self) -> None:
        self._conn.close()

    # UserRepository API -----------------------------------------------------
    def create_user(
        self,
        email: str,
        customer_id: Optional[str],
        default_payment_method_id: Optional[str] = None,
    ) -> User:
        now = _now().isoformat()
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO users (email, customer_id, default_payment_method_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (email.lower(), customer_id, default_payment_method_id, now, now),
            )
            user_id = cur.lastrowid
        user = self.get_user_by_id(user_id)
        if user is None:
            raise RuntimeError("Failed to fetch newly created user")
        return user

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = cur.fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_customer_id(self, customer_id: str) -> Optional[User]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM users WHERE customer_id = ? ORDER BY id LIMIT 1",
                (customer_id,),
            )
            row = cur.fetchone()
        return self._row_to_user(row) if row else None

    def delete_user(self, user_id: int) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM users WHERE id = ?", (user_id,))

    # SubscriptionRepository API ---------------------------------------------
    def set_subscription(
        self,
        user_id: int,
        *,
        subscription_id: str,
        status: Optional[str],
        current_period_end: Optional[datetime],
        price_id: Optional[str] = None,
        cancel_at_period_end: Optional[bool] = None,
        billing: Optional[Dict[str, Any]] = None,
    ) -> None:
        fields: Dict[str, Any] = {
            "subscription_id": subscription_id,
            "subscription_status": status,
            "subscription_period_end": _iso(current_period_end),
        }
        if price_id is not None:
            fields["subscription_price_id"] = price_id
        if cancel_at_period_end is not None:
            fields["cancel_at_period_end"] = int(cancel_at_period_end)
        if billing is not None:
            fields["subscription_billing"] = json.dumps(billing, default=str)
        self._update_user_fields(user_id, fields)

    def update_subscription_if_current(
        self,
        user_id: int,
        subscription_id: str,
        *,
        status: Optional[str] = None,
        current_period_end: Optional[datetime] = None,
        cancel_at_period_end: Optional[bool] = None,
        price_id: Optional[str] = None,
        billing: Optional[Dict[str, Any]] = None,
        allow_unset: bool = False,
        require_status: Optional[str] = None,
        exclude_status: Optional[str] = None,
    ) -> bool:
        fields: Dict[str, Any] = {"subscription_id": subscription_id}
        if status is not None:
            fields["subscription_status"] = status
        if current_period_end is not None:
            fields["subscription_period_end"] = _iso(current_period_end)
        if cancel_at_period_end is not None:
            fields["cancel_at_period_end"] = int(cancel_at_period_end)
        if price_id is not None:
            fields["subscription_price_id"] = price_id
        if billing is not None:
            fields["subscription_billing"] = json.dumps(billing, default=str)
        conditions = ["(subscription_id = ? OR subscription_id IS NULL)" if allow_unset else "subscription_id = ?"]
        params: List[Any] = [subscription_id]
        if require_status is not None:
            conditions.append("subscription_status = ?")
            params.append(require_status)
        if exclude_status is not None:
            conditions.append("(subscription_status IS NULL OR subscription_status != ?)")
            params.append(exclude_status)
        return self._update_user_fields(user_id, fields, " AND ".join(conditions), tuple(params))

    # Default card -----------------------------------------------------------
    def set_default_payment_method(self, user_id: int, payment_method_id: Optional[str]) -> None:
        self._update_user_fields(user_id, {"default_payment_method_id": payment_method_id})

    def replace_default_payment_method(
        self,
        user_id: int,
        current_id: str,
        replacement_id: Optional[str],
    ) -> bool:
        """Swap the default card only while ``current_id`` is still the default."""
        return self._update_user_fields(
            user_id,
            {"default_payment_method_id": replacement_id},
            "default_payment_method_id = ?",
            (current_id,),
        )

    def _update_user_fields(
        self,
        user_id: int,
        fields: Dict[str, Any],
        condition: Optional[str] = None,
        condition_params: tuple = (),
    ) -> bool:
        fields = dict(fields, updated_at=_now().isoformat())
        assignments = ", ".join(f"{column} = ?" for column in fields)
        sql = f"UPDATE users SET {assignments} WHERE id = ?"
        params = [*fields.values(), user_id]
        if condition:
            sql += f" AND {condition}"
            params.extend(condition_params)
        with self._lock, self._conn:
            cur = self._conn.execute(sql, params)
        return cur.rowcount > 0

    # LedgerRepository API ---------------------------------------------------
    def append_payment(
        self,
        user_id: int,
        *,
        payment_intent_id: Optional[str],
        amount: int,
        currency: str,
        status: str,
        invoice_id: Optional[str] = None,
        error_message: Optional[str] = None,
        payment_method_id: Optional[str] = None,
        payment_method_last4: Optional[str] = None,
        order_ref: Optional[str] = None,
        subscription_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> bool:
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO payment_records (
                    user_id, payment_intent_id, invoice_id, amount, currency, status,
                    error_message, payment_method_id, payment_method_last4, order_ref,
                    subscription_id, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT DO NOTHING
                """,
                (
                    user_id,
                    payment_intent_id,
                    invoice_id,
                    amount,
                    currency,
                    status,
                    error_message,
                    payment_method_id,
                    payment_method_last4,
                    order_ref,
                    subscription_id,
                    (created_at or _now()).isoformat(),
                ),
            )
        return cur.rowcount > 0

    def has_payment_intent(self, user_id: int, payment_intent_id: str) -> bool:
        with self._lock:
            cur = self._conn.execute(
                "SELECT 1 FROM payment_records WHERE user_id = ? AND payment_intent_id = ?",
                (user_id, payment_intent_id),
            )
            row = cur.fetchone()
        return row is not None

    def has_invoice(self, user_id: int, invoice_id: str) -> bool:
        with self._lock:
            cur = self._conn.execute(
                "SELECT 1 FROM payment_records WHERE user_id = ? AND invoice_id = ?",
                (user_id, invoice_id),
            )
            row = cur.fetchone()
        return row is not None

    def get_payment_history(self, user_id: int) -> List[PaymentRecord]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM payment_records WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (user_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_payment(row) for row in rows]

    def get_payment(self, user_id: int, record_id: int) -> Optional[PaymentRecord]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM payment_records WHERE user_id = ? AND id = ?",
                (user_id, record_id),
            )
            row = cur.fetchone()
        return self._row_to_payment(row) if row else None

    def get_payment_by_intent(self, user_id: int, payment_intent_id: str) -> Optional[PaymentRecord]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM payment_records WHERE user_id = ? AND payment_intent_id = ?",
                (user_id, payment_intent_id),
            )
            row = cur.fetchone()
        return self._row_to_payment(row) if row else None

    # OrderRepository API ----------------------------------------------------
    def insert_order(self, user_id: int, order: NewOrder, status: str, payment_status: str) -> bool:
        now = _now().isoformat()
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO orders (
                    user_id, order_ref, payment_intent_id, customer_id, total_amount,
                    currency, items, shipping_address, billing_address, status,
                    payment_status, payment_method_id, payment_method_last4,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, order_ref) DO NOTHING
                """,
                (
                    user_id,
                    order.order_ref,
                    order.payment_intent_id,
                    order.customer_id,
                    order.total_amount,
                    order.currency,
                    json.dumps([asdict(item) for item in order.items]),
                    json.dumps(asdict(order.shipping_address)) if order.shipping_address else None,
                    json.dumps(asdict(order.billing_address)) if order.billing_address else None,
                    status,
                    payment_status,
                    order.payment_method_id,
                    order.payment_method_last4,
                    now,
                    now,
                ),
            )
        return cur.rowcount > 0

    def get_order(self, user_id: int, order_ref: str) -> Optional[Order]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM orders WHERE user_id = ? AND order_ref = ?",
                (user_id, order_ref),
            )
            row = cur.fetchone()
        return self._row_to_order(row) if row else None

    def list_orders(self, user_id: int) -> List[Order]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM orders WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (user_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_order(row) for row in rows]

    def transition_order(
        self,
        user_id: int,
        order_ref: str,
        status: str,
        payment_status: str,
        updated_at: datetime,
    ) -> bool:
        # Terminal rows never match, so a finished order cannot be rewritten.
        with self._lock, self._conn:
            cur = self._conn.execute(
                f"""
                UPDATE orders
                SET status = ?, payment_status = ?, updated_at = ?
                WHERE user_id = ? AND order_ref = ? AND {self._terminal_clause}
                """,
                (status, payment_status, updated_at.isoformat(), user_id, order_ref),
            )
        return cur.rowcount > 0

    # FeedbackRepository API -------------------------------------------------
    def record_deletion_feedback(self, reason: str, had_subscription: bool, email: str) -> DeletionFeedback:
        created_at = _now()
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO deletion_feedback (reason, had_subscription, email, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (reason, int(had_subscription), email, created_at.isoformat()),
            )
        return DeletionFeedback(
            id=cur.lastrowid,
            reason=reason,
            had_subscription=had_subscription,
            email=email,
            created_at=created_at,
        )

    # Helpers ----------------------------------------------------------------
    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        subscription = SubscriptionDescriptor(
            id=row["subscription_id"],
            status=row["subscription_status"],
            price_id=row["subscription_price_id"],
            current_period_end=_parse(row["subscription_period_end"]),
            cancel_at_period_end=bool(row["cancel_at_period_end"]),
            billing=json.loads(row["subscription_billing"] or "{}"),
        )
        return User(
            id=row["id"],
            email=row["email"],
            customer_id=row["customer_id"],
            default_payment_method_id=row["default_payment_method_id"],
            subscription=subscription,
            created_at=_parse(row["created_at"]),
            updated_at=_parse(row["updated_at"]),
        )

    @staticmethod
    def _row_to_payment(row: sqlite3.Row) -> PaymentRecord:
        return PaymentRecord(
            id=row["id"],
            user_id=row["user_id"],
            payment_intent_id=row["payment_intent_id"],
            amount=row["amount"],
            currency=row["currency"],
            status=row["status"],
            invoice_id=row["invoice_id"],
            error_message=row["error_message"],
            payment_method_id=row["payment_method_id"],
            payment_method_last4=row["payment_method_last4"],
            order_ref=row["order_ref"],
            subscription_id=row["subscription_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_order(row: sqlite3.Row) -> Order:
        shipping = json.loads(row["shipping_address"]) if row["shipping_address"] else None
        billing = json.loads(row["billing_address"]) if row["billing_address"] else None
        return Order(
            id=row["id"],
            user_id=row["user_id"],
            order_ref=row["order_ref"],
            payment_intent_id=row["payment_intent_id"],
            customer_id=row["customer_id"],
            total_amount=row["total_amount"],
            currency=row["currency"],
            items=[OrderItem(**item) for item in json.loads(row["items"])],
            status=row["status"],
            payment_status=row["payment_status"],
            shipping_address=Address(**shipping) if shipping else None,
            billing_address=Address(**billing) if billing else None,
            payment_method_id=row["payment_method_id"],
            payment_method_last4=row["payment_method_last4"],
            created_at=_parse(row["created_at"]),
            updated_at=_parse(row["updated_at"]),
        )
