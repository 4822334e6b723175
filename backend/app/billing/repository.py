"""Persistence layer for billing domain objects."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Optional, Tuple

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from .exceptions import InvalidState
from .models import PlanInterval, Purchase, Subscription, User


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS billing_subscriptions (
        id TEXT PRIMARY KEY,
        provider_subscription_id TEXT NOT NULL UNIQUE,
        status TEXT NOT NULL,
        plan_interval TEXT NOT NULL,
        current_period_start TIMESTAMPTZ NOT NULL,
        current_period_end TIMESTAMPTZ NOT NULL,
        cancel_at_period_end BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS billing_users (
        id TEXT PRIMARY KEY,
        external_id TEXT NOT NULL UNIQUE,
        customer_id TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL DEFAULT '',
        email TEXT NOT NULL,
        current_subscription_id TEXT REFERENCES billing_subscriptions (id),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS billing_users_current_subscription_idx
        ON billing_users (current_subscription_id)
        WHERE current_subscription_id IS NOT NULL
    """,
    """
    CREATE TABLE IF NOT EXISTS billing_purchases (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES billing_users (id),
        content_item_id TEXT NOT NULL,
        amount INTEGER NOT NULL CHECK (amount >= 0),
        checkout_id TEXT NOT NULL UNIQUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS billing_purchases_user_item_idx
        ON billing_purchases (user_id, content_item_id)
    """,
)


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def create_schema(conn: Optional[PgConnection] = None) -> None:
    """Create billing tables and indexes. Safe to call repeatedly."""

    with managed_connection(conn) as (connection, managed):
        with connection.cursor() as cursor:
            for statement in SCHEMA_STATEMENTS:
                cursor.execute(statement)
        if not managed:
            connection.commit()


def _row_to_user(row: dict) -> User:
    return User(
        id=row["id"],
        external_id=row["external_id"],
        customer_id=row["customer_id"],
        name=row.get("name") or "",
        email=row["email"],
        current_subscription_id=row.get("current_subscription_id"),
        created_at=row["created_at"],
    )


def _row_to_subscription(row: dict) -> Subscription:
    return Subscription(
        id=row["id"],
        provider_subscription_id=row["provider_subscription_id"],
        status=row["status"],
        plan_interval=PlanInterval(row["plan_interval"]),
        current_period_start=row["current_period_start"],
        current_period_end=row["current_period_end"],
        cancel_at_period_end=bool(row["cancel_at_period_end"]),
        updated_at=row["updated_at"],
    )


def _row_to_purchase(row: dict) -> Purchase:
    return Purchase(
        id=row["id"],
        user_id=row["user_id"],
        content_item_id=row["content_item_id"],
        amount=int(row["amount"]),
        checkout_id=row["checkout_id"],
        created_at=row["created_at"],
    )


class PostgresBillingRepository:
    """Concrete repository persisting billing models in PostgreSQL."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()

    def _fetch_user(self, column: str, value: str) -> Optional[User]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT * FROM billing_users WHERE {column} = %s LIMIT 1",
                (value,),
            )
            row = cursor.fetchone()
            return _row_to_user(row) if row else None

    def create_user(self, user: User) -> User:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO billing_users (id, external_id, customer_id, name, email)
                VALUES (%(id)s, %(external_id)s, %(customer_id)s, %(name)s, %(email)s)
                ON CONFLICT (external_id) DO NOTHING
                RETURNING *
                """,
                {
                    "id": user.id,
                    "external_id": user.external_id,
                    "customer_id": user.customer_id,
                    "name": user.name,
                    "email": user.email,
                },
            )
            row = cursor.fetchone()
            if not row:
                cursor.execute(
                    "SELECT * FROM billing_users WHERE external_id = %s",
                    (user.external_id,),
                )
                row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist user")
            return _row_to_user(row)

    def get_user(self, user_id: str) -> Optional[User]:
        return self._fetch_user("id", user_id)

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        return self._fetch_user("external_id", external_id)

    def get_user_by_customer_id(self, customer_id: str) -> Optional[User]:
        return self._fetch_user("customer_id", customer_id)

    def get_user_by_subscription_id(self, subscription_id: str) -> Optional[User]:
        return self._fetch_user("current_subscription_id", subscription_id)

    def set_current_subscription(self, user_id: str, subscription_id: Optional[str]) -> Optional[User]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE billing_users
                SET current_subscription_id = %s
                WHERE id = %s
                RETURNING *
                """,
                (subscription_id, user_id),
            )
            row = cursor.fetchone()
            return _row_to_user(row) if row else None

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM billing_subscriptions
                WHERE id = %s
                LIMIT 1
                """,
                (subscription_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def get_subscription_by_provider_id(self, provider_subscription_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM billing_subscriptions
                WHERE provider_subscription_id = %s
                LIMIT 1
                """,
                (provider_subscription_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def upsert_subscription(self, subscription: Subscription) -> Subscription:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO billing_subscriptions (
                    id,
                    provider_subscription_id,
                    status,
                    plan_interval,
                    current_period_start,
                    current_period_end,
                    cancel_at_period_end
                )
                VALUES (%(id)s, %(provider_subscription_id)s, %(status)s, %(plan_interval)s,
                        %(current_period_start)s, %(current_period_end)s,
                        %(cancel_at_period_end)s)
                ON CONFLICT (provider_subscription_id) DO UPDATE SET
                    status = EXCLUDED.status,
                    plan_interval = EXCLUDED.plan_interval,
                    current_period_start = EXCLUDED.current_period_start,
                    current_period_end = EXCLUDED.current_period_end,
                    cancel_at_period_end = EXCLUDED.cancel_at_period_end,
                    updated_at = NOW()
                RETURNING *
                """,
                {
                    "id": subscription.id,
                    "provider_subscription_id": subscription.provider_subscription_id,
                    "status": subscription.status,
                    "plan_interval": subscription.plan_interval.value,
                    "current_period_start": subscription.current_period_start,
                    "current_period_end": subscription.current_period_end,
                    "cancel_at_period_end": subscription.cancel_at_period_end,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist subscription")
            return _row_to_subscription(row)

    def unlink_and_delete_subscription(self, user_id: str, subscription_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT id FROM billing_subscriptions WHERE id = %s FOR UPDATE",
                (subscription_id,),
            )
            if cursor.fetchone() is None:
                return False
            cursor.execute(
                """
                UPDATE billing_users
                SET current_subscription_id = NULL
                WHERE id = %s AND current_subscription_id = %s
                """,
                (user_id, subscription_id),
            )
            if cursor.rowcount == 0:
                raise InvalidState(
                    "Subscription owner changed before deletion",
                    detail={"user_id": user_id, "subscription_id": subscription_id},
                )
            cursor.execute(
                "DELETE FROM billing_subscriptions WHERE id = %s",
                (subscription_id,),
            )
            return cursor.rowcount > 0

    def record_purchase(self, purchase: Purchase) -> Tuple[Purchase, bool]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO billing_purchases (
                    id,
                    user_id,
                    content_item_id,
                    amount,
                    checkout_id
                )
                VALUES (%(id)s, %(user_id)s, %(content_item_id)s, %(amount)s, %(checkout_id)s)
                ON CONFLICT (checkout_id) DO NOTHING
                RETURNING *
                """,
                {
                    "id": purchase.id,
                    "user_id": purchase.user_id,
                    "content_item_id": purchase.content_item_id,
                    "amount": purchase.amount,
                    "checkout_id": purchase.checkout_id,
                },
            )
            row = cursor.fetchone()
            if row:
                return _row_to_purchase(row), True

            cursor.execute(
                "SELECT * FROM billing_purchases WHERE checkout_id = %s",
                (purchase.checkout_id,),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist purchase")
            return _row_to_purchase(row), False

    def find_purchase(self, user_id: str, content_item_id: str) -> Optional[Purchase]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM billing_purchases
                WHERE user_id = %s AND content_item_id = %s
                ORDER BY created_at ASC
                LIMIT 1
                """,
                (user_id, content_item_id),
            )
            row = cursor.fetchone()
            return _row_to_purchase(row) if row else None


__all__ = ["PostgresBillingRepository", "create_schema", "managed_connection"]
