"""Persistence layer for account subscription state."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from ..entitlements.models import AccountSubscription, PlanKey, SubscriptionStatus
from .models import BillingEvent, SubscriptionUpdate

_UPDATE_COLUMNS = {
    "plan": "subscription_plan",
    "status": "subscription_status",
    "period_start": "subscription_start",
    "period_end": "subscription_end",
}

_SUBSCRIPTION_COLUMNS = """
    id,
    subscription_plan,
    subscription_status,
    subscription_start,
    subscription_end,
    trial_used
"""


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


def row_to_subscription(row: dict) -> AccountSubscription:
    return AccountSubscription(
        account_id=row["id"],
        plan=PlanKey(row["subscription_plan"]),
        status=SubscriptionStatus(row["subscription_status"]),
        period_start=row.get("subscription_start"),
        period_end=row.get("subscription_end"),
        trial_used=bool(row.get("trial_used")),
    )


def _column_value(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    return value


class PostgresAccountSubscriptionRepository:
    """Reads and overwrites the subscription columns of ``accounts``."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()

    def get_subscription(self, account_id: int) -> Optional[AccountSubscription]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_SUBSCRIPTION_COLUMNS} FROM accounts WHERE id = %s",
                (account_id,),
            )
            row = cursor.fetchone()
        return row_to_subscription(row) if row else None

    def find_account_id_by_email(self, email: str) -> Optional[int]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT id FROM accounts WHERE LOWER(email) = LOWER(%s) LIMIT 1",
                (email.strip(),),
            )
            row = cursor.fetchone()
        return int(row["id"]) if row else None

    def apply_subscription_update(
        self,
        account_id: int,
        update: SubscriptionUpdate,
    ) -> Optional[AccountSubscription]:
        """Overwrite the provided fields in a single statement."""

        changes = update.changes()
        if not changes:
            return self.get_subscription(account_id)

        assignments = []
        params: List[object] = []
        for field_name, value in changes.items():
            assignments.append(f"{_UPDATE_COLUMNS[field_name]} = %s")
            params.append(_column_value(value))
        params.append(account_id)

        with self._cursor() as cursor:
            cursor.execute(
                f"""
                UPDATE accounts
                SET {", ".join(assignments)}, updated_at = NOW()
                WHERE id = %s
                RETURNING {_SUBSCRIPTION_COLUMNS}
                """,
                tuple(params),
            )
            row = cursor.fetchone()
        return row_to_subscription(row) if row else None

    def record_webhook_event(self, event: BillingEvent) -> bool:
        """Store the event id; returns ``False`` if it was already recorded."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO billing_webhook_events (event_id, event_type, received_at)
                VALUES (%s, %s, %s)
                ON CONFLICT (event_id) DO NOTHING
                RETURNING event_id
                """,
                (event.event_id, event.event_type, event.received_at),
            )
            row = cursor.fetchone()
        return row is not None

    def release_webhook_event(self, event_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM billing_webhook_events WHERE event_id = %s", (event_id,))

    def record_checkout_session(self, session_id: str, account_id: int) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO checkout_confirmations (session_id, account_id)
                VALUES (%s, %s)
                ON CONFLICT (session_id) DO NOTHING
                RETURNING session_id
                """,
                (session_id, account_id),
            )
            row = cursor.fetchone()
        return row is not None

    def release_checkout_session(self, session_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM checkout_confirmations WHERE session_id = %s", (session_id,))

    def expire_lapsed_subscriptions(self, now: datetime) -> List[int]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE accounts
                SET subscription_status = %s, updated_at = NOW()
                WHERE subscription_status IN (%s, %s)
                  AND subscription_end IS NOT NULL
                  AND subscription_end < %s
                RETURNING id
                """,
                (
                    SubscriptionStatus.EXPIRED.value,
                    SubscriptionStatus.ACTIVE.value,
                    SubscriptionStatus.TRIAL.value,
                    now,
                ),
            )
            rows = cursor.fetchall()
        return [int(row["id"]) for row in rows]


__all__ = ["PostgresAccountSubscriptionRepository", "managed_connection", "row_to_subscription"]
