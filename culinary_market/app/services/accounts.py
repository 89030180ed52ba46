from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Optional

import psycopg2
import psycopg2.errors
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection

from ...app_context import get_conn
from ..entitlements.models import AccountRole, PlanKey, SubscriptionStatus
from ..schemas.accounts import AccountOut, OrganizationSummary


class DuplicateAccountError(ValueError):
    """An account already exists for the email address."""


@contextmanager
def _managed_connection(conn: Optional[PgConnection] = None):
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


_ACCOUNT_SELECT = """
    SELECT
        a.id,
        a.email,
        a.first_name,
        a.last_name,
        a.role,
        a.organization_id,
        a.email_verified,
        a.subscription_plan,
        a.subscription_status,
        a.subscription_start,
        a.subscription_end,
        a.trial_used,
        a.created_at,
        o.name AS organization_name,
        o.sector AS organization_sector
    FROM accounts a
    LEFT JOIN organizations o ON o.id = a.organization_id
"""


def _build_account(row: Dict[str, Any]) -> AccountOut:
    organization = None
    if row.get("organization_id") is not None and row.get("organization_name"):
        organization = OrganizationSummary(
            id=row["organization_id"],
            name=row["organization_name"],
            sector=row.get("organization_sector"),
        )
    return AccountOut(
        id=row["id"],
        email=row["email"],
        first_name=row.get("first_name"),
        last_name=row.get("last_name"),
        role=AccountRole(row["role"]),
        organization_id=row.get("organization_id"),
        organization=organization,
        email_verified=bool(row.get("email_verified")),
        subscription_plan=PlanKey(row["subscription_plan"]),
        subscription_status=SubscriptionStatus(row["subscription_status"]),
        subscription_start=row.get("subscription_start"),
        subscription_end=row.get("subscription_end"),
        trial_used=bool(row.get("trial_used")),
        created_at=row.get("created_at"),
    )


def get_account_by_id(account_id: int, *, conn: Optional[PgConnection] = None) -> Optional[AccountOut]:
    with _managed_connection(conn) as (connection, _):
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            cursor.execute(_ACCOUNT_SELECT + " WHERE a.id = %s", (account_id,))
            row = cursor.fetchone()
    return _build_account(row) if row else None


def get_account_credentials(email: str, *, conn: Optional[PgConnection] = None) -> Optional[Dict[str, Any]]:
    """Return ``id`` and ``password_hash`` for the account owning ``email``."""

    with _managed_connection(conn) as (connection, _):
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            cursor.execute(
                "SELECT id, password_hash FROM accounts WHERE LOWER(email) = LOWER(%s) LIMIT 1",
                (email.strip(),),
            )
            row = cursor.fetchone()
    return dict(row) if row else None


def create_account(
    *,
    email: str,
    password_hash: str,
    role: AccountRole,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    conn: Optional[PgConnection] = None,
) -> AccountOut:
    """Insert an account on the free plan."""

    normalized_email = email.strip().lower()
    with _managed_connection(conn) as (connection, _):
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            cursor.execute(
                "SELECT 1 FROM accounts WHERE LOWER(email) = LOWER(%s) LIMIT 1",
                (normalized_email,),
            )
            if cursor.fetchone():
                raise DuplicateAccountError("An account with this email already exists")

            try:
                cursor.execute(
                    """
                    INSERT INTO accounts (
                        email,
                        password_hash,
                        first_name,
                        last_name,
                        role,
                        email_verified,
                        subscription_plan,
                        subscription_status,
                        trial_used
                    )
                    VALUES (%s, %s, %s, %s, %s, FALSE, %s, %s, FALSE)
                    RETURNING id
                    """,
                    (
                        normalized_email,
                        password_hash,
                        (first_name or "").strip() or None,
                        (last_name or "").strip() or None,
                        AccountRole(role).value,
                        PlanKey.FREE.value,
                        SubscriptionStatus.ACTIVE.value,
                    ),
                )
            except psycopg2.errors.UniqueViolation as exc:
                raise DuplicateAccountError("An account with this email already exists") from exc
            account_id = cursor.fetchone()["id"]
            cursor.execute(_ACCOUNT_SELECT + " WHERE a.id = %s", (account_id,))
            row = cursor.fetchone()

    if row is None:
        raise RuntimeError("Unable to load created account")
    return _build_account(row)


__all__ = [
    "DuplicateAccountError",
    "create_account",
    "get_account_by_id",
    "get_account_credentials",
]
