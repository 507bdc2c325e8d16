"""Persistence for the billing fields stored on account records."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Optional, Protocol

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .models import Account

try:  # pragma: no cover - resolve connection helper when imported from FastAPI app
    from paygate.app_context import get_conn
except ModuleNotFoundError as exc:  # pragma: no cover
    if exc.name != "paygate":
        raise
    from ...app_context import get_conn  # type: ignore[no-redef]


class AccountRepository(Protocol):
    """Load/save capability for account records."""

    def get_account(self, account_id: str) -> Optional[Account]:
        ...

    def save_customer_id(self, account_id: str, customer_id: Optional[str]) -> Account:
        """Update only the provider customer id, leaving other fields untouched."""


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


def _row_to_account(row: dict) -> Account:
    return Account(
        id=str(row["id"]),
        email=row.get("email"),
        provider_customer_id=row.get("stripe_customer_id"),
    )


class PostgresAccountRepository:
    """Reads and updates the ``accounts`` table in PostgreSQL."""

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

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT id, email, stripe_customer_id FROM accounts WHERE id = %s",
                (account_id,),
            )
            row = cursor.fetchone()
        return _row_to_account(row) if row else None

    def save_customer_id(self, account_id: str, customer_id: Optional[str]) -> Account:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE accounts
                   SET stripe_customer_id = %s,
                       updated_at = NOW()
                 WHERE id = %s
                RETURNING id, email, stripe_customer_id
                """,
                (customer_id, account_id),
            )
            row = cursor.fetchone()
        if row is None:
            raise LookupError(f"Account {account_id} not found")
        return _row_to_account(row)


__all__ = ["AccountRepository", "PostgresAccountRepository", "managed_connection"]
