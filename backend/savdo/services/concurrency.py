# Overview: Transaction discipline shared by every ledger operation.

"""
Ledger transaction rules (authoritative)

- One domain operation == one DB transaction. It commits once or rolls back
  entirely; a partial commit is a bug.
- SQLite: BEGIN IMMEDIATE takes the database write lock before the first read,
  so check-then-mutate sequences are serialized.
- PostgreSQL: SELECT ... FOR UPDATE on the rows an operation mutates, with
  SET LOCAL lock_timeout bounding the wait.
- Lock contention (busy/locked, deadlock, lock timeout, stale version) is
  retried from a clean rollback, re-running every check. Anything else, or
  contention that outlasts the retries, surfaces as StoreUnavailable.
- Domain errors (LedgerError) roll back and propagate unchanged; they are
  never retried.
- after_commit hooks run only once the commit succeeded, outside the
  transaction, so slow external calls never hold locks.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LedgerError, StoreUnavailable
from ..extensions import db


logger = logging.getLogger(__name__)

_LOCK_CONFLICT_MARKERS = (
    "database is locked",
    "database table is locked",
    "deadlock detected",
    "lock timeout",
    "canceling statement due to lock timeout",
    "could not obtain lock",
    "could not serialize access",
)


def lock_for_update(query):
    """
    Apply row-level locking for ledger mutations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; BEGIN IMMEDIATE covers it there.
    """
    return query.with_for_update()


class LedgerTransaction:
    """Handle passed to an operation body; collects post-commit hooks."""

    def __init__(self, name: str):
        self.name = name
        self._after_commit: list[tuple[Callable, tuple, dict]] = []

    def after_commit(self, func: Callable, *args, **kwargs) -> None:
        self._after_commit.append((func, args, kwargs))

    def _run_after_commit(self) -> None:
        for func, args, kwargs in self._after_commit:
            func(*args, **kwargs)


def _is_lock_conflict(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, OperationalError):
        if exc.connection_invalidated:
            return False
        message = str(exc.orig).lower()
        return any(marker in message for marker in _LOCK_CONFLICT_MARKERS)
    return False


def _begin_ledger_transaction() -> None:
    conn = db.session.connection()
    dialect = conn.dialect.name
    if dialect == "sqlite":
        if not conn.connection.dbapi_connection.in_transaction:
            conn.exec_driver_sql("BEGIN IMMEDIATE")
    elif dialect == "postgresql":
        timeout_ms = int(current_app.config.get("LEDGER_LOCK_TIMEOUT_MS", 5000))
        conn.exec_driver_sql(f"SET LOCAL lock_timeout = '{timeout_ms}ms'")


def run_in_ledger_transaction(func: Callable[[LedgerTransaction], Any], *, name: str) -> Any:
    """
    Execute func(tx) as one atomic ledger transaction and commit it.

    Returns whatever func returns. Raises the LedgerError func raised, or
    StoreUnavailable on infrastructure failure; in both cases nothing was
    written.
    """
    attempts = max(1, int(current_app.config.get("LEDGER_LOCK_RETRIES", 3)))
    backoff_base = float(current_app.config.get("LEDGER_RETRY_BACKOFF", 0.1))

    for attempt in range(attempts):
        tx = LedgerTransaction(name)
        try:
            _begin_ledger_transaction()
            result = func(tx)
            db.session.commit()
        except LedgerError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            if _is_lock_conflict(exc) and attempt < attempts - 1:
                logger.warning(
                    "Ledger transaction %s hit lock contention (attempt %d/%d); retrying",
                    name, attempt + 1, attempts,
                )
                time.sleep(backoff_base * (2 ** attempt))
                continue
            logger.error("Ledger transaction %s rolled back: %s", name, exc)
            raise StoreUnavailable(f"{name} could not be applied; no changes were made") from exc
        except Exception:
            db.session.rollback()
            raise

        logger.info("Ledger transaction %s committed", name)
        tx._run_after_commit()
        return result
