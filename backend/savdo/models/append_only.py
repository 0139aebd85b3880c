"""
Insert-only enforcement for ledger tables.

Rows of the registered models can be inserted but never updated or deleted
through the ORM session; a flush that tries raises AppendOnlyViolation.
"""

from __future__ import annotations

from sqlalchemy import event


class AppendOnlyViolation(RuntimeError):
    pass


def _reject_update(mapper, connection, target):
    raise AppendOnlyViolation(f"{type(target).__name__} rows are append-only (update rejected)")


def _reject_delete(mapper, connection, target):
    raise AppendOnlyViolation(f"{type(target).__name__} rows are append-only (delete rejected)")


def append_only(model):
    """Class decorator registering the update/delete guards."""
    event.listen(model, "before_update", _reject_update)
    event.listen(model, "before_delete", _reject_delete)
    return model
