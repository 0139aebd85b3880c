# Overview: Post-commit dispatch of ledger events to registered notifiers.

"""
Notification Dispatch

WHY: Committed ledger operations (orders, loads, payments, status changes)
are announced to external channels (bot messages, SMS, push). Delivery
itself belongs to those channels; this module only fans events out.

RULES:
- dispatch() is scheduled with tx.after_commit(...), so it never runs inside
  a ledger transaction and never for a rolled-back operation.
- A failing notifier is logged and skipped; the ledger write it describes has
  already committed and stays committed.
"""

from __future__ import annotations

import logging
from typing import Callable

from flask import current_app

from ..extensions import NOTIFIERS_KEY


logger = logging.getLogger(__name__)

Notifier = Callable[[str, int, dict], None]


def register_notifier(app, notifier: Notifier) -> None:
    """Attach a notifier(event_type, tenant_id, payload) to the app."""
    app.extensions.setdefault(NOTIFIERS_KEY, []).append(notifier)


def get_notifiers() -> list[Notifier]:
    return list(current_app.extensions.get(NOTIFIERS_KEY, []))


def dispatch(event_type: str, tenant_id: int, payload: dict) -> int:
    """
    Deliver one committed event to every notifier.

    Returns the number of notifiers that accepted it.
    """
    delivered = 0
    for notifier in get_notifiers():
        try:
            notifier(event_type, tenant_id, payload)
            delivered += 1
        except Exception:
            logger.exception(
                "Notifier %s failed for %s (tenant %s)",
                getattr(notifier, "__name__", repr(notifier)), event_type, tenant_id,
            )
    return delivered
