# Overview: Append-only ledger event log shared by every ledger operation.

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from ..context import Actor
from ..extensions import db
from ..models import LedgerEvent

"""
Savdo Ledger Event Invariants (authoritative)

- Append-only audit spine: one event per committed ledger operation.
- No domain/business logic in the event log itself.
- Events are written inside the same DB transaction as the operation they
  record, so a rolled-back operation leaves no event behind.
- occurred_at defaults to DB time.
"""


def append_ledger_event(
    *,
    tenant_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor: Actor,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
    occurred_at: Optional[datetime] = None,
) -> LedgerEvent:
    """Append one ledger event (no commit)."""
    ev = LedgerEvent(
        tenant_id=tenant_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_type=actor.kind,
        actor_id=actor.id,
        note=note,
        payload=json.dumps(payload, default=str, sort_keys=True) if payload is not None else None,
        occurred_at=occurred_at,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_ledger_events(
    tenant_id: int,
    *,
    event_type: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    since: datetime | None = None,
    limit: int = 100,
) -> list[LedgerEvent]:
    q = db.session.query(LedgerEvent).filter(LedgerEvent.tenant_id == tenant_id)
    if event_type:
        q = q.filter(LedgerEvent.event_type == event_type)
    if entity_type:
        q = q.filter(LedgerEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(LedgerEvent.entity_id == entity_id)
    if since is not None:
        q = q.filter(LedgerEvent.occurred_at >= since)
    return q.order_by(LedgerEvent.id.desc()).limit(limit).all()
