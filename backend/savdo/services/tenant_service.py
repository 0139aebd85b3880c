# Overview: Tenant scoping helpers; every ledger read and write goes through them.

"""
Multi-tenant isolation (authoritative)

- Every entity lookup filters on tenant_id. A row of another tenant is
  indistinguishable from a missing row: both raise UnknownEntity.
- Dealer and customer actors are further confined to their own records, with
  the same "not found" answer so guessing ids reveals nothing.
- Back-office writes (purchase receiving, POS sales, dealer loads) are
  staff-only: see ensure_staff.
- Bulk lookups return rows ordered by id; mutating callers lock them in that
  order so concurrent operations acquire row locks consistently.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..context import ACTOR_EMPLOYEE, ACTOR_SYSTEM, Actor
from ..errors import UnknownEntity
from ..extensions import db
from ..models import Tenant
from .concurrency import lock_for_update


logger = logging.getLogger(__name__)


def require_tenant(tenant_id: int) -> Tenant:
    """Return the active tenant or raise UnknownEntity."""
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant or not tenant.is_active:
        raise UnknownEntity("Tenant not found", details={"tenant_id": tenant_id})
    return tenant


def get_scoped(model, tenant_id: int, entity_id: int, *, label: str, lock: bool = False):
    """
    Load one tenant-owned row by id.

    Raises UnknownEntity when the row is missing or belongs to another tenant.
    """
    query = db.session.query(model).filter(model.id == entity_id, model.tenant_id == tenant_id)
    if lock:
        query = lock_for_update(query)
    entity = query.first()
    if entity is None:
        raise UnknownEntity(f"{label} not found", details={f"{label.lower()}_id": entity_id})
    return entity


def get_scoped_many(model, tenant_id: int, entity_ids: Iterable[int], *, label: str, lock: bool = False) -> dict:
    """
    Load several tenant-owned rows, keyed by id (ascending).

    Raises UnknownEntity listing every id that is missing in this tenant.
    """
    wanted = sorted(set(entity_ids))
    if not wanted:
        return {}
    query = (
        db.session.query(model)
        .filter(model.id.in_(wanted), model.tenant_id == tenant_id)
        .order_by(model.id.asc())
    )
    if lock:
        query = lock_for_update(query)
    rows = {row.id: row for row in query.all()}

    missing = [entity_id for entity_id in wanted if entity_id not in rows]
    if missing:
        raise UnknownEntity(
            f"{label} not found",
            details={f"missing_{label.lower()}_ids": missing},
        )
    return rows


def ensure_actor_is(actor: Actor, kind: str, entity_id: int, *, label: str) -> None:
    """
    Confine a dealer/customer actor to its own record.

    Employees and the system actor pass; a dealer acting on another dealer (or
    a customer on another customer) gets UnknownEntity.
    """
    if actor.kind == kind and actor.id != entity_id:
        logger.warning(
            "Actor %s denied access to %s %s", actor.label(), label.lower(), entity_id,
        )
        raise UnknownEntity(f"{label} not found", details={f"{label.lower()}_id": entity_id})


def ensure_staff(actor: Actor, *, label: str, entity_id: int | None = None) -> None:
    """
    Reserve an operation for employees and the system actor.

    Dealer and customer actors get the same UnknownEntity answer as for a
    foreign record.
    """
    if actor.kind in (ACTOR_EMPLOYEE, ACTOR_SYSTEM):
        return
    logger.warning("Actor %s denied staff operation on %s", actor.label(), label.lower())
    details = {f"{label.lower()}_id": entity_id} if entity_id is not None else {}
    raise UnknownEntity(f"{label} not found", details=details)
