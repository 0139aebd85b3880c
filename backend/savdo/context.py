"""
Explicit caller identity for ledger operations.

The auth collaborator resolves who is calling and for which tenant; services
receive both as parameters and never read request/session state.
"""

from __future__ import annotations

from dataclasses import dataclass


ACTOR_EMPLOYEE = "employee"
ACTOR_DEALER = "dealer"
ACTOR_CUSTOMER = "customer"
ACTOR_SYSTEM = "system"

ACTOR_KINDS = (ACTOR_EMPLOYEE, ACTOR_DEALER, ACTOR_CUSTOMER, ACTOR_SYSTEM)


@dataclass(frozen=True)
class Actor:
    kind: str
    id: int | None = None

    def __post_init__(self):
        if self.kind not in ACTOR_KINDS:
            raise ValueError(f"actor kind must be one of {ACTOR_KINDS}")
        if self.kind != ACTOR_SYSTEM and not self.id:
            raise ValueError("actor id is required for non-system actors")

    @property
    def is_customer(self) -> bool:
        return self.kind == ACTOR_CUSTOMER

    def label(self) -> str:
        return self.kind if self.id is None else f"{self.kind}:{self.id}"

