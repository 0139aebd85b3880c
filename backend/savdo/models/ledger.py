from __future__ import annotations

from ..extensions import db
from savdo.time_utils import to_utc_z
from ._money import money_str
from .append_only import append_only


@append_only
class Payment(db.Model):
    """
    Money received against a debt.

    TYPES:
    - customer: tenant customer pays the tenant
    - dealer: dealer pays the tenant (also written for the paid part of a load)
    - dealer_customer: a dealer's sub-customer pays the dealer

    IMMUTABLE: never updated or deleted.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_tenant_type_created", "tenant_id", "type", "created_at"),
        db.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    dealer_id = db.Column(db.Integer, db.ForeignKey("dealers.id"), nullable=True, index=True)
    dealer_customer_id = db.Column(db.Integer, db.ForeignKey("dealer_customers.id"), nullable=True, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    method = db.Column(db.String(16), nullable=False, default="cash")
    # "payment" for direct debt payments, "dealer_load" for the paid part of a load
    source = db.Column(db.String(16), nullable=False, default="payment")
    reference = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.String(512), nullable=True)

    created_by_type = db.Column(db.String(16), nullable=False)
    created_by_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "type": self.type,
            "customer_id": self.customer_id,
            "dealer_id": self.dealer_id,
            "dealer_customer_id": self.dealer_customer_id,
            "amount": money_str(self.amount),
            "method": self.method,
            "source": self.source,
            "reference": self.reference,
            "notes": self.notes,
            "created_by": {"type": self.created_by_type, "id": self.created_by_id},
            "created_at": to_utc_z(self.created_at),
        }


@append_only
class DebtEntry(db.Model):
    """
    Journal of every debt balance change.

    amount is signed (+ accrual, - payment/reversal/credit) and balance_after is
    the debtor's balance once the entry applied, so for any debtor:
        first.balance_after - first.amount + SUM(amount) == current debt
    """
    __tablename__ = "debt_entries"
    __table_args__ = (
        db.Index("ix_debt_entries_debtor", "tenant_id", "debtor_type", "debtor_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    debtor_type = db.Column(db.String(16), nullable=False)  # customer, dealer, dealer_customer
    debtor_id = db.Column(db.Integer, nullable=False)

    kind = db.Column(db.String(24), nullable=False)  # accrual, payment, cancel_reversal, return_credit
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    balance_after = db.Column(db.Numeric(12, 2), nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)
    reference = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "debtor_type": self.debtor_type,
            "debtor_id": self.debtor_id,
            "kind": self.kind,
            "amount": money_str(self.amount),
            "balance_after": money_str(self.balance_after),
            "sale_id": self.sale_id,
            "payment_id": self.payment_id,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
        }


@append_only
class LedgerEvent(db.Model):
    """
    Append-only audit spine: one row per committed ledger operation.

    Written in the same DB transaction as the operation it records.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_tenant_occurred", "tenant_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    actor_type = db.Column(db.String(16), nullable=False)
    actor_id = db.Column(db.Integer, nullable=True)

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor": {"type": self.actor_type, "id": self.actor_id},
            "note": self.note,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }
