from __future__ import annotations

from ..extensions import db
from savdo.time_utils import to_utc_z
from ._money import money_str
from .append_only import append_only


class Sale(db.Model):
    """
    One POS sale or portal order.

    Only status (and the delivery link) changes after creation. Stock and debt
    effects are applied at creation and undone on cancellation, in the same
    transaction as the status write.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_tenant_status_created", "tenant_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    channel = db.Column(db.String(16), nullable=False, default="pos")  # pos, portal
    status = db.Column(db.String(16), nullable=False, index=True)

    subtotal_amount = db.Column(db.Numeric(12, 2), nullable=False)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False)
    # Amount added to customer debt at creation; what cancellation reverses
    debt_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    payment_type = db.Column(db.String(16), nullable=False, default="cash")

    created_by_type = db.Column(db.String(16), nullable=False)
    created_by_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "customer_id": self.customer_id,
            "channel": self.channel,
            "status": self.status,
            "subtotal_amount": money_str(self.subtotal_amount),
            "discount": money_str(self.discount),
            "total_amount": money_str(self.total_amount),
            "paid_amount": money_str(self.paid_amount),
            "debt_amount": money_str(self.debt_amount),
            "payment_type": self.payment_type,
            "created_by": {"type": self.created_by_type, "id": self.created_by_id},
            "created_at": to_utc_z(self.created_at),
            "status_changed_at": to_utc_z(self.status_changed_at) if self.status_changed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "delivery": self.delivery.to_dict() if self.delivery else None,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


@append_only
class SaleItem(db.Model):
    """Sale line; immutable once created."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price": money_str(self.price),
            "total": money_str(self.total),
        }


class Delivery(db.Model):
    """
    Delivery record created the first time a sale enters 'delivering'.

    Mirrors shipped/delivered/cancelled for the delivery-tracking collaborator;
    carries no stock or debt effect.
    """
    __tablename__ = "deliveries"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_deliveries_sale"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    dealer_id = db.Column(db.Integer, db.ForeignKey("dealers.id"), nullable=True, index=True)

    address = db.Column(db.String(512), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="pending")
    notes = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    sale = db.relationship("Sale", backref=db.backref("delivery", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "dealer_id": self.dealer_id,
            "address": self.address,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
