from __future__ import annotations

from ..extensions import db
from savdo.time_utils import to_utc_z
from ._money import money_str
from .append_only import append_only


class DealerInventory(db.Model):
    """
    Quantity of a product physically held by a dealer.

    Disjoint from Product.stock: a load moves units from the warehouse into
    this row, a return moves them back, a sell removes them from the system.
    Rows are kept at zero rather than deleted.
    """
    __tablename__ = "dealer_inventory"
    __table_args__ = (
        db.UniqueConstraint("dealer_id", "product_id", name="uq_dealer_inventory_dealer_product"),
        db.CheckConstraint("quantity >= 0", name="ck_dealer_inventory_quantity_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    dealer_id = db.Column(db.Integer, db.ForeignKey("dealers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    dealer = db.relationship("Dealer", backref=db.backref("inventory", lazy=True))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dealer_id": self.dealer_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


@append_only
class DealerTransaction(db.Model):
    """
    Append-only dealer movement log (load / sell / return).

    The audit trail for how DealerInventory and Dealer.debt reached their
    current values. All lines of one operation share batch_ref.
    """
    __tablename__ = "dealer_transactions"
    __table_args__ = (
        db.Index("ix_dealer_tx_dealer_created", "dealer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    dealer_id = db.Column(db.Integer, db.ForeignKey("dealers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)  # load, sell, return
    batch_ref = db.Column(db.String(32), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    # Sell traceability
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    dealer_customer_id = db.Column(db.Integer, db.ForeignKey("dealer_customers.id"), nullable=True)

    notes = db.Column(db.String(512), nullable=True)

    created_by_type = db.Column(db.String(16), nullable=False)
    created_by_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dealer_id": self.dealer_id,
            "product_id": self.product_id,
            "type": self.type,
            "batch_ref": self.batch_ref,
            "quantity": self.quantity,
            "price": money_str(self.price),
            "total": money_str(self.total),
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "dealer_customer_id": self.dealer_customer_id,
            "notes": self.notes,
            "created_by": {"type": self.created_by_type, "id": self.created_by_id},
            "created_at": to_utc_z(self.created_at),
        }
