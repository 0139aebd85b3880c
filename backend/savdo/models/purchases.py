from __future__ import annotations

from ..extensions import db
from savdo.time_utils import to_utc_z
from ._money import money_str
from .append_only import append_only


class Purchase(db.Model):
    """Supplier receiving event. Increases stock and overwrites cost price per line."""
    __tablename__ = "purchases"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    notes = db.Column(db.String(512), nullable=True)

    created_by_type = db.Column(db.String(16), nullable=False)
    created_by_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier")

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "supplier_id": self.supplier_id,
            "total_amount": money_str(self.total_amount),
            "paid_amount": money_str(self.paid_amount),
            "notes": self.notes,
            "created_by": {"type": self.created_by_type, "id": self.created_by_id},
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


@append_only
class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    purchase = db.relationship("Purchase", backref=db.backref("items", lazy=True, order_by="PurchaseItem.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "cost_price": money_str(self.cost_price),
            "total": money_str(self.total),
        }
