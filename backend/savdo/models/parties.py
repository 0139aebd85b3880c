from __future__ import annotations

from ..extensions import db
from savdo.time_utils import to_utc_z
from ._money import money_str


class Customer(db.Model):
    """
    Tenant customer (POS buyer or portal user).

    debt is what the customer owes the tenant. It grows on debt/partial sales
    and portal orders, and shrinks on payments and order cancellation. Every
    change is journaled in DebtEntry.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "phone", name="uq_customers_tenant_phone"),
        db.CheckConstraint("debt >= 0", name="ck_customers_debt_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    full_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    address = db.Column(db.String(512), nullable=True)

    debt = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "full_name": self.full_name,
            "phone": self.phone,
            "address": self.address,
            "debt": money_str(self.debt),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Dealer(db.Model):
    """
    Consignment dealer.

    debt accrues when goods are loaded on credit and is reduced by payments
    and by returning goods (floored at zero).
    """
    __tablename__ = "dealers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "phone", name="uq_dealers_tenant_phone"),
        db.CheckConstraint("debt >= 0", name="ck_dealers_debt_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    region = db.Column(db.String(128), nullable=True)

    debt = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("dealers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "phone": self.phone,
            "region": self.region,
            "debt": money_str(self.debt),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class DealerCustomer(db.Model):
    """A dealer's own end customer; owes the dealer for unpaid consignment sells."""
    __tablename__ = "dealer_customers"
    __table_args__ = (
        db.CheckConstraint("debt >= 0", name="ck_dealer_customers_debt_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    dealer_id = db.Column(db.Integer, db.ForeignKey("dealers.id"), nullable=False, index=True)

    full_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    debt = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    dealer = db.relationship("Dealer", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "dealer_id": self.dealer_id,
            "full_name": self.full_name,
            "phone": self.phone,
            "debt": money_str(self.debt),
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    company = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "phone": self.phone,
            "company": self.company,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
