from __future__ import annotations

from ..extensions import db
from savdo.time_utils import to_utc_z


class Tenant(db.Model):
    """
    Multi-tenant root: every business account is a Tenant.

    All ledger rows carry tenant_id and every service query filters on it.
    Nothing may cross tenant boundaries.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    owner_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False, unique=True, index=True)
    plan = db.Column(db.String(32), nullable=False, default="free")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "owner_name": self.owner_name,
            "phone": self.phone,
            "plan": self.plan,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
