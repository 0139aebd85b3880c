# Overview: Pytest coverage for the tenant and audit CLI commands.

from savdo.extensions import db
from savdo.models import Tenant


def test_create_tenant(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "tenants", "create", "--name", "Yangi Do'kon", "--owner", "Aziz", "--phone", "+998900000009",
    ])
    assert result.exit_code == 0
    assert "PASS Created tenant: Yangi Do'kon" in result.output
    assert db.session.query(Tenant).filter_by(phone="+998900000009").count() == 1


def test_duplicate_phone_exits_nonzero(app, db_session, tenant_a):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "tenants", "create", "--name", "Copy", "--owner", "Someone", "--phone", tenant_a.phone,
    ])
    assert result.exit_code == 1
    assert f"FAIL Tenant with phone '{tenant_a.phone}' already exists" in result.output
    assert db.session.query(Tenant).count() == 1


def test_audit_check_passes_on_clean_tenant(app, db_session, tenant_a, product_a):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["audit", "check", "--tenant-id", str(tenant_a.id)])
    assert result.exit_code == 0
    assert "PASS No invariant violations." in result.output
