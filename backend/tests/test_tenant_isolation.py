# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for every ledger
entity.

Two tenants are seeded with their own products, dealers and customers, then
each operation is pointed at the other tenant's ids. The answer must be the
same "not found" a missing id gets, and nothing may change on either side.
"""

from decimal import Decimal

import pytest

from savdo.errors import UnknownEntity
from savdo.models import Tenant
from savdo.services import (
    audit_service,
    consignment_service,
    debt_service,
    payment_service,
    purchase_service,
    sales_service,
    stock_service,
)
from savdo.services.tenant_service import get_scoped, get_scoped_many, require_tenant


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_require_tenant_active(self, db_session, tenant_a):
        assert require_tenant(tenant_a.id).id == tenant_a.id

    def test_require_tenant_inactive(self, db_session, tenant_a):
        tenant_a.is_active = False
        db_session.commit()
        with pytest.raises(UnknownEntity):
            require_tenant(tenant_a.id)

    def test_get_scoped_cross_tenant_looks_missing(self, db_session, tenant_a, product_b):
        from savdo.models import Product
        with pytest.raises(UnknownEntity) as foreign:
            get_scoped(Product, tenant_a.id, product_b.id, label="Product")
        with pytest.raises(UnknownEntity) as missing:
            get_scoped(Product, tenant_a.id, 99999, label="Product")
        assert foreign.value.message == missing.value.message

    def test_get_scoped_many_ordered(self, db_session, tenant_a, product_a, product_a2):
        from savdo.models import Product
        rows = get_scoped_many(Product, tenant_a.id, [product_a2.id, product_a.id], label="Product")
        assert list(rows) == sorted([product_a.id, product_a2.id])


class TestCrossTenantOperations:

    def test_sale_with_foreign_product(self, db_session, tenant_a, employee, product_b):
        with pytest.raises(UnknownEntity):
            sales_service.create_sale(tenant_a.id, employee, [{"product_id": product_b.id, "quantity": 1}])
        assert product_b.stock == 50

    def test_sale_with_foreign_customer(self, db_session, tenant_a, employee, product_a, customer_b):
        with pytest.raises(UnknownEntity):
            sales_service.create_sale(
                tenant_a.id, employee, [{"product_id": product_a.id, "quantity": 1}],
                customer_id=customer_b.id, payment_type="debt",
            )
        assert product_a.stock == 100
        assert customer_b.debt == Decimal("0")

    def test_load_to_foreign_dealer(self, db_session, tenant_a, employee, product_a, dealer_b):
        with pytest.raises(UnknownEntity):
            consignment_service.load_to_dealer(
                tenant_a.id, employee, dealer_b.id, [{"product_id": product_a.id, "quantity": 1}],
            )
        assert product_a.stock == 100

    def test_load_foreign_product(self, db_session, tenant_a, employee, dealer_a, product_b):
        with pytest.raises(UnknownEntity):
            consignment_service.load_to_dealer(
                tenant_a.id, employee, dealer_a.id, [{"product_id": product_b.id, "quantity": 1}],
            )
        assert product_b.stock == 50

    def test_purchase_foreign_product(self, db_session, tenant_a, employee, product_b):
        with pytest.raises(UnknownEntity):
            purchase_service.receive_purchase(
                tenant_a.id, employee, [{"product_id": product_b.id, "quantity": 5, "cost_price": "1.00"}],
            )
        assert product_b.stock == 50

    def test_pay_foreign_debtor(self, db_session, tenant_b, employee, product_b, customer_b, tenant_a):
        sales_service.create_sale(
            tenant_b.id, employee, [{"product_id": product_b.id, "quantity": 1}],
            customer_id=customer_b.id, payment_type="debt",
        )
        with pytest.raises(UnknownEntity):
            payment_service.apply_payment(tenant_a.id, employee, "customer", customer_b.id, "1.00")
        assert customer_b.debt == Decimal("7.00")

    def test_foreign_sale_invisible(self, db_session, tenant_a, tenant_b, employee, product_b):
        sale = sales_service.create_sale(tenant_b.id, employee, [{"product_id": product_b.id, "quantity": 1}])
        with pytest.raises(UnknownEntity):
            sales_service.get_sale(tenant_a.id, sale.id)
        with pytest.raises(UnknownEntity):
            sales_service.cancel_sale(tenant_a.id, employee, sale.id)
        assert sales_service.list_sales(tenant_a.id) == []

    def test_reads_are_scoped(self, db_session, tenant_a, tenant_b, employee, product_a, product_b, dealer_b):
        with pytest.raises(UnknownEntity):
            stock_service.get_stock_position(tenant_a.id, product_b.id)
        with pytest.raises(UnknownEntity):
            consignment_service.get_dealer_inventory(tenant_a.id, employee, dealer_b.id)
        with pytest.raises(UnknownEntity):
            debt_service.reconcile_debtor(tenant_a.id, "dealer", dealer_b.id)

    def test_audit_summaries_independent(self, db_session, tenant_a, tenant_b, product_a, product_b):
        assert audit_service.summarize_tenant(tenant_a.id)["central_stock"] == 100
        assert audit_service.summarize_tenant(tenant_b.id)["central_stock"] == 50

    def test_inactive_tenant_blocked(self, db_session, tenant_a, employee, product_a):
        db_session.query(Tenant).filter_by(id=tenant_a.id).update({"is_active": False})
        db_session.commit()
        with pytest.raises(UnknownEntity):
            sales_service.create_sale(tenant_a.id, employee, [{"product_id": product_a.id, "quantity": 1}])
