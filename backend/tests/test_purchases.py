# Overview: Pytest coverage for purchase receiving.

from decimal import Decimal

import pytest

from savdo.errors import UnknownEntity, ValidationError
from savdo.extensions import db
from savdo.models import Purchase, PurchaseItem
from savdo.services import purchase_service


class TestReceivePurchase:

    def test_stock_up_and_cost_recorded(self, db_session, tenant_a, employee, product_a, supplier_a):
        purchase = purchase_service.receive_purchase(
            tenant_a.id, employee, [{"product_id": product_a.id, "quantity": 50, "cost_price": "7.25"}],
            supplier_id=supplier_a.id, paid_amount="100",
        )
        assert product_a.stock == 150
        assert product_a.cost_price == Decimal("7.25")
        assert purchase.total_amount == Decimal("362.50")
        assert purchase.paid_amount == Decimal("100.00")
        assert db.session.query(PurchaseItem).filter_by(purchase_id=purchase.id).count() == 1

    def test_last_cost_wins(self, db_session, tenant_a, employee, product_a):
        purchase_service.receive_purchase(
            tenant_a.id, employee, [{"product_id": product_a.id, "quantity": 10, "cost_price": "6.00"}],
        )
        purchase_service.receive_purchase(
            tenant_a.id, employee, [{"product_id": product_a.id, "quantity": 10, "cost_price": "8.00"}],
        )
        assert product_a.cost_price == Decimal("8.00")
        assert product_a.stock == 120

    def test_repeated_product_keeps_last_line_cost(self, db_session, tenant_a, employee, product_a):
        purchase_service.receive_purchase(
            tenant_a.id, employee,
            [
                {"product_id": product_a.id, "quantity": 1, "cost_price": "5.00"},
                {"product_id": product_a.id, "quantity": 2, "cost_price": "6.50"},
            ],
        )
        assert product_a.cost_price == Decimal("6.50")
        assert product_a.stock == 103

    def test_cost_price_required(self, db_session, tenant_a, employee, product_a):
        with pytest.raises(ValidationError):
            purchase_service.receive_purchase(tenant_a.id, employee, [{"product_id": product_a.id, "quantity": 1}])

    def test_unknown_product_writes_nothing(self, db_session, tenant_a, employee, product_a):
        with pytest.raises(UnknownEntity):
            purchase_service.receive_purchase(
                tenant_a.id, employee,
                [
                    {"product_id": product_a.id, "quantity": 1, "cost_price": "5.00"},
                    {"product_id": 99999, "quantity": 1, "cost_price": "5.00"},
                ],
            )
        assert product_a.stock == 100
        assert db.session.query(Purchase).count() == 0

    def test_paid_above_total(self, db_session, tenant_a, employee, product_a):
        with pytest.raises(ValidationError):
            purchase_service.receive_purchase(
                tenant_a.id, employee, [{"product_id": product_a.id, "quantity": 1, "cost_price": "5.00"}],
                paid_amount="5.01",
            )

    @pytest.mark.parametrize("actor_fixture", ["customer_actor", "dealer_actor"])
    def test_non_staff_cannot_receive(self, request, db_session, tenant_a, product_a, actor_fixture):
        actor = request.getfixturevalue(actor_fixture)
        with pytest.raises(UnknownEntity):
            purchase_service.receive_purchase(
                tenant_a.id, actor, [{"product_id": product_a.id, "quantity": 500, "cost_price": "0.01"}],
            )
        assert product_a.stock == 100
        assert product_a.cost_price != Decimal("0.01")
        assert db.session.query(Purchase).count() == 0

    def test_list_and_get(self, db_session, tenant_a, employee, product_a):
        purchase = purchase_service.receive_purchase(
            tenant_a.id, employee, [{"product_id": product_a.id, "quantity": 1, "cost_price": "5.00"}],
        )
        assert [p.id for p in purchase_service.list_purchases(tenant_a.id)] == [purchase.id]
        assert purchase_service.get_purchase(tenant_a.id, purchase.id).id == purchase.id
