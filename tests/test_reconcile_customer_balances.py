"""
Tests for scripts/reconcile_customer_balances.py.
"""

from decimal import Decimal
from uuid import UUID

import pytest

from domain.errors import NotFoundError
from domain.sale import SaleItem
from repositories.customer_repository import get_customer_by_id
from scripts.reconcile_customer_balances import reconcile
from services.customer_account_service import create_customer
from services.sale_service import create_sale


def _charge(customer, product, quantity="2"):
    items = [SaleItem(product_id=product.product_id, quantity=Decimal(quantity), unit_price=Decimal("500"))]
    return create_sale(customer.customer_id, items)


def _row(fake_db, customer):
    return next(r for r in fake_db.rows("customers") if r["customer_id"] == str(customer.customer_id))


def test_consistent_ledger_reports_nothing(customer, product):
    _charge(customer, product)
    assert reconcile() == []


def test_reports_drift_without_touching_cache(fake_db, customer, product):
    _charge(customer, product)
    _row(fake_db, customer)["outstanding_amount"] = "1"

    drifted = reconcile()

    assert len(drifted) == 1
    assert drifted[0].customer_id == customer.customer_id
    assert drifted[0].cached_outstanding == Decimal("1")
    assert drifted[0].recomputed_outstanding == Decimal("1000")
    assert get_customer_by_id(customer.customer_id).outstanding_amount == Decimal("1")


def test_apply_heals_drift(fake_db, customer, product):
    _charge(customer, product)
    _row(fake_db, customer)["total_purchase"] = "0"

    reconcile(apply=True)

    assert get_customer_by_id(customer.customer_id).total_purchase == Decimal("1000")
    assert reconcile() == []


def test_customer_filter(fake_db, customer, product):
    other = create_customer("Bharat Kirana")
    _charge(customer, product)
    _charge(other, product, quantity="1")
    _row(fake_db, customer)["outstanding_amount"] = "0"
    _row(fake_db, other)["outstanding_amount"] = "0"

    drifted = reconcile(customer_id=other.customer_id)

    assert [d.customer_id for d in drifted] == [other.customer_id]


def test_unknown_customer(fake_db):
    with pytest.raises(NotFoundError):
        reconcile(customer_id=UUID(int=404))
