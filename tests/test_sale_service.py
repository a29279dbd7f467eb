"""
Tests for `services/sale_service.py` against the in-memory Supabase double.

Covers contract rules:
- Creation decrements stock and charges the customer (total -> total_purchase,
  balance -> outstanding).
- Missing customer/product and insufficient stock fail before any write.
- Update recomputes from the same before/after pair that is persisted; items replace
  the list and stock moves by the per-product difference.
- `paid` may not fall below what payments allocated.
- Cancellation removes the sale's current total/balance from the customer, restores
  stock and releases payment allocations.
- A failure after the first write rolls every earlier write back.
"""

from __future__ import annotations

import re
from decimal import Decimal
from uuid import UUID

import pytest

from domain.allocation import AllocationRequest
from domain.errors import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationFailedError,
)
from domain.sale import PaymentStatus, SaleItem, SaleStatus
from repositories.customer_repository import get_customer_by_id
from repositories.sale_repository import SaleQueryFilters
from services.catalog_service import get_product
from services.customer_account_service import get_customer
from services.payment_service import create_payment, get_payment
from services.sale_service import (
    SalePatch,
    cancel_sale,
    create_sale,
    get_sale,
    list_pending_sales,
    list_sales,
    update_sale,
)


def _items(product, quantity: str = "2", price: str = "500"):
    return [SaleItem(product_id=product.product_id, quantity=Decimal(quantity), unit_price=Decimal(price))]


def test_create_sale_charges_customer_and_takes_stock(customer, product) -> None:
    sale = create_sale(customer.customer_id, _items(product))

    assert re.fullmatch(r"INV-\d{8}-[0-9A-F]{6}", sale.invoice_number)
    assert sale.total == Decimal("1000")
    assert sale.balance == Decimal("1000")
    assert sale.payment_status == PaymentStatus.PENDING
    assert get_product(product.product_id).current_stock == Decimal("8")

    stored = get_customer_by_id(customer.customer_id)
    assert stored.outstanding_amount == Decimal("1000")
    assert stored.total_purchase == Decimal("1000")
    assert stored.last_purchase_at is not None
    assert get_sale(sale.sale_id) == sale


def test_create_sale_with_counter_payment(customer, product) -> None:
    sale = create_sale(
        customer.customer_id,
        _items(product),
        discount=Decimal("100"),
        tax=Decimal("50"),
        paid=Decimal("300"),
    )

    assert sale.total == Decimal("950")
    assert sale.balance == Decimal("650")
    assert sale.payment_status == PaymentStatus.PARTIAL
    assert get_customer_by_id(customer.customer_id).outstanding_amount == Decimal("650")


def test_create_sale_unknown_customer(fake_db, product) -> None:
    with pytest.raises(NotFoundError):
        create_sale(UUID(int=404), _items(product))
    assert fake_db.rows("sales") == []


def test_create_sale_unknown_product(fake_db, customer) -> None:
    ghost = SaleItem(product_id=UUID(int=404), quantity=Decimal("1"), unit_price=Decimal("1"))
    with pytest.raises(NotFoundError):
        create_sale(customer.customer_id, [ghost])
    assert fake_db.rows("sales") == []


def test_create_sale_insufficient_stock_writes_nothing(fake_db, customer, product) -> None:
    with pytest.raises(InsufficientStockError) as excinfo:
        create_sale(customer.customer_id, _items(product, quantity="11"))

    assert excinfo.value.available == Decimal("10")
    assert fake_db.rows("sales") == []
    assert get_product(product.product_id).current_stock == Decimal("10")
    assert get_customer_by_id(customer.customer_id).outstanding_amount == Decimal("0")


def test_stock_check_sums_lines_of_same_product(customer, product) -> None:
    items = _items(product, quantity="6") + _items(product, quantity="5")
    with pytest.raises(InsufficientStockError):
        create_sale(customer.customer_id, items)


def test_create_sale_rolls_back_when_customer_write_fails(fake_db, customer, product) -> None:
    fake_db.fail_next("customers", "update")

    with pytest.raises(RuntimeError):
        create_sale(customer.customer_id, _items(product))

    assert fake_db.rows("sales") == []
    assert get_product(product.product_id).current_stock == Decimal("10")
    assert get_customer_by_id(customer.customer_id).outstanding_amount == Decimal("0")


def test_failed_first_sale_clears_last_purchase(fake_db, customer, product) -> None:
    # Third customer read happens in the cache refresh, after the aggregates were written.
    fake_db.fail_next("customers", "select", skip=2)

    with pytest.raises(RuntimeError):
        create_sale(customer.customer_id, _items(product))

    stored = get_customer_by_id(customer.customer_id)
    assert fake_db.rows("sales") == []
    assert stored.outstanding_amount == Decimal("0")
    assert stored.total_purchase == Decimal("0")
    assert stored.last_purchase_at is None


def test_failed_sale_keeps_earlier_last_purchase(fake_db, customer, product) -> None:
    first = create_sale(customer.customer_id, _items(product, quantity="1"))
    before = get_customer_by_id(customer.customer_id).last_purchase_at
    assert before == first.created_at

    fake_db.fail_next("customers", "select", skip=2)
    with pytest.raises(RuntimeError):
        create_sale(customer.customer_id, _items(product, quantity="1"))

    assert get_customer_by_id(customer.customer_id).last_purchase_at == before


def test_update_rolls_back_when_customer_write_fails(fake_db, customer, product) -> None:
    sale = create_sale(customer.customer_id, _items(product, quantity="2"))
    fake_db.fail_next("customers", "update")

    with pytest.raises(RuntimeError):
        update_sale(sale.sale_id, SalePatch(items=_items(product, quantity="1")))

    assert get_sale(sale.sale_id).total == Decimal("1000")
    assert get_product(product.product_id).current_stock == Decimal("8")
    assert get_customer_by_id(customer.customer_id).outstanding_amount == Decimal("1000")


def test_cancel_rolls_back_when_stock_write_fails(fake_db, customer, product) -> None:
    sale = create_sale(customer.customer_id, _items(product))
    payment = create_payment(
        customer.customer_id, Decimal("600"), allocations=[AllocationRequest(sale.sale_id, Decimal("600"))]
    )
    fake_db.fail_next("products", "update")

    with pytest.raises(RuntimeError):
        cancel_sale(sale.sale_id)

    restored = get_sale(sale.sale_id)
    assert restored.status == SaleStatus.COMPLETED
    assert restored.balance == Decimal("400")
    assert get_payment(payment.payment_id).allocated_to(sale.sale_id) == Decimal("600")
    assert get_product(product.product_id).current_stock == Decimal("8")
    stored = get_customer_by_id(customer.customer_id)
    assert stored.outstanding_amount == Decimal("400")
    assert stored.total_purchase == Decimal("1000")


def test_rounded_totals_match_storage(customer, product) -> None:
    items = [SaleItem(product_id=product.product_id, quantity=Decimal("0.333"), unit_price=Decimal("3"))]

    sale = create_sale(customer.customer_id, items, paid=Decimal("0.333"))

    assert sale.total == Decimal("1.00")
    assert sale.paid == Decimal("0.33")
    assert get_sale(sale.sale_id) == sale


def test_update_items_moves_stock_by_difference(customer, product, other_product) -> None:
    sale = create_sale(customer.customer_id, _items(product, quantity="2"))

    updated = update_sale(
        sale.sale_id,
        SalePatch(items=_items(product, quantity="1") + _items(other_product, quantity="3", price="100")),
    )

    assert updated.total == Decimal("800")
    assert updated.balance == Decimal("800")
    assert get_product(product.product_id).current_stock == Decimal("9")
    assert get_product(other_product.product_id).current_stock == Decimal("17")

    stored = get_customer_by_id(customer.customer_id)
    assert stored.outstanding_amount == Decimal("800")
    assert stored.total_purchase == Decimal("800")


def test_update_items_beyond_stock_is_rejected(customer, product) -> None:
    sale = create_sale(customer.customer_id, _items(product, quantity="2"))

    with pytest.raises(InsufficientStockError):
        update_sale(sale.sale_id, SalePatch(items=_items(product, quantity="13")))

    assert get_sale(sale.sale_id).total == Decimal("1000")
    assert get_product(product.product_id).current_stock == Decimal("8")


def test_update_paid_only_recomputes_status_and_customer(customer, product) -> None:
    sale = create_sale(customer.customer_id, _items(product))

    updated = update_sale(sale.sale_id, SalePatch(paid=Decimal("1000.005")))

    assert updated.balance == Decimal("0")
    assert updated.payment_status == PaymentStatus.PAID
    assert get_customer_by_id(customer.customer_id).outstanding_amount == Decimal("0")


def test_update_discount_without_items_recomputes_total(customer, product) -> None:
    sale = create_sale(customer.customer_id, _items(product))
    updated = update_sale(sale.sale_id, SalePatch(discount=Decimal("200")))

    assert updated.total == Decimal("800")
    assert get_customer_by_id(customer.customer_id).total_purchase == Decimal("800")


def test_update_paid_below_allocations_is_rejected(customer, product) -> None:
    sale = create_sale(customer.customer_id, _items(product))
    create_payment(customer.customer_id, Decimal("600"), allocations=[AllocationRequest(sale.sale_id, Decimal("600"))])

    with pytest.raises(ValidationFailedError):
        update_sale(sale.sale_id, SalePatch(paid=Decimal("500")))


def test_update_unknown_or_cancelled_sale(customer, product) -> None:
    with pytest.raises(NotFoundError):
        update_sale(UUID(int=404), SalePatch(notes="x"))

    sale = create_sale(customer.customer_id, _items(product))
    cancel_sale(sale.sale_id)
    with pytest.raises(InvalidStateError):
        update_sale(sale.sale_id, SalePatch(notes="x"))


def test_cancel_reverses_current_figures_and_restores_stock(customer, product, other_product) -> None:
    kept = create_sale(customer.customer_id, _items(other_product, quantity="1", price="100"))
    sale = create_sale(customer.customer_id, _items(product))
    create_payment(customer.customer_id, Decimal("600"), allocations=[AllocationRequest(sale.sale_id, Decimal("600"))])
    before = get_customer_by_id(customer.customer_id)
    assert before.outstanding_amount == Decimal("500")

    cancelled = cancel_sale(sale.sale_id)

    assert cancelled.status == SaleStatus.CANCELLED
    assert cancelled.balance == Decimal("400")
    after = get_customer_by_id(customer.customer_id)
    assert after.total_purchase == before.total_purchase - Decimal("1000")
    assert after.outstanding_amount == before.outstanding_amount - Decimal("400")
    assert after.outstanding_amount == kept.balance
    assert get_product(product.product_id).current_stock == Decimal("10")


def test_cancel_releases_payment_allocations(customer, product) -> None:
    sale = create_sale(customer.customer_id, _items(product))
    payment = create_payment(
        customer.customer_id, Decimal("600"), allocations=[AllocationRequest(sale.sale_id, Decimal("600"))]
    )

    cancel_sale(sale.sale_id)

    released = get_payment(payment.payment_id)
    assert released.allocations == ()
    assert released.remaining_amount == Decimal("600")
    # History is kept on the cancelled sale.
    assert get_sale(sale.sale_id).paid == Decimal("600")


def test_cancel_twice_is_invalid(customer, product) -> None:
    sale = create_sale(customer.customer_id, _items(product))
    cancel_sale(sale.sale_id)
    with pytest.raises(InvalidStateError):
        cancel_sale(sale.sale_id)


def test_writes_heal_a_drifted_customer_cache(fake_db, customer, product) -> None:
    create_sale(customer.customer_id, _items(product))
    fake_db.rows("customers")[0]["outstanding_amount"] = "12345"

    create_sale(customer.customer_id, _items(product, quantity="1"))

    stored = get_customer_by_id(customer.customer_id)
    assert stored.outstanding_amount == Decimal("1500")
    assert stored.total_purchase == Decimal("1500")


def test_read_path_overrides_drifted_cache(fake_db, customer, product) -> None:
    create_sale(customer.customer_id, _items(product))
    fake_db.rows("customers")[0]["outstanding_amount"] = "0"

    assert get_customer_by_id(customer.customer_id).outstanding_amount == Decimal("0")
    assert get_customer(customer.customer_id).outstanding_amount == Decimal("1000")


def test_list_sales_filters_and_pending(customer, product) -> None:
    first = create_sale(customer.customer_id, _items(product, quantity="1"))
    second = create_sale(customer.customer_id, _items(product, quantity="1"), paid=Decimal("500"))
    third = create_sale(customer.customer_id, _items(product, quantity="1"), paid=Decimal("100"))
    cancel_sale(third.sale_id)

    page = list_sales(SaleQueryFilters(customer_id=customer.customer_id), page=1, limit=2)
    assert page.total == 3
    assert page.pages == 2
    assert len(page.items) == 2
    assert page.items[0].created_at >= page.items[1].created_at

    paid_only = list_sales(SaleQueryFilters(payment_status=PaymentStatus.PAID))
    assert [s.sale_id for s in paid_only.items] == [second.sale_id]

    by_invoice = list_sales(SaleQueryFilters(search=first.invoice_number[-6:].lower()))
    assert [s.sale_id for s in by_invoice.items] == [first.sale_id]

    assert [s.sale_id for s in list_pending_sales(customer.customer_id)] == [first.sale_id]
