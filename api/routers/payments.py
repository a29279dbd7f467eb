"""
Payments API Endpoints.

Receipts, their allocation across open sales, and the lookups a cashier needs
before allocating (pending sales, unallocated credit).
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query

from api.errors import http_error
from api.models import (
    AllocateCreditRequest,
    AllocationRequestModel,
    PageInfo,
    PaymentCreateRequest,
    PaymentListResponse,
    PaymentResponse,
    PaymentUpdateRequest,
    SaleResponse,
)
from domain.allocation import AllocationRequest
from domain.payment import PaymentMethod
from domain.time import parse_utc_datetime
from repositories.payment_repository import PaymentQueryFilters
from services.payment_service import (
    PaymentPatch,
    allocate_unapplied_credit,
    create_payment,
    get_payment,
    list_payments,
    list_unallocated_payments,
    update_payment,
)
from services.sale_service import list_pending_sales

router = APIRouter()


def _requests(allocations: List[AllocationRequestModel]) -> List[AllocationRequest]:
    return [AllocationRequest(sale_id=a.sale_id, amount=a.amount) for a in allocations]


@router.post(
    "/payments",
    response_model=PaymentResponse,
    status_code=201,
    summary="Record Payment",
)
def add_payment(request: PaymentCreateRequest):
    """
    Record a payment and allocate it, in the given order, to the customer's sales.

    Each allocation is clamped to the sale's remaining balance at the moment it is
    applied; whatever is not applied stays on the payment as `remaining_amount`.

    **Example request:**
    ```json
    {
      "customer_id": "123e4567-e89b-12d3-a456-426614174002",
      "amount": "500.00",
      "allocations": [{"sale_id": "123e4567-e89b-12d3-a456-426614174003", "amount": "500.00"}]
    }
    ```

    **Response (sale had 400 left):** `total_allocated` = "400.00", `remaining_amount` = "100.00".
    """
    try:
        payment = create_payment(
            customer_id=request.customer_id,
            amount=request.amount,
            payment_method=request.payment_method,
            allocations=_requests(request.allocations),
            payment_date=request.payment_date,
            reference=request.reference,
            notes=request.notes,
        )
        return PaymentResponse.from_payment(payment)
    except Exception as e:
        raise http_error(e, "record payment")


@router.get(
    "/payments",
    response_model=PaymentListResponse,
    summary="List Payments",
)
def browse_payments(
    customer_id: Optional[UUID] = Query(None),
    payment_method: Optional[PaymentMethod] = Query(None),
    paid_from: Optional[datetime] = Query(None, description="ISO-8601, inclusive"),
    paid_to: Optional[datetime] = Query(None, description="ISO-8601, inclusive"),
    search: Optional[str] = Query(None, description="Receipt number fragment"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    try:
        filters = PaymentQueryFilters(
            customer_id=customer_id,
            payment_method=payment_method,
            paid_from=parse_utc_datetime(paid_from) if paid_from else None,
            paid_to=parse_utc_datetime(paid_to) if paid_to else None,
            search=search,
        )
        result = list_payments(filters, page=page, limit=limit)
        return PaymentListResponse(
            items=[PaymentResponse.from_payment(p) for p in result.items],
            pagination=PageInfo.from_page(result),
        )
    except Exception as e:
        raise http_error(e, "list payments")


@router.get(
    "/payments/pending/{customer_id}",
    response_model=List[SaleResponse],
    summary="Pending Sales",
    description="Non-cancelled sales of a customer that still have a balance, oldest first."
)
def pending_sales(customer_id: UUID):
    try:
        return [SaleResponse.from_sale(s) for s in list_pending_sales(customer_id)]
    except Exception as e:
        raise http_error(e, "list pending sales")


@router.get(
    "/payments/unallocated/{customer_id}",
    response_model=List[PaymentResponse],
    summary="Unallocated Payments",
    description="Payments of a customer with unallocated credit left, newest first."
)
def unallocated_payments(customer_id: UUID):
    try:
        return [PaymentResponse.from_payment(p) for p in list_unallocated_payments(customer_id)]
    except Exception as e:
        raise http_error(e, "list unallocated payments")


@router.get(
    "/payments/{payment_id}",
    response_model=PaymentResponse,
    summary="Get Payment",
)
def read_payment(payment_id: UUID):
    try:
        return PaymentResponse.from_payment(get_payment(payment_id))
    except Exception as e:
        raise http_error(e, "get payment")


@router.patch(
    "/payments/{payment_id}",
    response_model=PaymentResponse,
    summary="Update Payment",
)
def edit_payment(payment_id: UUID, request: PaymentUpdateRequest):
    """
    Edit a payment. A supplied `allocations` list replaces the old one; omitting it
    re-applies the existing allocations against the sales' current balances.
    """
    try:
        patch = PaymentPatch(
            amount=request.amount,
            payment_method=request.payment_method,
            payment_date=request.payment_date,
            reference=request.reference,
            notes=request.notes,
            allocations=_requests(request.allocations) if request.allocations is not None else None,
        )
        return PaymentResponse.from_payment(update_payment(payment_id, patch))
    except Exception as e:
        raise http_error(e, "update payment")


@router.post(
    "/payments/{payment_id}/allocate",
    response_model=PaymentResponse,
    summary="Allocate Unapplied Credit",
)
def allocate_credit(payment_id: UUID, request: AllocateCreditRequest):
    """Spend a payment's remaining amount on further sales of the same customer."""
    try:
        return PaymentResponse.from_payment(
            allocate_unapplied_credit(payment_id, _requests(request.allocations))
        )
    except Exception as e:
        raise http_error(e, "allocate payment")
