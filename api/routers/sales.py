"""
Sales API Endpoints.

Invoice creation, editing, cancellation and browsing.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from api.errors import http_error
from api.models import (
    PageInfo,
    SaleCreateRequest,
    SaleListResponse,
    SaleResponse,
    SaleUpdateRequest,
)
from domain.sale import PaymentStatus, SaleStatus
from domain.time import parse_utc_datetime
from repositories.sale_repository import SaleQueryFilters
from services.sale_service import (
    SalePatch,
    cancel_sale,
    create_sale,
    get_sale,
    list_sales,
    update_sale,
)

router = APIRouter()


@router.post(
    "/sales",
    response_model=SaleResponse,
    status_code=201,
    summary="Create Sale",
    description="Create an invoice, take its items out of stock and charge the customer account."
)
def add_sale(request: SaleCreateRequest):
    """
    Create a sale.

    **Process:**
    1. Validates the customer and every product exist
    2. Checks each product has enough stock
    3. Computes subtotal, total, balance and payment status
    4. Stores the sale, decrements stock and updates the customer's balance

    **Errors:** 404 unknown customer/product, 400 insufficient stock or invalid
    amounts, 409 invoice number collision (retry).
    """
    try:
        sale = create_sale(
            customer_id=request.customer_id,
            items=[item.to_item() for item in request.items],
            discount=request.discount,
            tax=request.tax,
            paid=request.paid,
            payment_method=request.payment_method,
            due_date=request.due_date,
            notes=request.notes,
        )
        return SaleResponse.from_sale(sale)
    except Exception as e:
        raise http_error(e, "create sale")


@router.get(
    "/sales",
    response_model=SaleListResponse,
    summary="List Sales",
)
def browse_sales(
    customer_id: Optional[UUID] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    status: Optional[SaleStatus] = Query(None),
    created_from: Optional[datetime] = Query(None, description="ISO-8601, inclusive"),
    created_to: Optional[datetime] = Query(None, description="ISO-8601, inclusive"),
    search: Optional[str] = Query(None, description="Invoice number fragment"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    try:
        filters = SaleQueryFilters(
            customer_id=customer_id,
            payment_status=payment_status,
            status=status,
            created_from=parse_utc_datetime(created_from) if created_from else None,
            created_to=parse_utc_datetime(created_to) if created_to else None,
            search=search,
        )
        result = list_sales(filters, page=page, limit=limit)
        return SaleListResponse(
            items=[SaleResponse.from_sale(s) for s in result.items],
            pagination=PageInfo.from_page(result),
        )
    except Exception as e:
        raise http_error(e, "list sales")


@router.get(
    "/sales/{sale_id}",
    response_model=SaleResponse,
    summary="Get Sale",
)
def read_sale(sale_id: UUID):
    try:
        return SaleResponse.from_sale(get_sale(sale_id))
    except Exception as e:
        raise http_error(e, "get sale")


@router.patch(
    "/sales/{sale_id}",
    response_model=SaleResponse,
    summary="Update Sale",
)
def edit_sale(sale_id: UUID, request: SaleUpdateRequest):
    """
    Edit a sale. Supplied `items` replace the whole list and stock moves by the
    per-product quantity difference. Balance and payment status are always recomputed.
    """
    try:
        patch = SalePatch(
            items=[item.to_item() for item in request.items] if request.items is not None else None,
            discount=request.discount,
            tax=request.tax,
            paid=request.paid,
            payment_method=request.payment_method,
            due_date=request.due_date,
            notes=request.notes,
        )
        return SaleResponse.from_sale(update_sale(sale_id, patch))
    except Exception as e:
        raise http_error(e, "update sale")


@router.post(
    "/sales/{sale_id}/cancel",
    response_model=SaleResponse,
    summary="Cancel Sale",
    description="Cancel a sale: restore stock, reverse its effect on the customer and release payment allocations."
)
def cancel_existing_sale(sale_id: UUID):
    try:
        return SaleResponse.from_sale(cancel_sale(sale_id))
    except Exception as e:
        raise http_error(e, "cancel sale")
