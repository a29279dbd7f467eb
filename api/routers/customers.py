"""
Customers API Endpoints.

Customer directory plus the account statement. Outstanding amount and total purchase
are always served recomputed from the customer's non-cancelled sales.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Response

from api.errors import http_error
from api.models import (
    CustomerCreateRequest,
    CustomerListResponse,
    CustomerResponse,
    CustomerStatementResponse,
    CustomerUpdateRequest,
    PageInfo,
)
from domain.customer import CreditStatus, CustomerType
from repositories.customer_repository import CustomerQueryFilters
from services.customer_account_service import (
    create_customer,
    delete_customer,
    get_customer,
    get_customer_statement,
    list_customers_with_balances,
    update_customer,
)

router = APIRouter()


@router.post(
    "/customers",
    response_model=CustomerResponse,
    status_code=201,
    summary="Create Customer",
)
def add_customer(request: CustomerCreateRequest):
    try:
        profile = request.model_dump(exclude={"name"}, exclude_none=True)
        customer = create_customer(request.name, **profile)
        return CustomerResponse.from_customer(customer)
    except Exception as e:
        raise http_error(e, "create customer")


@router.get(
    "/customers",
    response_model=CustomerListResponse,
    summary="List Customers",
    description="List customers with recomputed balances and optional filters."
)
def browse_customers(
    customer_type: Optional[CustomerType] = Query(None),
    is_active: Optional[bool] = Query(None),
    credit_status: Optional[CreditStatus] = Query(None, description="clear, within_limit or over_limit"),
    search: Optional[str] = Query(None, description="Match on name, email or phone"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    """
    **Example usage:**
    - `GET /api/v1/customers?credit_status=over_limit`
    - `GET /api/v1/customers?search=asha&customer_type=wholesale`
    """
    try:
        filters = CustomerQueryFilters(
            customer_type=customer_type,
            is_active=is_active,
            search=search,
        )
        result = list_customers_with_balances(filters, credit_status=credit_status, page=page, limit=limit)
        return CustomerListResponse(
            items=[CustomerResponse.from_customer(c) for c in result.items],
            pagination=PageInfo.from_page(result),
        )
    except Exception as e:
        raise http_error(e, "list customers")


@router.get(
    "/customers/{customer_id}",
    response_model=CustomerResponse,
    summary="Get Customer",
)
def read_customer(customer_id: UUID):
    try:
        return CustomerResponse.from_customer(get_customer(customer_id))
    except Exception as e:
        raise http_error(e, "get customer")


@router.get(
    "/customers/{customer_id}/statement",
    response_model=CustomerStatementResponse,
    summary="Customer Statement",
)
def read_customer_statement(customer_id: UUID):
    """
    Customer with its non-cancelled sales, payments, totals and an overall status:
    `outstanding` (owes money), `credit` (overpaid) or `clear`.
    """
    try:
        return CustomerStatementResponse.from_statement(get_customer_statement(customer_id))
    except Exception as e:
        raise http_error(e, "build customer statement")


@router.patch(
    "/customers/{customer_id}",
    response_model=CustomerResponse,
    summary="Update Customer",
)
def edit_customer(customer_id: UUID, request: CustomerUpdateRequest):
    try:
        fields = request.model_dump(exclude_unset=True)
        return CustomerResponse.from_customer(update_customer(customer_id, fields))
    except Exception as e:
        raise http_error(e, "update customer")


@router.delete(
    "/customers/{customer_id}",
    status_code=204,
    summary="Delete Customer",
    description="Rejected while the customer still owes money."
)
def remove_customer(customer_id: UUID):
    try:
        delete_customer(customer_id)
        return Response(status_code=204)
    except Exception as e:
        raise http_error(e, "delete customer")
