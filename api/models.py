"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
Monetary values are Decimals rounded to two places on the way out.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.customer import CreditStatus, Customer, CustomerType, OverallStatus, SalesStats
from domain.money import quantize_money
from domain.payment import Payment, PaymentMethod, PaymentRecordStatus
from domain.product import Product
from domain.sale import PaymentStatus, Sale, SaleItem, SalePaymentMethod, SaleStatus
from services.customer_account_service import CustomerStatement
from services.pagination import Page


# ============================================================================
# Shared Models
# ============================================================================

class PageInfo(BaseModel):
    """Pagination block of list responses."""
    page: int
    limit: int
    total_count: int
    pages: int

    @classmethod
    def from_page(cls, page: Page) -> "PageInfo":
        return cls(page=page.page, limit=page.limit, total_count=page.total, pages=page.pages)


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str

    class Config:
        json_schema_extra = {
            "example": {
                "detail": "Sale not found: 123e4567-e89b-12d3-a456-426614174000"
            }
        }


# ============================================================================
# Product Models
# ============================================================================

class ProductCreateRequest(BaseModel):
    """Request to add a product to the catalog."""
    name: str = Field(..., min_length=1)
    sku: Optional[str] = None
    unit: str = "piece"
    selling_price: Decimal = Field(Decimal("0"), ge=0)
    current_stock: Decimal = Field(Decimal("0"), ge=0)
    minimum_stock: Decimal = Field(Decimal("0"), ge=0)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Basmati Rice 5kg",
                "sku": "RICE-5KG",
                "unit": "bag",
                "selling_price": "450.00",
                "current_stock": "40",
                "minimum_stock": "5"
            }
        }


class ProductResponse(BaseModel):
    product_id: UUID
    name: str
    sku: Optional[str] = None
    unit: str
    selling_price: Decimal
    current_stock: Decimal
    minimum_stock: Decimal
    is_low_stock: bool
    is_active: bool

    @classmethod
    def from_product(cls, product: Product) -> "ProductResponse":
        return cls(
            product_id=product.product_id,
            name=product.name,
            sku=product.sku,
            unit=product.unit,
            selling_price=quantize_money(product.selling_price),
            current_stock=product.current_stock,
            minimum_stock=product.minimum_stock,
            is_low_stock=product.is_low_stock,
            is_active=product.is_active,
        )


class ProductListResponse(BaseModel):
    items: List[ProductResponse]
    pagination: PageInfo


# ============================================================================
# Customer Models
# ============================================================================

class CustomerCreateRequest(BaseModel):
    """Request to create a customer. Aggregates always start at zero."""
    name: str = Field(..., min_length=1)
    customer_type: CustomerType = CustomerType.RETAIL
    email: Optional[str] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    credit_limit: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Asha Traders",
                "customer_type": "wholesale",
                "phone": "+91 98000 00000",
                "city": "Pune",
                "credit_limit": "50000.00"
            }
        }


class CustomerUpdateRequest(BaseModel):
    """Profile fields only; outstanding amount and total purchase are not settable."""
    name: Optional[str] = Field(None, min_length=1)
    customer_type: Optional[CustomerType] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    credit_limit: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class CustomerResponse(BaseModel):
    customer_id: UUID
    name: str
    customer_type: CustomerType
    email: Optional[str] = None
    phone: Optional[str] = None
    full_address: str
    country: Optional[str] = None
    credit_limit: Decimal
    outstanding_amount: Decimal
    total_purchase: Decimal
    credit_status: CreditStatus
    notes: Optional[str] = None
    is_active: bool
    last_purchase_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_customer(cls, customer: Customer) -> "CustomerResponse":
        return cls(
            customer_id=customer.customer_id,
            name=customer.name,
            customer_type=customer.customer_type,
            email=customer.email,
            phone=customer.phone,
            full_address=customer.full_address,
            country=customer.country,
            credit_limit=quantize_money(customer.credit_limit),
            outstanding_amount=quantize_money(customer.outstanding_amount),
            total_purchase=quantize_money(customer.total_purchase),
            credit_status=customer.credit_status,
            notes=customer.notes,
            is_active=customer.is_active,
            last_purchase_at=customer.last_purchase_at,
            created_at=customer.created_at,
        )


class CustomerListResponse(BaseModel):
    items: List[CustomerResponse]
    pagination: PageInfo


# ============================================================================
# Sale Models
# ============================================================================

class SaleItemRequest(BaseModel):
    product_id: UUID
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0)

    def to_item(self) -> SaleItem:
        return SaleItem(
            product_id=self.product_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            discount=self.discount,
        )


class SaleCreateRequest(BaseModel):
    """Request to create a sale (invoice)."""
    customer_id: UUID
    items: List[SaleItemRequest] = Field(..., min_length=1)
    discount: Decimal = Field(Decimal("0"), ge=0)
    tax: Decimal = Field(Decimal("0"), ge=0)
    paid: Decimal = Field(Decimal("0"), ge=0, description="Amount collected at the counter")
    payment_method: SalePaymentMethod = SalePaymentMethod.CASH
    due_date: Optional[date] = None
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "customer_id": "123e4567-e89b-12d3-a456-426614174002",
                "items": [
                    {
                        "product_id": "123e4567-e89b-12d3-a456-426614174000",
                        "quantity": "2",
                        "unit_price": "450.00",
                        "discount": "0"
                    }
                ],
                "discount": "0",
                "tax": "100.00",
                "paid": "0",
                "payment_method": "credit"
            }
        }


class SaleUpdateRequest(BaseModel):
    """Partial sale edit. `items`, when present, replaces the whole list."""
    items: Optional[List[SaleItemRequest]] = Field(None, min_length=1)
    discount: Optional[Decimal] = Field(None, ge=0)
    tax: Optional[Decimal] = Field(None, ge=0)
    paid: Optional[Decimal] = Field(None, ge=0)
    payment_method: Optional[SalePaymentMethod] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None


class SaleItemResponse(BaseModel):
    product_id: UUID
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    line_total: Decimal


class SaleResponse(BaseModel):
    sale_id: UUID
    invoice_number: str
    customer_id: UUID
    items: List[SaleItemResponse]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    paid: Decimal
    balance: Decimal
    payment_status: PaymentStatus
    status: SaleStatus
    payment_method: SalePaymentMethod
    due_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "sale_id": "123e4567-e89b-12d3-a456-426614174003",
                "invoice_number": "INV-20250101-3FA2C1",
                "customer_id": "123e4567-e89b-12d3-a456-426614174002",
                "items": [],
                "subtotal": "900.00",
                "discount": "0.00",
                "tax": "100.00",
                "total": "1000.00",
                "paid": "600.00",
                "balance": "400.00",
                "payment_status": "partial",
                "status": "completed",
                "payment_method": "credit"
            }
        }

    @classmethod
    def from_sale(cls, sale: Sale) -> "SaleResponse":
        return cls(
            sale_id=sale.sale_id,
            invoice_number=sale.invoice_number,
            customer_id=sale.customer_id,
            items=[
                SaleItemResponse(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=quantize_money(item.unit_price),
                    discount=quantize_money(item.discount),
                    line_total=quantize_money(item.line_total),
                )
                for item in sale.items
            ],
            subtotal=quantize_money(sale.subtotal),
            discount=quantize_money(sale.discount),
            tax=quantize_money(sale.tax),
            total=quantize_money(sale.total),
            paid=quantize_money(sale.paid),
            balance=quantize_money(sale.balance),
            payment_status=sale.payment_status,
            status=sale.status,
            payment_method=sale.payment_method,
            due_date=sale.due_date,
            notes=sale.notes,
            created_at=sale.created_at,
            updated_at=sale.updated_at,
        )


class SaleListResponse(BaseModel):
    items: List[SaleResponse]
    pagination: PageInfo


# ============================================================================
# Payment Models
# ============================================================================

class AllocationRequestModel(BaseModel):
    sale_id: UUID
    amount: Decimal = Field(..., ge=0)


class PaymentCreateRequest(BaseModel):
    """Request to record a payment and allocate it across open sales."""
    customer_id: UUID
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_date: Optional[datetime] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    allocations: List[AllocationRequestModel] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "customer_id": "123e4567-e89b-12d3-a456-426614174002",
                "amount": "600.00",
                "payment_method": "upi",
                "allocations": [
                    {"sale_id": "123e4567-e89b-12d3-a456-426614174003", "amount": "600.00"}
                ]
            }
        }


class PaymentUpdateRequest(BaseModel):
    """Partial payment edit. Omitting `allocations` re-applies the existing list."""
    amount: Optional[Decimal] = Field(None, gt=0)
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    allocations: Optional[List[AllocationRequestModel]] = None


class AllocateCreditRequest(BaseModel):
    """Further allocations paid from a payment's unallocated amount."""
    allocations: List[AllocationRequestModel] = Field(..., min_length=1)


class AllocationResponse(BaseModel):
    sale_id: UUID
    amount: Decimal


class PaymentResponse(BaseModel):
    payment_id: UUID
    receipt_number: str
    customer_id: UUID
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: datetime
    allocations: List[AllocationResponse]
    total_allocated: Decimal
    remaining_amount: Decimal
    reference: Optional[str] = None
    notes: Optional[str] = None
    status: PaymentRecordStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            payment_id=payment.payment_id,
            receipt_number=payment.receipt_number,
            customer_id=payment.customer_id,
            amount=quantize_money(payment.amount),
            payment_method=payment.payment_method,
            payment_date=payment.payment_date,
            allocations=[
                AllocationResponse(sale_id=a.sale_id, amount=quantize_money(a.amount))
                for a in payment.allocations
            ],
            total_allocated=quantize_money(payment.total_allocated),
            remaining_amount=quantize_money(payment.remaining_amount),
            reference=payment.reference,
            notes=payment.notes,
            status=payment.status,
            created_at=payment.created_at,
            updated_at=payment.updated_at,
        )


class PaymentListResponse(BaseModel):
    items: List[PaymentResponse]
    pagination: PageInfo


# ============================================================================
# Customer Statement Models
# ============================================================================

class SalesStatsResponse(BaseModel):
    total_sales: int
    total_amount: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    paid_sales: int
    pending_sales: int
    overpaid_amount: Decimal
    unpaid_amount: Decimal

    @classmethod
    def from_stats(cls, stats: SalesStats) -> "SalesStatsResponse":
        return cls(
            total_sales=stats.total_sales,
            total_amount=quantize_money(stats.total_amount),
            total_paid=quantize_money(stats.total_paid),
            total_outstanding=quantize_money(stats.total_outstanding),
            paid_sales=stats.paid_sales,
            pending_sales=stats.pending_sales,
            overpaid_amount=quantize_money(stats.overpaid_amount),
            unpaid_amount=quantize_money(stats.unpaid_amount),
        )


class PaymentStatsResponse(BaseModel):
    total_payments: int
    total_amount: Decimal


class CustomerStatementResponse(BaseModel):
    customer: CustomerResponse
    sales: List[SaleResponse]
    payments: List[PaymentResponse]
    sales_stats: SalesStatsResponse
    payment_stats: PaymentStatsResponse
    overall_status: OverallStatus
    status_message: str

    @classmethod
    def from_statement(cls, statement: CustomerStatement) -> "CustomerStatementResponse":
        return cls(
            customer=CustomerResponse.from_customer(statement.customer),
            sales=[SaleResponse.from_sale(s) for s in statement.sales],
            payments=[PaymentResponse.from_payment(p) for p in statement.payments],
            sales_stats=SalesStatsResponse.from_stats(statement.stats),
            payment_stats=PaymentStatsResponse(
                total_payments=statement.payment_count,
                total_amount=quantize_money(statement.payment_total),
            ),
            overall_status=statement.overall_status,
            status_message=statement.status_message,
        )
