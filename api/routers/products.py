"""
Products API Endpoints.

Catalog endpoints: add products and browse stock levels.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from api.errors import http_error
from api.models import PageInfo, ProductCreateRequest, ProductListResponse, ProductResponse
from services.catalog_service import create_product, get_product, list_products

router = APIRouter()


@router.post(
    "/products",
    response_model=ProductResponse,
    status_code=201,
    summary="Create Product",
)
def add_product(request: ProductCreateRequest):
    """
    Add a product to the catalog.

    SKUs are stored upper-case and must be unique (409 otherwise).
    """
    try:
        product = create_product(
            name=request.name,
            current_stock=request.current_stock,
            sku=request.sku,
            unit=request.unit,
            selling_price=request.selling_price,
            minimum_stock=request.minimum_stock,
        )
        return ProductResponse.from_product(product)
    except Exception as e:
        raise http_error(e, "create product")


@router.get(
    "/products",
    response_model=ProductListResponse,
    summary="List Products",
)
def browse_products(
    search: Optional[str] = Query(None, description="Match on name or SKU"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    try:
        result = list_products(search=search, page=page, limit=limit)
        return ProductListResponse(
            items=[ProductResponse.from_product(p) for p in result.items],
            pagination=PageInfo.from_page(result),
        )
    except Exception as e:
        raise http_error(e, "list products")


@router.get(
    "/products/{product_id}",
    response_model=ProductResponse,
    summary="Get Product",
)
def read_product(product_id: UUID):
    try:
        return ProductResponse.from_product(get_product(product_id))
    except Exception as e:
        raise http_error(e, "get product")
