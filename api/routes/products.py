"""
Product, pricing and delivery routes.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from engines.product_engine import RecommendationKind
from ..services import Services, require_services

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Models ────────────────────────────────────────────────────────

class PriceRequest(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1, le=1_000_000)
    location: Optional[str] = Field(default=None, max_length=100)
    customer_id: Optional[str] = None


class QuoteItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1, le=1_000_000)


class QuoteRequest(BaseModel):
    items: List[QuoteItem] = Field(..., min_length=1, max_length=50)
    location: Optional[str] = Field(default=None, max_length=100)
    customer_id: Optional[str] = None


# ── Catalog ───────────────────────────────────────────────────────

@router.get("/search")
async def search_products(
    q: str = Query(default="", max_length=200),
    category: Optional[str] = None,
    code: Optional[str] = Query(default=None, max_length=50),
    limit: int = Query(default=10, ge=1, le=50),
    include_out_of_stock: bool = False,
    services: Services = Depends(require_services),
):
    """Search the catalog by name, SKU, code or category."""
    result = services.product_engine.search(
        query=q,
        category=category,
        product_code=code,
        max_results=limit,
        include_out_of_stock=include_out_of_stock,
    )
    return {"query": q, **result.to_dict()}


@router.get("/categories")
async def list_categories(services: Services = Depends(require_services)):
    return {"categories": services.product_engine.categories()}


@router.get("/products/compatibility")
async def check_compatibility(
    product_one: str,
    product_two: str,
    services: Services = Depends(require_services),
):
    """Compare the size, grade and material of two products."""
    result = services.product_engine.check_compatibility(product_one, product_two)
    if result is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return result.to_dict()


@router.get("/products/{product_id}")
async def get_product(product_id: str, services: Services = Depends(require_services)):
    product = services.product_engine.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return services.product_engine.format_product(product)


@router.get("/products/{product_id}/recommendations")
async def get_recommendations(
    product_id: str,
    kind: RecommendationKind = RecommendationKind.COMPLEMENTARY,
    limit: int = Query(default=5, ge=1, le=20),
    services: Services = Depends(require_services),
):
    """Complementary, alternative or upgrade products."""
    recommendations = services.product_engine.recommendations(product_id, kind=kind, limit=limit)
    if recommendations is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"product_id": product_id, "kind": kind.value, "recommendations": recommendations}


# ── Pricing ───────────────────────────────────────────────────────

@router.post("/price")
async def calculate_price(request: PriceRequest, services: Services = Depends(require_services)):
    """Price one product line with bulk, loyalty and delivery applied."""
    pricing = services.quote_engine.calculate_price(
        request.product_id,
        request.quantity,
        location=request.location,
        is_loyalty_client=request.customer_id is not None,
    )
    if pricing is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return pricing.to_dict()


@router.post("/quote")
async def calculate_quote(request: QuoteRequest, services: Services = Depends(require_services)):
    """Multi-item quote with one delivery destination."""
    quote = services.quote_engine.calculate_quote(
        [item.model_dump() for item in request.items],
        location=request.location,
        is_loyalty_client=request.customer_id is not None,
    )
    if not quote.lines:
        raise HTTPException(status_code=404, detail="None of the quoted products were found")
    return quote.to_dict()


@router.get("/bulk-discounts")
async def get_bulk_discounts(
    product_id: Optional[str] = None,
    services: Services = Depends(require_services),
):
    info = services.quote_engine.bulk_discount_info(product_id)
    if info is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return info


@router.get("/delivery")
async def get_delivery_estimate(
    location: str = Query(..., min_length=2, max_length=100),
    services: Services = Depends(require_services),
):
    return services.quote_engine.delivery_estimate(location)
