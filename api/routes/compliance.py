"""
Industry compliance and B-BBEE routes.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..services import Services, require_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/compliance/check")
async def check_compliance(
    product_id: str,
    industry: Optional[str] = Query(default=None, max_length=50),
    standard: Optional[str] = Query(default=None, max_length=50),
    services: Services = Depends(require_services),
):
    """
    Check a product against an industry's standards, or against a single
    standard when ``standard`` is given.
    """
    engine = services.compliance_engine
    if standard:
        result = engine.check_standard(product_id, standard)
        if result is None:
            raise HTTPException(status_code=404, detail="Product or standard not found")
        return result

    result = engine.check_product_compliance(product_id, industry)
    if result is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return result.to_dict()


@router.get("/compliance/products/{product_id}")
async def get_product_compliance(product_id: str, services: Services = Depends(require_services)):
    """Certifications a product carries and the industries it suits."""
    summary = services.compliance_engine.suitability_summary(product_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return summary


@router.get("/compliance/standards")
async def list_standards(services: Services = Depends(require_services)):
    return {"standards": services.compliance_engine.all_standards()}


@router.get("/compliance/industries")
async def list_industries(services: Services = Depends(require_services)):
    return {"industries": services.compliance_engine.all_industries()}


@router.get("/bbbee")
async def get_bbbee(services: Services = Depends(require_services)):
    return services.compliance_engine.bbbee_info()
