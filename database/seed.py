"""
Demo catalog for the sales assistant.

Seeds categories, products and compliance standards into an empty store.
Run with ``python -m database.seed``.
"""

import asyncio
import logging
from typing import Any, Dict, List

from .repositories import CatalogRepository, ComplianceStandardRepository
from .session import Database, init_db

logger = logging.getLogger(__name__)


DEMO_CATEGORIES: List[Dict[str, Any]] = [
    {"name": "Fasteners", "slug": "fasteners", "sort_order": 1,
     "description": "Bolts, nuts, washers and threaded rod"},
    {"name": "Bearings", "slug": "bearings", "sort_order": 2,
     "description": "Ball, roller and plummer block bearings"},
    {"name": "Power Transmission", "slug": "power-transmission", "sort_order": 3,
     "description": "Belts, pulleys, chains and couplings"},
    {"name": "Hydraulics", "slug": "hydraulics", "sort_order": 4},
    {"name": "Pneumatics", "slug": "pneumatics", "sort_order": 5},
    {"name": "Tools", "slug": "tools", "sort_order": 6,
     "description": "Hand tools and measuring instruments"},
    {"name": "Safety Equipment", "slug": "safety-equipment", "sort_order": 7,
     "description": "PPE for mining, construction and industrial sites"},
    {"name": "Electrical", "slug": "electrical", "sort_order": 8,
     "description": "Cable, switchgear and accessories"},
]

DEMO_PRODUCTS: List[Dict[str, Any]] = [
    {
        "name": "Hex Bolt M12 x 50mm Grade 8.8", "sku": "FB-HB-M12-50-88",
        "category": "fasteners", "price": 4.50, "unit": "each", "stock_qty": 5000,
        "description": "High tensile zinc plated hex bolt for structural work.",
        "specifications": {"size": "M12", "length": "50mm", "grade": "8.8",
                           "material": "carbon steel", "finish": "zinc plated",
                           "standards": ["SANS-1700"]},
    },
    {
        "name": "Hex Nut M12 Grade 8", "sku": "FB-HN-M12-8",
        "category": "fasteners", "price": 1.20, "unit": "each", "stock_qty": 8000,
        "description": "Zinc plated hex nut.",
        "specifications": {"size": "M12", "grade": "8", "material": "carbon steel",
                           "standards": ["SANS-1700"]},
    },
    {
        "name": "Flat Washer M12", "sku": "FB-FW-M12",
        "category": "fasteners", "price": 0.40, "unit": "each", "stock_qty": 10000,
        "specifications": {"size": "M12", "material": "carbon steel"},
    },
    {
        "name": "Hex Bolt M10 x 50mm Grade 8.8", "sku": "FB-HB-M10-50-88",
        "category": "fasteners", "price": 3.20, "unit": "each", "stock_qty": 4000,
        "is_featured": True,
        "description": "General purpose high tensile hex bolt.",
        "specifications": {"size": "M10", "length": "50mm", "grade": "8.8",
                           "material": "carbon steel", "standards": ["SANS-1700"]},
        "bulk_discounts": [
            {"min_quantity": 250, "discount": 0.12},
            {"min_quantity": 1000, "discount": 0.22},
        ],
    },
    {
        "name": "Hex Nut M10 Grade 8", "sku": "FB-HN-M10-8",
        "category": "fasteners", "price": 0.85, "unit": "each", "stock_qty": 6000,
        "specifications": {"size": "M10", "grade": "8", "material": "carbon steel",
                           "standards": ["SANS-1700"]},
    },
    {
        "name": "Deep Groove Ball Bearing 6205-2RS", "sku": "BR-6205-2RS",
        "category": "bearings", "price": 85.00, "unit": "each", "stock_qty": 300,
        "is_featured": True,
        "description": "Sealed deep groove ball bearing, 25mm bore.",
        "specifications": {"size": "6205", "bore": "25mm", "material": "chrome steel",
                           "standards": ["ISO-15"]},
    },
    {
        "name": "Deep Groove Ball Bearing 6206-2RS", "sku": "BR-6206-2RS",
        "category": "bearings", "price": 98.00, "unit": "each", "stock_qty": 0,
        "description": "Sealed deep groove ball bearing, 30mm bore.",
        "specifications": {"size": "6206", "bore": "30mm", "material": "chrome steel",
                           "standards": ["ISO-15"]},
    },
    {
        "name": "V-Belt A-Section A42", "sku": "PT-VB-A42",
        "category": "power-transmission", "price": 120.00, "unit": "each", "stock_qty": 60,
        "specifications": {"size": "A42", "material": "rubber"},
    },
    {
        "name": "Digital Vernier Caliper 150mm", "sku": "TL-DVC-150",
        "category": "tools", "price": 450.00, "unit": "each", "stock_qty": 25,
        "specifications": {"size": "150mm", "material": "stainless steel",
                           "accuracy": "0.02mm"},
    },
    {
        "name": "Safety Hard Hat Class B", "sku": "SE-HH-CLB",
        "category": "safety-equipment", "price": 95.00, "unit": "each", "stock_qty": 200,
        "specifications": {"material": "HDPE", "standards": ["SANS-1397"]},
    },
    {
        "name": "Safety Boots Steel Toe", "sku": "SE-SB-ST",
        "category": "safety-equipment", "price": 650.00, "unit": "pair", "stock_qty": 80,
        "weight_kg": 1.8,
        "specifications": {"material": "leather", "standards": ["SANS-20345"]},
    },
    {
        "name": "PVC Insulated Cable 2.5mm", "sku": "EL-CBL-25",
        "category": "electrical", "price": 18.50, "unit": "metre", "stock_qty": 2000,
        "specifications": {"size": "2.5mm", "material": "copper",
                           "standards": ["SANS-1507"]},
    },
]

DEMO_STANDARDS: List[Dict[str, Any]] = [
    {"code": "SANS-1507", "name": "Electric cables with extruded solid dielectric insulation",
     "issuing_body": "SABS", "industries": ["electrical", "construction"],
     "requirements": ["Conductor resistance tested", "Insulation thickness verified"]},
]


async def seed_demo_catalog(database: Database) -> int:
    """Insert the demo catalog when the store has no products. Returns products added."""
    async with database.session() as session:
        catalog = CatalogRepository(session)
        if await catalog.count_products():
            logger.info("Catalog already populated, skipping seed")
            return 0

        category_ids = {}
        for category in DEMO_CATEGORIES:
            row = await catalog.add_category(**category)
            category_ids[row.slug] = row.id

        for product in DEMO_PRODUCTS:
            data = dict(product)
            await catalog.add_product(
                name=data["name"],
                sku=data["sku"],
                description=data.get("description"),
                price=data["price"],
                unit=data.get("unit", "each"),
                category_id=category_ids[data["category"]],
                specifications_json=data.get("specifications", {}),
                bulk_discounts_json=data.get("bulk_discounts"),
                weight_kg=data.get("weight_kg"),
                is_featured=data.get("is_featured", False),
                stock_qty=data.get("stock_qty", 0),
            )

        standards = ComplianceStandardRepository(session)
        for standard in DEMO_STANDARDS:
            await standards.add(
                code=standard["code"],
                name=standard["name"],
                issuing_body=standard.get("issuing_body"),
                industries_json=standard.get("industries", []),
                requirements_json=standard.get("requirements", []),
            )

    logger.info(f"Seeded {len(DEMO_PRODUCTS)} demo products")
    return len(DEMO_PRODUCTS)


async def _main():
    from config.settings import get_settings

    settings = get_settings()
    database = await init_db(settings.database_url)
    try:
        await seed_demo_catalog(database)
    finally:
        await database.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(_main())
