"""
Compliance verification engine.

Checks a product's declared and category-inferred standards against the
mandatory and recommended standards of an industry.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from assistant.knowledge_base import ComplianceDocument, IndustrySpec, StandardSpec
from database.repositories import ComplianceStandardRepository
from database.session import Database
from .product_engine import ProductEngine, ProductRecord

logger = logging.getLogger(__name__)

DEFAULT_INDUSTRY = "general"


@dataclass
class ComplianceResult:
    product: Dict[str, Any]
    industry: str
    industry_display_name: str
    compliant: bool
    mandatory_met: List[Dict[str, str]] = field(default_factory=list)
    mandatory_missing: List[Dict[str, str]] = field(default_factory=list)
    recommended_met: List[Dict[str, str]] = field(default_factory=list)
    recommended_missing: List[Dict[str, str]] = field(default_factory=list)
    regulations: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    notes: str = ""
    product_standards: List[str] = field(default_factory=list)

    @property
    def met(self) -> List[Dict[str, str]]:
        return self.mandatory_met + self.recommended_met

    @property
    def missing(self) -> List[Dict[str, str]]:
        return self.mandatory_missing + self.recommended_missing

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product,
            "industry": self.industry,
            "industry_display_name": self.industry_display_name,
            "compliant": self.compliant,
            "standards": {"met": self.met, "missing": self.missing},
            "regulations": self.regulations,
            "warnings": self.warnings,
            "notes": self.notes,
            "product_standards": self.product_standards,
        }


class ComplianceEngine:
    """Industry compliance checks over the configured standards tables."""

    def __init__(self, product_engine: ProductEngine, document: ComplianceDocument):
        self.product_engine = product_engine
        self.standards: Dict[str, StandardSpec] = dict(document.standards)
        self.regulations: Dict[str, Dict[str, Any]] = dict(document.regulations)
        self.industries: Dict[str, IndustrySpec] = {
            k.lower(): v for k, v in document.industry_compliance.items()
        }
        self.category_standards: Dict[str, List[str]] = dict(document.product_compliance)
        self.bbbee = document.bbbee

    async def load_database_standards(self, database: Database) -> int:
        """Merge active standards from the database over the configured table."""
        async with database.session() as db:
            rows = await ComplianceStandardRepository(db).list_active()
        for row in rows:
            self.standards[row.code] = StandardSpec(
                name=row.name,
                issuing_body=row.issuing_body,
                description=row.description,
                industries=list(row.industries_json or []),
                requirements=list(row.requirements_json or []),
            )
        logger.info(f"Compliance standards: {len(self.standards)} ({len(rows)} from database)")
        return len(rows)

    # ── Product standards ─────────────────────────────

    def product_standards(self, product: ProductRecord) -> List[str]:
        """Declared standards plus those implied by the product's category."""
        specs = product.specifications
        found: List[str] = []
        for key in ("compliance", "standards"):
            value = specs.get(key)
            if isinstance(value, list):
                found.extend(str(v) for v in value)
        if specs.get("sans"):
            found.append(str(specs["sans"]))
        found.extend(self.category_standards.get(product.category_slug or "", []))
        return list(dict.fromkeys(found))

    def _standard_name(self, standard_id: str) -> str:
        standard = self.standards.get(standard_id)
        return standard.name if standard else standard_id

    def industry(self, industry: Optional[str]) -> Optional[IndustrySpec]:
        return self.industries.get((industry or "").lower())

    # ── Checks ────────────────────────────────────────

    def check_product_compliance(self, product_id: str, industry: Optional[str] = None) -> Optional[ComplianceResult]:
        """
        Partition an industry's standards into met and missing for a product.

        Unknown industries are checked against the general requirements.
        Returns None if the product is unknown.
        """
        product = self.product_engine.get_product(product_id)
        if product is None:
            return None

        industry_key = (industry or DEFAULT_INDUSTRY).lower()
        requirements = self.industries.get(industry_key)
        if requirements is None:
            logger.info(f"Unknown industry '{industry_key}', using {DEFAULT_INDUSTRY} requirements")
            industry_key = DEFAULT_INDUSTRY
            requirements = self.industries.get(DEFAULT_INDUSTRY) or IndustrySpec(display_name="General")

        declared = self.product_standards(product)
        result = ComplianceResult(
            product={"id": product.id, "name": product.name, "sku": product.sku},
            industry=industry_key,
            industry_display_name=requirements.display_name,
            compliant=True,
            notes=requirements.notes,
            product_standards=declared,
        )

        for standard_id in requirements.mandatory:
            entry = {"id": standard_id, "name": self._standard_name(standard_id)}
            if standard_id in declared:
                result.mandatory_met.append({**entry, "status": "compliant"})
            else:
                result.mandatory_missing.append({**entry, "status": "required"})

        for standard_id in requirements.recommended:
            entry = {"id": standard_id, "name": self._standard_name(standard_id)}
            if standard_id in declared:
                result.recommended_met.append({**entry, "status": "compliant"})
            else:
                result.recommended_missing.append({**entry, "status": "recommended"})

        result.compliant = not result.mandatory_missing

        if result.mandatory_missing:
            result.warnings.append(f"Missing {len(result.mandatory_missing)} mandatory certification(s)")
        if result.recommended_missing:
            result.warnings.append(f"Missing {len(result.recommended_missing)} recommended certification(s)")
        result.warnings.extend(requirements.specific_requirements)

        result.regulations = [
            {
                "id": regulation_id,
                "name": self.regulations.get(regulation_id, {}).get("name", regulation_id),
                "description": self.regulations.get(regulation_id, {}).get("description"),
            }
            for regulation_id in requirements.regulations
        ]
        return result

    def check_standard(self, product_id: str, standard_id: str) -> Optional[Dict[str, Any]]:
        """Does a product carry one specific standard? None if either is unknown."""
        product = self.product_engine.get_product(product_id)
        standard = self.standards.get(standard_id)
        if product is None or standard is None:
            return None

        compliant = standard_id in self.product_standards(product)
        if compliant:
            message = f"{product.name} meets {standard.name} requirements"
        else:
            message = f"{product.name} does not have {standard.name} certification"
        return {
            "product": {"id": product.id, "name": product.name, "sku": product.sku},
            "standard": {"id": standard_id, "name": standard.name, "issuing_body": standard.issuing_body},
            "compliant": compliant,
            "message": message,
            "requirements": list(standard.requirements),
        }

    def suitability_summary(self, product_id: str) -> Optional[Dict[str, Any]]:
        """Industries a product suits: fully compliant first, then by share of mandatory standards met."""
        product = self.product_engine.get_product(product_id)
        if product is None:
            return None

        declared = self.product_standards(product)
        suitable = []
        for key, requirements in self.industries.items():
            mandatory = requirements.mandatory
            met = sum(1 for s in mandatory if s in declared)
            if met == len(mandatory):
                suitable.append({
                    "id": key,
                    "name": requirements.display_name,
                    "full_compliance": True,
                    "compliance_percent": 100,
                })
            elif met > 0:
                suitable.append({
                    "id": key,
                    "name": requirements.display_name,
                    "full_compliance": False,
                    "compliance_percent": round(met / len(mandatory) * 100),
                })

        suitable.sort(key=lambda s: (not s["full_compliance"], -s["compliance_percent"]))
        return {
            "product": {
                "id": product.id,
                "name": product.name,
                "sku": product.sku,
                "category": product.category_name,
            },
            "certifications": [
                {
                    "id": standard_id,
                    "name": self._standard_name(standard_id),
                    "issuing_body": self.standards[standard_id].issuing_body
                    if standard_id in self.standards else None,
                }
                for standard_id in declared
            ],
            "suitable_industries": suitable,
        }

    # ── Reference data ────────────────────────────────

    def all_standards(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": standard_id,
                "name": standard.name,
                "issuing_body": standard.issuing_body,
                "industries": list(standard.industries),
            }
            for standard_id, standard in sorted(self.standards.items())
        ]

    def all_industries(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": key,
                "name": requirements.display_name,
                "mandatory_count": len(requirements.mandatory),
                "mandatory": list(requirements.mandatory),
                "recommended": list(requirements.recommended),
                "regulations": list(requirements.regulations),
            }
            for key, requirements in self.industries.items()
        ]

    def bbbee_info(self) -> Dict[str, Any]:
        return {
            "level": self.bbbee.level,
            "status": self.bbbee.status,
            "ownership": self.bbbee.ownership,
            "recognition_level": self.bbbee.recognition_level,
            "benefits": list(self.bbbee.benefits),
            "certificate": self.bbbee.certificate,
            "verification": self.bbbee.verification,
        }
