"""Tests for industry compliance checks."""

import pytest

HARD_HAT = "SE-HH-CLB"
M12_BOLT = "FB-HB-M12-50-88"
CABLE = "EL-CBL-25"


class TestProductStandards:
    def test_declared_and_category_standards(self, compliance_engine, product_engine):
        hat = product_engine.get_product(HARD_HAT)
        assert compliance_engine.product_standards(hat) == ["SANS-1397", "MHSA", "OHSA"]

    def test_no_duplicates(self, compliance_engine, product_engine):
        bolt = product_engine.get_product(M12_BOLT)
        standards = compliance_engine.product_standards(bolt)
        assert standards == ["SANS-1700", "ISO-9001"]


class TestCheckProductCompliance:
    def test_hard_hat_for_mining(self, compliance_engine):
        result = compliance_engine.check_product_compliance(HARD_HAT, "mining")
        assert result.compliant
        assert result.industry_display_name == "Mining"
        assert [s["id"] for s in result.mandatory_met] == ["MHSA"]
        assert [s["id"] for s in result.recommended_met] == ["SANS-1397"]
        assert [s["id"] for s in result.recommended_missing] == ["ISO-9001"]
        assert result.warnings[0] == "Missing 1 recommended certification(s)"
        assert result.regulations[0]["name"] == "Mine Health and Safety Act 29 of 1996"

    def test_bolt_not_compliant_for_mining(self, compliance_engine):
        result = compliance_engine.check_product_compliance(M12_BOLT, "Mining")
        assert not result.compliant
        assert result.mandatory_missing == [
            {"id": "MHSA", "name": "Mine Health and Safety Act conformance", "status": "required"},
        ]
        assert result.warnings[0] == "Missing 1 mandatory certification(s)"

    def test_met_and_missing_partition_industry_standards(self, compliance_engine):
        result = compliance_engine.check_product_compliance(CABLE, "electrical")
        ids = {s["id"] for s in result.met} | {s["id"] for s in result.missing}
        assert ids == {"SANS-10142", "NRCS", "SANS-1507"}
        assert result.compliant

    def test_adding_a_standard_only_moves_missing_to_met(self, compliance_engine, product_engine):
        before = compliance_engine.check_product_compliance(M12_BOLT, "mining")
        bolt = product_engine.get_product(M12_BOLT)
        bolt.specifications["standards"] = list(bolt.specifications.get("standards", [])) + ["MHSA"]
        after = compliance_engine.check_product_compliance(M12_BOLT, "mining")

        met_before = {s["id"] for s in before.met}
        met_after = {s["id"] for s in after.met}
        missing_before = {s["id"] for s in before.missing}
        missing_after = {s["id"] for s in after.missing}
        assert met_before <= met_after
        assert missing_after <= missing_before
        assert met_after - met_before == {"MHSA"} == missing_before - missing_after
        assert after.compliant and not before.compliant

    def test_unknown_industry_uses_general(self, compliance_engine):
        result = compliance_engine.check_product_compliance(M12_BOLT, "aerospace")
        assert result.industry == "general"
        assert result.compliant

    def test_missing_industry_uses_general(self, compliance_engine):
        assert compliance_engine.check_product_compliance(M12_BOLT).industry == "general"

    def test_unknown_product(self, compliance_engine):
        assert compliance_engine.check_product_compliance("missing", "mining") is None

    def test_to_dict(self, compliance_engine):
        data = compliance_engine.check_product_compliance(HARD_HAT, "mining").to_dict()
        assert set(data["standards"]) == {"met", "missing"}
        assert data["product"]["sku"] == HARD_HAT


class TestCheckStandard:
    def test_product_carries_standard(self, compliance_engine):
        result = compliance_engine.check_standard(M12_BOLT, "SANS-1700")
        assert result["compliant"]
        assert result["message"] == (
            "Hex Bolt M12 x 50mm Grade 8.8 meets Fasteners: bolts, screws, studs and nuts requirements"
        )

    def test_product_lacks_standard(self, compliance_engine):
        result = compliance_engine.check_standard(M12_BOLT, "SANS-1397")
        assert not result["compliant"]
        assert "does not have" in result["message"]

    @pytest.mark.parametrize("product_id,standard", [("missing", "SANS-1700"), (M12_BOLT, "NOPE")])
    def test_unknown(self, compliance_engine, product_id, standard):
        assert compliance_engine.check_standard(product_id, standard) is None


class TestSuitability:
    def test_hard_hat_industries(self, compliance_engine):
        summary = compliance_engine.suitability_summary(HARD_HAT)
        industries = {i["id"]: i for i in summary["suitable_industries"]}
        assert set(industries) == {"mining", "construction", "manufacturing", "general"}
        assert all(i["full_compliance"] for i in industries.values())
        assert [c["id"] for c in summary["certifications"]] == ["SANS-1397", "MHSA", "OHSA"]

    def test_unknown_product(self, compliance_engine):
        assert compliance_engine.suitability_summary("missing") is None


class TestReferenceData:
    def test_industries(self, compliance_engine):
        industries = {i["id"]: i for i in compliance_engine.all_industries()}
        assert industries["electrical"]["mandatory_count"] == 2

    def test_standards_sorted(self, compliance_engine):
        ids = [s["id"] for s in compliance_engine.all_standards()]
        assert ids == sorted(ids)
        assert "SANS-1700" in ids

    def test_bbbee(self, compliance_engine):
        info = compliance_engine.bbbee_info()
        assert info["level"] == 1
        assert info["recognition_level"] == 135
        assert info["ownership"] == "100% Black-owned"

    @pytest.mark.asyncio
    async def test_database_standards_merge(self, database, product_engine, knowledge):
        from database.seed import seed_demo_catalog
        from engines.compliance_engine import ComplianceEngine

        await seed_demo_catalog(database)
        engine = ComplianceEngine(product_engine, knowledge.compliance)
        assert await engine.load_database_standards(database) == 1
        assert engine.standards["SANS-1507"].issuing_body == "SABS"
