"""Unit tests for decoding model JSON into domain objects."""

import json

import pytest
from pydantic import ValidationError

from rfp_service.ai.schemas import (
    ParsedProposal,
    ParsedRFP,
    PricingSchema,
    ProposalComparison,
    VendorScore,
    coerce_number,
)
from rfp_service.core.models import TimelineUnit


class TestCoerceNumber:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("$12,500.00", 12500.0),
            ("12500", 12500.0),
            (12500, 12500.0),
            ("approx 3.5 weeks", 3.5),
            ("12.500,00 EUR", 12500.0),
            ("EUR 1.234.567", 1234567.0),
            ("12,5", 12.5),
            ("1,250", 1250.0),
            ("1e5", 100000.0),
            ("-250.75", -250.75),
            ("call us", None),
            (None, None),
            (True, None),
        ],
    )
    def test_coerce(self, raw, expected):
        assert coerce_number(raw) == expected


class TestParsedRFP:
    def test_to_rfp_applies_defaults(self):
        parsed = ParsedRFP.model_validate({
            "title": "  Office Laptops ",
            "budget": {"amount": "$50,000", "currency": None},
            "requirements": [{"item": "Laptop", "quantity": "20 units", "specifications": None}],
            "deliveryTimeline": {"value": 30, "unit": "Days"},
            "paymentTerms": None,
        })

        rfp = parsed.to_rfp(raw_input="I need 20 laptops")

        assert rfp.title == "Office Laptops"
        assert rfp.description == "Office Laptops"
        assert rfp.budget.amount == 50000.0
        assert rfp.budget.currency == "USD"
        assert rfp.requirements[0].quantity == 20
        assert rfp.requirements[0].specifications == ""
        assert rfp.delivery_timeline.unit == TimelineUnit.DAYS
        assert rfp.payment_terms == "Net 30"
        assert rfp.raw_input == "I need 20 laptops"

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError):
            ParsedRFP.model_validate({"title": "   "})

    def test_missing_title_rejected(self):
        with pytest.raises(ValidationError):
            ParsedRFP.model_validate({"description": "no title"})


class TestParsedProposal:
    def test_to_proposal(self, parsed_proposal_json):
        parsed = ParsedProposal.model_validate(parsed_proposal_json)

        proposal = parsed.to_proposal(rfp_id=7, vendor_id=3)

        assert proposal.rfp_id == 7
        assert proposal.vendor_id == 3
        assert proposal.pricing.total_amount == 30800.0
        assert len(proposal.pricing.breakdown) == 2
        assert proposal.pricing.breakdown[0].unit_price == 1150.0
        assert proposal.delivery_timeline.unit == TimelineUnit.WEEKS
        assert proposal.payment_terms == "Net 45"
        assert proposal.additional_terms == ""
        assert proposal.compliance_score == 92.0
        assert proposal.ai_summary == "Full coverage, under budget"

    def test_total_falls_back_to_line_items(self):
        pricing = PricingSchema.model_validate({
            "breakdown": [
                {"item": "A", "totalPrice": "1,000"},
                {"item": "B", "totalPrice": 250},
                {"item": "C"},
            ],
        })
        assert pricing.resolved_total() == 1250.0

    def test_compliance_score_clamped(self):
        parsed = ParsedProposal.model_validate({"complianceScore": 150})
        assert parsed.compliance_score == 100.0

    def test_empty_object_is_valid(self):
        proposal = ParsedProposal.model_validate({}).to_proposal(rfp_id=1, vendor_id=2)
        assert proposal.pricing.total_amount == 0.0
        assert proposal.compliance_score is None


class TestComparison:
    def test_parses_aliases_and_ignores_extra_keys(self):
        comparison = ProposalComparison.model_validate({
            "overallRecommendation": "Choose Global Hardware",
            "vendorScores": [
                {"vendorName": "Global Hardware Inc", "overallScore": "88", "pros": ["price"]},
            ],
            "keyFindings": ["All bids under budget"],
            "confidence": "high",
        })

        assert comparison.overall_recommendation == "Choose Global Hardware"
        assert comparison.vendor_scores[0].overall_score == 88.0
        assert comparison.key_findings == ["All bids under budget"]
        assert comparison.risk_factors == []

    def test_recommendation_json(self):
        score = VendorScore.model_validate({
            "vendorName": "Tech Solutions Ltd",
            "overallScore": 70,
            "priceScore": 60,
            "timelineScore": 80,
            "complianceScore": 75,
            "pros": ["fast"],
            "cons": ["pricey"],
        })

        data = json.loads(score.recommendation_json())

        assert data == {
            "priceScore": 60.0,
            "timelineScore": 80.0,
            "complianceScore": 75.0,
            "pros": ["fast"],
            "cons": ["pricey"],
        }
