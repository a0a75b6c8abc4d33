"""
Pydantic models for the JSON returned by the language model.

Field names follow the camelCase keys the prompts ask for.
"""

import json
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from rfp_service.core.models import (
    RFP,
    Budget,
    DeliveryTimeline,
    LineItem,
    Pricing,
    Proposal,
    Requirement,
    TimelineUnit,
    clamp_score,
)

_NUMBER_RE = re.compile(r"(?P<number>-?\d[\d,.]*)(?P<exponent>[eE][+-]?\d+)?")


def _normalize_separators(number: str) -> str:
    """Resolve thousands and decimal separators: '12.500,00' and '12,500.00' are both 12500."""
    number = number.rstrip(",.")
    if "," in number and "." in number:
        decimal = "," if number.rfind(",") > number.rfind(".") else "."
        thousands = "." if decimal == "," else ","
        return number.replace(thousands, "").replace(decimal, ".")
    if "," in number:
        head, _, tail = number.rpartition(",")
        # A single comma followed by one or two digits is a decimal comma
        if number.count(",") == 1 and len(tail) in (1, 2):
            return f"{head}.{tail}"
        return number.replace(",", "")
    if number.count(".") > 1:
        return number.replace(".", "")
    return number


def coerce_number(value: Any) -> float | None:
    """Turn '$12,500.00', '12.500,00 EUR', '1e5' or 12500 into a float; unparseable text becomes None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if not match:
            return None
        number = _normalize_separators(match.group("number"))
        return float(number + (match.group("exponent") or ""))
    return None


class _LLMModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        # null means "not stated"; let the field default apply
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class BudgetSchema(_LLMModel):
    amount: float | None = 0.0
    currency: str | None = "USD"

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, value: Any) -> float | None:
        return coerce_number(value)


class RequirementSchema(_LLMModel):
    item: str
    quantity: int | None = None
    specifications: str | None = None

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, value: Any) -> int | None:
        number = coerce_number(value)
        return int(number) if number is not None else None


class TimelineSchema(_LLMModel):
    value: float | None = None
    unit: str | None = None
    description: str | None = None

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, value: Any) -> float | None:
        return coerce_number(value)

    def to_model(self) -> DeliveryTimeline:
        return DeliveryTimeline(
            value=self.value,
            unit=TimelineUnit.parse(self.unit),
            description=self.description or "",
        )


class ParsedRFP(_LLMModel):
    """Structured RFP extracted from a free-text request."""

    title: str
    description: str = ""
    budget: BudgetSchema = Field(default_factory=BudgetSchema)
    requirements: list[RequirementSchema] = Field(default_factory=list)
    delivery_timeline: TimelineSchema = Field(default_factory=TimelineSchema, alias="deliveryTimeline")
    payment_terms: str | None = Field(default=None, alias="paymentTerms")
    warranty: str | None = None
    additional_terms: str | None = Field(default=None, alias="additionalTerms")

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value.strip()

    def to_rfp(self, raw_input: str = "") -> RFP:
        return RFP(
            title=self.title,
            description=self.description or self.title,
            budget=Budget(
                amount=self.budget.amount or 0.0,
                currency=self.budget.currency or "USD",
            ),
            requirements=[
                Requirement(
                    item=r.item,
                    quantity=r.quantity,
                    specifications=r.specifications or "",
                )
                for r in self.requirements
            ],
            delivery_timeline=self.delivery_timeline.to_model(),
            payment_terms=self.payment_terms or "Net 30",
            warranty=self.warranty or "",
            additional_terms=self.additional_terms or "",
            raw_input=raw_input,
        )


class LineItemSchema(_LLMModel):
    item: str = ""
    unit_price: float | None = Field(default=None, alias="unitPrice")
    quantity: float | None = None
    total_price: float | None = Field(default=None, alias="totalPrice")

    @field_validator("unit_price", "quantity", "total_price", mode="before")
    @classmethod
    def coerce_numbers(cls, value: Any) -> float | None:
        return coerce_number(value)


class PricingSchema(_LLMModel):
    total_amount: float | None = Field(default=None, alias="totalAmount")
    currency: str | None = "USD"
    breakdown: list[LineItemSchema] = Field(default_factory=list)

    @field_validator("total_amount", mode="before")
    @classmethod
    def coerce_total(cls, value: Any) -> float | None:
        return coerce_number(value)

    def resolved_total(self) -> float:
        """Stated total, or the sum of line totals when the vendor gave none."""
        if self.total_amount is not None:
            return self.total_amount
        return sum(li.total_price or 0.0 for li in self.breakdown)


class ParsedProposal(_LLMModel):
    """Structured proposal extracted from a vendor's email."""

    pricing: PricingSchema = Field(default_factory=PricingSchema)
    delivery_timeline: TimelineSchema = Field(default_factory=TimelineSchema, alias="deliveryTimeline")
    payment_terms: str | None = Field(default=None, alias="paymentTerms")
    warranty: str | None = None
    additional_terms: str | None = Field(default=None, alias="additionalTerms")
    compliance_score: float | None = Field(default=None, alias="complianceScore")
    summary: str | None = None

    @field_validator("compliance_score", mode="before")
    @classmethod
    def coerce_score(cls, value: Any) -> float | None:
        return clamp_score(coerce_number(value))

    def to_proposal(self, rfp_id: int, vendor_id: int) -> Proposal:
        return Proposal(
            rfp_id=rfp_id,
            vendor_id=vendor_id,
            pricing=Pricing(
                total_amount=self.pricing.resolved_total(),
                currency=self.pricing.currency or "USD",
                breakdown=[
                    LineItem(
                        item=li.item,
                        unit_price=li.unit_price,
                        quantity=li.quantity,
                        total_price=li.total_price,
                    )
                    for li in self.pricing.breakdown
                ],
            ),
            delivery_timeline=self.delivery_timeline.to_model(),
            payment_terms=self.payment_terms or "",
            warranty=self.warranty or "",
            additional_terms=self.additional_terms or "",
            compliance_score=self.compliance_score,
            ai_summary=self.summary or "",
        )


class VendorScore(_LLMModel):
    vendor_name: str = Field(alias="vendorName")
    overall_score: float | None = Field(default=None, alias="overallScore")
    price_score: float | None = Field(default=None, alias="priceScore")
    timeline_score: float | None = Field(default=None, alias="timelineScore")
    compliance_score: float | None = Field(default=None, alias="complianceScore")
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)

    @field_validator(
        "overall_score", "price_score", "timeline_score", "compliance_score", mode="before"
    )
    @classmethod
    def coerce_scores(cls, value: Any) -> float | None:
        return clamp_score(coerce_number(value))

    def recommendation_json(self) -> str:
        """Per-vendor breakdown stored on the proposal."""
        return json.dumps({
            "priceScore": self.price_score,
            "timelineScore": self.timeline_score,
            "complianceScore": self.compliance_score,
            "pros": self.pros,
            "cons": self.cons,
        })


class ProposalComparison(_LLMModel):
    """AI comparison of every proposal received for one RFP."""

    overall_recommendation: str = Field(default="", alias="overallRecommendation")
    vendor_scores: list[VendorScore] = Field(default_factory=list, alias="vendorScores")
    key_findings: list[str] = Field(default_factory=list, alias="keyFindings")
    risk_factors: list[str] = Field(default_factory=list, alias="riskFactors")
