"""
RFP workflow operations: create from text, edit, send to vendors, compare
proposals, and vendor registration.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from email.utils import parseaddr
from typing import Any

from rfp_service.ai import BaseAIService, ProposalComparison, get_ai_service
from rfp_service.core.database import Database
from rfp_service.core.exceptions import NotFoundError
from rfp_service.core.logging import get_logger
from rfp_service.core.models import (
    RFP,
    Dispatch,
    Proposal,
    ProposalStatus,
    RFPStatus,
    TimelineUnit,
    Vendor,
)
from rfp_service.services.mailer import Mailer, compose_rfp_email

log = get_logger(__name__)

SAMPLE_VENDORS = [
    Vendor(
        name="Tech Solutions Ltd",
        email="contact@techsolutions.com",
        company="Tech Solutions Ltd",
        phone="+1-555-0101",
        specialization="IT Equipment & Software",
        address="123 Tech Street, San Francisco, CA 94102",
    ),
    Vendor(
        name="Office Supplies Co",
        email="sales@officesupplies.com",
        company="Office Supplies Co",
        phone="+1-555-0202",
        specialization="Office Furniture & Supplies",
        address="456 Business Ave, New York, NY 10001",
    ),
    Vendor(
        name="Global Hardware Inc",
        email="info@globalhardware.com",
        company="Global Hardware Inc",
        phone="+1-555-0303",
        specialization="Computer Hardware",
        address="789 Enterprise Blvd, Austin, TX 78701",
    ),
    Vendor(
        name="Industrial Equipment Pro",
        email="orders@industrialequip.com",
        company="Industrial Equipment Pro",
        phone="+1-555-0404",
        specialization="Industrial & Manufacturing Equipment",
        address="321 Factory Lane, Detroit, MI 48201",
    ),
    Vendor(
        name="Smart Tech Distributors",
        email="vendors@smarttech.com",
        company="Smart Tech Distributors",
        phone="+1-555-0505",
        specialization="Electronics & Smart Devices",
        address="555 Innovation Dr, Seattle, WA 98101",
    ),
]


@dataclass
class SendResult:
    """Delivery outcome for one vendor."""

    vendor_id: int
    vendor_name: str
    email: str
    status: str  # "sent" or "failed"
    message_id: str | None = None
    sent_at: datetime | None = None
    error: str | None = None


@dataclass
class ComparisonReport:
    rfp: RFP
    proposals: list[Proposal]
    comparison: ProposalComparison
    unmatched_vendors: list[str] = field(default_factory=list)


def proposal_summary(proposal: Proposal) -> dict[str, Any]:
    """Proposal fields handed to the comparison prompt."""
    vendor = proposal.vendor
    return {
        "vendorName": vendor.name if vendor else f"Vendor {proposal.vendor_id}",
        "vendorCompany": vendor.company if vendor else "",
        "totalAmount": proposal.pricing.total_amount,
        "currency": proposal.pricing.currency,
        "deliveryTimeline": str(proposal.delivery_timeline),
        "paymentTerms": proposal.payment_terms,
        "warranty": proposal.warranty,
        "complianceScore": proposal.compliance_score,
        "summary": proposal.ai_summary,
    }


def rank_proposals(proposals: list[Proposal]) -> list[Proposal]:
    """Highest ai_score first; unscored proposals last."""
    return sorted(
        proposals,
        key=lambda p: (p.ai_score is None, -(p.ai_score or 0.0)),
    )


class RFPService:
    """Procurement workflow over the database, the AI service and SMTP."""

    def __init__(
        self,
        db: Database | None = None,
        ai: BaseAIService | None = None,
        mailer: Mailer | None = None,
    ):
        self.db = db or Database()
        self._ai = ai
        self.mailer = mailer or Mailer()

    @property
    def ai(self) -> BaseAIService:
        # Created on first use so vendor/status commands work without a Gemini key
        if self._ai is None:
            self._ai = get_ai_service()
        return self._ai

    def create_rfp_from_text(self, text: str) -> RFP:
        """
        Structure a free-text purchasing need into a draft RFP.

        Raises:
            ValueError: If text is empty
            AIServiceError: If the model could not produce an RFP
        """
        if not text or not text.strip():
            raise ValueError("Natural language input is required")

        parsed = self.ai.parse_rfp(text)
        rfp = parsed.to_rfp(raw_input=text)
        rfp.status = RFPStatus.DRAFT
        rfp.id = self.db.insert_rfp(rfp)

        log.info("rfp_created", rfp_id=rfp.id, title=rfp.title)
        return rfp

    def get_rfp(self, rfp_id: int) -> RFP:
        rfp = self.db.get_rfp(rfp_id)
        if rfp is None:
            raise NotFoundError(f"RFP not found: {rfp_id}")
        return rfp

    def list_rfps(self) -> list[RFP]:
        return self.db.list_rfps()

    def update_rfp(
        self,
        rfp_id: int,
        title: str | None = None,
        description: str | None = None,
        budget_amount: float | None = None,
        budget_currency: str | None = None,
        delivery_value: float | None = None,
        delivery_unit: str | None = None,
        payment_terms: str | None = None,
        warranty: str | None = None,
        additional_terms: str | None = None,
    ) -> RFP:
        """
        Edit an RFP's fields; arguments left as None keep their current value.

        Raises:
            NotFoundError: If the RFP does not exist
            ValueError: If a new value is invalid
        """
        rfp = self.get_rfp(rfp_id)

        if title is not None:
            if not title.strip():
                raise ValueError("RFP title cannot be empty")
            rfp.title = title.strip()
        if description is not None:
            rfp.description = description
        if budget_amount is not None:
            if budget_amount < 0:
                raise ValueError("Budget cannot be negative")
            rfp.budget.amount = budget_amount
        if budget_currency is not None:
            rfp.budget.currency = budget_currency.strip().upper()
        if delivery_value is not None:
            rfp.delivery_timeline.value = delivery_value
        if delivery_unit is not None:
            rfp.delivery_timeline.unit = TimelineUnit(delivery_unit)
        if payment_terms is not None:
            rfp.payment_terms = payment_terms
        if warranty is not None:
            rfp.warranty = warranty
        if additional_terms is not None:
            rfp.additional_terms = additional_terms

        if not self.db.update_rfp(rfp):
            raise NotFoundError(f"RFP not found: {rfp_id}")

        log.info("rfp_updated", rfp_id=rfp_id)
        return self.get_rfp(rfp_id)

    def delete_rfp(self, rfp_id: int) -> None:
        """Delete an RFP together with its dispatches and proposals."""
        if not self.db.delete_rfp(rfp_id):
            raise NotFoundError(f"RFP not found: {rfp_id}")
        log.info("rfp_deleted", rfp_id=rfp_id)

    def send_rfp_to_vendors(self, rfp_id: int, vendor_ids: list[int]) -> list[SendResult]:
        """
        Email an RFP to each selected vendor.

        One failed delivery does not stop the others. Every successful send
        is recorded as a dispatch and a draft RFP moves to 'sent'.

        Raises:
            ValueError: If no vendor ids are given
            NotFoundError: If the RFP or all of the vendors are missing
        """
        if not vendor_ids:
            raise ValueError("RFP ID and vendor IDs are required")

        rfp = self.get_rfp(rfp_id)
        vendors = self.db.get_vendors_by_ids(vendor_ids)
        if not vendors:
            raise NotFoundError("No vendors found")

        missing = set(vendor_ids) - {v.id for v in vendors}
        if missing:
            log.warning("vendors_not_found", rfp_id=rfp_id, vendor_ids=sorted(missing))

        results = []
        for vendor in vendors:
            try:
                message = compose_rfp_email(rfp, vendor)
                message_id = self.mailer.send(message)
                sent_at = datetime.now()
                self.db.record_dispatch(Dispatch(
                    rfp_id=rfp_id,
                    vendor_id=vendor.id,
                    message_id=message_id,
                    sent_at=sent_at,
                ))
                results.append(SendResult(
                    vendor_id=vendor.id,
                    vendor_name=vendor.name,
                    email=vendor.email,
                    status="sent",
                    message_id=message_id,
                    sent_at=sent_at,
                ))
            except Exception as e:
                log.error("rfp_send_failed", rfp_id=rfp_id, vendor_id=vendor.id, error=str(e))
                results.append(SendResult(
                    vendor_id=vendor.id,
                    vendor_name=vendor.name,
                    email=vendor.email,
                    status="failed",
                    error=str(e),
                ))

        sent = sum(1 for r in results if r.status == "sent")
        if sent:
            # Only a draft becomes sent; an RFP already in review keeps its status
            self.db.update_rfp_status(rfp_id, RFPStatus.SENT, only_if=RFPStatus.DRAFT)

        log.info("rfp_sent", rfp_id=rfp_id, sent=sent, failed=len(results) - sent)
        return results

    def compare_proposals(self, rfp_id: int) -> ComparisonReport:
        """
        Score every proposal for an RFP and rank them.

        Scores are matched to proposals by vendor name; a score naming an
        unknown vendor is reported and otherwise ignored.

        Raises:
            NotFoundError: If the RFP is missing or has no proposals
            AIServiceError: If the comparison call fails
        """
        rfp = self.get_rfp(rfp_id)
        proposals = self.db.get_proposals_for_rfp(rfp_id)
        if not proposals:
            raise NotFoundError("No proposals found for this RFP")

        comparison = self.ai.compare_proposals(
            rfp.to_context(),
            [proposal_summary(p) for p in proposals],
        )

        by_name = {
            p.vendor.name.strip().lower(): p
            for p in proposals
            if p.vendor is not None
        }
        unmatched = []
        for score in comparison.vendor_scores:
            proposal = by_name.get(score.vendor_name.strip().lower())
            if proposal is None:
                unmatched.append(score.vendor_name)
                continue
            proposal.ai_score = score.overall_score
            proposal.ai_recommendation = score.recommendation_json()
            self.db.update_proposal_scores(
                proposal.id, proposal.ai_score, proposal.ai_recommendation
            )

        if unmatched:
            log.warning("comparison_unmatched_vendors", rfp_id=rfp_id, vendors=unmatched)

        log.info("proposals_scored", rfp_id=rfp_id, proposals=len(proposals))
        return ComparisonReport(
            rfp=rfp,
            proposals=rank_proposals(proposals),
            comparison=comparison,
            unmatched_vendors=unmatched,
        )

    def update_proposal_status(self, proposal_id: int, status: ProposalStatus) -> Proposal:
        if not self.db.update_proposal_status(proposal_id, status):
            raise NotFoundError(f"Proposal not found: {proposal_id}")
        log.info("proposal_status_updated", proposal_id=proposal_id, status=status.value)
        return self.db.get_proposal(proposal_id)

    def update_rfp_status(self, rfp_id: int, status: RFPStatus) -> RFP:
        if not self.db.update_rfp_status(rfp_id, status):
            raise NotFoundError(f"RFP not found: {rfp_id}")
        return self.get_rfp(rfp_id)

    def add_vendor(self, vendor: Vendor) -> Vendor:
        """
        Register a vendor; replies are matched to it by its email address.

        Raises:
            ValueError: If name or email is missing or the email is already registered
        """
        if not vendor.name or not vendor.name.strip():
            raise ValueError("Vendor name is required")
        _, address = parseaddr(vendor.email or "")
        if "@" not in address:
            raise ValueError(f"Invalid vendor email: {vendor.email!r}")
        if self.db.find_vendor_by_email(address):
            raise ValueError(f"A vendor with email {address} already exists")

        vendor = replace(vendor, name=vendor.name.strip(), email=address)
        vendor.id = self.db.insert_vendor(vendor)
        log.info("vendor_added", vendor_id=vendor.id, email=address)
        return vendor

    def seed_vendors(self) -> list[Vendor]:
        """Insert the sample vendors, skipping addresses already on file."""
        created = []
        for sample in SAMPLE_VENDORS:
            if self.db.find_vendor_by_email(sample.email):
                log.info("vendor_exists", email=sample.email)
                continue
            vendor = replace(sample)
            vendor.id = self.db.insert_vendor(vendor)
            created.append(vendor)

        log.info("vendors_seeded", created=len(created), total=len(SAMPLE_VENDORS))
        return created
