"""
Data models for the RFP workflow.

Uses dataclasses for clean, typed data structures.
"""

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parseaddr
from enum import Enum
from typing import Any


class RFPStatus(str, Enum):
    """Lifecycle of an RFP."""

    DRAFT = "draft"
    SENT = "sent"
    IN_REVIEW = "in-review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProposalStatus(str, Enum):
    """Review state of a vendor proposal."""

    RECEIVED = "received"
    UNDER_REVIEW = "under-review"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class VendorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class TimelineUnit(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"

    @classmethod
    def parse(cls, value: str | None) -> "TimelineUnit":
        """Lenient parse: 'Weeks', 'week' and None all map to a unit."""
        if not value:
            return cls.DAYS
        normalized = value.strip().lower()
        if not normalized.endswith("s"):
            normalized += "s"
        try:
            return cls(normalized)
        except ValueError:
            return cls.DAYS


def clamp_score(value: float | None) -> float | None:
    """Clamp a 0-100 score, passing None through."""
    if value is None:
        return None
    return max(0.0, min(100.0, float(value)))


@dataclass
class Budget:
    amount: float = 0.0
    currency: str = "USD"


@dataclass
class Requirement:
    item: str
    quantity: int | None = None
    specifications: str = ""


@dataclass
class DeliveryTimeline:
    value: float | None = None
    unit: TimelineUnit = TimelineUnit.DAYS
    description: str = ""

    def __str__(self) -> str:
        if self.value is None:
            return self.description or "Not specified"
        value = int(self.value) if float(self.value).is_integer() else self.value
        return f"{value} {self.unit.value}"


@dataclass
class Vendor:
    """A supplier that can receive RFPs."""

    name: str
    email: str
    id: int | None = None
    company: str = ""
    phone: str = ""
    specialization: str = ""
    address: str = ""
    status: VendorStatus = VendorStatus.ACTIVE


@dataclass
class Dispatch:
    """One RFP email sent to one vendor."""

    rfp_id: int
    vendor_id: int
    message_id: str
    sent_at: datetime = field(default_factory=datetime.now)


@dataclass
class RFP:
    """Request For Proposal."""

    title: str
    description: str
    budget: Budget = field(default_factory=Budget)
    requirements: list[Requirement] = field(default_factory=list)
    delivery_timeline: DeliveryTimeline = field(default_factory=DeliveryTimeline)
    payment_terms: str = "Net 30"
    warranty: str = ""
    additional_terms: str = ""
    status: RFPStatus = RFPStatus.DRAFT
    raw_input: str = ""
    id: int | None = None
    sent_to_vendors: list[Dispatch] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_context(self) -> dict[str, Any]:
        """RFP fields handed to the language model."""
        return {
            "title": self.title,
            "description": self.description,
            "budget": {"amount": self.budget.amount, "currency": self.budget.currency},
            "requirements": [
                {"item": r.item, "quantity": r.quantity, "specifications": r.specifications}
                for r in self.requirements
            ],
            "deliveryTimeline": {
                "value": self.delivery_timeline.value,
                "unit": self.delivery_timeline.unit.value,
            },
            "paymentTerms": self.payment_terms,
            "warranty": self.warranty,
        }


@dataclass
class LineItem:
    item: str
    unit_price: float | None = None
    quantity: float | None = None
    total_price: float | None = None


@dataclass
class Pricing:
    total_amount: float = 0.0
    currency: str = "USD"
    breakdown: list[LineItem] = field(default_factory=list)


@dataclass
class Attachment:
    """Email attachment metadata (content is not stored)."""

    filename: str
    content_type: str
    size_bytes: int
    email_id: int | None = None


@dataclass
class Proposal:
    """Structured vendor response to an RFP. One per (rfp_id, vendor_id)."""

    rfp_id: int
    vendor_id: int
    pricing: Pricing = field(default_factory=Pricing)
    delivery_timeline: DeliveryTimeline = field(default_factory=DeliveryTimeline)
    payment_terms: str = ""
    warranty: str = ""
    additional_terms: str = ""
    compliance_score: float | None = None
    ai_summary: str = ""
    ai_score: float | None = None
    ai_recommendation: str = ""
    raw_email_content: str = ""
    email_received_at: datetime | None = None
    attachments: list[Attachment] = field(default_factory=list)
    status: ProposalStatus = ProposalStatus.RECEIVED
    source_message_id: str = ""
    id: int | None = None
    vendor: Vendor | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class InboundEmail:
    """Raw vendor email as fetched from IMAP."""

    id: int | None = None
    message_id: str = ""
    mailbox: str = ""
    folder: str = ""
    subject: str = ""
    sender: str = ""
    sender_address: str = ""  # address part of From, parsed before MIME decoding
    recipient: str = ""
    email_date: datetime | None = None
    body_plain: str = ""
    body_html: str = ""
    in_reply_to: str = ""
    references: str = ""
    attachments: list[Attachment] = field(default_factory=list)

    # Processing state
    processed: bool = False
    processed_at: datetime | None = None
    outcome: str | None = None
    error_message: str | None = None
    retry_count: int = 0

    @property
    def body(self) -> str:
        """Get email body, preferring plain text."""
        return self.body_plain or self._strip_html(self.body_html)

    @property
    def sender_email(self) -> str:
        """Lowercased sender address, falling back to parsing the decoded From header."""
        if self.sender_address:
            return self.sender_address.strip().lower()
        if not self.sender:
            return ""
        _, address = parseaddr(self.sender)
        return address.lower() if address else ""

    @property
    def reference_ids(self) -> list[str]:
        """Message ids this email replies to, most direct first."""
        ids = re.findall(r"<[^<>\s]+>", f"{self.in_reply_to} {self.references}")
        seen: list[str] = []
        for message_id in ids:
            if message_id not in seen:
                seen.append(message_id)
        return seen

    @staticmethod
    def synthetic_message_id(sender: str, date: str, subject: str, body: str) -> str:
        """Stable id for messages that arrive without a Message-ID header."""
        digest = hashlib.sha256(
            "\x1f".join([sender, date, subject, body]).encode("utf-8", errors="replace")
        ).hexdigest()
        return f"<{digest[:32]}@synthetic.local>"

    @staticmethod
    def _strip_html(html: str) -> str:
        """Strip HTML tags from text."""
        if not html:
            return ""
        text = re.sub(r"<[^>]+>", " ", html)
        return re.sub(r"\s+", " ", text).strip()


@dataclass
class ProcessingResult:
    """Result from processing one inbound email."""

    success: bool
    email_id: int
    action: str  # e.g. "proposal_created", "proposal_updated", "skipped_unknown_vendor"
    rfp_id: int | None = None
    vendor_id: int | None = None
    proposal_id: int | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProcessingLog:
    """Audit log entry for email processing."""

    email_id: int
    action: str
    result_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
