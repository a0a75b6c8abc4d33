"""
Shared pytest fixtures for rfp_service tests.
"""

import pytest
from datetime import datetime
from unittest.mock import MagicMock

from rfp_service.core.models import (
    RFP,
    Budget,
    DeliveryTimeline,
    Dispatch,
    InboundEmail,
    Proposal,
    Pricing,
    Requirement,
    RFPStatus,
    TimelineUnit,
    Vendor,
)


@pytest.fixture
def sample_vendor() -> Vendor:
    """Vendor that has been sent the sample RFP."""
    return Vendor(
        id=3,
        name="Global Hardware Inc",
        email="info@globalhardware.com",
        company="Global Hardware Inc",
        specialization="Computer Hardware",
    )


@pytest.fixture
def sample_rfp() -> RFP:
    """RFP already sent to the sample vendor."""
    return RFP(
        id=7,
        title="Office Laptops and Monitors",
        description="20 laptops and 15 monitors for the new Austin office",
        budget=Budget(amount=50000, currency="USD"),
        requirements=[
            Requirement(item="Laptop", quantity=20, specifications="16GB RAM, 512GB SSD"),
            Requirement(item="Monitor", quantity=15, specifications="27-inch 4K"),
        ],
        delivery_timeline=DeliveryTimeline(value=30, unit=TimelineUnit.DAYS),
        payment_terms="Net 30",
        warranty="1 year minimum",
        status=RFPStatus.SENT,
        sent_to_vendors=[
            Dispatch(
                rfp_id=7,
                vendor_id=3,
                message_id="<rfp7.1@procurement.example.com>",
                sent_at=datetime(2026, 3, 1, 9, 0, 0),
            ),
        ],
    )


@pytest.fixture
def sample_email() -> InboundEmail:
    """Vendor reply to the sample RFP."""
    return InboundEmail(
        id=11,
        message_id="<reply-001@globalhardware.com>",
        mailbox="procurement@example.com",
        folder="INBOX",
        subject="Re: RFP: Office Laptops and Monitors",
        sender="Global Hardware Sales <INFO@globalhardware.com>",
        recipient="procurement@example.com",
        email_date=datetime(2026, 3, 3, 14, 20, 0),
        body_plain="""Hello,

Thanks for the RFP. We can supply:
- 20 x Dell Latitude 5440 (16GB/512GB) at $1,150 each = $23,000
- 15 x Dell U2723QE 27" 4K at $520 each = $7,800

Total: $30,800. Delivery in 3 weeks. Payment Net 45.
3 year on-site warranty included.

Regards,
Global Hardware Sales""",
        in_reply_to="<rfp7.1@procurement.example.com>",
        references="<rfp7.1@procurement.example.com>",
    )


@pytest.fixture
def sample_proposal(sample_vendor) -> Proposal:
    return Proposal(
        id=21,
        rfp_id=7,
        vendor_id=sample_vendor.id,
        vendor=sample_vendor,
        pricing=Pricing(total_amount=30800, currency="USD"),
        delivery_timeline=DeliveryTimeline(value=3, unit=TimelineUnit.WEEKS),
        payment_terms="Net 45",
        warranty="3 years on-site",
        compliance_score=92,
        ai_summary="Full coverage, under budget",
    )


@pytest.fixture
def parsed_proposal_json() -> dict:
    """Proposal JSON as the model returns it."""
    return {
        "pricing": {
            "totalAmount": "$30,800",
            "currency": "USD",
            "breakdown": [
                {"item": "Laptop", "unitPrice": 1150, "quantity": 20, "totalPrice": 23000},
                {"item": "Monitor", "unitPrice": 520, "quantity": 15, "totalPrice": 7800},
            ],
        },
        "deliveryTimeline": {"value": 3, "unit": "weeks"},
        "paymentTerms": "Net 45",
        "warranty": "3 years on-site",
        "additionalTerms": None,
        "complianceScore": 92,
        "summary": "Full coverage, under budget",
    }


@pytest.fixture
def mock_db():
    """Mock database for testing without real DB connection."""
    db = MagicMock()
    db.insert_email.return_value = (1, True)
    db.get_unprocessed_emails.return_value = []
    db.upsert_proposal.return_value = (21, True)
    db.update_rfp_status.return_value = True
    db.find_rfp_by_dispatch_message_ids.return_value = None
    db.find_rfps_by_title.return_value = []
    return db


@pytest.fixture
def mock_ai():
    """Mock AI service."""
    return MagicMock()


@pytest.fixture
def mock_settings(monkeypatch):
    """Mock settings for testing."""
    monkeypatch.setenv("IMAP_USER", "procurement@example.com")
    monkeypatch.setenv("IMAP_PASSWORD", "test-password")
    monkeypatch.setenv("DB_PASSWORD", "test-db-password")
    monkeypatch.setenv("GEMINI_API_KEY", "test-gemini-key")
