"""Unit tests for RFP workflow operations."""

import json
import smtplib
from unittest.mock import MagicMock

import pytest

from rfp_service.ai.schemas import ParsedRFP, ProposalComparison
from rfp_service.core.exceptions import NotFoundError
from rfp_service.core.models import (
    Dispatch,
    Pricing,
    Proposal,
    ProposalStatus,
    RFPStatus,
    TimelineUnit,
    Vendor,
)
from rfp_service.services.rfp import SAMPLE_VENDORS, RFPService, rank_proposals


@pytest.fixture
def mock_mailer():
    return MagicMock()


@pytest.fixture
def service(mock_db, mock_ai, mock_mailer):
    return RFPService(db=mock_db, ai=mock_ai, mailer=mock_mailer)


@pytest.fixture
def other_vendor() -> Vendor:
    return Vendor(id=1, name="Tech Solutions Ltd", email="contact@techsolutions.com")


class TestCreateRfp:
    def test_empty_text_rejected(self, service, mock_ai):
        with pytest.raises(ValueError):
            service.create_rfp_from_text("   ")
        mock_ai.parse_rfp.assert_not_called()

    def test_creates_draft(self, service, mock_db, mock_ai):
        mock_ai.parse_rfp.return_value = ParsedRFP.model_validate({
            "title": "Office Laptops",
            "budget": {"amount": 50000},
            "requirements": [{"item": "Laptop", "quantity": 20}],
        })
        mock_db.insert_rfp.return_value = 7

        rfp = service.create_rfp_from_text("We need 20 laptops within a month, $50k budget")

        assert rfp.id == 7
        assert rfp.status == RFPStatus.DRAFT
        assert rfp.raw_input == "We need 20 laptops within a month, $50k budget"
        stored = mock_db.insert_rfp.call_args.args[0]
        assert stored.title == "Office Laptops"


class TestSendRfp:
    def test_requires_vendor_ids(self, service):
        with pytest.raises(ValueError):
            service.send_rfp_to_vendors(7, [])

    def test_missing_rfp(self, service, mock_db):
        mock_db.get_rfp.return_value = None
        with pytest.raises(NotFoundError):
            service.send_rfp_to_vendors(7, [3])

    def test_no_vendors_found(self, service, mock_db, sample_rfp):
        mock_db.get_rfp.return_value = sample_rfp
        mock_db.get_vendors_by_ids.return_value = []
        with pytest.raises(NotFoundError):
            service.send_rfp_to_vendors(7, [42])

    def test_partial_failure(self, service, mock_db, mock_mailer, sample_rfp, sample_vendor, other_vendor):
        mock_db.get_rfp.return_value = sample_rfp
        mock_db.get_vendors_by_ids.return_value = [other_vendor, sample_vendor]
        mock_mailer.send.side_effect = ["<m1@procurement.example.com>", smtplib.SMTPException("refused")]

        results = service.send_rfp_to_vendors(7, [1, 3])

        assert [r.status for r in results] == ["sent", "failed"]
        assert results[0].message_id == "<m1@procurement.example.com>"
        assert results[1].error == "refused"

        dispatch = mock_db.record_dispatch.call_args.args[0]
        assert isinstance(dispatch, Dispatch)
        assert dispatch.vendor_id == 1
        assert dispatch.message_id == "<m1@procurement.example.com>"
        mock_db.record_dispatch.assert_called_once()
        mock_db.update_rfp_status.assert_called_once_with(7, RFPStatus.SENT, only_if=RFPStatus.DRAFT)

        sent_message = mock_mailer.send.call_args_list[0].args[0]
        assert sent_message["Subject"] == "RFP: Office Laptops and Monitors"

    def test_all_failed_leaves_status(self, service, mock_db, mock_mailer, sample_rfp, sample_vendor):
        mock_db.get_rfp.return_value = sample_rfp
        mock_db.get_vendors_by_ids.return_value = [sample_vendor]
        mock_mailer.send.side_effect = OSError("no route")

        results = service.send_rfp_to_vendors(7, [3])

        assert results[0].status == "failed"
        mock_db.update_rfp_status.assert_not_called()


class TestEditRfp:
    def test_update_changes_only_given_fields(self, service, mock_db, sample_rfp):
        mock_db.get_rfp.return_value = sample_rfp
        mock_db.update_rfp.return_value = True

        rfp = service.update_rfp(7, title="  Laptops Only ", budget_amount=42000, delivery_unit="weeks")

        stored = mock_db.update_rfp.call_args.args[0]
        assert stored.title == "Laptops Only"
        assert stored.budget.amount == 42000
        assert stored.budget.currency == "USD"
        assert stored.delivery_timeline.value == 30
        assert stored.delivery_timeline.unit == TimelineUnit.WEEKS
        assert stored.payment_terms == sample_rfp.payment_terms
        assert rfp is sample_rfp

    @pytest.mark.parametrize(
        "changes",
        [{"title": "  "}, {"budget_amount": -1}, {"delivery_unit": "fortnights"}],
    )
    def test_update_rejects_invalid_values(self, service, mock_db, sample_rfp, changes):
        mock_db.get_rfp.return_value = sample_rfp

        with pytest.raises(ValueError):
            service.update_rfp(7, **changes)
        mock_db.update_rfp.assert_not_called()

    def test_update_missing_rfp(self, service, mock_db):
        mock_db.get_rfp.return_value = None
        with pytest.raises(NotFoundError):
            service.update_rfp(99, title="Desks")

    def test_delete(self, service, mock_db):
        mock_db.delete_rfp.return_value = True
        service.delete_rfp(7)
        mock_db.delete_rfp.assert_called_once_with(7)

    def test_delete_missing_rfp(self, service, mock_db):
        mock_db.delete_rfp.return_value = False
        with pytest.raises(NotFoundError):
            service.delete_rfp(99)


class TestCompareProposals:
    def test_scores_and_ranks(self, service, mock_db, mock_ai, sample_rfp, sample_proposal, other_vendor):
        cheaper = Proposal(
            id=22,
            rfp_id=7,
            vendor_id=other_vendor.id,
            vendor=other_vendor,
            pricing=Pricing(total_amount=28000),
        )
        mock_db.get_rfp.return_value = sample_rfp
        mock_db.get_proposals_for_rfp.return_value = [cheaper, sample_proposal]
        mock_ai.compare_proposals.return_value = ProposalComparison.model_validate({
            "overallRecommendation": "Global Hardware offers the best overall value",
            "vendorScores": [
                {"vendorName": " tech solutions ltd", "overallScore": 70, "pros": ["cheap"]},
                {"vendorName": "Global Hardware Inc", "overallScore": 88, "priceScore": 80},
                {"vendorName": "Unknown Co", "overallScore": 50},
            ],
        })

        report = service.compare_proposals(7)

        assert [p.id for p in report.proposals] == [21, 22]
        assert report.unmatched_vendors == ["Unknown Co"]
        assert mock_db.update_proposal_scores.call_count == 2

        scored = {c.args[0]: c.args for c in mock_db.update_proposal_scores.call_args_list}
        assert scored[21][1] == 88.0
        assert json.loads(scored[21][2])["priceScore"] == 80.0
        assert json.loads(scored[22][2])["pros"] == ["cheap"]

        summaries = mock_ai.compare_proposals.call_args.args[1]
        assert {s["vendorName"] for s in summaries} == {"Tech Solutions Ltd", "Global Hardware Inc"}

    def test_missing_rfp(self, service, mock_db):
        mock_db.get_rfp.return_value = None
        with pytest.raises(NotFoundError):
            service.compare_proposals(7)

    def test_no_proposals(self, service, mock_db, mock_ai, sample_rfp):
        mock_db.get_rfp.return_value = sample_rfp
        mock_db.get_proposals_for_rfp.return_value = []

        with pytest.raises(NotFoundError):
            service.compare_proposals(7)
        mock_ai.compare_proposals.assert_not_called()


class TestStatusUpdates:
    def test_proposal_status(self, service, mock_db, sample_proposal):
        mock_db.update_proposal_status.return_value = True
        mock_db.get_proposal.return_value = sample_proposal

        result = service.update_proposal_status(21, ProposalStatus.ACCEPTED)

        assert result is sample_proposal
        mock_db.update_proposal_status.assert_called_once_with(21, ProposalStatus.ACCEPTED)

    def test_missing_proposal(self, service, mock_db):
        mock_db.update_proposal_status.return_value = False
        with pytest.raises(NotFoundError):
            service.update_proposal_status(99, ProposalStatus.REJECTED)

    def test_missing_rfp_status(self, service, mock_db):
        mock_db.update_rfp_status.return_value = False
        with pytest.raises(NotFoundError):
            service.update_rfp_status(99, RFPStatus.COMPLETED)


def test_rank_puts_unscored_last():
    a = Proposal(rfp_id=1, vendor_id=1, ai_score=None, id=1)
    b = Proposal(rfp_id=1, vendor_id=2, ai_score=40, id=2)
    c = Proposal(rfp_id=1, vendor_id=3, ai_score=90, id=3)

    assert [p.id for p in rank_proposals([a, b, c])] == [3, 2, 1]


def test_seed_vendors_skips_existing(service, mock_db):
    existing = SAMPLE_VENDORS[0].email
    mock_db.find_vendor_by_email.side_effect = lambda email: Vendor(name="x", email=email) if email == existing else None
    mock_db.insert_vendor.side_effect = [101, 102, 103, 104]

    created = service.seed_vendors()

    assert [v.id for v in created] == [101, 102, 103, 104]
    assert existing not in {v.email for v in created}
    assert all(v.id is None for v in SAMPLE_VENDORS)


class TestAddVendor:
    def test_registers_vendor(self, service, mock_db):
        mock_db.find_vendor_by_email.return_value = None
        mock_db.insert_vendor.return_value = 42

        vendor = service.add_vendor(Vendor(
            name=" Müller Bürotechnik ",
            email="Hans Müller <hans@vendor.de>",
            company="Müller GmbH",
        ))

        assert vendor.id == 42
        assert vendor.name == "Müller Bürotechnik"
        assert vendor.email == "hans@vendor.de"
        stored = mock_db.insert_vendor.call_args.args[0]
        assert stored.company == "Müller GmbH"

    def test_duplicate_email_rejected(self, service, mock_db, sample_vendor):
        mock_db.find_vendor_by_email.return_value = sample_vendor

        with pytest.raises(ValueError, match="already exists"):
            service.add_vendor(Vendor(name="Global", email="info@globalhardware.com"))
        mock_db.insert_vendor.assert_not_called()

    @pytest.mark.parametrize("name, email", [("", "a@b.com"), ("Acme", "not-an-address")])
    def test_invalid_vendor_rejected(self, service, mock_db, name, email):
        with pytest.raises(ValueError):
            service.add_vendor(Vendor(name=name, email=email))
        mock_db.insert_vendor.assert_not_called()
