"""Unit tests for the database layer (psycopg connection mocked)."""

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from rfp_service.config import settings
from rfp_service.core.database import (
    RFP_SELECT,
    Database,
    _escape_like,
    _row_to_proposal,
    _row_to_rfp,
)
from rfp_service.core.models import RFP, InboundEmail, Proposal, RFPStatus, TimelineUnit


@pytest.fixture
def conn():
    with patch("rfp_service.core.database.psycopg.connect") as connect:
        connection = MagicMock()
        connect.return_value = connection
        yield connection


@pytest.fixture
def db():
    return Database("postgresql://test@localhost/test")


class TestRowMapping:
    def test_rfp_row_with_dispatches(self):
        row = {
            "id": 7,
            "title": "Office Laptops",
            "description": "20 laptops",
            "budget_amount": 50000,
            "budget_currency": "USD",
            "requirements": [{"item": "Laptop", "quantity": 20, "specifications": None}],
            "delivery_value": 4,
            "delivery_unit": "weeks",
            "payment_terms": "Net 30",
            "warranty": None,
            "additional_terms": None,
            "status": "sent",
            "raw_input": "need laptops",
            "created_at": datetime(2026, 3, 1),
            "updated_at": None,
            "dispatches": [
                {"vendor_id": 3, "message_id": "<m1@x>", "sent_at": "2026-03-01T09:00:00+00:00"},
            ],
        }

        rfp = _row_to_rfp(row)

        assert rfp.status == RFPStatus.SENT
        assert rfp.budget.amount == 50000.0
        assert rfp.delivery_timeline.unit == TimelineUnit.WEEKS
        assert rfp.requirements[0].specifications == ""
        assert rfp.sent_to_vendors[0].vendor_id == 3
        assert rfp.sent_to_vendors[0].sent_at.year == 2026

    def test_proposal_row_includes_vendor(self):
        row = {
            "id": 21, "rfp_id": 7, "vendor_id": 3,
            "pricing": {"totalAmount": 30800, "currency": "USD", "breakdown": [{"item": "Laptop", "totalPrice": 23000}]},
            "delivery_timeline": {"value": 3, "unit": "weeks"},
            "payment_terms": "Net 45", "warranty": None, "additional_terms": None,
            "compliance_score": 92, "ai_summary": None, "ai_score": None,
            "ai_recommendation": None, "raw_email_content": "quote",
            "email_received_at": None, "attachments": [], "status": "received",
            "source_message_id": "<r@x>", "created_at": None, "updated_at": None,
            "vendor_name": "Global Hardware Inc", "vendor_email": "info@globalhardware.com",
            "vendor_company": None, "vendor_specialization": None,
        }

        proposal = _row_to_proposal(row)

        assert proposal.pricing.total_amount == 30800.0
        assert proposal.pricing.breakdown[0].total_price == 23000.0
        assert proposal.vendor.name == "Global Hardware Inc"
        assert proposal.ai_score is None

    def test_escape_like(self):
        assert _escape_like("100%_done") == "100\\%\\_done"


class TestDatabase:
    def test_upsert_proposal_reports_created(self, db, conn):
        conn.execute.return_value.fetchone.return_value = {"id": 21, "created": True}

        result = db.upsert_proposal(Proposal(rfp_id=7, vendor_id=3, compliance_score=140))

        assert result == (21, True)
        sql, params = conn.execute.call_args.args
        assert "ON CONFLICT (rfp_id, vendor_id) DO UPDATE" in sql
        assert params["compliance_score"] == 100.0
        conn.commit.assert_called_once()
        conn.close.assert_called_once()

    def test_insert_email_duplicate_returns_existing_id(self, db, conn):
        conn.execute.return_value.fetchone.side_effect = [None, {"id": 5}]

        assert db.insert_email(InboundEmail(message_id="<dup@x>")) == (5, False)

    def test_get_unprocessed_emails_respects_retry_limit(self, db, conn):
        conn.execute.return_value.fetchall.return_value = []

        db.get_unprocessed_emails(limit=10)

        sql, params = conn.execute.call_args.args
        assert "retry_count < %s" in sql
        assert params == (settings.max_retries, 10)

    def test_update_rfp_status_conditional(self, db, conn):
        conn.execute.return_value.rowcount = 0

        changed = db.update_rfp_status(7, RFPStatus.IN_REVIEW, only_if=RFPStatus.SENT)

        assert changed is False
        sql, params = conn.execute.call_args.args
        assert sql.endswith("AND status = %s")
        assert params == ("in-review", 7, "sent")

    def test_find_rfp_by_dispatch_without_ids_skips_query(self, db, conn):
        assert db.find_rfp_by_dispatch_message_ids([]) is None
        conn.execute.assert_not_called()

    def test_upsert_keeps_review_status_and_scores(self, db, conn):
        conn.execute.return_value.fetchone.return_value = {"id": 21, "created": False}

        assert db.upsert_proposal(Proposal(rfp_id=7, vendor_id=3)) == (21, False)

        sql, _ = conn.execute.call_args.args
        update_clause = sql.split("DO UPDATE SET")[1].split("RETURNING")[0]
        assert "pricing = EXCLUDED.pricing" in update_clause
        for column in ("status", "ai_score", "ai_recommendation", "created_at"):
            assert f"{column} =" not in update_clause

    def test_find_rfps_by_title_exact_first_and_escaped(self, db, conn):
        conn.execute.return_value.fetchall.return_value = []

        db.find_rfps_by_title("  100% Cotton_Shirts ")

        sql, params = conn.execute.call_args.args
        assert params["title"] == "100% Cotton_Shirts"
        assert params["pattern"] == "%100\\% Cotton\\_Shirts%"
        assert "ORDER BY (LOWER(r.title) = LOWER(%(title)s)) DESC, r.created_at DESC" in sql

    def test_find_rfps_by_blank_title_skips_query(self, db, conn):
        assert db.find_rfps_by_title("   ") == []
        conn.execute.assert_not_called()

    def test_mark_error_increments_retry_count(self, db, conn):
        db.mark_error(11, "Gemini down")

        sql, params = conn.execute.call_args.args
        assert "retry_count = COALESCE(retry_count, 0) + 1" in sql
        assert params == ("Gemini down", 11)
        conn.commit.assert_called_once()

    def test_insert_email_stores_parsed_sender_address(self, db, conn):
        conn.execute.return_value.fetchone.return_value = {"id": 9}
        email = InboundEmail(
            message_id="<comma@vendor.de>",
            sender="Müller, Hans <Hans@Vendor.de>",
            sender_address="Hans@Vendor.de",
        )

        assert db.insert_email(email) == (9, True)
        _, params = conn.execute.call_args.args
        assert params["sender_address"] == "hans@vendor.de"

    def test_update_and_delete_rfp_report_missing_rows(self, db, conn):
        conn.execute.return_value.rowcount = 0

        assert db.update_rfp(RFP(title="Desks", description="10 desks", id=99)) is False
        assert db.delete_rfp(99) is False

    def test_update_rfp_requires_id(self, db, conn):
        with pytest.raises(ValueError):
            db.update_rfp(RFP(title="Desks", description="10 desks"))

    def test_stats_separate_exhausted_retries(self, db, conn):
        conn.execute.return_value.fetchone.return_value = {"emails_pending": 1, "emails_failed": 2}

        stats = db.get_stats()

        sql, params = conn.execute.call_args.args
        assert params == {"max_retries": settings.max_retries}
        assert "COALESCE(retry_count, 0) < %(max_retries)s) AS emails_pending" in sql
        assert "retry_count >= %(max_retries)s) AS emails_failed" in sql
        assert stats == {"emails_pending": 1, "emails_failed": 2}


class TestDispatchTimestamps:
    def test_sent_at_rendered_with_fixed_precision(self):
        assert "HH24:MI:SS.US" in RFP_SELECT

    def test_microsecond_timestamp_parses(self):
        row = {
            "id": 7, "title": "Desks", "description": "", "budget_amount": 0,
            "budget_currency": None, "requirements": [], "delivery_value": None,
            "delivery_unit": None, "payment_terms": None, "warranty": None,
            "additional_terms": None, "status": "sent", "raw_input": None,
            "created_at": None, "updated_at": None,
            "dispatches": [
                {"vendor_id": 3, "message_id": "<m1@x>", "sent_at": "2026-03-01T09:00:00.123450+00:00"},
            ],
        }

        sent_at = _row_to_rfp(row).sent_to_vendors[0].sent_at

        assert sent_at.microsecond == 123450
        assert sent_at.utcoffset().total_seconds() == 0
