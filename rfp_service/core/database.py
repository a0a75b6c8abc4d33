"""
Database repository for vendors, RFPs, proposals and inbound vendor email.

Provides PostgreSQL operations for storing and retrieving records.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Json

from rfp_service.config import settings
from rfp_service.core.logging import get_logger
from rfp_service.core.models import (
    RFP,
    Attachment,
    Budget,
    DeliveryTimeline,
    Dispatch,
    InboundEmail,
    LineItem,
    Pricing,
    ProcessingLog,
    Proposal,
    ProposalStatus,
    Requirement,
    RFPStatus,
    TimelineUnit,
    Vendor,
    VendorStatus,
    clamp_score,
)

log = get_logger(__name__)


SCHEMA_SQL = """
-- vendors: suppliers that can receive RFPs
CREATE TABLE IF NOT EXISTS vendors (
    id SERIAL PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    email VARCHAR(255) NOT NULL,
    company VARCHAR(255),
    phone VARCHAR(50),
    specialization VARCHAR(255),
    address TEXT,
    status VARCHAR(20) DEFAULT 'active',
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_vendors_email ON vendors(LOWER(email));

-- rfps: structured requests for proposal
CREATE TABLE IF NOT EXISTS rfps (
    id SERIAL PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    budget_amount NUMERIC NOT NULL DEFAULT 0,
    budget_currency VARCHAR(10) DEFAULT 'USD',
    requirements JSONB DEFAULT '[]',
    delivery_value NUMERIC,
    delivery_unit VARCHAR(10) DEFAULT 'days',
    payment_terms TEXT DEFAULT 'Net 30',
    warranty TEXT,
    additional_terms TEXT,
    status VARCHAR(20) DEFAULT 'draft',
    raw_input TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_rfps_title ON rfps(LOWER(title));

-- rfp_dispatches: one row per RFP email sent to a vendor
CREATE TABLE IF NOT EXISTS rfp_dispatches (
    id SERIAL PRIMARY KEY,
    rfp_id INTEGER REFERENCES rfps(id) ON DELETE CASCADE,
    vendor_id INTEGER REFERENCES vendors(id) ON DELETE CASCADE,
    message_id TEXT UNIQUE NOT NULL,
    sent_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_dispatches_rfp ON rfp_dispatches(rfp_id);

-- proposals: parsed vendor replies, one per (rfp, vendor)
CREATE TABLE IF NOT EXISTS proposals (
    id SERIAL PRIMARY KEY,
    rfp_id INTEGER NOT NULL REFERENCES rfps(id) ON DELETE CASCADE,
    vendor_id INTEGER NOT NULL REFERENCES vendors(id) ON DELETE CASCADE,
    pricing JSONB NOT NULL,
    delivery_timeline JSONB,
    payment_terms TEXT,
    warranty TEXT,
    additional_terms TEXT,
    compliance_score NUMERIC CHECK (compliance_score BETWEEN 0 AND 100),
    ai_summary TEXT,
    ai_score NUMERIC CHECK (ai_score BETWEEN 0 AND 100),
    ai_recommendation TEXT,
    raw_email_content TEXT,
    email_received_at TIMESTAMPTZ,
    attachments JSONB DEFAULT '[]',
    status VARCHAR(20) DEFAULT 'received',
    source_message_id TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE (rfp_id, vendor_id)
);

-- inbound_emails: raw vendor replies fetched from IMAP
CREATE TABLE IF NOT EXISTS inbound_emails (
    id SERIAL PRIMARY KEY,
    message_id TEXT UNIQUE NOT NULL,
    mailbox VARCHAR(255),
    folder VARCHAR(100),
    subject TEXT,
    sender TEXT,
    sender_address TEXT,
    recipient TEXT,
    email_date TIMESTAMPTZ,
    body_plain TEXT,
    body_html TEXT,
    in_reply_to TEXT,
    references_header TEXT,
    attachments JSONB DEFAULT '[]',
    fetched_at TIMESTAMPTZ DEFAULT NOW(),

    -- Processing tracking
    processed BOOLEAN DEFAULT FALSE,
    processed_at TIMESTAMPTZ,
    outcome VARCHAR(50),

    -- Error handling
    error_message TEXT,
    retry_count INTEGER DEFAULT 0,
    last_retry_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_inbound_processed ON inbound_emails(processed);

-- Tables created before message ids and sender addresses were widened
ALTER TABLE rfp_dispatches ALTER COLUMN message_id TYPE TEXT;
ALTER TABLE proposals ALTER COLUMN source_message_id TYPE TEXT;
ALTER TABLE inbound_emails ALTER COLUMN message_id TYPE TEXT;
ALTER TABLE inbound_emails ALTER COLUMN sender TYPE TEXT;
ALTER TABLE inbound_emails ALTER COLUMN recipient TYPE TEXT;
ALTER TABLE inbound_emails ADD COLUMN IF NOT EXISTS sender_address TEXT;

CREATE INDEX IF NOT EXISTS idx_inbound_sender_address ON inbound_emails(LOWER(sender_address));

-- processing_logs: audit trail
CREATE TABLE IF NOT EXISTS processing_logs (
    id SERIAL PRIMARY KEY,
    email_id INTEGER REFERENCES inbound_emails(id) ON DELETE CASCADE,
    action VARCHAR(50),
    result_id VARCHAR(100),
    details JSONB,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_logs_email ON processing_logs(email_id);
"""

RFP_SELECT = """
SELECT r.id, r.title, r.description, r.budget_amount, r.budget_currency,
       r.requirements, r.delivery_value, r.delivery_unit, r.payment_terms,
       r.warranty, r.additional_terms, r.status, r.raw_input,
       r.created_at, r.updated_at,
       COALESCE((
           SELECT json_agg(json_build_object(
               'vendor_id', d.vendor_id,
               'message_id', d.message_id,
               -- Fixed six-digit fraction so datetime.fromisoformat accepts it
               'sent_at', to_char(d.sent_at AT TIME ZONE 'UTC', 'YYYY-MM-DD"T"HH24:MI:SS.US"+00:00"')
           ) ORDER BY d.sent_at)
           FROM rfp_dispatches d
           WHERE d.rfp_id = r.id
       ), '[]'::json) AS dispatches
FROM rfps r
"""

PROPOSAL_SELECT = """
SELECT p.id, p.rfp_id, p.vendor_id, p.pricing, p.delivery_timeline,
       p.payment_terms, p.warranty, p.additional_terms, p.compliance_score,
       p.ai_summary, p.ai_score, p.ai_recommendation, p.raw_email_content,
       p.email_received_at, p.attachments, p.status, p.source_message_id,
       p.created_at, p.updated_at,
       v.name AS vendor_name, v.email AS vendor_email, v.company AS vendor_company,
       v.specialization AS vendor_specialization
FROM proposals p
JOIN vendors v ON v.id = p.vendor_id
"""

EMAIL_SELECT = """
SELECT id, message_id, mailbox, folder, subject, sender, sender_address, recipient,
       email_date, body_plain, body_html, in_reply_to, references_header,
       attachments, processed, processed_at, outcome, error_message, retry_count
FROM inbound_emails
"""


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_float(value: Any) -> float | None:
    return float(value) if value is not None else None


def _timeline_to_json(timeline: DeliveryTimeline) -> dict[str, Any]:
    return {
        "value": timeline.value,
        "unit": timeline.unit.value,
        "description": timeline.description,
    }


def _timeline_from_json(data: dict[str, Any] | None) -> DeliveryTimeline:
    data = data or {}
    return DeliveryTimeline(
        value=_to_float(data.get("value")),
        unit=TimelineUnit.parse(data.get("unit")),
        description=data.get("description") or "",
    )


def _pricing_to_json(pricing: Pricing) -> dict[str, Any]:
    return {
        "totalAmount": pricing.total_amount,
        "currency": pricing.currency,
        "breakdown": [
            {
                "item": li.item,
                "unitPrice": li.unit_price,
                "quantity": li.quantity,
                "totalPrice": li.total_price,
            }
            for li in pricing.breakdown
        ],
    }


def _pricing_from_json(data: dict[str, Any] | None) -> Pricing:
    data = data or {}
    return Pricing(
        total_amount=_to_float(data.get("totalAmount")) or 0.0,
        currency=data.get("currency") or "USD",
        breakdown=[
            LineItem(
                item=li.get("item") or "",
                unit_price=_to_float(li.get("unitPrice")),
                quantity=_to_float(li.get("quantity")),
                total_price=_to_float(li.get("totalPrice")),
            )
            for li in data.get("breakdown") or []
        ],
    )


def _attachments_to_json(attachments: list[Attachment]) -> list[dict[str, Any]]:
    return [
        {"filename": a.filename, "content_type": a.content_type, "size_bytes": a.size_bytes}
        for a in attachments
    ]


def _attachments_from_json(data: list[dict[str, Any]] | None, email_id: int | None = None) -> list[Attachment]:
    return [
        Attachment(
            filename=a.get("filename") or "unnamed",
            content_type=a.get("content_type") or "application/octet-stream",
            size_bytes=a.get("size_bytes") or 0,
            email_id=email_id,
        )
        for a in data or []
    ]


def _row_to_vendor(row: dict[str, Any]) -> Vendor:
    return Vendor(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        company=row["company"] or "",
        phone=row["phone"] or "",
        specialization=row["specialization"] or "",
        address=row["address"] or "",
        status=VendorStatus(row["status"]) if row["status"] else VendorStatus.ACTIVE,
    )


def _row_to_rfp(row: dict[str, Any]) -> RFP:
    dispatches = []
    for d in row.get("dispatches") or []:
        sent_at = d.get("sent_at")
        if isinstance(sent_at, str):
            sent_at = datetime.fromisoformat(sent_at)
        dispatches.append(Dispatch(
            rfp_id=row["id"],
            vendor_id=d["vendor_id"],
            message_id=d["message_id"],
            sent_at=sent_at,
        ))

    return RFP(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        budget=Budget(
            amount=_to_float(row["budget_amount"]) or 0.0,
            currency=row["budget_currency"] or "USD",
        ),
        requirements=[
            Requirement(
                item=r.get("item") or "",
                quantity=r.get("quantity"),
                specifications=r.get("specifications") or "",
            )
            for r in row["requirements"] or []
        ],
        delivery_timeline=DeliveryTimeline(
            value=_to_float(row["delivery_value"]),
            unit=TimelineUnit.parse(row["delivery_unit"]),
        ),
        payment_terms=row["payment_terms"] or "",
        warranty=row["warranty"] or "",
        additional_terms=row["additional_terms"] or "",
        status=RFPStatus(row["status"]) if row["status"] else RFPStatus.DRAFT,
        raw_input=row["raw_input"] or "",
        sent_to_vendors=dispatches,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_proposal(row: dict[str, Any]) -> Proposal:
    return Proposal(
        id=row["id"],
        rfp_id=row["rfp_id"],
        vendor_id=row["vendor_id"],
        pricing=_pricing_from_json(row["pricing"]),
        delivery_timeline=_timeline_from_json(row["delivery_timeline"]),
        payment_terms=row["payment_terms"] or "",
        warranty=row["warranty"] or "",
        additional_terms=row["additional_terms"] or "",
        compliance_score=_to_float(row["compliance_score"]),
        ai_summary=row["ai_summary"] or "",
        ai_score=_to_float(row["ai_score"]),
        ai_recommendation=row["ai_recommendation"] or "",
        raw_email_content=row["raw_email_content"] or "",
        email_received_at=row["email_received_at"],
        attachments=_attachments_from_json(row["attachments"]),
        status=ProposalStatus(row["status"]) if row["status"] else ProposalStatus.RECEIVED,
        source_message_id=row["source_message_id"] or "",
        vendor=Vendor(
            id=row["vendor_id"],
            name=row["vendor_name"],
            email=row["vendor_email"],
            company=row["vendor_company"] or "",
            specialization=row["vendor_specialization"] or "",
        ),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_email(row: dict[str, Any]) -> InboundEmail:
    return InboundEmail(
        id=row["id"],
        message_id=row["message_id"],
        mailbox=row["mailbox"] or "",
        folder=row["folder"] or "",
        subject=row["subject"] or "",
        sender=row["sender"] or "",
        sender_address=row["sender_address"] or "",
        recipient=row["recipient"] or "",
        email_date=row["email_date"],
        body_plain=row["body_plain"] or "",
        body_html=row["body_html"] or "",
        in_reply_to=row["in_reply_to"] or "",
        references=row["references_header"] or "",
        attachments=_attachments_from_json(row["attachments"], email_id=row["id"]),
        processed=row["processed"],
        processed_at=row["processed_at"],
        outcome=row["outcome"],
        error_message=row["error_message"],
        retry_count=row["retry_count"] or 0,
    )


class Database:
    """PostgreSQL operations for the RFP workflow."""

    def __init__(self, connection_string: str | None = None):
        """
        Initialize database connection settings.

        Args:
            connection_string: PostgreSQL connection URL. Uses settings if not provided.
        """
        self.connection_string = connection_string or settings.database_url

    @contextmanager
    def get_connection(self) -> Generator[psycopg.Connection, None, None]:
        """Get a database connection as a context manager."""
        conn = psycopg.connect(self.connection_string, row_factory=dict_row)
        try:
            yield conn
        finally:
            conn.close()

    def init_schema(self) -> None:
        """Initialize database schema (create tables if not exist)."""
        with self.get_connection() as conn:
            conn.execute(SCHEMA_SQL)
            conn.commit()
            log.info("database_schema_initialized")

    # Vendors

    def insert_vendor(self, vendor: Vendor) -> int:
        sql = """
        INSERT INTO vendors (name, email, company, phone, specialization, address, status)
        VALUES (%(name)s, %(email)s, %(company)s, %(phone)s, %(specialization)s,
                %(address)s, %(status)s)
        RETURNING id
        """
        with self.get_connection() as conn:
            row = conn.execute(sql, {
                "name": vendor.name,
                "email": vendor.email.strip(),
                "company": vendor.company,
                "phone": vendor.phone,
                "specialization": vendor.specialization,
                "address": vendor.address,
                "status": vendor.status.value,
            }).fetchone()
            conn.commit()
            if not row:
                raise RuntimeError(f"Failed to insert vendor: {vendor.email}")
            log.info("vendor_inserted", vendor_id=row["id"], email=vendor.email)
            return row["id"]

    def get_vendor(self, vendor_id: int) -> Vendor | None:
        with self.get_connection() as conn:
            row = conn.execute("SELECT * FROM vendors WHERE id = %s", (vendor_id,)).fetchone()
            return _row_to_vendor(row) if row else None

    def find_vendor_by_email(self, email: str) -> Vendor | None:
        """Case-insensitive lookup of a vendor by email address."""
        if not email:
            return None
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM vendors WHERE LOWER(email) = LOWER(%s) LIMIT 1",
                (email.strip(),),
            ).fetchone()
            return _row_to_vendor(row) if row else None

    def list_vendors(self) -> list[Vendor]:
        with self.get_connection() as conn:
            rows = conn.execute("SELECT * FROM vendors ORDER BY name").fetchall()
            return [_row_to_vendor(row) for row in rows]

    def get_vendors_by_ids(self, vendor_ids: list[int]) -> list[Vendor]:
        if not vendor_ids:
            return []
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM vendors WHERE id = ANY(%s) ORDER BY id",
                (list(vendor_ids),),
            ).fetchall()
            return [_row_to_vendor(row) for row in rows]

    # RFPs

    def insert_rfp(self, rfp: RFP) -> int:
        sql = """
        INSERT INTO rfps (
            title, description, budget_amount, budget_currency, requirements,
            delivery_value, delivery_unit, payment_terms, warranty,
            additional_terms, status, raw_input
        ) VALUES (
            %(title)s, %(description)s, %(budget_amount)s, %(budget_currency)s,
            %(requirements)s, %(delivery_value)s, %(delivery_unit)s,
            %(payment_terms)s, %(warranty)s, %(additional_terms)s, %(status)s,
            %(raw_input)s
        )
        RETURNING id
        """
        with self.get_connection() as conn:
            row = conn.execute(sql, self._rfp_params(rfp)).fetchone()
            conn.commit()
            if not row:
                raise RuntimeError(f"Failed to insert RFP: {rfp.title}")
            log.info("rfp_inserted", rfp_id=row["id"], title=rfp.title)
            return row["id"]

    def update_rfp(self, rfp: RFP) -> bool:
        """Overwrite the editable fields of an existing RFP."""
        if rfp.id is None:
            raise ValueError("Cannot update an RFP without an id")
        sql = """
        UPDATE rfps
        SET title = %(title)s,
            description = %(description)s,
            budget_amount = %(budget_amount)s,
            budget_currency = %(budget_currency)s,
            requirements = %(requirements)s,
            delivery_value = %(delivery_value)s,
            delivery_unit = %(delivery_unit)s,
            payment_terms = %(payment_terms)s,
            warranty = %(warranty)s,
            additional_terms = %(additional_terms)s,
            status = %(status)s,
            updated_at = NOW()
        WHERE id = %(id)s
        """
        params = self._rfp_params(rfp)
        params["id"] = rfp.id
        with self.get_connection() as conn:
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor.rowcount > 0

    def delete_rfp(self, rfp_id: int) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM rfps WHERE id = %s", (rfp_id,))
            conn.commit()
            return cursor.rowcount > 0

    def get_rfp(self, rfp_id: int) -> RFP | None:
        with self.get_connection() as conn:
            row = conn.execute(f"{RFP_SELECT} WHERE r.id = %s", (rfp_id,)).fetchone()
            return _row_to_rfp(row) if row else None

    def list_rfps(self) -> list[RFP]:
        with self.get_connection() as conn:
            rows = conn.execute(f"{RFP_SELECT} ORDER BY r.created_at DESC").fetchall()
            return [_row_to_rfp(row) for row in rows]

    def update_rfp_status(
        self,
        rfp_id: int,
        status: RFPStatus,
        only_if: RFPStatus | None = None,
    ) -> bool:
        """
        Set an RFP's status.

        Args:
            rfp_id: RFP to update
            status: New status
            only_if: Apply only when the current status equals this value

        Returns:
            True if a row changed
        """
        sql = "UPDATE rfps SET status = %s, updated_at = NOW() WHERE id = %s"
        params: tuple = (status.value, rfp_id)
        if only_if is not None:
            sql += " AND status = %s"
            params = (status.value, rfp_id, only_if.value)

        with self.get_connection() as conn:
            cursor = conn.execute(sql, params)
            conn.commit()
            changed = cursor.rowcount > 0
            if changed:
                log.info("rfp_status_updated", rfp_id=rfp_id, status=status.value)
            return changed

    def record_dispatch(self, dispatch: Dispatch) -> None:
        sql = """
        INSERT INTO rfp_dispatches (rfp_id, vendor_id, message_id, sent_at)
        VALUES (%s, %s, %s, %s)
        ON CONFLICT (message_id) DO NOTHING
        """
        with self.get_connection() as conn:
            conn.execute(sql, (
                dispatch.rfp_id,
                dispatch.vendor_id,
                dispatch.message_id,
                dispatch.sent_at,
            ))
            conn.commit()

    def find_rfp_by_dispatch_message_ids(self, message_ids: list[str]) -> RFP | None:
        """Find the RFP whose outbound email is referenced by a reply's thread headers."""
        if not message_ids:
            return None
        sql = f"""
        {RFP_SELECT}
        WHERE r.id = (
            SELECT rfp_id FROM rfp_dispatches
            WHERE message_id = ANY(%s)
            ORDER BY sent_at DESC
            LIMIT 1
        )
        """
        with self.get_connection() as conn:
            row = conn.execute(sql, (list(message_ids),)).fetchone()
            return _row_to_rfp(row) if row else None

    def find_rfps_by_title(self, title: str, limit: int = 10) -> list[RFP]:
        """
        Find RFPs whose title matches, case-insensitively.

        Exact matches come first, then titles containing the text or contained
        in it, newest first within each group.
        """
        if not title or not title.strip():
            return []
        title = title.strip()
        pattern = f"%{_escape_like(title)}%"
        sql = f"""
        {RFP_SELECT}
        WHERE LOWER(r.title) = LOWER(%(title)s)
           OR r.title ILIKE %(pattern)s
           OR %(title)s ILIKE '%%' || r.title || '%%'
        ORDER BY (LOWER(r.title) = LOWER(%(title)s)) DESC, r.created_at DESC
        LIMIT %(limit)s
        """
        with self.get_connection() as conn:
            rows = conn.execute(sql, {"title": title, "pattern": pattern, "limit": limit}).fetchall()
            return [_row_to_rfp(row) for row in rows]

    @staticmethod
    def _rfp_params(rfp: RFP) -> dict[str, Any]:
        return {
            "title": rfp.title.strip(),
            "description": rfp.description,
            "budget_amount": rfp.budget.amount,
            "budget_currency": rfp.budget.currency,
            "requirements": Json([
                {"item": r.item, "quantity": r.quantity, "specifications": r.specifications}
                for r in rfp.requirements
            ]),
            "delivery_value": rfp.delivery_timeline.value,
            "delivery_unit": rfp.delivery_timeline.unit.value,
            "payment_terms": rfp.payment_terms,
            "warranty": rfp.warranty,
            "additional_terms": rfp.additional_terms,
            "status": rfp.status.value,
            "raw_input": rfp.raw_input,
        }

    # Proposals

    def upsert_proposal(self, proposal: Proposal) -> tuple[int, bool]:
        """
        Create or replace the proposal for (rfp_id, vendor_id).

        A later reply from the same vendor overwrites the parsed fields; the
        review status, AI comparison results and created_at are kept.

        Returns:
            (proposal_id, created) where created is False for an update
        """
        sql = """
        INSERT INTO proposals (
            rfp_id, vendor_id, pricing, delivery_timeline, payment_terms,
            warranty, additional_terms, compliance_score, ai_summary,
            raw_email_content, email_received_at, attachments, status,
            source_message_id
        ) VALUES (
            %(rfp_id)s, %(vendor_id)s, %(pricing)s, %(delivery_timeline)s,
            %(payment_terms)s, %(warranty)s, %(additional_terms)s,
            %(compliance_score)s, %(ai_summary)s, %(raw_email_content)s,
            %(email_received_at)s, %(attachments)s, %(status)s,
            %(source_message_id)s
        )
        ON CONFLICT (rfp_id, vendor_id) DO UPDATE SET
            pricing = EXCLUDED.pricing,
            delivery_timeline = EXCLUDED.delivery_timeline,
            payment_terms = EXCLUDED.payment_terms,
            warranty = EXCLUDED.warranty,
            additional_terms = EXCLUDED.additional_terms,
            compliance_score = EXCLUDED.compliance_score,
            ai_summary = EXCLUDED.ai_summary,
            raw_email_content = EXCLUDED.raw_email_content,
            email_received_at = EXCLUDED.email_received_at,
            attachments = EXCLUDED.attachments,
            source_message_id = EXCLUDED.source_message_id,
            updated_at = NOW()
        RETURNING id, (xmax = 0) AS created
        """
        params = {
            "rfp_id": proposal.rfp_id,
            "vendor_id": proposal.vendor_id,
            "pricing": Json(_pricing_to_json(proposal.pricing)),
            "delivery_timeline": Json(_timeline_to_json(proposal.delivery_timeline)),
            "payment_terms": proposal.payment_terms,
            "warranty": proposal.warranty,
            "additional_terms": proposal.additional_terms,
            "compliance_score": clamp_score(proposal.compliance_score),
            "ai_summary": proposal.ai_summary,
            "raw_email_content": proposal.raw_email_content,
            "email_received_at": proposal.email_received_at,
            "attachments": Json(_attachments_to_json(proposal.attachments)),
            "status": proposal.status.value,
            "source_message_id": proposal.source_message_id,
        }

        with self.get_connection() as conn:
            row = conn.execute(sql, params).fetchone()
            conn.commit()
            if not row:
                raise RuntimeError(
                    f"Failed to upsert proposal: rfp={proposal.rfp_id} vendor={proposal.vendor_id}"
                )
            log.info(
                "proposal_upserted",
                proposal_id=row["id"],
                rfp_id=proposal.rfp_id,
                vendor_id=proposal.vendor_id,
                created=row["created"],
            )
            return row["id"], bool(row["created"])

    def get_proposal(self, proposal_id: int) -> Proposal | None:
        with self.get_connection() as conn:
            row = conn.execute(f"{PROPOSAL_SELECT} WHERE p.id = %s", (proposal_id,)).fetchone()
            return _row_to_proposal(row) if row else None

    def get_proposals_for_rfp(self, rfp_id: int) -> list[Proposal]:
        with self.get_connection() as conn:
            rows = conn.execute(
                f"{PROPOSAL_SELECT} WHERE p.rfp_id = %s ORDER BY p.created_at DESC",
                (rfp_id,),
            ).fetchall()
            return [_row_to_proposal(row) for row in rows]

    def update_proposal_scores(
        self,
        proposal_id: int,
        ai_score: float | None,
        ai_recommendation: str,
    ) -> None:
        sql = """
        UPDATE proposals
        SET ai_score = %s, ai_recommendation = %s, updated_at = NOW()
        WHERE id = %s
        """
        with self.get_connection() as conn:
            conn.execute(sql, (clamp_score(ai_score), ai_recommendation, proposal_id))
            conn.commit()

    def update_proposal_status(self, proposal_id: int, status: ProposalStatus) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE proposals SET status = %s, updated_at = NOW() WHERE id = %s",
                (status.value, proposal_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    # Inbound email

    def insert_email(self, email: InboundEmail) -> tuple[int, bool]:
        """
        Store an inbound email, ignoring duplicates by message_id.

        Returns:
            (email_id, inserted) where inserted is False if it already existed
        """
        sql = """
        INSERT INTO inbound_emails (
            message_id, mailbox, folder, subject, sender, sender_address,
            recipient, email_date, body_plain, body_html, in_reply_to,
            references_header, attachments
        ) VALUES (
            %(message_id)s, %(mailbox)s, %(folder)s, %(subject)s, %(sender)s,
            %(sender_address)s, %(recipient)s, %(email_date)s, %(body_plain)s,
            %(body_html)s, %(in_reply_to)s, %(references)s, %(attachments)s
        )
        ON CONFLICT (message_id) DO NOTHING
        RETURNING id
        """
        params = {
            "message_id": email.message_id,
            "mailbox": email.mailbox,
            "folder": email.folder,
            "subject": email.subject,
            "sender": email.sender,
            "sender_address": email.sender_email,
            "recipient": email.recipient,
            "email_date": email.email_date,
            "body_plain": email.body_plain,
            "body_html": email.body_html,
            "in_reply_to": email.in_reply_to,
            "references": email.references,
            "attachments": Json(_attachments_to_json(email.attachments)),
        }

        with self.get_connection() as conn:
            result = conn.execute(sql, params).fetchone()
            conn.commit()

            if result:
                log.info("email_inserted", email_id=result["id"], message_id=email.message_id)
                return result["id"], True

            existing = conn.execute(
                "SELECT id FROM inbound_emails WHERE message_id = %s",
                (email.message_id,),
            ).fetchone()
            if not existing:
                raise RuntimeError(f"Failed to insert or fetch email: {email.message_id}")
            return existing["id"], False

    def get_unprocessed_emails(self, limit: int | None = None) -> list[InboundEmail]:
        """Fetch unprocessed emails that have not exhausted their retries, oldest first."""
        sql = f"""
        {EMAIL_SELECT}
        WHERE processed = FALSE
          AND (retry_count < %s OR retry_count IS NULL)
        ORDER BY email_date ASC NULLS LAST, id ASC
        LIMIT %s
        """
        with self.get_connection() as conn:
            rows = conn.execute(
                sql,
                (settings.max_retries, limit or settings.processing_batch_size),
            ).fetchall()
            emails = [_row_to_email(row) for row in rows]
            log.info("fetched_unprocessed_emails", count=len(emails))
            return emails

    def mark_processed(self, email_id: int, outcome: str) -> None:
        """Mark an email as handled (proposal stored or deliberately skipped)."""
        sql = """
        UPDATE inbound_emails
        SET processed = TRUE,
            processed_at = NOW(),
            outcome = %s,
            error_message = NULL
        WHERE id = %s
        """
        with self.get_connection() as conn:
            conn.execute(sql, (outcome, email_id))
            conn.commit()
            log.info("email_marked_processed", email_id=email_id, outcome=outcome)

    def mark_error(self, email_id: int, error_message: str) -> None:
        """Mark an email as failed; it is retried until max_retries."""
        sql = """
        UPDATE inbound_emails
        SET error_message = %s,
            retry_count = COALESCE(retry_count, 0) + 1,
            last_retry_at = NOW()
        WHERE id = %s
        """
        with self.get_connection() as conn:
            conn.execute(sql, (error_message, email_id))
            conn.commit()
            log.warning("email_marked_error", email_id=email_id, error=error_message)

    def add_processing_log(self, log_entry: ProcessingLog) -> int:
        """Add an entry to the processing audit log."""
        sql = """
        INSERT INTO processing_logs (email_id, action, result_id, details)
        VALUES (%s, %s, %s, %s)
        RETURNING id
        """
        with self.get_connection() as conn:
            result = conn.execute(sql, (
                log_entry.email_id,
                log_entry.action,
                log_entry.result_id,
                Json(log_entry.details),
            )).fetchone()
            conn.commit()
            return result["id"] if result else 0

    def get_stats(self) -> dict[str, Any]:
        """
        Get processing statistics.

        emails_pending counts emails that will still be retried; emails_failed
        counts those that ran out of retries.
        """
        sql = """
        SELECT
            (SELECT COUNT(*) FROM inbound_emails) AS emails_total,
            (SELECT COUNT(*) FROM inbound_emails WHERE processed = TRUE) AS emails_processed,
            (SELECT COUNT(*) FROM inbound_emails
             WHERE processed = FALSE AND COALESCE(retry_count, 0) < %(max_retries)s) AS emails_pending,
            (SELECT COUNT(*) FROM inbound_emails
             WHERE processed = FALSE AND retry_count >= %(max_retries)s) AS emails_failed,
            (SELECT COUNT(*) FROM inbound_emails WHERE error_message IS NOT NULL) AS emails_errored,
            (SELECT COUNT(*) FROM inbound_emails WHERE outcome LIKE 'skipped%%') AS emails_skipped,
            (SELECT COUNT(*) FROM rfps) AS rfps,
            (SELECT COUNT(*) FROM vendors) AS vendors,
            (SELECT COUNT(*) FROM proposals) AS proposals
        """
        with self.get_connection() as conn:
            row = conn.execute(sql, {"max_retries": settings.max_retries}).fetchone()
            return dict(row) if row else {}
