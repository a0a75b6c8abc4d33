"""
Vendor reply ingestion.

Fetches unread mail from the procurement inbox, stores it, matches each
message to a vendor and RFP, has the AI service extract the proposal and
upserts it. Emails are stored before they are marked read and processed from
the database, so a crash at any point loses nothing: unstored mail stays
unread on the server and stored mail stays unprocessed until it succeeds or
runs out of retries.
"""

import threading

from rfp_service.config import settings
from rfp_service.core.logging import get_logger, bind_context, clear_context
from rfp_service.core.database import Database
from rfp_service.core.models import (
    InboundEmail,
    ProcessingLog,
    ProcessingResult,
    RFPStatus,
)
from rfp_service.ai import BaseAIService, get_ai_service
from rfp_service.services.correlation import Correlator
from rfp_service.services.imap import IMAPClient
from rfp_service.processors.base import BaseProcessor

log = get_logger(__name__)

# Shared by every processor instance in the process: the scheduler tick and a
# manual check must never run at the same time
_run_lock = threading.Lock()


class ProposalIngestionProcessor(BaseProcessor):
    """Turns vendor reply emails into proposals."""

    def __init__(
        self,
        db: Database | None = None,
        imap: IMAPClient | None = None,
        ai: BaseAIService | None = None,
        correlator: Correlator | None = None,
    ):
        self.db = db or Database()
        self.imap = imap or IMAPClient()
        self._ai = ai
        self.correlator = correlator or Correlator(self.db)

    @property
    def ai(self) -> BaseAIService:
        if self._ai is None:
            self._ai = get_ai_service()
        return self._ai

    def process(self) -> dict:
        """
        Run the full pipeline: fetch new mail, then process everything pending.

        Returns:
            Statistics dict with counts (fetch_failed is set when the mailbox
            could not be read), or {"skipped_locked": 1} when another run is
            already in progress
        """
        if not _run_lock.acquire(blocking=False):
            log.info("ingestion_already_running")
            return {"skipped_locked": 1}

        try:
            stats = {
                "fetched": 0,
                "stored": 0,
                "duplicates": 0,
                "processed": 0,
                "created": 0,
                "updated": 0,
                "skipped": 0,
                "errors": 0,
            }

            # A mailbox outage must not block the backlog already stored
            try:
                fetch_stats = self.fetch_and_store()
            except Exception as e:
                log.error("ingestion_fetch_error", error=str(e))
                fetch_stats = {"errors": 1, "fetch_failed": 1}

            process_stats = self.process_pending()

            for source in (fetch_stats, process_stats):
                for key, value in source.items():
                    stats[key] = stats.get(key, 0) + value

            log.info("ingestion_complete", **stats)
            return stats
        finally:
            _run_lock.release()

    def fetch_and_store(self) -> dict:
        """
        Store unread messages and mark each one read once it is in the database.

        A message whose insert fails stays unread and is picked up next run.
        Duplicates (same Message-ID) are marked read without a second copy.

        Returns:
            Statistics dict
        """
        stats = {"fetched": 0, "stored": 0, "duplicates": 0, "errors": 0}

        with self.imap:
            for uid, email in self.imap.fetch_unseen(settings.imap_folder):
                stats["fetched"] += 1

                try:
                    _, inserted = self.db.insert_email(email)
                except Exception as e:
                    log.error("email_store_error", message_id=email.message_id, error=str(e))
                    stats["errors"] += 1
                    continue

                if inserted:
                    stats["stored"] += 1
                else:
                    stats["duplicates"] += 1

                try:
                    self.imap.mark_seen(uid)
                except Exception as e:
                    # Stored already; a re-fetch next run is deduplicated
                    log.warning("imap_mark_seen_failed", message_id=email.message_id, error=str(e))

        log.info("fetch_complete", **stats)
        return stats

    def process_pending(self, limit: int | None = None) -> dict:
        """
        Process stored emails that are not yet handled, oldest first.

        Every email handled without an exception counts as processed and is
        broken down into created, updated or skipped. A failing email is
        recorded with mark_error and retried on later runs.

        Returns:
            Statistics dict
        """
        stats = {"processed": 0, "created": 0, "updated": 0, "skipped": 0, "errors": 0}

        emails = self.db.get_unprocessed_emails(limit=limit or settings.processing_batch_size)

        log.info("processing_emails", count=len(emails))

        for email in emails:
            try:
                bind_context(email_id=email.id, message_id=email.message_id)
                result = self._process_single(email)

                stats["processed"] += 1
                if result.action == "proposal_created":
                    stats["created"] += 1
                elif result.action == "proposal_updated":
                    stats["updated"] += 1
                elif result.action.startswith("skipped"):
                    stats["skipped"] += 1

            except Exception as e:
                log.error("process_email_error", error=str(e))
                self.db.mark_error(email.id, str(e))
                stats["errors"] += 1

            finally:
                clear_context()

        return stats

    def _process_single(self, email: InboundEmail) -> ProcessingResult:
        """Correlate, parse and upsert one stored email."""
        correlation = self.correlator.correlate(email)

        if not correlation.matched:
            action = f"skipped_{correlation.reason}"
            return self._skip(email, action, correlation.vendor.id if correlation.vendor else None)

        vendor = correlation.vendor
        rfp = correlation.rfp
        bind_context(rfp_id=rfp.id, vendor_id=vendor.id)

        body = email.body
        if not body.strip():
            return self._skip(email, "skipped_empty_body", vendor.id, rfp.id)

        parsed = self.ai.parse_vendor_response(body, rfp.to_context(), subject=email.subject)

        proposal = parsed.to_proposal(rfp_id=rfp.id, vendor_id=vendor.id)
        proposal.raw_email_content = body
        proposal.email_received_at = email.email_date
        proposal.attachments = email.attachments
        proposal.source_message_id = email.message_id

        proposal_id, created = self.db.upsert_proposal(proposal)
        action = "proposal_created" if created else "proposal_updated"

        # First reply moves the RFP into review; later statuses are left alone
        self.db.update_rfp_status(rfp.id, RFPStatus.IN_REVIEW, only_if=RFPStatus.SENT)

        self.db.mark_processed(email.id, action)
        self.db.add_processing_log(ProcessingLog(
            email_id=email.id,
            action=action,
            result_id=str(proposal_id),
            details={
                "rfp_id": rfp.id,
                "vendor_id": vendor.id,
                "matched_by": correlation.matched_by,
                "total_amount": proposal.pricing.total_amount,
            },
        ))

        log.info(action, proposal_id=proposal_id, matched_by=correlation.matched_by)
        return ProcessingResult(
            success=True,
            email_id=email.id,
            action=action,
            rfp_id=rfp.id,
            vendor_id=vendor.id,
            proposal_id=proposal_id,
        )

    def _skip(
        self,
        email: InboundEmail,
        action: str,
        vendor_id: int | None = None,
        rfp_id: int | None = None,
    ) -> ProcessingResult:
        """Mark an email handled without creating a proposal."""
        details = {"sender": email.sender_email, "subject": email.subject}
        self.db.mark_processed(email.id, action)
        self.db.add_processing_log(ProcessingLog(
            email_id=email.id,
            action=action,
            details=details,
        ))
        log.info(action, **details)
        return ProcessingResult(
            success=True,
            email_id=email.id,
            action=action,
            rfp_id=rfp_id,
            vendor_id=vendor_id,
            details=details,
        )
