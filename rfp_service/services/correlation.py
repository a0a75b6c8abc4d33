"""
Match an inbound vendor email to the vendor and RFP it answers.
"""

import re
from dataclasses import dataclass

from rfp_service.core.database import Database
from rfp_service.core.logging import get_logger
from rfp_service.core.models import RFP, InboundEmail, Vendor

log = get_logger(__name__)

# Reply/forward prefixes in the languages vendors commonly use
_REPLY_PREFIX_RE = re.compile(r"^\s*(?:(?:re|fwd?|aw|wg|sv|antw)\s*(?:\[\d+\])?\s*:\s*)+", re.IGNORECASE)
_RFP_TITLE_RE = re.compile(r"\bRFP\s*:\s*(.+)$", re.IGNORECASE)


def strip_reply_prefixes(subject: str) -> str:
    return _REPLY_PREFIX_RE.sub("", subject or "").strip()


def extract_rfp_title(subject: str) -> str | None:
    """
    Pull the RFP title out of a reply subject.

    'Re: Fwd: RFP: Office Laptops' -> 'Office Laptops'. Returns None when the
    subject carries no 'RFP:' marker.
    """
    match = _RFP_TITLE_RE.search(strip_reply_prefixes(subject))
    if not match:
        return None
    title = strip_reply_prefixes(match.group(1))
    return title or None


@dataclass
class Correlation:
    """Outcome of matching one email. reason is set when a match is missing."""

    vendor: Vendor | None = None
    rfp: RFP | None = None
    reason: str | None = None
    matched_by: str | None = None

    @property
    def matched(self) -> bool:
        return self.vendor is not None and self.rfp is not None


class Correlator:
    """Resolves vendor by sender address and RFP by thread headers or subject."""

    def __init__(self, db: Database | None = None):
        self.db = db or Database()

    def correlate(self, email: InboundEmail) -> Correlation:
        vendor = self.db.find_vendor_by_email(email.sender_email)
        if vendor is None:
            log.info("correlation_unknown_vendor", sender=email.sender_email)
            return Correlation(reason="unknown_vendor")

        rfp = self.db.find_rfp_by_dispatch_message_ids(email.reference_ids)
        if rfp is not None:
            log.info("correlation_matched", rfp_id=rfp.id, vendor_id=vendor.id, matched_by="thread")
            return Correlation(vendor=vendor, rfp=rfp, matched_by="thread")

        title = extract_rfp_title(email.subject)
        if not title:
            log.info("correlation_no_rfp_title", subject=email.subject)
            return Correlation(vendor=vendor, reason="no_rfp_match")

        rfp = self._pick_rfp(self.db.find_rfps_by_title(title), title, vendor)
        if rfp is None:
            log.info("correlation_no_rfp_match", title=title, vendor_id=vendor.id)
            return Correlation(vendor=vendor, reason="no_rfp_match")

        log.info("correlation_matched", rfp_id=rfp.id, vendor_id=vendor.id, matched_by="subject")
        return Correlation(vendor=vendor, rfp=rfp, matched_by="subject")

    @staticmethod
    def _pick_rfp(candidates: list[RFP], title: str, vendor: Vendor) -> RFP | None:
        """
        Choose among title matches.

        Exact title matches beat containment matches. Within that group an RFP
        actually sent to this vendor wins, then the newest (candidates arrive
        newest first).
        """
        if not candidates:
            return None

        exact = [r for r in candidates if r.title.strip().lower() == title.lower()]
        pool = exact or candidates

        for rfp in pool:
            if any(d.vendor_id == vendor.id for d in rfp.sent_to_vendors):
                return rfp
        return pool[0]
