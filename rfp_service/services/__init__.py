"""External services: IMAP, SMTP, correlation and the RFP workflow."""

from .imap import IMAPClient
from .mailer import Mailer, compose_rfp_email
from .correlation import Correlation, Correlator, extract_rfp_title

__all__ = [
    "IMAPClient",
    "Mailer",
    "compose_rfp_email",
    "Correlation",
    "Correlator",
    "extract_rfp_title",
]
