"""Core modules for the RFP workflow."""

from .logging import configure_logging, get_logger
from .exceptions import AIServiceError, NotFoundError
from .models import (
    RFP,
    Attachment,
    InboundEmail,
    Proposal,
    ProposalStatus,
    ProcessingResult,
    RFPStatus,
    Vendor,
)
from .database import Database

__all__ = [
    "configure_logging",
    "get_logger",
    "AIServiceError",
    "NotFoundError",
    "RFP",
    "Attachment",
    "InboundEmail",
    "Proposal",
    "ProposalStatus",
    "ProcessingResult",
    "RFPStatus",
    "Vendor",
    "Database",
]
