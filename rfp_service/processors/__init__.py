"""Email processors."""

from .base import BaseProcessor
from .ingestion import ProposalIngestionProcessor

__all__ = ["BaseProcessor", "ProposalIngestionProcessor"]
