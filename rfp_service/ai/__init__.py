"""
Language model access.

Parsing of RFP text and vendor replies, and proposal scoring, is delegated
to Gemini.
"""

from rfp_service.ai.base import BaseAIService
from rfp_service.ai.schemas import ParsedProposal, ParsedRFP, ProposalComparison, VendorScore


def get_ai_service() -> BaseAIService:
    """Get the configured AI service."""
    from rfp_service.ai.gemini import GeminiAIService

    return GeminiAIService()


__all__ = [
    "BaseAIService",
    "ParsedProposal",
    "ParsedRFP",
    "ProposalComparison",
    "VendorScore",
    "get_ai_service",
]
