"""
Abstract base class for the language model service.
"""

from abc import ABC, abstractmethod
from typing import Any

from rfp_service.ai.schemas import ParsedProposal, ParsedRFP, ProposalComparison


class BaseAIService(ABC):
    """Interface for the external parser/scorer."""

    @abstractmethod
    def parse_rfp(self, text: str) -> ParsedRFP:
        """
        Structure a free-text purchasing request.

        Raises:
            AIServiceError: If the model call fails or returns unusable JSON
        """
        pass

    @abstractmethod
    def parse_vendor_response(
        self,
        body: str,
        rfp_context: dict[str, Any],
        subject: str = "",
    ) -> ParsedProposal:
        """
        Extract a structured proposal from a vendor's email.

        Args:
            body: Email body (plain text preferred)
            rfp_context: RFP fields the reply answers (see RFP.to_context)
            subject: Email subject

        Raises:
            AIServiceError: If the model call fails or returns unusable JSON
        """
        pass

    @abstractmethod
    def compare_proposals(
        self,
        rfp_context: dict[str, Any],
        proposals: list[dict[str, Any]],
    ) -> ProposalComparison:
        """
        Score and compare the proposals received for one RFP.

        Raises:
            AIServiceError: If the model call fails or returns unusable JSON
        """
        pass
