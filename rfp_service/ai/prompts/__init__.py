"""Prompt templates for the Gemini calls."""

from .rfp import RFP_PROMPT
from .proposal import PROPOSAL_PROMPT
from .comparison import COMPARISON_PROMPT

__all__ = ["RFP_PROMPT", "PROPOSAL_PROMPT", "COMPARISON_PROMPT"]
