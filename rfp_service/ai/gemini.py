"""
Gemini implementation of the RFP parser and proposal scorer.
"""

import json
from typing import Any, TypeVar

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel, ValidationError

from rfp_service.config import settings
from rfp_service.core.exceptions import AIServiceError
from rfp_service.core.logging import get_logger
from rfp_service.ai.base import BaseAIService
from rfp_service.ai.prompts import COMPARISON_PROMPT, PROPOSAL_PROMPT, RFP_PROMPT
from rfp_service.ai.schemas import ParsedProposal, ParsedRFP, ProposalComparison

log = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class GeminiAIService(BaseAIService):
    """Gemini-backed parsing and scoring."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: genai.Client | None = None,
    ):
        self.api_key = api_key or settings.gemini_api_key
        self.model_name = model or settings.gemini_model

        if client is None:
            if not self.api_key:
                raise ValueError("GEMINI_API_KEY is required")
            client = genai.Client(api_key=self.api_key)
        self.client = client

    def parse_rfp(self, text: str) -> ParsedRFP:
        prompt = RFP_PROMPT.format(text=text.strip())
        parsed = self._generate(prompt, ParsedRFP, task="parse_rfp")
        log.info("rfp_parsed", title=parsed.title, requirements=len(parsed.requirements))
        return parsed

    def parse_vendor_response(
        self,
        body: str,
        rfp_context: dict[str, Any],
        subject: str = "",
    ) -> ParsedProposal:
        prompt = PROPOSAL_PROMPT.format(
            rfp_details=json.dumps(rfp_context, indent=2, default=str),
            subject=subject,
            body=body[:settings.ai_body_char_limit],
        )
        parsed = self._generate(prompt, ParsedProposal, task="parse_vendor_response")
        log.info(
            "vendor_response_parsed",
            rfp=rfp_context.get("title"),
            total=parsed.pricing.resolved_total(),
            compliance=parsed.compliance_score,
        )
        return parsed

    def compare_proposals(
        self,
        rfp_context: dict[str, Any],
        proposals: list[dict[str, Any]],
    ) -> ProposalComparison:
        prompt = COMPARISON_PROMPT.format(
            rfp_details=json.dumps(rfp_context, indent=2, default=str),
            proposals=json.dumps(proposals, indent=2, default=str),
        )
        comparison = self._generate(prompt, ProposalComparison, task="compare_proposals")
        log.info(
            "proposals_compared",
            rfp=rfp_context.get("title"),
            scored=len(comparison.vendor_scores),
        )
        return comparison

    def _generate(self, prompt: str, schema: type[T], task: str) -> T:
        """Run one prompt and validate the JSON answer against schema."""
        try:
            response = self.client.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=0.2,
                    response_mime_type="application/json",
                ),
            )
        except genai_errors.APIError as e:
            if e.code == 429:
                log.error("gemini_rate_limit", task=task, error=str(e))
            elif e.code in (401, 403):
                log.error("gemini_auth_error", task=task, error=str(e))
            else:
                log.error("gemini_error", task=task, error=str(e))
            raise AIServiceError(f"Gemini call failed ({task}): {e}") from e

        text = response.text or ""
        data = self._parse_response(text)
        if data is None:
            raise AIServiceError(f"Gemini returned invalid JSON ({task})")

        try:
            return schema.model_validate(data)
        except ValidationError as e:
            log.error("gemini_schema_error", task=task, error=str(e), response=text[:500])
            raise AIServiceError(f"Gemini response did not match schema ({task}): {e}") from e

    def _parse_response(self, response_text: str) -> Any | None:
        """Parse JSON from Gemini response, tolerating markdown fences."""
        text = response_text.strip()

        # Remove markdown code blocks if present
        if text.startswith("```"):
            lines = text.split("\n")
            lines = lines[1:]  # Remove opening ```
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]  # Remove closing ```
            text = "\n".join(lines)

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            log.error("gemini_parse_error", error=str(e), response=text[:500])
            return None
