"""
Prompt for comparing and scoring the proposals received for one RFP.
"""

COMPARISON_PROMPT = """You are an expert procurement analyst. Compare the following vendor proposals for an RFP and provide recommendations.

RFP Details:
{rfp_details}

Vendor Proposals:
{proposals}

RULES:
- Score every vendor listed above exactly once, using the vendorName as given
- All scores are integers from 0 to 100
- Weigh price against budget, delivery against the requested timeline, and coverage of the requirements

Return ONLY valid JSON (no markdown, no explanation):
{{
  "overallRecommendation": "Which vendor to choose and why (2-3 sentences)",
  "vendorScores": [
    {{
      "vendorName": "vendor name",
      "overallScore": 0,
      "priceScore": 0,
      "timelineScore": 0,
      "complianceScore": 0,
      "pros": ["list of pros"],
      "cons": ["list of cons"]
    }}
  ],
  "keyFindings": ["Important finding"],
  "riskFactors": ["Risk factor if any"]
}}"""
