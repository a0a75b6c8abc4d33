"""
Prompt for parsing a vendor's reply into a structured proposal.
"""

PROPOSAL_PROMPT = """You are an expert procurement assistant. Parse the following vendor response email into a structured proposal format.

RFP Details:
{rfp_details}

Vendor Response Email:
Subject: {subject}
\"\"\"
{body}
\"\"\"

RULES:
- Only use figures stated by the vendor; do not invent prices
- Ignore quoted text from our original RFP email (lines starting with ">" or after "On ... wrote:")
- pricing.totalAmount is a plain number; if only line items are given, sum them
- deliveryTimeline.unit is one of: days, weeks, months
- complianceScore (0-100) indicates how well this proposal meets the RFP requirements

Return ONLY valid JSON (no markdown, no explanation):
{{
  "pricing": {{
    "totalAmount": 0,
    "currency": "USD",
    "breakdown": [
      {{
        "item": "item name",
        "unitPrice": 0,
        "quantity": 0,
        "totalPrice": 0
      }}
    ]
  }},
  "deliveryTimeline": {{
    "value": 0,
    "unit": "days",
    "description": "any additional details"
  }},
  "paymentTerms": "payment terms offered",
  "warranty": "warranty offered",
  "additionalTerms": "any additional terms or conditions",
  "complianceScore": 0,
  "summary": "Brief summary of the proposal"
}}"""
