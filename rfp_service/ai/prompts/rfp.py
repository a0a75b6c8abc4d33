"""
Prompt for structuring a free-text purchasing request into an RFP.
"""

RFP_PROMPT = """You are an expert procurement assistant. Parse the following natural language request into a structured RFP format.

Natural Language Input:
\"\"\"
{text}
\"\"\"

RULES:
- budget.amount is a plain number (no currency symbols or thousands separators)
- If the request gives a per-unit budget, multiply by the quantity to get the total
- requirements: one entry per distinct item; quantity is an integer
- deliveryTimeline.unit is one of: days, weeks, months
- Use null for anything the request does not mention (paymentTerms defaults to "Net 30")

Return ONLY valid JSON (no markdown, no explanation):
{{
  "title": "Brief title for the RFP",
  "description": "Detailed description",
  "budget": {{
    "amount": 0,
    "currency": "USD"
  }},
  "requirements": [
    {{
      "item": "item name",
      "quantity": 0,
      "specifications": "specifications"
    }}
  ],
  "deliveryTimeline": {{
    "value": 0,
    "unit": "days"
  }},
  "paymentTerms": "payment terms like Net 30",
  "warranty": "warranty requirements" or null,
  "additionalTerms": "any additional terms" or null
}}"""
