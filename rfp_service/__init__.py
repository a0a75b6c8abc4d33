"""
RFP procurement pipeline.

- Structures free-text purchasing needs into RFPs with Gemini
- Emails RFPs to selected vendors
- Polls IMAP for vendor replies and turns them into proposals
- Scores and ranks proposals with Gemini
"""

__version__ = "1.0.0"
