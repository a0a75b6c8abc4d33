"""
Exceptions raised by the RFP services.
"""


class AIServiceError(RuntimeError):
    """The language model call failed or returned unusable output."""


class NotFoundError(LookupError):
    """A referenced RFP, vendor or proposal does not exist."""
