"""
Outbound RFP email.

RFPs go out as plain text. The Message-ID of each sent email is recorded as
a dispatch so vendor replies can be matched back through their thread headers.
"""

import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid

from rfp_service.config import settings
from rfp_service.core.logging import get_logger
from rfp_service.core.models import RFP, Vendor

log = get_logger(__name__)

REPLY_CHECKLIST = [
    "Detailed pricing breakdown",
    "Delivery timeline",
    "Payment terms you can offer",
    "Warranty details",
    "Any additional terms or conditions",
]


def _format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return f"{int(amount):,}"
    return f"{amount:,.2f}"


def format_rfp_body(rfp: RFP, vendor_name: str) -> str:
    """Render the RFP as the plain-text email body."""
    lines = [
        f"Dear {vendor_name},",
        "",
        "We are pleased to invite you to submit a proposal for the following "
        "procurement requirement.",
        "",
        "PROJECT TITLE",
        rfp.title,
        "",
        "DESCRIPTION",
        rfp.description,
        "",
        "REQUIREMENTS",
    ]
    for req in rfp.requirements:
        line = f"- {req.item}"
        if req.quantity is not None:
            line += f": Quantity {req.quantity}"
        if req.specifications:
            line += f" - {req.specifications}"
        lines.append(line)
    if not rfp.requirements:
        lines.append("- See description")

    lines += [
        "",
        "BUDGET",
        f"{rfp.budget.currency} {_format_amount(rfp.budget.amount)}",
        "",
        "DELIVERY TIMELINE",
        str(rfp.delivery_timeline),
        "",
        "PAYMENT TERMS",
        rfp.payment_terms,
    ]

    if rfp.warranty:
        lines += ["", "WARRANTY REQUIREMENTS", rfp.warranty]
    if rfp.additional_terms:
        lines += ["", "ADDITIONAL TERMS", rfp.additional_terms]

    lines += [
        "",
        "Please submit your proposal by replying to this email with the following details:",
        *[f"- {item}" for item in REPLY_CHECKLIST],
        "",
        "We look forward to receiving your proposal.",
        "",
        "Best regards,",
        "Procurement Team",
    ]
    return "\n".join(lines)


def compose_rfp_email(rfp: RFP, vendor: Vendor, sender: str | None = None) -> EmailMessage:
    """
    Build the email inviting one vendor to respond to an RFP.

    Args:
        rfp: RFP to send
        vendor: Recipient vendor
        sender: From address, defaults to settings.sender_address

    Returns:
        EmailMessage with a fresh Message-ID header
    """
    sender = sender or settings.sender_address
    domain = sender.rsplit("@", 1)[1] if "@" in sender else None

    msg = EmailMessage()
    if sender:
        msg["From"] = sender
    msg["To"] = formataddr((vendor.name, vendor.email))
    msg["Subject"] = f"RFP: {rfp.title}"
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid(idstring=f"rfp{rfp.id}", domain=domain)
    msg.set_content(format_rfp_body(rfp, vendor.name))
    return msg


class Mailer:
    """Thin SMTP transport."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
        use_tls: bool | None = None,
    ):
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.user = user or settings.smtp_user
        self.password = password or settings.smtp_password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls

    def send(self, message: EmailMessage) -> str:
        """
        Send one message.

        Returns:
            The message's Message-ID

        Raises:
            smtplib.SMTPException, OSError: If delivery fails
        """
        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            smtp.ehlo()
            if self.use_tls:
                smtp.starttls(context=ssl.create_default_context())
                smtp.ehlo()
            if self.user:
                smtp.login(self.user, self.password)
            smtp.send_message(message)

        log.info("email_sent", to=message["To"], subject=message["Subject"])
        return str(message["Message-ID"])
