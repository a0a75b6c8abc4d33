"""
IMAP client for fetching vendor replies.
"""

import imaplib
from email import message_from_bytes
from email.header import decode_header as email_decode_header
from email.message import Message
from email.utils import parseaddr, parsedate_to_datetime
from typing import Iterator

from rfp_service.config import settings
from rfp_service.core.logging import get_logger
from rfp_service.core.models import Attachment, InboundEmail

log = get_logger(__name__)


def _strip_nul(text: str) -> str:
    """PostgreSQL text columns reject NUL characters."""
    return text.replace("\x00", "")


class IMAPClient:
    """IMAP client for the procurement mailbox."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
    ):
        self.host = host or settings.imap_host
        self.port = port or settings.imap_port
        self.user = user or settings.imap_user
        self.password = password or settings.imap_password
        self._conn: imaplib.IMAP4_SSL | None = None

    def connect(self) -> None:
        """Connect and authenticate to IMAP server."""
        log.info("imap_connecting", host=self.host, user=self.user)
        conn = None
        try:
            conn = imaplib.IMAP4_SSL(self.host, self.port)
            conn.login(self.user, self.password)
            self._conn = conn  # Only set if login succeeds
            log.info("imap_connected")
        except Exception:
            if conn:
                try:
                    conn.logout()
                except (imaplib.IMAP4.error, OSError):
                    pass
            raise

    def disconnect(self) -> None:
        """Close IMAP connection."""
        if self._conn:
            try:
                self._conn.logout()
            except (imaplib.IMAP4.error, OSError):
                pass
            self._conn = None
            log.info("imap_disconnected")

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    def fetch_unseen(self, folder: str | None = None) -> Iterator[tuple[bytes, InboundEmail]]:
        """
        Fetch unread messages without marking them read.

        Messages are fetched with BODY.PEEK so the caller can set \\Seen
        (see mark_seen) only after the message is stored.

        Args:
            folder: IMAP folder name, defaults to settings.imap_folder

        Yields:
            (uid, InboundEmail) pairs
        """
        if not self._conn:
            raise RuntimeError("Not connected to IMAP server")

        folder = folder or settings.imap_folder
        status, _ = self._conn.select(folder)
        if status != "OK":
            raise RuntimeError(f"Cannot open IMAP folder: {folder}")

        _, data = self._conn.uid("SEARCH", None, "UNSEEN")
        uids = data[0].split() if data and data[0] else []

        log.info("imap_fetching", folder=folder, count=len(uids))

        for uid in uids:
            try:
                _, msg_data = self._conn.uid("FETCH", uid, "(BODY.PEEK[])")
                raw_email = self._extract_raw(msg_data)
                if raw_email is None:
                    log.warning("imap_empty_message", uid=uid.decode())
                    continue

                msg = message_from_bytes(raw_email)
                yield uid, self.parse_message(msg, folder)

            except (imaplib.IMAP4.abort, OSError):
                # Connection is gone; nothing further can be fetched this run
                raise
            except Exception as e:
                log.error("imap_fetch_error", error=str(e), uid=uid.decode())

    def mark_seen(self, uid: bytes) -> None:
        """Flag a message as read once it has been stored."""
        if not self._conn:
            raise RuntimeError("Not connected to IMAP server")
        self._conn.uid("STORE", uid, "+FLAGS", "(\\Seen)")

    @staticmethod
    def _extract_raw(msg_data) -> bytes | None:
        for part in msg_data or []:
            if isinstance(part, tuple) and len(part) >= 2 and isinstance(part[1], bytes):
                return part[1]
        return None

    def _decode_header(self, header: str) -> str:
        """Decode MIME-encoded email header."""
        if not header:
            return ""
        decoded_parts = []
        for part, charset in email_decode_header(header):
            if isinstance(part, bytes):
                decoded_parts.append(part.decode(charset or "utf-8", errors="replace"))
            else:
                decoded_parts.append(part)
        return _strip_nul("".join(decoded_parts).replace("\r\n", "").replace("\n", ""))

    def parse_message(self, msg: Message, folder: str = "INBOX") -> InboundEmail:
        """Parse email message into InboundEmail."""
        email_date = None
        date_str = msg.get("Date")
        if date_str:
            try:
                email_date = parsedate_to_datetime(date_str)
            except (TypeError, ValueError):
                log.warning("email_date_unparseable", date=date_str)

        body_plain, body_html = self._get_body(msg)
        subject = self._decode_header(msg.get("Subject", ""))
        sender = self._decode_header(msg.get("From", ""))
        # Decoding first can expose a comma in the display name that parseaddr
        # would read as an address separator
        _, sender_address = parseaddr(str(msg.get("From", "")))

        attachments = []
        if msg.is_multipart():
            for part in msg.walk():
                disposition = part.get("Content-Disposition", "")
                if "attachment" in disposition:
                    attachments.append(Attachment(
                        filename=self._decode_header(part.get_filename() or "") or "unnamed",
                        content_type=part.get_content_type(),
                        size_bytes=len(part.get_payload(decode=True) or b""),
                    ))

        message_id = _strip_nul(str(msg.get("Message-ID") or "")).strip()
        if not message_id:
            message_id = InboundEmail.synthetic_message_id(
                sender, date_str or "", subject, body_plain or body_html,
            )
            log.info("synthetic_message_id_assigned", message_id=message_id, subject=subject)

        return InboundEmail(
            message_id=message_id,
            mailbox=self.user,
            folder=folder,
            subject=subject,
            sender=sender,
            sender_address=_strip_nul(sender_address),
            recipient=self._decode_header(msg.get("To", "")),
            email_date=email_date,
            body_plain=body_plain,
            body_html=body_html,
            in_reply_to=_strip_nul(str(msg.get("In-Reply-To") or "")).strip(),
            references=" ".join(_strip_nul(str(msg.get("References") or "")).split()),
            attachments=attachments,
        )

    def _get_body(self, msg: Message) -> tuple[str, str]:
        """Extract plain text and HTML body from message."""
        text_plain = ""
        text_html = ""

        parts = msg.walk() if msg.is_multipart() else [msg]
        for part in parts:
            if part.is_multipart():
                continue
            if "attachment" in part.get("Content-Disposition", ""):
                continue

            payload = part.get_payload(decode=True)
            if not payload:
                continue

            charset = part.get_content_charset() or "utf-8"
            try:
                text = payload.decode(charset, errors="replace")
            except LookupError:
                text = payload.decode("utf-8", errors="replace")

            text = _strip_nul(text)
            content_type = part.get_content_type()
            if content_type == "text/plain":
                text_plain += text
            elif content_type == "text/html":
                text_html += text

        return text_plain, text_html
