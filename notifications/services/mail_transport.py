"""Mail transports used by the delivery worker."""

import re
import smtplib
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

import structlog

from notifications.clock import Clock, SystemClock
from notifications.exceptions import PermanentSendFailure, TransientSendFailure

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


@dataclass
class OutboundEmail:
    """A fully rendered message ready to hand to a transport."""

    to: str
    subject: str
    html: str
    text: str = ""
    from_address: str | None = None
    reply_to: str | None = None
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DeliveryReceipt:
    """Proof that a transport accepted a message."""

    message_id: str
    provider: str
    accepted_at: datetime


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


def html_to_plain(html: str) -> str:
    """Convert HTML to plain text.

    Args:
        html: HTML content

    Returns:
        Plain text version of the HTML
    """
    text = re.sub(r"<(br|/p|/h[1-6]|/li)\s*/?>", "\n", html, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)

    text = text.replace("&nbsp;", " ")
    text = text.replace("&lt;", "<")
    text = text.replace("&gt;", ">")
    text = text.replace("&quot;", '"')
    text = text.replace("&amp;", "&")

    text = re.sub(r"\n\s*\n", "\n\n", text)
    return text.strip()


class MailTransport(ABC):
    """Sends one rendered email.

    Implementations raise ``PermanentSendFailure`` when retrying cannot
    help and ``TransientSendFailure`` otherwise.
    """

    provider: str = "unknown"

    @abstractmethod
    def send(self, message: OutboundEmail) -> DeliveryReceipt:
        """Send a message and return the provider's receipt."""


class SmtpMailTransport(MailTransport):
    """Transport delivering through an SMTP relay."""

    provider = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        default_from: str = "noreply@example.com",
        timeout: float = 30,
        clock: Clock | None = None,
    ):
        """Initialize the transport with SMTP connection settings."""
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.default_from = default_from
        self.timeout = timeout
        self.clock = clock or SystemClock()

    @classmethod
    def from_settings(cls, settings, clock: Clock | None = None) -> "SmtpMailTransport":
        return cls(
            host=settings.EMAIL_HOST,
            port=settings.EMAIL_PORT,
            username=settings.EMAIL_HOST_USER,
            password=settings.EMAIL_HOST_PASSWORD,
            use_tls=settings.EMAIL_USE_TLS,
            default_from=settings.DEFAULT_FROM_EMAIL,
            timeout=getattr(settings, "EMAIL_TIMEOUT", 30),
            clock=clock,
        )

    def build_message(self, message: OutboundEmail, message_id: str) -> MIMEMultipart:
        """Assemble the multipart/alternative MIME message."""
        sender = message.from_address or self.default_from
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = sender
        msg["To"] = message.to
        msg["Message-ID"] = message_id
        if message.cc:
            msg["Cc"] = ", ".join(message.cc)
        if message.reply_to:
            msg["Reply-To"] = message.reply_to
        for name, value in message.headers.items():
            msg[name] = value

        msg.attach(MIMEText(message.text or html_to_plain(message.html), "plain"))
        msg.attach(MIMEText(message.html, "html"))
        return msg

    def send(self, message: OutboundEmail) -> DeliveryReceipt:
        """Send a message via SMTP.

        Raises:
            PermanentSendFailure: Invalid address, rejected recipient or
                sender, or bad credentials.
            TransientSendFailure: Connection problems and temporary (4xx)
                server responses.
        """
        if not is_valid_email(message.to):
            raise PermanentSendFailure(f"Invalid email address: {message.to}")

        domain = (message.from_address or self.default_from).rpartition("@")[2] or None
        message_id = make_msgid(domain=domain)
        msg = self.build_message(message, message_id)
        recipients = [message.to, *message.cc, *message.bcc]

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg, to_addrs=recipients)
        except smtplib.SMTPAuthenticationError as e:
            raise PermanentSendFailure(f"SMTP authentication failed: {e}") from e
        except smtplib.SMTPRecipientsRefused as e:
            codes = [code for code, _reason in e.recipients.values()]
            detail = "; ".join(
                f"{address}: {code} {reason!r}"
                for address, (code, reason) in e.recipients.items()
            )
            if codes and all(code >= 500 for code in codes):
                raise PermanentSendFailure(f"Recipient rejected: {detail}") from e
            raise TransientSendFailure(f"Recipient temporarily refused: {detail}") from e
        except smtplib.SMTPResponseException as e:
            reason = f"{e.smtp_code} {e.smtp_error!r}"
            if e.smtp_code >= 500:
                raise PermanentSendFailure(f"SMTP rejected message: {reason}") from e
            raise TransientSendFailure(f"SMTP temporary failure: {reason}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransientSendFailure(f"SMTP connection failed: {e}") from e

        logger.info("email_sent", to_email=message.to, subject=message.subject)
        return DeliveryReceipt(
            message_id=message_id, provider=self.provider, accepted_at=self.clock.now()
        )


class LoggingMailTransport(MailTransport):
    """Development transport that logs messages instead of sending them.

    Sent messages are kept in ``outbox`` for inspection.
    """

    provider = "log"

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or SystemClock()
        self.outbox: list[OutboundEmail] = []
        self._lock = threading.Lock()

    def send(self, message: OutboundEmail) -> DeliveryReceipt:
        if not is_valid_email(message.to):
            raise PermanentSendFailure(f"Invalid email address: {message.to}")
        message_id = make_msgid(domain="dispatch.local")
        with self._lock:
            self.outbox.append(message)
        logger.info(
            "email_logged",
            to_email=message.to,
            subject=message.subject,
            message_id=message_id,
            cc=message.cc,
            bcc=message.bcc,
        )
        return DeliveryReceipt(
            message_id=message_id, provider=self.provider, accepted_at=self.clock.now()
        )
