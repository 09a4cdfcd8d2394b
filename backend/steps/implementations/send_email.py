"""Send Email step implementation.

Sends a plain-text message through the configured SMTP relay. smtplib is
blocking, so the actual delivery runs in the default executor.
"""

import asyncio
import smtplib
from email.message import EmailMessage
from email.utils import formatdate, getaddresses, make_msgid
from typing import Any, Dict, List, Optional

import structlog

from core.constants import StepType
from steps.base_step import BaseStep, StepResult
from workflow.models import ExecutionContext

logger = structlog.get_logger(__name__)


class SmtpRelay:
    """Connection settings for the outgoing mail relay."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "SmtpRelay":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            timeout=settings.SMTP_TIMEOUT,
        )

    def send(self, message: EmailMessage, recipients: List[str]) -> Dict[str, Any]:
        """Synchronous SMTP send. Returns the relay's refused-recipients mapping."""
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            return server.send_message(message, to_addrs=recipients) or {}


def _addresses(value: Any) -> List[str]:
    """Normalize a comma-separated string or a list into bare addresses."""
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    return [addr for _, addr in getaddresses([str(v) for v in value]) if addr]


class SendEmailStep(BaseStep):
    """Send an email.

    Config:
        to: Recipient(s), a string (comma-separated allowed) or a list (required)
        subject: Subject line
        body: Plain-text body
        cc: Optional carbon-copy recipient(s)
        bcc: Optional blind-copy recipient(s), never written to headers
    """

    step_type = StepType.SEND_EMAIL
    display_name = "Send Email"
    description = "Send an email through the SMTP relay"

    def __init__(self, relay: SmtpRelay, sender: str):
        self.relay = relay
        self.sender = sender

    async def execute(self, config: Dict[str, Any], context: ExecutionContext) -> StepResult:
        to = _addresses(config.get("to"))
        if not to:
            return StepResult.failure("Missing required config: to")
        cc = _addresses(config.get("cc"))
        bcc = _addresses(config.get("bcc"))

        message = self._build_message(
            to=to,
            cc=cc,
            subject=config.get("subject"),
            body=config.get("body"),
        )
        recipients = to + cc + bcc

        loop = asyncio.get_running_loop()
        try:
            refused = await loop.run_in_executor(None, self.relay.send, message, recipients)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email send failed", error=str(e), execution_id=context.execution_id)
            return StepResult.failure(f"Email delivery failed: {e}")

        accepted = [addr for addr in recipients if addr not in refused]
        if not accepted:
            return StepResult.failure("Email delivery failed: all recipients were refused")

        return StepResult(
            success=True,
            output={"messageId": message["Message-ID"], "accepted": accepted},
            metadata={"refused": sorted(refused)},
        )

    def _build_message(
        self,
        to: List[str],
        cc: List[str],
        subject: Optional[Any],
        body: Optional[Any],
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = ", ".join(to)
        if cc:
            msg["Cc"] = ", ".join(cc)
        msg["Subject"] = "" if subject is None else str(subject)
        msg["Date"] = formatdate(localtime=False)
        msg["Message-ID"] = make_msgid(domain=self.sender.rpartition("@")[2] or None)
        msg.set_content("" if body is None else str(body))
        return msg

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        return {
            "type": "object",
            "required": ["to"],
            "properties": {
                "to": {"type": ["string", "array"]},
                "subject": {"type": "string"},
                "body": {"type": "string"},
                "cc": {"type": ["string", "array"]},
                "bcc": {"type": ["string", "array"]},
            },
        }
