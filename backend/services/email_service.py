"""Email delivery over SMTP."""

import logging
import smtplib
import ssl
import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import parseaddr

from backend.core import config
from backend.services.delivery import DeliveryResult

logger = logging.getLogger(__name__)


class EmailService:
    def __init__(self, host: str, port: int, username: str, password: str, from_address: str):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address

    @property
    def is_enabled(self) -> bool:
        return bool(self.username and self.password)

    def send_email(self, to: str, subject: str, text: str, html: str | None = None) -> DeliveryResult:
        if not self.is_enabled:
            logger.warning("Email service not available")
            return DeliveryResult(success=False, error="Email service not available")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_address
        msg["To"] = to
        message_id = f"<{uuid.uuid4().hex}@{self.host}>"
        msg["Message-ID"] = message_id
        msg.attach(MIMEText(text, "plain", "utf-8"))
        if html:
            msg.attach(MIMEText(html, "html", "utf-8"))

        try:
            self._deliver(to, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Error sending email to %s: %s", to, exc)
            return DeliveryResult(success=False, error=str(exc))

        logger.info("Email sent to %s: %s", to, message_id)
        return DeliveryResult(success=True, message_id=message_id)

    def _deliver(self, to: str, msg: MIMEMultipart) -> None:
        context = ssl.create_default_context()
        if self.port == 465:
            server = smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=30)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=30)
            server.starttls(context=context)

        try:
            server.login(self.username, self.password)
            server.sendmail(parseaddr(self.from_address)[1], [to], msg.as_string())
        finally:
            server.quit()

    def send_test_email(self, to: str, clinic_name: str) -> DeliveryResult:
        subject = f"Test email - {clinic_name}"
        text = (
            f"This is a test email from {clinic_name}.\n\n"
            "If you received it, email notifications are configured correctly."
        )
        return self.send_email(to, subject, text)

    def status(self) -> dict:
        return {
            "enabled": self.is_enabled,
            "configured": bool(self.host and self.username and self.password),
            "host": self.host,
            "port": self.port,
        }


email_service = EmailService(
    host=config.SMTP_HOST,
    port=config.SMTP_PORT,
    username=config.SMTP_USER,
    password=config.SMTP_PASS,
    from_address=config.EMAIL_FROM,
)
