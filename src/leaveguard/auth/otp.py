"""
One-time codes and their out-of-band delivery.

Delivery is fire-and-forget: ``Notifier.deliver`` hands the message to a
background thread pool and returns immediately. A failed delivery is logged
and never reported back to the login caller.
"""

import secrets
import smtplib
from concurrent.futures import Future, ThreadPoolExecutor
from email.mime.text import MIMEText
from typing import Optional

from loguru import logger


OTP_DIGITS = 6


def generate_otp() -> str:
    """Six-digit code from the system CSPRNG (100000-999999)."""
    low = 10 ** (OTP_DIGITS - 1)
    return str(low + secrets.randbelow(9 * low))


def otp_message(code: str, minutes: int) -> str:
    return f"Your OTP is {code}. It expires in {minutes} minutes."


class Notifier:
    """
    Base notifier.

    Subclasses implement ``send``; callers use ``deliver``.
    """

    def __init__(self, max_workers: int = 2):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def deliver(self, contact: str, message: str) -> Future:
        """
        Queue a message for delivery without blocking.

        Args:
            contact: Recipient address
            message: Message body

        Returns:
            Future of the background send (callers normally ignore it)
        """
        future = self._executor.submit(self._safe_send, contact, message)
        return future

    def _safe_send(self, contact: str, message: str) -> bool:
        try:
            self.send(contact, message)
            logger.debug(f"[NOTIFY] Delivered message to {contact}")
            return True
        except Exception as e:
            logger.error(f"[NOTIFY] Delivery to {contact} failed: {type(e).__name__}: {e}")
            return False

    def send(self, contact: str, message: str) -> None:
        raise NotImplementedError

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class LogNotifier(Notifier):
    """Writes messages to the log; used when no SMTP server is configured."""

    def send(self, contact: str, message: str) -> None:
        logger.info(f"[NOTIFY] Email queued for {contact}: {message}")


class SmtpNotifier(Notifier):
    """
    Sends plain-text email over SMTP with STARTTLS.

    Args:
        host: SMTP host
        port: SMTP port
        sender: From address
        username: Login user (optional)
        password: Login password (optional)
        subject: Subject line
    """

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        subject: str = "Your OTP Code",
        max_workers: int = 2,
    ):
        super().__init__(max_workers=max_workers)
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.subject = subject

    def send(self, contact: str, message: str) -> None:
        msg = MIMEText(message, "plain")
        msg["Subject"] = self.subject
        msg["From"] = self.sender
        msg["To"] = contact

        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.sendmail(self.sender, [contact], msg.as_string())
