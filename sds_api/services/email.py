"""Outbound mail: password reset links go out through SES or the log."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import settings

logger = logging.getLogger(__name__)

RESET_SUBJECT = "Reset your SDS Document Manager password"


class EmailDeliveryError(RuntimeError):
    pass


@dataclass
class EmailMessage:
    to: str
    subject: str
    text_body: str
    html_body: Optional[str] = None


def password_reset_email(to: str, reset_link: str, expiry_minutes: int) -> EmailMessage:
    text_body = (
        "A password reset was requested for your SDS Document Manager account.\n\n"
        f"Reset your password: {reset_link}\n\n"
        f"This link expires in {expiry_minutes} minutes. "
        "If you did not request it, you can ignore this message."
    )
    link = html.escape(reset_link, quote=True)
    html_body = (
        "<p>A password reset was requested for your SDS Document Manager account.</p>"
        f'<p><a href="{link}">Reset your password</a></p>'
        f"<p>This link expires in {expiry_minutes} minutes. "
        "If you did not request it, you can ignore this message.</p>"
    )
    return EmailMessage(to=to, subject=RESET_SUBJECT, text_body=text_body, html_body=html_body)


def ses_client() -> Any:
    aws = settings.aws
    kwargs: dict[str, Any] = {"region_name": aws.region, "config": Config(retries={"max_attempts": 3})}
    if aws.access_key_id and aws.secret_access_key:
        kwargs["aws_access_key_id"] = aws.access_key_id
        kwargs["aws_secret_access_key"] = aws.secret_access_key
    return boto3.client("ses", **kwargs)


class EmailClient:
    def send(self, message: EmailMessage) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class SesEmailClient(EmailClient):
    def __init__(self, client: Any = None) -> None:
        self._client = client or ses_client()

    def send(self, message: EmailMessage) -> None:
        body: dict[str, dict[str, str]] = {"Text": {"Data": message.text_body, "Charset": "UTF-8"}}
        if message.html_body:
            body["Html"] = {"Data": message.html_body, "Charset": "UTF-8"}

        try:
            response = self._client.send_email(
                Source=str(settings.email_from),
                Destination={"ToAddresses": [message.to]},
                Message={"Subject": {"Data": message.subject, "Charset": "UTF-8"}, "Body": body},
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("ses_send_failed subject=%r error=%s", message.subject, exc)
            raise EmailDeliveryError("Failed to send email") from exc
        logger.info("ses_message_sent message_id=%s", response.get("MessageId"))


class ConsoleEmailClient(EmailClient):
    """Writes messages to the log; reset links stay usable in local setups."""

    def send(self, message: EmailMessage) -> None:
        logger.info("email_console to=%s subject=%r\n%s", message.to, message.subject, message.text_body)


BACKENDS: dict[str, Callable[[], EmailClient]] = {
    "ses": SesEmailClient,
    "console": ConsoleEmailClient,
}


def get_email_client() -> EmailClient:
    backend = settings.email_backend.strip().lower()
    factory = BACKENDS.get(backend)
    if factory is None:
        logger.warning("unknown_email_backend backend=%s using=console", backend)
        factory = ConsoleEmailClient
    return factory()
