from __future__ import annotations

import boto3
import pytest

from sds_api.config import settings
from sds_api.services.email import (
    ConsoleEmailClient,
    EmailDeliveryError,
    EmailMessage,
    SesEmailClient,
    get_email_client,
    password_reset_email,
)


@pytest.fixture()
def mock_ses():
    from moto import mock_aws

    with mock_aws():
        ses = boto3.client("ses", region_name=settings.aws.region)
        ses.verify_email_identity(EmailAddress=str(settings.email_from))
        yield ses


def test_ses_client_sends_message(mock_ses):
    SesEmailClient().send(
        password_reset_email("chemist@acme.com", "http://web.test/reset-password?token=abc", 60)
    )

    assert mock_ses.get_send_quota()["SentLast24Hours"] == 1


def test_ses_rejection_raises_delivery_error(mock_ses, monkeypatch):
    monkeypatch.setattr(settings, "email_from", "unverified@acme.com")
    with pytest.raises(EmailDeliveryError, match="Failed to send email"):
        SesEmailClient().send(EmailMessage(to="chemist@acme.com", subject="Reset", text_body="text"))


def test_reset_email_carries_link_in_both_bodies():
    message = password_reset_email("chemist@acme.com", "http://web.test/reset-password?token=a&b", 45)

    assert message.to == "chemist@acme.com"
    assert "http://web.test/reset-password?token=a&b\n" in message.text_body
    assert "45 minutes" in message.text_body
    assert 'href="http://web.test/reset-password?token=a&amp;b"' in message.html_body


@pytest.mark.parametrize("backend", ["console", "CONSOLE", "carrier-pigeon"])
def test_non_ses_backends_log_to_console(monkeypatch, backend):
    monkeypatch.setattr(settings, "email_backend", backend)
    assert isinstance(get_email_client(), ConsoleEmailClient)
