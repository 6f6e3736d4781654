"""Tests for Mailgun email delivery."""

from urllib.parse import parse_qs

import httpx
import pytest

from placement.core.errors import NotFoundError, ValidationFailed
from placement.services.email_service import EU_BASE_URL, EmailSender
from placement.utils.constants import EMAIL_TYPES
from placement.utils.email_templates import UNSUBSCRIBE_PLACEHOLDER, render

DATA = {"status": "submitted", "student_name": "Ada", "job_title": "Data Analyst", "company_name": "Acme Corp"}


class MailgunStub:
    """Replies with queued responses by host, recording each request."""

    def __init__(self, *responses, by_host=None):
        self.responses = list(responses) or [200]
        self.by_host = by_host or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host in self.by_host:
            return httpx.Response(self.by_host[request.url.host], text="host reply")
        status_code = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if status_code == "connect_error":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(status_code, json={"message": "Queued. Thank you."})

    def form(self, index: int = -1) -> dict:
        return parse_qs(self.requests[index].content.decode())


def _sender(database, settings, stub=None) -> EmailSender:
    transport = httpx.MockTransport(stub) if stub is not None else None
    return EmailSender(database.session_factory, settings, transport=transport)


# ----------------------------------------------------------------------
# Skips and configuration
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_disabled_email_is_skipped(database, settings):
    stub = MailgunStub()

    result = await _sender(database, settings, stub).send("ada@example.com", "application_status", DATA)

    assert result.status == "skipped"
    assert result.reason == "disabled"
    assert stub.requests == []


@pytest.mark.asyncio
async def test_blank_recipients_are_skipped(database, email_settings):
    result = await _sender(database, email_settings, MailgunStub()).send(["", "  ", None], "application_status", DATA)

    assert result.status == "skipped"
    assert result.reason == "no_recipients"


@pytest.mark.asyncio
async def test_incomplete_configuration_is_an_error(database, email_settings):
    settings = email_settings.model_copy(update={"MAILGUN_API_KEY": ""})

    result = await _sender(database, settings, MailgunStub()).send("ada@example.com", "application_status", DATA)

    assert result.status == "error"
    assert result.reason == "misconfigured"


@pytest.mark.asyncio
async def test_sender_domain_must_match_mailgun_domain(database, email_settings):
    """Test that a From address outside the sending domain is refused."""
    settings = email_settings.model_copy(update={"MAILGUN_FROM_EMAIL": "Placement <hello@other.example.org>"})
    stub = MailgunStub()

    result = await _sender(database, settings, stub).send("ada@example.com", "application_status", DATA)

    assert result.reason == "misconfigured"
    assert stub.requests == []


@pytest.mark.asyncio
async def test_unknown_template_is_an_error(database, email_settings):
    result = await _sender(database, email_settings, MailgunStub()).send("ada@example.com", "newsletter", DATA)

    assert result.status == "error"
    assert result.reason == "unknown_template"


# ----------------------------------------------------------------------
# Delivery
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_successful_send_posts_to_mailgun(database, email_settings):
    """Test the request shape sent to the Mailgun messages endpoint."""
    stub = MailgunStub(200)

    result = await _sender(database, email_settings, stub).send("ada@example.com", "application_status", DATA)

    assert result.delivered
    request = stub.requests[0]
    assert str(request.url) == "https://api.mailgun.net/v3/mg.example.com/messages"
    assert request.headers["authorization"].startswith("Basic ")
    form = stub.form()
    assert form["from"] == ["Placement <no-reply@mg.example.com>"]
    assert form["to"] == ["ada@example.com"]
    assert form["subject"] == ["Your application has been submitted"]


@pytest.mark.asyncio
async def test_unsubscribe_link_is_injected(database, email_settings):
    """Test that the unsubscribe placeholder and header carry the recipient URL."""
    stub = MailgunStub(200)

    await _sender(database, email_settings, stub).send("ada@example.com", "application_status", DATA)

    form = stub.form()
    url = "https://app.example.com/unsubscribe?email=ada%40example.com"
    assert form["h:List-Unsubscribe"] == [f"<{url}>"]
    assert url in form["html"][0]
    assert url in form["text"][0]
    assert UNSUBSCRIBE_PLACEHOLDER not in form["html"][0]


@pytest.mark.asyncio
async def test_missing_app_url_blanks_the_unsubscribe_link(database, email_settings):
    settings = email_settings.model_copy(update={"APP_BASE_URL": ""})
    stub = MailgunStub(200)

    await _sender(database, settings, stub).send("ada@example.com", "application_status", DATA)

    form = stub.form()
    assert "h:List-Unsubscribe" not in form
    assert 'href="#"' in form["html"][0]


@pytest.mark.asyncio
async def test_client_errors_are_not_retried(database, email_settings):
    stub = MailgunStub(400)

    result = await _sender(database, email_settings, stub).send("ada@example.com", "application_status", DATA)

    assert result.status == "error"
    assert result.reason == "provider_status_400"
    assert len(stub.requests) == 1


@pytest.mark.asyncio
async def test_server_errors_are_retried(database, email_settings):
    """Test that 5xx responses are retried up to EMAIL_MAX_RETRIES."""
    stub = MailgunStub(500)

    result = await _sender(database, email_settings, stub).send("ada@example.com", "application_status", DATA)

    assert result.reason == "provider_status_500"
    assert len(stub.requests) == email_settings.EMAIL_MAX_RETRIES


@pytest.mark.asyncio
async def test_transient_failure_recovers(database, email_settings):
    stub = MailgunStub(503, 200)

    result = await _sender(database, email_settings, stub).send("ada@example.com", "application_status", DATA)

    assert result.delivered
    assert len(stub.requests) == 2


@pytest.mark.asyncio
async def test_transport_errors_are_retried_then_reported(database, email_settings):
    stub = MailgunStub("connect_error")

    result = await _sender(database, email_settings, stub).send("ada@example.com", "application_status", DATA)

    assert result.status == "error"
    assert result.reason == "transport_error"
    assert len(stub.requests) == email_settings.EMAIL_MAX_RETRIES


@pytest.mark.asyncio
async def test_unauthorized_region_falls_back_to_the_other(database, email_settings):
    """Test that a 401 from the US endpoint is retried against the EU endpoint."""
    stub = MailgunStub(by_host={"api.mailgun.net": 401, "api.eu.mailgun.net": 200})

    result = await _sender(database, email_settings, stub).send("ada@example.com", "application_status", DATA)

    assert result.delivered
    assert result.fallback_base_url == EU_BASE_URL
    assert [r.url.host for r in stub.requests] == ["api.mailgun.net", "api.eu.mailgun.net"]


@pytest.mark.asyncio
async def test_explicit_base_url_disables_regional_fallback(database, email_settings):
    settings = email_settings.model_copy(update={"MAILGUN_BASE_URL": "https://api.mailgun.net/"})
    stub = MailgunStub(401)

    result = await _sender(database, settings, stub).send("ada@example.com", "application_status", DATA)

    assert result.reason == "provider_status_401"
    assert len(stub.requests) == 1


# ----------------------------------------------------------------------
# Preferences
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_opted_out_recipient_is_skipped(database, email_settings, factory):
    user = await factory.user()
    sender = _sender(database, email_settings, MailgunStub())
    await sender.set_preference(user.id, "application_submitted", True)

    result = await sender.send(
        user.email, "application_status", DATA, user_id=user.id, email_type="application_submitted"
    )

    assert result.reason == "opted_out"
    assert await sender.should_send(user.id, "application_hired") is True


@pytest.mark.asyncio
async def test_preference_can_be_turned_back_on(database, settings, factory):
    user = await factory.user()
    sender = _sender(database, settings)

    await sender.set_preference(user.id, "job_status", True)
    await sender.set_preference(user.id, "job_status", False)

    assert await sender.should_send(user.id, "job_status") is True


@pytest.mark.asyncio
async def test_unknown_email_type_is_rejected(database, settings, factory):
    user = await factory.user()

    with pytest.raises(ValidationFailed):
        await _sender(database, settings).set_preference(user.id, "marketing", True)


@pytest.mark.asyncio
async def test_unsubscribe_all_opts_out_of_every_type(database, settings, factory):
    """Test that unsubscribe_all covers every email type for the address."""
    user = await factory.user(email="grace@example.com")
    sender = _sender(database, settings)

    count = await sender.unsubscribe_all(" Grace@Example.com ")

    assert count == len(EMAIL_TYPES)
    for email_type in EMAIL_TYPES:
        assert await sender.should_send(user.id, email_type) is False


@pytest.mark.asyncio
async def test_unsubscribe_all_matches_mixed_case_stored_address(database, settings, factory):
    user = await factory.user(email="Grace.Hopper@Example.com")
    sender = _sender(database, settings)

    await sender.unsubscribe_all("grace.hopper@example.com")

    assert await sender.should_send(user.id, EMAIL_TYPES[0]) is False


@pytest.mark.asyncio
async def test_unsubscribe_all_validates_the_address(database, settings):
    sender = _sender(database, settings)

    with pytest.raises(ValidationFailed):
        await sender.unsubscribe_all("not-an-email")
    with pytest.raises(NotFoundError):
        await sender.unsubscribe_all("nobody@example.com")


# ----------------------------------------------------------------------
# Templates
# ----------------------------------------------------------------------


def test_application_templates_follow_status():
    assert render("application_status", {"status": "hired"})["subject"] == "Congratulations! You've been hired!"
    rejected = render("application_status", {"status": "rejected", "reason": "Role filled"})
    assert "Reason: Role filled" in rejected["text"]


def test_templates_escape_html():
    rendered = render("company_approved", {"company_name": "<Acme & Co>"})

    assert "&lt;Acme &amp; Co&gt;" in rendered["html"]
    assert "<Acme & Co>" in rendered["text"]


def test_unknown_template_raises_key_error():
    with pytest.raises(KeyError):
        render("newsletter", {})
