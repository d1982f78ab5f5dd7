import asyncio
from dataclasses import replace
from datetime import datetime

import pytest
import resend

from creator_hq.email_service import send_booking_confirmed_emails, send_email, send_quietly
from creator_hq.email_templates import booking_confirmed_client_template, meeting_link_template
from creator_hq.errors import UpstreamError
from creator_hq.models import Booking, Profile


@pytest.fixture
def email_settings(settings):
    return replace(settings, resend_api_key="re_test", email_from_address="HQ <hq@example.com>")


@pytest.fixture
def sent(monkeypatch):
    messages = []

    def fake_send(params):
        messages.append(params)
        return {"id": f"email_{len(messages)}"}

    monkeypatch.setattr(resend.Emails, "send", staticmethod(fake_send))
    return messages


def test_user_input_is_escaped():
    html = booking_confirmed_client_template("<script>x</script>", "consultation", "Monday", 30)
    assert "<script>x</script>" not in html
    assert "&lt;script&gt;" in html


def test_meeting_link_template_includes_link_and_note():
    html = meeting_link_template("Jordan", "workshop", "Monday", "https://meet.example.com/a?b=1&c=2", "Bring notes")
    assert "https://meet.example.com/a?b=1&amp;c=2" in html
    assert "Bring notes" in html


def test_send_email(email_settings, sent):
    response = asyncio.run(send_email(email_settings, "a@example.com", "Hello", "<p>hi</p>"))

    assert response == {"id": "email_1"}
    assert sent[0]["from"] == "HQ <hq@example.com>"
    assert sent[0]["to"] == ["a@example.com"]


def test_send_email_not_configured(settings):
    with pytest.raises(UpstreamError):
        asyncio.run(send_email(settings, "a@example.com", "Hello", "<p>hi</p>"))


def test_send_quietly_swallows_provider_errors(email_settings, monkeypatch):
    def failing(params):
        raise RuntimeError("provider down")

    monkeypatch.setattr(resend.Emails, "send", staticmethod(failing))
    assert asyncio.run(send_quietly(email_settings, "a@example.com", "Hello", "<p>hi</p>")) is False


def test_confirmation_emails_go_to_client_and_creator(email_settings, sent):
    booking = Booking(
        client_name="Jordan Client",
        client_email="jordan@example.com",
        service_type="mentoring",
        booking_date=datetime(2030, 1, 7, 10, 0),
        duration_minutes=45,
    )
    creator = Profile(contact_email="casey@example.com")

    asyncio.run(send_booking_confirmed_emails(email_settings, booking, creator))

    assert [m["to"] for m in sent] == [["jordan@example.com"], ["casey@example.com"]]
    assert "Monday, January 07, 2030 at 10:00 UTC" in sent[0]["html"]
