import asyncio
from datetime import datetime, time, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from creator_hq.domain.calendar.google_client import build_booking_event
from creator_hq.domain.calendar.oauth_state import issue_state, read_state
from creator_hq.domain.calendar.service import CalendarService
from creator_hq.models import Booking, CreatorCalendarToken
from creator_hq.security_utils import decrypt_token, encrypt_token, get_token_cipher

from .conftest import CREATOR_ID, future_day

DASHBOARD = "http://frontend.test/dashboard/settings/calendar"


def naive_utc(delta: timedelta) -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None) + delta


class TestOAuthState:
    def test_round_trip(self):
        state = issue_state("secret", CREATOR_ID)
        assert read_state("secret", state, max_age=600) == CREATOR_ID

    def test_forged_state_is_rejected(self):
        state = issue_state("attacker-secret", CREATOR_ID)
        assert read_state("secret", state, max_age=600) is None

    def test_unsigned_base64_is_rejected(self):
        assert read_state("secret", "MGI2ZjNjOGUtMmQ0YQ==", max_age=600) is None
        assert read_state("secret", None, max_age=600) is None

    def test_tampered_state_is_rejected(self):
        state = issue_state("secret", CREATOR_ID)
        assert read_state("secret", state[:-2] + "xx", max_age=600) is None

    def test_expired_state_is_rejected(self):
        state = issue_state("secret", CREATOR_ID)
        assert read_state("secret", state, max_age=-1) is None


class TestConnectFlow:
    def test_connect_returns_signed_consent_url(self, client, auth_headers, settings):
        response = client.get("/calendar/connect", headers=auth_headers)

        assert response.status_code == 200
        url = urlparse(response.json()["url"])
        params = parse_qs(url.query)
        assert url.netloc == "accounts.google.com"
        assert params["client_id"] == ["google-client-id"]
        assert params["access_type"] == ["offline"]
        assert read_state(settings.secret_key, params["state"][0], max_age=600) == CREATOR_ID

    def test_status_moves_through_the_states(self, client, auth_headers, settings):
        assert client.get("/calendar/status", headers=auth_headers).json()["status"] == "disconnected"

        url = client.get("/calendar/connect", headers=auth_headers).json()["url"]
        assert client.get("/calendar/status", headers=auth_headers).json()["status"] == "pending_callback"

        state = parse_qs(urlparse(url).query)["state"][0]
        client.get("/calendar/callback", params={"code": "auth-code", "state": state}, follow_redirects=False)
        status = client.get("/calendar/status", headers=auth_headers).json()
        assert status["status"] == "connected"
        assert status["calendar_id"] == "primary"

    def test_callback_stores_encrypted_tokens(self, app, client, db, creator, settings):
        state = issue_state(settings.secret_key, CREATOR_ID)

        response = client.get(
            "/calendar/callback", params={"code": "auth-code", "state": state}, follow_redirects=False
        )

        assert response.status_code == 302
        assert response.headers["location"] == f"{DASHBOARD}?connected=true"
        token = db.query(CreatorCalendarToken).one()
        assert token.access_token != "access-1"
        cipher = get_token_cipher(app.state.settings)
        assert decrypt_token(cipher, token.access_token) == "access-1"
        assert decrypt_token(cipher, token.refresh_token) == "refresh-token"

    def test_callback_replay_upserts_single_row(self, app, client, db, creator, settings):
        state = issue_state(settings.secret_key, CREATOR_ID)
        params = {"code": "auth-code", "state": state}

        client.get("/calendar/callback", params=params, follow_redirects=False)
        replay = client.get("/calendar/callback", params=params, follow_redirects=False)

        assert replay.headers["location"] == f"{DASHBOARD}?connected=true"
        tokens = db.query(CreatorCalendarToken).filter(CreatorCalendarToken.creator_id == CREATOR_ID).all()
        assert len(tokens) == 1
        assert decrypt_token(get_token_cipher(app.state.settings), tokens[0].access_token) == "access-2"

    def test_forged_state_redirects_with_error(self, client, db, creator, providers):
        forged = issue_state("not-the-server-secret", CREATOR_ID)

        response = client.get(
            "/calendar/callback", params={"code": "auth-code", "state": forged}, follow_redirects=False
        )

        assert response.headers["location"] == f"{DASHBOARD}?error=true"
        assert providers.requests_to("https://oauth2.googleapis.com/token") == []
        assert db.query(CreatorCalendarToken).count() == 0

    def test_provider_failure_redirects_with_error(self, client, db, creator, providers, settings):
        providers.token_status = 400
        state = issue_state(settings.secret_key, CREATOR_ID)

        response = client.get(
            "/calendar/callback", params={"code": "bad-code", "state": state}, follow_redirects=False
        )

        assert response.headers["location"] == f"{DASHBOARD}?error=true"
        assert db.query(CreatorCalendarToken).count() == 0

    @pytest.mark.parametrize(
        "body",
        [
            "<html>oops</html>",
            '{"access_token": "access-x", "expires_in": "soon"}',
            '["access_token"]',
        ],
    )
    def test_malformed_token_response_redirects_with_error(self, client, db, creator, providers, settings, body):
        providers.token_body = body
        state = issue_state(settings.secret_key, CREATOR_ID)

        response = client.get(
            "/calendar/callback", params={"code": "auth-code", "state": state}, follow_redirects=False
        )

        assert response.status_code == 302
        assert response.headers["location"] == f"{DASHBOARD}?error=true"
        assert db.query(CreatorCalendarToken).count() == 0

    def test_consent_denied_redirects_with_error(self, client, creator):
        response = client.get("/calendar/callback", params={"error": "access_denied"}, follow_redirects=False)
        assert response.headers["location"] == f"{DASHBOARD}?error=true"

    def test_connect_without_google_credentials(self, app, client, auth_headers):
        from dataclasses import replace

        app.state.settings = replace(app.state.settings, google_client_id=None)
        response = client.get("/calendar/connect", headers=auth_headers)
        assert response.status_code == 500
        assert response.json() == {"error": "Google Calendar not configured"}

    def test_disconnect(self, app, client, db, auth_headers, providers):
        cipher = get_token_cipher(app.state.settings)
        db.add(
            CreatorCalendarToken(
                creator_id=CREATOR_ID,
                access_token=encrypt_token(cipher, "access"),
                refresh_token=encrypt_token(cipher, "refresh"),
                expiry_date=naive_utc(timedelta(hours=1)),
            )
        )
        db.commit()

        response = client.post("/calendar/disconnect", headers=auth_headers)

        assert response.status_code == 200
        assert db.query(CreatorCalendarToken).count() == 0
        [revoke] = providers.requests_to("https://oauth2.googleapis.com/revoke")
        assert revoke.url.params["token"] == "refresh"

    def test_disconnect_when_not_connected(self, client, auth_headers):
        assert client.post("/calendar/disconnect", headers=auth_headers).status_code == 404


class TestTokenRefresh:
    @pytest.fixture
    def service(self, app, db, creator):
        return CalendarService(db, app.state.settings, app.state.http_client)

    def _store(self, service, db, expires_in: timedelta, refresh: str = "refresh-token"):
        token = CreatorCalendarToken(
            creator_id=CREATOR_ID,
            access_token=encrypt_token(service.cipher, "old-access"),
            refresh_token=encrypt_token(service.cipher, refresh) if refresh else None,
            expiry_date=naive_utc(expires_in),
        )
        db.add(token)
        db.commit()
        return token

    def test_fresh_token_is_left_alone(self, service, db, providers):
        token = self._store(service, db, timedelta(hours=1))

        asyncio.run(service.refresh_if_expiring(token))

        assert providers.requests == []
        assert decrypt_token(service.cipher, token.access_token) == "old-access"

    def test_expiring_token_is_refreshed(self, service, db, providers):
        token = self._store(service, db, timedelta(minutes=4))

        asyncio.run(service.refresh_if_expiring(token))

        [refresh_request] = providers.requests_to("https://oauth2.googleapis.com/token")
        assert b"grant_type=refresh_token" in refresh_request.content
        assert decrypt_token(service.cipher, token.access_token) == "access-1"
        assert token.expiry_date > naive_utc(timedelta(minutes=50))

    def test_push_refreshes_before_use(self, service, db, providers):
        self._store(service, db, timedelta(minutes=-10))
        booking = Booking(
            creator_id=CREATOR_ID,
            client_name="Jordan Client",
            client_email="jordan@example.com",
            phone="+16502530000",
            service_type="workshop",
            booking_date=datetime.combine(future_day(), time(10, 0)),
            booking_time="10:00",
            duration_minutes=90,
            status="confirmed",
        )
        db.add(booking)
        db.commit()

        event_id = asyncio.run(service.push_booking(booking))

        assert event_id == "evt_123"
        [event_request] = providers.requests_to("https://www.googleapis.com/calendar/v3/calendars/")
        assert event_request.headers["Authorization"] == "Bearer access-1"

    def test_missing_refresh_token_fails(self, service, db):
        from creator_hq.errors import UpstreamError

        token = self._store(service, db, timedelta(minutes=-1), refresh=None)
        with pytest.raises(UpstreamError):
            asyncio.run(service.refresh_if_expiring(token))


def test_event_body():
    day = future_day()
    booking = Booking(
        client_name="Jordan Client",
        client_email="jordan@example.com",
        service_type="consultation",
        booking_date=datetime.combine(day, time(23, 30)),
        duration_minutes=60,
        notes="Agenda attached",
    )

    event = build_booking_event(booking)

    next_day = day + timedelta(days=1)
    assert event["summary"] == "Consultation with Jordan Client"
    assert event["description"] == "Agenda attached"
    assert event["start"]["dateTime"] == f"{day.isoformat()}T23:30:00.000Z"
    assert event["end"]["dateTime"] == f"{next_day.isoformat()}T00:30:00.000Z"
    assert event["attendees"] == [{"email": "jordan@example.com"}]
    assert event["reminders"]["overrides"] == [
        {"method": "email", "minutes": 1440},
        {"method": "popup", "minutes": 30},
    ]
