from creator_hq.models import Profile

from .conftest import OTHER_CREATOR_ID, make_token


def test_missing_token(client, creator):
    response = client.get("/calendar/status")
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


def test_malformed_token(client, creator):
    response = client.get("/calendar/status", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_token_signed_with_wrong_secret(client, creator):
    token = make_token(secret="some-other-secret")
    response = client.get("/calendar/status", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid or expired session"}


def test_expired_token(client, creator):
    token = make_token(expires_in=-60)
    response = client.get("/calendar/status", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_unknown_user(client, creator):
    token = make_token(sub=OTHER_CREATOR_ID)
    response = client.get("/calendar/status", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_non_creator_role(client, db, creator):
    db.add(Profile(id=OTHER_CREATOR_ID, role="user", timezone="UTC"))
    db.commit()
    token = make_token(sub=OTHER_CREATOR_ID)

    response = client.get("/calendar/status", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 403


def test_valid_creator(client, auth_headers):
    response = client.get("/calendar/status", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "disconnected"
