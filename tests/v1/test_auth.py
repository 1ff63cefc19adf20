# tests/v1/test_auth.py
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from quire.core.security import CredentialsError, create_access_token, decode_access_token
from quire.core.settings import settings
from quire.models import User


def test_token_round_trip() -> None:
    token = create_access_token(42)
    claims = jwt.get_unverified_claims(token)

    assert claims["sub"] == "42"
    assert claims["exp"] > claims["iat"]
    assert decode_access_token(token) == 42


@pytest.mark.parametrize(
    ("token_factory", "reason"),
    [
        (lambda: None, "missing"),
        (lambda: "", "missing"),
        (lambda: "garbage.token.value", "invalid"),
        (lambda: create_access_token(1, expires_minutes=-5), "expired"),
        (lambda: jwt.encode({"sub": "1"}, "someone-elses-secret", algorithm="HS256"), "invalid"),
        (lambda: jwt.encode({"sub": "alice"}, settings.secret_key, algorithm="HS256"), "invalid"),
    ],
    ids=["none", "empty", "garbage", "expired", "wrong-secret", "non-numeric-sub"],
)
def test_decode_failures(token_factory, reason: str) -> None:
    with pytest.raises(CredentialsError) as exc_info:
        decode_access_token(token_factory())
    assert exc_info.value.reason == reason


def test_missing_secret_is_misconfigured(monkeypatch: pytest.MonkeyPatch) -> None:
    token = create_access_token(1)
    monkeypatch.setattr(settings, "secret_key", None)

    with pytest.raises(CredentialsError) as decode_err:
        decode_access_token(token)
    with pytest.raises(CredentialsError) as create_err:
        create_access_token(1)

    assert decode_err.value.reason == "misconfigured"
    assert create_err.value.reason == "misconfigured"


def test_cookie_is_accepted(client: TestClient, alice: User) -> None:
    response = client.get(
        "/api/v1/messages/conversations",
        headers={"Cookie": f"token={create_access_token(alice.id)}"},
    )
    assert response.status_code == 200


def test_cookie_takes_precedence_over_header(
    client: TestClient, alice: User, bob: User
) -> None:
    response = client.get(
        "/api/v1/users/blocked",
        headers={
            "Cookie": "token=broken",
            "Authorization": f"Bearer {create_access_token(bob.id)}",
        },
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized: invalid"


def test_expired_token_is_rejected(client: TestClient, alice: User) -> None:
    token = create_access_token(alice.id, expires_minutes=-1)
    response = client.get(
        "/api/v1/messages/conversations", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized: expired"


def test_token_for_deleted_user_is_rejected(client: TestClient) -> None:
    response = client.get(
        "/api/v1/messages/conversations",
        headers={"Authorization": f"Bearer {create_access_token(123456)}"},
    )
    assert response.status_code == 401


def test_missing_secret_returns_server_error(
    client: TestClient, alice: User, monkeypatch: pytest.MonkeyPatch
) -> None:
    token = create_access_token(alice.id)
    monkeypatch.setattr(settings, "secret_key", None)

    response = client.get(
        "/api/v1/messages/conversations", headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Server misconfigured"
