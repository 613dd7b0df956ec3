"""Tests for the Google sign-in round trip."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from jose import jwt

import oauth
from config import SESSION_COOKIE_NAME
from errors import AuthError

CLIENT_ID = "client-123.apps.googleusercontent.com"


@pytest.fixture
def google(monkeypatch):
    monkeypatch.setattr(oauth, "GOOGLE_CLIENT_ID", CLIENT_ID)
    monkeypatch.setattr(oauth, "GOOGLE_CLIENT_SECRET", "shh")


def id_token(**claims):
    base = {"iss": "https://accounts.google.com", "aud": CLIENT_ID, "sub": "g-1",
            "email": "gia@example.com", "email_verified": True, "name": "Gia Google"}
    base.update(claims)
    return jwt.encode(base, "google-signing-key", algorithm="HS256")


def token_endpoint(token, status=200):
    def handler(request):
        assert str(request.url) == oauth.TOKEN_URL
        assert parse_qs(request.content.decode())["code"] == ["auth-code"]
        return httpx.Response(status, json={"id_token": token, "access_token": "at"})

    return httpx.MockTransport(handler)


def test_authorization_url(google):
    query = parse_qs(urlparse(oauth.authorization_url("st4te")).query)
    assert query["client_id"] == [CLIENT_ID]
    assert query["state"] == ["st4te"]
    assert query["scope"] == ["openid email profile"]


def test_exchange_code_returns_profile(google):
    profile = oauth.exchange_code("auth-code", transport=token_endpoint(id_token()))
    assert profile == {"sub": "g-1", "name": "Gia Google", "email": "gia@example.com", "picture": None,
                       "email_verified": True}


@pytest.mark.parametrize("claim,expected", [(True, True), ("true", True), (False, False), (None, False)])
def test_email_verified_claim(google, claim, expected):
    profile = oauth.exchange_code("auth-code", transport=token_endpoint(id_token(email_verified=claim)))
    assert profile["email_verified"] is expected


def test_wrong_audience_rejected(google):
    with pytest.raises(AuthError):
        oauth.exchange_code("auth-code", transport=token_endpoint(id_token(aud="someone-else")))


def test_provider_error_rejected(google):
    with pytest.raises(AuthError):
        oauth.exchange_code("auth-code", transport=token_endpoint(id_token(), status=400))


def test_routes_hidden_when_not_configured(client):
    assert client.get("/auth/google", follow_redirects=False).status_code == 404


def test_login_redirect_sets_state(google, client):
    response = client.get("/auth/google", follow_redirects=False)
    assert response.status_code == 303
    state = response.cookies[oauth.STATE_COOKIE]
    assert parse_qs(urlparse(response.headers["location"]).query)["state"] == [state]


def test_callback_with_bad_state(google, client):
    client.get("/auth/google", follow_redirects=False)
    response = client.get("/auth/google/callback?code=auth-code&state=forged", follow_redirects=False)
    assert response.headers["location"] == "/login"


def test_callback_opens_session(google, client, db, monkeypatch):
    monkeypatch.setattr(oauth, "exchange_code", lambda code: {
        "sub": "g-1", "name": "Gia Google", "email": "gia@example.com", "picture": None, "email_verified": True,
    })
    state = client.get("/auth/google", follow_redirects=False).cookies[oauth.STATE_COOKIE]
    response = client.get(f"/auth/google/callback?code=auth-code&state={state}", follow_redirects=False)
    assert response.headers["location"] == "/"
    assert SESSION_COOKIE_NAME in response.cookies
    assert client.get("/api/current_user").json()["fullname"] == "Gia Google"
    assert db["user"].count_documents({"google_id": "g-1"}) == 1


@pytest.mark.parametrize("profile", [
    {"sub": "g-2", "email": "shopper@example.com", "email_verified": False},
    {"sub": "g-3", "email": "not-an-email", "email_verified": True},
])
def test_callback_rejects_unusable_profile(google, client, shopper, db, monkeypatch, profile):
    monkeypatch.setattr(oauth, "exchange_code", lambda code: profile)
    state = client.get("/auth/google", follow_redirects=False).cookies[oauth.STATE_COOKIE]
    response = client.get(f"/auth/google/callback?code=auth-code&state={state}", follow_redirects=False)
    assert response.headers["location"] == "/login"
    assert SESSION_COOKIE_NAME not in response.cookies
    assert db["session"].count_documents({}) == 0
