"""
Google sign-in (OAuth 2.0 authorization code flow).

The id_token is read straight from Google's token endpoint over TLS, so its
claims are taken without re-verifying the signature; audience and issuer are
still checked.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_REDIRECT_URI, HTTP_TIMEOUT_SECONDS
from errors import AuthError

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
ISSUERS = ("accounts.google.com", "https://accounts.google.com")
STATE_COOKIE = "oauth_state"


def is_configured() -> bool:
    return bool(GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET)


def authorization_url(state: str) -> str:
    params = {
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": "openid email profile",
        "state": state,
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


def exchange_code(code: str, transport: Optional[httpx.BaseTransport] = None) -> dict:
    """Trade an authorization code for the user's profile claims."""
    data = {
        "code": code,
        "client_id": GOOGLE_CLIENT_ID,
        "client_secret": GOOGLE_CLIENT_SECRET,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "grant_type": "authorization_code",
    }
    try:
        with httpx.Client(timeout=HTTP_TIMEOUT_SECONDS, transport=transport) as client:
            response = client.post(TOKEN_URL, data=data)
            response.raise_for_status()
            id_token = response.json()["id_token"]
    except (httpx.HTTPError, ValueError, KeyError) as e:
        logger.warning("Google token exchange failed: %s", e)
        raise AuthError("Google sign-in failed")

    try:
        claims = jwt.get_unverified_claims(id_token)
    except JWTError as e:
        logger.warning("Unreadable id_token from Google: %s", e)
        raise AuthError("Google sign-in failed")
    if claims.get("aud") != GOOGLE_CLIENT_ID or claims.get("iss") not in ISSUERS:
        raise AuthError("Google sign-in failed")

    return {
        "sub": claims.get("sub"),
        "name": claims.get("name"),
        "email": claims.get("email"),
        "picture": claims.get("picture"),
        "email_verified": claims.get("email_verified") in (True, "true"),
    }
