"""
Tests for the Google identity provider, driven through httpx.MockTransport.
"""
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from nearserve.api.middleware.error_handler import BadRequestException, UpstreamException
from nearserve.services.identity_provider import (
    TOKEN_URL,
    USERINFO_URL,
    GoogleIdentityProvider,
)


def make_provider(handler) -> GoogleIdentityProvider:
    return GoogleIdentityProvider(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://localhost:5173/auth/callback",
        transport=httpx.MockTransport(handler),
    )


def google(userinfo: dict, token_status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            if token_status != 200:
                return httpx.Response(token_status, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "ya29.token"})
        if str(request.url) == USERINFO_URL:
            assert request.headers["Authorization"] == "Bearer ya29.token"
            return httpx.Response(200, json=userinfo)
        return httpx.Response(404)
    return handler


@pytest.mark.unit
def test_authorization_url():
    provider = make_provider(google({}))

    url = provider.authorization_url(state="xyz")

    query = parse_qs(urlparse(url).query)
    assert url.startswith("https://accounts.google.com/")
    assert query["client_id"] == ["client-id"]
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["openid email profile"]
    assert query["state"] == ["xyz"]


@pytest.mark.unit
def test_exchange_code():
    provider = make_provider(google({
        "sub": "google-123",
        "email": "Asha@Example.com",
        "name": "Asha",
        "picture": "https://example.com/a.png",
    }))

    profile = provider.exchange_code("auth-code")

    assert profile.subject == "google-123"
    assert profile.email == "asha@example.com"
    assert profile.name == "Asha"
    assert profile.picture == "https://example.com/a.png"


@pytest.mark.unit
def test_exchange_requires_code():
    provider = make_provider(google({}))

    with pytest.raises(BadRequestException, match="Authorization code is required"):
        provider.exchange_code("")


@pytest.mark.unit
def test_rejected_code():
    provider = make_provider(google({}, token_status=400))

    with pytest.raises(UpstreamException) as exc_info:
        provider.exchange_code("stale-code")

    assert exc_info.value.status_code == 502


@pytest.mark.unit
def test_profile_without_email():
    provider = make_provider(google({"sub": "google-123"}))

    with pytest.raises(BadRequestException):
        provider.exchange_code("auth-code")


@pytest.mark.unit
def test_transport_errors_are_retried(monkeypatch):
    """Connection failures are retried, then surfaced as 502."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        raise httpx.ConnectError("connection refused", request=request)

    provider = make_provider(handler)
    monkeypatch.setattr(GoogleIdentityProvider._post_token.retry, "sleep", lambda seconds: None)

    with pytest.raises(UpstreamException, match="Identity provider unavailable"):
        provider.exchange_code("auth-code")

    assert len(calls) == 3
