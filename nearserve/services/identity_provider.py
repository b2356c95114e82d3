"""Google OAuth 2.0 identity provider.

Turns an authorization code from the browser redirect into a verified
profile (subject, email, name, picture). Transport failures are retried
with exponential backoff; an error status from Google is not retried.
"""
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from nearserve.api.middleware.error_handler import BadRequestException, UpstreamException
from nearserve.lib.logging import get_logger
from nearserve.lib.settings import settings


logger = get_logger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
SCOPES = ("openid", "email", "profile")


@dataclass(frozen=True)
class IdentityProfile:
    """Profile returned by the identity provider after a successful exchange."""
    subject: str
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


class GoogleIdentityProvider:
    """
    OAuth code-flow client for Google sign-in.

    Args:
        client_id: OAuth client ID
        client_secret: OAuth client secret
        redirect_uri: Callback URL registered with Google
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls) -> "GoogleIdentityProvider":
        return cls(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            redirect_uri=settings.google_callback_url,
            timeout=settings.google_timeout_seconds,
        )

    def authorization_url(self, state: Optional[str] = None) -> str:
        """URL the browser is sent to for the Google consent screen."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "online",
            "prompt": "select_account",
        }
        if state:
            params["state"] = state
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _post_token(self, client: httpx.Client, code: str) -> httpx.Response:
        return client.post(
            TOKEN_URL,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _get_userinfo(self, client: httpx.Client, access_token: str) -> httpx.Response:
        return client.get(
            USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    def exchange_code(self, code: str) -> IdentityProfile:
        """
        Exchange an authorization code for the signed-in user's profile.

        Raises:
            BadRequestException: Empty code, or Google returned no email
            UpstreamException: Google rejected the code or could not be reached
        """
        if not code:
            raise BadRequestException("Authorization code is required")

        try:
            with self._client() as client:
                token_response = self._post_token(client, code)
                if token_response.status_code != 200:
                    logger.warning(
                        "Google token exchange rejected",
                        extra={"status_code": token_response.status_code},
                    )
                    raise UpstreamException("Identity provider rejected the authorization code")

                access_token = token_response.json().get("access_token")
                if not access_token:
                    raise UpstreamException("Identity provider returned no access token")

                userinfo_response = self._get_userinfo(client, access_token)
                if userinfo_response.status_code != 200:
                    raise UpstreamException("Could not fetch profile from identity provider")
                info = userinfo_response.json()
        except httpx.HTTPError as e:
            logger.error(f"Google identity exchange failed: {e}", exc_info=True)
            raise UpstreamException("Identity provider unavailable")

        email = info.get("email")
        if not email:
            raise BadRequestException("Identity provider profile has no email address")

        return IdentityProfile(
            subject=str(info.get("sub")),
            email=email.lower(),
            name=info.get("name"),
            picture=info.get("picture"),
        )
