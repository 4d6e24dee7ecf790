"""
Google OAuth provider for browser sign-in.

Handles the authorization-code flow: builds the consent URL, exchanges the
code at the token endpoint and reads the profile from the userinfo endpoint.
"""

from urllib.parse import urlencode

import httpx
from structlog import get_logger

from storefront.exceptions import ProviderExchangeError
from storefront.models.domain import Identity, OAuthToken

logger = get_logger(__name__)


class GoogleOAuthProvider:
    """Google OAuth provider implementation."""

    AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        callback_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.callback_url = callback_url
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    def get_authorization_url(self, state: str, scopes: tuple[str, ...]) -> str:
        """Get OAuth authorization URL."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": " ".join(scopes),
            "state": state,
        }
        return f"{self.AUTH_URL}?{urlencode(params)}"

    async def exchange_code_for_token(self, code: str) -> OAuthToken:
        """Exchange authorization code for access token."""
        data = {
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.callback_url,
            "grant_type": "authorization_code",
        }

        try:
            response = await self.http_client.post(self.TOKEN_URL, data=data)
            response.raise_for_status()
            token_data = response.json()

            return OAuthToken(
                access_token=token_data["access_token"],
                token_type=token_data.get("token_type", "Bearer"),
                expires_in=token_data.get("expires_in"),
                refresh_token=token_data.get("refresh_token"),
                id_token=token_data.get("id_token"),
            )

        except httpx.HTTPStatusError as e:
            logger.error(
                "token_exchange_failed", status=e.response.status_code, text=e.response.text
            )
            raise ProviderExchangeError(f"token endpoint returned {e.response.status_code}") from e
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("token_exchange_error", error=str(e), error_type=type(e).__name__)
            raise ProviderExchangeError("failed to exchange authorization code") from e

    async def get_user_profile(self, access_token: str) -> Identity:
        """Get user profile from Google and map it to an Identity."""
        try:
            response = await self.http_client.get(
                self.USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )
            response.raise_for_status()
            user_data = response.json()

            # Copied verbatim; see Identity for the trust boundary
            email = user_data.get("email")
            picture = user_data.get("picture")
            return Identity(
                provider_id=str(user_data["sub"]),
                display_name=user_data.get("name") or "",
                emails=(email,) if email else (),
                photos=(picture,) if picture else (),
            )

        except httpx.HTTPStatusError as e:
            logger.error(
                "user_info_fetch_failed", status=e.response.status_code, text=e.response.text
            )
            raise ProviderExchangeError(f"userinfo endpoint returned {e.response.status_code}") from e
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("user_info_error", error=str(e), error_type=type(e).__name__)
            raise ProviderExchangeError("failed to get user profile") from e

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
