# linkedbud/services/linkedin_oauth.py
import logging
from dataclasses import dataclass
from typing import Any, Dict
from urllib.parse import urlencode

from linkedbud.config import settings
from linkedbud.errors import ConfigurationError, InvalidRequestError
from linkedbud.services.linkedin_api import (
    LinkedInAPIError,
    error_from_response,
    linkedin_request_with_retry,
    log_request_id,
)

logger = logging.getLogger(__name__)

AUTH_URL = "https://www.linkedin.com/oauth/v2/authorization"
TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
REVOKE_URL = "https://www.linkedin.com/oauth/v2/revoke"
FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


@dataclass
class OAuthApp:
    """One LinkedIn app registration. Personal and community flows are two instances."""

    name: str
    client_id: str
    client_secret: str
    redirect_uri: str
    scopes: str

    def ensure_configured(self) -> None:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError(f"LinkedIn {self.name} app is not configured")

    def authorization_url(self, state: str) -> str:
        self.ensure_configured()
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": state,
            "scope": self.scopes,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    def _token_request(self, data: Dict[str, str]) -> Dict[str, Any]:
        resp = linkedin_request_with_retry("POST", TOKEN_URL, data=data, headers=FORM_HEADERS)
        if resp.status_code != 200:
            raise error_from_response(resp, f"{self.name} token request failed")
        body = resp.json()
        if not body.get("access_token"):
            raise LinkedInAPIError(resp.status_code, "No access_token in token response", log_request_id(resp))
        return body

    def exchange_code(self, code: str) -> Dict[str, Any]:
        self.ensure_configured()
        return self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        })

    def refresh(self, refresh_token: str) -> Dict[str, Any]:
        self.ensure_configured()
        return self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        })

    def revoke(self, access_token: str) -> None:
        self.ensure_configured()
        resp = linkedin_request_with_retry(
            "POST",
            REVOKE_URL,
            data={"token": access_token, "client_id": self.client_id, "client_secret": self.client_secret},
            headers=FORM_HEADERS,
        )
        # LinkedIn answers 200 for tokens that were already revoked
        if not 200 <= resp.status_code < 300:
            raise error_from_response(resp, f"{self.name} token revoke failed")


def oauth_app_for(token_type: str) -> OAuthApp:
    if token_type == "personal":
        return OAuthApp(
            name="personal",
            client_id=settings.linkedin_client_id,
            client_secret=settings.linkedin_client_secret,
            redirect_uri=settings.linkedin_redirect_uri,
            scopes=settings.linkedin_scopes,
        )
    if token_type == "community":
        return OAuthApp(
            name="community",
            client_id=settings.linkedin_community_client_id,
            client_secret=settings.linkedin_community_client_secret,
            redirect_uri=settings.linkedin_community_redirect_uri,
            scopes=settings.linkedin_community_scopes,
        )
    raise InvalidRequestError(f"Unknown token type: {token_type}")
