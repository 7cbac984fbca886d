"""Microsoft identity platform sign-in (OAuth2 authorization code flow)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from ..config import MicrosoftOAuthSettings, settings

logger = logging.getLogger(__name__)

AUTHORITY = "https://login.microsoftonline.com"
GRAPH_ME_URL = "https://graph.microsoft.com/v1.0/me"
SCOPES = ["openid", "profile", "email", "User.Read"]


class MicrosoftOAuthError(Exception):
    pass


@dataclass
class MicrosoftProfile:
    """Subset of the Graph ``/me`` resource used for sign-in."""

    id: Optional[str]
    mail: Optional[str]
    user_principal_name: Optional[str]
    display_name: Optional[str] = None

    @classmethod
    def from_graph(cls, payload: dict[str, Any]) -> "MicrosoftProfile":
        return cls(
            id=payload.get("id"),
            mail=payload.get("mail"),
            user_principal_name=payload.get("userPrincipalName"),
            display_name=payload.get("displayName"),
        )

    @property
    def email(self) -> Optional[str]:
        candidate = (self.mail or self.user_principal_name or "").strip()
        return candidate.lower() or None


class MicrosoftOAuthClient:
    def __init__(
        self,
        config: Optional[MicrosoftOAuthSettings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.config = config or settings.microsoft
        self._transport = transport

    def is_configured(self) -> bool:
        return self.config.configured

    @property
    def _tenant_url(self) -> str:
        return f"{AUTHORITY}/{self.config.tenant_id}/oauth2/v2.0"

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.config.client_id,
            "response_type": "code",
            "redirect_uri": self.config.redirect_uri,
            "response_mode": "query",
            "scope": " ".join(SCOPES),
            "state": state,
            "prompt": "select_account",
        }
        return f"{self._tenant_url}/authorize?{urlencode(params)}"

    def exchange_code(self, code: str) -> str:
        """Exchange an authorization code for an access token."""
        with httpx.Client(transport=self._transport) as client:
            response = client.post(
                f"{self._tenant_url}/token",
                data={
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "code": code,
                    "redirect_uri": self.config.redirect_uri,
                    "grant_type": "authorization_code",
                    "scope": " ".join(SCOPES),
                },
            )
        if response.status_code >= 400:
            logger.warning("microsoft_token_exchange_failed status=%s", response.status_code)
            raise MicrosoftOAuthError(f"Token exchange failed: {response.status_code}")

        access_token = response.json().get("access_token")
        if not access_token:
            raise MicrosoftOAuthError("Token response did not include an access token")
        return access_token

    def fetch_profile(self, access_token: str) -> MicrosoftProfile:
        with httpx.Client(transport=self._transport) as client:
            response = client.get(
                GRAPH_ME_URL,
                params={"$select": "id,mail,userPrincipalName,displayName"},
                headers={"Authorization": f"Bearer {access_token}"},
            )
        if response.status_code >= 400:
            logger.warning("microsoft_profile_failed status=%s", response.status_code)
            raise MicrosoftOAuthError(f"Profile request failed: {response.status_code}")
        return MicrosoftProfile.from_graph(response.json())


def get_microsoft_client() -> MicrosoftOAuthClient:
    return MicrosoftOAuthClient()
