"""Microsoft Dynamics 365 / Dataverse Web API client.

Contacts live in Dynamics 365 and double as application users. The login
email and the password field are configurable, a contact has at most one
parent Account, and application roles come from boolean fields on the contact.
"""

from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import Any, Mapping, Optional

import httpx

from ..config import DynamicsSettings, settings

logger = logging.getLogger(__name__)

API_VERSION = "v9.2"
TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
ACCOUNT_EXPAND = "parentcustomerid_account($select=name,accountnumber,accountid)"

Contact = dict[str, Any]


class DynamicsError(Exception):
    pass


def _odata_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class Dynamics365Service:
    def __init__(
        self,
        config: Optional[DynamicsSettings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.config = config or settings.d365
        self._transport = transport
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    def is_configured(self) -> bool:
        return self.config.configured

    # --- HTTP plumbing ---------------------------------------------------
    def _client(self) -> httpx.Client:
        return httpx.Client(transport=self._transport)

    @property
    def _base_url(self) -> str:
        if not self.config.url:
            raise DynamicsError("D365_URL not configured")
        return f"{self.config.url.rstrip('/')}/api/data/{API_VERSION}"

    def get_access_token(self) -> str:
        if self._token and time.time() < self._token_expires_at:
            return self._token

        cfg = self.config
        if not (cfg.client_id and cfg.client_secret and cfg.tenant_id):
            raise DynamicsError("D365_CLIENT_ID, D365_CLIENT_SECRET, D365_TENANT_ID must be set")

        scope = f"{cfg.url.rstrip('/')}/.default" if cfg.url else ""
        with self._client() as client:
            response = client.post(
                TOKEN_URL_TEMPLATE.format(tenant=cfg.tenant_id),
                data={
                    "client_id": cfg.client_id,
                    "client_secret": cfg.client_secret,
                    "scope": scope,
                    "grant_type": "client_credentials",
                },
            )
        if response.status_code >= 400:
            raise DynamicsError(f"D365 token failed: {response.status_code} {response.text}")

        body = response.json()
        self._token = body["access_token"]
        # refreshed one minute before the provider expiry
        self._token_expires_at = time.time() + max(int(body.get("expires_in", 3600)) - 60, 0)
        return self._token

    def _headers(self, json_body: bool = False) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.get_access_token()}",
            "OData-MaxVersion": "4.0",
            "OData-Version": "4.0",
            "Accept": "application/json",
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _select(self) -> str:
        fields = [
            "contactid",
            self.config.email_field,
            self.config.password_field,
            "firstname",
            "lastname",
            "_parentcustomerid_value",
            *self.config.role_fields,
        ]
        return ",".join(fields)

    def _query_contacts(self, params: dict[str, str], error_prefix: str) -> list[Contact]:
        with self._client() as client:
            response = client.get(f"{self._base_url}/contacts", params=params, headers=self._headers())
        if response.status_code >= 400:
            raise DynamicsError(f"{error_prefix}: {response.status_code} {response.text or response.reason_phrase}")
        return list(response.json().get("value") or [])

    def _patch_contact(self, contact_id: str, payload: Mapping[str, Any], error_prefix: str) -> None:
        with self._client() as client:
            response = client.patch(
                f"{self._base_url}/contacts({contact_id})",
                json=dict(payload),
                headers=self._headers(json_body=True),
            )
        if response.status_code >= 400:
            raise DynamicsError(f"{error_prefix}: {response.status_code} {response.text}")

    # --- Contacts --------------------------------------------------------
    def get_contact_by_email(self, email: str) -> Optional[Contact]:
        params = {
            "$filter": f"{self.config.email_field} eq {_odata_literal(email)}",
            "$select": self._select(),
            "$expand": ACCOUNT_EXPAND,
            "$top": "1",
        }
        contacts = self._query_contacts(params, "D365 query failed")
        return contacts[0] if contacts else None

    def get_contact_by_id(self, contact_id: str) -> Optional[Contact]:
        params = {"$select": self._select(), "$expand": ACCOUNT_EXPAND}
        with self._client() as client:
            response = client.get(f"{self._base_url}/contacts({contact_id})", params=params, headers=self._headers())
        if response.status_code >= 400:
            logger.info("d365_contact_lookup_failed contact_id=%s status=%s", contact_id, response.status_code)
            return None
        return response.json()

    def get_contacts_by_account_number(self, account_number: str) -> list[Contact]:
        params = {
            "$filter": f"parentcustomerid_account/accountnumber eq {_odata_literal(account_number)}",
            "$select": self._select(),
            "$expand": ACCOUNT_EXPAND,
            "$orderby": "lastname,firstname",
        }
        return self._query_contacts(params, "D365 contacts query failed")

    def get_contacts_by_account_id(self, account_id: str) -> list[Contact]:
        params = {
            "$filter": f"_parentcustomerid_value eq {_odata_literal(account_id)}",
            "$select": self._select(),
            "$expand": ACCOUNT_EXPAND,
            "$orderby": "lastname,firstname",
        }
        return self._query_contacts(params, "D365 contacts query failed")

    def update_contact_password(self, contact_id: str, password_hash: str) -> None:
        self._patch_contact(contact_id, {self.config.password_field: password_hash}, "D365 update failed")
        logger.info("d365_password_updated contact_id=%s", contact_id)

    def update_contact_roles(self, contact_id: str, role_flags: Mapping[str, Any]) -> dict[str, bool]:
        allowed = set(self.config.role_fields)
        payload = {key: bool(value) for key, value in role_flags.items() if key in allowed}
        if not payload:
            return payload
        self._patch_contact(contact_id, payload, "D365 role update failed")
        logger.info("d365_roles_updated contact_id=%s fields=%s", contact_id, ",".join(sorted(payload)))
        return payload

    # --- Field helpers ---------------------------------------------------
    def password_from_contact(self, contact: Mapping[str, Any]) -> Optional[str]:
        value = contact.get(self.config.password_field)
        return str(value) if value is not None else None

    def email_from_contact(self, contact: Mapping[str, Any]) -> Optional[str]:
        value = contact.get(self.config.email_field)
        return str(value) if value is not None else None


def account_from_contact(contact: Mapping[str, Any]) -> dict[str, Optional[str]]:
    account = contact.get("parentcustomerid_account") or {}
    return {
        "accountId": account.get("accountid") or contact.get("_parentcustomerid_value"),
        "accountName": account.get("name"),
        "accountNumber": account.get("accountnumber"),
    }


@lru_cache(maxsize=1)
def get_dynamics_service() -> Dynamics365Service:
    return Dynamics365Service()
