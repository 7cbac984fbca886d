"""HTTP client for the SDS Document Manager API.

Holds the bearer token once a sign-in call succeeds and sends it on every
following request.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence, Union

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3001/api"

FileInput = Union[str, Path, tuple[str, bytes]]


class SdsApiError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error") or body.get("message")
        if detail:
            return str(detail)
    return response.reason_phrase or f"HTTP {response.status_code}"


def _file_part(field: str, source: FileInput) -> tuple[str, tuple[str, bytes]]:
    if isinstance(source, tuple):
        filename, content = source
        return field, (filename, content)
    path = Path(source)
    return field, (path.name, path.read_bytes())


class SdsClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.user: Optional[dict[str, Any]] = None
        self.http_client = httpx.Client(base_url=self.base_url, transport=transport, timeout=timeout)

    def close(self) -> None:
        self.http_client.close()

    def __enter__(self) -> "SdsClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # --- plumbing --------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = self.http_client.request(method, path, headers=self._headers(), **kwargs)
        if response.status_code >= 400:
            message = _error_message(response)
            logger.debug("sds_api_error method=%s path=%s status=%s", method, path, response.status_code)
            raise SdsApiError(response.status_code, message)
        return response

    def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        return self._send(method, path, **kwargs).json()

    def _remember_session(self, body: dict[str, Any]) -> dict[str, Any]:
        if body.get("token"):
            self.token = body["token"]
            self.user = body.get("user")
        return body

    # --- health ----------------------------------------------------------
    def health(self) -> dict[str, Any]:
        return self._json("GET", "/health")

    # --- auth ------------------------------------------------------------
    def login(self, email: str, password: str) -> dict[str, Any]:
        return self._remember_session(self._json("POST", "/auth/login", json={"email": email, "password": password}))

    def register(self, email: str, password: str) -> dict[str, Any]:
        return self._remember_session(
            self._json("POST", "/auth/register", json={"email": email, "password": password})
        )

    def login_with_token(self, token: str) -> dict[str, Any]:
        """Adopt a token from the Microsoft sign-in redirect and load its user."""
        self.token = token
        try:
            self.user = self.me()
        except SdsApiError:
            self.token = None
            self.user = None
            raise
        return self.user

    def me(self) -> dict[str, Any]:
        return self._json("GET", "/auth/me")

    def logout(self) -> dict[str, Any]:
        try:
            return self._json("POST", "/auth/logout")
        finally:
            self.token = None
            self.user = None

    def forgot_password(self, email: str) -> dict[str, Any]:
        return self._json("POST", "/auth/forgot-password", json={"email": email})

    def reset_password(self, token: str, password: str) -> dict[str, Any]:
        return self._json("POST", "/auth/reset-password", json={"token": token, "password": password})

    def microsoft_start_url(self) -> str:
        return f"{self.base_url}/auth/microsoft/start"

    def has_role(self, role: str) -> bool:
        return bool(self.user) and role in (self.user.get("roles") or [])

    # --- documents -------------------------------------------------------
    def search_documents(
        self,
        q: Optional[str] = None,
        company_code: Optional[str] = None,
        department: Optional[str] = None,
        site: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if q:
            params["q"] = q
        if company_code:
            params["companyCode"] = company_code
        if department:
            params["department"] = department
        if site:
            params["site"] = site
        return self._json("GET", "/documents", params=params)

    def get_document(self, document_id: str) -> dict[str, Any]:
        return self._json("GET", f"/documents/{document_id}")

    def download_url(self, document_id: str) -> dict[str, str]:
        return self._json("GET", f"/documents/{document_id}/download")

    def share_document(self, document_id: str, expires_in_days: int = 7) -> str:
        body = self._json("POST", f"/documents/{document_id}/share", json={"expiresInDays": expires_in_days})
        return body["shareUrl"]

    def upload_document(
        self,
        source: FileInput,
        company_code: str = "default",
        product_name: Optional[str] = None,
        department: Optional[str] = None,
        site: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> dict[str, Any]:
        data = {"companyCode": company_code}
        if product_name:
            data["productName"] = product_name
        if department:
            data["department"] = department
        if site:
            data["site"] = site
        if tags:
            data["tags"] = json.dumps(list(tags))
        return self._json("POST", "/documents", data=data, files=[_file_part("file", source)])

    def bulk_upload(self, sources: Iterable[FileInput], company_code: str = "default") -> dict[str, Any]:
        files = [_file_part("files", source) for source in sources]
        return self._json("POST", "/documents/bulk", data={"companyCode": company_code}, files=files)

    def update_document(self, document_id: str, **fields: Any) -> dict[str, Any]:
        return self._json("PATCH", f"/documents/{document_id}", json=fields)

    def bulk_update(self, ids: Sequence[str], metadata: dict[str, Any]) -> dict[str, Any]:
        return self._json("PATCH", "/documents/bulk", json={"ids": list(ids), "metadata": metadata})

    def export_excel(self, ids: Optional[Sequence[str]] = None) -> bytes:
        body = {"ids": list(ids)} if ids else {}
        return self._send("POST", "/documents/export-excel", json=body).content

    def import_excel(self, source: FileInput) -> dict[str, Any]:
        return self._json("POST", "/documents/import-excel", files=[_file_part("file", source)])

    def get_label(self, document_id: str) -> dict[str, Any]:
        return self._json("GET", f"/documents/{document_id}/label")

    # --- users -----------------------------------------------------------
    def list_contacts(self) -> list[dict[str, Any]]:
        return self._json("GET", "/users").get("contacts", [])

    def update_contact_roles(self, contact_id: str, d365_roles: dict[str, bool]) -> dict[str, Any]:
        return self._json("PATCH", f"/users/{contact_id}/roles", json={"d365Roles": d365_roles})
