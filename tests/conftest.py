from __future__ import annotations

import os
import pathlib
import sys
import tempfile
import uuid
from typing import Any, Callable, Iterator, Optional

_DB_DIR = tempfile.mkdtemp(prefix="sds-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/sds-test.db"
os.environ["JWT_SECRET"] = "test-session-secret"
os.environ["EMAIL_BACKEND"] = "console"
os.environ["EMAIL_FROM"] = "noreply@example.com"
os.environ["DEV_SKIP_AUTH"] = "false"
os.environ["WEB_URL"] = "http://web.test"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_REGION"] = "us-east-1"
for _name in (
    "AZURE_STORAGE_CONNECTION_STRING",
    "AZURE_SEARCH_ENDPOINT",
    "AZURE_SEARCH_API_KEY",
    "D365_URL",
    "D365_CLIENT_ID",
    "D365_CLIENT_SECRET",
    "D365_TENANT_ID",
    "MICROSOFT_CLIENT_ID",
    "MICROSOFT_CLIENT_SECRET",
    "SENTRY_DSN",
):
    os.environ[_name] = ""

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sds_api.config import DynamicsSettings
from sds_api.db.session import SessionLocal, get_engine
from sds_api.dependencies.services import dynamics_service, oauth_state_store, storage_service
from sds_api.main import app
from sds_api.models import Document, PasswordResetToken
from sds_api.models.base import Base
from sds_api.services.dynamics365 import Contact, Dynamics365Service
from sds_api.services.oauth_state import OAuthStateStore
from sds_api.services.sessions import SessionClaims, get_session_signer
from sds_api.services.storage import StorageError, StorageService, StoredFile

Base.metadata.create_all(get_engine())


class FakeDynamics(Dynamics365Service):
    """In-memory contact directory standing in for the Dynamics 365 Web API."""

    def __init__(self) -> None:
        super().__init__(
            config=DynamicsSettings(
                url="https://contoso.crm.dynamics.com",
                client_id="client-id",
                client_secret="client-secret",
                tenant_id="tenant-id",
            )
        )
        self.contacts: dict[str, Contact] = {}

    def add_contact(
        self,
        email: str,
        password: Optional[str] = None,
        account_id: Optional[str] = "acc-1",
        account_number: Optional[str] = "ACME-001",
        **fields: Any,
    ) -> Contact:
        contact_id = fields.pop("contactid", None) or str(uuid.uuid4())
        contact: Contact = {
            "contactid": contact_id,
            self.config.email_field: email,
            self.config.password_field: password,
            "firstname": fields.pop("firstname", "Pat"),
            "lastname": fields.pop("lastname", "Lee"),
            "_parentcustomerid_value": account_id,
        }
        if account_id:
            contact["parentcustomerid_account"] = {
                "accountid": account_id,
                "name": "Acme Chemicals",
                "accountnumber": account_number,
            }
        contact.update(fields)
        self.contacts[contact_id] = contact
        return contact

    def get_contact_by_email(self, email: str) -> Optional[Contact]:
        for contact in self.contacts.values():
            if (contact.get(self.config.email_field) or "").lower() == email.lower():
                return contact
        return None

    def get_contact_by_id(self, contact_id: str) -> Optional[Contact]:
        return self.contacts.get(contact_id)

    def get_contacts_by_account_id(self, account_id: str) -> list[Contact]:
        return [c for c in self.contacts.values() if c.get("_parentcustomerid_value") == account_id]

    def get_contacts_by_account_number(self, account_number: str) -> list[Contact]:
        return [
            c
            for c in self.contacts.values()
            if (c.get("parentcustomerid_account") or {}).get("accountnumber") == account_number
        ]

    def update_contact_password(self, contact_id: str, password_hash: str) -> None:
        self.contacts[contact_id][self.config.password_field] = password_hash

    def update_contact_roles(self, contact_id: str, role_flags: Any) -> dict[str, bool]:
        allowed = set(self.config.role_fields)
        payload = {key: bool(value) for key, value in role_flags.items() if key in allowed}
        self.contacts[contact_id].update(payload)
        return payload


class FlakyStorage(StorageService):
    """Dev-mode storage that rejects filenames starting with ``bad``."""

    def upload_fileobj(self, company_code, file_obj, filename, content_type) -> StoredFile:  # type: ignore[override]
        if filename.startswith("bad"):
            raise StorageError("Failed to upload to blob storage: rejected")
        return super().upload_fileobj(company_code, file_obj, filename, content_type)


@pytest.fixture(scope="session")
def client() -> Iterator[TestClient]:
    """Provide a FastAPI TestClient instance."""
    with TestClient(app) as _client:
        yield _client


@pytest.fixture()
def dynamics() -> Iterator[FakeDynamics]:
    fake = FakeDynamics()
    app.dependency_overrides[dynamics_service] = lambda: fake
    try:
        yield fake
    finally:
        app.dependency_overrides.pop(dynamics_service, None)


@pytest.fixture()
def state_store() -> Iterator[OAuthStateStore]:
    store = OAuthStateStore(ttl_seconds=600)
    app.dependency_overrides[oauth_state_store] = lambda: store
    try:
        yield store
    finally:
        app.dependency_overrides.pop(oauth_state_store, None)


@pytest.fixture()
def flaky_storage() -> Iterator[FlakyStorage]:
    storage = FlakyStorage()
    app.dependency_overrides[storage_service] = lambda: storage
    try:
        yield storage
    finally:
        app.dependency_overrides.pop(storage_service, None)


@pytest.fixture()
def auth_headers() -> Callable[..., dict[str, str]]:
    """Build bearer headers for a session carrying the given roles."""

    def _headers(*roles: str, account_id: Optional[str] = "acc-1", account_number: Optional[str] = "ACME-001") -> dict:
        claims = SessionClaims(
            id="contact-admin",
            email="admin@acme.com",
            roles=list(roles) or ["Viewer"],
            contactId="contact-admin",
            firstName="Ada",
            lastName="Admin",
            accountId=account_id,
            accountName="Acme Chemicals",
            accountNumber=account_number,
        )
        return {"Authorization": f"Bearer {get_session_signer().issue(claims)}"}

    return _headers


@pytest.fixture(autouse=True)
def cleanup_database() -> Iterator[None]:
    """Clear tables after every test to keep isolation."""
    yield
    with SessionLocal() as session:
        session.query(Document).delete()
        session.query(PasswordResetToken).delete()
        session.commit()
