from __future__ import annotations

import io

import pytest

from sds_api.config import settings
from sds_api.dependencies.auth import DEV_USER


@pytest.mark.integration
def test_documents_list_requires_auth(client):
    response = client.get("/api/documents")
    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication required"


@pytest.mark.integration
def test_documents_upload_requires_auth(client):
    response = client.post(
        "/api/documents",
        data={"companyCode": "ACME"},
        files={"file": ("sample.pdf", io.BytesIO(b"%PDF-1.4\n%%EOF"), "application/pdf")},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication required"


def test_invalid_token_is_rejected(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-real-token"})
    assert response.status_code == 401


def test_viewer_cannot_upload(client, auth_headers):
    response = client.post(
        "/api/documents",
        headers=auth_headers("Viewer"),
        files={"file": ("sample.pdf", io.BytesIO(b"%PDF-1.4\n%%EOF"), "application/pdf")},
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Insufficient permissions"


def test_editor_cannot_bulk_upload(client, auth_headers):
    response = client.post(
        "/api/documents/bulk",
        headers=auth_headers("DocumentEditor", "Viewer"),
        files=[("files", ("a.pdf", io.BytesIO(b"a"), "application/pdf"))],
    )
    assert response.status_code == 403


def test_editor_cannot_list_users(client, auth_headers, dynamics):
    response = client.get("/api/users", headers=auth_headers("DocumentEditor", "Viewer"))
    assert response.status_code == 403


def test_me_returns_session_user(client, auth_headers):
    response = client.get("/api/auth/me", headers=auth_headers("Admin", "DocumentEditor", "Viewer"))
    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "admin@acme.com"
    assert body["roles"] == ["Admin", "DocumentEditor", "Viewer"]
    assert body["accountNumber"] == "ACME-001"


def test_dev_bypass_authenticates_as_dev_user(client, monkeypatch):
    monkeypatch.setattr(settings, "dev_skip_auth", True)

    response = client.get("/api/auth/me")
    assert response.status_code == 200
    assert response.json()["email"] == DEV_USER.email
    assert "Admin" in response.json()["roles"]

    login = client.post("/api/auth/login", json={"email": "anyone@example.com", "password": "whatever"})
    assert login.status_code == 200
    assert login.json()["message"] == "Dev login ok"
