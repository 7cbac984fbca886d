from __future__ import annotations

import json

import httpx
import pytest

from sds_client import NAV_ITEMS, RouteGuard, SdsApiError, SdsClient, can_access, render_label, visible_nav_items

EDITOR_USER = {"email": "chemist@acme.com", "roles": ["DocumentEditor", "Viewer"]}
VIEWER_USER = {"email": "viewer@acme.com", "roles": ["Viewer"]}
ADMIN_USER = {"email": "admin@acme.com", "roles": ["Admin", "DocumentEditor", "Viewer"]}


class FakeApi:
    def __init__(self):
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api/auth/login":
            credentials = json.loads(request.content)
            if credentials["password"] != "correct-horse":
                return httpx.Response(401, json={"detail": "Invalid email or password"})
            return httpx.Response(200, json={"token": "session-token", "user": EDITOR_USER})
        if path == "/api/auth/me":
            if request.headers.get("Authorization") != "Bearer session-token":
                return httpx.Response(401, json={"detail": "Authentication required"})
            return httpx.Response(200, json=EDITOR_USER)
        if path == "/api/auth/logout":
            return httpx.Response(200, json={"message": "Logged out"})
        if path == "/api/documents":
            return httpx.Response(200, json={"items": [], "total": 0, "page": 1, "limit": 20})
        if path == "/api/documents/bulk":
            return httpx.Response(200, json={"count": 2})
        if path == "/api/documents/export-excel":
            return httpx.Response(200, content=b"xlsx-bytes")
        if path == "/api/users":
            return httpx.Response(200, json={"contacts": [{"contactId": "c-1"}], "roleFields": []})
        return httpx.Response(404, json={"detail": "Not found"})


@pytest.fixture()
def api():
    return FakeApi()


@pytest.fixture()
def sds(api):
    with SdsClient(base_url="http://api.test/api/", transport=httpx.MockTransport(api)) as client:
        yield client


def test_login_stores_token_for_later_requests(sds, api):
    body = sds.login("chemist@acme.com", "correct-horse")

    assert body["token"] == "session-token"
    assert sds.has_role("DocumentEditor")
    assert not sds.has_role("Admin")

    sds.search_documents(q="acetone", department="Lab")
    request = api.requests[-1]
    assert request.headers["Authorization"] == "Bearer session-token"
    assert request.url.params["q"] == "acetone"
    assert request.url.params["department"] == "Lab"
    assert "site" not in request.url.params


def test_api_errors_carry_detail(sds):
    with pytest.raises(SdsApiError) as excinfo:
        sds.login("chemist@acme.com", "wrong")
    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Invalid email or password"
    assert sds.token is None


def test_login_with_token_rejects_bad_token(sds):
    with pytest.raises(SdsApiError):
        sds.login_with_token("forged")
    assert sds.token is None

    assert sds.login_with_token("session-token") == EDITOR_USER


def test_logout_forgets_session(sds):
    sds.login("chemist@acme.com", "correct-horse")
    sds.logout()
    assert sds.token is None
    assert sds.user is None


def test_bulk_update_and_export(sds, api):
    assert sds.bulk_update(["a", "b"], {"site": "South"}) == {"count": 2}
    assert json.loads(api.requests[-1].content) == {"ids": ["a", "b"], "metadata": {"site": "South"}}

    assert sds.export_excel(["a"]) == b"xlsx-bytes"
    assert json.loads(api.requests[-1].content) == {"ids": ["a"]}


def test_upload_sends_multipart_form(sds, api):
    sds.upload_document(("acetone.pdf", b"%PDF"), company_code="ACME", tags=["solvent"])
    request = api.requests[-1]
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    assert b'name="companyCode"' in request.content
    assert b'["solvent"]' in request.content
    assert b'filename="acetone.pdf"' in request.content


def test_list_contacts_unwraps(sds):
    assert sds.list_contacts() == [{"contactId": "c-1"}]


def test_microsoft_start_url(sds):
    assert sds.microsoft_start_url() == "http://api.test/api/auth/microsoft/start"


@pytest.mark.parametrize(
    ("user", "expected"),
    [
        (VIEWER_USER, ["Dashboard", "Documents", "Labels"]),
        (EDITOR_USER, ["Dashboard", "Documents", "Upload", "Bulk Upload", "Import Excel", "Labels"]),
        (ADMIN_USER, [item.label for item in NAV_ITEMS]),
    ],
)
def test_navigation_depends_on_roles(user, expected):
    assert [item.label for item in visible_nav_items(user)] == expected


def test_can_access_requires_session():
    assert not can_access(None)
    assert can_access(VIEWER_USER)
    assert not can_access(VIEWER_USER, ["Admin"])


@pytest.mark.parametrize(
    ("path", "user", "expected"),
    [
        ("/login", None, "/login"),
        ("/auth/callback", None, "/auth/callback"),
        ("/documents", None, "/login"),
        ("/contacts", EDITOR_USER, "/"),
        ("/contacts", ADMIN_USER, "/contacts"),
        ("/upload", VIEWER_USER, "/"),
        ("/nowhere", ADMIN_USER, "/"),
    ],
)
def test_route_guard(path, user, expected):
    assert RouteGuard().resolve(path, user) == expected


def test_label_rendering():
    label = {"productName": "Acetone", "companyCode": "ACME", "department": "Lab", "site": None, "filename": "a.pdf"}

    lines = render_label(label, width=30).splitlines()

    assert lines[0] == lines[-1] == "+" + "-" * 28 + "+"
    assert lines[1] == "| Acetone" + " " * 19 + " |"
    assert "| Department: Lab" in lines[3]
    assert not any("Site:" in line for line in lines)
    assert len({len(line) for line in lines}) == 1
