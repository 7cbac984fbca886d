from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from sds_api.config import MicrosoftOAuthSettings
from sds_api.dependencies.services import microsoft_client
from sds_api.main import app
from sds_api.services.microsoft import MicrosoftOAuthClient
from sds_api.services.sessions import get_session_signer

CALLBACK_URL = "http://web.test/auth/callback"


def _graph_handler(profile: dict, token_status: int = 200, token_text: str | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth2/v2.0/token"):
            if token_status != 200:
                return httpx.Response(token_status, json={"error": "invalid_grant"})
            if token_text is not None:
                return httpx.Response(200, text=token_text)
            return httpx.Response(200, json={"access_token": "graph-token", "expires_in": 3600})
        if request.url.host == "graph.microsoft.com":
            assert request.headers["Authorization"] == "Bearer graph-token"
            return httpx.Response(200, json=profile)
        return httpx.Response(404)

    return handler


@pytest.fixture()
def microsoft(request):
    params = getattr(request, "param", {})
    oauth = MicrosoftOAuthClient(
        config=MicrosoftOAuthSettings(
            client_id="ms-client",
            client_secret="ms-secret",
            tenant_id="contoso",
            redirect_uri="http://api.test/api/auth/microsoft/callback",
            callback_url=CALLBACK_URL,
        ),
        transport=httpx.MockTransport(
            _graph_handler(
                params.get("profile", {"mail": "Chemist@Acme.com"}),
                params.get("token_status", 200),
                params.get("token_text"),
            )
        ),
    )
    app.dependency_overrides[microsoft_client] = lambda: oauth
    try:
        yield oauth
    finally:
        app.dependency_overrides.pop(microsoft_client, None)


def _redirect_params(response) -> dict[str, str]:
    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith(CALLBACK_URL)
    return {key: values[0] for key, values in parse_qs(urlparse(location).query).items()}


def test_start_redirects_to_microsoft_with_state(client, microsoft, state_store):
    response = client.get("/api/auth/microsoft/start", follow_redirects=False)

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.netloc == "login.microsoftonline.com"
    assert location.path == "/contoso/oauth2/v2.0/authorize"
    query = parse_qs(location.query)
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["openid profile email User.Read"]
    assert query["prompt"] == ["select_account"]
    assert len(state_store) == 1


def test_start_requires_configuration(client, state_store):
    unconfigured = MicrosoftOAuthClient(config=MicrosoftOAuthSettings())
    app.dependency_overrides[microsoft_client] = lambda: unconfigured
    try:
        response = client.get("/api/auth/microsoft/start", follow_redirects=False)
    finally:
        app.dependency_overrides.pop(microsoft_client, None)

    assert response.status_code == 503


def test_callback_issues_session_token_once_per_state(client, microsoft, state_store, dynamics):
    dynamics.add_contact("chemist@acme.com", chemtrec_sdsaccess=True)
    state = state_store.issue()

    first = client.get(f"/api/auth/microsoft/callback?code=abc&state={state}", follow_redirects=False)
    params = _redirect_params(first)
    claims = get_session_signer().verify(params["token"])
    assert claims.email == "chemist@acme.com"
    assert claims.roles == ["Viewer"]

    replay = client.get(f"/api/auth/microsoft/callback?code=abc&state={state}", follow_redirects=False)
    assert _redirect_params(replay)["error"] == "invalid_state"


def test_callback_reports_provider_error(client, microsoft, state_store):
    response = client.get(
        "/api/auth/microsoft/callback?error=access_denied&error_description=User+cancelled",
        follow_redirects=False,
    )
    params = _redirect_params(response)
    assert params["error"] == "microsoft_error"
    assert params["message"] == "User cancelled"


def test_callback_requires_code_and_state(client, microsoft, state_store):
    response = client.get("/api/auth/microsoft/callback?code=abc", follow_redirects=False)
    assert _redirect_params(response)["error"] == "missing_params"


def test_callback_rejects_unknown_state(client, microsoft, state_store):
    response = client.get("/api/auth/microsoft/callback?code=abc&state=forged", follow_redirects=False)
    assert _redirect_params(response)["error"] == "invalid_state"


@pytest.mark.parametrize("microsoft", [{"profile": {"displayName": "No Mail"}}], indirect=True)
def test_callback_requires_email(client, microsoft, state_store, dynamics):
    state = state_store.issue()
    response = client.get(f"/api/auth/microsoft/callback?code=abc&state={state}", follow_redirects=False)
    assert _redirect_params(response)["error"] == "no_email"


@pytest.mark.parametrize("microsoft", [{"profile": {"userPrincipalName": "Stranger@Acme.com"}}], indirect=True)
def test_callback_without_matching_contact(client, microsoft, state_store, dynamics):
    state = state_store.issue()
    response = client.get(f"/api/auth/microsoft/callback?code=abc&state={state}", follow_redirects=False)
    params = _redirect_params(response)
    assert params["error"] == "no_account"
    assert params["message"]


@pytest.mark.parametrize("microsoft", [{"token_status": 400}], indirect=True)
def test_callback_token_exchange_failure(client, microsoft, state_store, dynamics):
    state = state_store.issue()
    response = client.get(f"/api/auth/microsoft/callback?code=abc&state={state}", follow_redirects=False)
    assert _redirect_params(response)["error"] == "server_error"


@pytest.mark.parametrize("microsoft", [{"token_text": "<html>gateway timeout</html>"}], indirect=True)
def test_callback_with_unreadable_token_response(client, microsoft, state_store, dynamics):
    state = state_store.issue()
    response = client.get(f"/api/auth/microsoft/callback?code=abc&state={state}", follow_redirects=False)
    params = _redirect_params(response)
    assert params["error"] == "server_error"
    assert params["message"] == "Microsoft sign-in failed. Please try again."
