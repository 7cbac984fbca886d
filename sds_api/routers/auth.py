from __future__ import annotations

import logging
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, EmailStr, Field, field_validator

from ..config import settings
from ..dependencies.auth import DEV_USER, require_auth
from ..dependencies.services import auth_service, microsoft_client, oauth_state_store
from ..errors import ServiceError, ServiceUnavailable
from ..services.auth import AuthService, NoAccount
from ..services.dynamics365 import DynamicsError
from ..services.microsoft import MicrosoftOAuthClient, MicrosoftOAuthError
from ..services.oauth_state import OAuthStateStore
from ..services.sessions import SessionClaims

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 8


def _check_password_length(value: str) -> str:
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def password_length(cls, value: str) -> str:
        return _check_password_length(value)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str

    @field_validator("password")
    @classmethod
    def password_length(cls, value: str) -> str:
        return _check_password_length(value)


def _dev_response(message: str) -> dict:
    return {"message": message, "token": "dev-token", "user": DEV_USER.public_user()}


@router.post("/register")
def register(payload: RegisterRequest, service: AuthService = Depends(auth_service)) -> dict:
    if settings.dev_skip_auth:
        return _dev_response("Dev mode: registration skipped")
    return service.register(payload.email, payload.password).as_response()


@router.post("/login")
def login(payload: LoginRequest, service: AuthService = Depends(auth_service)) -> dict:
    if settings.dev_skip_auth:
        return _dev_response("Dev login ok")
    return service.login(payload.email, payload.password).as_response()


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, service: AuthService = Depends(auth_service)) -> dict:
    if settings.dev_skip_auth:
        return {"message": "Dev: Check your email for reset link (simulated)"}
    return {"message": service.forgot_password(payload.email)}


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, service: AuthService = Depends(auth_service)) -> dict:
    if settings.dev_skip_auth:
        return {"message": "Dev: Password reset complete"}
    return {"message": service.reset_password(payload.token, payload.password)}


@router.post("/logout")
def logout() -> dict:
    return {"message": "Logged out"}


@router.get("/me")
def me(user: SessionClaims = Depends(require_auth)) -> dict:
    return user.public_user()


# --- Microsoft sign-in --------------------------------------------------------


def _callback_redirect(client: MicrosoftOAuthClient, **params: str) -> RedirectResponse:
    target = client.config.callback_url or f"{settings.web_url.rstrip('/')}/auth/callback"
    separator = "&" if "?" in target else "?"
    return RedirectResponse(f"{target}{separator}{urlencode(params)}", status_code=302)


def _error_redirect(client: MicrosoftOAuthClient, code: str, message: str) -> RedirectResponse:
    logger.info("microsoft_login_rejected error=%s", code)
    return _callback_redirect(client, error=code, message=message)


@router.get("/microsoft/start")
def microsoft_start(
    client: MicrosoftOAuthClient = Depends(microsoft_client),
    states: OAuthStateStore = Depends(oauth_state_store),
) -> RedirectResponse:
    if not client.is_configured():
        raise ServiceUnavailable("Microsoft sign-in is not configured")
    states.sweep()
    state = states.issue()
    return RedirectResponse(client.authorization_url(state), status_code=302)


@router.get("/microsoft/callback")
def microsoft_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    client: MicrosoftOAuthClient = Depends(microsoft_client),
    states: OAuthStateStore = Depends(oauth_state_store),
    service: AuthService = Depends(auth_service),
) -> RedirectResponse:
    states.sweep()
    if error:
        return _error_redirect(client, "microsoft_error", error_description or error)
    if not code or not state:
        return _error_redirect(client, "missing_params", "Missing code or state from Microsoft")
    if not states.consume(state):
        return _error_redirect(client, "invalid_state", "Sign-in session expired. Please try again.")

    try:
        access_token = client.exchange_code(code)
        profile = client.fetch_profile(access_token)
        email = profile.email
        if not email:
            return _error_redirect(client, "no_email", "Your Microsoft account has no email address")
        result = service.login_with_verified_email(email)
    except NoAccount as exc:
        return _error_redirect(client, "no_account", exc.message)
    except (MicrosoftOAuthError, DynamicsError, ServiceError, httpx.HTTPError, ValueError):
        logger.exception("microsoft_login_failed")
        return _error_redirect(client, "server_error", "Microsoft sign-in failed. Please try again.")

    return _callback_redirect(client, token=result.token)
