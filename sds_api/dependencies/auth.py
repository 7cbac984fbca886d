from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, Request, status

from ..config import settings
from ..services.roles import ROLE_ADMIN, ROLE_EDITOR, ROLE_VIEWER, has_any_role
from ..services.sessions import SessionClaims, SessionSigner, SessionTokenError
from .services import session_signer

DEV_USER = SessionClaims(
    id="dev-user-1",
    email="dev@example.com",
    roles=[ROLE_ADMIN, ROLE_EDITOR, ROLE_VIEWER],
    firstName="Dev",
    lastName="User",
    accountNumber="DEV001",
)


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        return header[7:].strip() or None
    return None


def optional_user(request: Request, signer: SessionSigner = Depends(session_signer)) -> SessionClaims | None:
    token = _bearer_token(request)
    if token:
        try:
            claims = signer.verify(token)
        except SessionTokenError:
            claims = None
        if claims is not None:
            request.state.user_id = claims.id
            request.state.account_number = claims.accountNumber
            return claims

    if settings.dev_skip_auth:
        request.state.user_id = DEV_USER.id
        return DEV_USER
    return None


def require_auth(user: SessionClaims | None = Depends(optional_user)) -> SessionClaims:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


def require_role(*roles: str) -> Callable[..., SessionClaims]:
    def dependency(user: SessionClaims = Depends(require_auth)) -> SessionClaims:
        if not has_any_role(user.roles, roles):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user

    return dependency


require_editor = require_role(ROLE_ADMIN, ROLE_EDITOR)
require_admin = require_role(ROLE_ADMIN)
