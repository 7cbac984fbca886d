from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ..config import settings


class SessionTokenError(Exception):
    pass


@dataclass
class SessionClaims:
    id: str
    email: str
    roles: list[str] = field(default_factory=list)
    contactId: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    accountId: Optional[str] = None
    accountName: Optional[str] = None
    accountNumber: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SessionClaims":
        try:
            return cls(
                id=str(payload["id"]),
                email=str(payload["email"]),
                roles=[str(role) for role in payload.get("roles") or []],
                contactId=payload.get("contactId"),
                firstName=payload.get("firstName"),
                lastName=payload.get("lastName"),
                accountId=payload.get("accountId"),
                accountName=payload.get("accountName"),
                accountNumber=payload.get("accountNumber"),
            )
        except (KeyError, TypeError) as exc:
            raise SessionTokenError("Malformed session token") from exc

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    def public_user(self) -> dict[str, Any]:
        """User shape returned to the web client."""
        return {
            "id": self.id,
            "email": self.email,
            "roles": list(self.roles),
            "firstName": self.firstName,
            "lastName": self.lastName,
            "accountName": self.accountName,
            "accountNumber": self.accountNumber,
        }


class SessionSigner:
    """Issues and verifies stateless session tokens."""

    def __init__(self, secret: Optional[str] = None, ttl_hours: Optional[int] = None) -> None:
        self.serializer = URLSafeTimedSerializer(secret or settings.session_secret, salt="session")
        self.ttl_seconds = int((ttl_hours if ttl_hours is not None else settings.session_ttl_hours) * 3600)

    def issue(self, claims: SessionClaims) -> str:
        return self.serializer.dumps(claims.to_payload())

    def verify(self, token: str) -> SessionClaims:
        try:
            payload = self.serializer.loads(token, max_age=self.ttl_seconds)
        except SignatureExpired as exc:
            raise SessionTokenError("Session expired") from exc
        except BadSignature as exc:
            raise SessionTokenError("Invalid session token") from exc
        if not isinstance(payload, dict):
            raise SessionTokenError("Malformed session token")
        return SessionClaims.from_payload(payload)


def get_session_signer() -> SessionSigner:
    return SessionSigner()
