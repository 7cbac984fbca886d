from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..errors import Conflict, NotFound, ServiceUnavailable, Unauthenticated, ValidationError
from ..models import PasswordResetToken
from .dynamics365 import Dynamics365Service, account_from_contact
from .email import EmailClient, EmailDeliveryError, get_email_client, password_reset_email
from .metrics import record_login
from .passwords import hash_password, verify_password
from .roles import map_roles_from_flags
from .sessions import SessionClaims, SessionSigner, get_session_signer

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If an account exists, you will receive a reset link."
RESET_COMPLETE_MESSAGE = "Password has been reset. You can now sign in."


class InvalidCredentials(Unauthenticated):
    pass


class InvalidOrExpiredToken(ValidationError):
    pass


class NoAccount(NotFound):
    pass


@dataclass
class AuthResult:
    token: str
    claims: SessionClaims

    def as_response(self) -> dict[str, Any]:
        return {"token": self.token, "user": self.claims.public_user()}


def _as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes for timezone-aware columns
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def purge_expired_reset_tokens(db: Session) -> int:
    removed = (
        db.query(PasswordResetToken)
        .filter(PasswordResetToken.expires_at < datetime.now(timezone.utc))
        .delete(synchronize_session=False)
    )
    db.commit()
    if removed:
        logger.info("password_reset_tokens_purged count=%s", removed)
    return removed


class AuthService:
    def __init__(
        self,
        db: Session,
        dynamics: Dynamics365Service,
        signer: Optional[SessionSigner] = None,
        email_client: Optional[EmailClient] = None,
    ) -> None:
        self.db = db
        self.dynamics = dynamics
        self.signer = signer or get_session_signer()
        self._email_client = email_client

    @property
    def email_client(self) -> EmailClient:
        if self._email_client is None:
            self._email_client = get_email_client()
        return self._email_client

    def require_directory(self, unavailable_message: str) -> None:
        if not self.dynamics.is_configured():
            raise ServiceUnavailable(unavailable_message)

    # --- Credential flow -------------------------------------------------
    def login(self, email: str, password: str) -> AuthResult:
        self.require_directory("Login not available (Dynamics 365 not configured)")
        normalized_email = email.strip()

        contact = self.dynamics.get_contact_by_email(normalized_email)
        if not contact:
            record_login("password", "invalid")
            raise InvalidCredentials("Invalid email or password")

        stored = self.dynamics.password_from_contact(contact)
        if not stored:
            record_login("password", "unregistered")
            raise InvalidCredentials("Account not registered. Please register first.")

        if not verify_password(password, stored, allow_plaintext=settings.allow_legacy_plaintext_passwords):
            record_login("password", "invalid")
            raise InvalidCredentials("Invalid email or password")

        result = self.issue_for_contact(contact, normalized_email)
        record_login("password", "success")
        logger.info("user_login method=password contact_id=%s", contact.get("contactid"))
        return result

    def register(self, email: str, password: str) -> AuthResult:
        self.require_directory("Registration not available (Dynamics 365 not configured)")
        normalized_email = email.strip()

        contact = self.dynamics.get_contact_by_email(normalized_email)
        if not contact:
            raise NotFound("No contact found with this email. Please contact your administrator.")

        existing = self.dynamics.password_from_contact(contact)
        if existing:
            raise Conflict("Account already registered. Use Sign in or Forgot password.")

        self.dynamics.update_contact_password(str(contact["contactid"]), hash_password(password))
        logger.info("contact_registered contact_id=%s", contact.get("contactid"))
        return self.issue_for_contact(contact, normalized_email)

    def login_with_verified_email(self, email: str, method: str = "microsoft") -> AuthResult:
        """Sign in a user whose email was already verified by an external provider."""
        self.require_directory("Login not available (Dynamics 365 not configured)")
        contact = self.dynamics.get_contact_by_email(email)
        if not contact:
            record_login(method, "no_account")
            raise NoAccount("No account found for this Microsoft login. Please register or contact your administrator.")

        result = self.issue_for_contact(contact, email)
        record_login(method, "success")
        logger.info("user_login method=%s contact_id=%s", method, contact.get("contactid"))
        return result

    # --- Password recovery -----------------------------------------------
    def forgot_password(self, email: str) -> str:
        self.require_directory("Password recovery not available")
        normalized_email = email.strip()

        contact = self.dynamics.get_contact_by_email(normalized_email)
        if not contact:
            logger.info("password_reset_requested matched=false")
            return FORGOT_PASSWORD_MESSAGE

        token = uuid.uuid4().hex + secrets.token_hex(16)
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.password_reset_expiry_minutes)
        self.db.add(PasswordResetToken(email=normalized_email, token=token, expires_at=expires_at))
        self.db.commit()

        reset_link = f"{settings.web_url.rstrip('/')}/reset-password?token={token}"
        message = password_reset_email(normalized_email, reset_link, settings.password_reset_expiry_minutes)
        try:
            self.email_client.send(message)
        except EmailDeliveryError:
            # the response must not reveal whether the account exists
            logger.exception("password_reset_delivery_failed contact_id=%s", contact.get("contactid"))

        logger.info("password_reset_requested matched=true contact_id=%s", contact.get("contactid"))
        return FORGOT_PASSWORD_MESSAGE

    def reset_password(self, token: str, password: str) -> str:
        self.require_directory("Password recovery not available")

        record = self.db.query(PasswordResetToken).filter(PasswordResetToken.token == token).one_or_none()
        if not record or _as_utc(record.expires_at) < datetime.now(timezone.utc):
            raise InvalidOrExpiredToken("Invalid or expired reset link. Please request a new one.")

        contact = self.dynamics.get_contact_by_email(record.email)
        if not contact:
            raise ValidationError("Contact not found")

        self.dynamics.update_contact_password(str(contact["contactid"]), hash_password(password))
        self.db.delete(record)
        self.db.commit()

        logger.info("password_reset_completed contact_id=%s", contact.get("contactid"))
        return RESET_COMPLETE_MESSAGE

    def purge_expired_reset_tokens(self) -> int:
        return purge_expired_reset_tokens(self.db)

    # --- Tokens ----------------------------------------------------------
    def claims_for_contact(self, contact: Mapping[str, Any], email: str) -> SessionClaims:
        contact_id = str(contact["contactid"])
        account = account_from_contact(contact)
        return SessionClaims(
            id=contact_id,
            email=email,
            roles=map_roles_from_flags(contact),
            contactId=contact_id,
            firstName=str(contact["firstname"]) if contact.get("firstname") is not None else "",
            lastName=str(contact["lastname"]) if contact.get("lastname") is not None else "",
            accountId=account["accountId"],
            accountName=account["accountName"],
            accountNumber=account["accountNumber"],
        )

    def issue_for_contact(self, contact: Mapping[str, Any], email: str) -> AuthResult:
        claims = self.claims_for_contact(contact, email)
        return AuthResult(token=self.signer.issue(claims), claims=claims)
