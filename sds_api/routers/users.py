from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..dependencies.auth import require_admin
from ..dependencies.services import dynamics_service
from ..errors import Forbidden, NotFound, ServiceUnavailable
from ..services.dynamics365 import Contact, Dynamics365Service, account_from_contact
from ..services.roles import map_roles_from_flags, role_flags_for_contact
from ..services.sessions import SessionClaims

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


class RoleUpdateRequest(BaseModel):
    d365Roles: dict[str, bool] = Field(default_factory=dict)


def _require_directory(dynamics: Dynamics365Service) -> None:
    if not dynamics.is_configured():
        raise ServiceUnavailable("User management not available (Dynamics 365 not configured)")


def _serialize_contact(contact: Contact, dynamics: Dynamics365Service) -> dict[str, Any]:
    account = account_from_contact(contact)
    return {
        "contactId": contact.get("contactid"),
        "firstName": contact.get("firstname") or "",
        "lastName": contact.get("lastname") or "",
        "email": dynamics.email_from_contact(contact),
        "roles": map_roles_from_flags(contact),
        "d365Roles": role_flags_for_contact(contact, dynamics.config.role_fields),
        "account": {"name": account["accountName"], "accountnumber": account["accountNumber"]},
    }


def _same_account(contact: Contact, user: SessionClaims) -> bool:
    account = account_from_contact(contact)
    if user.accountId and account["accountId"] == user.accountId:
        return True
    return bool(user.accountNumber) and account["accountNumber"] == user.accountNumber


@router.get("")
def list_users(
    user: SessionClaims = Depends(require_admin),
    dynamics: Dynamics365Service = Depends(dynamics_service),
) -> dict[str, Any]:
    _require_directory(dynamics)
    if user.accountId:
        contacts = dynamics.get_contacts_by_account_id(user.accountId)
    elif user.accountNumber:
        contacts = dynamics.get_contacts_by_account_number(user.accountNumber)
    else:
        raise HTTPException(status_code=400, detail="Your contact is not linked to an account")

    return {
        "contacts": [_serialize_contact(contact, dynamics) for contact in contacts],
        "roleFields": list(dynamics.config.role_fields),
    }


@router.patch("/{contact_id}/roles")
def update_user_roles(
    contact_id: str,
    payload: RoleUpdateRequest,
    user: SessionClaims = Depends(require_admin),
    dynamics: Dynamics365Service = Depends(dynamics_service),
) -> dict[str, str]:
    _require_directory(dynamics)
    if not (user.accountId or user.accountNumber):
        raise HTTPException(status_code=400, detail="Your contact is not linked to an account")

    contact = dynamics.get_contact_by_id(contact_id)
    if contact is None:
        raise NotFound("Contact not found")
    if not _same_account(contact, user):
        raise Forbidden("Contact belongs to another account")

    written = dynamics.update_contact_roles(contact_id, payload.d365Roles)
    logger.info("contact_roles_updated contact_id=%s by=%s fields=%s", contact_id, user.id, ",".join(sorted(written)))
    return {"message": "Roles updated"}
