from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

ROLE_ADMIN = "Admin"
ROLE_EDITOR = "DocumentEditor"
ROLE_VIEWER = "Viewer"

ADMIN_FLAG = "CFBAdminContact"
CONTRIBUTOR_FLAGS = ("chem_msdscontributor", "chemtrec_sdsauthoring")
ACCESS_FLAG = "chemtrec_sdsaccess"

Predicate = Callable[[Mapping[str, Any]], bool]


def flag_is_set(flags: Mapping[str, Any], key: str) -> bool:
    value = flags.get(key)
    # Dataverse returns booleans, but older exports carry "true" or 1
    return value is True or value == "true" or value == 1


def _any_flag(*keys: str) -> Predicate:
    return lambda flags: any(flag_is_set(flags, key) for key in keys)


# First match wins; tiers never combine.
ROLE_RULES: Sequence[tuple[Predicate, tuple[str, ...]]] = (
    (_any_flag(ADMIN_FLAG), (ROLE_ADMIN, ROLE_EDITOR, ROLE_VIEWER)),
    (_any_flag(*CONTRIBUTOR_FLAGS), (ROLE_EDITOR, ROLE_VIEWER)),
    (_any_flag(ACCESS_FLAG), (ROLE_VIEWER,)),
)

DEFAULT_ROLES: tuple[str, ...] = (ROLE_VIEWER,)


def map_roles_from_flags(flags: Mapping[str, Any]) -> list[str]:
    """Derive application roles from Dynamics 365 contact role flags."""
    for predicate, roles in ROLE_RULES:
        if predicate(flags):
            return list(roles)
    return list(DEFAULT_ROLES)


def role_flags_for_contact(contact: Mapping[str, Any], role_fields: Sequence[str]) -> dict[str, bool]:
    return {field: flag_is_set(contact, field) for field in role_fields}


def has_any_role(user_roles: Sequence[str], required: Sequence[str]) -> bool:
    return any(role in user_roles for role in required)
