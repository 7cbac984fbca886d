from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

ROLE_ADMIN = "Admin"
ROLE_EDITOR = "DocumentEditor"

PUBLIC_PATHS = ("/login", "/register", "/forgot-password", "/reset-password", "/auth/callback")
LOGIN_PATH = "/login"
HOME_PATH = "/"


@dataclass(frozen=True)
class NavItem:
    path: str
    label: str
    roles: tuple[str, ...] = ()


NAV_ITEMS: tuple[NavItem, ...] = (
    NavItem("/", "Dashboard"),
    NavItem("/documents", "Documents"),
    NavItem("/upload", "Upload", (ROLE_ADMIN, ROLE_EDITOR)),
    NavItem("/bulk-upload", "Bulk Upload", (ROLE_ADMIN, ROLE_EDITOR)),
    NavItem("/import", "Import Excel", (ROLE_ADMIN, ROLE_EDITOR)),
    NavItem("/labels", "Labels"),
    NavItem("/contacts", "Contacts", (ROLE_ADMIN,)),
)


def user_roles(user: Optional[Mapping[str, Any]]) -> list[str]:
    if not user:
        return []
    return list(user.get("roles") or [])


def can_access(user: Optional[Mapping[str, Any]], roles: Sequence[str] = ()) -> bool:
    """A session is required; when roles are given, the user needs any one of them."""
    if not user:
        return False
    if not roles:
        return True
    held = user_roles(user)
    return any(role in held for role in roles)


def visible_nav_items(user: Optional[Mapping[str, Any]]) -> list[NavItem]:
    return [item for item in NAV_ITEMS if can_access(user, item.roles)]


class RouteGuard:
    """Decides where a navigation to ``path`` ends up for the current user."""

    def __init__(self, nav_items: Sequence[NavItem] = NAV_ITEMS) -> None:
        self._by_path = {item.path: item for item in nav_items}

    def resolve(self, path: str, user: Optional[Mapping[str, Any]]) -> str:
        if path in PUBLIC_PATHS:
            return path
        if not user:
            return LOGIN_PATH
        item = self._by_path.get(path)
        if item is None:
            return HOME_PATH
        return path if can_access(user, item.roles) else HOME_PATH
