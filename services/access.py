# access.py
# Authentication, user administration and tab access control
import hmac
import logging
from dataclasses import replace
from typing import List, Optional

from core.config import ALL_TABS, SEED_ADMIN_ID, STAFF_DEFAULT_TABS, TAB_ADMIN, TAB_DASHBOARD
from core.models import User

logger = logging.getLogger(__name__)

ROLES = ("admin", "staff")

INVALID_CREDENTIALS_MESSAGE = "Invalid username or password. Please contact the administrator."


def authenticate(users: List[User], username: str, password: str) -> Optional[User]:
    """
    Find the user matching both username and password

    Passwords are stored as entered; see DESIGN.md on the security posture.
    Callers must show the same message whether the user or the password was wrong.
    """
    for user in users:
        if user.username == username and hmac.compare_digest(user.password.encode(), (password or "").encode()):
            logger.info("User '%s' signed in", username)
            return user
    logger.info("Failed sign-in attempt for '%s'", username)
    return None

def is_seed_admin(user: User) -> bool:
    return user.id == SEED_ADMIN_ID

def allowed_tabs(user: Optional[User]) -> List[str]:
    """Permitted tabs in navigation priority order"""
    if user is None:
        return []
    return [tab for tab in ALL_TABS if tab in user.permissions]

def landing_tab(user: User) -> Optional[str]:
    """Dashboard when permitted, else the first permitted tab"""
    tabs = allowed_tabs(user)
    if TAB_DASHBOARD in tabs:
        return TAB_DASHBOARD
    return tabs[0] if tabs else None

def resolve_tab(user: Optional[User], requested: Optional[str]) -> Optional[str]:
    """
    The tab to show for a navigation request

    Run on every navigation and every permission change so the active view
    never outlives the permission that allowed it.
    """
    tabs = allowed_tabs(user)
    if requested in tabs:
        return requested
    return tabs[0] if tabs else None

def default_permissions(role: str) -> List[str]:
    return list(ALL_TABS) if role == "admin" else list(STAFF_DEFAULT_TABS)

def build_user(username: str, password: str, role: str, existing: List[User], user_id: str) -> User:
    username = (username or "").strip()
    if not username or not password:
        raise ValueError("Username and password are required")
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    if any(u.username == username for u in existing):
        raise ValueError(f"Username '{username}' is already taken")
    return User(id=user_id, username=username, password=password, role=role,
                permissions=default_permissions(role))

def add_user(users: List[User], user: User) -> List[User]:
    return list(users) + [user]

def delete_user(users: List[User], user_id: str) -> List[User]:
    """Remove a user; the seeded administrator is silently kept"""
    if user_id == SEED_ADMIN_ID:
        logger.info("Ignored request to delete the seeded administrator")
        return list(users)
    return [u for u in users if u.id != user_id]

def toggle_permission(user: User, tab: str) -> User:
    """Grant or revoke one tab; admins always keep the admin tab"""
    if tab not in ALL_TABS:
        raise ValueError(f"Unknown tab: {tab}")
    if tab in user.permissions:
        if user.role == "admin" and tab == TAB_ADMIN:
            return user
        permissions = [p for p in user.permissions if p != tab]
    else:
        permissions = list(user.permissions) + [tab]
    return replace(user, permissions=permissions)

def update_user(users: List[User], updated: User) -> List[User]:
    return [updated if u.id == updated.id else u for u in users]
