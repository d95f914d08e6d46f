import os
from dataclasses import dataclass
from functools import lru_cache

from authentication.security import hash_password, verify_password

MANAGER_ROLE = "manager"


@dataclass
class LocalUser:
    username: str
    role: str
    is_active: bool = True


# Single manager account for the commission dashboard.
# Set MANAGER_PASSWORD_HASH in production instead of a plain password.
def _manager_email() -> str:
    return os.getenv("MANAGER_EMAIL", "manager@commission-tracker.com").strip().lower()


@lru_cache(maxsize=1)
def _manager_password_hash() -> str:
    configured = os.getenv("MANAGER_PASSWORD_HASH")
    if configured:
        return configured
    return hash_password(os.getenv("MANAGER_PASSWORD", "manager123"))


def get_local_user(email: str) -> LocalUser | None:
    if (email or "").strip().lower() == _manager_email():
        return LocalUser(username=_manager_email(), role=MANAGER_ROLE, is_active=True)
    return None


def verify_local_user(email: str, password: str) -> LocalUser | None:
    user = get_local_user(email)
    if user is None:
        return None
    if not verify_password(password, _manager_password_hash()):
        return None
    return user
