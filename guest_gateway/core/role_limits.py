from dataclasses import dataclass
from typing import Dict, Optional, Union

from guest_gateway.core.config import get_daily_limit, get_velocity_limit

# -1 means unlimited (admin bypass)
UNLIMITED = -1

BANNED_ROLE_ID = 0
GUEST_ROLE_ID = 1
ADMIN_ROLE_ID = 2

# Built-in roles. A None limit means "use the configured default"
# (DAILY_LIMIT / VELOCITY_LIMIT), so the guest tier follows the env.
BUILTIN_ROLES: Dict[str, Dict[str, Union[int, str, None]]] = {
    "banned": {
        "id": BANNED_ROLE_ID,
        "daily_limit": 0,
        "velocity_limit": 0,
        "description": "Blocked from all access",
    },
    "guest": {
        "id": GUEST_ROLE_ID,
        "daily_limit": None,
        "velocity_limit": None,
        "description": "Default free tier",
    },
    "admin": {
        "id": ADMIN_ROLE_ID,
        "daily_limit": UNLIMITED,
        "velocity_limit": UNLIMITED,
        "description": "Unlimited access, bypasses all checks",
    },
}


@dataclass(frozen=True)
class RolePolicy:
    """Effective limits for one identity's role."""
    name: str
    daily_limit: int
    velocity_limit: int

    @property
    def is_unlimited(self) -> bool:
        return self.daily_limit == UNLIMITED

    @property
    def is_banned(self) -> bool:
        return self.daily_limit == 0


def _effective(value: Optional[int], default: int) -> int:
    return default if value is None else value


def resolve_role_policy(role) -> RolePolicy:
    """
    Turn a Role row (or None for a missing/unknown role) into a RolePolicy.

    A missing role falls back to the guest tier rather than unlimited access.
    """
    if role is None:
        return default_guest_policy()
    return RolePolicy(
        name=role.name,
        daily_limit=_effective(role.daily_limit, get_daily_limit()),
        velocity_limit=_effective(role.velocity_limit, get_velocity_limit()),
    )


def default_guest_policy() -> RolePolicy:
    guest = BUILTIN_ROLES["guest"]
    return RolePolicy(
        name="guest",
        daily_limit=_effective(guest["daily_limit"], get_daily_limit()),
        velocity_limit=_effective(guest["velocity_limit"], get_velocity_limit()),
    )


def required_units(unit_count: int) -> int:
    """
    Quota a request must fit under before it is allowed.

    Free retries (unit_count <= 0) still need room for one unit, so an
    exhausted identity cannot keep hitting the upstream for free. The same
    weighting applies before and after identity registration.
    """
    return unit_count if unit_count > 0 else 1


def remaining_units(limit: int, usage: int) -> int:
    if limit == UNLIMITED:
        return UNLIMITED
    return max(0, limit - usage)
