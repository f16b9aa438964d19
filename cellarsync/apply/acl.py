"""
Role-based access control for Cellar Sync mutations.

This module maps a session role to the set of mutation actions it may
perform:
- MutationAction: the closed set of state-changing actions
- AccessPolicy: role -> permitted actions table
- AccessGate: permission checks against a policy

Invariants:
    - Checks are pure; the gate never mutates state
    - A denied action raises AccessDeniedError, never silently no-ops
    - Admin may perform every action under every policy

How to change safely:
    - New actions must be added to every shipped policy explicitly
    - Tightening OBSERVED_POLICY changes behaviour for existing users;
      prefer selecting ADMIN_ONLY_POLICY through configuration
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum

from ..errors import AccessDeniedError
from ..models import UserRole

logger = logging.getLogger(__name__)


class MutationAction(Enum):
    """State-changing actions subject to access control."""

    ADD_ROOM = "add_room"
    RENAME_ROOM = "rename_room"
    UPDATE_TEMPERATURE = "update_temperature"
    ADJUST_STOCK = "adjust_stock"
    TOGGLE_FERMENTATION = "toggle_fermentation"


AccessPolicy = Mapping[UserRole, frozenset[MutationAction]]

_ALL_ACTIONS = frozenset(MutationAction)
_ROOM_OPERATIONS = frozenset(
    {
        MutationAction.UPDATE_TEMPERATURE,
        MutationAction.ADJUST_STOCK,
        MutationAction.TOGGLE_FERMENTATION,
    }
)

# Only room creation (and renaming) is restricted to Admin.
OBSERVED_POLICY: AccessPolicy = {
    UserRole.ADMIN: _ALL_ACTIONS,
    UserRole.AUDITOR: _ROOM_OPERATIONS,
    UserRole.GUEST: _ROOM_OPERATIONS,
}

ADMIN_ONLY_POLICY: AccessPolicy = {
    UserRole.ADMIN: _ALL_ACTIONS,
    UserRole.AUDITOR: frozenset(),
    UserRole.GUEST: frozenset(),
}


class AccessGate:
    """Authorizes mutation actions for a role.

    Thread safety:
        This class is stateless after construction and thread-safe.

    Example:
        >>> gate = AccessGate()
        >>> gate.is_permitted(UserRole.GUEST, MutationAction.ADD_ROOM)
        False
        >>> gate.is_permitted(UserRole.GUEST, MutationAction.ADJUST_STOCK)
        True
    """

    def __init__(self, policy: AccessPolicy | None = None) -> None:
        self.policy: AccessPolicy = policy if policy is not None else OBSERVED_POLICY

    def permitted_actions(self, role: UserRole) -> frozenset[MutationAction]:
        """All actions a role may perform."""
        return self.policy.get(role, frozenset())

    def is_permitted(self, role: UserRole, action: MutationAction) -> bool:
        """Check whether a role may perform an action."""
        return action in self.permitted_actions(role)

    def check_or_raise(self, role: UserRole, action: MutationAction) -> None:
        """Check permission and raise if denied.

        Raises:
            AccessDeniedError: If the role may not perform the action
        """
        if not self.is_permitted(role, action):
            logger.warning(
                "Mutation denied",
                extra={"role": role.value, "action": action.value},
            )
            raise AccessDeniedError(role.value, action.value)


def policy_for(name: str) -> AccessPolicy:
    """Resolve a configured policy name ("observed" or "admin_only")."""
    if name == "observed":
        return OBSERVED_POLICY
    if name == "admin_only":
        return ADMIN_ONLY_POLICY
    raise ValueError(f"Unknown access policy: {name}")


# Default gate instance
_default_gate: AccessGate | None = None


def get_access_gate() -> AccessGate:
    """Get the default access gate instance."""
    global _default_gate
    if _default_gate is None:
        _default_gate = AccessGate()
    return _default_gate
