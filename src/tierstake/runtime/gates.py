# src/tierstake/runtime/gates.py
from __future__ import annotations

"""Access and pause gates consulted before every mutating staking operation.

Privileged operations map to a role through an explicit table; user-facing
operations map to the pause flag. Both checks are synchronous and raise the
canonical StakingError subclasses.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from tierstake.runtime.errors import AuthorizationError, SystemPausedError


class Role(str, Enum):
    ADMIN = "ADMIN"
    EMERGENCY = "EMERGENCY"
    REWARD_MANAGER = "REWARD_MANAGER"


# operation -> role required
OPERATION_ROLES: Dict[str, Role] = {
    "emergency_withdraw": Role.EMERGENCY,
    "deposit_rewards": Role.REWARD_MANAGER,
    "withdraw_rewards": Role.REWARD_MANAGER,
    "pause": Role.ADMIN,
    "unpause": Role.ADMIN,
    "grant_role": Role.ADMIN,
    "revoke_role": Role.ADMIN,
}

# operations refused while paused
PAUSABLE_OPERATIONS: Set[str] = {"stake", "request_withdrawal", "withdraw", "claim_rewards"}


def _as_str(v: Any) -> str:
    return str(v).strip() if v is not None else ""


def _as_role(v: Any) -> Role:
    if isinstance(v, Role):
        return v
    try:
        return Role(_as_str(v).upper())
    except ValueError:
        raise AuthorizationError("unauthorized", "unknown_role", {"role": _as_str(v)})


class AccessControl:
    """Enum-keyed role table: role -> set of holder ids."""

    def __init__(self, grants: Optional[Mapping[Any, Iterable[str]]] = None) -> None:
        self._holders: Dict[Role, Set[str]] = {r: set() for r in Role}
        for role, holders in (grants or {}).items():
            r = _as_role(role)
            for h in holders:
                s = _as_str(h)
                if s:
                    self._holders[r].add(s)

    def has_role(self, role: Any, caller: str) -> bool:
        return _as_str(caller) in self._holders[_as_role(role)]

    def holders(self, role: Any) -> List[str]:
        return sorted(self._holders[_as_role(role)])

    def require_role(self, role: Any, caller: str, *, operation: str = "") -> None:
        r = _as_role(role)
        if not self.has_role(r, caller):
            raise AuthorizationError(
                "unauthorized",
                "missing_role",
                {"role": r.value, "caller": _as_str(caller), "operation": operation},
            )

    def authorize(self, operation: str, caller: str) -> None:
        role = OPERATION_ROLES.get(operation)
        if role is None:
            return
        self.require_role(role, caller, operation=operation)

    def grant_role(self, admin: str, role: Any, account: str) -> bool:
        self.authorize("grant_role", admin)
        r = _as_role(role)
        acct = _as_str(account)
        if not acct or acct in self._holders[r]:
            return False
        self._holders[r].add(acct)
        return True

    def revoke_role(self, admin: str, role: Any, account: str) -> bool:
        self.authorize("revoke_role", admin)
        r = _as_role(role)
        acct = _as_str(account)
        if acct not in self._holders[r]:
            return False
        self._holders[r].discard(acct)
        return True

    def to_json(self) -> Dict[str, List[str]]:
        return {r.value: sorted(h) for r, h in self._holders.items()}


class PauseSwitch:
    def __init__(self, paused: bool = False) -> None:
        self._paused = bool(paused)

    @property
    def paused(self) -> bool:
        return self._paused

    def set_paused(self, access: AccessControl, caller: str, paused: bool) -> bool:
        """Toggle the flag (ADMIN only). Returns True if the value changed."""
        access.authorize("pause" if paused else "unpause", caller)
        changed = self._paused != bool(paused)
        self._paused = bool(paused)
        return changed

    def deny_if_paused(self, operation: str) -> None:
        if self._paused and operation in PAUSABLE_OPERATIONS:
            raise SystemPausedError("paused", "system_paused", {"operation": operation})


def check_gates(access: AccessControl, pause: PauseSwitch, operation: str, caller: str) -> None:
    """Canonical gate used by the engine: pause first, then role."""
    pause.deny_if_paused(operation)
    access.authorize(operation, caller)


__all__ = ["AccessControl", "OPERATION_ROLES", "PAUSABLE_OPERATIONS", "PauseSwitch", "Role", "check_gates"]
