from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class StakingError(Exception):
    """Canonical error type for staking operations.

    Every subclass aborts the whole operation; the engine discards its working
    copy before the error leaves the public call.
    """

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class ValidationError(StakingError):
    """Bad amount, duplicate stake, missing stake, or wrong lifecycle state."""


class AuthorizationError(StakingError):
    """Caller lacks the role required for a privileged operation."""


class SystemPausedError(StakingError):
    pass


class TemporalError(StakingError):
    """Lock period or withdrawal delay has not elapsed yet."""


class SolvencyError(StakingError):
    """Reward pool or custodial balance cannot cover the payout in full."""


class CapExceededError(StakingError):
    pass


class ReentrancyError(StakingError):
    pass


class ArithmeticFault(StakingError):
    """Checked arithmetic on a shared counter would overflow or underflow."""


class InvariantViolation(StakingError):
    pass


__all__ = [
    "ArithmeticFault",
    "AuthorizationError",
    "CapExceededError",
    "InvariantViolation",
    "ReentrancyError",
    "SolvencyError",
    "StakingError",
    "SystemPausedError",
    "TemporalError",
    "ValidationError",
]
