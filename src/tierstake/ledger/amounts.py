from __future__ import annotations

from typing import Any

from tierstake.ledger.constants import MAX_UINT256
from tierstake.runtime.errors import ArithmeticFault, ValidationError


def as_amount(v: Any, *, field: str = "amount") -> int:
    """Strict non-negative integer amount. Floats and bools are rejected."""
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValidationError("invalid_amount", "amount_not_int", {field: repr(v)})
    if v < 0 or v > MAX_UINT256:
        raise ValidationError("invalid_amount", "amount_out_of_range", {field: int(v)})
    return int(v)


def checked_add(a: int, b: int, *, what: str) -> int:
    out = int(a) + int(b)
    if out > MAX_UINT256:
        raise ArithmeticFault("overflow", what, {"a": int(a), "b": int(b)})
    return out


def checked_sub(a: int, b: int, *, what: str) -> int:
    out = int(a) - int(b)
    if out < 0:
        raise ArithmeticFault("underflow", what, {"a": int(a), "b": int(b)})
    return out


__all__ = ["as_amount", "checked_add", "checked_sub"]
