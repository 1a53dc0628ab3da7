from __future__ import annotations

"""Pydantic request schemas for the staking HTTP API.

Amounts are base units (1 token = 1e18). They are accepted as JSON integers or
decimal strings, because most JSON clients cannot represent 18-decimal
integers exactly.
"""

from typing import Union

from pydantic import BaseModel, Field, field_validator


def _parse_amount(v: Union[int, str]) -> int:
    if isinstance(v, bool):
        raise ValueError("amount must be an integer")
    if isinstance(v, int):
        out = v
    else:
        s = str(v).strip()
        if not s.isdigit():
            raise ValueError("amount must be a non-negative integer string")
        out = int(s)
    if out < 0:
        raise ValueError("amount must be non-negative")
    return out


class AmountRequest(BaseModel):
    amount: Union[int, str] = Field(..., description="Base units, integer or decimal string")

    @field_validator("amount")
    @classmethod
    def _amount(cls, v: Union[int, str]) -> int:
        return _parse_amount(v)


class StakeRequest(AmountRequest):
    pass


class RewardsRequest(AmountRequest):
    pass


class EmergencyWithdrawRequest(BaseModel):
    account: str = Field(..., min_length=1, description="Account to force-exit")


class PauseRequest(BaseModel):
    paused: bool = Field(..., description="True to pause user operations")
