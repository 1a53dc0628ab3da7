# src/tierstake/runtime/asset.py
from __future__ import annotations

"""Asset-transfer collaborator.

The staking engine never touches balances directly; it pulls deposits with
transfer_in, pays out with transfer_out and reads its custody holding with
balance_of. Any object satisfying AssetLedger can back the engine.

InMemoryAsset is the bundled single-asset ledger used by the HTTP node in dev
mode and by tests. Each call is atomic: it validates first and moves funds
only when it will succeed.

Contract for every AssetLedger: raising AssetError means no funds moved. The
engine commits its ledger before a transfer and undoes the commit only on
AssetError; any other exception leaves the commit in place.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from tierstake.ledger.constants import CUSTODY_ACCOUNT_ID

Json = Dict[str, Any]

TransferHook = Callable[[str, str, str, int], None]


@dataclass
class AssetError(Exception):
    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:
        return f"{self.code}:{self.reason}"


@runtime_checkable
class AssetLedger(Protocol):
    def transfer_in(self, frm: str, amount: int) -> None: ...

    def transfer_out(self, to: str, amount: int) -> None: ...

    def balance_of(self, holder: str) -> int: ...


class InMemoryAsset:
    """Balances plus allowances granted to the custody holder."""

    def __init__(self, *, custody: str = CUSTODY_ACCOUNT_ID) -> None:
        self.custody = str(custody)
        self._lock = threading.Lock()
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[str, int] = {}
        # Called after each movement as hook(kind, frm, to, amount); lets tests
        # model a token that calls back into the engine mid-transfer.
        self.hooks: List[TransferHook] = []

    def mint(self, to: str, amount: int) -> None:
        if int(amount) < 0:
            raise AssetError("invalid_amount", "negative_mint", {"amount": int(amount)})
        with self._lock:
            self._balances[str(to)] = self._balances.get(str(to), 0) + int(amount)

    def approve(self, owner: str, amount: int) -> None:
        if int(amount) < 0:
            raise AssetError("invalid_amount", "negative_allowance", {"amount": int(amount)})
        with self._lock:
            self._allowances[str(owner)] = int(amount)

    def allowance(self, owner: str) -> int:
        with self._lock:
            return int(self._allowances.get(str(owner), 0))

    def balance_of(self, holder: str) -> int:
        with self._lock:
            return int(self._balances.get(str(holder), 0))

    def transfer_in(self, frm: str, amount: int) -> None:
        src = str(frm)
        amt = int(amount)
        with self._lock:
            allowed = self._allowances.get(src, 0)
            bal = self._balances.get(src, 0)
            if allowed < amt:
                raise AssetError("insufficient_allowance", "allowance_short", {"from": src, "allowance": allowed})
            if bal < amt:
                raise AssetError("insufficient_balance", "balance_short", {"from": src, "balance": bal})
            self._allowances[src] = allowed - amt
            self._balances[src] = bal - amt
            self._balances[self.custody] = self._balances.get(self.custody, 0) + amt
        self._fire("in", src, self.custody, amt)

    def transfer_out(self, to: str, amount: int) -> None:
        dst = str(to)
        amt = int(amount)
        with self._lock:
            bal = self._balances.get(self.custody, 0)
            if bal < amt:
                raise AssetError("insufficient_balance", "custody_short", {"balance": bal, "amount": amt})
            self._balances[self.custody] = bal - amt
            self._balances[dst] = self._balances.get(dst, 0) + amt
        self._fire("out", self.custody, dst, amt)

    def _fire(self, kind: str, frm: str, to: str, amount: int) -> None:
        for hook in list(self.hooks):
            hook(kind, frm, to, amount)


__all__ = ["AssetError", "AssetLedger", "InMemoryAsset", "TransferHook"]
