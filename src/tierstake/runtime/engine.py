# src/tierstake/runtime/engine.py
from __future__ import annotations

"""Staking engine: withdrawal state machine and reward pool accountant.

Lifecycle per account:

  (none) --stake--> Active --request_withdrawal--> Requested --withdraw--> (none)
                      |                               |
                      +-----emergency_withdraw--------+----------------> (none)

Every mutating call runs inside _operation():

  - one process-wide RLock serialises calls; a flag set under that lock
    rejects nested re-entry from the same thread (e.g. an asset callback)
  - the call mutates a deep copy of the state; a precondition failure
    discards the copy, so totals, pool and entries stay untouched
  - before any asset transfer the copy is committed: swapped in, persisted
    and its audit events appended, so a callback during the transfer sees
    the post-operation ledger
  - an AssetError from the transfer means nothing moved and the commit is
    undone; any other failure leaves the commit in place
"""

import copy
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from tierstake.ledger.accrual import calculate_reward, compute_accrual
from tierstake.ledger.amounts import as_amount, checked_add, checked_sub
from tierstake.ledger.constants import CUSTODY_ACCOUNT_ID
from tierstake.ledger.pool import credit_pool, debit_pool, require_custody, require_pool, reward_pool
from tierstake.ledger.stakes import (
    StakeRecord,
    daily_withdrawn,
    ensure_staking_root,
    get_stake,
    open_stake,
    record_daily_withdrawal,
    remove_stake,
    require_stake,
    total_staked,
)
from tierstake.runtime import metrics
from tierstake.runtime.asset import AssetError, AssetLedger
from tierstake.runtime.errors import (
    CapExceededError,
    ReentrancyError,
    SolvencyError,
    StakingError,
    TemporalError,
    ValidationError,
)
from tierstake.runtime.events import (
    EMERGENCY_WITHDRAWN,
    REWARDS_CLAIMED,
    REWARDS_DEPOSITED,
    REWARDS_WITHDRAWN,
    STAKED,
    WITHDRAWAL_REQUESTED,
    WITHDRAWN,
    EventLog,
    PendingEvent,
    StakingEvent,
)
from tierstake.runtime.gates import AccessControl, PauseSwitch, check_gates
from tierstake.runtime.sqlite_store import SqliteStakingStore
from tierstake.runtime.staking_config import StakingConfig, load_staking_config
from tierstake.runtime.state_invariants import check_invariants, invariant_report
from tierstake.runtime.structured_log import log_event

Json = Dict[str, Any]
Clock = Callable[[], int]

_log = logging.getLogger("tierstake.engine")


def _wall_clock() -> int:
    return int(time.time())


def _as_account(v: Any) -> str:
    s = str(v).strip() if isinstance(v, (str, int)) and not isinstance(v, bool) else ""
    if not s:
        raise ValidationError("invalid_account", "missing_account", {"account": repr(v)})
    return s


@dataclass(frozen=True, slots=True)
class Payout:
    account: str
    principal: int
    reward: int

    @property
    def total(self) -> int:
        return int(self.principal) + int(self.reward)

    def to_json(self) -> Json:
        return {
            "account": self.account,
            "principal": int(self.principal),
            "reward": int(self.reward),
            "total": self.total,
        }


@dataclass
class _Op:
    name: str
    caller: str
    now: int
    working: Json
    before: Json
    base_seq: int
    staged: List[PendingEvent] = field(default_factory=list)
    committed: bool = False

    def emit(self, kind: str, account: str, **amounts: int) -> None:
        self.staged.append(
            PendingEvent(
                kind=kind,
                account=str(account),
                timestamp=int(self.now),
                amounts={k: int(v) for k, v in amounts.items()},
                actor=self.caller,
            )
        )


class StakingEngine:
    """Single-asset staking engine with time-tiered yield."""

    def __init__(
        self,
        *,
        asset: AssetLedger,
        config: Optional[StakingConfig] = None,
        access: Optional[AccessControl] = None,
        pause: Optional[PauseSwitch] = None,
        clock: Optional[Clock] = None,
        custody: Optional[str] = None,
        store: Optional[SqliteStakingStore] = None,
    ) -> None:
        self.asset = asset
        self.config = config or load_staking_config()
        self.access = access or AccessControl()
        self.pause = pause or PauseSwitch()
        self.custody = str(custody or getattr(asset, "custody", CUSTODY_ACCOUNT_ID))

        self._clock: Clock = clock or _wall_clock
        self._store = store
        self._lock = threading.RLock()
        self._in_flight = ""
        self._events = EventLog()

        if store is not None and store.exists():
            self._state: Json = store.read_state()
            self._events.extend(store.read_events())
        else:
            self._state = {}
        ensure_staking_root(self._state)

    # ------------------------------------------------------------------
    # Operation scaffolding
    # ------------------------------------------------------------------

    def now(self) -> int:
        return int(self._clock())

    @contextmanager
    def _operation(self, name: str, caller: Any) -> Iterator[_Op]:
        with self._lock:
            if self._in_flight:
                metrics.inc_counter("op_rejected_reentrant_call")
                log_event(
                    _log,
                    "staking_rejected",
                    level=logging.WARNING,
                    op=name,
                    code="reentrant_call",
                    active=self._in_flight,
                )
                raise ReentrancyError("reentrant_call", "operation_in_progress", {"operation": name, "active": self._in_flight})

            self._in_flight = name
            try:
                op = _Op(
                    name=name,
                    caller=_as_account(caller),
                    now=self.now(),
                    working=copy.deepcopy(self._state),
                    before=self._state,
                    base_seq=len(self._events),
                )
                try:
                    yield op
                except StakingError as e:
                    if op.committed:
                        self._log_after_commit(op, e)
                        raise
                    metrics.inc_counter(f"op_rejected_{e.code}")
                    log_event(
                        _log,
                        "staking_rejected",
                        level=logging.WARNING,
                        op=name,
                        caller=op.caller,
                        code=e.code,
                        reason=e.reason,
                    )
                    raise
                except Exception as e:
                    if op.committed:
                        self._log_after_commit(op, e)
                    raise
                if not op.committed:
                    self._commit(op)
            finally:
                self._in_flight = ""

    def _commit(self, op: _Op) -> None:
        """Make the working copy the engine state. No-op when already committed."""
        if op.committed:
            return
        events = self._events.number(op.staged)
        if self._store is not None:
            self._store.commit(op.working, events)
        self._state = op.working
        self._events.extend(events)
        op.committed = True

        metrics.inc_counter(f"{op.name}_ok")
        self._set_gauges()
        log_event(
            _log,
            "staking_committed",
            op=op.name,
            caller=op.caller,
            now=op.now,
            events=[e.to_json() for e in events],
        )

    def _revert(self, op: _Op, err: AssetError) -> None:
        """Undo a commit whose transfer was refused before any funds moved."""
        if self._store is not None:
            self._store.revert(op.before, op.base_seq)
        self._state = op.before
        self._events.truncate(op.base_seq)
        op.committed = False

        metrics.inc_counter(f"{op.name}_reverted")
        self._set_gauges()
        log_event(
            _log,
            "staking_reverted",
            level=logging.WARNING,
            op=op.name,
            caller=op.caller,
            asset_code=err.code,
            reason=err.reason,
        )

    def _log_after_commit(self, op: _Op, err: Exception) -> None:
        # The ledger already reflects the operation; custody may need manual reconciliation.
        metrics.inc_counter(f"{op.name}_transfer_failed_after_commit")
        log_event(
            _log,
            "staking_transfer_failed_after_commit",
            level=logging.ERROR,
            op=op.name,
            caller=op.caller,
            error=f"{type(err).__name__}: {err}",
        )

    def _set_gauges(self) -> None:
        metrics.set_gauge("total_staked", total_staked(self._state))
        metrics.set_gauge("reward_pool", reward_pool(self._state))

    def _pull(self, op: _Op, frm: str, amount: int) -> None:
        """Commit `op`, then pull `amount` into custody."""
        self._commit(op)
        try:
            self.asset.transfer_in(frm, int(amount))
        except AssetError as e:
            self._revert(op, e)
            raise ValidationError("transfer_failed", e.reason, {"from": frm, "amount": int(amount), "asset_code": e.code}) from e

    def _pay(self, op: _Op, to: str, amount: int) -> None:
        """Commit `op`, then pay `amount` out of custody. Must be the last step of an operation."""
        self._commit(op)
        try:
            self.asset.transfer_out(to, int(amount))
        except AssetError as e:
            self._revert(op, e)
            raise SolvencyError("insufficient_custody", e.reason, {"to": to, "amount": int(amount), "asset_code": e.code}) from e

    def _require_solvent(self, state: Json, *, principal: int, reward: int) -> None:
        """Pool covers `reward`; custody covers the payout and every liability left after it."""
        require_pool(state, reward)
        remaining = checked_sub(total_staked(state), principal, what="total_staked") + checked_sub(
            reward_pool(state), reward, what="reward_pool"
        )
        require_custody(
            self.asset.balance_of(self.custody),
            outflow=checked_add(principal, reward, what="payout"),
            must_cover=remaining,
        )

    def _record(self, state: Json, account: str) -> StakeRecord:
        require_stake(state, account)
        rec = get_stake(state, account)
        assert rec is not None
        return rec

    # ------------------------------------------------------------------
    # Stake ledger
    # ------------------------------------------------------------------

    def stake(self, caller: str, amount: int) -> StakeRecord:
        with self._operation("stake", caller) as op:
            check_gates(self.access, self.pause, "stake", op.caller)
            amt = as_amount(amount)

            rec = open_stake(op.working, op.caller, amt, now=op.now, config=self.config)
            op.emit(STAKED, op.caller, amount=amt)
            self._pull(op, op.caller, amt)
        return rec

    # ------------------------------------------------------------------
    # Withdrawal state machine
    # ------------------------------------------------------------------

    def request_withdrawal(self, caller: str) -> StakeRecord:
        with self._operation("request_withdrawal", caller) as op:
            check_gates(self.access, self.pause, "request_withdrawal", op.caller)
            rec = self._record(op.working, op.caller)

            if rec.is_withdrawing:
                raise ValidationError("invalid_state", "withdrawal_already_requested", {"account": op.caller})

            unlock_time = rec.start_time + int(self.config.min_staking_period)
            if op.now < unlock_time:
                raise TemporalError(
                    "lock_active",
                    "min_staking_period_not_elapsed",
                    {"unlock_time": unlock_time, "now": op.now},
                )

            reward = calculate_reward(rec, op.now, self.config)

            entry = require_stake(op.working, op.caller)
            entry["pending_reward"] = int(reward)
            entry["last_reward_time"] = op.now
            entry["is_withdrawing"] = True
            entry["withdrawal_request_time"] = op.now

            op.emit(
                WITHDRAWAL_REQUESTED,
                op.caller,
                principal=rec.principal,
                reward=reward,
                withdrawable_at=op.now + int(self.config.withdrawal_delay),
            )
            out = self._record(op.working, op.caller)
        return out

    def withdraw(self, caller: str) -> Payout:
        with self._operation("withdraw", caller) as op:
            check_gates(self.access, self.pause, "withdraw", op.caller)
            rec = self._record(op.working, op.caller)

            if not rec.is_withdrawing:
                raise ValidationError("invalid_state", "withdrawal_not_requested", {"account": op.caller})

            ready_at = rec.withdrawal_request_time + int(self.config.withdrawal_delay)
            if op.now < ready_at:
                raise TemporalError(
                    "delay_active",
                    "withdrawal_delay_not_elapsed",
                    {"withdrawable_at": ready_at, "now": op.now},
                )

            reward = calculate_reward(rec, op.now, self.config)
            payout = Payout(account=op.caller, principal=rec.principal, reward=reward)

            used = daily_withdrawn(op.working, op.caller, now=op.now)
            limit = int(self.config.daily_withdrawal_limit)
            if used + payout.total > limit:
                raise CapExceededError(
                    "daily_limit_exceeded",
                    "daily_withdrawal_limit",
                    {"used": used, "requested": payout.total, "limit": limit},
                )

            self._require_solvent(op.working, principal=rec.principal, reward=reward)

            debit_pool(op.working, reward)
            record_daily_withdrawal(op.working, op.caller, payout.total, now=op.now)
            remove_stake(op.working, op.caller)
            op.emit(WITHDRAWN, op.caller, principal=payout.principal, reward=payout.reward, total=payout.total)
            self._pay(op, op.caller, payout.total)
        return payout

    def claim_rewards(self, caller: str) -> int:
        with self._operation("claim_rewards", caller) as op:
            check_gates(self.access, self.pause, "claim_rewards", op.caller)
            rec = self._record(op.working, op.caller)

            if rec.is_withdrawing:
                raise ValidationError("invalid_state", "reward_frozen_pending_withdrawal", {"account": op.caller})

            reward = calculate_reward(rec, op.now, self.config)
            if reward <= 0:
                raise ValidationError("no_rewards", "nothing_to_claim", {"account": op.caller})

            self._require_solvent(op.working, principal=0, reward=reward)

            debit_pool(op.working, reward)
            entry = require_stake(op.working, op.caller)
            entry["pending_reward"] = 0
            entry["last_reward_time"] = op.now
            op.emit(REWARDS_CLAIMED, op.caller, reward=reward)
            self._pay(op, op.caller, reward)
        return reward

    def emergency_withdraw(self, operator: str, account: str) -> Payout:
        """Force-exit `account`: skips the delay and the daily cap, not the solvency checks."""
        with self._operation("emergency_withdraw", operator) as op:
            check_gates(self.access, self.pause, "emergency_withdraw", op.caller)
            acct = _as_account(account)
            rec = self._record(op.working, acct)

            reward = calculate_reward(rec, op.now, self.config)
            payout = Payout(account=acct, principal=rec.principal, reward=reward)

            self._require_solvent(op.working, principal=rec.principal, reward=reward)

            debit_pool(op.working, reward)
            remove_stake(op.working, acct)
            op.emit(
                EMERGENCY_WITHDRAWN,
                acct,
                principal=payout.principal,
                reward=payout.reward,
                total=payout.total,
            )
            self._pay(op, acct, payout.total)
        return payout

    # ------------------------------------------------------------------
    # Reward pool accountant
    # ------------------------------------------------------------------

    def deposit_rewards(self, operator: str, amount: int) -> int:
        with self._operation("deposit_rewards", operator) as op:
            check_gates(self.access, self.pause, "deposit_rewards", op.caller)
            amt = as_amount(amount)
            if amt == 0:
                raise ValidationError("invalid_amount", "zero_amount", {"amount": 0})

            pool = credit_pool(op.working, amt)
            op.emit(REWARDS_DEPOSITED, op.caller, amount=amt, reward_pool=pool)
            self._pull(op, op.caller, amt)
        return pool

    def withdraw_rewards(self, operator: str, amount: int) -> int:
        """Drain the pool; custody must still cover all principal afterwards."""
        with self._operation("withdraw_rewards", operator) as op:
            check_gates(self.access, self.pause, "withdraw_rewards", op.caller)
            amt = as_amount(amount)
            if amt == 0:
                raise ValidationError("invalid_amount", "zero_amount", {"amount": 0})

            require_pool(op.working, amt)
            require_custody(
                self.asset.balance_of(self.custody),
                outflow=amt,
                must_cover=total_staked(op.working),
            )

            pool = debit_pool(op.working, amt)
            op.emit(REWARDS_WITHDRAWN, op.caller, amount=amt, reward_pool=pool)
            self._pay(op, op.caller, amt)
        return pool

    # ------------------------------------------------------------------
    # Admin plumbing
    # ------------------------------------------------------------------

    def set_paused(self, caller: str, paused: bool) -> bool:
        with self._lock:
            if self._in_flight:
                raise ReentrancyError("reentrant_call", "operation_in_progress", {"operation": "pause", "active": self._in_flight})
            changed = self.pause.set_paused(self.access, _as_account(caller), bool(paused))
        log_event(_log, "staking_pause", caller=str(caller), paused=bool(paused), changed=changed)
        return changed

    def grant_role(self, admin: str, role: Any, account: str) -> bool:
        with self._lock:
            changed = self.access.grant_role(_as_account(admin), role, _as_account(account))
        log_event(_log, "role_granted", admin=str(admin), role=str(role), account=str(account), changed=changed)
        return changed

    def revoke_role(self, admin: str, role: Any, account: str) -> bool:
        with self._lock:
            changed = self.access.revoke_role(_as_account(admin), role, _as_account(account))
        log_event(_log, "role_revoked", admin=str(admin), role=str(role), account=str(account), changed=changed)
        return changed

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def read_state(self) -> Json:
        with self._lock:
            return copy.deepcopy(self._state)

    @property
    def total_staked(self) -> int:
        with self._lock:
            return total_staked(self._state)

    @property
    def reward_pool(self) -> int:
        with self._lock:
            return reward_pool(self._state)

    def get_stake(self, account: str) -> Optional[StakeRecord]:
        with self._lock:
            return get_stake(self._state, str(account))

    def pending_reward(self, account: str) -> int:
        with self._lock:
            rec = get_stake(self._state, str(account))
            if rec is None:
                return 0
            return calculate_reward(rec, self.now(), self.config)

    def stake_info(self, account: str) -> Optional[Json]:
        with self._lock:
            rec = get_stake(self._state, str(account))
            if rec is None:
                return None
            now = self.now()
            acc = compute_accrual(rec, now, self.config)
            out = rec.to_json()
            out.update(
                {
                    "state": "requested" if rec.is_withdrawing else "active",
                    "now": now,
                    "pending_reward": acc.total,
                    "rate_tenths": acc.rate_tenths,
                    "matured": acc.matured,
                    "unlock_time": rec.start_time + int(self.config.min_staking_period),
                    "withdrawable_at": (
                        rec.withdrawal_request_time + int(self.config.withdrawal_delay) if rec.is_withdrawing else None
                    ),
                    "daily_withdrawn_today": daily_withdrawn(self._state, str(account), now=now),
                }
            )
            return out

    def pool_status(self) -> Json:
        with self._lock:
            staked = total_staked(self._state)
            pool = reward_pool(self._state)
            balance = int(self.asset.balance_of(self.custody))
            return {
                "total_staked": staked,
                "reward_pool": pool,
                "custody_balance": balance,
                "surplus": balance - staked - pool,
                "active_stakes": len(ensure_staking_root(self._state)["stakes"]),
                "paused": self.pause.paused,
            }

    def events(self, since: int = 0) -> List[StakingEvent]:
        return self._events.since(since)

    def invariant_report(self) -> List[Json]:
        with self._lock:
            return invariant_report(
                self._state,
                custody_balance=self.asset.balance_of(self.custody),
                daily_limit=int(self.config.daily_withdrawal_limit),
            )

    def check_invariants(self) -> None:
        with self._lock:
            check_invariants(
                self._state,
                custody_balance=self.asset.balance_of(self.custody),
                daily_limit=int(self.config.daily_withdrawal_limit),
            )


__all__ = ["Payout", "StakingEngine"]
