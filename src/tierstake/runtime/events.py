# src/tierstake/runtime/events.py
from __future__ import annotations

"""Append-only audit history of committed staking transitions.

Events are only appended when an operation commits, so the log never shows
an aborted call. Sequence numbers start at 1 and are gap-free.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List

Json = Dict[str, Any]

STAKED = "Staked"
WITHDRAWAL_REQUESTED = "WithdrawalRequested"
WITHDRAWN = "Withdrawn"
REWARDS_CLAIMED = "RewardsClaimed"
EMERGENCY_WITHDRAWN = "EmergencyWithdrawn"
REWARDS_DEPOSITED = "RewardsDeposited"
REWARDS_WITHDRAWN = "RewardsWithdrawn"

EVENT_KINDS = (
    STAKED,
    WITHDRAWAL_REQUESTED,
    WITHDRAWN,
    REWARDS_CLAIMED,
    EMERGENCY_WITHDRAWN,
    REWARDS_DEPOSITED,
    REWARDS_WITHDRAWN,
)


@dataclass(frozen=True, slots=True)
class StakingEvent:
    seq: int
    kind: str
    account: str
    timestamp: int
    amounts: Dict[str, int] = field(default_factory=dict)
    actor: str = ""

    def to_json(self) -> Json:
        return {
            "seq": int(self.seq),
            "kind": self.kind,
            "account": self.account,
            "timestamp": int(self.timestamp),
            "amounts": {k: int(v) for k, v in sorted(self.amounts.items())},
            "actor": self.actor,
        }


@dataclass(frozen=True, slots=True)
class PendingEvent:
    """Event staged inside an operation; numbered only when the operation commits."""

    kind: str
    account: str
    timestamp: int
    amounts: Dict[str, int] = field(default_factory=dict)
    actor: str = ""


class EventLog:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: List[StakingEvent] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def __iter__(self) -> Iterator[StakingEvent]:
        return iter(self.since(0))

    def number(self, pending: List[PendingEvent]) -> List[StakingEvent]:
        """Assign the next sequence numbers without appending."""
        for p in pending:
            if p.kind not in EVENT_KINDS:
                raise ValueError(f"unknown event kind: {p.kind!r}")
        with self._lock:
            base = len(self._events)
        return [
            StakingEvent(
                seq=base + i,
                kind=p.kind,
                account=p.account,
                timestamp=int(p.timestamp),
                amounts=dict(p.amounts),
                actor=p.actor,
            )
            for i, p in enumerate(pending, start=1)
        ]

    def extend(self, events: List[StakingEvent]) -> None:
        with self._lock:
            for ev in events:
                if ev.seq != len(self._events) + 1:
                    raise ValueError(f"event seq {ev.seq} does not follow {len(self._events)}")
                self._events.append(ev)

    def truncate(self, seq: int) -> List[StakingEvent]:
        """Drop events after `seq`; only used to undo a commit whose transfer never moved funds."""
        with self._lock:
            keep = max(0, int(seq))
            dropped = self._events[keep:]
            del self._events[keep:]
        return dropped

    def append_all(self, pending: List[PendingEvent]) -> List[StakingEvent]:
        events = self.number(pending)
        self.extend(events)
        return events

    def since(self, seq: int = 0) -> List[StakingEvent]:
        """Events with sequence number greater than `seq`."""
        with self._lock:
            return [e for e in self._events if e.seq > int(seq)]

    def of_kind(self, kind: str) -> List[StakingEvent]:
        with self._lock:
            return [e for e in self._events if e.kind == kind]

    def to_json(self) -> List[Json]:
        return [e.to_json() for e in self.since(0)]


__all__ = [
    "EMERGENCY_WITHDRAWN",
    "EVENT_KINDS",
    "EventLog",
    "PendingEvent",
    "REWARDS_CLAIMED",
    "REWARDS_DEPOSITED",
    "REWARDS_WITHDRAWN",
    "STAKED",
    "StakingEvent",
    "WITHDRAWAL_REQUESTED",
    "WITHDRAWN",
]
