"""Ledger models — registered tasks, per-investor payout entries, events.

State machine per payout entry:
    CLAIMABLE → CLAIMED

Tasks themselves go from absent to registered exactly once and are never
deleted. Event shapes are part of the external contract; changing them
requires a COMMITMENT_VERSION bump.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class PayoutState(str, enum.Enum):
    """Lifecycle state of one investor's entry within a registered task."""
    CLAIMABLE = "claimable"
    CLAIMED = "claimed"


PAYOUT_TRANSITIONS: Dict[PayoutState, frozenset] = {
    PayoutState.CLAIMABLE: frozenset({PayoutState.CLAIMED}),
    PayoutState.CLAIMED: frozenset(),
}


@dataclass
class PayoutEntry:
    """One investor's claimable amount within a task.

    Mutable only through transition_to; the only legal move is
    CLAIMABLE → CLAIMED, and the claim path may undo it inside an
    uncommitted transaction via _restore.
    """
    identity: str
    amount: int
    state: PayoutState = PayoutState.CLAIMABLE

    @property
    def claimed(self) -> bool:
        return self.state == PayoutState.CLAIMED

    def transition_to(self, new_state: PayoutState) -> None:
        """Transition to a new state, validating the transition is legal."""
        allowed = PAYOUT_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise ValueError(
                f"Invalid payout transition: {self.state.value} → {new_state.value}"
            )
        self.state = new_state

    def _restore(self, state: PayoutState) -> None:
        self.state = state

    def snapshot(self) -> "PayoutView":
        return PayoutView(identity=self.identity, amount=self.amount, claimed=self.claimed)


@dataclass(frozen=True)
class PayoutView:
    """Read-only copy of a payout entry, as returned by ledger queries."""
    identity: str
    amount: int
    claimed: bool


@dataclass
class TaskRecord:
    """A registered task. Stored once, never overwritten or deleted."""
    task_id: str
    result_hash: str
    timestamp: int
    payouts: List[PayoutEntry] = field(default_factory=list)
    _index: Dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self._index = {entry.identity: i for i, entry in enumerate(self.payouts)}

    def entry_for(self, identity: str) -> Optional[PayoutEntry]:
        pos = self._index.get(identity)
        return self.payouts[pos] if pos is not None else None

    @property
    def total_payout(self) -> int:
        return sum(p.amount for p in self.payouts)

    @property
    def claimed_total(self) -> int:
        return sum(p.amount for p in self.payouts if p.claimed)


@dataclass(frozen=True)
class TaskInfo:
    """Summary of a task's state for clients."""
    exists: bool
    total_payout: int = 0
    claimed_total: int = 0
    investor_count: int = 0


@dataclass(frozen=True)
class PayoutsProcessed:
    """Emitted when a task's commitment is registered."""
    task_id: str
    investors: tuple[str, ...]
    amounts: tuple[int, ...]
    result_hash: str
    timestamp: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "investors": list(self.investors),
            "amounts": [str(a) for a in self.amounts],
            "resultHash": self.result_hash,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class DividendClaimed:
    """Emitted when an investor claims their payout."""
    investor: str
    task_id: str
    amount: int
    timestamp: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "investor": self.investor,
            "taskId": self.task_id,
            "amount": str(self.amount),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class FundsDeposited:
    """Emitted when the pool receives native currency."""
    sender: str
    amount: int
    timestamp: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "sender": self.sender,
            "amount": str(self.amount),
            "timestamp": self.timestamp,
        }
