"""Payout ledger — registers payout commitments and pays out claims.

The ledger is the authoritative record of what each investor may claim.
It accepts a commitment only if it is internally consistent (equal, non-empty
arrays, valid unique identities, positive amounts, and a result hash that
matches the arrays) and only once per task. Each investor can then claim
their amount exactly once.

State machines:
    task:   absent → registered        (never overwritten or deleted)
    payout: CLAIMABLE → CLAIMED        (one-way, see PAYOUT_TRANSITIONS)

Every mutating call runs as one transaction under a single re-entrant lock,
which puts all calls into a total order. Each step registers an undo; if
anything fails, the undos run in reverse and no partial state remains.
A call made while a transaction is open (e.g. from a recipient's receive
hook during a claim transfer) runs as a savepoint: its effects join the
enclosing transaction and are undone with it. Because a claim marks the
entry CLAIMED before any value moves, a re-entrant claim for the same
entry is rejected with NoDividendAvailable.

Events are buffered during the transaction and published only when the
outermost transaction commits. With an EventLog attached, they are
appended to it before the commit becomes visible; if that append fails,
the transaction is rolled back and the error propagates.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional, Sequence, Union
from uuid import uuid4

from privest.compensation.treasury import NativeTreasury
from privest.crypto.commitment_builder import (
    commitment_hash,
    normalize_hash,
    normalize_task_id,
)
from privest.errors import (
    ArrayLengthMismatch,
    DuplicateTask,
    EncodingError,
    HashMismatch,
    InvalidAddress,
    InvalidAmount,
    InvalidInput,
    LedgerRejection,
    NoDividendAvailable,
    TaskNotFound,
    TransferFailed,
    Unauthorized,
)
from privest.models.ledger import (
    DividendClaimed,
    FundsDeposited,
    PayoutEntry,
    PayoutState,
    PayoutsProcessed,
    PayoutView,
    TaskInfo,
    TaskRecord,
)
from privest.models.stakeholder import canonical_identity
from privest.persistence.event_log import EventKind, EventLog, EventRecord

logger = logging.getLogger("privest.compensation.ledger")

LedgerEvent = Union[PayoutsProcessed, DividendClaimed, FundsDeposited]

_UINT256_MAX = (1 << 256) - 1


def _unix_now() -> int:
    return int(time.time())


@dataclass
class _PendingEvent:
    kind: EventKind
    actor: str
    timestamp: int
    payload: dict[str, Any]
    event: Optional[LedgerEvent] = None


@dataclass
class _Transaction:
    """Undo journal and event buffer for one ledger call."""
    undo: list[Callable[[], None]] = field(default_factory=list)
    pending: list[_PendingEvent] = field(default_factory=list)

    def on_rollback(self, action: Callable[[], None]) -> None:
        self.undo.append(action)

    def rollback(self) -> None:
        while self.undo:
            self.undo.pop()()
        self.pending.clear()

    def absorb(self, child: _Transaction) -> None:
        self.undo.extend(child.undo)
        self.pending.extend(child.pending)


def _identity_or_reject(value: Any) -> str:
    try:
        return canonical_identity(value)
    except InvalidInput as exc:
        raise InvalidAddress(exc.reason) from exc


class PayoutLedger:
    """Authoritative store of registered payouts and claims.

    Callers act through a handle bound to their identity; queries are made
    on the ledger directly.

    Usage:
        ledger = PayoutLedger(owner=OWNER)
        ledger.connect(FUNDER).deposit(10**18)
        ledger.connect(OWNER).register(task_id, investors, amounts, result_hash)
        ledger.connect(investor).claim(task_id)
        ledger.payouts(task_id)
    """

    def __init__(
        self,
        owner: str,
        treasury: Optional[NativeTreasury] = None,
        event_log: Optional[EventLog] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._owner = canonical_identity(owner)
        self._treasury = treasury if treasury is not None else NativeTreasury()
        self._event_log = event_log
        self._clock = clock or _unix_now
        self._lock = threading.RLock()
        self._stack: list[_Transaction] = []
        self._tasks: dict[str, TaskRecord] = {}
        self._investor_tasks: dict[str, list[str]] = {}
        self._submitters: set[str] = set()
        self._events: list[LedgerEvent] = []

        if event_log is not None and event_log.count:
            self._replay(event_log)

    # ------------------------------------------------------------------
    # Invocation context
    # ------------------------------------------------------------------

    def connect(self, identity: str) -> LedgerHandle:
        """Bind a caller identity. Raises InvalidAddress if it is malformed."""
        return LedgerHandle(self, _identity_or_reject(identity))

    @property
    def owner(self) -> str:
        return self._owner

    def is_submitter(self, identity: str) -> bool:
        caller = _identity_or_reject(identity)
        with self._lock:
            return caller == self._owner or caller in self._submitters

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def balance(self) -> int:
        with self._lock:
            return self._treasury.balance

    @property
    def events(self) -> tuple[LedgerEvent, ...]:
        """Committed events, in commit order."""
        with self._lock:
            return tuple(self._events)

    def investor_tasks(self, identity: str) -> list[str]:
        """Task ids in which identity has a payout, in registration order."""
        investor = _identity_or_reject(identity)
        with self._lock:
            return list(self._investor_tasks.get(investor, []))

    def payouts(self, task_id: Any) -> list[PayoutView]:
        with self._lock:
            task = self._task(task_id)
            return [entry.snapshot() for entry in task.payouts]

    def task_details(self, task_id: Any) -> tuple[str, int]:
        """Return (result_hash, registration timestamp)."""
        with self._lock:
            task = self._task(task_id)
            return task.result_hash, task.timestamp

    def task_info(self, task_id: Any) -> TaskInfo:
        with self._lock:
            task = self._tasks.get(normalize_task_id(task_id))
            if task is None:
                return TaskInfo(exists=False)
            return TaskInfo(
                exists=True,
                total_payout=task.total_payout,
                claimed_total=task.claimed_total,
                investor_count=len(task.payouts),
            )

    def outstanding(self) -> int:
        """Sum of all amounts still claimable across every task."""
        with self._lock:
            return sum(
                entry.amount
                for task in self._tasks.values()
                for entry in task.payouts
                if not entry.claimed
            )

    # ------------------------------------------------------------------
    # Mutations (reached through LedgerHandle)
    # ------------------------------------------------------------------

    def _register(
        self,
        caller: str,
        task_id: Any,
        investors: Sequence[Any],
        amounts: Sequence[Any],
        result_hash: Any,
    ) -> PayoutsProcessed:
        with self._transaction() as tx:
            if caller != self._owner and caller not in self._submitters:
                raise Unauthorized(f"{caller} may not submit results")

            key = normalize_task_id(task_id)
            if key in self._tasks:
                raise DuplicateTask(f"Task {key} already processed")
            if len(investors) == 0 or len(investors) != len(amounts):
                raise ArrayLengthMismatch(
                    f"{len(investors)} investors and {len(amounts)} amounts"
                )

            canonical = [_identity_or_reject(a) for a in investors]
            if len(set(canonical)) != len(canonical):
                raise InvalidAddress("Duplicate investor in payout list")
            for amount in amounts:
                if isinstance(amount, bool) or not isinstance(amount, int):
                    raise InvalidAmount(f"Amount must be an integer: {amount!r}")
                if amount <= 0 or amount > _UINT256_MAX:
                    raise InvalidAmount(f"Amount out of range: {amount}")

            try:
                claimed_hash = normalize_hash(result_hash)
            except EncodingError as exc:
                raise HashMismatch(exc.reason) from exc
            expected = commitment_hash(canonical, amounts)
            if claimed_hash != expected:
                raise HashMismatch(f"Result hash {claimed_hash} != computed {expected}")

            timestamp = self._clock()
            self._store_task(key, canonical, list(amounts), claimed_hash, timestamp)
            tx.on_rollback(lambda: self._drop_task(key))

            event = PayoutsProcessed(
                task_id=key,
                investors=tuple(canonical),
                amounts=tuple(amounts),
                result_hash=claimed_hash,
                timestamp=timestamp,
            )
            self._emit(tx, EventKind.PAYOUTS_PROCESSED, caller, timestamp, event.to_payload(), event)

        logger.info("Registered task %s with %d payouts", key, len(canonical))
        return event

    def _claim(self, caller: str, task_id: Any) -> DividendClaimed:
        with self._transaction() as tx:
            task = self._task(task_id)
            entry = task.entry_for(caller)
            if entry is None or entry.claimed:
                raise NoDividendAvailable("No dividend available")

            entry.transition_to(PayoutState.CLAIMED)
            tx.on_rollback(lambda: entry._restore(PayoutState.CLAIMABLE))

            amount = entry.amount
            try:
                self._treasury.debit(amount)
                tx.on_rollback(lambda: self._treasury.credit(amount))
                self._treasury.send(caller, amount)
                tx.on_rollback(lambda: self._treasury.refund(caller, amount))
            except Exception as exc:
                raise TransferFailed(f"Transfer of {amount} to {caller} failed: {exc}") from exc

            timestamp = self._clock()
            event = DividendClaimed(
                investor=caller, task_id=task.task_id, amount=amount, timestamp=timestamp
            )
            self._emit(tx, EventKind.DIVIDEND_CLAIMED, caller, timestamp, event.to_payload(), event)

        logger.info("Dividend claimed on task %s by %s", task.task_id, caller)
        return event

    def _deposit(self, caller: str, amount: Any) -> FundsDeposited:
        with self._transaction() as tx:
            if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
                raise InvalidAmount(f"Deposit must be a positive integer: {amount!r}")
            self._treasury.deposit(amount)
            tx.on_rollback(lambda: self._treasury.debit(amount))

            timestamp = self._clock()
            event = FundsDeposited(sender=caller, amount=amount, timestamp=timestamp)
            self._emit(tx, EventKind.FUNDS_DEPOSITED, caller, timestamp, event.to_payload(), event)

        logger.info("Pool funded with %d by %s", amount, caller)
        return event

    def _set_submitter(self, caller: str, identity: str, allowed: bool) -> None:
        with self._transaction() as tx:
            if caller != self._owner:
                raise Unauthorized("Only the owner can change submitters")
            submitter = _identity_or_reject(identity)
            if allowed == (submitter in self._submitters):
                return
            if allowed:
                self._submitters.add(submitter)
                tx.on_rollback(lambda: self._submitters.discard(submitter))
                kind = EventKind.SUBMITTER_AUTHORIZED
            else:
                self._submitters.discard(submitter)
                tx.on_rollback(lambda: self._submitters.add(submitter))
                kind = EventKind.SUBMITTER_REVOKED
            self._emit(tx, kind, caller, self._clock(), {"submitter": submitter})

        logger.info("%s: %s", kind.value, submitter)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[_Transaction]:
        with self._lock:
            tx = _Transaction()
            self._stack.append(tx)
            try:
                yield tx
            except BaseException as exc:
                self._stack.pop()
                tx.rollback()
                if isinstance(exc, LedgerRejection):
                    logger.warning("Ledger call rejected (%s): %s", exc.kind.value, exc.reason)
                raise

            self._stack.pop()
            if self._stack:
                self._stack[-1].absorb(tx)
                return
            try:
                self._persist(tx.pending)
            except (ValueError, OSError):
                tx.rollback()
                logger.error("Event log append failed; transaction rolled back")
                raise
            self._events.extend(p.event for p in tx.pending if p.event is not None)

    def _emit(
        self,
        tx: _Transaction,
        kind: EventKind,
        actor: str,
        timestamp: int,
        payload: dict[str, Any],
        event: Optional[LedgerEvent] = None,
    ) -> None:
        tx.pending.append(_PendingEvent(kind, actor, timestamp, payload, event))

    def _persist(self, pending: list[_PendingEvent]) -> None:
        if self._event_log is None:
            return
        # One transaction, one append: a nested call's events never land alone.
        self._event_log.append_many([
            EventRecord.create(
                event_id=f"evt_{uuid4().hex[:16]}",
                event_kind=item.kind,
                actor_id=item.actor,
                payload=item.payload,
                timestamp_utc=datetime.fromtimestamp(item.timestamp, timezone.utc),
            )
            for item in pending
        ])

    # ------------------------------------------------------------------
    # Internal state
    # ------------------------------------------------------------------

    def _task(self, task_id: Any) -> TaskRecord:
        key = normalize_task_id(task_id)
        task = self._tasks.get(key)
        if task is None:
            raise TaskNotFound(f"Task {key} not found")
        return task

    def _store_task(
        self,
        key: str,
        investors: list[str],
        amounts: list[int],
        result_hash: str,
        timestamp: int,
    ) -> TaskRecord:
        task = TaskRecord(
            task_id=key,
            result_hash=result_hash,
            timestamp=timestamp,
            payouts=[PayoutEntry(identity=i, amount=a) for i, a in zip(investors, amounts)],
        )
        self._tasks[key] = task
        for investor in investors:
            self._investor_tasks.setdefault(investor, []).append(key)
        return task

    def _drop_task(self, key: str) -> None:
        task = self._tasks.pop(key)
        for entry in task.payouts:
            tasks = self._investor_tasks[entry.identity]
            tasks.remove(key)
            if not tasks:
                del self._investor_tasks[entry.identity]

    def _replay(self, log: EventLog) -> None:
        """Rebuild state from a persisted log without moving any value."""
        for record in log:
            p = record.payload
            if record.event_kind == EventKind.FUNDS_DEPOSITED:
                amount = int(p["amount"])
                self._treasury.deposit(amount)
                self._events.append(FundsDeposited(p["sender"], amount, p["timestamp"]))
            elif record.event_kind == EventKind.PAYOUTS_PROCESSED:
                amounts = [int(a) for a in p["amounts"]]
                self._store_task(p["taskId"], list(p["investors"]), amounts, p["resultHash"], p["timestamp"])
                self._events.append(PayoutsProcessed(
                    p["taskId"], tuple(p["investors"]), tuple(amounts), p["resultHash"], p["timestamp"]
                ))
            elif record.event_kind == EventKind.DIVIDEND_CLAIMED:
                amount = int(p["amount"])
                self._tasks[p["taskId"]].entry_for(p["investor"]).transition_to(PayoutState.CLAIMED)
                self._treasury.debit(amount)
                self._events.append(DividendClaimed(p["investor"], p["taskId"], amount, p["timestamp"]))
            elif record.event_kind == EventKind.SUBMITTER_AUTHORIZED:
                self._submitters.add(p["submitter"])
            elif record.event_kind == EventKind.SUBMITTER_REVOKED:
                self._submitters.discard(p["submitter"])
        logger.info(
            "Replayed %d events: %d tasks, balance %d",
            log.count, len(self._tasks), self._treasury.balance,
        )


class LedgerHandle:
    """A caller's connection to the ledger.

    The caller identity is fixed when the handle is created and is never
    passed as an argument, so a call cannot claim to be someone else.
    """

    def __init__(self, ledger: PayoutLedger, caller: str) -> None:
        self._ledger = ledger
        self._caller = caller

    @property
    def caller(self) -> str:
        return self._caller

    def register(
        self,
        task_id: Any,
        investors: Sequence[Any],
        amounts: Sequence[Any],
        result_hash: Any,
    ) -> PayoutsProcessed:
        """Register a task's payouts.

        Raises Unauthorized, DuplicateTask, ArrayLengthMismatch,
        InvalidAddress, InvalidAmount or HashMismatch; nothing is stored
        on rejection.
        """
        return self._ledger._register(self._caller, task_id, investors, amounts, result_hash)

    def claim(self, task_id: Any) -> DividendClaimed:
        """Claim the caller's payout for a task.

        Raises TaskNotFound, NoDividendAvailable or TransferFailed; a
        failed claim leaves the entry claimable and the pool untouched.
        """
        return self._ledger._claim(self._caller, task_id)

    def deposit(self, amount: int) -> FundsDeposited:
        return self._ledger._deposit(self._caller, amount)

    def authorize_submitter(self, identity: str) -> None:
        self._ledger._set_submitter(self._caller, identity, True)

    def revoke_submitter(self, identity: str) -> None:
        self._ledger._set_submitter(self._caller, identity, False)
