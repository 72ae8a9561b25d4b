"""Native treasury — the single pooled balance the ledger pays dividends from.

The treasury only moves integer amounts in the ledger's base unit. Actual
delivery to a recipient goes through a pluggable Transferor, so the ledger
never depends on how value leaves the pool. A transfer may fail because
the recipient rejects it, and a recipient may call back into the ledger
while receiving; both cases are modelled by InMemoryTransferor hooks.

The ledger records an undo for every treasury step it takes inside a
transaction, which is why every operation here has an inverse:
deposit/debit, debit/credit and transfer/refund.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Dict, Optional, Protocol, runtime_checkable

logger = logging.getLogger("privest.compensation.treasury")

ReceiveHook = Callable[[str, int], None]


class InsufficientFunds(ValueError):
    """The pool holds less than the amount requested."""


class TransferRejected(RuntimeError):
    """The recipient refused the transfer."""


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Amount must be an integer, got {amount!r}")
    if amount <= 0:
        raise ValueError("Amount must be positive")


@runtime_checkable
class Transferor(Protocol):
    """Delivers native currency from the pool to a recipient.

    transfer() either completes or raises; it never half-completes.
    refund() reverses a transfer whose enclosing ledger transaction was
    rolled back.
    """

    def transfer(self, recipient: str, amount: int) -> None:
        ...

    def refund(self, recipient: str, amount: int) -> None:
        ...


class InMemoryTransferor:
    """Transferor that credits recipient balances held in memory.

    A receive hook registered for a recipient runs after the credit, the
    way a contract's receive function runs once value has arrived. If the
    hook raises, the credit is reversed and the error propagates.

    Usage:
        transferor = InMemoryTransferor()
        transferor.on_receive(investor, lambda who, amount: ...)
        treasury = NativeTreasury(transferor)
    """

    def __init__(self) -> None:
        self._balances: Dict[str, int] = defaultdict(int)
        self._hooks: Dict[str, ReceiveHook] = {}

    def on_receive(self, recipient: str, hook: Optional[ReceiveHook]) -> None:
        """Install (or with None, remove) the receive hook for a recipient."""
        if hook is None:
            self._hooks.pop(recipient, None)
        else:
            self._hooks[recipient] = hook

    def reject(self, recipient: str) -> None:
        """Make every transfer to recipient fail."""
        def _refuse(who: str, amount: int) -> None:
            raise TransferRejected(f"Recipient {who} rejected {amount}")
        self._hooks[recipient] = _refuse

    def transfer(self, recipient: str, amount: int) -> None:
        _check_amount(amount)
        self._balances[recipient] += amount
        hook = self._hooks.get(recipient)
        if hook is None:
            return
        try:
            hook(recipient, amount)
        except BaseException:
            self._balances[recipient] -= amount
            raise

    def refund(self, recipient: str, amount: int) -> None:
        self._balances[recipient] -= amount

    def balance_of(self, recipient: str) -> int:
        return self._balances.get(recipient, 0)


class NativeTreasury:
    """Single native-currency pool.

    Usage:
        treasury = NativeTreasury(InMemoryTransferor())
        treasury.deposit(10**18)
        treasury.debit(440000)
        treasury.send(investor, 440000)
    """

    def __init__(self, transferor: Optional[Transferor] = None) -> None:
        self._transferor: Transferor = transferor or InMemoryTransferor()
        self._balance = 0

    @property
    def balance(self) -> int:
        return self._balance

    @property
    def transferor(self) -> Transferor:
        return self._transferor

    def deposit(self, amount: int) -> None:
        _check_amount(amount)
        self._balance += amount

    def credit(self, amount: int) -> None:
        """Return previously debited funds to the pool."""
        _check_amount(amount)
        self._balance += amount

    def debit(self, amount: int) -> None:
        """Remove funds from the pool. Raises InsufficientFunds."""
        _check_amount(amount)
        if amount > self._balance:
            raise InsufficientFunds(
                f"Pool balance {self._balance} is below requested {amount}"
            )
        self._balance -= amount

    def send(self, recipient: str, amount: int) -> None:
        logger.debug("Sending %d to %s", amount, recipient)
        self._transferor.transfer(recipient, amount)

    def refund(self, recipient: str, amount: int) -> None:
        self._transferor.refund(recipient, amount)
