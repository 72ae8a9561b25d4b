"""Compensation subsystem — payout engine, pooled treasury, payout ledger."""

from privest.compensation.engine import PayoutEngine
from privest.compensation.ledger import LedgerHandle, PayoutLedger
from privest.compensation.treasury import InMemoryTransferor, NativeTreasury

__all__ = [
    "PayoutEngine",
    "LedgerHandle",
    "PayoutLedger",
    "InMemoryTransferor",
    "NativeTreasury",
]
