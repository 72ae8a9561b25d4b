"""Core data models for PriVest."""

from privest.models.commitment import COMMITMENT_VERSION, Commitment, UnitConversion
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
from privest.models.payout import EngineSettings, PayoutRecord, PayoutSummary, Tier
from privest.models.stakeholder import ZERO_ADDRESS, Stakeholder, canonical_identity

__all__ = [
    "COMMITMENT_VERSION",
    "Commitment",
    "UnitConversion",
    "DividendClaimed",
    "FundsDeposited",
    "PayoutEntry",
    "PayoutState",
    "PayoutsProcessed",
    "PayoutView",
    "TaskInfo",
    "TaskRecord",
    "EngineSettings",
    "PayoutRecord",
    "PayoutSummary",
    "Tier",
    "ZERO_ADDRESS",
    "Stakeholder",
    "canonical_identity",
]
