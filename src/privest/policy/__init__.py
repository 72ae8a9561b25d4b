"""Policy configuration — tier table, engine settings, unit conversion."""

from privest.policy.resolver import PerformanceBonus, PolicyResolver, TierPolicy

__all__ = ["PerformanceBonus", "PolicyResolver", "TierPolicy"]
