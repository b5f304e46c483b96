"""
MangroveWatch - Rewards Module
Points ledger, badge definitions, and badge evaluation.
"""

from mangrovewatch.rewards.badges import (
    Badge,
    BadgeCriterion,
    CriterionKind,
    BadgeCategory,
    BadgeTier,
    BadgeRarity,
    Timeframe,
    default_badge_catalog,
)
from mangrovewatch.rewards.ledger import UserLedger, contribution_level
from mangrovewatch.rewards.engine import RewardEngine

__all__ = [
    # Badges
    "Badge",
    "BadgeCriterion",
    "CriterionKind",
    "BadgeCategory",
    "BadgeTier",
    "BadgeRarity",
    "Timeframe",
    "default_badge_catalog",
    # Ledger
    "UserLedger",
    "contribution_level",
    "RewardEngine",
]
