"""
Badge definitions and the default catalog
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from mangrovewatch.core.exceptions import ValidationError


class CriterionKind(str, Enum):
    """Ledger value a badge criterion is measured against."""
    REPORT_COUNT = "report_count"
    VALIDATION_COUNT = "validation_count"
    POINTS_TOTAL = "points_total"
    CONSECUTIVE_DAYS = "consecutive_days"
    SPECIAL_ACTION = "special_action"


class BadgeCategory(str, Enum):
    REPORTING = "reporting"
    VALIDATION = "validation"
    PARTICIPATION = "participation"
    EXPERTISE = "expertise"
    ACHIEVEMENT = "achievement"
    LEADERSHIP = "leadership"


class BadgeTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    SPECIAL = "special"


class BadgeRarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class Timeframe(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    ALL_TIME = "all_time"


@dataclass(frozen=True)
class BadgeCriterion:
    """Single eligibility rule: ledger value of ``kind`` >= ``threshold``."""
    kind: CriterionKind
    threshold: int
    timeframe: Timeframe = Timeframe.ALL_TIME

    def __post_init__(self):
        if isinstance(self.threshold, bool) or not isinstance(self.threshold, int) or self.threshold < 1:
            raise ValidationError(
                "Badge threshold must be an integer of at least 1",
                details={"threshold": self.threshold},
            )

    def is_met(self, value: int) -> bool:
        return value >= self.threshold


@dataclass
class Badge:
    """
    A reward definition, not a per-user instance.

    ``times_earned`` counts distinct users that earned the badge.
    ``points`` is informational and is not credited to the ledger.
    """
    name: str
    description: str
    icon: str
    category: BadgeCategory
    tier: BadgeTier
    criterion: BadgeCriterion
    points: int = 0
    rarity: BadgeRarity = BadgeRarity.COMMON
    is_active: bool = True
    times_earned: int = 0
    last_earned_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValidationError("Badge name is required")
        if len(self.name) > 100:
            raise ValidationError("Badge name must be less than 100 characters")
        if self.points < 0:
            raise ValidationError("Badge points cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "category": self.category.value,
            "tier": self.tier.value,
            "criterion": {
                "kind": self.criterion.kind.value,
                "threshold": self.criterion.threshold,
                "timeframe": self.criterion.timeframe.value,
            },
            "points": self.points,
            "rarity": self.rarity.value,
            "is_active": self.is_active,
            "stats": {
                "times_earned": self.times_earned,
                "last_earned_at": self.last_earned_at.isoformat() if self.last_earned_at else None,
            },
        }


def _badge(
    name: str,
    description: str,
    icon: str,
    category: BadgeCategory,
    tier: BadgeTier,
    kind: CriterionKind,
    threshold: int,
    points: int,
    rarity: BadgeRarity,
    timeframe: Timeframe = Timeframe.ALL_TIME
) -> Badge:
    return Badge(
        name=name,
        description=description,
        icon=icon,
        category=category,
        tier=tier,
        criterion=BadgeCriterion(kind, threshold, timeframe),
        points=points,
        rarity=rarity,
    )


def default_badge_catalog() -> List[Badge]:
    """Seed set of badges for a fresh installation."""
    C, T, K, R = BadgeCategory, BadgeTier, CriterionKind, BadgeRarity
    return [
        # Reporting
        _badge("First Report", "Submit your first incident report", "🌱",
               C.REPORTING, T.BRONZE, K.REPORT_COUNT, 1, 10, R.COMMON),
        _badge("Dedicated Reporter", "Submit 10 incident reports", "📋",
               C.REPORTING, T.SILVER, K.REPORT_COUNT, 10, 50, R.UNCOMMON),
        _badge("Guardian of Mangroves", "Submit 50 incident reports", "🏆",
               C.REPORTING, T.GOLD, K.REPORT_COUNT, 50, 200, R.RARE),
        _badge("Mangrove Champion", "Submit 100 incident reports", "👑",
               C.REPORTING, T.PLATINUM, K.REPORT_COUNT, 100, 500, R.EPIC),
        # Validation
        _badge("Validator", "Validate your first report", "✅",
               C.VALIDATION, T.BRONZE, K.VALIDATION_COUNT, 1, 15, R.COMMON),
        _badge("Expert Validator", "Validate 25 reports", "🔍",
               C.VALIDATION, T.SILVER, K.VALIDATION_COUNT, 25, 100, R.UNCOMMON),
        _badge("Master Validator", "Validate 100 reports", "🎯",
               C.VALIDATION, T.GOLD, K.VALIDATION_COUNT, 100, 300, R.RARE),
        # Points
        _badge("Rising Star", "Earn 100 points", "⭐",
               C.ACHIEVEMENT, T.BRONZE, K.POINTS_TOTAL, 100, 25, R.COMMON),
        _badge("Community Hero", "Earn 500 points", "🦸",
               C.ACHIEVEMENT, T.SILVER, K.POINTS_TOTAL, 500, 75, R.UNCOMMON),
        _badge("Environmental Warrior", "Earn 1000 points", "⚔️",
               C.ACHIEVEMENT, T.GOLD, K.POINTS_TOTAL, 1000, 150, R.RARE),
        _badge("Legendary Protector", "Earn 2500 points", "🌟",
               C.ACHIEVEMENT, T.PLATINUM, K.POINTS_TOTAL, 2500, 300, R.LEGENDARY),
        # Participation
        _badge("Active Contributor", "Be active for 7 consecutive days", "📅",
               C.PARTICIPATION, T.BRONZE, K.CONSECUTIVE_DAYS, 7, 30, R.COMMON, Timeframe.WEEKLY),
        _badge("Dedicated Member", "Be active for 30 consecutive days", "🔥",
               C.PARTICIPATION, T.SILVER, K.CONSECUTIVE_DAYS, 30, 100, R.UNCOMMON, Timeframe.MONTHLY),
        # Special
        _badge("Early Adopter", "One of the first 100 users to join", "🚀",
               C.EXPERTISE, T.SPECIAL, K.SPECIAL_ACTION, 1, 100, R.LEGENDARY),
        _badge("Critical Alert", "Report a critical incident that was verified", "🚨",
               C.EXPERTISE, T.SPECIAL, K.SPECIAL_ACTION, 1, 200, R.EPIC),
        _badge("Community Leader", "Help validate and guide other community members", "👥",
               C.LEADERSHIP, T.SPECIAL, K.SPECIAL_ACTION, 1, 250, R.LEGENDARY),
    ]
