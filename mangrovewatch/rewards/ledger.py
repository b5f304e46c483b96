"""
Per-user reward ledger
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from mangrovewatch.core.constants import CONTRIBUTION_LEVELS


def contribution_level(points: int) -> str:
    """Bronze < 200 <= Silver < 500 <= Gold < 1000 <= Platinum."""
    for threshold, level in CONTRIBUTION_LEVELS:
        if points >= threshold:
            return level
    return CONTRIBUTION_LEVELS[-1][1]


@dataclass
class UserLedger:
    """
    Reward-relevant slice of a user.

    Identity and authentication live outside the core; ``role`` and
    ``alerts_enabled`` are copied in so urgent alerts can be routed.
    """
    user_id: str
    role: str = "citizen"
    name: Optional[str] = None
    alerts_enabled: bool = True
    points: int = 0
    reports_submitted: int = 0
    reports_validated: int = 0
    # badge id -> award time
    badges: Dict[str, datetime] = field(default_factory=dict)

    @property
    def contribution_level(self) -> str:
        return contribution_level(self.points)

    def has_badge(self, badge_id: str) -> bool:
        return badge_id in self.badges

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        badges: List[Dict[str, Any]] = [
            {"badge_id": badge_id, "earned_at": earned_at.isoformat()}
            for badge_id, earned_at in sorted(self.badges.items(), key=lambda item: item[1])
        ]
        return {
            "user_id": self.user_id,
            "role": self.role,
            "name": self.name,
            "points": self.points,
            "contribution_level": self.contribution_level,
            "stats": {
                "reports_submitted": self.reports_submitted,
                "reports_validated": self.reports_validated,
            },
            "badges": badges,
        }
