"""
Points ledger and badge awards
"""

import logging
from typing import List, Optional

from mangrovewatch.core.clock import utcnow
from mangrovewatch.core.exceptions import ValidationError
from mangrovewatch.rewards.badges import Badge, CriterionKind, default_badge_catalog
from mangrovewatch.rewards.ledger import UserLedger
from mangrovewatch.storage.base import BadgeRepository, UserRepository

logger = logging.getLogger(__name__)


class RewardEngine:
    """
    Credits points and grants badges.

    Point increments are delegated to the repository as atomic updates, so
    concurrent awards to one user all land.
    """

    def __init__(self, users: UserRepository, badges: BadgeRepository):
        self.users = users
        self.badges = badges

    # =========================================================================
    # POINTS
    # =========================================================================

    async def award(self, user_id: str, points: int, reason: str = "") -> int:
        """
        Credit points to a user's ledger.

        Args:
            user_id: Recipient
            points: Non-negative integer amount
            reason: Free text for the log

        Returns:
            New points total

        Raises:
            ValidationError: points is negative or not an integer
            NotFound: unknown user
        """
        if isinstance(points, bool) or not isinstance(points, int) or points < 0:
            raise ValidationError(
                "Points must be a non-negative integer",
                details={"points": points},
            )

        total = await self.users.increment_points(user_id, points)
        logger.info(f"Awarded {points} points to {user_id} ({reason or 'unspecified'}); total {total}")
        return total

    async def ledger(self, user_id: str) -> UserLedger:
        return await self.users.get(user_id)

    # =========================================================================
    # BADGES
    # =========================================================================

    async def evaluate(self, user_id: str, kind: CriterionKind, current_value: int) -> List[Badge]:
        """
        Badges whose criterion ``current_value`` now meets.

        Only active badges of ``kind`` qualify; the most stringent threshold
        comes first. Possession is not checked here.
        """
        qualifying = await self.badges.find_qualifying(kind, current_value)
        logger.debug(
            f"{len(qualifying)} {kind.value} badges qualify for {user_id} at {current_value}"
        )
        return qualifying

    async def grant_badge(self, user_id: str, badge: Badge) -> bool:
        """
        Add a badge to a user's set.

        Returns:
            True on first award; only then is the badge's earned count bumped
        """
        at = utcnow()
        added = await self.users.add_badge(user_id, badge.id, at)
        if not added:
            return False

        await self.badges.increment_earned(badge.id, at)
        logger.info(f"Badge '{badge.name}' granted to {user_id}")
        return True

    async def evaluate_and_grant(
        self,
        user_id: str,
        kind: CriterionKind,
        current_value: int
    ) -> List[Badge]:
        """
        Grant every qualifying badge the user does not hold yet.

        Returns:
            Newly earned badges, most stringent first
        """
        ledger = await self.users.get(user_id)
        earned: List[Badge] = []

        for badge in await self.evaluate(user_id, kind, current_value):
            if ledger.has_badge(badge.id):
                continue
            if await self.grant_badge(user_id, badge):
                earned.append(badge)
        return earned

    async def create_badge(self, badge: Badge) -> Badge:
        """Register a badge definition; duplicate names raise ConflictError."""
        created = await self.badges.add(badge)
        logger.info(f"Created badge '{badge.name}' ({badge.criterion.kind.value} >= {badge.criterion.threshold})")
        return created

    async def seed_badges(self, catalog: Optional[List[Badge]] = None) -> List[Badge]:
        """Create the default catalog (or ``catalog``)."""
        created = []
        for badge in catalog if catalog is not None else default_badge_catalog():
            created.append(await self.create_badge(badge))
        return created
