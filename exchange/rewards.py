"""
Reward points and tiers.

Points are only awarded when a transaction completes. The tier is derived
from the point total and recomputed after every award.
"""

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction

logger = logging.getLogger(__name__)


def tier_for(points):
    """
    Map a point total to its tier label.

    Args:
        points: Non-negative point total

    Returns:
        str: 'Gold Community Champion', 'Silver Contributor' or 'Bronze Contributor'
    """
    User = get_user_model()

    if points >= settings.GOLD_TIER_POINTS:
        return User.TIER_GOLD
    if points >= settings.SILVER_TIER_POINTS:
        return User.TIER_SILVER
    return User.TIER_BRONZE


class RewardLedger:
    """Point accrual and tier recomputation."""

    def award(self, user, points):
        """
        Add points to a user and recompute their tier.

        Locks the user row so concurrent awards serialize. When called inside
        an outer atomic block (the transaction engine) the award commits or
        rolls back with it.

        Args:
            user: User instance (updated in place with the new totals)
            points: Non-negative number of points to add

        Returns:
            User: the updated user
        """
        if points < 0:
            raise ValueError('Points awarded cannot be negative.')

        User = get_user_model()

        with transaction.atomic():
            locked = User.objects.select_for_update().get(pk=user.pk)
            old_tier = locked.tier
            locked.points += points
            locked.tier = tier_for(locked.points)
            locked.save(update_fields=['points', 'tier', 'updated_at'])

        user.points = locked.points
        user.tier = locked.tier

        logger.info(
            f"Awarded {points} points to {locked.email} (ID: {locked.pk}). "
            f"Total: {locked.points}, Tier: {locked.tier}"
            + (f" (was {old_tier})" if old_tier != locked.tier else "")
        )
        return user
