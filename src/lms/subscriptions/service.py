"""Subscription tiers, tier changes, and the PRO module bundle."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.achievements.definitions import AchievementType
from lms.achievements.service import award_achievement
from lms.db.models import Module, SubscriptionTier, UserSubscription
from lms.errors import (
    ForbiddenError,
    InternalError,
    InvalidModuleSelection,
    NotFoundError,
)
from lms.utils import isoformat, utcnow

logger = structlog.get_logger()

BASIC = "BASIC"
PRO = "PRO"
PREMIUM = "PREMIUM"

TIER_ACHIEVEMENTS = {
    PRO: AchievementType.SUBSCRIPTION_PRO,
    PREMIUM: AchievementType.SUBSCRIPTION_PREMIUM,
}


def serialize_tier(tier: SubscriptionTier) -> dict[str, Any]:
    return {
        "id": tier.id,
        "name": tier.name,
        "displayName": tier.display_name,
        "price": tier.price,
        "moduleLimit": tier.module_limit,
        "features": tier.features or [],
    }


def serialize_subscription(subscription: UserSubscription) -> dict[str, Any]:
    return {
        "id": subscription.id,
        "userId": subscription.user_id,
        "tierId": subscription.tier_id,
        "tier": serialize_tier(subscription.tier),
        "selectedModules": list(subscription.selected_modules or []),
        "status": subscription.status,
        "startDate": isoformat(subscription.start_date),
        "endDate": isoformat(subscription.end_date),
    }


async def list_tiers(db: AsyncSession) -> list[SubscriptionTier]:
    result = await db.execute(select(SubscriptionTier).order_by(SubscriptionTier.price))
    return list(result.scalars().all())


async def get_tier(db: AsyncSession, tier_id: str) -> SubscriptionTier:
    tier = await db.get(SubscriptionTier, tier_id)
    if tier is None:
        raise NotFoundError("Subscription tier not found")
    return tier


async def get_tier_by_name(db: AsyncSession, name: str) -> SubscriptionTier | None:
    result = await db.execute(select(SubscriptionTier).where(SubscriptionTier.name == name))
    return result.scalar_one_or_none()


async def get_subscription(db: AsyncSession, user_id: str) -> UserSubscription | None:
    result = await db.execute(select(UserSubscription).where(UserSubscription.user_id == user_id))
    return result.scalar_one_or_none()


async def provision_basic(db: AsyncSession, user_id: str) -> UserSubscription:
    """Give the user an ACTIVE BASIC subscription."""
    tier = await get_tier_by_name(db, BASIC)
    if tier is None:
        raise InternalError("Subscription tiers are not configured")
    subscription = UserSubscription(
        user_id=user_id,
        tier_id=tier.id,
        selected_modules=[],
        status="ACTIVE",
        start_date=utcnow(),
    )
    subscription.tier = tier
    db.add(subscription)
    await db.flush()
    logger.info("subscription_provisioned", user_id=user_id, tier=BASIC)
    return subscription


async def get_or_create_subscription(db: AsyncSession, user_id: str) -> UserSubscription:
    subscription = await get_subscription(db, user_id)
    if subscription is None:
        subscription = await provision_basic(db, user_id)
    return subscription


async def _validate_selection(
    db: AsyncSession,
    tier: SubscriptionTier,
    selected_modules: list[str],
    *,
    require_existing: bool,
) -> list[str]:
    """Check a PRO bundle: non-empty, within the tier limit, optionally all real modules."""
    selection = list(dict.fromkeys(selected_modules))
    if not selection:
        raise InvalidModuleSelection(
            f"Please select up to {tier.module_limit} modules for the {tier.display_name} tier"
        )
    if tier.module_limit is not None and len(selection) > tier.module_limit:
        raise InvalidModuleSelection(f"{tier.display_name} tier allows at most {tier.module_limit} modules")
    if require_existing:
        result = await db.execute(select(func.count(Module.id)).where(Module.id.in_(selection)))
        if (result.scalar() or 0) != len(selection):
            raise InvalidModuleSelection("Some selected modules do not exist")
    return selection


class SubscriptionService:
    """Tier assignment and bundle management for one request."""

    def __init__(self, db: AsyncSession, redis: Any | None = None) -> None:  # noqa: ANN401
        self.db = db
        self.redis = redis

    async def subscribe(self, user_id: str, tier_id: str, selected_modules: list[str]) -> UserSubscription:
        """Create or replace the user's subscription."""
        tier = await get_tier(self.db, tier_id)
        selection: list[str] = []
        if tier.name == PRO:
            selection = await _validate_selection(self.db, tier, selected_modules, require_existing=True)

        subscription = await get_subscription(self.db, user_id)
        now = utcnow()
        if subscription is None:
            subscription = UserSubscription(user_id=user_id)
            self.db.add(subscription)
        subscription.tier_id = tier.id
        subscription.tier = tier
        subscription.selected_modules = selection
        subscription.status = "ACTIVE"
        subscription.start_date = now
        await self.db.flush()

        logger.info("subscription_created", user_id=user_id, tier=tier.name)
        await self._award_tier_badge(user_id, tier)
        return subscription

    async def upgrade(self, user_id: str, tier_id: str, selected_modules: list[str]) -> UserSubscription:
        """Move an existing subscription to another tier; the start date restarts."""
        tier = await get_tier(self.db, tier_id)
        subscription = await get_subscription(self.db, user_id)
        if subscription is None:
            raise NotFoundError("No active subscription found")

        selection: list[str] = []
        if tier.name == PRO:
            selection = await _validate_selection(self.db, tier, selected_modules, require_existing=False)

        previous = subscription.tier.name
        subscription.tier_id = tier.id
        subscription.tier = tier
        subscription.selected_modules = selection
        subscription.start_date = utcnow()
        await self.db.flush()

        logger.info("subscription_upgraded", user_id=user_id, previous=previous, tier=tier.name)
        await self._award_tier_badge(user_id, tier)
        return subscription

    async def update_selected_modules(self, user_id: str, selected_modules: list[str]) -> UserSubscription:
        """Replace the PRO bundle."""
        subscription = await get_subscription(self.db, user_id)
        if subscription is None:
            raise NotFoundError("No active subscription found")
        tier = subscription.tier
        if tier.name != PRO:
            raise ForbiddenError("Only the Pro tier has a module selection")
        if tier.module_limit is not None and len(set(selected_modules)) > tier.module_limit:
            raise InvalidModuleSelection(f"{tier.display_name} tier allows at most {tier.module_limit} modules")

        subscription.selected_modules = list(dict.fromkeys(selected_modules))
        await self.db.flush()
        return subscription

    async def _award_tier_badge(self, user_id: str, tier: SubscriptionTier) -> None:
        kind = TIER_ACHIEVEMENTS.get(tier.name)
        if kind is not None:
            await award_achievement(self.db, user_id, kind, redis=self.redis)
