"""Subscription endpoints. Tier listing is public."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from lms.auth.dependencies import get_current_user
from lms.database import get_session
from lms.db.models import User
from lms.redis_client import get_redis_optional
from lms.schemas import CamelModel
from lms.subscriptions.service import (
    SubscriptionService,
    get_or_create_subscription,
    list_tiers,
    serialize_subscription,
    serialize_tier,
)

router = APIRouter(prefix="/api/v1/subscriptions", tags=["Subscriptions"])


class TierChangeRequest(CamelModel):
    tier_id: str = Field(..., min_length=1)
    selected_modules: list[str] = Field(default_factory=list)


class ModuleSelectionRequest(CamelModel):
    selected_modules: list[str]


@router.get("/tiers")
async def get_tiers(db: AsyncSession = Depends(get_session)) -> dict:
    return {"tiers": [serialize_tier(t) for t in await list_tiers(db)]}


@router.get("/current")
async def get_current(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Current subscription; users without one are put on BASIC."""
    subscription = await get_or_create_subscription(db, user.id)
    await db.commit()
    return {"subscription": serialize_subscription(subscription)}


@router.post("/subscribe")
async def subscribe(
    body: TierChangeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    svc = SubscriptionService(db, redis=get_redis_optional())
    subscription = await svc.subscribe(user.id, body.tier_id, body.selected_modules)
    await db.commit()
    return {"message": "Subscription created successfully", "subscription": serialize_subscription(subscription)}


@router.put("/upgrade")
async def upgrade(
    body: TierChangeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    svc = SubscriptionService(db, redis=get_redis_optional())
    subscription = await svc.upgrade(user.id, body.tier_id, body.selected_modules)
    await db.commit()
    return {
        "message": f"Successfully upgraded to {subscription.tier.display_name}",
        "subscription": serialize_subscription(subscription),
    }


@router.put("/modules")
async def update_modules(
    body: ModuleSelectionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    svc = SubscriptionService(db)
    subscription = await svc.update_selected_modules(user.id, body.selected_modules)
    await db.commit()
    return {"message": "Module selection updated", "subscription": serialize_subscription(subscription)}
