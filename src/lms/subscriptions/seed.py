"""Subscription tier reference data."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.models import SubscriptionTier

logger = logging.getLogger(__name__)

TIER_SEED_DATA: list[dict] = [
    {
        "name": "BASIC",
        "display_name": "Basic",
        "price": 0,
        "module_limit": 1,
        "features": [
            "1 Module Access",
            "Basic Community Support",
            "Certificate on Completion",
            "Access to Core Content",
        ],
    },
    {
        "name": "PRO",
        "display_name": "Pro",
        "price": 99000,
        "module_limit": 3,
        "features": [
            "3 Modules Bundle",
            "Priority Support",
            "All Certificates",
            "Downloadable Resources",
            "Code Examples & Templates",
        ],
    },
    {
        "name": "PREMIUM",
        "display_name": "Premium",
        "price": 199000,
        "module_limit": None,
        "features": [
            "All Modules Access",
            "24/7 Premium Support",
            "All Certificates",
            "Exclusive Content",
            "Career Guidance",
            "Private Community Access",
        ],
    },
]


async def seed_tiers(db: AsyncSession) -> int:
    """Insert missing tiers. Existing rows are left as they are. Returns the number inserted."""
    existing = set((await db.execute(select(SubscriptionTier.name))).scalars().all())
    inserted = 0
    for data in TIER_SEED_DATA:
        if data["name"] in existing:
            continue
        db.add(SubscriptionTier(**data))
        inserted += 1
    await db.commit()
    if inserted:
        logger.info("Seeded %d subscription tiers", inserted)
    return inserted
