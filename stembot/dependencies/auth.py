"""
Caller identity dependencies for FastAPI routes.

The frontend forwards the signed-in user in the X-User-Id header and the
user's plan in X-Subscription-Tier.  Both are optional: anonymous uploads are
analysed on the default tier and counted against a shared anonymous quota.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Header, HTTPException, status

from stembot.config import settings
from stembot.services.storage_validator import FILE_SIZE_LIMITS_MB

logger = logging.getLogger(__name__)


async def get_optional_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> Optional[str]:
    """Extract user ID if present, return None for anonymous uploads."""
    return x_user_id or None


async def get_subscription_tier(
    x_subscription_tier: Optional[str] = Header(None, alias="X-Subscription-Tier"),
) -> str:
    """Plan name used for size and quota limits. Raises 400 if unknown."""
    tier = (x_subscription_tier or settings.DEFAULT_SUBSCRIPTION_TIER).strip().lower()
    if tier not in FILE_SIZE_LIMITS_MB:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown subscription tier '{tier}'.",
        )
    return tier
