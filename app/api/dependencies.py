# ============================================================================
# FILE: app/api/dependencies.py
# Request-scoped dependencies shared by the v1 routers
# ============================================================================
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import Header

from app.utils.time_utils import utcnow


def get_business_scope(
        x_business_id: UUID = Header(..., description="Business the dashboard caller acts for")
) -> UUID:
    """
    Business the dashboard request is scoped to.

    Authentication lives in front of this service; the gateway forwards the
    authenticated business as X-Business-ID.
    """
    return x_business_id


def get_clock() -> Optional[datetime]:
    """Current instant; overridden in tests to pin the clock"""
    return utcnow()
