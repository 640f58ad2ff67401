"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import UnauthorizedException
from app.core.redis_client import CacheManager, get_redis_client
from app.database import get_db


def get_cache_manager() -> CacheManager:
    """Get a cache manager bound to the shared Redis client."""
    return CacheManager(get_redis_client())


async def require_admin(
    x_admin_secret: Annotated[str | None, Header(description="Admin secret key")] = None,
) -> None:
    """
    Guard back-office endpoints with the shared admin secret.

    Raises:
        UnauthorizedException: If the X-Admin-Secret header is missing or wrong
    """
    if x_admin_secret != settings.admin_secret:
        raise UnauthorizedException("Invalid admin secret key")


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CacheManagerDep = Annotated[CacheManager, Depends(get_cache_manager)]
AdminAccess = Depends(require_admin)
