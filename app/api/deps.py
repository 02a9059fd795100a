from typing import Annotated, AsyncGenerator, Optional
import uuid
import logging
import secrets

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.database import get_db
from app.models.creator import Creator, CreatorRole
from app.services.shop_client import ShopClient, ShopConfigurationError


logger = logging.getLogger(__name__)

# Bearer scheme for the cron key; optional so a missing header reaches our own check
cron_security = HTTPBearer(auto_error=False)


async def verify_cron_key(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(cron_security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """
    Dependency guarding the batch endpoints.

    When CRON_API_KEY is configured the request must carry
    `Authorization: Bearer <CRON_API_KEY>`. Without a configured key the
    endpoints are open.
    """
    if not settings.CRON_API_KEY:
        return
    if credentials is None or not secrets.compare_digest(
        credentials.credentials, settings.CRON_API_KEY
    ):
        logger.warning("Rejected batch request with missing or invalid cron key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing cron key",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_creator_id(
    x_creator_id: Annotated[Optional[str], Header()] = None,
) -> uuid.UUID:
    """
    Dependency to get the authenticated creator's id.

    Authentication happens upstream; the gateway forwards the creator id in
    the X-Creator-Id header.
    """
    if not x_creator_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Creator-Id header",
        )
    try:
        return uuid.UUID(x_creator_id)
    except ValueError:
        logger.warning(f"Invalid creator id in header: {x_creator_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-Creator-Id header",
        )


async def require_admin(
    creator_id: Annotated[uuid.UUID, Depends(get_current_creator_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Creator:
    """Dependency allowing only admin profiles through."""
    result = await db.execute(select(Creator).where(Creator.id == creator_id))
    creator = result.scalar_one_or_none()
    if creator is None or creator.role != CreatorRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return creator


async def get_shop_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> AsyncGenerator[ShopClient, None]:
    """Dependency yielding a shop client; 503 when credentials are missing."""
    try:
        client = ShopClient(settings)
    except ShopConfigurationError as e:
        logger.error(str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )
    async with client:
        yield client


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]
CurrentCreatorId = Annotated[uuid.UUID, Depends(get_current_creator_id)]
AdminCreator = Annotated[Creator, Depends(require_admin)]
Shop = Annotated[ShopClient, Depends(get_shop_client)]
CronAuthorized = Depends(verify_cron_key)
