from typing import Annotated, Optional
import uuid

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from erp_core.database import get_db


async def get_actor(
    x_user_id: Annotated[Optional[uuid.UUID], Header(description="Acting user, recorded on audit columns")] = None,
) -> Optional[uuid.UUID]:
    """
    Acting user for audit columns.

    Authentication is handled in front of this service; the caller passes
    the user id in the X-User-Id header.
    """
    return x_user_id


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
Actor = Annotated[Optional[uuid.UUID], Depends(get_actor)]
