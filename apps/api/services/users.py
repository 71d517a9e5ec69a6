"""User lookup for submitter identity checks."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.user import User

logger = logging.getLogger(__name__)


class UserResolver(Protocol):
    async def try_resolve(self, steam_id: int) -> Optional[User]: ...


class SqlUserResolver:
    """Resolve Steam identities against the users table."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def try_resolve(self, steam_id: int) -> Optional[User]:
        result = await self._db.execute(select(User).where(User.steam_id == steam_id))
        return result.scalar_one_or_none()


async def upsert_user(db: AsyncSession, steam_id: int, steam_name: str) -> User:
    """Create the user on first sight, otherwise refresh their display name. Never touches the ban flag."""
    result = await db.execute(select(User).where(User.steam_id == steam_id))
    user = result.scalar_one_or_none()
    name = (steam_name or "").strip()
    if user is None:
        user = User(steam_id=steam_id, steam_name=name, banned=False)
        db.add(user)
        logger.info("Registered user for steam id %s", steam_id)
    elif name and user.steam_name != name:
        user.steam_name = name
    await db.commit()
    await db.refresh(user)
    return user
