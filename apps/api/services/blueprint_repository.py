"""Blueprint persistence queries."""

from __future__ import annotations

from typing import List, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from models.blueprint import Blueprint


class BlueprintRepository(Protocol):
    async def find_by_owner_and_name(self, user_id: str, name: str) -> Optional[Blueprint]: ...

    async def find_all_with_owner(self) -> List[Blueprint]: ...

    async def insert(self, blueprint: Blueprint) -> Blueprint: ...

    async def update(self, blueprint: Blueprint) -> Blueprint: ...


class SqlBlueprintRepository:
    def __init__(self, db: AsyncSession):
        self._db = db

    async def find_by_owner_and_name(self, user_id: str, name: str) -> Optional[Blueprint]:
        result = await self._db.execute(
            select(Blueprint)
            .where(Blueprint.user_id == user_id, Blueprint.name == name)
            .order_by(Blueprint.created_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_all_with_owner(self) -> List[Blueprint]:
        result = await self._db.execute(select(Blueprint).options(selectinload(Blueprint.user)))
        return list(result.scalars().all())

    async def insert(self, blueprint: Blueprint) -> Blueprint:
        self._db.add(blueprint)
        await self._db.commit()
        await self._db.refresh(blueprint)
        return blueprint

    async def update(self, blueprint: Blueprint) -> Blueprint:
        await self._db.commit()
        await self._db.refresh(blueprint)
        return blueprint
