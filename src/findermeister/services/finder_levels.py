"""Finder level tiers: admin catalog and level calculation."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.domain.models import Finder, FinderLevel
from findermeister.services.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def qualifies(finder: Finder, level: FinderLevel) -> bool:
    """Whether a finder meets every threshold of a level.

    Ratings are 0-5 stars; ``min_review_percentage`` is on a 0-100 scale.
    """
    review_percentage = float(finder.average_rating or 0) * 20
    return (
        float(finder.total_earned or 0) >= float(level.min_earned or 0)
        and (finder.jobs_completed or 0) >= (level.min_jobs or 0)
        and review_percentage >= (level.min_review_percentage or 0)
    )


class FinderLevelService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_levels(self, active_only: bool = False) -> list[FinderLevel]:
        query = select(FinderLevel).order_by(FinderLevel.order)
        if active_only:
            query = query.where(FinderLevel.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_level(self, level_id: str) -> FinderLevel:
        result = await self.db.execute(select(FinderLevel).where(FinderLevel.id == level_id))
        level = result.scalar_one_or_none()
        if not level:
            raise NotFoundError("Finder level not found")
        return level

    async def create_level(self, **fields) -> FinderLevel:
        existing = await self.db.execute(
            select(FinderLevel).where(FinderLevel.name == fields.get("name"))
        )
        if existing.scalar_one_or_none():
            raise ConflictError("A finder level with this name already exists")
        level = FinderLevel(**fields)
        self.db.add(level)
        await self.db.commit()
        await self.db.refresh(level)
        return level

    async def update_level(self, level_id: str, **fields) -> FinderLevel:
        level = await self.get_level(level_id)
        for key, value in fields.items():
            setattr(level, key, value)
        await self.db.commit()
        await self.db.refresh(level)
        return level

    async def delete_level(self, level_id: str) -> None:
        level = await self.get_level(level_id)
        finders = await self.db.execute(
            select(Finder).where(Finder.current_level_id == level.id)
        )
        for finder in finders.scalars().all():
            finder.current_level_id = None
        await self.db.delete(level)
        await self.db.commit()

    async def calculate_finder_level(self, finder: Finder) -> FinderLevel | None:
        """Return the highest active level the finder qualifies for."""
        levels = await self.list_levels(active_only=True)
        best = None
        for level in levels:
            if qualifies(finder, level):
                best = level
        return best

    async def refresh_finder_level(self, finder: Finder) -> FinderLevel | None:
        """Store the finder's current level. Caller commits."""
        level = await self.calculate_finder_level(finder)
        new_id = level.id if level else None
        if finder.current_level_id != new_id:
            logger.info(
                "Finder %s level changed: %s -> %s",
                finder.id, finder.current_level_id, new_id,
            )
            finder.current_level_id = new_id
        return level
