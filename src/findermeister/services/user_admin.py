"""Admin moderation of user accounts and the category catalog."""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.domain.enums import RestrictionType
from findermeister.domain.models import Category, Finder, User, UserRestriction, utcnow
from findermeister.services.errors import ConflictError, NotFoundError, ValidationFailedError

logger = logging.getLogger(__name__)


class UserAdminService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: str) -> User:
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError("User not found")
        return user

    async def list_users(self, role: str | None = None) -> list[User]:
        query = select(User).order_by(User.created_at.desc())
        if role:
            query = query.where(User.role == role)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_finder_profile(self, user_id: str) -> tuple[User, Finder]:
        user = await self.get_user(user_id)
        result = await self.db.execute(select(Finder).where(Finder.user_id == user.id))
        finder = result.scalar_one_or_none()
        if not finder:
            raise NotFoundError("Finder profile not found")
        return user, finder

    async def ban_user(self, user_id: str, reason: str | None, admin_id: str) -> User:
        """Ban an account. The ban is backed by a permanent ``banned`` restriction."""
        if not reason or not reason.strip():
            raise ValidationFailedError("Ban reason is required")
        user = await self.get_user(user_id)
        now = utcnow()
        user.is_banned = True
        user.banned_reason = reason.strip()
        user.banned_at = now
        self.db.add(
            UserRestriction(
                user_id=user.id,
                restriction_type=RestrictionType.BANNED.value,
                reason=f"Admin ban: {user.banned_reason}",
                start_date=now,
                end_date=None,
                is_active=True,
                created_by=admin_id,
            )
        )
        await self.db.commit()
        await self.db.refresh(user)
        logger.warning("User %s banned: %s", user.id, user.banned_reason)
        return user

    async def unban_user(self, user_id: str) -> User:
        """Lift every active ban on the account, strike-issued or not."""
        user = await self.get_user(user_id)
        await self.db.execute(
            update(UserRestriction)
            .where(
                UserRestriction.user_id == user.id,
                UserRestriction.restriction_type == RestrictionType.BANNED.value,
                UserRestriction.is_active.is_(True),
            )
            .values(is_active=False)
        )
        user.is_banned = False
        user.banned_reason = None
        user.banned_at = None
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("User %s unbanned", user.id)
        return user

    async def set_verified(self, user_id: str, verified: bool) -> User:
        user = await self.get_user(user_id)
        user.is_verified = verified
        await self.db.commit()
        await self.db.refresh(user)
        return user


class CategoryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_categories(self, active_only: bool = False) -> list[Category]:
        query = select(Category).order_by(Category.name)
        if active_only:
            query = query.where(Category.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _get(self, category_id: str) -> Category:
        result = await self.db.execute(select(Category).where(Category.id == category_id))
        category = result.scalar_one_or_none()
        if not category:
            raise NotFoundError("Category not found")
        return category

    async def _ensure_unique_name(self, name: str, exclude_id: str | None = None) -> None:
        query = select(Category.id).where(Category.name == name)
        if exclude_id:
            query = query.where(Category.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise ConflictError("A category with this name already exists")

    async def create_category(self, name: str, description: str | None = None) -> Category:
        await self._ensure_unique_name(name)
        category = Category(name=name, description=description, is_active=True)
        self.db.add(category)
        await self.db.commit()
        await self.db.refresh(category)
        return category

    async def update_category(self, category_id: str, **fields) -> Category:
        category = await self._get(category_id)
        if fields.get("name"):
            await self._ensure_unique_name(fields["name"], exclude_id=category.id)
        for key, value in fields.items():
            setattr(category, key, value)
        await self.db.commit()
        await self.db.refresh(category)
        return category

    async def delete_category(self, category_id: str) -> None:
        category = await self._get(category_id)
        await self.db.delete(category)
        await self.db.commit()
