"""Client/finder conversations anchored on proposals."""

import logging

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.domain.enums import UserRole
from findermeister.domain.models import (
    Conversation,
    Find,
    Finder,
    Message,
    Proposal,
    User,
    utcnow,
)
from findermeister.services.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from findermeister.services.strike_service import StrikeService

logger = logging.getLogger(__name__)


class MessagingService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.strikes = StrikeService(db)

    async def _finder_id_for(self, user: User) -> str | None:
        if user.role != UserRole.FINDER.value:
            return None
        result = await self.db.execute(select(Finder.id).where(Finder.user_id == user.id))
        return result.scalar_one_or_none()

    async def _ensure_can_message(self, user: User) -> None:
        summary = await self.strikes.get_user_restrictions(user.id)
        if not summary.can_message:
            raise PermissionDeniedError("Your account is currently restricted from messaging")

    async def _get_conversation_for(self, user: User, conversation_id: str) -> Conversation:
        result = await self.db.execute(
            select(Conversation).where(Conversation.id == conversation_id)
        )
        conversation = result.scalar_one_or_none()
        if not conversation:
            raise NotFoundError("Conversation not found")
        finder_id = await self._finder_id_for(user)
        if conversation.client_id != user.id and conversation.finder_id != finder_id:
            raise PermissionDeniedError()
        return conversation

    async def start_conversation(self, client: User, proposal_id: str) -> tuple[Conversation, bool]:
        """Open (or return the existing) thread for a proposal. Returns (conversation, created)."""
        if client.role != UserRole.CLIENT.value:
            raise PermissionDeniedError("Only clients can start conversations")
        await self._ensure_can_message(client)

        result = await self.db.execute(select(Proposal).where(Proposal.id == proposal_id))
        proposal = result.scalar_one_or_none()
        if not proposal:
            raise NotFoundError("Proposal not found")
        find = (await self.db.execute(select(Find).where(Find.id == proposal.find_id))).scalar_one()
        if find.client_id != client.id:
            raise PermissionDeniedError()

        existing = await self.db.execute(
            select(Conversation).where(Conversation.proposal_id == proposal.id)
        )
        conversation = existing.scalar_one_or_none()
        if conversation:
            return conversation, False

        conversation = Conversation(
            client_id=client.id,
            finder_id=proposal.finder_id,
            proposal_id=proposal.id,
        )
        self.db.add(conversation)
        await self.db.commit()
        await self.db.refresh(conversation)
        logger.info("Conversation %s opened on proposal %s", conversation.id, proposal.id)
        return conversation, True

    async def list_conversations(self, user: User) -> list[dict]:
        finder_id = await self._finder_id_for(user)
        result = await self.db.execute(
            select(Conversation)
            .where(or_(Conversation.client_id == user.id, Conversation.finder_id == finder_id))
            .order_by(Conversation.last_message_at.desc())
        )
        summaries = []
        for conversation in result.scalars().all():
            if conversation.client_id == user.id:
                other = await self.db.execute(
                    select(User)
                    .join(Finder, Finder.user_id == User.id)
                    .where(Finder.id == conversation.finder_id)
                )
            else:
                other = await self.db.execute(select(User).where(User.id == conversation.client_id))
            last = await self.db.execute(
                select(Message)
                .where(Message.conversation_id == conversation.id)
                .order_by(Message.created_at.desc())
                .limit(1)
            )
            unread = await self.db.execute(
                select(func.count(Message.id)).where(
                    Message.conversation_id == conversation.id,
                    Message.sender_id != user.id,
                    Message.is_read.is_(False),
                )
            )
            summaries.append(
                {
                    "conversation": conversation,
                    "other_party": other.scalar_one_or_none(),
                    "last_message": last.scalar_one_or_none(),
                    "unread_count": unread.scalar_one(),
                }
            )
        return summaries

    async def get_messages(self, user: User, conversation_id: str) -> list[Message]:
        """Return the thread oldest first and mark the other side's messages read."""
        conversation = await self._get_conversation_for(user, conversation_id)
        await self.db.execute(
            update(Message)
            .where(
                Message.conversation_id == conversation.id,
                Message.sender_id != user.id,
                Message.is_read.is_(False),
            )
            .values(is_read=True)
        )
        await self.db.commit()
        result = await self.db.execute(
            select(Message)
            .where(Message.conversation_id == conversation.id)
            .order_by(Message.created_at)
        )
        return list(result.scalars().all())

    async def send_message(
        self,
        user: User,
        conversation_id: str,
        content: str | None,
        attachment_paths: list[str] | None = None,
    ) -> Message:
        attachment_paths = attachment_paths or []
        if not (content and content.strip()) and not attachment_paths:
            raise ValidationFailedError("Message content or attachments are required")
        conversation = await self._get_conversation_for(user, conversation_id)
        await self._ensure_can_message(user)

        now = utcnow()
        message = Message(
            conversation_id=conversation.id,
            sender_id=user.id,
            content=content.strip() if content else None,
            attachment_paths=attachment_paths,
            created_at=now,
        )
        self.db.add(message)
        conversation.last_message_at = now
        await self.db.commit()
        await self.db.refresh(message)
        return message
