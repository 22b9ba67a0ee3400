"""Messaging routes: proposal-anchored conversations between client and finder."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.app.routes.auth import get_current_user_dep, require_role
from findermeister.domain.models import User
from findermeister.domain.schemas import (
    ConversationCreate,
    ConversationResponse,
    ConversationSummary,
    MessageCreate,
    MessageResponse,
    UserResponse,
)
from findermeister.infra.database import get_db
from findermeister.services.errors import MarketplaceError
from findermeister.services.messaging import MessagingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.post("/conversations", response_model=ConversationResponse, status_code=201)
async def start_conversation(
    data: ConversationCreate,
    response: Response,
    user: User = Depends(require_role("client")),
    db: AsyncSession = Depends(get_db),
):
    try:
        conversation, created = await MessagingService(db).start_conversation(
            user, data.proposal_id
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not created:
        response.status_code = 200
    return conversation


@router.get("/conversations", response_model=list[ConversationSummary])
async def list_conversations(
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    summaries = await MessagingService(db).list_conversations(user)
    return [
        ConversationSummary(
            conversation=ConversationResponse.model_validate(s["conversation"]),
            other_party=(
                UserResponse.model_validate(s["other_party"]) if s["other_party"] else None
            ),
            last_message=(
                MessageResponse.model_validate(s["last_message"]) if s["last_message"] else None
            ),
            unread_count=s["unread_count"],
        )
        for s in summaries
    ]


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageResponse])
async def get_messages(
    conversation_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await MessagingService(db).get_messages(user, conversation_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=201,
)
async def send_message(
    conversation_id: str,
    data: MessageCreate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await MessagingService(db).send_message(
            user, conversation_id, data.content, data.attachment_paths
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
