"""Proposal routes: submit, view, accept, reject."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.app.routes.auth import get_current_user_dep, require_role
from findermeister.domain.models import User
from findermeister.domain.schemas import (
    AcceptProposalResponse,
    ContractResponse,
    ProposalCreate,
    ProposalResponse,
)
from findermeister.infra.database import get_db
from findermeister.services.contract_lifecycle import ContractLifecycleService
from findermeister.services.email_service import EmailService, get_email_service
from findermeister.services.errors import MarketplaceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/proposals", tags=["proposals"])


@router.post("", response_model=ProposalResponse, status_code=201)
async def submit_proposal(
    data: ProposalCreate,
    user: User = Depends(require_role("finder")),
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
):
    service = ContractLifecycleService(db, email=email)
    try:
        proposal = await service.submit_proposal(
            user,
            data.find_id,
            approach=data.approach,
            price=data.price,
            timeline=data.timeline,
            notes=data.notes,
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return proposal


@router.get("/my", response_model=list[ProposalResponse])
async def my_proposals(
    user: User = Depends(require_role("finder")),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await ContractLifecycleService(db).list_finder_proposals(user)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{proposal_id}", response_model=ProposalResponse)
async def get_proposal(
    proposal_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await ContractLifecycleService(db).get_proposal(user, proposal_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{proposal_id}/accept", response_model=AcceptProposalResponse)
async def accept_proposal(
    proposal_id: str,
    user: User = Depends(require_role("client")),
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
):
    service = ContractLifecycleService(db, email=email)
    try:
        proposal, contract = await service.accept_proposal(user, proposal_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return AcceptProposalResponse(
        proposal=ProposalResponse.model_validate(proposal),
        contract=ContractResponse.model_validate(contract),
    )


@router.post("/{proposal_id}/reject", response_model=ProposalResponse)
async def reject_proposal(
    proposal_id: str,
    user: User = Depends(require_role("client")),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await ContractLifecycleService(db).reject_proposal(user, proposal_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
