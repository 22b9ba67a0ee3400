"""Find request routes for clients, finders and public browsing."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.app.routes.auth import get_current_user_dep, require_role
from findermeister.domain.models import User
from findermeister.domain.schemas import (
    ContractResponse,
    FindCreate,
    FindResponse,
    ProposalResponse,
)
from findermeister.infra.database import get_db
from findermeister.services.contract_lifecycle import ContractLifecycleService
from findermeister.services.errors import MarketplaceError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["finds"])


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


@router.post("/api/client/finds", response_model=FindResponse, status_code=201)
async def create_find(
    data: FindCreate,
    user: User = Depends(require_role("client")),
    db: AsyncSession = Depends(get_db),
):
    try:
        find = await ContractLifecycleService(db).create_find(user, **data.model_dump())
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return find


@router.get("/api/client/finds", response_model=list[FindResponse])
async def list_client_finds(
    user: User = Depends(require_role("client")),
    db: AsyncSession = Depends(get_db),
):
    return await ContractLifecycleService(db).list_client_finds(user)


@router.get("/api/client/proposals", response_model=list[ProposalResponse])
async def list_client_proposals(
    user: User = Depends(require_role("client")),
    db: AsyncSession = Depends(get_db),
):
    return await ContractLifecycleService(db).list_client_proposals(user)


@router.get("/api/client/contracts", response_model=list[ContractResponse])
async def list_client_contracts(
    user: User = Depends(require_role("client")),
    db: AsyncSession = Depends(get_db),
):
    return await ContractLifecycleService(db).list_contracts_for(user)


# ---------------------------------------------------------------------------
# Finder
# ---------------------------------------------------------------------------


@router.get("/api/finder/proposals", response_model=list[ProposalResponse])
async def list_finder_proposals(
    user: User = Depends(require_role("finder")),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await ContractLifecycleService(db).list_finder_proposals(user)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/api/finder/contracts", response_model=list[ContractResponse])
async def list_finder_contracts(
    user: User = Depends(require_role("finder")),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await ContractLifecycleService(db).list_contracts_for(user)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ---------------------------------------------------------------------------
# Browsing
# ---------------------------------------------------------------------------


@router.get("/api/finds", response_model=list[FindResponse])
async def list_open_finds(
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return await ContractLifecycleService(db).list_open_finds()


@router.get("/api/finds/{find_id}", response_model=FindResponse)
async def get_find(
    find_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await ContractLifecycleService(db).get_find(find_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/api/finds/{find_id}/proposals", response_model=list[ProposalResponse])
async def list_find_proposals(
    find_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await ContractLifecycleService(db).list_find_proposals(user, find_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
