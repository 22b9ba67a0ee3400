"""Contract, order submission and review routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.app.routes.auth import get_current_user_dep, require_role
from findermeister.domain.enums import SubmissionStatus
from findermeister.domain.models import User
from findermeister.domain.schemas import (
    ContractDetailResponse,
    ContractResponse,
    FindResponse,
    ReviewCreate,
    ReviewResponse,
    SubmissionCreate,
    SubmissionResponse,
    SubmissionReview,
)
from findermeister.infra.database import get_db
from findermeister.services.contract_lifecycle import ContractLifecycleService
from findermeister.services.email_service import EmailService, get_email_service
from findermeister.services.errors import MarketplaceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/contracts", tags=["contracts"])
orders_router = APIRouter(prefix="/api/orders", tags=["orders"])
reviews_router = APIRouter(tags=["reviews"])


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@router.get("/my", response_model=list[ContractResponse])
async def my_contracts(
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await ContractLifecycleService(db).list_contracts_for(user)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{contract_id}/complete", response_model=ContractResponse)
async def complete_contract(
    contract_id: str,
    user: User = Depends(require_role("finder")),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await ContractLifecycleService(db).complete_contract(user, contract_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{contract_id}/release-payment", response_model=ContractResponse)
async def release_payment(
    contract_id: str,
    user: User = Depends(require_role("client")),
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
):
    try:
        return await ContractLifecycleService(db, email=email).release_payment(user, contract_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ---------------------------------------------------------------------------
# Order submissions
# ---------------------------------------------------------------------------


@orders_router.post("/submit", response_model=SubmissionResponse, status_code=201)
async def submit_order(
    data: SubmissionCreate,
    user: User = Depends(require_role("finder")),
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
):
    service = ContractLifecycleService(db, email=email)
    try:
        return await service.submit_work(
            user, data.contract_id, data.submission_text, data.attachment_paths
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@orders_router.get("/contract/{contract_id}", response_model=ContractDetailResponse)
async def get_contract_order(
    contract_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    service = ContractLifecycleService(db)
    try:
        contract, find, submission = await service.get_contract_with_submission(user, contract_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return ContractDetailResponse(
        contract=ContractResponse.model_validate(contract),
        find=FindResponse.model_validate(find),
        submission=SubmissionResponse.model_validate(submission) if submission else None,
    )


@orders_router.put("/submission/{submission_id}", response_model=SubmissionResponse)
async def review_submission(
    submission_id: str,
    data: SubmissionReview,
    user: User = Depends(require_role("client")),
    db: AsyncSession = Depends(get_db),
    email: EmailService = Depends(get_email_service),
):
    service = ContractLifecycleService(db, email=email)
    try:
        return await service.review_submission(
            user, submission_id, SubmissionStatus(data.status), data.client_feedback
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


@reviews_router.post("/api/reviews", response_model=ReviewResponse, status_code=201)
async def create_review(
    data: ReviewCreate,
    user: User = Depends(require_role("client")),
    db: AsyncSession = Depends(get_db),
):
    service = ContractLifecycleService(db)
    try:
        return await service.create_review(user, data.contract_id, data.rating, data.comment)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@reviews_router.get("/api/finders/{finder_id}/reviews", response_model=list[ReviewResponse])
async def list_finder_reviews(
    finder_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await ContractLifecycleService(db).list_finder_reviews(finder_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
