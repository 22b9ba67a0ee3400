"""Admin API: users, categories, token economy, settings, levels, withdrawals."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.app.routes.auth import require_role
from findermeister.domain.enums import WithdrawalStatus
from findermeister.domain.models import User
from findermeister.domain.schemas import (
    BanRequest,
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    FinderLevelCreate,
    FinderLevelResponse,
    FinderLevelUpdate,
    FinderResponse,
    FindResponse,
    MeResponse,
    MonthlyDistributionResult,
    ProposalResponse,
    SettingsResponse,
    SettingsUpdate,
    TokenChargeCreate,
    TokenChargeResponse,
    TokenGrantCreate,
    TokenGrantResponse,
    TokenPackageCreate,
    TokenPackageResponse,
    TokenPackageUpdate,
    UserResponse,
    WithdrawalResponse,
    WithdrawalUpdate,
)
from findermeister.infra.database import get_db
from findermeister.services.contract_lifecycle import ContractLifecycleService
from findermeister.services.errors import MarketplaceError
from findermeister.services.finder_levels import FinderLevelService
from findermeister.services.token_ledger import TokenLedger
from findermeister.services.user_admin import CategoryService, UserAdminService
from findermeister.services.withdrawals import WithdrawalService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])
categories_router = APIRouter(prefix="/api/categories", tags=["categories"])

require_admin = require_role("admin")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    role: str | None = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await UserAdminService(db).list_users(role)


@router.get("/finder-profile/{user_id}", response_model=MeResponse)
async def get_finder_profile(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        user, finder = await UserAdminService(db).get_finder_profile(user_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MeResponse(
        user=UserResponse.model_validate(user),
        profile=FinderResponse.model_validate(finder),
    )


@router.post("/users/{user_id}/ban", response_model=UserResponse)
async def ban_user(
    user_id: str,
    data: BanRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        user = await UserAdminService(db).ban_user(user_id, data.reason, admin.id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    logger.info("Admin %s banned user %s", admin.id, user.id)
    return user


@router.post("/users/{user_id}/unban", response_model=UserResponse)
async def unban_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await UserAdminService(db).unban_user(user_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/users/{user_id}/verify", response_model=UserResponse)
async def verify_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await UserAdminService(db).set_verified(user_id, True)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/users/{user_id}/unverify", response_model=UserResponse)
async def unverify_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await UserAdminService(db).set_verified(user_id, False)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ---------------------------------------------------------------------------
# Finds / proposals oversight
# ---------------------------------------------------------------------------


@router.get("/finds", response_model=list[FindResponse])
async def list_all_finds(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await ContractLifecycleService(db).list_all_finds()


@router.get("/proposals", response_model=list[ProposalResponse])
async def list_all_proposals(
    admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)
):
    return await ContractLifecycleService(db).list_all_proposals()


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@categories_router.get("", response_model=list[CategoryResponse])
async def list_public_categories(db: AsyncSession = Depends(get_db)):
    return await CategoryService(db).list_categories(active_only=True)


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await CategoryService(db).list_categories()


@router.post("/categories", response_model=CategoryResponse, status_code=201)
async def create_category(
    data: CategoryCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await CategoryService(db).create_category(data.name, data.description)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str,
    data: CategoryUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await CategoryService(db).update_category(
            category_id, **data.model_dump(exclude_unset=True)
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        await CategoryService(db).delete_category(category_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"message": "Category deleted successfully"}


# ---------------------------------------------------------------------------
# Token economy
# ---------------------------------------------------------------------------


@router.get("/token-packages", response_model=list[TokenPackageResponse])
async def list_token_packages(
    admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)
):
    return await TokenLedger(db).list_packages()


@router.post("/token-packages", response_model=TokenPackageResponse, status_code=201)
async def create_token_package(
    data: TokenPackageCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await TokenLedger(db).create_package(**data.model_dump())


@router.put("/token-packages/{package_id}", response_model=TokenPackageResponse)
async def update_token_package(
    package_id: str,
    data: TokenPackageUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await TokenLedger(db).update_package(
            package_id, **data.model_dump(exclude_unset=True)
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/token-grants", response_model=list[TokenGrantResponse])
async def list_token_grants(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await TokenLedger(db).list_grants()


@router.post("/token-grants", response_model=TokenGrantResponse, status_code=201)
async def grant_tokens(
    data: TokenGrantCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await TokenLedger(db).grant_tokens(data.finder_id, data.amount, data.reason, admin.id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/token-charges", response_model=TokenChargeResponse, status_code=201)
async def charge_tokens(
    data: TokenChargeCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await TokenLedger(db).charge_tokens(
            data.finder_id, data.amount, data.reason, admin.id
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/distribute-monthly-tokens", response_model=MonthlyDistributionResult)
async def distribute_monthly_tokens(
    admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)
):
    result = await TokenLedger(db).distribute_monthly_tokens()
    logger.info("Admin %s ran monthly distribution: %s", admin.id, result)
    return result


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@router.get("/settings", response_model=SettingsResponse)
async def get_settings_view(
    admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)
):
    return SettingsResponse(proposal_token_cost=await TokenLedger(db).get_proposal_token_cost())


@router.put("/settings", response_model=SettingsResponse)
async def update_settings(
    data: SettingsUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    ledger = TokenLedger(db)
    if data.proposal_token_cost is not None:
        try:
            await ledger.set_proposal_token_cost(data.proposal_token_cost)
        except MarketplaceError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
    return SettingsResponse(proposal_token_cost=await ledger.get_proposal_token_cost())


# ---------------------------------------------------------------------------
# Finder levels
# ---------------------------------------------------------------------------


@router.get("/finder-levels", response_model=list[FinderLevelResponse])
async def list_finder_levels(
    admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)
):
    return await FinderLevelService(db).list_levels()


@router.post("/finder-levels", response_model=FinderLevelResponse, status_code=201)
async def create_finder_level(
    data: FinderLevelCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await FinderLevelService(db).create_level(**data.model_dump())
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/finder-levels/{level_id}", response_model=FinderLevelResponse)
async def update_finder_level(
    level_id: str,
    data: FinderLevelUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await FinderLevelService(db).update_level(
            level_id, **data.model_dump(exclude_unset=True)
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/finder-levels/{level_id}")
async def delete_finder_level(
    level_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        await FinderLevelService(db).delete_level(level_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"message": "Finder level deleted successfully"}


# ---------------------------------------------------------------------------
# Withdrawals
# ---------------------------------------------------------------------------


@router.get("/withdrawals", response_model=list[WithdrawalResponse])
async def list_withdrawals(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await WithdrawalService(db).list_all()


@router.put("/withdrawals/{withdrawal_id}", response_model=WithdrawalResponse)
async def update_withdrawal(
    withdrawal_id: str,
    data: WithdrawalUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await WithdrawalService(db).update_withdrawal(
            withdrawal_id, WithdrawalStatus(data.status), data.admin_notes, admin
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
