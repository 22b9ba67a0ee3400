"""Authentication routes: register, login, me, password and profile updates."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.domain.models import User
from findermeister.domain.schemas import (
    ChangePasswordRequest,
    FinderResponse,
    MeResponse,
    TokenResponse,
    UserCreate,
    UserLogin,
    UserResponse,
    UserUpdate,
)
from findermeister.infra.database import get_db
from findermeister.services.auth_service import (
    create_access_token,
    create_user,
    decode_token,
    get_finder_by_user_id,
    get_user_by_email,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


async def get_authenticated_user_dep(
    request: Request, db: AsyncSession = Depends(get_db)
) -> User:
    """Dependency: extract current user from Bearer token, banned or not.

    Only for what a banned user still needs: reading their own strikes and
    restrictions, and appealing the strike that banned them.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
        )
    token = auth_header.removeprefix("Bearer ")
    payload = decode_token(token)
    if not payload or "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    result = await db.execute(select(User).where(User.id == payload["sub"]))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or banned",
        )
    return user


async def get_current_user_dep(user: User = Depends(get_authenticated_user_dep)) -> User:
    """Dependency: the authenticated user, refusing banned accounts."""
    if user.is_banned:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or banned",
        )
    return user


def require_role(*roles: str):
    """Factory: dependency that checks user has one of the required roles."""

    async def checker(user: User = Depends(get_current_user_dep)):
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return checker


async def _me_payload(db: AsyncSession, user: User) -> MeResponse:
    profile = None
    if user.role == "finder":
        finder = await get_finder_by_user_id(db, user.id)
        if finder:
            profile = FinderResponse.model_validate(finder)
    return MeResponse(user=UserResponse.model_validate(user), profile=profile)


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(data: UserCreate, db: AsyncSession = Depends(get_db)):
    existing = await get_user_by_email(db, data.email)
    if existing:
        raise HTTPException(status_code=400, detail="User already exists with this email")
    user = await create_user(
        db,
        data.email,
        data.password,
        data.first_name,
        data.last_name,
        data.role,
        data.phone,
    )
    logger.info("Registered %s user %s", user.role, user.id)
    token = create_access_token(user.id, user.email, user.role)
    return TokenResponse(token=token, user=UserResponse.model_validate(user))


@router.post("/login", response_model=TokenResponse)
async def login(data: UserLogin, db: AsyncSession = Depends(get_db)):
    user = await get_user_by_email(db, data.email)
    if not user or not verify_password(data.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if user.is_banned:
        logger.info("Login refused for banned user %s", user.id)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = create_access_token(user.id, user.email, user.role)
    return TokenResponse(token=token, user=UserResponse.model_validate(user))


@router.get("/me", response_model=MeResponse)
async def me(user: User = Depends(get_current_user_dep), db: AsyncSession = Depends(get_db)):
    return await _me_payload(db, user)


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    if not verify_password(data.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.password_hash = hash_password(data.new_password)
    await db.commit()
    return {"message": "Password updated successfully"}


@router.post("/update-profile", response_model=MeResponse)
async def update_profile(
    data: UserUpdate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    if data.email is not None and data.email.lower() != user.email:
        existing = await get_user_by_email(db, data.email)
        if existing and existing.id != user.id:
            raise HTTPException(status_code=400, detail="Email already in use")
        user.email = data.email.lower()
    if data.first_name is not None:
        user.first_name = data.first_name
    if data.last_name is not None:
        user.last_name = data.last_name
    if data.phone is not None:
        user.phone = data.phone
    await db.commit()
    await db.refresh(user)
    return await _me_payload(db, user)
