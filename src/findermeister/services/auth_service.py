"""Authentication service: password hashing, JWT tokens and account setup."""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.app.config import get_settings
from findermeister.domain.enums import TransactionType, UserRole
from findermeister.domain.models import Finder, User
from findermeister.services.token_ledger import TokenLedger

settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(user_id: str, email: str, role: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expiration_minutes)
    payload = {"sub": user_id, "email": email, "role": role, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_finder_by_user_id(db: AsyncSession, user_id: str) -> Finder | None:
    result = await db.execute(select(Finder).where(Finder.user_id == user_id))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str,
    phone: str | None = None,
) -> User:
    user = User(
        email=email.lower(),
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
        phone=phone,
    )
    db.add(user)
    await db.flush()

    # Finders start with a profile and a small token allowance
    if role == UserRole.FINDER.value:
        finder = Finder(user_id=user.id, token_balance=0)
        db.add(finder)
        await db.flush()
        if settings.finder_signup_tokens > 0:
            await TokenLedger(db).credit(
                finder,
                settings.finder_signup_tokens,
                TransactionType.SIGNUP_BONUS,
                "Welcome findertokens",
            )

    await db.commit()
    await db.refresh(user)
    return user
