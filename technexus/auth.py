import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import models, schemas
from .config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, ADMIN_PHONES
from .database import get_db
from .errors import AuthenticationError, AuthorizationError, ValidationError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

PHONE_PATTERN = re.compile(r"^\+\d{6,15}$")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int, phone: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(user_id), "phone": phone, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> int:
    """Return the user id carried by ``token`` or raise AuthenticationError."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return int(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise AuthenticationError("Invalid token")


def normalize_phone(phone: Optional[str], country_code: Optional[str] = None, phone_number: Optional[str] = None) -> str:
    """Build the canonical ``+<digits>`` form from either input style.

    ``country_code`` + ``phone_number`` wins over ``phone`` when both parts
    are present. Spaces and dashes are dropped before validation.
    """
    final_phone = phone
    if country_code and phone_number:
        final_phone = f"{country_code}{re.sub(r'[^0-9]', '', phone_number)}"
    if not final_phone:
        raise ValidationError("Phone number is required")
    normalized = re.sub(r"[\s-]+", "", final_phone)
    if not PHONE_PATTERN.match(normalized):
        raise ValidationError("Invalid phone number format. Please include country code (e.g., +255123456789)")
    return normalized


def is_admin_phone(phone: str) -> bool:
    return re.sub(r"\D", "", phone) in ADMIN_PHONES


async def resolve_role(db: AsyncSession, user_id: int) -> models.Role:
    result = await db.execute(
        select(models.UserRole.id).where(
            models.UserRole.user_id == user_id, models.UserRole.role == models.Role.ADMIN.value
        )
    )
    return models.Role.ADMIN if result.first() else models.Role.CUSTOMER


async def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: AsyncSession = Depends(get_db)) -> schemas.CurrentUser:
    if not token:
        raise AuthenticationError("Access token required")
    user_id = decode_access_token(token)
    result = await db.execute(select(models.User).where(models.User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise AuthenticationError("Invalid token")
    role = await resolve_role(db, user.id)
    return schemas.CurrentUser(user_id=user.id, phone=user.phone, role=role)


async def require_admin(current_user: schemas.CurrentUser = Depends(get_current_user)) -> schemas.CurrentUser:
    if not current_user.is_admin:
        raise AuthorizationError("Admin access required")
    return current_user
