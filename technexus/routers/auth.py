import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .. import auth, models, schemas
from ..database import get_db
from ..errors import AuthenticationError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/signup", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(payload: schemas.SignupRequest, db: AsyncSession = Depends(get_db)):
    if not payload.password:
        raise ValidationError("Password is required")
    if len(payload.password) < 6:
        raise ValidationError("Password must be at least 6 characters long")
    if payload.confirm_password and payload.password != payload.confirm_password:
        raise ValidationError("Passwords do not match")

    phone = auth.normalize_phone(payload.phone, payload.country_code, payload.phone_number)

    result = await db.execute(select(models.User).where(models.User.phone == phone))
    if result.scalar_one_or_none():
        raise ConflictError("User already exists")

    role = models.Role.ADMIN if auth.is_admin_phone(phone) else models.Role.CUSTOMER
    new_user = models.User(phone=phone, password_hash=auth.get_password_hash(payload.password))
    new_user.profile = models.Profile(full_name=payload.full_name, phone=phone)
    new_user.roles = [models.UserRole(role=role.value)]
    db.add(new_user)
    await db.commit()

    logger.info("user %s signed up as %s", new_user.id, role.value)
    token = auth.create_access_token(new_user.id, phone)
    return {"message": "User created successfully", "token": token, "user": new_user}


@router.post("/login", response_model=schemas.AuthResponse)
async def login(payload: schemas.LoginRequest, db: AsyncSession = Depends(get_db)):
    if not payload.password:
        raise ValidationError("Password is required")
    phone = auth.normalize_phone(payload.phone, payload.country_code, payload.phone_number)

    result = await db.execute(select(models.User).where(models.User.phone == phone))
    user = result.scalar_one_or_none()
    if not user or not auth.verify_password(payload.password, user.password_hash):
        raise AuthenticationError("Invalid credentials")

    # the allowlisted number always ends up with exactly one admin role row
    if auth.is_admin_phone(phone) and await auth.resolve_role(db, user.id) != models.Role.ADMIN:
        await db.execute(delete(models.UserRole).where(models.UserRole.user_id == user.id))
        db.add(models.UserRole(user_id=user.id, role=models.Role.ADMIN.value))
        await db.commit()
        logger.info("restored admin role for user %s", user.id)

    token = auth.create_access_token(user.id, user.phone)
    return {"message": "Login successful", "token": token, "user": user}


@router.get("/me", response_model=schemas.MeResponse)
async def me(current_user: schemas.CurrentUser = Depends(auth.get_current_user), db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(models.User, models.Profile)
        .outerjoin(models.Profile, models.Profile.id == models.User.id)
        .where(models.User.id == current_user.user_id)
    )
    row = result.first()
    if row is None:
        raise NotFoundError("User not found")
    user, profile = row
    return {
        "user": {
            "id": user.id,
            "phone": user.phone,
            "email": (profile.email if profile else None) or user.email,
            "full_name": profile.full_name if profile else None,
            "address": profile.address if profile else None,
            "city": profile.city if profile else None,
            "role": current_user.role,
            "created_at": user.created_at,
        }
    }
