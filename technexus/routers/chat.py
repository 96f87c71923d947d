import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .. import auth, models, schemas
from ..database import get_db
from ..errors import ValidationError
from ..realtime import ConnectionRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.connections


def _unread_filter(current_user: schemas.CurrentUser):
    if current_user.is_admin:
        return [models.ChatMessage.is_from_admin.is_(False)]
    return [models.ChatMessage.receiver_id == current_user.user_id, models.ChatMessage.is_from_admin.is_(True)]


async def _admin_ids(db: AsyncSession) -> List[int]:
    result = await db.execute(select(models.UserRole.user_id).where(models.UserRole.role == models.Role.ADMIN.value))
    return [user_id for (user_id,) in result.all()]


@router.get("/unread", response_model=schemas.UnreadCount)
async def unread_count(db: AsyncSession = Depends(get_db), current_user: schemas.CurrentUser = Depends(auth.get_current_user)):
    result = await db.execute(
        select(func.count(models.ChatMessage.id)).where(models.ChatMessage.is_read.is_(False), *_unread_filter(current_user))
    )
    return {"count": result.scalar_one()}


@router.get("", response_model=List[schemas.ChatMessageOut])
async def list_messages(db: AsyncSession = Depends(get_db), current_user: schemas.CurrentUser = Depends(auth.get_current_user)):
    query = select(models.ChatMessage, models.Profile.full_name).outerjoin(
        models.Profile, models.Profile.id == models.ChatMessage.sender_id
    )
    if not current_user.is_admin:
        query = query.where(
            or_(models.ChatMessage.sender_id == current_user.user_id, models.ChatMessage.receiver_id == current_user.user_id)
        )
    query = query.order_by(models.ChatMessage.created_at.asc(), models.ChatMessage.id.asc())

    result = await db.execute(query)
    return [
        schemas.ChatMessageOut.model_validate(message).model_copy(update={"full_name": full_name})
        for message, full_name in result.all()
    ]


@router.post("", response_model=schemas.ChatMessageOut, status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: schemas.ChatMessageCreate,
    db: AsyncSession = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user),
    registry: ConnectionRegistry = Depends(get_registry),
):
    if not payload.message or not payload.message.strip():
        raise ValidationError("Message is required")

    message = models.ChatMessage(
        sender_id=current_user.user_id,
        receiver_id=payload.receiver_id,
        message=payload.message,
        is_from_admin=current_user.is_admin,
    )
    db.add(message)
    await db.commit()

    profile = await db.get(models.Profile, current_user.user_id)
    out = schemas.ChatMessageOut.model_validate(message).model_copy(
        update={"full_name": profile.full_name if profile else None}
    )

    # delivery is best effort, the message is already stored
    recipients = [payload.receiver_id] if payload.receiver_id is not None else await _admin_ids(db)
    notification = {"type": "message", "message": jsonable_encoder(out)}
    delivered = 0
    for recipient in recipients:
        if recipient != current_user.user_id and await registry.send_if_present(recipient, notification):
            delivered += 1
    logger.debug("message %s pushed to %s live connection(s)", message.id, delivered)
    return out


@router.post("/mark-read")
async def mark_read(
    payload: schemas.MarkReadRequest,
    db: AsyncSession = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user),
):
    stmt = update(models.ChatMessage).where(models.ChatMessage.is_read.is_(False))
    if current_user.is_admin:
        if not payload.sender_id:
            raise ValidationError("Sender ID required for admin")
        stmt = stmt.where(models.ChatMessage.sender_id == payload.sender_id, models.ChatMessage.is_from_admin.is_(False))
    else:
        stmt = stmt.where(*_unread_filter(current_user))
    await db.execute(stmt.values(is_read=True).execution_options(synchronize_session=False))
    await db.commit()
    return {"success": True}
