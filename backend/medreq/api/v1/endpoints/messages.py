from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from medreq.api.deps import get_current_user
from medreq.api.v1.endpoints.requisitions import parse_uuid
from medreq.db.session import get_db
from medreq.models.message import Message
from medreq.models.user import User
from medreq.schemas.requisition import MessageCreate, MessageOut
from medreq.services.requisition_queries import user_names
from medreq.services.requisition_workflow import add_message, list_messages

router = APIRouter()


def _message_out(message: Message, sender_name: str | None = None) -> MessageOut:
    return MessageOut(
        id=message.id,
        requisition_id=message.requisition_id,
        sender_id=message.sender_id,
        sender_name=sender_name,
        text=message.text,
        created_at=message.created_at,
    )


@router.get("/{requisition_id}/messages", response_model=list[MessageOut])
async def list_for_requisition(
    requisition_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[MessageOut]:
    rows = await list_messages(db, parse_uuid(requisition_id))
    names = await user_names(db, {m.sender_id for m in rows})
    return [_message_out(m, names.get(m.sender_id)) for m in rows]


@router.post("/{requisition_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def post_message(
    requisition_id: str,
    payload: MessageCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MessageOut:
    message = await add_message(db, requisition_id=parse_uuid(requisition_id), sender=user, text=payload.text)
    return _message_out(message, user.name)
