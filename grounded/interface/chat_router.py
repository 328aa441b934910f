"""Persistent chat endpoints: sessions, messages and proposal confirmation."""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic_ai.models import Model

from grounded.core.db_client import DBClient
from grounded.domain.chat import ChatSessionCreate, ChatSessionUpdate, ProposalAction
from grounded.domain.user import AuthenticatedUser
from grounded.interface.dependencies import get_current_user, get_db, get_model
from grounded.services import chat_service, conversation_service


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    session_id: str = Field(..., alias="sessionId", min_length=1)
    message: str = Field(..., min_length=1)


class ConfirmActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message_id: str = Field(..., alias="messageId", min_length=1)
    confirm: bool
    action: ProposalAction | None = None
    data: dict[str, Any] | None = None


def _success(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


@router.get("/history")
async def get_chat_history(
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    history = await chat_service.get_chat_history(db=db, user_id=user.uid)
    return _success(history.model_dump(mode="json", by_alias=True))


@router.get("/recent")
async def get_recent_chats(
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    return _success(await chat_service.get_recent_chats(db=db, user_id=user.uid))


@router.get("/sessions")
async def list_sessions(
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    sessions = await chat_service.list_sessions(db=db, user_id=user.uid)
    return _success([session.model_dump(mode="json", exclude_none=True) for session in sessions])


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: ChatSessionCreate | None = None,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    """Start a new session; it becomes the caller's only active one."""
    session = await chat_service.create_session(db=db, user_id=user.uid, title=payload.title if payload else None)
    return _success(session.model_dump(mode="json", exclude_none=True))


@router.get("/sessions/active")
async def get_active_session(
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    session = await chat_service.get_or_create_active_session(db=db, user_id=user.uid)
    return _success(session.model_dump(mode="json", exclude_none=True))


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    session = await chat_service.get_session_with_messages(db=db, session_id=session_id, user_id=user.uid)
    return _success(session.model_dump(mode="json"))


@router.put("/sessions/{session_id}")
async def update_session(
    session_id: str,
    payload: ChatSessionUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    await chat_service.get_owned_session(db=db, session_id=session_id, user_id=user.uid)
    session = await chat_service.update_session(
        db=db, session_id=session_id, title=payload.title, is_active=payload.is_active
    )
    return _success(session.model_dump(mode="json", exclude_none=True))


@router.delete("/sessions/{session_id}")
async def delete_session(
    session_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    await chat_service.get_owned_session(db=db, session_id=session_id, user_id=user.uid)
    await chat_service.delete_session(db=db, session_id=session_id)
    return {"success": True, "message": "Session deleted successfully"}


@router.post("/message")
async def send_message(
    payload: SendMessageRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
    model: Model = Depends(get_model),
) -> dict[str, Any]:
    """Persist the user's message and the assistant's reply.

    Model failures still answer 200; the reply then explains the problem.
    """
    exchange = await conversation_service.send_message(
        db=db,
        model=model,
        user_id=user.uid,
        session_id=payload.session_id,
        message=payload.message,
        current_time=datetime.now(UTC),
        user_name=user.name,
    )
    return _success(
        {
            "userMessage": exchange.user_message.model_dump(mode="json"),
            "aiResponse": exchange.ai_response.model_dump(mode="json"),
        }
    )


@router.post("/confirm")
async def confirm_action(
    payload: ConfirmActionRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    """Confirm or cancel the proposal stored on a message."""
    message = await conversation_service.confirm_message_action(
        db=db,
        user_id=user.uid,
        message_id=payload.message_id,
        confirm=payload.confirm,
        action=payload.action,
        data=payload.data,
    )
    return _success(message.model_dump(mode="json"))
