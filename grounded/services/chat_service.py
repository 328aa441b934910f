"""Chat store: sessions, messages and recent queries."""

import logging
from datetime import UTC, datetime
from typing import Any

from grounded.core.config import constants
from grounded.core.db_client import DBClient, sanitize_param
from grounded.core.errors import ForbiddenError, NotFoundError, RecordNotFoundError
from grounded.core.logging import span
from grounded.domain.chat import ChatHistory, ChatMessage, ChatSession, PendingProposal, RecentChat


logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _user_filter(user_id: str) -> str:
    return f'user_id = "{sanitize_param(user_id)}"'


async def list_sessions(*, db: DBClient, user_id: str) -> list[ChatSession]:
    """All sessions of a user, most recently updated first."""
    with span("chat_service.list_sessions"):
        records = await db.list_records(collection="chat_sessions", filter_query=_user_filter(user_id), sort="-updated_at")
        return [ChatSession(**record) for record in records]


async def get_session(*, db: DBClient, session_id: str) -> ChatSession | None:
    try:
        record = await db.get_record(collection="chat_sessions", record_id=session_id)
    except RecordNotFoundError:
        return None
    return ChatSession(**record)


async def get_owned_session(*, db: DBClient, session_id: str, user_id: str) -> ChatSession:
    """Get a session and verify it belongs to the caller.

    Raises:
        NotFoundError: If the session does not exist
        ForbiddenError: If the session belongs to someone else
    """
    session = await get_session(db=db, session_id=session_id)
    if session is None:
        raise NotFoundError("Session not found")
    if session.user_id != user_id:
        logger.warning("session_access_denied", extra={"user_id": user_id, "session_id": session_id})
        raise ForbiddenError("Unauthorized")
    return session


async def list_messages(*, db: DBClient, session_id: str, limit: int | None = None) -> list[ChatMessage]:
    """Messages of a session, oldest first. With ``limit``, only the newest ``limit`` are returned."""
    filter_query = f'session_id = "{sanitize_param(session_id)}"'
    if limit is None:
        records = await db.list_records(collection="chat_messages", filter_query=filter_query, sort="+created_at,+rowid")
    else:
        records = await db.list_records(
            collection="chat_messages", filter_query=filter_query, sort="-created_at,-rowid", limit=limit
        )
        records.reverse()
    return [ChatMessage(**record) for record in records]


async def get_session_with_messages(*, db: DBClient, session_id: str, user_id: str) -> ChatSession:
    with span("chat_service.get_session_with_messages"):
        session = await get_owned_session(db=db, session_id=session_id, user_id=user_id)
        session.messages = await list_messages(db=db, session_id=session_id)
        return session


async def get_active_session(*, db: DBClient, user_id: str) -> ChatSession | None:
    record = await db.get_first_record(
        collection="chat_sessions",
        filter_query=f'{_user_filter(user_id)} && is_active = "true"',
    )
    return ChatSession(**record) if record else None


async def _deactivate_sessions(*, db: DBClient, user_id: str) -> None:
    await db.update_records(
        collection="chat_sessions",
        filter_query=f'{_user_filter(user_id)} && is_active = "true"',
        data={"is_active": False},
    )


async def create_session(*, db: DBClient, user_id: str, title: str | None = None) -> ChatSession:
    """Create a new active session, deactivating every other session of the user.

    The two steps are not wrapped in a transaction; the partial unique index on
    active sessions rejects a concurrent second activation.
    """
    with span("chat_service.create_session"):
        await _deactivate_sessions(db=db, user_id=user_id)
        now = _now()
        record = await db.create_record(
            collection="chat_sessions",
            data={
                "user_id": user_id,
                "title": title or constants.DEFAULT_SESSION_TITLE,
                "is_active": True,
                "created_at": now,
                "updated_at": now,
            },
        )
        logger.info("chat_session_created", extra={"user_id": user_id, "session_id": record["id"]})
        return ChatSession(**record)


async def get_or_create_active_session(*, db: DBClient, user_id: str) -> ChatSession:
    with span("chat_service.get_or_create_active_session"):
        session = await get_active_session(db=db, user_id=user_id)
        if session is not None:
            return session
        return await create_session(db=db, user_id=user_id)


async def update_session(
    *,
    db: DBClient,
    session_id: str,
    title: str | None = None,
    is_active: bool | None = None,
) -> ChatSession:
    """Rename and/or (de)activate a session. Activating deactivates the user's other sessions."""
    with span("chat_service.update_session"):
        session = await get_session(db=db, session_id=session_id)
        if session is None:
            raise NotFoundError("Session not found")

        data: dict[str, Any] = {"updated_at": _now()}
        if title is not None:
            data["title"] = title
        if is_active is not None:
            if is_active:
                await _deactivate_sessions(db=db, user_id=session.user_id)
            data["is_active"] = is_active

        record = await db.update_record(collection="chat_sessions", record_id=session_id, data=data)
        return ChatSession(**record)


async def delete_session(*, db: DBClient, session_id: str) -> None:
    """Delete a session; its messages go with it."""
    with span("chat_service.delete_session"):
        try:
            await db.delete_record(collection="chat_sessions", record_id=session_id)
        except RecordNotFoundError as e:
            raise NotFoundError("Session not found") from e
        logger.info("chat_session_deleted", extra={"session_id": session_id})


async def add_message(
    *,
    db: DBClient,
    session_id: str,
    text: str,
    is_user: bool,
    confirmation: PendingProposal | None = None,
    tasks: list[dict[str, Any]] | None = None,
) -> ChatMessage:
    """Append a message to a session and bump the session's updated_at."""
    with span("chat_service.add_message"):
        now = _now()
        await db.update_record(collection="chat_sessions", record_id=session_id, data={"updated_at": now})
        record = await db.create_record(
            collection="chat_messages",
            data={
                "session_id": session_id,
                "text": text,
                "is_user": is_user,
                "confirmation": confirmation.model_dump(mode="json") if confirmation else None,
                "tasks": tasks,
                "created_at": now,
            },
        )
        return ChatMessage(**record)


async def get_message(*, db: DBClient, message_id: str) -> ChatMessage | None:
    try:
        record = await db.get_record(collection="chat_messages", record_id=message_id)
    except RecordNotFoundError:
        return None
    return ChatMessage(**record)


async def update_message_confirmation(
    *, db: DBClient, message_id: str, confirmation: PendingProposal
) -> ChatMessage:
    """Overwrite the proposal stored on a message."""
    with span("chat_service.update_message_confirmation"):
        try:
            record = await db.update_record(
                collection="chat_messages",
                record_id=message_id,
                data={"confirmation": confirmation.model_dump(mode="json")},
            )
        except RecordNotFoundError as e:
            raise NotFoundError("Message not found") from e
        return ChatMessage(**record)


async def update_title_from_message(*, db: DBClient, session_id: str, message: str) -> None:
    """Derive a title from the first user message while the session still has the default title."""
    session = await get_session(db=db, session_id=session_id)
    if session is None or session.title != constants.DEFAULT_SESSION_TITLE:
        return

    limit = constants.SESSION_TITLE_MAX_LENGTH
    title = f"{message[:limit]}..." if len(message) > limit else message
    await update_session(db=db, session_id=session_id, title=title)


async def add_recent_chat(*, db: DBClient, user_id: str, query: str) -> None:
    """Record a query (refreshing its timestamp if seen before) and keep only the newest ones."""
    with span("chat_service.add_recent_chat"):
        await db.upsert_record(
            collection="recent_chats",
            data={"user_id": user_id, "query": query, "created_at": _now()},
            conflict_columns=["user_id", "query"],
            immutable_columns=["id"],
        )
        pruned = await db.execute(
            """DELETE FROM recent_chats
            WHERE user_id = ?
            AND id NOT IN (
                SELECT id FROM recent_chats WHERE user_id = ? ORDER BY created_at DESC LIMIT ?
            )""",
            [user_id, user_id, constants.RECENT_CHATS_LIMIT],
        )
        if pruned:
            logger.debug("recent_chats_pruned", extra={"user_id": user_id, "count": pruned})


async def get_recent_chats(*, db: DBClient, user_id: str, limit: int | None = None) -> list[str]:
    records = await db.list_records(
        collection="recent_chats",
        filter_query=_user_filter(user_id),
        sort="-created_at",
        limit=limit or constants.RECENT_CHATS_LIMIT,
    )
    return [RecentChat(**record).query for record in records]


async def get_chat_history(*, db: DBClient, user_id: str) -> ChatHistory:
    with span("chat_service.get_chat_history"):
        return ChatHistory(
            sessions=await list_sessions(db=db, user_id=user_id),
            recent_chats=await get_recent_chats(db=db, user_id=user_id),
        )
