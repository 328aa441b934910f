"""Chat flow: user message in, persisted assistant reply out.

Failures while producing a reply degrade to an assistant message explaining the
problem; only authentication and authorization failures fail the request.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic_ai.models import Model

from grounded.agents.retry_handler import ModelRetryHandler
from grounded.agents.task_agent import HistoryTurn, OutcomeKind, run_agent
from grounded.agents.tools import ToolExecutor
from grounded.core.config import constants
from grounded.core.db_client import DBClient
from grounded.core.errors import DatabaseError, classify_agent_error, classify_confirmation_error
from grounded.core.logging import span
from grounded.domain.chat import ChatMessage, ProposalAction
from grounded.services import chat_service, confirmation_service


logger = logging.getLogger(__name__)


@dataclass
class MessageExchange:
    """The user's message and the assistant's reply, both persisted."""

    user_message: ChatMessage
    ai_response: ChatMessage


async def send_message(
    *,
    db: DBClient,
    model: Model,
    user_id: str,
    session_id: str,
    message: str,
    current_time: datetime,
    user_name: str | None = None,
    retry_handler: ModelRetryHandler | None = None,
) -> MessageExchange:
    """Handle one chat message inside a session.

    Persists the user message, auto-titles the session, records the query as a
    recent chat, runs the agent over the session's prior messages and persists
    the reply. A proposal is recorded on the reply message; search results are
    attached to it.

    Raises:
        NotFoundError: If the session does not exist
        ForbiddenError: If the session belongs to another user
    """
    with span("conversation_service.send_message", user_id=user_id, session_id=session_id):
        await chat_service.get_owned_session(db=db, session_id=session_id, user_id=user_id)

        prior = await chat_service.list_messages(db=db, session_id=session_id, limit=constants.CHAT_HISTORY_LIMIT)
        history = [HistoryTurn(text=item.text, is_user=item.is_user) for item in prior]

        user_message = await chat_service.add_message(db=db, session_id=session_id, text=message, is_user=True)
        await chat_service.update_title_from_message(db=db, session_id=session_id, message=message)
        await chat_service.add_recent_chat(db=db, user_id=user_id, query=message)

        try:
            outcome = await run_agent(
                model=model,
                executor=ToolExecutor(db, user_id),
                user_message=message,
                history=history,
                current_time=current_time,
                user_name=user_name,
                retry_handler=retry_handler,
            )
        except Exception as e:
            category, error_text = classify_agent_error(e)
            logger.error(
                "agent_execution_failed",
                extra={"user_id": user_id, "session_id": session_id, "error": str(e), "error_category": category.value},
            )
            ai_response = await chat_service.add_message(
                db=db, session_id=session_id, text=error_text, is_user=False
            )
            return MessageExchange(user_message=user_message, ai_response=ai_response)

        if outcome.kind == OutcomeKind.MAX_ITERATIONS:
            logger.warning("agent_reply_max_iterations", extra={"user_id": user_id, "session_id": session_id})

        ai_response = await chat_service.add_message(
            db=db,
            session_id=session_id,
            text=outcome.text,
            is_user=False,
            tasks=outcome.tasks,
        )
        if outcome.proposal is not None:
            ai_response = await confirmation_service.record_proposal(
                db=db,
                message_id=ai_response.id,
                action=outcome.proposal.action,
                data=outcome.proposal.data,
            )

        return MessageExchange(user_message=user_message, ai_response=ai_response)


async def confirm_message_action(
    *,
    db: DBClient,
    user_id: str,
    message_id: str,
    confirm: bool,
    action: ProposalAction | str | None = None,
    data: dict[str, Any] | None = None,
) -> ChatMessage:
    """Resolve a proposal from the chat screen.

    Returns the updated proposal message when cancelled, otherwise the new
    assistant message reporting the outcome (or explaining the failure).

    Raises:
        NotFoundError: If the message does not exist
        ForbiddenError: If the message belongs to another user
        ConflictError: If the proposal was already resolved
    """
    with span("conversation_service.confirm_message_action", user_id=user_id, message_id=message_id):
        try:
            resolution = await confirmation_service.resolve(
                db=db,
                user_id=user_id,
                message_id=message_id,
                confirm=confirm,
                action=action,
                data=data,
            )
        except confirmation_service.ProposalExecutionError as e:
            category, error_text = classify_confirmation_error(e.cause)
            logger.error(
                "confirmation_failed",
                extra={"user_id": user_id, "message_id": message_id, "error_category": category.value},
            )
            message = await chat_service.get_message(db=db, message_id=message_id)
            if message is None:
                raise DatabaseError("Message disappeared while confirming") from e
            return await chat_service.add_message(
                db=db, session_id=message.session_id, text=error_text, is_user=False
            )

        if not confirm or resolution.result is None:
            return resolution.message

        return await chat_service.add_message(
            db=db,
            session_id=resolution.message.session_id,
            text=resolution.result.text or f"Action confirmed and executed: {resolution.proposal.action.value}",
            is_user=False,
        )
