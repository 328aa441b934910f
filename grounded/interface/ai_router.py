"""Stateless assistant endpoints: the client keeps the conversation."""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic_ai.models import Model

from grounded.agents.task_agent import HistoryTurn, OutcomeKind, run_agent
from grounded.agents.tools import ToolExecutor
from grounded.core.db_client import DBClient
from grounded.core.errors import ValidationError
from grounded.domain.chat import ProposalAction
from grounded.domain.user import AuthenticatedUser
from grounded.interface.dependencies import get_current_user, get_db, get_model
from grounded.services import confirmation_service


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: list[HistoryTurn] = Field(default_factory=list)


class ConfirmRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: ProposalAction
    data: dict[str, Any] = Field(default_factory=dict)


@router.post("/chat")
async def chat(
    payload: ChatRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
    model: Model = Depends(get_model),
) -> dict[str, Any]:
    """Run the agent once over client-supplied history. Nothing is persisted.

    Model failures propagate as their AppError status, e.g. 429 for a rate limit.
    """
    outcome = await run_agent(
        model=model,
        executor=ToolExecutor(db, user.uid),
        user_message=payload.message,
        history=payload.history,
        current_time=datetime.now(UTC),
        user_name=user.name,
    )

    if outcome.kind == OutcomeKind.CONFIRMATION_REQUEST and outcome.proposal is not None:
        return {
            "type": outcome.kind.value,
            "action": outcome.proposal.action.value,
            "data": outcome.proposal.data,
            "text": outcome.text,
        }

    response: dict[str, Any] = {"type": OutcomeKind.TEXT.value, "text": outcome.text}
    if outcome.tasks:
        response["tasks"] = outcome.tasks
    if outcome.error:
        response["error"] = outcome.error
    return response


@router.post("/confirm")
async def confirm(
    payload: ConfirmRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DBClient = Depends(get_db),
) -> dict[str, Any]:
    """Execute a proposal the client round-tripped after the user accepted it."""
    try:
        result = await confirmation_service.execute_action(
            db=db, user_id=user.uid, action=payload.action, data=payload.data
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid data for {payload.action.value}: {e.error_count()} field error(s)") from e

    logger.info("action_confirmed", extra={"user_id": user.uid, "action": payload.action.value})
    return {"type": OutcomeKind.TEXT.value, "text": result.text, "data": result.data}
