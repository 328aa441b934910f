"""Confirmation handler: record proposals and execute them once the user confirms.

Resolution is not transactional. The proposal is marked confirmed before the
task mutation runs, so a crash in between leaves a "confirmed but not
executed" message; the ``proposal_execution_failed`` log event tracks it.
"""

import logging
from dataclasses import dataclass
from typing import Any

from grounded.core.db_client import DBClient
from grounded.core.errors import AppError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from grounded.core.logging import span
from grounded.domain.chat import ChatMessage, PendingProposal, ProposalAction
from grounded.domain.task import SubtaskCreate, TaskCreate, TaskUpdate
from grounded.services import chat_service, streak_service, task_service


logger = logging.getLogger(__name__)

# camelCase fields of the proposal contract and their task-store names
_FIELD_ALIASES = {
    "startTime": "start_time",
    "endTime": "end_time",
    "isCompleted": "is_completed",
    "taskId": "task_id",
    "subtaskTitle": "subtask_title",
}


class ProposalExecutionError(Exception):
    """A confirmed proposal could not be applied to the task store."""

    def __init__(self, action: str, cause: Exception) -> None:
        self.action = action
        self.cause = cause
        super().__init__(f"Failed to execute {action}: {cause}")


@dataclass
class ExecutionResult:
    """What a confirmed proposal did."""

    action: ProposalAction
    text: str
    data: dict[str, Any] | None = None


@dataclass
class Resolution:
    """Outcome of resolving a proposal."""

    message: ChatMessage
    proposal: PendingProposal
    result: ExecutionResult | None = None


def _to_store_fields(data: dict[str, Any]) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for key, value in data.items():
        fields[_FIELD_ALIASES.get(key, key)] = value
    return fields


def _require_id(fields: dict[str, Any], action: str) -> str:
    task_id = fields.get("id") or fields.get("task_id")
    if not task_id:
        raise ValidationError(f"Missing task id for {action}")
    return str(task_id)


async def execute_action(
    *,
    db: DBClient,
    user_id: str,
    action: ProposalAction | str,
    data: dict[str, Any],
) -> ExecutionResult:
    """Apply one confirmed proposal to the task store.

    Completing a task (incomplete to complete) also recalculates the streak for
    its date.

    Args:
        db: Database client
        user_id: Firebase uid of the confirming user
        action: Proposal action
        data: Proposal data (camelCase or snake_case field names)

    Returns:
        ExecutionResult with the reply text and the created/updated record

    Raises:
        ValidationError: If the action is unknown or a required field is missing
        NotFoundError: If the target task does not exist
        ForbiddenError: If the target task belongs to someone else
    """
    try:
        kind = ProposalAction(action)
    except ValueError as e:
        raise ValidationError(f"Unsupported action: {action}") from e

    fields = _to_store_fields(data)

    with span("confirmation_service.execute_action", action=kind.value):
        if kind == ProposalAction.CREATE_TASK:
            task = await task_service.create_task(
                db=db,
                user_id=user_id,
                task=TaskCreate(**{**fields, "title": fields.get("title") or "New task"}),
            )
            return ExecutionResult(kind, f"Created task: {task.title}", task.model_dump(mode="json"))

        if kind == ProposalAction.UPDATE_TASK:
            task_id = _require_id(fields, kind)
            existing = await task_service.get_owned_task(db=db, task_id=task_id, user_id=user_id)
            update = TaskUpdate(**{k: v for k, v in fields.items() if k not in ("id", "task_id")})
            task = await task_service.update_task(db=db, task_id=task_id, update=update)
            if not existing.is_completed and task.is_completed:
                await streak_service.recalculate_streak_safely(db=db, user_id=user_id, day=task.date)
            return ExecutionResult(kind, f"Updated task: {task.title}", task.model_dump(mode="json"))

        if kind == ProposalAction.DELETE_TASK:
            task_id = _require_id(fields, kind)
            await task_service.delete_owned_task(db=db, user_id=user_id, task_id=task_id)
            return ExecutionResult(kind, "Task deleted.", None)

        parent_id = fields.get("task_id") or fields.get("id")
        if not parent_id:
            raise ValidationError("Missing parent task_id for create_subtask")
        await task_service.get_owned_task(db=db, task_id=str(parent_id), user_id=user_id)
        subtask = await task_service.create_subtask(
            db=db,
            task_id=str(parent_id),
            subtask=SubtaskCreate(title=fields.get("subtask_title") or fields.get("title") or "Subtask"),
        )
        return ExecutionResult(kind, "Subtask created.", subtask.model_dump(mode="json"))


async def _authorize_target(*, db: DBClient, user_id: str, proposal: PendingProposal) -> None:
    """Reject a proposal aimed at someone else's task before it is marked confirmed.

    A missing task is left to execution, where it becomes a reportable failure.
    """
    fields = _to_store_fields(proposal.data)
    if proposal.action in (ProposalAction.UPDATE_TASK, ProposalAction.DELETE_TASK):
        task_id = fields.get("id") or fields.get("task_id")
    elif proposal.action == ProposalAction.CREATE_SUBTASK:
        task_id = fields.get("task_id") or fields.get("id")
    else:
        return
    if not task_id:
        return

    task = await task_service.get_task(db=db, task_id=str(task_id))
    if task is not None and task.user_id != user_id:
        logger.warning("proposal_target_denied", extra={"user_id": user_id, "task_id": task_id})
        raise ForbiddenError("Unauthorized")


async def record_proposal(
    *,
    db: DBClient,
    message_id: str,
    action: ProposalAction | str,
    data: dict[str, Any],
) -> ChatMessage:
    """Attach a pending proposal to a chat message. Nothing is executed."""
    with span("confirmation_service.record_proposal"):
        proposal = PendingProposal(action=action, data=data)
        message = await chat_service.update_message_confirmation(
            db=db, message_id=message_id, confirmation=proposal
        )
        logger.info("proposal_recorded", extra={"message_id": message_id, "action": proposal.action.value})
        return message


async def resolve(
    *,
    db: DBClient,
    user_id: str,
    message_id: str,
    confirm: bool,
    action: ProposalAction | str | None = None,
    data: dict[str, Any] | None = None,
) -> Resolution:
    """Confirm or cancel the proposal stored on a message, exactly once.

    Explicit ``action``/``data`` take precedence over the stored proposal.
    Cancelling never touches the task store. Confirming marks the proposal
    confirmed, then performs exactly one task-store mutation.

    Args:
        db: Database client
        user_id: Firebase uid of the caller
        message_id: Message carrying the proposal
        confirm: True to execute, False to cancel
        action: Optional action overriding the stored one
        data: Optional data overriding the stored one

    Returns:
        Resolution with the updated message and, when confirmed, the execution result

    Raises:
        NotFoundError: If the message (or its session) does not exist
        ForbiddenError: If the message belongs to another user's session, or a
            confirmed proposal targets another user's task
        ValidationError: If there is no proposal to resolve
        ConflictError: If the proposal was already confirmed or cancelled
        ProposalExecutionError: If the confirmed mutation failed
    """
    with span("confirmation_service.resolve", message_id=message_id, confirm=confirm):
        message = await chat_service.get_message(db=db, message_id=message_id)
        if message is None:
            raise NotFoundError("Message not found")
        await chat_service.get_owned_session(db=db, session_id=message.session_id, user_id=user_id)

        stored = message.confirmation
        if stored is not None and stored.is_resolved:
            raise ConflictError(f"This action was already {stored.status.value}")

        resolved_action = action or (stored.action if stored else None)
        if resolved_action is None:
            raise ValidationError("No pending action to confirm")
        resolved_data = data if data is not None else (stored.data if stored else {})

        proposal = PendingProposal(
            action=resolved_action,
            data=resolved_data,
            confirmed=confirm,
            cancelled=not confirm,
        )
        if confirm:
            await _authorize_target(db=db, user_id=user_id, proposal=proposal)
        message = await chat_service.update_message_confirmation(db=db, message_id=message_id, confirmation=proposal)
        logger.info(
            "proposal_resolved",
            extra={"user_id": user_id, "message_id": message_id, "status": proposal.status.value},
        )

        if not confirm:
            return Resolution(message=message, proposal=proposal)

        try:
            result = await execute_action(db=db, user_id=user_id, action=proposal.action, data=proposal.data)
        except ForbiddenError:
            raise
        except (AppError, ValueError) as e:
            logger.error(
                "proposal_execution_failed",
                extra={"user_id": user_id, "message_id": message_id, "action": proposal.action.value, "error": str(e)},
            )
            raise ProposalExecutionError(proposal.action.value, e) from e

        return Resolution(message=message, proposal=proposal, result=result)
