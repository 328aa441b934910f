"""Tool-calling agent loop for the Grounded task assistant.

One call to ``run_agent`` turns a user utterance (plus prior turns) into either
a plain-text answer or exactly one pending proposal. The loop talks to the model
through pydantic-ai's direct request API so every round can carry its own
sampling temperature.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, cast

from pydantic import BaseModel, ConfigDict, Field
from pydantic_ai.direct import model_request
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.settings import ModelSettings

from grounded.agents.prompt import PromptContext, build_system_prompt
from grounded.agents.retry_handler import MalformedToolCallError, ModelRetryHandler
from grounded.agents.tools import TOOL_DEFINITIONS, ToolExecutor, ToolName
from grounded.core.config import constants
from grounded.core.logging import span
from grounded.domain.chat import PendingProposal, ProposalAction


logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I've processed your request."
MAX_ITERATIONS_REPLY = "I'm having trouble processing this request. Please try rephrasing it."

# Special tokens some models leak into their output
_SPECIAL_TOKEN_PATTERN = re.compile(
    r"<\|(?:FunctionCallEnd|endoftext|im_start|im_end|pad|eos|bos|assistant|user|system)\|>",
    re.IGNORECASE,
)


class OutcomeKind(StrEnum):
    TEXT = "text"
    CONFIRMATION_REQUEST = "confirmation_request"
    MAX_ITERATIONS = "max_iterations"


class HistoryTurn(BaseModel):
    """One prior conversation turn replayed to the model."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: str
    is_user: bool = Field(alias="isUser")


@dataclass
class AgentOutcome:
    """Terminal state of one agent run."""

    kind: OutcomeKind
    text: str
    proposal: PendingProposal | None = None
    tasks: list[dict[str, Any]] | None = None
    error: str | None = None
    tool_calls: list[str] = field(default_factory=list)


def _sanitize_llm_output(text: str) -> str:
    sanitized = _SPECIAL_TOKEN_PATTERN.sub("", text)
    return sanitized.strip()


def _parse_tool_args(part: ToolCallPart) -> dict[str, Any]:
    """Decode tool-call arguments into a dict, raising MalformedToolCallError otherwise."""
    raw = part.args
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        decoded = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise MalformedToolCallError(part.tool_name, raw, str(e)) from e
    if not isinstance(decoded, dict):
        raise MalformedToolCallError(part.tool_name, raw, "arguments must be a JSON object")
    return decoded


def build_confirmation_text(action: str, data: dict[str, Any]) -> str:
    """Short natural-language summary of a proposal, ending with a request to confirm."""
    on_date = f" for {data['date']}" if data.get("date") else ""
    at_time = f" at {data['startTime']}" if data.get("startTime") else ""

    if action == ProposalAction.CREATE_TASK:
        title = data.get("title") or "New task"
        return f'I\'ll create a task "{title}"{on_date}{at_time}. Please confirm.'
    if action == ProposalAction.UPDATE_TASK:
        to_time = f" to {data['startTime']}" if data.get("startTime") else ""
        new_date = f" on {data['date']}" if data.get("date") else ""
        return f"I'll update the task{to_time}{new_date}. Please confirm."
    if action == ProposalAction.DELETE_TASK:
        return "I'll delete this task. Please confirm."
    return "I've prepared that for you. Please confirm."


def build_message_history(
    *, user_message: str, history: list[HistoryTurn], current_time: datetime, user_name: str | None = None
) -> list[ModelMessage]:
    """Seed the conversation: system prompt, prior turns, then the new user message."""
    prompt = build_system_prompt(PromptContext(current_time=current_time, user_name=user_name))
    messages: list[ModelMessage] = [ModelRequest(parts=[SystemPromptPart(content=prompt)])]
    for turn in history:
        if turn.is_user:
            messages.append(ModelRequest(parts=[UserPromptPart(content=turn.text)]))
        else:
            messages.append(ModelResponse(parts=[TextPart(content=turn.text)]))
    messages.append(ModelRequest(parts=[UserPromptPart(content=user_message)]))
    return messages


async def run_agent(
    *,
    model: Model,
    executor: ToolExecutor,
    user_message: str,
    history: list[HistoryTurn] | None = None,
    current_time: datetime,
    user_name: str | None = None,
    retry_handler: ModelRetryHandler | None = None,
    max_iterations: int = constants.MAX_AGENT_ITERATIONS,
) -> AgentOutcome:
    """Run the bounded tool-calling loop for one user message.

    Each round sends the conversation and both tool schemas to the model:
        - no tool calls: the text reply ends the run
        - tool calls: they run in order and their results are appended; a
          ``propose_action`` ends the run with a confirmation request and any
          later calls in that round are ignored
    Reaching ``max_iterations`` ends the run with a fallback reply.

    Args:
        model: pydantic-ai model used for every round
        executor: Tool executor bound to the requesting user
        user_message: The new user utterance
        history: Prior conversation turns, oldest first
        current_time: Request time, used to resolve relative dates
        user_name: Optional display name for the prompt
        retry_handler: Retry policy for malformed tool calls
        max_iterations: Upper bound on model rounds

    Returns:
        AgentOutcome describing the terminal state

    Raises:
        ToolCallGenerationError: If the model keeps producing unparseable tool calls
        ModelRateLimitError: If the provider rate-limits the request
        ModelUnavailableError: If the provider is unavailable
    """
    retry_handler = retry_handler or ModelRetryHandler()
    messages = build_message_history(
        user_message=user_message, history=history or [], current_time=current_time, user_name=user_name
    )
    params = ModelRequestParameters(function_tools=TOOL_DEFINITIONS, allow_text_output=True)
    base_settings: dict[str, Any] = dict(getattr(model, "settings", None) or {})
    called: list[str] = []
    last_search_results: list[dict[str, Any]] | None = None

    async def request_round(temperature: float) -> tuple[ModelResponse, list[tuple[ToolCallPart, dict[str, Any]]]]:
        model_settings = cast(
            ModelSettings,
            {**base_settings, "temperature": temperature, "max_tokens": constants.MAX_TOKENS},
        )
        response = await model_request(
            model,
            messages,
            model_settings=model_settings,
            model_request_parameters=params,
        )
        calls = [(part, _parse_tool_args(part)) for part in response.parts if isinstance(part, ToolCallPart)]
        return response, calls

    with span("task_agent.run_agent", user_id=executor.user_id):
        for iteration in range(1, max_iterations + 1):
            response, calls = await retry_handler.execute_with_retry(request_round)
            logger.info(
                "agent_iteration",
                extra={"iteration": iteration, "tool_calls": [part.tool_name for part, _ in calls]},
            )

            if not calls:
                text = "".join(part.content for part in response.parts if isinstance(part, TextPart))
                return AgentOutcome(
                    kind=OutcomeKind.TEXT,
                    text=_sanitize_llm_output(text) or FALLBACK_REPLY,
                    tasks=last_search_results,
                    tool_calls=called,
                )

            messages.append(response)
            returns: list[ToolReturnPart] = []
            proposal: PendingProposal | None = None

            for part, args in calls:
                called.append(part.tool_name)
                result = await executor.execute(part.tool_name, args)
                returns.append(ToolReturnPart(tool_name=part.tool_name, content=result, tool_call_id=part.tool_call_id))

                if part.tool_name == ToolName.SEARCH_TASKS and "tasks" in result:
                    last_search_results = result["tasks"]
                if part.tool_name == ToolName.PROPOSE_ACTION and result.get("isProposal"):
                    proposal = PendingProposal(action=result["action"], data=result["data"])
                    break

            messages.append(ModelRequest(parts=returns))

            if proposal is not None:
                logger.info(
                    "agent_proposal_captured",
                    extra={"user_id": executor.user_id, "action": proposal.action.value, "iteration": iteration},
                )
                return AgentOutcome(
                    kind=OutcomeKind.CONFIRMATION_REQUEST,
                    text=build_confirmation_text(proposal.action, proposal.data),
                    proposal=proposal,
                    tool_calls=called,
                )

        logger.error("agent_max_iterations", extra={"user_id": executor.user_id, "iterations": max_iterations})
        return AgentOutcome(
            kind=OutcomeKind.MAX_ITERATIONS,
            text=MAX_ITERATIONS_REPLY,
            error="max_iterations",
            tool_calls=called,
        )
