"""Test doubles for the language model and the identity provider."""

from collections.abc import Callable
from typing import Any

from pydantic_ai.messages import ModelMessage, ModelRequest, ModelResponse, TextPart, ToolCallPart, ToolReturnPart
from pydantic_ai.models.function import AgentInfo

from grounded.core.errors import AuthenticationError
from grounded.domain.user import AuthenticatedUser


USER_ID = "uid-alice"
OTHER_USER_ID = "uid-bob"

ScriptItem = ModelResponse | BaseException | Callable[[list[ModelMessage], AgentInfo], ModelResponse]


def text(content: str) -> ModelResponse:
    """A model reply with no tool calls."""
    return ModelResponse(parts=[TextPart(content=content)])


def call(tool_name: str, args: dict[str, Any] | str, call_id: str | None = None) -> ModelResponse:
    """A model reply requesting one tool call."""
    part = ToolCallPart(tool_name=tool_name, args=args)
    if call_id:
        part.tool_call_id = call_id
    return ModelResponse(parts=[part])


def tool_returns(messages: list[ModelMessage]) -> list[ToolReturnPart]:
    """Tool results sent back in the most recent request."""
    last = messages[-1]
    if not isinstance(last, ModelRequest):
        return []
    return [part for part in last.parts if isinstance(part, ToolReturnPart)]


class ScriptedModel:
    """Plays back queued responses as a ``FunctionModel`` function.

    Each round records the messages the model saw and the sampling
    temperature it was asked to use. Queued exceptions are raised; callables
    are invoked with ``(messages, info)``. When the script runs dry the model
    answers with plain text.
    """

    # FunctionModel derives its model name from the function's __name__
    __name__ = "scripted_model"

    def __init__(self, *script: ScriptItem) -> None:
        self.script: list[ScriptItem] = list(script)
        self.rounds: list[list[ModelMessage]] = []
        self.temperatures: list[float | None] = []

    def queue(self, *items: ScriptItem) -> "ScriptedModel":
        self.script.extend(items)
        return self

    def __call__(self, messages: list[ModelMessage], info: AgentInfo) -> ModelResponse:
        self.rounds.append(list(messages))
        model_settings = info.model_settings or {}
        self.temperatures.append(model_settings.get("temperature"))

        if not self.script:
            return text("Done.")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item) and not isinstance(item, ModelResponse):
            return item(messages, info)
        return item


class FakeIdentityVerifier:
    """Accepts a fixed set of tokens."""

    def __init__(self) -> None:
        self.tokens: dict[str, AuthenticatedUser] = {
            "token-alice": AuthenticatedUser(uid=USER_ID, email="alice@example.com", name="Alice"),
            "token-bob": AuthenticatedUser(uid=OTHER_USER_ID, email="bob@example.com", name=None),
        }

    async def verify(self, token: str) -> AuthenticatedUser:
        user = self.tokens.get(token)
        if user is None:
            raise AuthenticationError("Invalid authentication token")
        return user
