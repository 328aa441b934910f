"""Unit tests for the tool-calling agent loop."""

from datetime import UTC, datetime

import pytest
from pydantic_ai.exceptions import ModelHTTPError
from pydantic_ai.messages import ModelRequest, ModelResponse, SystemPromptPart, ToolCallPart, UserPromptPart
from pydantic_ai.models.function import FunctionModel

from grounded.agents.task_agent import (
    MAX_ITERATIONS_REPLY,
    HistoryTurn,
    OutcomeKind,
    build_confirmation_text,
    run_agent,
)
from grounded.agents.tools import ToolExecutor
from grounded.core.db_client import DBClient
from grounded.core.errors import ModelRateLimitError, ToolCallGenerationError
from grounded.domain.chat import ProposalAction
from tests.conftest import add_task
from tests.mocks import USER_ID, ScriptedModel, call, text, tool_returns


NOW = datetime(2026, 3, 4, 9, 30, tzinfo=UTC)
TODAY = "2026-03-04"
TOMORROW = "2026-03-05"


async def _run(db: DBClient, script: ScriptedModel, message: str, **kwargs):
    return await run_agent(
        model=FunctionModel(script),
        executor=ToolExecutor(db, USER_ID),
        user_message=message,
        current_time=NOW,
        **kwargs,
    )


@pytest.mark.unit
class TestQueries:
    async def test_todays_tasks_only_searches(self, db: DBClient):
        await add_task(db, title="Dentist", day=TODAY, start_time="17:00")
        script = ScriptedModel(
            call("search_tasks", {"date": TODAY}),
            text("You have one task today: Dentist at 17:00."),
        )

        outcome = await _run(db, script, "show me today's tasks")

        assert outcome.kind == OutcomeKind.TEXT
        assert outcome.proposal is None
        assert outcome.tool_calls == ["search_tasks"]
        assert outcome.text == "You have one task today: Dentist at 17:00."
        assert [t["title"] for t in outcome.tasks] == ["Dentist"]
        assert tool_returns(script.rounds[1])[0].content["found"] == 1

    async def test_prompt_carries_current_date(self, db: DBClient):
        script = ScriptedModel(text("Hi!"))

        await _run(db, script, "hello")

        system = script.rounds[0][0]
        assert isinstance(system, ModelRequest)
        assert isinstance(system.parts[0], SystemPromptPart)
        assert TODAY in system.parts[0].content
        assert TOMORROW in system.parts[0].content

    async def test_history_is_replayed_before_new_message(self, db: DBClient):
        script = ScriptedModel(text("Sure."))
        history = [HistoryTurn(text="hi", is_user=True), HistoryTurn.model_validate({"text": "hello!", "isUser": False})]

        await _run(db, script, "and now?", history=history)

        messages = script.rounds[0]
        assert [type(m) for m in messages] == [ModelRequest, ModelRequest, ModelResponse, ModelRequest]
        last_part = messages[-1].parts[0]
        assert isinstance(last_part, UserPromptPart)
        assert last_part.content == "and now?"

    async def test_special_tokens_are_stripped(self, db: DBClient):
        script = ScriptedModel(text("All clear.<|im_end|>"))

        outcome = await _run(db, script, "anything today?")

        assert outcome.text == "All clear."

    async def test_empty_reply_falls_back(self, db: DBClient):
        outcome = await _run(db, ScriptedModel(text("   ")), "hm")

        assert outcome.text == "I've processed your request."

    async def test_unknown_tool_is_reported_to_model(self, db: DBClient):
        script = ScriptedModel(call("delete_everything", {}), text("I can't do that."))

        outcome = await _run(db, script, "wipe it all")

        assert outcome.kind == OutcomeKind.TEXT
        assert tool_returns(script.rounds[1])[0].content == {"error": "Unsupported tool: delete_everything"}


@pytest.mark.unit
class TestProposals:
    async def test_update_after_search_returns_confirmation_request(self, db: DBClient):
        task = await add_task(db, title="Dentist", day=TODAY, start_time="17:00")
        script = ScriptedModel(
            call("search_tasks", {"query": "dentist"}),
            call("propose_action", {"action": "update_task", "task_id": task.id, "start_time": "18:00"}),
        )

        outcome = await _run(db, script, "move my dentist appointment to 6pm")

        assert outcome.kind == OutcomeKind.CONFIRMATION_REQUEST
        assert outcome.proposal is not None
        assert outcome.proposal.action == ProposalAction.UPDATE_TASK
        assert outcome.proposal.data == {"id": task.id, "startTime": "18:00"}
        assert outcome.text == "I'll update the task to 18:00. Please confirm."
        assert outcome.tool_calls == ["search_tasks", "propose_action"]

        stored = (await db.list_records(collection="tasks"))[0]
        assert stored["start_time"] == "17:00"

    async def test_calls_after_proposal_are_ignored(self, db: DBClient):
        script = ScriptedModel(
            ModelResponse(
                parts=[
                    ToolCallPart(tool_name="propose_action", args={"action": "create_task", "data": {"title": "A"}}),
                    ToolCallPart(tool_name="propose_action", args={"action": "create_task", "data": {"title": "B"}}),
                ]
            )
        )

        outcome = await _run(db, script, "add A and B")

        assert outcome.proposal is not None
        assert outcome.proposal.data == {"title": "A"}
        assert outcome.tool_calls == ["propose_action"]
        assert len(script.rounds) == 1

    async def test_rejected_action_lets_model_recover(self, db: DBClient):
        script = ScriptedModel(
            call("propose_action", {"action": "explode_task", "data": {}}),
            text("Sorry, I can only create, update or delete tasks."),
        )

        outcome = await _run(db, script, "explode my task")

        assert outcome.kind == OutcomeKind.TEXT
        assert "Unsupported action" in tool_returns(script.rounds[1])[0].content["error"]


@pytest.mark.unit
class TestLoopBounds:
    async def test_max_iterations(self, db: DBClient):
        script = ScriptedModel(*[call("search_tasks", {}) for _ in range(5)])

        outcome = await _run(db, script, "loop forever", max_iterations=3)

        assert outcome.kind == OutcomeKind.MAX_ITERATIONS
        assert outcome.text == MAX_ITERATIONS_REPLY
        assert outcome.error == "max_iterations"
        assert len(script.rounds) == 3

    async def test_malformed_arguments_retry_with_higher_temperature(self, db: DBClient):
        script = ScriptedModel(
            call("search_tasks", '{"date": '),
            call("search_tasks", {"date": TODAY}),
            text("Nothing today."),
        )

        outcome = await _run(db, script, "what's on today?")

        assert outcome.kind == OutcomeKind.TEXT
        assert script.temperatures == [0.5, 0.7, 0.5]

    async def test_persistently_malformed_arguments_fail(self, db: DBClient):
        script = ScriptedModel(*[call("search_tasks", "not json") for _ in range(3)])

        with pytest.raises(ToolCallGenerationError):
            await _run(db, script, "what's on today?")
        assert script.temperatures == [0.5, 0.7, 0.9]

    async def test_rate_limit_is_translated(self, db: DBClient):
        script = ScriptedModel(ModelHTTPError(429, "test-model"))

        with pytest.raises(ModelRateLimitError):
            await _run(db, script, "hello")


@pytest.mark.unit
class TestConfirmationText:
    def test_create(self):
        text_ = build_confirmation_text("create_task", {"title": "Dentist", "date": TOMORROW, "startTime": "17:00"})

        assert text_ == f'I\'ll create a task "Dentist" for {TOMORROW} at 17:00. Please confirm.'

    def test_create_without_title(self):
        assert build_confirmation_text("create_task", {}) == 'I\'ll create a task "New task". Please confirm.'

    def test_delete(self):
        assert build_confirmation_text("delete_task", {"id": "t1"}) == "I'll delete this task. Please confirm."
