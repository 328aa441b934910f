"""Task tools exposed to the language model, bound to one authenticated user."""

import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any, Literal

import logfire
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_ai.tools import ToolDefinition

from grounded.core.config import constants
from grounded.core.db_client import DBClient
from grounded.core.time_parser import parse_date
from grounded.domain.task import Task
from grounded.services import task_service


logger = logging.getLogger(__name__)

# Bounds for a range given with only one end
_EARLIEST_DATE = "0001-01-01"
_LATEST_DATE = "9999-12-31"


class ToolName(StrEnum):
    """Closed set of tools the model may call."""

    SEARCH_TASKS = "search_tasks"
    PROPOSE_ACTION = "propose_action"


class SearchTasks(BaseModel):
    """Parameters for searching the user's tasks."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    query: str | None = Field(
        default=None,
        description="Keywords matched against task titles and descriptions. Leave empty to get all tasks.",
    )
    date: str | None = Field(default=None, description="Only tasks on this date (YYYY-MM-DD)")
    start_date: str | None = Field(
        default=None,
        alias="startDate",
        description="Range start (YYYY-MM-DD); without endDate, everything from this date on",
    )
    end_date: str | None = Field(
        default=None,
        alias="endDate",
        description="Range end (YYYY-MM-DD); without startDate, everything up to this date",
    )


class ProposedTaskData(BaseModel):
    """Task fields of a proposed modification."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str | None = Field(default=None, description="Exact task ID from search_tasks (required for update/delete)")
    title: str | None = Field(default=None, description="Task title")
    description: str | None = Field(default=None, description="Task description")
    date: str | None = Field(default=None, description="Task date (YYYY-MM-DD)")
    start_time: str | None = Field(default=None, alias="startTime", description="Start time (HH:MM)")
    end_time: str | None = Field(default=None, alias="endTime", description="End time (HH:MM)")
    tags: list[str] | None = Field(default=None, description="'grounded' for focus-mode tasks, else 'regular'")


class ProposeAction(BaseModel):
    """Parameters for proposing a task modification for user confirmation."""

    model_config = ConfigDict(extra="ignore")

    action: Literal["create_task", "update_task", "delete_task"] = Field(
        description="The type of modification to propose"
    )
    data: ProposedTaskData = Field(default_factory=ProposedTaskData, description="Task fields for the action")


PROPOSABLE_ACTIONS = ("create_task", "update_task", "delete_task")

# Flat snake_case argument names some models emit instead of the nested data object
_FLAT_ALIASES = {
    "task_id": "id",
    "start_time": "startTime",
    "end_time": "endTime",
}


def normalize_proposal_data(raw: dict[str, Any]) -> dict[str, Any]:
    """Fold flat or snake_case proposal arguments into the camelCase data contract.

    Accepts ``{"action", "data": {...}}`` as well as flat arguments such as
    ``{"action", "task_id", "start_time"}``. Keys with no value are dropped.
    """
    data: dict[str, Any] = {}
    nested = raw.get("data")
    if isinstance(nested, dict):
        data.update(nested)
    for key, value in raw.items():
        if key not in ("action", "data"):
            data.setdefault(key, value)

    for flat, canonical in _FLAT_ALIASES.items():
        if flat in data:
            value = data.pop(flat)
            data.setdefault(canonical, value)

    return {key: value for key, value in data.items() if value is not None}


def simplify_task(task: Task) -> dict[str, Any]:
    """Reduce a task to the fields the model and the chat UI need."""
    return {
        "id": task.id,
        "title": task.title,
        "date": task.date,
        "startTime": task.start_time,
        "description": task.description,
        "isCompleted": task.is_completed,
    }


def _tool_definition(name: ToolName, description: str, params: type[BaseModel]) -> ToolDefinition:
    return ToolDefinition(
        name=name.value,
        description=description,
        parameters_json_schema=params.model_json_schema(by_alias=True),
    )


TOOL_DEFINITIONS: list[ToolDefinition] = [
    _tool_definition(
        ToolName.SEARCH_TASKS,
        "Search for the user's tasks. Returns a list of tasks matching the criteria.",
        SearchTasks,
    ),
    _tool_definition(
        ToolName.PROPOSE_ACTION,
        "Propose a task modification (create, update, or delete) for user confirmation. Nothing is saved until "
        "the user confirms.",
        ProposeAction,
    ),
]


class ToolExecutor:
    """Runs tool calls on behalf of a single user.

    The user id is fixed at construction, so the model can never address
    another user's tasks.
    """

    def __init__(self, db: DBClient, user_id: str) -> None:
        self.db = db
        self.user_id = user_id
        self._handlers: dict[ToolName, Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]] = {
            ToolName.SEARCH_TASKS: self._run_search_tasks,
            ToolName.PROPOSE_ACTION: self._run_propose_action,
        }

    async def search_tasks(
        self,
        query: str | None = None,
        date: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict[str, Any]:
        """Search the user's live tasks.

        Dates may be ISO dates or datetimes. A range (either end may be left
        open) takes precedence over a single date; the query is then matched
        case-insensitively against title and description. At most
        ``SEARCH_RESULT_LIMIT`` results are returned.

        Returns:
            ``{"found", "tasks"}`` plus a ``message`` when nothing matched, or
            ``{"error"}`` if the lookup failed. Never raises.
        """
        day = parse_date(date)
        range_start = parse_date(start_date)
        range_end = parse_date(end_date)
        for raw, parsed in ((date, day), (start_date, range_start), (end_date, range_end)):
            if raw and parsed is None:
                return {"error": f"Invalid date: {raw}. Use YYYY-MM-DD."}

        with logfire.span("search_tasks", user_id=self.user_id, query=query, date=date):
            try:
                if range_start or range_end:
                    tasks = await task_service.list_user_tasks_in_range(
                        db=self.db,
                        user_id=self.user_id,
                        start_date=range_start.isoformat() if range_start else _EARLIEST_DATE,
                        end_date=range_end.isoformat() if range_end else _LATEST_DATE,
                    )
                elif day:
                    tasks = await task_service.list_user_tasks_for_date(
                        db=self.db, user_id=self.user_id, day=day.isoformat()
                    )
                else:
                    tasks = await task_service.list_user_tasks(db=self.db, user_id=self.user_id)

                needle = (query or "").strip().lower()
                if needle:
                    tasks = [
                        task
                        for task in tasks
                        if needle in task.title.lower() or needle in (task.description or "").lower()
                    ]

                results = [simplify_task(task) for task in tasks[: constants.SEARCH_RESULT_LIMIT]]
            except Exception as e:
                logger.exception("search_tasks_failed", extra={"user_id": self.user_id})
                return {"error": f"ERROR in search_tasks: {getattr(e, 'message', str(e))}"}

            logger.info("search_tasks_completed", extra={"user_id": self.user_id, "found": len(results)})
            if not results:
                return {"found": 0, "tasks": [], "message": f'No tasks found matching query "{query or ""}".'}
            return {"found": len(results), "tasks": results}

    def propose_action(self, action: str, data: dict[str, Any]) -> dict[str, Any]:
        """Wrap a proposed modification in an envelope. Nothing touches storage."""
        logger.info("action_proposed", extra={"user_id": self.user_id, "action": action})
        return {"action": action, "data": data, "isProposal": True}

    async def _run_search_tasks(self, args: dict[str, Any]) -> dict[str, Any]:
        try:
            params = SearchTasks.model_validate(args)
        except ValidationError as e:
            return {"error": f"Invalid arguments for search_tasks: {e.errors(include_url=False)}"}
        return await self.search_tasks(
            query=params.query,
            date=params.date,
            start_date=params.start_date,
            end_date=params.end_date,
        )

    async def _run_propose_action(self, args: dict[str, Any]) -> dict[str, Any]:
        action = str(args.get("action", ""))
        if action not in PROPOSABLE_ACTIONS:
            return {"error": f"Unsupported action: {action}. Use one of {', '.join(PROPOSABLE_ACTIONS)}."}
        return self.propose_action(action, normalize_proposal_data(args))

    async def execute(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        """Dispatch a tool call by name.

        Unknown tool names produce an error result for the model instead of an
        exception.
        """
        try:
            tool = ToolName(name)
        except ValueError:
            logger.warning("unsupported_tool", extra={"user_id": self.user_id, "tool_name": name})
            return {"error": f"Unsupported tool: {name}"}

        return await self._handlers[tool](args)
