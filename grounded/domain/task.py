"""Task and subtask domain models."""

import json
from datetime import date
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator


class TaskTag(StrEnum):
    """Known task classification labels."""

    REGULAR = "regular"  # Routine task
    GROUNDED = "grounded"  # Focus-mode task


# Unrecognised tags are kept verbatim so client data survives a round trip
Tag = TaskTag | str | dict[str, Any]


class Weekday(StrEnum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


class NoRecurrence(BaseModel):
    """One-off task."""

    type: Literal["none"] = "none"


class DailyRecurrence(BaseModel):
    """Repeats every day, optionally until a date."""

    type: Literal["daily"] = "daily"
    until: date | None = None


class WeeklyRecurrence(BaseModel):
    """Repeats on the given weekdays, optionally until a date."""

    type: Literal["weekly"] = "weekly"
    weekdays: list[Weekday] = Field(default_factory=list)
    until: date | None = None


class UnknownRecurrence(BaseModel):
    """Recurrence payload in a shape this service does not interpret."""

    type: Literal["unknown"] = "unknown"
    raw: dict[str, Any] = Field(default_factory=dict)


KnownRecurrence = Annotated[
    NoRecurrence | DailyRecurrence | WeeklyRecurrence,
    Field(discriminator="type"),
]
Recurrence = NoRecurrence | DailyRecurrence | WeeklyRecurrence | UnknownRecurrence

_known_recurrence_adapter: TypeAdapter[NoRecurrence | DailyRecurrence | WeeklyRecurrence] = TypeAdapter(
    KnownRecurrence
)


def parse_recurrence(value: Any) -> Recurrence:
    """Parse a stored or client-supplied recurrence descriptor.

    ``None``, ``{}`` and ``"none"`` mean no recurrence. Anything that does not
    match a known variant is preserved as ``UnknownRecurrence``.
    """
    if isinstance(value, NoRecurrence | DailyRecurrence | WeeklyRecurrence | UnknownRecurrence):
        return value
    if isinstance(value, str):
        if value.strip().lower() in ("", "none"):
            return NoRecurrence()
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return UnknownRecurrence(raw={"value": value})
    if not value:
        return NoRecurrence()
    if not isinstance(value, dict):
        return UnknownRecurrence(raw={"value": value})
    if value.get("type") == "unknown":
        return UnknownRecurrence(raw=value.get("raw") or {})

    try:
        return _known_recurrence_adapter.validate_python(value)
    except ValidationError:
        return UnknownRecurrence(raw=value)


def dump_recurrence(recurrence: Recurrence) -> dict[str, Any]:
    """Serialise a recurrence for storage. Unknown payloads are written back untouched."""
    if isinstance(recurrence, UnknownRecurrence):
        return recurrence.raw
    if isinstance(recurrence, NoRecurrence):
        return {}
    return recurrence.model_dump(mode="json", exclude_none=True)


def parse_tags(value: Any) -> list[Tag]:
    """Parse tags from JSON text or a list, mapping known labels onto TaskTag."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            value = [value]
    if not isinstance(value, list):
        value = [value]

    tags: list[Tag] = []
    for item in value:
        if isinstance(item, str) and item.lower() in TaskTag._value2member_map_:
            tags.append(TaskTag(item.lower()))
        else:
            tags.append(item)
    return tags


class Subtask(BaseModel):
    """Subtask data transfer object."""

    id: str = Field(..., description="Unique subtask ID")
    task_id: str = Field(..., description="Parent task ID")
    title: str = Field(..., description="Subtask title")
    is_completed: bool = Field(default=False, description="Completion flag")
    order_index: int = Field(default=0, description="Display order (not necessarily contiguous)")
    created_at: str | None = Field(default=None, description="Creation timestamp (ISO format)")
    updated_at: str | None = Field(default=None, description="Last update timestamp (ISO format)")


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID")
    user_id: str = Field(..., description="Owner's firebase uid")
    title: str = Field(..., description="Task title")
    description: str | None = Field(default=None, description="Detailed task description")
    date: str = Field(..., description="Task date (YYYY-MM-DD)")
    start_time: str = Field(..., description="Start time (HH:MM)")
    end_time: str = Field(..., description="End time (HH:MM)")
    tags: list[Tag] = Field(default_factory=list, description="Classification labels")
    recurrence: Recurrence = Field(default_factory=NoRecurrence, description="Recurrence descriptor")
    is_completed: bool = Field(default=False, description="Completion flag")
    is_deleted: bool = Field(default=False, description="Soft-deletion flag")
    created_at: str | None = Field(default=None, description="Creation timestamp (ISO format)")
    updated_at: str | None = Field(default=None, description="Last update timestamp (ISO format)")
    subtasks: list[Subtask] = Field(default_factory=list, description="Subtasks ordered by order_index")

    @field_validator("tags", mode="before")
    @classmethod
    def decode_tags(cls, v: Any) -> list[Tag]:
        return parse_tags(v)

    @field_validator("recurrence", mode="before")
    @classmethod
    def decode_recurrence(cls, v: Any) -> Recurrence:
        return parse_recurrence(v)


class SubtaskCreate(BaseModel):
    """Payload for creating a subtask."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., min_length=1, description="Subtask title")
    is_completed: bool = False
    order_index: int = 0


class SubtaskUpdate(BaseModel):
    """Partial subtask update; unset fields are left unchanged."""

    model_config = ConfigDict(extra="ignore")

    title: str | None = Field(default=None, min_length=1)
    is_completed: bool | None = None
    order_index: int | None = None


class TaskCreate(BaseModel):
    """Payload for creating a task. Missing scheduling fields are defaulted at the store."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., min_length=1, description="Task title")
    description: str | None = None
    date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    tags: list[Tag] = Field(default_factory=list)
    recurrence: Recurrence = Field(default_factory=NoRecurrence)
    is_completed: bool = False
    subtasks: list[SubtaskCreate] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def decode_tags(cls, v: Any) -> list[Tag]:
        return parse_tags(v)

    @field_validator("recurrence", mode="before")
    @classmethod
    def decode_recurrence(cls, v: Any) -> Recurrence:
        return parse_recurrence(v)


class TaskUpdate(BaseModel):
    """Partial task update.

    Only fields present in the payload are written (``model_dump(exclude_unset=True)``).
    A ``subtasks`` list replaces every existing subtask of the task.
    """

    model_config = ConfigDict(extra="ignore")

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    tags: list[Tag] | None = None
    recurrence: Recurrence | None = None
    is_completed: bool | None = None
    subtasks: list[SubtaskCreate] | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def decode_tags(cls, v: Any) -> list[Tag] | None:
        return None if v is None else parse_tags(v)

    @field_validator("recurrence", mode="before")
    @classmethod
    def decode_recurrence(cls, v: Any) -> Recurrence | None:
        return None if v is None else parse_recurrence(v)


class SyncTaskItem(TaskUpdate):
    """One entry of the offline sync queue sent by the mobile client."""

    id: str | None = None
    is_deleted: bool = False


class SyncResult(BaseModel):
    """Outcome of a batch sync."""

    created: list[Task] = Field(default_factory=list)
    updated: list[Task] = Field(default_factory=list)
    deleted: list[dict[str, str]] = Field(default_factory=list)
    errors: list[dict[str, Any]] = Field(default_factory=list)
