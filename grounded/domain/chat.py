"""Chat session, message and proposal domain models."""

import json
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProposalAction(StrEnum):
    """Task mutations the assistant can propose."""

    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    DELETE_TASK = "delete_task"
    CREATE_SUBTASK = "create_subtask"


class ProposalStatus(StrEnum):
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PendingProposal(BaseModel):
    """A task mutation awaiting explicit user confirmation.

    Embedded in a chat message. Moves from proposed to confirmed or cancelled
    exactly once.
    """

    action: ProposalAction = Field(..., description="Kind of mutation")
    data: dict[str, Any] = Field(default_factory=dict, description="Proposed task fields")
    confirmed: bool = Field(default=False, description="User accepted the proposal")
    cancelled: bool = Field(default=False, description="User rejected the proposal")

    @property
    def status(self) -> ProposalStatus:
        if self.confirmed:
            return ProposalStatus.CONFIRMED
        if self.cancelled:
            return ProposalStatus.CANCELLED
        return ProposalStatus.PROPOSED

    @property
    def is_resolved(self) -> bool:
        return self.status != ProposalStatus.PROPOSED


def _decode_json(value: Any) -> Any:
    if isinstance(value, str):
        if not value:
            return None
        return json.loads(value)
    return value


class ChatMessage(BaseModel):
    """Chat message data transfer object."""

    id: str = Field(..., description="Unique message ID")
    session_id: str = Field(..., description="Owning session ID")
    text: str = Field(..., description="Message text")
    is_user: bool = Field(..., description="True when sent by the user, False for the assistant")
    confirmation: PendingProposal | None = Field(default=None, description="Pending proposal, if any")
    tasks: list[dict[str, Any]] | None = Field(default=None, description="Attached task search results")
    created_at: str | None = Field(default=None, description="Creation timestamp (ISO format)")

    @field_validator("confirmation", "tasks", mode="before")
    @classmethod
    def decode_json_columns(cls, v: Any) -> Any:
        return _decode_json(v)


class ChatSession(BaseModel):
    """Chat session data transfer object."""

    id: str = Field(..., description="Unique session ID")
    user_id: str = Field(..., description="Owner's firebase uid")
    title: str = Field(..., description="Session title")
    is_active: bool = Field(default=False, description="At most one session per user is active")
    created_at: str | None = Field(default=None, description="Creation timestamp (ISO format)")
    updated_at: str | None = Field(default=None, description="Last update timestamp (ISO format)")
    messages: list[ChatMessage] | None = Field(default=None, description="Messages, oldest first")


class ChatSessionCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str | None = None


class ChatSessionUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str | None = Field(default=None, min_length=1)
    is_active: bool | None = None


class RecentChat(BaseModel):
    """A query the user sent recently, deduplicated per user."""

    id: str
    user_id: str
    query: str
    created_at: str | None = None


class ChatHistory(BaseModel):
    """Sessions plus recent queries, as shown on the chat history screen."""

    model_config = ConfigDict(populate_by_name=True)

    sessions: list[ChatSession] = Field(default_factory=list)
    recent_chats: list[str] = Field(default_factory=list, serialization_alias="recentChats")
