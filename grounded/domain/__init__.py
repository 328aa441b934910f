"""Domain models and DTOs."""

from grounded.domain.chat import (
    ChatHistory,
    ChatMessage,
    ChatSession,
    ChatSessionCreate,
    ChatSessionUpdate,
    PendingProposal,
    ProposalAction,
    ProposalStatus,
    RecentChat,
)
from grounded.domain.task import (
    DailyRecurrence,
    NoRecurrence,
    Recurrence,
    Subtask,
    SubtaskCreate,
    SubtaskUpdate,
    SyncResult,
    SyncTaskItem,
    Task,
    TaskCreate,
    TaskTag,
    TaskUpdate,
    UnknownRecurrence,
    WeeklyRecurrence,
    parse_recurrence,
)
from grounded.domain.user import AuthenticatedUser, User


__all__ = [
    "AuthenticatedUser",
    "ChatHistory",
    "ChatMessage",
    "ChatSession",
    "ChatSessionCreate",
    "ChatSessionUpdate",
    "DailyRecurrence",
    "NoRecurrence",
    "PendingProposal",
    "ProposalAction",
    "ProposalStatus",
    "RecentChat",
    "Recurrence",
    "Subtask",
    "SubtaskCreate",
    "SubtaskUpdate",
    "SyncResult",
    "SyncTaskItem",
    "Task",
    "TaskCreate",
    "TaskTag",
    "TaskUpdate",
    "UnknownRecurrence",
    "User",
    "WeeklyRecurrence",
    "parse_recurrence",
]
