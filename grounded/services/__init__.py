from grounded.services import (
    chat_service,
    confirmation_service,
    streak_service,
    task_service,
    user_service,
)


__all__ = [
    "chat_service",
    "confirmation_service",
    "streak_service",
    "task_service",
    "user_service",
]
