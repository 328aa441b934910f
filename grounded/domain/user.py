"""User domain models."""

from pydantic import BaseModel, Field, model_validator


class AuthenticatedUser(BaseModel):
    """Identity returned by the identity provider for a verified bearer token."""

    uid: str = Field(..., description="Firebase uid, the tenant key for every operation")
    email: str | None = Field(default=None, description="Verified email address")
    name: str | None = Field(default=None, description="Display name, if the provider has one")


class User(BaseModel):
    """User data transfer object."""

    id: str = Field(..., description="Unique user ID")
    firebase_uid: str = Field(..., description="External identity provider uid")
    email: str | None = Field(default=None, description="Email address")
    display_name: str | None = Field(default=None, description="Display name of the user")
    current_streak: int = Field(default=0, ge=0, description="Consecutive fully-completed days")
    longest_streak: int = Field(default=0, ge=0, description="Best streak ever reached")
    last_streak_date: str | None = Field(default=None, description="Last date counted toward the streak")
    created_at: str | None = Field(default=None, description="Creation timestamp (ISO format)")
    updated_at: str | None = Field(default=None, description="Last update timestamp (ISO format)")

    @model_validator(mode="after")
    def validate_streak_order(self) -> "User":
        """Current streak can never exceed the longest streak."""
        if self.current_streak > self.longest_streak:
            msg = "current_streak cannot exceed longest_streak"
            raise ValueError(msg)
        return self
