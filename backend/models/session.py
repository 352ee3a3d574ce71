"""Session model: who is acting."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SessionContext(BaseModel):
    """
    The authenticated user a controller or gateway call acts for.

    Passed explicitly to every Page Controller and gateway operation. Nothing
    reads the current user from ambient state.
    """

    model_config = {"frozen": True}

    user_id: str = Field(min_length=1)
    name: str = ""
    avatar_url: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or "Unknown User"
