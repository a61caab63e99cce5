"""
Session context.

Identifies whose data the stores operate on and whether the remote
backend is reachable. A session is created at sign-in (or as an
anonymous local-only session) and handed to the stores explicitly.
"""

from typing import Optional

from pydantic import BaseModel, Field


class UserSession(BaseModel):
    user_id: Optional[str] = Field(
        default=None,
        description="Authenticated user id; None for the anonymous local-only session"
    )
    email: Optional[str] = None
    is_online: bool = Field(
        default=True,
        description="Whether the remote backend is currently reachable"
    )

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @classmethod
    def anonymous(cls) -> "UserSession":
        return cls()
