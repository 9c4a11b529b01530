"""
Auth session models.

The auth routes speak camelCase JSON; models accept both the wire names and
the Python field names.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class AuthModel(BaseModel):
    """Base for auth payload models."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ClubInfo(AuthModel):
    """Club the signed-in user belongs to."""

    id: str
    name: str
    slug: str


class AuthUser(AuthModel):
    """The authenticated user."""

    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: str = ""
    permissions: List[str] = Field(default_factory=list)
    club_id: Optional[str] = None
    club: Optional[ClubInfo] = None

    @field_validator("permissions", mode="before")
    @classmethod
    def default_permissions(cls, v: Optional[List[str]]) -> List[str]:
        return v or []

    @model_validator(mode="after")
    def fill_club_id(self) -> "AuthUser":
        """Derive ``club_id`` from the nested club when only the club is sent."""
        if self.club_id is None and self.club is not None:
            self.club_id = self.club.id
        return self

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class LoginCredentials(AuthModel):
    """Sign-in request body."""

    email: str
    password: str


class RefreshResponse(AuthModel):
    """Session lifetime returned by sign-in and refresh."""

    expires_in: int = Field(description="Seconds until the access token expires")
    expires_at: int = Field(description="Expiry as a Unix timestamp")


class SignInResponse(RefreshResponse):
    """Result of a successful sign-in."""

    user: AuthUser
