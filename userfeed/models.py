"""
Domain models for users fetched from the upstream API.
"""

from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    """A user record. Immutable; identity is ``id``."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    first_name: str
    last_name: str
    avatar_url: str


class Page(BaseModel):
    """One page of the upstream user listing. Never cached on its own."""

    items: list[User] = Field(default_factory=list)
    page_number: int = Field(ge=1)
    total_pages: int = Field(ge=0)
    per_page: int = 0
    total: int = 0
