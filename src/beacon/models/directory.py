"""Pydantic models for directory users."""

from pydantic import BaseModel, ConfigDict, Field


class DirectoryUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(..., min_length=1, max_length=200)
    display_name: str | None = None
    email: str | None = None
    phone: str | None = None
    role: str = Field(..., min_length=1, max_length=50)
    manager_id: str | None = None
    push_endpoint: str | None = None
    active: bool = True
