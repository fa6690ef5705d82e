"""
Pydantic schemas for user-related operations.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, SecretStr, field_validator

from taskflow_api.models.users import Role


class UserBase(BaseModel):
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr = Field(..., max_length=100)
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)

    model_config = ConfigDict(from_attributes=True, str_strip_whitespace=True)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v):
        return v.lower() if v else v


class UserCreate(UserBase):
    password: SecretStr = Field(..., min_length=8, max_length=100)
    roles: set[Role] | None = None


class UserUpdate(BaseModel):
    """Partial update, only fields that are set are changed."""

    username: str | None = Field(None, min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr | None = Field(None, max_length=100)
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    roles: set[Role] | None = None
    enabled: bool | None = None

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v):
        return v.lower() if v else v


class UserPasswordUpdate(BaseModel):
    """Schema for a user to update their own password."""

    current_password: SecretStr = Field(..., min_length=1, max_length=100)
    new_password: SecretStr = Field(..., min_length=8, max_length=100)


class UserSummary(BaseModel):
    """Short form of a user, embedded in other responses."""

    id: uuid.UUID
    username: str
    email: str
    first_name: str | None = None
    last_name: str | None = None

    model_config = ConfigDict(from_attributes=True)


class UserResponse(UserSummary):
    """Response schema, aka returned by API endpoints."""

    roles: set[Role]
    enabled: bool
    created_at: datetime
    updated_at: datetime
