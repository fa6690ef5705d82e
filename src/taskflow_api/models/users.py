"""
User DB Model.
"""

from enum import StrEnum

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from taskflow_api.models.base import BaseDBModel


class Role(StrEnum):
    """
    System wide roles of a user.

    Roles are embedded in access tokens when issued (see security.py).
    """

    USER = "USER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


class UserDB(BaseDBModel):
    """
    DB Model for a user.

    id, created_at and updated_at are inherited from BaseDBModel.

    Roles are stored as a JSON list of Role values. Always assign a new list
    when changing roles so SQLAlchemy picks up the change.
    """

    __tablename__ = "user"

    username: Mapped[str] = mapped_column(String(50), index=True, unique=True)
    email: Mapped[str] = mapped_column(String(100), index=True, unique=True)
    hashed_password: Mapped[str] = mapped_column(String(256))
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    roles: Mapped[list[Role]] = mapped_column(JSON, default=lambda: [Role.USER.value])
    enabled: Mapped[bool] = mapped_column(default=True)

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    def __repr__(self) -> str:
        return f"<UserDB id={self.id}, username={self.username}, email={self.email}, roles={self.roles}>"
