"""
Project DB Model.
"""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Column, DateTime, ForeignKey, String, Table, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskflow_api.models.base import Base, BaseDBModel
from taskflow_api.models.users import UserDB


class ProjectStatus(StrEnum):
    ACTIVE = "ACTIVE"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


# Many-to-many between users and projects.
# ondelete=cascade ensures if user or project is deleted, their memberships are also deleted.
project_member_table = Table(
    "project_member",
    Base.metadata,
    Column("project_id", Uuid, ForeignKey("project.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid, ForeignKey("user.id", ondelete="CASCADE"), primary_key=True),
)


class ProjectDB(BaseDBModel):
    """
    DB Model for a project.

    id, created_at and updated_at are inherited from BaseDBModel.

    owner and members are always loaded together with the project (lazy="selectin"),
    as nearly every authorization check needs them.
    The owner may also be in members, access checks treat both the same.
    """

    __tablename__ = "project"

    name: Mapped[str] = mapped_column(String(100), index=True)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[ProjectStatus] = mapped_column(index=True, default=ProjectStatus.ACTIVE)
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    owner_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), index=True)
    owner: Mapped[UserDB] = relationship(UserDB, lazy="selectin")
    members: Mapped[list[UserDB]] = relationship(UserDB, secondary=project_member_table, lazy="selectin")

    def has_member(self, user_id: uuid.UUID) -> bool:
        return any(member.id == user_id for member in self.members)

    def __repr__(self) -> str:
        return f"<ProjectDB id={self.id}, name={self.name}, status={self.status}, owner_id={self.owner_id}>"
