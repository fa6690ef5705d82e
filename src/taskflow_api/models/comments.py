"""
Comment DB Model.
"""

import uuid

from sqlalchemy import ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskflow_api.models.base import BaseDBModel
from taskflow_api.models.tasks import TaskDB
from taskflow_api.models.users import UserDB


class CommentDB(BaseDBModel):
    """
    DB Model for a comment on a task.

    id, created_at and updated_at are inherited from BaseDBModel.

    The author is fixed once created, only they may edit or delete the comment.
    """

    __tablename__ = "comment"

    content: Mapped[str] = mapped_column(Text)

    task_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("task.id", ondelete="CASCADE"), index=True)
    author_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), index=True)

    task: Mapped[TaskDB] = relationship(TaskDB, lazy="selectin")
    author: Mapped[UserDB] = relationship(UserDB, lazy="selectin")

    def __repr__(self) -> str:
        return f"<CommentDB id={self.id}, task_id={self.task_id}, author_id={self.author_id}>"
