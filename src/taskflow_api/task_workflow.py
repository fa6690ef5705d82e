"""
Task status workflow.

Happy path is TODO -> IN_PROGRESS -> IN_REVIEW -> DONE. In addition:
- work can be sent back (IN_PROGRESS -> TODO, IN_REVIEW -> IN_PROGRESS)
- DONE tasks can be reopened for review (DONE -> IN_REVIEW)
- TODO and IN_PROGRESS tasks can be cancelled, and cancelled tasks reactivated to TODO.

Only status updates are checked against this table. A task can be created in any status.
"""

from taskflow_api.exceptions import BusinessLogicError
from taskflow_api.models.tasks import TaskDB, TaskStatus

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.TODO: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.IN_REVIEW, TaskStatus.TODO, TaskStatus.CANCELLED}),
    TaskStatus.IN_REVIEW: frozenset({TaskStatus.DONE, TaskStatus.IN_PROGRESS}),
    TaskStatus.DONE: frozenset({TaskStatus.IN_REVIEW}),
    TaskStatus.CANCELLED: frozenset({TaskStatus.TODO}),
}


def allowed_transitions(current_status: TaskStatus) -> frozenset[TaskStatus]:
    return ALLOWED_TRANSITIONS[TaskStatus(current_status)]


def can_transition(current_status: TaskStatus, new_status: TaskStatus) -> bool:
    """Self transitions (e.g. TODO -> TODO) are not in the table, so are not allowed."""
    return TaskStatus(new_status) in allowed_transitions(current_status)


def validate_status_transition(current_status: TaskStatus, new_status: TaskStatus) -> None:
    if not can_transition(current_status, new_status):
        raise BusinessLogicError(
            "change task status",
            f"invalid transition from {TaskStatus(current_status)} to {TaskStatus(new_status)}",
        )


def ensure_task_deletable(task: TaskDB) -> None:
    """A task that is in progress has to be moved out of progress before it can be deleted."""
    if task.status == TaskStatus.IN_PROGRESS:
        raise BusinessLogicError("delete task", "task is currently in progress")
