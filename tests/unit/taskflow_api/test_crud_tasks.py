"""
Tests for the task CRUD functions, run against an in-memory SQLite db.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from taskflow_api.crud import tasks as crud_tasks
from taskflow_api.crud.comments import create_comment, get_comment_by_id
from taskflow_api.crud.projects import add_member, create_project
from taskflow_api.exceptions import BusinessLogicError, NotFoundError
from taskflow_api.models.tasks import TaskPriority, TaskStatus
from taskflow_api.schemas.comments import CommentCreate
from taskflow_api.schemas.pagination import PageParams
from taskflow_api.schemas.projects import ProjectCreate
from taskflow_api.schemas.tasks import TaskCreate, TaskResponse, TaskUpdate

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def setup(db, make_user):
    """A project owned by "owner" with "member" as member, and "outsider" who is not involved."""
    owner = await make_user("owner")
    member = await make_user("member")
    outsider = await make_user("outsider")
    project = await create_project(
        db=db, project_data=ProjectCreate(name="Apollo", member_ids={member.id}), owner_id=owner.id
    )
    return {"owner": owner, "member": member, "outsider": outsider, "project": project}


async def _task(db, setup, title="Task", reporter="owner", **kwargs):
    return await crud_tasks.create_task(
        db=db,
        task_data=TaskCreate(title=title, project_id=setup["project"].id, **kwargs),
        reporter_id=setup[reporter].id,
    )


@pytest.mark.asyncio
async def test_create_task_defaults(db, setup):
    task = await _task(db, setup, title="Launch", description="3, 2, 1...")

    assert task.status == TaskStatus.TODO
    assert task.priority == TaskPriority.MEDIUM
    assert task.reporter_id == setup["owner"].id
    assert task.assignee_id is None
    assert task.project.name == "Apollo"

    response = TaskResponse.model_validate(task)
    assert response.reporter.username == "owner"
    assert response.assignee is None


@pytest.mark.asyncio
async def test_create_task_does_not_check_workflow(db, setup):
    task = await _task(db, setup, status=TaskStatus.DONE, priority=TaskPriority.CRITICAL)
    assert task.status == TaskStatus.DONE
    assert task.priority == TaskPriority.CRITICAL


@pytest.mark.asyncio
async def test_non_member_cannot_create_task_until_added(db, setup):
    with pytest.raises(BusinessLogicError, match="Cannot access project: user is not a member or owner"):
        await _task(db, setup, reporter="outsider")

    await add_member(db=db, project_id=setup["project"].id, user_id=setup["outsider"].id)

    task = await _task(db, setup, reporter="outsider")
    assert task.status == TaskStatus.TODO
    assert task.reporter_id == setup["outsider"].id


@pytest.mark.asyncio
async def test_assignee_must_access_project(db, setup):
    task = await _task(db, setup, assignee_id=setup["member"].id)
    assert task.assignee.username == "member"

    with pytest.raises(BusinessLogicError):
        await _task(db, setup, assignee_id=setup["outsider"].id)
    with pytest.raises(NotFoundError):
        await _task(db, setup, assignee_id=uuid.uuid4())


@pytest.mark.asyncio
async def test_create_task_unknown_project(db, setup):
    with pytest.raises(NotFoundError, match="Project not found"):
        await crud_tasks.create_task(
            db=db, task_data=TaskCreate(title="Task", project_id=uuid.uuid4()), reporter_id=setup["owner"].id
        )


@pytest.mark.asyncio
async def test_update_task_status_follows_workflow(db, setup):
    task = await _task(db, setup)

    task = await crud_tasks.update_task(db=db, task_id=task.id, task_data=TaskUpdate(status=TaskStatus.IN_PROGRESS))
    assert task.status == TaskStatus.IN_PROGRESS

    with pytest.raises(BusinessLogicError, match="invalid transition from IN_PROGRESS to DONE"):
        await crud_tasks.update_task(db=db, task_id=task.id, task_data=TaskUpdate(status=TaskStatus.DONE))

    task = await crud_tasks.get_task_by_id_or_raise(db=db, task_id=task.id)
    assert task.status == TaskStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_update_task_fields_and_assignee(db, setup):
    task = await _task(db, setup)

    task = await crud_tasks.update_task(
        db=db,
        task_id=task.id,
        task_data=TaskUpdate(title="Renamed", priority=TaskPriority.HIGH, assignee_id=setup["member"].id),
    )
    assert task.title == "Renamed"
    assert task.priority == TaskPriority.HIGH
    assert task.assignee_id == setup["member"].id
    assert task.status == TaskStatus.TODO

    with pytest.raises(BusinessLogicError):
        await crud_tasks.update_task(db=db, task_id=task.id, task_data=TaskUpdate(assignee_id=setup["outsider"].id))


@pytest.mark.asyncio
async def test_failed_update_writes_nothing(db, setup):
    task = await _task(db, setup)

    with pytest.raises(BusinessLogicError):
        await crud_tasks.update_task(
            db=db, task_id=task.id, task_data=TaskUpdate(title="Changed", status=TaskStatus.DONE)
        )
    await db.rollback()
    await db.refresh(task)
    assert task.title == "Task"


@pytest.mark.asyncio
async def test_assign_unassign(db, setup):
    task = await _task(db, setup)

    task = await crud_tasks.assign_task(db=db, task_id=task.id, assignee_id=setup["member"].id)
    assert task.assignee.username == "member"

    with pytest.raises(BusinessLogicError):
        await crud_tasks.assign_task(db=db, task_id=task.id, assignee_id=setup["outsider"].id)

    task = await crud_tasks.unassign_task(db=db, task_id=task.id)
    assert task.assignee_id is None
    assert task.assignee is None


@pytest.mark.asyncio
async def test_update_status_and_priority(db, setup):
    task = await _task(db, setup)

    for status in [TaskStatus.IN_PROGRESS, TaskStatus.IN_REVIEW, TaskStatus.DONE, TaskStatus.IN_REVIEW]:
        task = await crud_tasks.update_task_status(db=db, task_id=task.id, status=status)
        assert task.status == status

    with pytest.raises(BusinessLogicError):
        await crud_tasks.update_task_status(db=db, task_id=task.id, status=TaskStatus.TODO)

    task = await crud_tasks.update_task_priority(db=db, task_id=task.id, priority=TaskPriority.LOW)
    assert task.priority == TaskPriority.LOW


@pytest.mark.asyncio
async def test_delete_task(db, setup):
    task = await _task(db, setup)
    comment = await create_comment(
        db=db, task_id=task.id, comment_data=CommentCreate(content="Hi"), author_id=setup["owner"].id
    )
    task_id, comment_id = task.id, comment.id

    await crud_tasks.delete_task(db=db, task_id=task_id)
    db.expunge_all()

    assert await crud_tasks.get_task_by_id(db=db, task_id=task_id) is None
    assert await get_comment_by_id(db=db, comment_id=comment_id) is None


@pytest.mark.asyncio
async def test_in_progress_task_cannot_be_deleted(db, setup):
    task = await _task(db, setup)
    await crud_tasks.update_task_status(db=db, task_id=task.id, status=TaskStatus.IN_PROGRESS)

    with pytest.raises(BusinessLogicError, match="Cannot delete task: task is currently in progress"):
        await crud_tasks.delete_task(db=db, task_id=task.id)
    assert await crud_tasks.get_task_by_id(db=db, task_id=task.id) is not None

    await crud_tasks.update_task_status(db=db, task_id=task.id, status=TaskStatus.CANCELLED)
    await crud_tasks.delete_task(db=db, task_id=task.id)


@pytest.mark.asyncio
async def test_queries_by_project_assignee_status(db, setup):
    member_id = setup["member"].id
    first = await _task(db, setup, title="First", assignee_id=member_id)
    await _task(db, setup, title="Second", assignee_id=member_id, status=TaskStatus.DONE)
    await _task(db, setup, title="Third", priority=TaskPriority.HIGH)
    project_id = setup["project"].id

    def titles(tasks):
        return sorted(task.title for task in tasks)

    assert titles(await crud_tasks.get_tasks_by_project(db=db, project_id=project_id)) == ["First", "Second", "Third"]
    assert titles(
        await crud_tasks.get_tasks_by_project_and_status(db=db, project_id=project_id, status=TaskStatus.DONE)
    ) == ["Second"]
    assert titles(
        await crud_tasks.get_tasks_by_project_and_assignee(db=db, project_id=project_id, assignee_id=member_id)
    ) == ["First", "Second"]
    assert titles(await crud_tasks.get_tasks_by_assignee(db=db, assignee_id=member_id)) == ["First", "Second"]
    assert titles(
        await crud_tasks.get_tasks_by_assignee(db=db, assignee_id=member_id, status=TaskStatus.TODO)
    ) == ["First"]
    assert [task.id for task in await crud_tasks.get_active_tasks_by_assignee(db=db, assignee_id=member_id)] == [
        first.id
    ]
    assert titles(await crud_tasks.get_tasks_by_status(db=db, status=TaskStatus.TODO)) == ["First", "Third"]
    assert titles(await crud_tasks.get_tasks_by_priority(db=db, priority=TaskPriority.HIGH)) == ["Third"]

    assert await crud_tasks.count_tasks(db=db) == 3
    assert await crud_tasks.count_tasks(db=db, status=TaskStatus.TODO) == 2
    assert await crud_tasks.count_tasks(db=db, status=TaskStatus.DONE, assignee_id=member_id) == 1
    assert await crud_tasks.count_active_tasks_by_assignee(db=db, assignee_id=member_id) == 1

    assert await crud_tasks.get_task_status_statistics_by_project(db=db, project_id=project_id) == {
        TaskStatus.TODO: 2,
        TaskStatus.DONE: 1,
    }
    assert await crud_tasks.get_task_priority_statistics_by_project(db=db, project_id=project_id) == {
        TaskPriority.MEDIUM: 2,
        TaskPriority.HIGH: 1,
    }


@pytest.mark.asyncio
async def test_active_tasks_ordered_by_priority(db, setup):
    member_id = setup["member"].id
    await _task(db, setup, title="Low", assignee_id=member_id, priority=TaskPriority.LOW)
    await _task(db, setup, title="Critical", assignee_id=member_id, priority=TaskPriority.CRITICAL)
    await _task(db, setup, title="Medium", assignee_id=member_id)

    active = await crud_tasks.get_active_tasks_by_assignee(db=db, assignee_id=member_id)
    assert [task.title for task in active] == ["Critical", "Medium", "Low"]


@pytest.mark.asyncio
async def test_paginated_tasks(db, setup):
    for i in range(5):
        await _task(db, setup, title=f"Task {i}")

    page = await crud_tasks.get_tasks_by_project_paginated(
        db=db, project_id=setup["project"].id, page_params=PageParams(page=2, size=2)
    )
    assert len(page.content) == 1
    assert page.total_elements == 5
    assert page.total_pages == 3
    assert page.last

    all_tasks = await crud_tasks.get_all_tasks(db=db, page_params=PageParams(page=0, size=10))
    assert all_tasks.total_elements == 5


@pytest.mark.asyncio
async def test_due_date_queries(db, setup):
    await _task(db, setup, title="Overdue", due_date=NOW - timedelta(days=1), assignee_id=setup["member"].id)
    await _task(db, setup, title="Overdue but done", due_date=NOW - timedelta(days=1), status=TaskStatus.DONE)
    await _task(db, setup, title="Overdue but cancelled", due_date=NOW - timedelta(days=1), status=TaskStatus.CANCELLED)
    await _task(db, setup, title="Due soon", due_date=NOW + timedelta(days=1))
    await _task(db, setup, title="No due date")

    assert [task.title for task in await crud_tasks.get_overdue_tasks(db=db, now=NOW)] == ["Overdue"]
    assert [
        task.title for task in await crud_tasks.get_overdue_tasks(db=db, assignee_id=setup["owner"].id, now=NOW)
    ] == []
    assert [
        task.title
        for task in await crud_tasks.get_tasks_with_due_date_between(db=db, start=NOW, end=NOW + timedelta(days=2))
    ] == ["Due soon"]
    assert len(await crud_tasks.get_tasks_with_due_date_before(db=db, due_date=NOW)) == 3


@pytest.mark.asyncio
async def test_search_tasks(db, setup, make_user):
    await _task(db, setup, title="Fix login bug", description="Users are locked out")
    await _task(db, setup, title="Write docs")

    other_owner = await make_user("other")
    other_project = await create_project(db=db, project_data=ProjectCreate(name="Other"), owner_id=other_owner.id)
    await crud_tasks.create_task(
        db=db, task_data=TaskCreate(title="Another login bug", project_id=other_project.id), reporter_id=other_owner.id
    )

    assert len(await crud_tasks.search_tasks(db=db, search="LOGIN")) == 2
    assert [task.title for task in await crud_tasks.search_tasks(db=db, search="locked")] == ["Fix login bug"]
    in_project = await crud_tasks.search_tasks(db=db, search="login", project_id=setup["project"].id)
    assert [task.title for task in in_project] == ["Fix login bug"]


@pytest.mark.asyncio
async def test_assignee_workload_by_project(db, setup):
    owner_id, member_id = setup["owner"].id, setup["member"].id
    await _task(db, setup, title="A", assignee_id=member_id)
    await _task(db, setup, title="B", assignee_id=member_id, status=TaskStatus.IN_REVIEW)
    await _task(db, setup, title="C", assignee_id=member_id, status=TaskStatus.DONE)
    await _task(db, setup, title="D", assignee_id=owner_id, status=TaskStatus.IN_PROGRESS)
    await _task(db, setup, title="E", assignee_id=owner_id, status=TaskStatus.CANCELLED)
    await _task(db, setup, title="Unassigned")

    workload = await crud_tasks.get_assignee_workload_by_project(db=db, project_id=setup["project"].id)
    assert workload == {member_id: 2, owner_id: 1}
    assert await crud_tasks.get_assignee_workload_by_project(db=db, project_id=uuid.uuid4()) == {}
