"""
Query layer tests: filters, sorting, pagination and stats.
"""

import uuid
from datetime import datetime, timedelta

import pytest

from conftest import make_crew, make_role, make_task
from reeltask.exceptions import ValidationError
from reeltask.models import TaskCategory, TaskStatus

NOW = datetime(2026, 3, 2, 9, 0)


class TestFilters:

    @pytest.mark.asyncio
    async def test_escalated_sorted_by_due_date_nulls_last(self, test_session, task_engine, project):
        late = await make_task(
            test_session, project, task_order=1,
            status=TaskStatus.ESCALATED, expected_end_time=NOW + timedelta(days=2),
        )
        undated = await make_task(test_session, project, task_order=2, status=TaskStatus.ESCALATED)
        early = await make_task(
            test_session, project, task_order=3,
            status=TaskStatus.ESCALATED, expected_end_time=NOW - timedelta(days=1),
        )
        await make_task(
            test_session, project, task_order=4,
            status=TaskStatus.ONGOING, expected_end_time=NOW - timedelta(days=5),
        )

        page = await task_engine.list_tasks(
            project.id,
            filters={"status": "escalated"},
            sort={"key": "due_date", "direction": "asc"},
        )

        assert [t.id for t in page.items] == [early.id, late.id, undated.id]
        assert page.total_count == 3

        descending = await task_engine.list_tasks(
            project.id,
            filters={"escalated_only": True},
            sort={"key": "due_date", "direction": "desc"},
        )
        assert [t.id for t in descending.items] == [late.id, early.id, undated.id]

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, test_session, task_engine, project):
        match = await make_task(test_session, project, task_order=1, name="Pre-light Stage B")
        by_step = await make_task(test_session, project, task_order=2, name="Run cables", step_name="STAGE b rig")
        await make_task(test_session, project, task_order=3, name="Catering")

        page = await task_engine.list_tasks(project.id, filters={"search": "stage b"})
        assert {t.id for t in page.items} == {match.id, by_step.id}

    @pytest.mark.asyncio
    async def test_search_treats_wildcards_literally(self, test_session, task_engine, project):
        await make_task(test_session, project, task_order=1, name="Budget at 100%")
        await make_task(test_session, project, task_order=2, name="Budget at 1000")
        page = await task_engine.list_tasks(project.id, filters={"search": "100%"})
        assert [t.name for t in page.items] == ["Budget at 100%"]

    @pytest.mark.asyncio
    async def test_unassigned_sentinel_and_crew_filter(self, test_session, task_engine, project):
        role = await make_role(test_session, project)
        member = await make_crew(test_session, role, user_name="Rosa")
        assigned = await make_task(test_session, project, task_order=1, assigned_crew_id=member.id)
        free = await make_task(test_session, project, task_order=2)

        page = await task_engine.list_tasks(project.id, filters={"assigned_crew_id": "unassigned"})
        assert [t.id for t in page.items] == [free.id]

        page = await task_engine.list_tasks(project.id, filters={"assigned_crew_id": str(member.id)})
        assert [t.id for t in page.items] == [assigned.id]
        assert page.items[0].assigned_crew_name == "Rosa"

    @pytest.mark.asyncio
    async def test_department_filter(self, test_session, task_engine, project):
        department = uuid.uuid4()
        gaffer = await make_role(test_session, project, role_name="Gaffer", department_id=department)
        editor = await make_role(test_session, project, role_name="Editor", department_name="Post")
        lit = await make_task(test_session, project, task_order=1, assigned_role_id=gaffer.id)
        await make_task(test_session, project, task_order=2, assigned_role_id=editor.id)

        page = await task_engine.list_tasks(project.id, filters={"department_id": str(department)})
        assert [t.id for t in page.items] == [lit.id]

        nothing = await task_engine.list_tasks(project.id, filters={"department_id": str(uuid.uuid4())})
        assert nothing.total_count == 0

    @pytest.mark.asyncio
    async def test_tabs(self, test_session, task_engine, project):
        statuses = [
            TaskStatus.PENDING, TaskStatus.ONGOING, TaskStatus.BLOCKED,
            TaskStatus.ESCALATED, TaskStatus.CANCELLED, TaskStatus.COMPLETED,
        ]
        for order, status in enumerate(statuses, start=1):
            await make_task(test_session, project, task_order=order, status=status)

        ready = await task_engine.list_tasks(project.id, filters={"tab": "ready"})
        upcoming = await task_engine.list_tasks(project.id, filters={"tab": "upcoming"})

        assert {t.status for t in ready.items} == {TaskStatus.PENDING, TaskStatus.ONGOING, TaskStatus.BLOCKED}
        assert {t.status for t in upcoming.items} == {TaskStatus.ESCALATED, TaskStatus.CANCELLED}

    @pytest.mark.asyncio
    async def test_due_within_hours(self, test_session, task_engine, project):
        soon = await make_task(test_session, project, task_order=1, expected_end_time=NOW + timedelta(hours=3))
        await make_task(test_session, project, task_order=2, expected_end_time=NOW + timedelta(days=3))
        await make_task(test_session, project, task_order=3)

        page = await task_engine.list_tasks(project.id, filters={"due_within_hours": 24}, now=NOW)
        assert [t.id for t in page.items] == [soon.id]

    @pytest.mark.asyncio
    async def test_archived_hidden_unless_requested(self, test_session, task_engine, project):
        await make_task(test_session, project, task_order=1)
        await make_task(test_session, project, task_order=2, is_archived=True)

        assert (await task_engine.list_tasks(project.id)).total_count == 1
        assert (await task_engine.list_tasks(project.id, filters={"include_archived": True})).total_count == 2

    @pytest.mark.asyncio
    async def test_category_and_critical(self, test_session, task_engine, project):
        shoot = await make_task(
            test_session, project, task_order=1,
            category=TaskCategory.PRODUCTION, is_critical=True,
        )
        await make_task(test_session, project, task_order=2, category=TaskCategory.PRODUCTION)
        await make_task(test_session, project, task_order=3, category=TaskCategory.CREATIVE, is_critical=True)

        page = await task_engine.list_tasks(
            project.id, filters={"category": "production", "is_critical": True}
        )
        assert [t.id for t in page.items] == [shoot.id]


class TestSortingAndPaging:

    @pytest.mark.asyncio
    async def test_structural_order_is_default(self, test_session, task_engine, project):
        c = await make_task(test_session, project, phase_order=2, step_order=1, task_order=1)
        a = await make_task(test_session, project, phase_order=1, step_order=1, task_order=2)
        b = await make_task(test_session, project, phase_order=1, step_order=2, task_order=1)
        page = await task_engine.list_tasks(project.id)
        assert [t.id for t in page.items] == [a.id, b.id, c.id]

    @pytest.mark.asyncio
    async def test_priority_puts_critical_first(self, test_session, task_engine, project):
        normal = await make_task(test_session, project, task_order=1)
        critical = await make_task(test_session, project, task_order=2, is_critical=True)
        page = await task_engine.list_tasks(project.id, sort={"key": "priority"})
        assert [t.id for t in page.items] == [critical.id, normal.id]

    @pytest.mark.asyncio
    async def test_pagination(self, test_session, task_engine, project):
        for order in range(1, 8):
            await make_task(test_session, project, task_order=order)

        first = await task_engine.list_tasks(project.id, pagination={"page": 1, "page_size": 3})
        last = await task_engine.list_tasks(project.id, pagination={"page": 3, "page_size": 3})
        beyond = await task_engine.list_tasks(project.id, pagination={"page": 9, "page_size": 3})

        assert first.total_count == 7
        assert first.total_pages == 3
        assert [t.task_order for t in first.items] == [1, 2, 3]
        assert [t.task_order for t in last.items] == [7]
        assert beyond.items == []
        assert beyond.total_count == 7

    @pytest.mark.asyncio
    async def test_default_page_size(self, task_engine, project):
        page = await task_engine.list_tasks(project.id)
        assert page.page_size == 25
        assert page.total_pages == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"pagination": {"page": 0}},
            {"pagination": {"page_size": 500}},
            {"filters": {"status": "wrapped"}},
            {"filters": {"assigned_crew_id": "nobody"}},
            {"filters": {"colour": "blue"}},
            {"sort": {"key": "budget"}},
        ],
    )
    async def test_malformed_input(self, task_engine, project, kwargs):
        with pytest.raises(ValidationError) as exc_info:
            await task_engine.list_tasks(project.id, **kwargs)
        assert exc_info.value.status_code == 422


class TestStats:

    @pytest.mark.asyncio
    async def test_task_stats(self, test_session, task_engine, project):
        role = await make_role(test_session, project)
        member = await make_crew(test_session, role)
        await make_task(test_session, project, task_order=1)
        await make_task(test_session, project, task_order=2, status=TaskStatus.ONGOING, assigned_crew_id=member.id)
        await make_task(test_session, project, task_order=3, status=TaskStatus.ESCALATED)
        await make_task(test_session, project, task_order=4, status=TaskStatus.COMPLETED, is_archived=True)

        stats = await task_engine.task_stats(project.id)

        assert stats.total == 3
        assert stats.pending == 1
        assert stats.ongoing == 1
        assert stats.escalated == 1
        assert stats.completed == 0
        assert stats.unassigned == 2
