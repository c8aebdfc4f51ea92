"""
Assignment policy tests: who picks up a task when it starts.
"""

import uuid
from datetime import date

import pytest

from conftest import make_crew, make_role, make_task
from reeltask.models import TaskStatus
from reeltask.services.assignment import AssignmentPolicy, selection_key
from reeltask.services.crew_directory import CrewRef, SqlCrewDirectory


def ref(is_lead=False, joined=date(2026, 1, 1)) -> CrewRef:
    return CrewRef(
        crew_id=uuid.uuid4(),
        project_id=uuid.uuid4(),
        project_role_id=uuid.uuid4(),
        user_id="u",
        user_name="U",
        is_lead=is_lead,
        joined_date=joined,
    )


class TestSelectionKey:

    def test_lead_beats_lighter_load(self):
        lead, member = ref(is_lead=True), ref()
        assert selection_key(lead, 5) < selection_key(member, 0)

    def test_lighter_load_then_earlier_join(self):
        early, late = ref(joined=date(2025, 6, 1)), ref(joined=date(2026, 2, 1))
        assert selection_key(late, 0) < selection_key(early, 1)
        assert selection_key(early, 1) < selection_key(late, 1)

    def test_unknown_join_date_sorts_last(self):
        known, unknown = ref(), ref(joined=None)
        assert selection_key(known, 0) < selection_key(unknown, 0)


class TestAssignmentPolicy:

    @pytest.mark.asyncio
    async def test_picks_least_loaded_member(self, test_session, project):
        role = await make_role(test_session, project, role_name="Electrician", required_count=2)
        busy = await make_crew(test_session, role, user_id="busy", joined=date(2025, 1, 1))
        free = await make_crew(test_session, role, user_id="free", joined=date(2026, 1, 1))
        await make_task(
            test_session, project, step_order=9,
            status=TaskStatus.ONGOING, assigned_crew_id=busy.id,
        )
        task = await make_task(test_session, project, assigned_role_id=role.id)

        policy = AssignmentPolicy(SqlCrewDirectory(test_session))
        assert await policy.assign(task) == free.id

    @pytest.mark.asyncio
    async def test_inactive_crew_ignored(self, test_session, project):
        role = await make_role(test_session, project)
        await make_crew(test_session, role, is_active=False)
        task = await make_task(test_session, project, assigned_role_id=role.id)

        policy = AssignmentPolicy(SqlCrewDirectory(test_session))
        assert await policy.assign(task) is None

    @pytest.mark.asyncio
    async def test_no_role_means_no_assignment(self, test_session, project):
        task = await make_task(test_session, project)
        policy = AssignmentPolicy(SqlCrewDirectory(test_session))
        assert await policy.assign(task) is None

    @pytest.mark.asyncio
    async def test_idempotent_for_assigned_task(self, test_session, project):
        role = await make_role(test_session, project)
        lead = await make_crew(test_session, role, is_lead=True)
        other = await make_crew(test_session, role)
        task = await make_task(test_session, project, assigned_role_id=role.id, assigned_crew_id=other.id)
        version = task.version_id

        policy = AssignmentPolicy(SqlCrewDirectory(test_session))
        assert await policy.assign(task) == other.id
        assert await policy.assign(task) == other.id
        assert lead.id != other.id
        assert task.version_id == version
