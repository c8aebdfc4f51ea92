"""
Readiness tests: prerequisite graphs and the ready set.
"""

import uuid

import pytest

from conftest import make_crew, make_role, make_task
from reeltask.config import EngineConfig
from reeltask.exceptions import CycleDetectedError
from reeltask.models import Project, Task, TaskStatus
from reeltask.services.engine import TaskEngine
from reeltask.services.readiness import (
    build_prerequisite_graph,
    creates_cycle,
    dependents_of,
    ready_task_ids,
)

PROJECT = uuid.uuid4()


def node(task_order, step_order=1, status=TaskStatus.PENDING, **fields) -> Task:
    return Task(
        id=uuid.uuid4(),
        project_id=PROJECT,
        name=f"Task {step_order}.{task_order}",
        phase_order=1,
        step_order=step_order,
        task_order=task_order,
        status=status,
        **fields,
    )


class TestPrerequisiteGraph:

    def test_step_sequence_links_neighbours_only(self):
        a, b, c = node(1), node(2), node(3)
        other_step = node(1, step_order=2)
        graph = build_prerequisite_graph([c, other_step, a, b])

        assert graph.has_edge(a.id, b.id)
        assert graph.has_edge(b.id, c.id)
        assert not graph.has_edge(a.id, c.id)
        assert graph.in_degree(other_step.id) == 0

    def test_archived_tasks_are_skipped_in_sequence(self):
        a, archived, c = node(1), node(2, is_archived=True), node(3)
        graph = build_prerequisite_graph([a, archived, c])
        assert graph.has_edge(a.id, c.id)
        assert graph.in_degree(archived.id) == 0

    def test_sequencing_can_be_disabled(self):
        a, b = node(1), node(2)
        graph = build_prerequisite_graph([a, b], step_sequencing=False)
        assert graph.number_of_edges() == 0

    def test_external_parent_recorded_on_node(self):
        outside = uuid.uuid4()
        child = node(1, parent_task_id=outside)
        graph = build_prerequisite_graph([child])
        assert graph.nodes[child.id]["external_parent"] == outside

    def test_dependents_of(self):
        parent = node(1, step_order=1)
        child = node(1, step_order=2)
        child.parent_task_id = parent.id
        follower = node(2, step_order=2)
        graph = build_prerequisite_graph([parent, child, follower])
        assert dependents_of(graph, parent.id) == [child.id]
        assert dependents_of(graph, child.id) == [follower.id]
        assert dependents_of(graph, uuid.uuid4()) == []

    def test_cycle_through_parent_and_sequence(self):
        first, second = node(1), node(2)
        first.parent_task_id = second.id
        assert creates_cycle(build_prerequisite_graph([first, second]))
        assert not creates_cycle(build_prerequisite_graph([first, second], step_sequencing=False))


class TestReadyTaskIds:

    def test_only_first_pending_in_step_is_ready(self):
        a, b = node(1), node(2)
        graph = build_prerequisite_graph([a, b])
        assert ready_task_ids(graph, EngineConfig()) == [a.id]

    def test_completed_prerequisite_releases_next(self):
        a, b = node(1, status=TaskStatus.COMPLETED), node(2)
        graph = build_prerequisite_graph([a, b])
        assert ready_task_ids(graph, EngineConfig()) == [b.id]

    def test_cancelled_prerequisite_depends_on_flag(self):
        a, b = node(1, status=TaskStatus.CANCELLED), node(2)
        graph = build_prerequisite_graph([a, b])
        assert ready_task_ids(graph, EngineConfig()) == []
        assert ready_task_ids(graph, EngineConfig(cancel_unblocks_dependents=True)) == [b.id]

    def test_non_pending_tasks_never_ready(self):
        tasks = [
            node(1, step_order=1, status=TaskStatus.ONGOING),
            node(1, step_order=2, status=TaskStatus.BLOCKED),
            node(1, step_order=3, status=TaskStatus.ESCALATED),
            node(1, step_order=4, is_archived=True),
        ]
        graph = build_prerequisite_graph(tasks)
        assert ready_task_ids(graph, EngineConfig()) == []

    def test_unresolved_external_parent_policy(self):
        child = node(1, parent_task_id=uuid.uuid4())
        graph = build_prerequisite_graph([child])
        assert ready_task_ids(graph, EngineConfig()) == [child.id]
        assert ready_task_ids(graph, EngineConfig(unresolved_parent_policy="blocking")) == []

    def test_resolved_external_parent_status_counts(self):
        parent = Task(id=uuid.uuid4(), project_id=uuid.uuid4(), name="Template", status=TaskStatus.ONGOING)
        child = node(1, parent_task_id=parent.id)
        graph = build_prerequisite_graph([child])
        assert ready_task_ids(graph, EngineConfig(), {parent.id: parent}) == []
        parent.status = TaskStatus.COMPLETED
        assert ready_task_ids(graph, EngineConfig(), {parent.id: parent}) == [child.id]

    def test_ready_tasks_in_structural_order(self):
        later = node(1, step_order=3)
        earlier = node(1, step_order=1)
        middle = node(1, step_order=2)
        graph = build_prerequisite_graph([later, earlier, middle])
        assert ready_task_ids(graph, EngineConfig()) == [earlier.id, middle.id, later.id]


class TestReadySet:

    @pytest.mark.asyncio
    async def test_dependent_ready_after_parent_completes(self, test_session, task_engine, project):
        """T2 depends on T1: excluded while T1 is pending, included once T1 completes."""
        role = await make_role(test_session, project)
        await make_crew(test_session, role, is_lead=True)
        t1 = await make_task(test_session, project, step_order=1, assigned_role_id=role.id)
        t2 = await make_task(test_session, project, step_order=2, parent_task_id=t1.id)

        ready = [s.id for s in await task_engine.compute_ready_set(project.id)]
        assert t1.id in ready
        assert t2.id not in ready

        await task_engine.start_task(t1.id, "ad@example.com")
        result = await task_engine.complete_task(t1.id, "ad@example.com")
        assert result.propagated_ready_count == 1

        ready = [s.id for s in await task_engine.compute_ready_set(project.id)]
        assert ready == [t2.id]

    @pytest.mark.asyncio
    async def test_ready_set_flags_staffing(self, test_session, task_engine, project):
        staffed = await make_role(test_session, project, role_name="Gaffer")
        empty = await make_role(test_session, project, role_name="Colorist", department_name="Post")
        await make_crew(test_session, staffed, user_name="Rosa")
        a = await make_task(test_session, project, step_order=1, assigned_role_id=staffed.id)
        b = await make_task(test_session, project, step_order=2, assigned_role_id=empty.id)
        c = await make_task(test_session, project, step_order=3)

        summaries = {s.id: s for s in await task_engine.compute_ready_set(project.id)}

        assert summaries[a.id].has_crew_available is True
        assert summaries[a.id].assigned_role_name == "Gaffer"
        assert summaries[a.id].department_name == "Lighting"
        assert summaries[b.id].has_crew_available is False
        assert summaries[c.id].has_crew_available is False

    @pytest.mark.asyncio
    async def test_archived_parent_still_blocks(self, test_session, task_engine, project):
        parent = await make_task(test_session, project, step_order=1, is_archived=True)
        child = await make_task(test_session, project, step_order=2, parent_task_id=parent.id)
        ready = [s.id for s in await task_engine.compute_ready_set(project.id)]
        assert child.id not in ready

    @pytest.mark.asyncio
    async def test_parent_in_other_project_is_resolved(self, test_session, project):
        template = Project(name="Template")
        test_session.add(template)
        await test_session.flush()
        parent = await make_task(test_session, template, status=TaskStatus.ONGOING)
        child = await make_task(test_session, project, parent_task_id=parent.id)

        engine = TaskEngine(test_session, config=EngineConfig())
        assert await engine.compute_ready_set(project.id) == []

        parent.status = TaskStatus.COMPLETED
        await test_session.flush()
        assert [s.id for s in await engine.compute_ready_set(project.id)] == [child.id]


class TestParentCycles:

    @pytest.mark.asyncio
    async def test_self_parent_rejected(self, test_session, task_engine, project):
        task = await make_task(test_session, project)
        with pytest.raises(CycleDetectedError):
            await task_engine.update_task(task.id, {"parent_task_id": str(task.id)}, "ad@example.com")

    @pytest.mark.asyncio
    async def test_parent_loop_rejected(self, test_session, task_engine, project):
        a = await make_task(test_session, project, step_order=1)
        b = await make_task(test_session, project, step_order=2, parent_task_id=a.id)
        with pytest.raises(CycleDetectedError) as exc_info:
            await task_engine.update_task(a.id, {"parent_task_id": str(b.id)}, "ad@example.com")
        assert exc_info.value.status_code == 400

        await test_session.refresh(a)
        assert a.parent_task_id is None

    @pytest.mark.asyncio
    async def test_parent_later_in_same_step_rejected(self, test_session, task_engine, project):
        first = await make_task(test_session, project, task_order=1)
        second = await make_task(test_session, project, task_order=2)
        with pytest.raises(CycleDetectedError):
            await task_engine.update_task(first.id, {"parent_task_id": str(second.id)}, "ad@example.com")
