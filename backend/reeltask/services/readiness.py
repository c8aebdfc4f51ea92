"""
Readiness evaluation using NetworkX.

A task's prerequisites are:
- its parent task (parent_task_id), and
- with step sequencing on, the task immediately before it in the same
  phase and step (the non-archived task with the next lower task_order).

Prerequisites form a DiGraph with edges prerequisite -> dependent. A pending,
non-archived task is ready once every prerequisite is satisfied (completed,
or cancelled when cancellation releases dependents).

Parents outside the project are weak references: they are looked up through
the task store and, when they cannot be found, count as satisfied unless the
"blocking" policy is configured.
"""

import uuid
from itertools import groupby
from typing import Iterable

import networkx as nx

from reeltask.config import EngineConfig
from reeltask.models import Task, TaskStatus
from reeltask.schemas import TaskSummary
from reeltask.services.crew_directory import CrewDirectory
from reeltask.services.queries import build_summaries
from reeltask.services.task_store import TaskStore
from reeltask.logging_config import get_logger

logger = get_logger(__name__)


def build_prerequisite_graph(
    tasks: Iterable[Task],
    step_sequencing: bool = True,
) -> nx.DiGraph:
    """
    Build the prerequisite DiGraph for one project's tasks.

    Nodes are task IDs carrying the task under "task". A parent that is not
    among `tasks` is recorded on the child node as "external_parent".
    """
    tasks = list(tasks)
    graph = nx.DiGraph()

    for task in tasks:
        graph.add_node(task.id, task=task, external_parent=None)

    for task in tasks:
        if task.parent_task_id is None:
            continue
        if task.parent_task_id in graph:
            graph.add_edge(task.parent_task_id, task.id, kind="parent")
        else:
            graph.nodes[task.id]["external_parent"] = task.parent_task_id

    if step_sequencing:
        live = sorted(
            (t for t in tasks if not t.is_archived),
            key=lambda t: t.structural_order,
        )
        for _, step_tasks in groupby(live, key=lambda t: (t.phase_order, t.step_order)):
            step_tasks = list(step_tasks)
            for previous, current in zip(step_tasks, step_tasks[1:]):
                if not graph.has_edge(previous.id, current.id):
                    graph.add_edge(previous.id, current.id, kind="sequence")

    return graph


def is_satisfied(status: TaskStatus, cancel_unblocks_dependents: bool = False) -> bool:
    """Whether a prerequisite in `status` releases its dependents."""
    if status == TaskStatus.COMPLETED:
        return True
    return cancel_unblocks_dependents and status == TaskStatus.CANCELLED


def ready_task_ids(
    graph: nx.DiGraph,
    config: EngineConfig,
    external_parents: dict[uuid.UUID, Task] | None = None,
) -> list[uuid.UUID]:
    """
    IDs of ready tasks in the graph, in structural order.

    `external_parents` maps out-of-project parent IDs to the resolved task;
    IDs missing from it are unresolvable.
    """
    external_parents = external_parents or {}
    ready = []

    for task_id, data in graph.nodes(data=True):
        task: Task = data["task"]
        if task.status != TaskStatus.PENDING or task.is_archived:
            continue

        satisfied = all(
            is_satisfied(graph.nodes[pred]["task"].status, config.cancel_unblocks_dependents)
            for pred in graph.predecessors(task_id)
        )

        external_id = data["external_parent"]
        if satisfied and external_id is not None:
            parent = external_parents.get(external_id)
            if parent is None:
                satisfied = config.unresolved_parent_policy == "satisfied"
            else:
                satisfied = is_satisfied(parent.status, config.cancel_unblocks_dependents)

        if satisfied:
            ready.append(task)

    ready.sort(key=lambda t: t.structural_order)
    return [t.id for t in ready]


def dependents_of(graph: nx.DiGraph, task_id: uuid.UUID) -> list[uuid.UUID]:
    """Children by parent link plus the next task in the same step."""
    if task_id not in graph:
        return []
    return list(graph.successors(task_id))


def creates_cycle(graph: nx.DiGraph) -> bool:
    try:
        nx.find_cycle(graph)
        return True
    except nx.NetworkXNoCycle:
        return False


class ReadinessEvaluator:
    """Read-only evaluator of which tasks may start."""

    def __init__(self, store: TaskStore, directory: CrewDirectory, config: EngineConfig):
        self.store = store
        self.directory = directory
        self.config = config

    async def _project_graph(self, project_id: uuid.UUID) -> tuple[nx.DiGraph, dict[uuid.UUID, Task]]:
        # Archived tasks stay in the graph so archived parents are still seen
        tasks = await self.store.list_for_project(project_id, include_archived=True)
        graph = build_prerequisite_graph(tasks, self.config.step_sequencing)

        external_ids = [
            data["external_parent"]
            for _, data in graph.nodes(data=True)
            if data["external_parent"] is not None
        ]
        external_parents = await self.store.get_many(external_ids)
        missing = set(external_ids) - set(external_parents)
        if missing:
            logger.debug(f"Unresolved parents in project={project_id}: {len(missing)}")
        return graph, external_parents

    async def ready_tasks(self, project_id: uuid.UUID) -> list[Task]:
        graph, external_parents = await self._project_graph(project_id)
        ids = ready_task_ids(graph, self.config, external_parents)
        return [graph.nodes[task_id]["task"] for task_id in ids]

    async def compute_ready_set(self, project_id: uuid.UUID) -> list[TaskSummary]:
        """Ready tasks as summaries, flagged with whether their role has crew."""
        tasks = await self.ready_tasks(project_id)
        staffed = await self.directory.get_roles_with_active_crew(
            t.assigned_role_id for t in tasks if t.assigned_role_id is not None
        )
        summaries = await build_summaries(tasks, self.directory)
        for summary in summaries:
            summary.has_crew_available = summary.assigned_role_id in staffed
        logger.debug(f"Ready set for project={project_id}: {len(summaries)} tasks")
        return summaries

    async def newly_ready_dependents(self, task: Task) -> list[Task]:
        """Dependents of `task` that are ready now (used after completion)."""
        graph, external_parents = await self._project_graph(task.project_id)
        candidates = set(dependents_of(graph, task.id))
        if not candidates:
            return []
        ready = ready_task_ids(graph, self.config, external_parents)
        return [graph.nodes[task_id]["task"] for task_id in ready if task_id in candidates]

    async def would_create_cycle(self, candidate: Task) -> bool:
        """
        Check whether saving `candidate` (new or edited) would make the
        prerequisite graph cyclic, i.e. leave tasks that can never be ready.
        """
        tasks = await self.store.list_for_project(candidate.project_id, include_archived=True)
        tasks = [t for t in tasks if t.id != candidate.id] + [candidate]
        graph = build_prerequisite_graph(tasks, self.config.step_sequencing)
        return creates_cycle(graph)
