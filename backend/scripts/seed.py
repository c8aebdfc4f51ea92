#!/usr/bin/env python3
"""
Seed script to generate a demo film production.

Creates one project with:
- departments and roles (some under-filled, one over-filled)
- crew members, with a lead in most roles
- phases -> steps -> tasks in structural order, with a few parent links
  across steps and shooting days scaled by --shooting-days

Usage:
    python -m scripts.seed [--shooting-days 10] [--clear]

Options:
    --shooting-days N   Number of shooting days in the production phase (default: 10)
    --clear             Clear existing data before seeding
    --project           Name of the project to create
    --auto-start        Run auto-start on the seeded project
    --scan              Run an escalation scan after seeding
"""

import argparse
import asyncio
import random
import time
import uuid
from datetime import date, datetime, timedelta

from sqlalchemy import text

from reeltask.config import get_settings
from reeltask.database import async_session_maker, init_db
from reeltask.models import Project, ProjectCrew, ProjectRole, Task, TaskCategory
from reeltask.services.engine import TaskEngine

SEED_ACTOR = "seed_script"

DEPARTMENTS = {
    "Production": [("Producer", 1), ("Line Producer", 1), ("Production Coordinator", 2)],
    "Camera": [("Director of Photography", 1), ("Camera Operator", 2), ("Focus Puller", 1)],
    "Lighting": [("Gaffer", 1), ("Electrician", 3)],
    "Art": [("Production Designer", 1), ("Set Dresser", 2)],
    "Sound": [("Sound Mixer", 1), ("Boom Operator", 1)],
    "Post": [("Editor", 1), ("Colorist", 1), ("VFX Supervisor", 1)],
}

# phase -> [(step, [(task name, role, estimated hours, category)])]
PRE_PRODUCTION = [
    ("Script & Budget", [
        ("Lock shooting script", "Producer", 16, TaskCategory.CREATIVE),
        ("Approve budget", "Line Producer", 8, TaskCategory.ADMINISTRATIVE),
        ("Build schedule", "Production Coordinator", 12, TaskCategory.ADMINISTRATIVE),
    ]),
    ("Locations", [
        ("Scout locations", "Production Designer", 24, TaskCategory.LOGISTICS),
        ("Sign location agreements", "Line Producer", 6, TaskCategory.ADMINISTRATIVE),
    ]),
    ("Camera & Lighting Prep", [
        ("Camera tests", "Director of Photography", 8, TaskCategory.TECHNICAL),
        ("Lighting plot", "Gaffer", 10, TaskCategory.TECHNICAL),
        ("Equipment check-out", "Camera Operator", 6, TaskCategory.LOGISTICS),
    ]),
]

POST_PRODUCTION = [
    ("Editorial", [
        ("Assembly cut", "Editor", 80, TaskCategory.CREATIVE),
        ("Director's cut", "Editor", 120, TaskCategory.CREATIVE),
        ("Picture lock", "Producer", 8, TaskCategory.CREATIVE),
    ]),
    ("Finishing", [
        ("VFX turnover", "VFX Supervisor", 40, TaskCategory.TECHNICAL),
        ("Color grade", "Colorist", 40, TaskCategory.TECHNICAL),
        ("Final sound mix", "Sound Mixer", 32, TaskCategory.TECHNICAL),
        ("Deliverables QC", "Production Coordinator", 16, TaskCategory.POST_PRODUCTION),
    ]),
]


def shooting_day_steps(days: int) -> list:
    steps = []
    for day in range(1, days + 1):
        steps.append((f"Shooting Day {day}", [
            ("Pre-light set", "Gaffer", 4, TaskCategory.PRODUCTION),
            ("Dress set", "Set Dresser", 4, TaskCategory.PRODUCTION),
            ("Shoot scheduled scenes", "Director of Photography", 10, TaskCategory.PRODUCTION),
            ("Record production sound", "Sound Mixer", 10, TaskCategory.PRODUCTION),
            ("Wrap and offload media", "Camera Operator", 2, TaskCategory.LOGISTICS),
        ]))
    return steps


async def clear_data():
    """Clear all existing data."""
    print("Clearing existing data...")
    async with async_session_maker() as session:
        await session.execute(text("DELETE FROM project_tasks"))
        await session.execute(text("DELETE FROM project_crew"))
        await session.execute(text("DELETE FROM project_roles"))
        await session.execute(text("DELETE FROM projects"))
        await session.commit()
    print("Data cleared.")


async def create_project(name: str, start: date) -> Project:
    async with async_session_maker() as session:
        project = Project(
            name=name,
            description="Demo feature production",
            start_date=start,
            created_by=SEED_ACTOR,
        )
        session.add(project)
        await session.commit()
        await session.refresh(project)
        return project


async def create_crew(project_id: uuid.UUID) -> dict[str, uuid.UUID]:
    """Create roles and crew; returns role name -> role id."""
    roles: dict[str, uuid.UUID] = {}
    crew_count = 0

    async with async_session_maker() as session:
        for department, department_roles in DEPARTMENTS.items():
            department_id = uuid.uuid4()
            for role_name, required in department_roles:
                role = ProjectRole(
                    project_id=project_id,
                    role_name=role_name,
                    department_id=department_id,
                    department_name=department,
                    required_count=required,
                    created_by=SEED_ACTOR,
                )
                session.add(role)
                await session.flush()
                roles[role_name] = role.id

                # Leave some roles short and over-fill one
                filled = required if random.random() > 0.2 else max(required - 1, 0)
                if role_name == "Electrician":
                    filled = required + 1
                for n in range(filled):
                    session.add(ProjectCrew(
                        project_id=project_id,
                        project_role_id=role.id,
                        user_id=f"{role_name.lower().replace(' ', '.')}.{n + 1}@example.com",
                        user_name=f"{role_name} {n + 1}",
                        is_lead=(n == 0 and required > 1),
                        joined_date=date.today() - timedelta(days=random.randint(0, 60)),
                        created_by=SEED_ACTOR,
                    ))
                    crew_count += 1
        await session.commit()

    print(f"Created {len(roles)} roles and {crew_count} crew members")
    return roles


def build_tasks(project_id: uuid.UUID, roles: dict[str, uuid.UUID], shooting_days: int) -> list[Task]:
    phases = [
        ("Pre-Production", PRE_PRODUCTION),
        ("Production", shooting_day_steps(shooting_days)),
        ("Post-Production", POST_PRODUCTION),
    ]
    tasks = []
    previous_step_last = None
    clock = datetime.utcnow()

    for phase_order, (phase_name, steps) in enumerate(phases, start=1):
        for step_order, (step_name, step_tasks) in enumerate(steps, start=1):
            step_first = None
            for task_order, (name, role, hours, category) in enumerate(step_tasks, start=1):
                task = Task(
                    project_id=project_id,
                    name=name,
                    phase_name=phase_name,
                    step_name=step_name,
                    phase_order=phase_order,
                    step_order=step_order,
                    task_order=task_order,
                    estimated_hours=hours,
                    category=category,
                    is_critical=(category == TaskCategory.PRODUCTION and task_order == 3),
                    assigned_role_id=roles.get(role),
                    expected_start_time=clock,
                    expected_end_time=clock + timedelta(hours=hours),
                    checklist_items=[{"text": "Confirm call sheet", "completed": False}],
                    created_by=SEED_ACTOR,
                )
                clock += timedelta(hours=hours)
                if step_first is None:
                    step_first = task
                tasks.append(task)

            # Each step waits for the previous one to wrap
            if previous_step_last is not None:
                step_first.parent_task_id = previous_step_last.id
            previous_step_last = tasks[-1]

    return tasks


async def insert_batch(tasks: list[Task]):
    """Insert tasks in batches."""
    async with async_session_maker() as session:
        batch_size = 100
        print(f"Inserting {len(tasks)} tasks...")
        for i in range(0, len(tasks), batch_size):
            session.add_all(tasks[i:i + batch_size])
            await session.flush()
        await session.commit()


async def show_stats(project_id: uuid.UUID, auto_start: bool, scan: bool):
    async with async_session_maker() as session:
        engine = TaskEngine(session, config=get_settings().engine_config())

        if auto_start:
            started = await engine.auto_start_ready_tasks(project_id, SEED_ACTOR)
            print(f"Auto-started {started} task(s)")

        if scan:
            escalated = await engine.run_escalation_scan(project_id=project_id)
            print(f"Escalated {len(escalated)} task(s)")

        ready = await engine.compute_ready_set(project_id)
        stats = await engine.task_stats(project_id)
        await session.commit()

    print(f"\n=== Production Statistics ===")
    print(f"Tasks:      {stats.total}")
    print(f"Pending:    {stats.pending}")
    print(f"Ongoing:    {stats.ongoing}")
    print(f"Escalated:  {stats.escalated}")
    print(f"Unassigned: {stats.unassigned}")
    print(f"Ready now:  {len(ready)} ({sum(1 for s in ready if s.has_crew_available)} staffed)")


async def main():
    parser = argparse.ArgumentParser(description="Seed the database with a demo film production")
    parser.add_argument("--shooting-days", type=int, default=10, help="Number of shooting days")
    parser.add_argument("--clear", action="store_true", help="Clear existing data first")
    parser.add_argument("--project", type=str, default="Demo Feature", help="Project name")
    parser.add_argument("--auto-start", action="store_true", help="Auto-start ready tasks after seeding")
    parser.add_argument("--scan", action="store_true", help="Run an escalation scan after seeding")

    args = parser.parse_args()

    print(f"=== Reeltask Seed Script ===")

    await init_db()

    if args.clear:
        await clear_data()

    project = await create_project(args.project, date.today())
    print(f"Created project: {project.name} ({project.id})")

    roles = await create_crew(project.id)

    start_time = time.time()
    tasks = build_tasks(project.id, roles, args.shooting_days)
    await insert_batch(tasks)
    print(f"Insert time: {time.time() - start_time:.2f}s")

    await show_stats(project.id, args.auto_start, args.scan)

    print(f"\n=== Seeding Complete ===")
    print(f"Project ID: {project.id}")


if __name__ == "__main__":
    asyncio.run(main())
