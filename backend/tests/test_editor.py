"""
Task editor tests: creation and field updates through the engine.
"""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_task
from reeltask.exceptions import ValidationError

ACTOR = "script.supervisor@example.com"
PARIS = timezone(timedelta(hours=2))


class TestTimes:

    @pytest.mark.asyncio
    async def test_offset_times_stored_as_naive_utc(self, test_session, task_engine, project):
        task = await make_task(test_session, project, expected_start_time=datetime(2026, 1, 1, 8))

        updated = await task_engine.update_task(
            task.id, {"expected_end_time": datetime(2026, 1, 1, 18, tzinfo=PARIS)}, ACTOR
        )

        assert updated.expected_end_time == datetime(2026, 1, 1, 16)
        assert updated.expected_end_time.tzinfo is None

    @pytest.mark.asyncio
    async def test_offset_end_before_start_rejected(self, test_session, task_engine, project):
        task = await make_task(test_session, project, expected_start_time=datetime(2026, 1, 1, 8))

        with pytest.raises(ValidationError):
            await task_engine.update_task(
                task.id, {"expected_end_time": datetime(2026, 1, 1, 9, tzinfo=PARIS)}, ACTOR
            )

    @pytest.mark.asyncio
    async def test_create_with_utc_times(self, task_engine, project):
        task = await task_engine.create_task(
            {
                "project_id": project.id,
                "name": "Location scout",
                "expected_start_time": "2026-04-01T07:00:00Z",
                "expected_end_time": "2026-04-01T15:30:00+00:00",
            },
            ACTOR,
        )

        assert task.expected_start_time == datetime(2026, 4, 1, 7)
        assert task.expected_end_time == datetime(2026, 4, 1, 15, 30)


class TestCreatePosition:

    @pytest.mark.asyncio
    async def test_taken_position(self, test_session, task_engine, project):
        await make_task(test_session, project)

        with pytest.raises(ValidationError):
            await task_engine.create_task({"project_id": project.id, "name": "Second"}, ACTOR)

    @pytest.mark.asyncio
    async def test_position_taken_between_check_and_insert(self, test_session, task_engine, project, monkeypatch):
        await make_task(test_session, project)

        # The other create commits after this one found the slot free
        async def slot_looks_free(project_id, phase_order, step_order, task_order):
            return None

        monkeypatch.setattr(task_engine.store, "find_by_structural_order", slot_looks_free)

        with pytest.raises(ValidationError) as exc_info:
            await task_engine.create_task({"project_id": project.id, "name": "Second"}, ACTOR)
        assert exc_info.value.status_code == 422
        assert exc_info.value.details[0]["loc"] == ["body", "task_order"]


class TestComments:

    @pytest.mark.asyncio
    async def test_comment_records_author(self, test_session, task_engine, project):
        task = await make_task(test_session, project)
        old_version = task.version_id
        updated = await task_engine.add_comment(task.id, "Need a second genny", ACTOR)

        assert len(updated.comments) == 1
        assert updated.comments[0]["author"] == ACTOR
        assert updated.comments[0]["text"] == "Need a second genny"
        assert updated.version_id != old_version
