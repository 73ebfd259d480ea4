"""
Tests for assistant.py - per-task AI updates, schedule optimisation and the list helpers.
"""
import json

import pytest

from assistant import DEFAULT_AI_REPLY, TaskAssistant
from conftest import FakeProvider, FixedClock, make_task, single_stage
from models import Comment, CommentAuthor, Priority


def make_assistant(responses=None, available=True):
    provider = FakeProvider(responses=responses, available=available)
    return TaskAssistant(single_stage(provider), clock=FixedClock()), provider


class TestUpdateTaskWithAI:
    @pytest.mark.asyncio
    async def test_applies_changes_and_appends_reply(self):
        user_comment = Comment(id="c1", text="move this to tomorrow and make it urgent", timestamp=1)
        task = make_task("t1", "Report", category="Work", comments=[user_comment])
        assistant, provider = make_assistant([json.dumps({
            "dueDate": "tomorrow",
            "priority": "urgent",
            "reply": "Moved to tomorrow.",
        })])

        updated = await assistant.update_task_with_ai(task, user_comment.text)

        assert updated.due_date == "2026-03-11"
        assert updated.priority == Priority.HIGH
        assert updated.category == "Work"
        assert updated.comments[0] == user_comment
        reply = updated.comments[-1]
        assert reply.author == CommentAuthor.AI
        assert reply.text == "Moved to tomorrow."
        assert '"move this to tomorrow and make it urgent"' in provider.calls[0].prompt
        assert "Report" in provider.calls[0].prompt

    @pytest.mark.asyncio
    async def test_identity_fields_are_kept(self):
        task = make_task("t1", "Report")
        assistant, _ = make_assistant([json.dumps({"id": "other", "createdAt": 5, "title": "Final report"})])

        updated = await assistant.update_task_with_ai(task, "rename to final report")

        assert updated.id == "t1"
        assert updated.created_at == task.created_at
        assert updated.title == "Final report"
        assert updated.comments[-1].text == DEFAULT_AI_REPLY

    @pytest.mark.asyncio
    async def test_unparseable_date_dropped(self):
        task = make_task("t1", "Report", due_date="2026-03-20")
        assistant, _ = make_assistant([json.dumps({"dueDate": "whenever", "isCompleted": True})])

        updated = await assistant.update_task_with_ai(task, "done, date whenever")

        assert updated.due_date == "2026-03-20"
        assert updated.is_completed is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        "not json",
        json.dumps(["a list"]),
        json.dumps({"title": ""}),
        json.dumps({"isCompleted": "maybe"}),
    ])
    async def test_unusable_answer_returns_none(self, response):
        assistant, _ = make_assistant([response])
        assert await assistant.update_task_with_ai(make_task("t1", "Report"), "do it") is None

    @pytest.mark.asyncio
    async def test_model_unavailable_returns_none(self):
        assistant, _ = make_assistant(available=False)
        assert await assistant.update_task_with_ai(make_task("t1", "Report"), "do it") is None


class TestOptimizeSchedule:
    @pytest.mark.asyncio
    async def test_patches_for_open_known_tasks_only(self):
        tasks = [
            make_task("t1", "Report"),
            make_task("t2", "Groceries", priority="Low"),
            make_task("done", "Old", is_completed=True),
        ]
        assistant, provider = make_assistant([json.dumps([
            {"id": "t1", "dueDate": "2026-03-12", "priority": "High"},
            {"id": "t2", "dueDate": "next friday", "priority": "someday"},
            {"id": "t1", "dueDate": "2026-04-01"},
            {"id": "done", "dueDate": "2026-03-11"},
            {"id": "ghost", "dueDate": "2026-03-11"},
            {"id": "t2"},
            "junk",
        ])])

        patches = await assistant.optimize_schedule(tasks)

        by_id = {p.id: p.updates.changes() for p in patches}
        assert by_id == {
            "t1": {"due_date": "2026-03-12", "priority": Priority.HIGH},
            "t2": {"due_date": "2026-03-13"},
        }
        assert "Old" not in provider.calls[0].prompt

    @pytest.mark.asyncio
    async def test_no_open_tasks_skips_model(self):
        assistant, provider = make_assistant()
        assert await assistant.optimize_schedule([make_task("t1", "Done", is_completed=True)]) == []
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_failure_gives_no_patches(self):
        assistant, _ = make_assistant(["nonsense"])
        assert await assistant.optimize_schedule([make_task("t1", "Report")]) == []


class TestListHelpers:
    @pytest.mark.asyncio
    async def test_subtasks_capped_at_five(self):
        assistant, _ = make_assistant([json.dumps([f"Step {i}" for i in range(8)])])
        subtasks = await assistant.generate_subtasks("Plan trip")
        assert [s.title for s in subtasks] == [f"Step {i}" for i in range(5)]
        assert len({s.id for s in subtasks}) == 5

    @pytest.mark.asyncio
    async def test_suggestions_use_first_ten_tasks(self):
        tasks = [make_task(f"t{i}", f"Task number {i}") for i in range(12)]
        assistant, provider = make_assistant([json.dumps([])])

        assert await assistant.suggestions(tasks) == []
        assert "Task number 9" in provider.calls[0].prompt
        assert "Task number 10" not in provider.calls[0].prompt
