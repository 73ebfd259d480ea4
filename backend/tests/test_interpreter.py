"""
Tests for interpreter.py - prompt context, strict parsing and date normalization.
"""
import json
from datetime import date, datetime

import pytest

from conftest import FakeProvider, FixedClock, batch_json, make_task, single_stage
from errors import InterpretationFailed, ModelUnavailable
from interpreter import (
    CommandInterpreter,
    build_command_prompt,
    parse_batch,
    parse_slash_command,
    task_projection,
    time_of_day,
)
from models import Priority, UiContext, Workspace

TODAY = date(2026, 3, 10)  # a Tuesday


class TestPromptContext:
    def test_projection_omits_description_and_comments(self):
        task = make_task("t1", "Buy milk", description="2 litres", category="Shopping", due_date="2026-03-11")
        projected = task_projection(task)
        assert projected == {
            "id": "t1",
            "title": "Buy milk",
            "priority": "Medium",
            "category": "Shopping",
            "dueDate": "2026-03-11",
            "isCompleted": False,
        }

    @pytest.mark.parametrize("hour,bucket", [(0, "Morning"), (11, "Morning"), (12, "Afternoon"), (16, "Afternoon"), (17, "Evening"), (23, "Evening")])
    def test_time_of_day_buckets(self, hour, bucket):
        assert time_of_day(datetime(2026, 3, 10, hour)) == bucket

    def test_prompt_contains_context(self):
        prompt = build_command_prompt(
            "add buy milk",
            [make_task("t1", "Walk dog", description="secret notes")],
            ["first", "second"],
            UiContext(view_mode="board", is_focus_mode=True),
            datetime(2026, 3, 10, 18, 0),
        )
        assert "2026-03-10" in prompt
        assert "Walk dog" in prompt
        assert "secret notes" not in prompt
        assert json.dumps(["first", "second"]) in prompt
        assert "View: board" in prompt
        assert "Focus mode: on" in prompt
        assert "Time of day: Evening" in prompt
        assert '"add buy milk"' in prompt

    @pytest.mark.asyncio
    async def test_only_last_n_commands_sent(self):
        provider = FakeProvider(responses=[batch_json()])
        interpreter = CommandInterpreter(single_stage(provider), clock=FixedClock(), history_context_size=3)

        await interpreter.interpret("hi", [], ["c5", "c4", "c3", "c2", "c1"])

        assert json.dumps(["c5", "c4", "c3"]) in provider.calls[0].prompt

    @pytest.mark.asyncio
    async def test_system_prompt_and_schema_sent(self):
        provider = FakeProvider(responses=[batch_json()])
        interpreter = CommandInterpreter(single_stage(provider), clock=FixedClock())

        await interpreter.interpret("hi", [], [])

        request = provider.calls[0]
        assert "Today's date is: 2026-03-10" in request.system_instruction
        assert request.response_schema["required"] == ["added", "updated", "deletedIds", "aiResponse"]

    def test_slash_commands(self):
        assert parse_slash_command("/focus deep work") == ("focus", "deep work")
        assert parse_slash_command("/Clear") == ("clear", "")
        assert parse_slash_command("add milk") is None


class TestParseBatch:
    def test_plain_json(self):
        text = batch_json(added=[{"title": "Buy milk", "priority": "Medium", "category": "Shopping"}], ai_response="Added buy milk")
        batch = parse_batch(text, TODAY)
        assert batch.added[0].title == "Buy milk"
        assert batch.added[0].category == "Shopping"
        assert batch.ai_response == "Added buy milk"

    def test_code_fence_stripped(self):
        text = "```json\n" + batch_json(deleted_ids=["t1"]) + "\n```"
        assert parse_batch(text, TODAY).deleted_ids == ["t1"]

    def test_prose_around_json(self):
        text = "Sure! Here you go:\n" + batch_json(added=[{"title": "Call mom"}]) + "\nLet me know."
        assert parse_batch(text, TODAY).added[0].title == "Call mom"

    def test_missing_lists_default_empty(self):
        batch = parse_batch('{"aiResponse": "Nothing to do"}', TODAY)
        assert batch.added == [] and batch.updated == [] and batch.deleted_ids == []
        assert batch.ai_response == "Nothing to do"

    @pytest.mark.parametrize("text", ["", "not json at all", "```\n```", '{"added": [', "[1, 2, 3]", '"just a string"'])
    def test_unparsable_output_fails(self, text):
        with pytest.raises(InterpretationFailed):
            parse_batch(text, TODAY)

    def test_wrong_shape_fails(self):
        with pytest.raises(InterpretationFailed):
            parse_batch('{"added": "Buy milk"}', TODAY)
        with pytest.raises(InterpretationFailed):
            parse_batch('{"added": [{"priority": "High"}]}', TODAY)

    def test_priority_and_workspace_spellings(self):
        text = batch_json(added=[{"title": "Ship it", "priority": "urgent", "workspace": "Startup"}])
        draft = parse_batch(text, TODAY).added[0]
        assert draft.priority == Priority.HIGH
        assert draft.workspace == Workspace.STARTUP

    def test_relative_due_dates_normalized(self):
        text = batch_json(
            added=[{"title": "A", "dueDate": "tomorrow"}, {"title": "B", "dueDate": "2026-04-01"}],
            updated=[{"id": "t1", "updates": {"dueDate": "next friday"}}],
        )
        batch = parse_batch(text, TODAY)
        assert batch.added[0].due_date == "2026-03-11"
        assert batch.added[1].due_date == "2026-04-01"
        assert batch.updated[0].updates.due_date == "2026-03-13"

    def test_unparseable_due_date_dropped(self):
        text = batch_json(
            added=[{"title": "A", "dueDate": "whenever"}],
            updated=[{"id": "t1", "updates": {"dueDate": "someday", "title": "Renamed"}}],
        )
        batch = parse_batch(text, TODAY)
        assert batch.added[0].due_date is None
        assert batch.updated[0].updates.changes() == {"title": "Renamed"}


class TestInterpret:
    @pytest.mark.asyncio
    async def test_unknown_ids_are_dropped(self):
        provider = FakeProvider(responses=[batch_json(
            updated=[{"id": "t1", "updates": {"isCompleted": True}}, {"id": "ghost", "updates": {"title": "x"}}],
            deleted_ids=["t1", "ghost", "t1"],
        )])
        interpreter = CommandInterpreter(single_stage(provider), clock=FixedClock())

        batch = await interpreter.interpret("finish t1", [make_task("t1", "Report")], [])

        assert [p.id for p in batch.updated] == ["t1"]
        assert batch.deleted_ids == ["t1"]

    @pytest.mark.asyncio
    async def test_model_unavailable_propagates(self):
        provider = FakeProvider(available=False)
        interpreter = CommandInterpreter(single_stage(provider), clock=FixedClock())

        with pytest.raises(ModelUnavailable):
            await interpreter.interpret("add milk", [], [])

    @pytest.mark.asyncio
    async def test_garbage_is_interpretation_failure_not_empty_batch(self):
        provider = FakeProvider(responses=["I'm sorry, I can't help with that."])
        interpreter = CommandInterpreter(single_stage(provider), clock=FixedClock())

        with pytest.raises(InterpretationFailed) as excinfo:
            await interpreter.interpret("add milk", [], [])
        assert not isinstance(excinfo.value, ModelUnavailable)
