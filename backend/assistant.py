import json
import uuid
from datetime import datetime
from typing import Callable, Optional

from loguru import logger
from pydantic import ValidationError

from applier import append_comment, merge_patch, new_comment
from dateparse import normalize_due_date
from errors import CommandError
from gateway import ModelGateway
from jsonparse import extract_json
from models import (
    PRIORITY_ALIASES,
    CommentAuthor,
    Subtask,
    Suggestion,
    Task,
    TaskDraft,
    TaskPatch,
    TaskUpdates,
)
from prompts import (
    BRAINSTORM_PROMPT,
    OPTIMIZE_SCHEDULE_PROMPT,
    SUBTASKS_PROMPT,
    SUGGESTIONS_PROMPT,
    TASK_UPDATE_PROMPT,
)

DEFAULT_AI_REPLY = "I've updated the task details."


class TaskAssistant:
    """Smaller AI helpers. These degrade to an empty (or unchanged) result instead of raising."""

    def __init__(self, gateway: ModelGateway, clock: Callable[[], datetime] = datetime.now):
        self.gateway = gateway
        self.clock = clock

    async def _ask(self, prompt: str):
        try:
            raw = await self.gateway.generate(prompt)
            return extract_json(raw.text)
        except (CommandError, ValueError) as e:
            logger.warning(f"AI helper failed: {e}")
            return None

    async def _ask_for_list(self, prompt: str) -> list:
        data = await self._ask(prompt)
        return data if isinstance(data, list) else []

    async def generate_subtasks(self, title: str) -> list[Subtask]:
        items = await self._ask_for_list(SUBTASKS_PROMPT.format(title=title))
        subtasks = []
        for item in items:
            text = item.get("title") if isinstance(item, dict) else item
            if isinstance(text, str) and text.strip():
                subtasks.append(Subtask(id=str(uuid.uuid4()), title=text.strip()))
        return subtasks[:5]

    async def brainstorm(self, goal: str) -> list[TaskDraft]:
        drafts = []
        for item in await self._ask_for_list(BRAINSTORM_PROMPT.format(goal=goal)):
            try:
                drafts.append(TaskDraft.model_validate(item))
            except ValidationError:
                logger.debug(f"Skipping malformed brainstorm item: {item!r}")
        return drafts

    async def suggestions(self, tasks: list[Task]) -> list[Suggestion]:
        summary = json.dumps([{"title": t.title, "due": t.due_date} for t in tasks[:10]])
        prompt = SUGGESTIONS_PROMPT.format(today=self.clock().date().isoformat(), tasks=summary)
        results = []
        for item in await self._ask_for_list(prompt):
            try:
                results.append(Suggestion.model_validate(item))
            except ValidationError:
                logger.debug(f"Skipping malformed suggestion: {item!r}")
        return results[:3]

    async def update_task_with_ai(self, task: Task, instruction: str) -> Optional[Task]:
        """
        Apply a free-text instruction to one task and append the model's reply
        as an AI comment. Returns None when the model gave nothing usable;
        the caller keeps the task as it was.
        """
        today = self.clock().date()
        task_json = json.dumps(task.model_dump(mode="json", by_alias=True, exclude={"subtasks", "comments"}))
        data = await self._ask(TASK_UPDATE_PROMPT.format(
            today=today.isoformat(),
            task=task_json,
            instruction=json.dumps(instruction),
        ))
        if not isinstance(data, dict):
            return None

        reply = data.pop("reply", None)
        due = data.get("dueDate")
        if isinstance(due, str):
            normalized = normalize_due_date(due, today)
            if normalized is None:
                logger.warning(f"Dropping unparseable dueDate {due!r} from AI update of {task.id}")
                data.pop("dueDate")
            else:
                data["dueDate"] = normalized

        try:
            patch = TaskPatch(id=task.id, updates=TaskUpdates.model_validate(data))
        except ValidationError as e:
            logger.warning(f"AI update for {task.id} has the wrong shape: {e}")
            return None
        updated = merge_patch(task, patch)
        if updated is None:
            return None

        text = reply.strip() if isinstance(reply, str) and reply.strip() else DEFAULT_AI_REPLY
        return append_comment(updated, new_comment(text, CommentAuthor.AI, self.clock()))

    async def optimize_schedule(self, tasks: list[Task]) -> list[TaskPatch]:
        """Due date (and occasionally priority) patches for open tasks. Unknown ids are ignored."""
        open_tasks = [t for t in tasks if not t.is_completed]
        if not open_tasks:
            return []

        today = self.clock().date()
        summary = json.dumps([
            {"id": t.id, "title": t.title, "priority": t.priority.value, "dueDate": t.due_date}
            for t in open_tasks
        ])
        items = await self._ask_for_list(OPTIMIZE_SCHEDULE_PROMPT.format(today=today.isoformat(), tasks=summary))

        known = {t.id for t in open_tasks}
        patches = {}
        for item in items:
            if not isinstance(item, dict) or item.get("id") not in known or item["id"] in patches:
                continue
            changes = {}
            due = item.get("dueDate")
            if isinstance(due, str):
                normalized = normalize_due_date(due, today)
                if normalized:
                    changes["due_date"] = normalized
            priority = item.get("priority")
            if isinstance(priority, str) and priority.strip().lower() in PRIORITY_ALIASES:
                changes["priority"] = priority
            if changes:
                patches[item["id"]] = TaskPatch(id=item["id"], updates=TaskUpdates(**changes))
        return list(patches.values())
