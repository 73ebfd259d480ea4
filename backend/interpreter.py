import json
from datetime import date, datetime
from typing import Callable, Optional

from loguru import logger
from pydantic import ValidationError

import config
from dateparse import normalize_due_date
from errors import InterpretationFailed
from gateway import ModelGateway
from jsonparse import extract_json
from models import MutationBatch, Task, TaskUpdates, UiContext
from prompts import COMMAND_SYSTEM_PROMPT

# Structured-output hint sent to the primary provider
MUTATION_BATCH_SCHEMA = {
    "type": "object",
    "properties": {
        "added": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "priority": {"type": "string", "enum": ["High", "Medium", "Low"]},
                    "category": {"type": "string"},
                    "dueDate": {"type": "string"},
                    "workspace": {"type": "string", "enum": ["personal", "office", "startup"]},
                },
                "required": ["title"],
            },
        },
        "updated": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "updates": {
                        "type": "object",
                        "properties": {
                            "title": {"type": "string"},
                            "description": {"type": "string"},
                            "isCompleted": {"type": "boolean"},
                            "priority": {"type": "string"},
                            "category": {"type": "string"},
                            "dueDate": {"type": "string"},
                            "workspace": {"type": "string"},
                        },
                    },
                },
                "required": ["id", "updates"],
            },
        },
        "deletedIds": {"type": "array", "items": {"type": "string"}},
        "aiResponse": {"type": "string"},
    },
    "required": ["added", "updated", "deletedIds", "aiResponse"],
}


def time_of_day(now: datetime) -> str:
    if now.hour < 12:
        return "Morning"
    if now.hour < 17:
        return "Afternoon"
    return "Evening"


def parse_slash_command(text: str) -> Optional[tuple[str, str]]:
    """'/focus deep work' -> ('focus', 'deep work'); None for plain input."""
    if not text.startswith("/"):
        return None
    parts = text[1:].split(" ")
    return parts[0].lower(), " ".join(parts[1:])


def task_projection(task: Task) -> dict:
    """The reduced view of a task the model sees. No description or comments."""
    return {
        "id": task.id,
        "title": task.title,
        "priority": task.priority.value,
        "category": task.category,
        "dueDate": task.due_date,
        "isCompleted": task.is_completed,
    }


def build_command_prompt(
    user_input: str,
    tasks: list[Task],
    recent_commands: list[str],
    ui_context: UiContext,
    now: datetime,
) -> str:
    return f"""Context:
- Date: {now.date().isoformat()}
- Tasks: {json.dumps([task_projection(t) for t in tasks])}
- History: {json.dumps(recent_commands)}
- View: {ui_context.view_mode}
- Focus mode: {"on" if ui_context.is_focus_mode else "off"}
- Time of day: {time_of_day(now)}
- User Input: {json.dumps(user_input)}

Generate the JSON response to modify tasks."""


def parse_batch(text: str, today: date) -> MutationBatch:
    """
    Strictly parse raw model output into a MutationBatch.
    Missing lists default to empty; anything that is not a JSON object of the
    right shape raises InterpretationFailed.
    """
    try:
        data = extract_json(text)
    except ValueError as e:
        raise InterpretationFailed(f"Model output is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise InterpretationFailed(f"Expected a JSON object, got {type(data).__name__}")

    try:
        batch = MutationBatch.model_validate(data)
    except ValidationError as e:
        raise InterpretationFailed(f"Model output does not match the batch shape: {e}") from e

    for draft in batch.added:
        if draft.due_date:
            normalized = normalize_due_date(draft.due_date, today)
            if normalized is None:
                logger.warning(f"Dropping unparseable dueDate {draft.due_date!r} on new task {draft.title!r}")
            draft.due_date = normalized

    for patch in batch.updated:
        changes = patch.updates.changes()
        raw = changes.get("due_date")
        if not raw:
            continue
        normalized = normalize_due_date(raw, today)
        if normalized is None:
            logger.warning(f"Dropping unparseable dueDate {raw!r} on task {patch.id}")
            changes.pop("due_date")
        else:
            changes["due_date"] = normalized
        patch.updates = TaskUpdates(**changes)

    return batch


def _drop_unknown_ids(batch: MutationBatch, tasks: list[Task]) -> MutationBatch:
    """Patches and deletions may only name tasks the model was shown."""
    known = {t.id for t in tasks}
    unknown = [p.id for p in batch.updated if p.id not in known] + [i for i in batch.deleted_ids if i not in known]
    if unknown:
        logger.warning(f"Model referenced unknown task ids, ignoring: {unknown}")
    return batch.model_copy(update={
        "updated": [p for p in batch.updated if p.id in known],
        "deleted_ids": list(dict.fromkeys(i for i in batch.deleted_ids if i in known)),
    })


class CommandInterpreter:
    def __init__(
        self,
        gateway: ModelGateway,
        clock: Callable[[], datetime] = datetime.now,
        history_context_size: int = config.HISTORY_CONTEXT_SIZE,
    ):
        self.gateway = gateway
        self.clock = clock
        self.history_context_size = history_context_size

    async def interpret(
        self,
        user_input: str,
        tasks: list[Task],
        recent_commands: list[str],
        ui_context: Optional[UiContext] = None,
    ) -> MutationBatch:
        """
        Turn free text into a MutationBatch.

        Raises ModelUnavailable when no provider answers and
        InterpretationFailed when the answer can't be parsed.
        """
        slash = parse_slash_command(user_input)
        if slash:
            logger.debug(f"Slash command /{slash[0]} passed to the model for interpretation")

        now = self.clock()
        prompt = build_command_prompt(
            user_input,
            tasks,
            recent_commands[:self.history_context_size],
            ui_context or UiContext(),
            now,
        )
        system_prompt = COMMAND_SYSTEM_PROMPT.format(today=now.date().isoformat())

        raw = await self.gateway.generate(
            prompt,
            system_instruction=system_prompt,
            response_schema=MUTATION_BATCH_SCHEMA,
        )
        logger.debug(f"{raw.provider} response: {raw.text}")

        batch = _drop_unknown_ids(parse_batch(raw.text, now.date()), tasks)
        logger.info(
            f"Interpreted {user_input!r}: +{len(batch.added)} ~{len(batch.updated)} -{len(batch.deleted_ids)}"
        )
        return batch
