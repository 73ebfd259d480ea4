from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from dateparse import parse_natural_date


class CamelModel(BaseModel):
    # Wire format is camelCase (isCompleted, dueDate, deletedIds, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Priority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class Workspace(str, Enum):
    PERSONAL = "personal"
    OFFICE = "office"
    STARTUP = "startup"


PRIORITY_ALIASES = {
    "high": Priority.HIGH,
    "urgent": Priority.HIGH,
    "critical": Priority.HIGH,
    "medium": Priority.MEDIUM,
    "normal": Priority.MEDIUM,
    "low": Priority.LOW,
}


def normalize_priority(value) -> Priority:
    """Map model/user spellings onto the Priority enum; unknown values become Medium."""
    if isinstance(value, Priority):
        return value
    if value is None:
        return Priority.MEDIUM
    return PRIORITY_ALIASES.get(str(value).strip().lower(), Priority.MEDIUM)


def normalize_workspace(value) -> Optional[Workspace]:
    if value is None or isinstance(value, Workspace):
        return value
    try:
        return Workspace(str(value).strip().lower())
    except ValueError:
        return None


def is_calendar_date(value: str) -> bool:
    """True for a real YYYY-MM-DD date (2025-02-30 is rejected)."""
    if len(value) != 10:
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


class CommentAuthor(str, Enum):
    USER = "user"
    AI = "ai"


class Comment(CamelModel):
    """Append-only note on a task or subtask."""
    id: str
    text: str
    author: CommentAuthor = CommentAuthor.USER
    timestamp: int  # epoch milliseconds


class Subtask(CamelModel):
    id: str
    title: str
    is_completed: bool = False
    comments: list[Comment] = Field(default_factory=list)


class Task(CamelModel):
    id: str
    title: str = Field(min_length=1)
    description: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    category: Optional[str] = None
    is_completed: bool = False
    due_date: Optional[str] = None  # YYYY-MM-DD, no time component
    subtasks: list[Subtask] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)
    created_at: int  # epoch milliseconds
    workspace: Workspace = Workspace.PERSONAL

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value):
        return normalize_priority(value)

    @field_validator("due_date")
    @classmethod
    def _due_date(cls, value):
        if not value:
            return None
        if not is_calendar_date(value):
            raise ValueError(f"dueDate must be YYYY-MM-DD, got {value!r}")
        return value


class TaskDraft(CamelModel):
    """Fields for a task the model wants created."""
    title: str = Field(min_length=1)
    description: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    category: Optional[str] = None
    due_date: Optional[str] = None  # may still be natural language until normalized
    workspace: Optional[Workspace] = None

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value):
        return normalize_priority(value)

    @field_validator("workspace", mode="before")
    @classmethod
    def _workspace(cls, value):
        return normalize_workspace(value)


class TaskUpdates(CamelModel):
    """Partial task fields. Unknown keys (id, createdAt, ...) are ignored."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Priority] = None
    category: Optional[str] = None
    is_completed: Optional[bool] = None
    due_date: Optional[str] = None
    workspace: Optional[Workspace] = None

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value):
        return None if value is None else normalize_priority(value)

    @field_validator("workspace", mode="before")
    @classmethod
    def _workspace(cls, value):
        return normalize_workspace(value)

    def changes(self) -> dict:
        """Only the fields that were actually supplied, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


class TaskPatch(CamelModel):
    id: str
    updates: TaskUpdates = Field(default_factory=TaskUpdates)


class MutationBatch(CamelModel):
    added: list[TaskDraft] = Field(default_factory=list)
    updated: list[TaskPatch] = Field(default_factory=list)
    deleted_ids: list[str] = Field(default_factory=list)
    ai_response: str = "Processed."

    @property
    def total_changes(self) -> int:
        return len(self.added) + len(self.updated) + len(self.deleted_ids)


class CommandHistoryEntry(CamelModel):
    command: str
    added: int = 0
    updated: int = 0
    deleted: int = 0
    timestamp: int  # epoch milliseconds


class FailedOperation(CamelModel):
    operation: str  # "create" | "update" | "delete"
    task_id: str
    error: str


class AppliedResult(CamelModel):
    created_tasks: list[Task] = Field(default_factory=list)
    updated_tasks: list[Task] = Field(default_factory=list)
    deleted_ids: list[str] = Field(default_factory=list)
    skipped_ids: list[str] = Field(default_factory=list)
    failed: list[FailedOperation] = Field(default_factory=list)


class UiContext(CamelModel):
    view_mode: str = "list"
    is_focus_mode: bool = False


# Request / response bodies

class TaskCreate(CamelModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    category: Optional[str] = None
    due_date: Optional[str] = None
    workspace: Optional[Workspace] = None

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value):
        return normalize_priority(value)

    @field_validator("due_date")
    @classmethod
    def _due_date(cls, value):
        if not value:
            return None
        if is_calendar_date(value):
            return value
        parsed = parse_natural_date(value)
        if parsed is None:
            raise ValueError(f"Unrecognised dueDate {value!r}")
        return parsed


class CommandRequest(CamelModel):
    input: str
    view_mode: str = "list"
    is_focus_mode: bool = False
    workspace: Optional[Workspace] = None


class CommandOutcome(CamelModel):
    status: str  # "applied" | "pending" | "cancelled" | "undone" | "noop"
    ai_response: Optional[str] = None
    batch: Optional[MutationBatch] = None
    result: Optional[AppliedResult] = None
    tasks: list[Task] = Field(default_factory=list)
    undo_available: bool = False


class PendingView(CamelModel):
    command: str
    batch: MutationBatch


class BrainstormRequest(CamelModel):
    goal: str


class Suggestion(CamelModel):
    text: str
    action: str
    type: str = "productivity"


class CommentRequest(CamelModel):
    text: str = Field(min_length=1)
    ask_ai: bool = False  # task comments only: let the model act on the comment and reply
