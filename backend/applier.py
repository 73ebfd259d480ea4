import uuid
from datetime import datetime
from typing import Callable, Optional

from loguru import logger
from pydantic import ValidationError

from board import TaskBoard
from ledger import UndoLedger
from models import (
    AppliedResult,
    CommandHistoryEntry,
    Comment,
    CommentAuthor,
    FailedOperation,
    MutationBatch,
    Task,
    TaskDraft,
    TaskPatch,
    Workspace,
)

# Patch fields that may be cleared with null; null on any other field is ignored
NULLABLE_FIELDS = {"description", "category", "due_date"}


def new_task_id() -> str:
    return str(uuid.uuid4())


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def merge_patch(task: Task, patch: TaskPatch) -> Optional[Task]:
    """Field-level merge of a patch over a task. Returns None if the result is not a valid task."""
    changes = {
        name: value
        for name, value in patch.updates.changes().items()
        if value is not None or name in NULLABLE_FIELDS
    }
    try:
        return Task.model_validate({**task.model_dump(), **changes})
    except ValidationError as e:
        logger.warning(f"Rejected patch for {task.id}: {e}")
        return None


def new_comment(text: str, author: CommentAuthor, now: datetime) -> Comment:
    return Comment(id=new_task_id(), text=text, author=author, timestamp=epoch_ms(now))


def append_comment(task: Task, comment: Comment, subtask_id: Optional[str] = None) -> Optional[Task]:
    """Comments are append-only. Returns None when subtask_id names no subtask of the task."""
    if subtask_id is None:
        return task.model_copy(update={"comments": task.comments + [comment]})
    if not any(s.id == subtask_id for s in task.subtasks):
        return None
    subtasks = [
        s.model_copy(update={"comments": s.comments + [comment]}) if s.id == subtask_id else s
        for s in task.subtasks
    ]
    return task.model_copy(update={"subtasks": subtasks})


def toggle_subtask(task: Task, subtask_id: str) -> Optional[Task]:
    if not any(s.id == subtask_id for s in task.subtasks):
        return None
    subtasks = [
        s.model_copy(update={"is_completed": not s.is_completed}) if s.id == subtask_id else s
        for s in task.subtasks
    ]
    return task.model_copy(update={"subtasks": subtasks})


class MutationApplier:
    """
    Applies a MutationBatch to a TaskBoard: snapshot, creates, deletes,
    updates, then a history entry. Store calls run one at a time.
    """

    def __init__(
        self,
        board: TaskBoard,
        ledger: UndoLedger,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = new_task_id,
    ):
        self.board = board
        self.ledger = ledger
        self.clock = clock
        self.id_factory = id_factory

    def task_from_draft(self, draft: TaskDraft, workspace: Workspace) -> Task:
        return Task(
            id=self.id_factory(),
            title=draft.title,
            description=draft.description,
            priority=draft.priority,
            category=draft.category,
            is_completed=False,
            due_date=draft.due_date,
            subtasks=[],
            comments=[],
            created_at=epoch_ms(self.clock()),
            workspace=draft.workspace or workspace,
        )

    async def apply(
        self,
        batch: MutationBatch,
        command: str,
        workspace: Workspace = Workspace.PERSONAL,
    ) -> AppliedResult:
        self.ledger.snapshot_before(self.board.tasks, command)
        result = AppliedResult()

        for draft in batch.added:
            task = self.task_from_draft(draft, workspace)
            failure = await self.board.add(task)
            result.created_tasks.append(task)
            if failure:
                result.failed.append(FailedOperation(operation="create", task_id=task.id, error=str(failure)))

        for task_id in batch.deleted_ids:
            if self.board.get(task_id) is None:
                logger.warning(f"Delete skipped, task {task_id} no longer exists")
                result.skipped_ids.append(task_id)
                continue
            failure = await self.board.delete(task_id)
            result.deleted_ids.append(task_id)
            if failure:
                result.failed.append(FailedOperation(operation="delete", task_id=task_id, error=str(failure)))

        for patch in batch.updated:
            # Resolve against the current set, not the snapshot the model saw
            existing = self.board.get(patch.id)
            updated = merge_patch(existing, patch) if existing else None
            if updated is None:
                logger.warning(f"Update skipped for task {patch.id}")
                result.skipped_ids.append(patch.id)
                continue
            failure = await self.board.update(updated)
            result.updated_tasks.append(updated)
            if failure:
                result.failed.append(FailedOperation(operation="update", task_id=updated.id, error=str(failure)))

        self.ledger.push_history(CommandHistoryEntry(
            command=command,
            added=len(result.created_tasks),
            updated=len(result.updated_tasks),
            deleted=len(result.deleted_ids),
            timestamp=epoch_ms(self.clock()),
        ))
        logger.info(
            f"Applied {command!r}: +{len(result.created_tasks)} ~{len(result.updated_tasks)} "
            f"-{len(result.deleted_ids)} (skipped {len(result.skipped_ids)}, store failures {len(result.failed)})"
        )
        return result
