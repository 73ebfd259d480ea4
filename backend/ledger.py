from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from loguru import logger

import config
from models import CommandHistoryEntry, Task


@dataclass
class UndoSnapshot:
    tasks: list[Task]
    description: str
    created_at: datetime


class UndoLedger:
    """
    Single-slot undo plus a bounded log of applied commands.

    A new snapshot always replaces an unconsumed one. The undo *offer* expires
    after `undo_window`, but undo() itself stays valid until the slot is
    replaced or consumed.
    """

    def __init__(
        self,
        history_size: int = config.HISTORY_MAX_SIZE,
        undo_window: float = config.UNDO_WINDOW_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._snapshot: Optional[UndoSnapshot] = None
        self._history: deque[CommandHistoryEntry] = deque(maxlen=history_size)
        self.undo_window = timedelta(seconds=undo_window)
        self.clock = clock

    @property
    def snapshot(self) -> Optional[UndoSnapshot]:
        return self._snapshot

    def snapshot_before(self, tasks: list[Task], command: str) -> UndoSnapshot:
        if self._snapshot is not None:
            logger.debug(f"Replacing unconsumed snapshot: {self._snapshot.description}")
        self._snapshot = UndoSnapshot(
            tasks=[t.model_copy(deep=True) for t in tasks],
            description=f"Undo: {command}",
            created_at=self.clock(),
        )
        return self._snapshot

    def undo(self) -> Optional[list[Task]]:
        """Consume the snapshot and return its task list, or None when there is nothing to undo."""
        snapshot, self._snapshot = self._snapshot, None
        if snapshot is None:
            return None
        logger.info(snapshot.description)
        return snapshot.tasks

    def undo_offered(self) -> bool:
        """Whether the UI should still show the Undo action."""
        if self._snapshot is None:
            return False
        return self.clock() - self._snapshot.created_at < self.undo_window

    def push_history(self, entry: CommandHistoryEntry) -> None:
        self._history.appendleft(entry)

    def recent_history(self, n: Optional[int] = None) -> list[CommandHistoryEntry]:
        """Newest first."""
        entries = list(self._history)
        return entries if n is None else entries[:n]

    def recent_commands(self, n: int = config.HISTORY_CONTEXT_SIZE) -> list[str]:
        return [entry.command for entry in self.recent_history(n)]

    def reset_history(self) -> None:
        self._history.clear()
