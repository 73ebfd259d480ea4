"""
The command center session: interpret -> classify -> apply or hold for
confirmation, plus single-slot undo.

At most one action waits for confirmation per session. Submitting a new
command discards an unconfirmed one (last command wins). Interpretations
are not queued, so two overlapping submits may finish in either order.
"""
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Optional

from loguru import logger

import config
from applier import MutationApplier
from board import TaskBoard
from classifier import Classification, PendingAction, classify
from errors import NoPendingAction
from interpreter import CommandInterpreter
from ledger import UndoLedger
from models import AppliedResult, CommandOutcome, MutationBatch, UiContext, Workspace
from store import TaskStore


class CommandSession:
    def __init__(
        self,
        board: TaskBoard,
        interpreter: CommandInterpreter,
        ledger: Optional[UndoLedger] = None,
        clock: Callable[[], datetime] = datetime.now,
        threshold: int = config.CONFIRMATION_THRESHOLD,
    ):
        self.board = board
        self.interpreter = interpreter
        self.ledger = ledger or UndoLedger(clock=clock)
        self.applier = MutationApplier(board, self.ledger, clock=clock)
        self.threshold = threshold
        self.workspace = Workspace.PERSONAL
        self.pending: Optional[PendingAction] = None

    def _outcome(
        self,
        status: str,
        message: Optional[str],
        batch: Optional[MutationBatch] = None,
        result: Optional[AppliedResult] = None,
    ) -> CommandOutcome:
        return CommandOutcome(
            status=status,
            ai_response=message,
            batch=batch,
            result=result,
            tasks=self.board.tasks,
            undo_available=self.ledger.undo_offered(),
        )

    async def submit(
        self,
        command: str,
        ui_context: Optional[UiContext] = None,
        workspace: Optional[Workspace] = None,
    ) -> CommandOutcome:
        """
        Interpret a command and either apply it or hold it for confirmation.
        Interpretation errors propagate; nothing is mutated in that case.
        """
        if workspace:
            self.workspace = workspace
        if self.pending is not None:
            logger.info(f"Discarding unconfirmed action {self.pending.command!r}")
            self.pending = None

        batch = await self.interpreter.interpret(
            command,
            self.board.tasks,
            self.ledger.recent_commands(),
            ui_context,
        )

        if classify(batch, self.threshold) == Classification.REQUIRES_CONFIRMATION:
            self.pending = PendingAction(batch=batch, command=command)
            logger.info(f"Holding {command!r} for confirmation ({batch.total_changes} changes)")
            return self._outcome("pending", batch.ai_response, batch)

        result = await self.applier.apply(batch, command, self.workspace)
        return self._outcome("applied", batch.ai_response, batch, result)

    async def apply_now(self, batch: MutationBatch, command: str) -> CommandOutcome:
        """Apply a batch produced outside the interpreter, skipping the confirmation gate. Undo still works."""
        if not batch.total_changes:
            return self._outcome("noop", batch.ai_response)
        result = await self.applier.apply(batch, command, self.workspace)
        return self._outcome("applied", batch.ai_response, batch, result)

    async def confirm(self) -> CommandOutcome:
        if self.pending is None:
            raise NoPendingAction("Nothing is waiting for confirmation")
        pending, self.pending = self.pending, None
        batch = pending.confirm()
        result = await self.applier.apply(batch, pending.command, self.workspace)
        return self._outcome("applied", batch.ai_response, batch, result)

    def cancel(self) -> CommandOutcome:
        if self.pending is None:
            raise NoPendingAction("Nothing is waiting for confirmation")
        pending, self.pending = self.pending, None
        pending.cancel()
        return self._outcome("cancelled", "Action cancelled.")

    async def undo(self) -> CommandOutcome:
        tasks = self.ledger.undo()
        if tasks is None:
            return self._outcome("noop", "Nothing to undo.")
        await self.board.replace_all(tasks)
        return self._outcome("undone", "Action undone successfully.")


class SessionRegistry:
    """
    One CommandSession per user, created on first use.

    At most `max_sessions` are kept; the least recently used one is dropped
    first, taking its pending action, undo slot and history with it. Its
    tasks are reloaded from the store on the next request.
    """

    def __init__(
        self,
        store: TaskStore,
        interpreter: CommandInterpreter,
        max_sessions: int = config.MAX_SESSIONS,
    ):
        self.store = store
        self.interpreter = interpreter
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, CommandSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    async def get(self, user_id: str) -> CommandSession:
        session = self._sessions.get(user_id)
        if session is None:
            board = TaskBoard(user_id, self.store)
            await board.load()
            # Another request may have created it while we were loading
            session = self._sessions.setdefault(user_id, CommandSession(board, self.interpreter))
        self._sessions.move_to_end(user_id)
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.debug(f"Evicted command session for {evicted}")
        return session

    def clear(self) -> None:
        self._sessions.clear()
