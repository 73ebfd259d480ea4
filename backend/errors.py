class CommandError(Exception):
    """Base class for command center failures."""


class InterpretationFailed(CommandError):
    """A model responded but the output could not be turned into a MutationBatch."""


class ModelUnavailable(InterpretationFailed):
    """Every configured provider was exhausted.

    `causes` holds one (provider name, exception) pair per failed stage.
    """

    def __init__(self, causes: list[tuple[str, BaseException]]):
        self.causes = causes
        detail = "; ".join(f"{name}: {exc}" for name, exc in causes) or "no providers configured"
        super().__init__(f"All AI providers failed ({detail})")


class StoreOperationFailed(CommandError):
    def __init__(self, operation: str, task_id: str, cause: BaseException | None = None):
        self.operation = operation
        self.task_id = task_id
        self.cause = cause
        super().__init__(f"Task store {operation} failed for {task_id}: {cause}")


class NoPendingAction(CommandError):
    """Confirm or cancel was requested with nothing awaiting confirmation."""
