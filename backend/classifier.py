from dataclasses import dataclass
from enum import Enum

from loguru import logger

import config
from errors import NoPendingAction
from models import MutationBatch


class Classification(str, Enum):
    AUTO_APPLY = "auto_apply"
    REQUIRES_CONFIRMATION = "requires_confirmation"


def classify(batch: MutationBatch, threshold: int = config.CONFIRMATION_THRESHOLD) -> Classification:
    """Any deletion, or more than `threshold` changes in total, needs the user's confirmation."""
    if batch.deleted_ids or batch.total_changes > threshold:
        return Classification.REQUIRES_CONFIRMATION
    return Classification.AUTO_APPLY


class PendingState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


@dataclass
class PendingAction:
    """A batch awaiting confirmation. Leaves PENDING exactly once."""
    batch: MutationBatch
    command: str
    state: PendingState = PendingState.PENDING

    @property
    def is_pending(self) -> bool:
        return self.state == PendingState.PENDING

    def confirm(self) -> MutationBatch:
        self._leave(PendingState.CONFIRMED)
        return self.batch

    def cancel(self) -> None:
        self._leave(PendingState.CANCELLED)

    def _leave(self, state: PendingState) -> None:
        if not self.is_pending:
            raise NoPendingAction(f"Action for {self.command!r} is already {self.state.value}")
        logger.info(f"Pending action {self.command!r} -> {state.value}")
        self.state = state
