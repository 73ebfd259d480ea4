from typing import Awaitable, Optional

from loguru import logger

from errors import StoreOperationFailed
from models import Task
from store import TaskStore


class TaskBoard:
    """
    One user's task set in two layers: the in-memory list the UI reads, and
    the persisted store behind it.

    Every mutation commits to memory first and always succeeds there. The
    store write follows; if it fails the error is logged and returned, and
    the in-memory change stays in place.
    """

    def __init__(self, user_id: str, store: TaskStore):
        self.user_id = user_id
        self.store = store
        self._tasks: list[Task] = []

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    def get(self, task_id: str) -> Optional[Task]:
        return next((t for t in self._tasks if t.id == task_id), None)

    async def load(self) -> list[Task]:
        self._tasks = await self.store.list_tasks(self.user_id)
        logger.debug(f"Loaded {len(self._tasks)} tasks for {self.user_id}")
        return self.tasks

    async def add(self, task: Task) -> Optional[StoreOperationFailed]:
        self._tasks.insert(0, task)
        return await self._persist(self.store.create_task(self.user_id, task))

    async def update(self, task: Task) -> Optional[StoreOperationFailed]:
        self._tasks = [task if t.id == task.id else t for t in self._tasks]
        return await self._persist(self.store.update_task(self.user_id, task))

    async def delete(self, task_id: str) -> Optional[StoreOperationFailed]:
        self._tasks = [t for t in self._tasks if t.id != task_id]
        return await self._persist(self.store.delete_task(self.user_id, task_id))

    async def replace_all(self, tasks: list[Task]) -> list[StoreOperationFailed]:
        """
        Overwrite the whole task set (used by undo). The store is brought in
        line by deleting tasks that are gone and rewriting tasks that changed.
        """
        current = {t.id: t for t in self._tasks}
        wanted = {t.id for t in tasks}
        self._tasks = list(tasks)

        failures = []
        for task_id in current:
            if task_id not in wanted:
                failure = await self._persist(self.store.delete_task(self.user_id, task_id))
                if failure:
                    failures.append(failure)
        for task in tasks:
            if current.get(task.id) != task:
                failure = await self._persist(self.store.update_task(self.user_id, task))
                if failure:
                    failures.append(failure)
        return failures

    async def _persist(self, call: Awaitable) -> Optional[StoreOperationFailed]:
        try:
            await call
        except StoreOperationFailed as e:
            logger.error(str(e))
            return e
        return None
