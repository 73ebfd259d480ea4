import sqlite3
from typing import Protocol

from starlette.concurrency import run_in_threadpool

import database
from errors import StoreOperationFailed
from models import Task


class TaskStore(Protocol):
    """The persisted task service, scoped per user. Failures raise StoreOperationFailed."""

    async def list_tasks(self, user_id: str) -> list[Task]: ...

    async def create_task(self, user_id: str, task: Task) -> Task: ...

    async def update_task(self, user_id: str, task: Task) -> Task: ...

    async def delete_task(self, user_id: str, task_id: str) -> None: ...


class SqliteTaskStore:
    """TaskStore backed by database.py. The blocking sqlite calls run in the threadpool."""

    async def list_tasks(self, user_id: str) -> list[Task]:
        try:
            return await run_in_threadpool(database.get_all_tasks, user_id)
        except sqlite3.Error as e:
            raise StoreOperationFailed("list", user_id, e) from e

    async def create_task(self, user_id: str, task: Task) -> Task:
        try:
            return await run_in_threadpool(database.create_task_db, user_id, task)
        except sqlite3.Error as e:
            raise StoreOperationFailed("create", task.id, e) from e

    async def update_task(self, user_id: str, task: Task) -> Task:
        try:
            saved = await run_in_threadpool(database.upsert_task_db, user_id, task)
        except sqlite3.Error as e:
            raise StoreOperationFailed("update", task.id, e) from e
        if saved is None:
            raise StoreOperationFailed("update", task.id, PermissionError("task belongs to another user"))
        return saved

    async def delete_task(self, user_id: str, task_id: str) -> None:
        try:
            await run_in_threadpool(database.delete_task_db, user_id, task_id)
        except sqlite3.Error as e:
            raise StoreOperationFailed("delete", task_id, e) from e
