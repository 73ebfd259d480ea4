"""
Shared pytest fixtures for backend tests.
Uses a temp-file SQLite database and scripted in-process model providers.
"""
import json
import pytest
import sqlite3
import sys
import os
from datetime import datetime, timedelta

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from errors import StoreOperationFailed
from gateway import ModelGateway, ProviderStage, RetryPolicy
from models import Task

SCHEMA = """
    CREATE TABLE tasks (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        priority TEXT DEFAULT 'Medium',
        category TEXT,
        is_completed INTEGER DEFAULT 0,
        due_date TEXT,
        subtasks TEXT DEFAULT '[]',
        comments TEXT DEFAULT '[]',
        created_at INTEGER NOT NULL,
        workspace TEXT DEFAULT 'personal'
    );
"""


class FakeProvider:
    """Model provider that replays scripted responses. Exceptions in the script are raised."""

    def __init__(self, name="fake", responses=None, available=True):
        self.name = name
        self.responses = list(responses or [])
        self.available = available
        self.calls = []
        self.health_checks = 0

    async def is_available(self):
        self.health_checks += 1
        return self.available

    async def generate(self, request):
        self.calls.append(request)
        if not self.responses:
            raise RuntimeError(f"{self.name} has no scripted response")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class FakeStore:
    """In-memory TaskStore that records calls and can be told to fail."""

    def __init__(self, tasks=None, fail_on=()):
        self.rows = {t.id: t for t in (tasks or [])}
        self.fail_on = set(fail_on)  # operation names or (operation, task_id)
        self.calls = []

    def _maybe_fail(self, operation, task_id):
        self.calls.append((operation, task_id))
        if operation in self.fail_on or (operation, task_id) in self.fail_on:
            raise StoreOperationFailed(operation, task_id, RuntimeError("store offline"))

    async def list_tasks(self, user_id):
        return list(self.rows.values())

    async def create_task(self, user_id, task):
        self._maybe_fail("create", task.id)
        self.rows[task.id] = task
        return task

    async def update_task(self, user_id, task):
        self._maybe_fail("update", task.id)
        self.rows[task.id] = task
        return task

    async def delete_task(self, user_id, task_id):
        self._maybe_fail("delete", task_id)
        self.rows.pop(task_id, None)


class FixedClock:
    def __init__(self, now=datetime(2026, 3, 10, 9, 30)):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def make_task(task_id, title, **fields) -> Task:
    fields.setdefault("created_at", 1_700_000_000_000)
    return Task(id=task_id, title=title, **fields)


def batch_json(added=(), updated=(), deleted_ids=(), ai_response="Done") -> str:
    return json.dumps({
        "added": list(added),
        "updated": list(updated),
        "deletedIds": list(deleted_ids),
        "aiResponse": ai_response,
    })


def single_stage(provider, attempts=1) -> ModelGateway:
    return ModelGateway([ProviderStage(provider, RetryPolicy(attempts=attempts))])


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def app_client(test_db, monkeypatch, fake_provider):
    """
    Create a test client for the FastAPI app.
    The gateway is pointed at a scripted provider and sessions start empty.
    """
    from fastapi.testclient import TestClient
    import main

    # Skip alembic in tests - tables already created by test_db fixture
    monkeypatch.setattr(main, "init_db", lambda: None)
    monkeypatch.setattr(main.gateway, "stages", [ProviderStage(fake_provider, RetryPolicy(attempts=1))])
    main.sessions.clear()

    with TestClient(main.app) as client:
        yield client

    main.sessions.clear()
