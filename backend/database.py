import sqlite3
import json
from typing import Optional
from contextlib import contextmanager

import config
from models import Task

DATABASE_PATH = config.DATABASE_PATH

TASK_COLUMNS = (
    "id, user_id, title, description, priority, category, is_completed, "
    "due_date, subtasks, comments, created_at, workspace"
)


@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )


def _row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    keys = row.keys()
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        priority=row["priority"],
        category=row["category"],
        is_completed=bool(row["is_completed"]),
        due_date=row["due_date"],
        subtasks=json.loads(row["subtasks"] or "[]"),
        comments=json.loads(row["comments"] or "[]"),
        created_at=row["created_at"],
        workspace=(row["workspace"] if "workspace" in keys else None) or "personal",
    )


def _task_values(user_id: str, task: Task) -> tuple:
    return (
        task.id,
        user_id,
        task.title,
        task.description,
        task.priority.value,
        task.category,
        int(task.is_completed),
        task.due_date,
        json.dumps([s.model_dump(mode="json", by_alias=True) for s in task.subtasks]),
        json.dumps([c.model_dump(mode="json", by_alias=True) for c in task.comments]),
        task.created_at,
        task.workspace.value,
    )


def get_all_tasks(user_id: str) -> list[Task]:
    with get_db() as conn:
        rows = conn.execute(
            """SELECT * FROM tasks
               WHERE user_id = ?
               ORDER BY is_completed ASC, created_at DESC""",
            (user_id,)
        ).fetchall()
        return [_row_to_task(row) for row in rows]


def get_task_db(user_id: str, task_id: str) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, user_id)
        ).fetchone()
        return _row_to_task(row) if row else None


def create_task_db(user_id: str, task: Task) -> Task:
    """Insert a new task. Raises sqlite3.IntegrityError if the id is taken."""
    with get_db() as conn:
        conn.execute(
            f"INSERT INTO tasks ({TASK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            _task_values(user_id, task)
        )
        conn.commit()
    return task


def upsert_task_db(user_id: str, task: Task) -> Optional[Task]:
    """
    Write the full task row, inserting it if it does not exist.
    Rows owned by another user are left alone; returns None in that case.
    """
    with get_db() as conn:
        cursor = conn.execute(
            f"""INSERT INTO tasks ({TASK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    description = excluded.description,
                    priority = excluded.priority,
                    category = excluded.category,
                    is_completed = excluded.is_completed,
                    due_date = excluded.due_date,
                    subtasks = excluded.subtasks,
                    comments = excluded.comments,
                    workspace = excluded.workspace
                WHERE tasks.user_id = excluded.user_id""",
            _task_values(user_id, task)
        )
        conn.commit()
        return task if cursor.rowcount > 0 else None


def delete_task_db(user_id: str, task_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, user_id)
        )
        conn.commit()
        return cursor.rowcount > 0
