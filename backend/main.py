from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

import config
from assistant import TaskAssistant
from command_center import CommandSession, SessionRegistry
from applier import append_comment, merge_patch, new_comment, toggle_subtask
from database import init_db
from errors import InterpretationFailed, ModelUnavailable, NoPendingAction
from gateway import build_gateway
from interpreter import CommandInterpreter
from models import (
    BrainstormRequest,
    CommandHistoryEntry,
    CommentAuthor,
    CommentRequest,
    CommandOutcome,
    CommandRequest,
    MutationBatch,
    PendingView,
    Suggestion,
    Task,
    TaskCreate,
    TaskDraft,
    TaskPatch,
    TaskUpdates,
    UiContext,
)
from store import SqliteTaskStore


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    init_db()
    if not config.primary_configured():
        logger.warning("ANTHROPIC_API_KEY not configured; commands will use the local fallback only")
    yield
    # Shutdown (nothing to do)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

gateway = build_gateway()
assistant = TaskAssistant(gateway)
sessions = SessionRegistry(SqliteTaskStore(), CommandInterpreter(gateway))


def current_user(authorization: Optional[str] = Header(default=None)) -> str:
    """The bearer credential is an opaque user id; no header means the local user."""
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
        if token:
            return token
    return "local"


async def current_session(user_id: str = Depends(current_user)) -> CommandSession:
    return await sessions.get(user_id)


def find_task(session: CommandSession, task_id: str) -> Task:
    task = session.board.get(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/tasks")
async def get_tasks(session: CommandSession = Depends(current_session)) -> list[Task]:
    return session.board.tasks


@app.post("/tasks")
async def create_task(task_data: TaskCreate, session: CommandSession = Depends(current_session)) -> Task:
    draft = TaskDraft.model_validate(task_data.model_dump())
    task = session.applier.task_from_draft(draft, session.workspace)
    await session.board.add(task)
    return task


@app.patch("/tasks/{task_id}")
async def update_task(
    task_id: str,
    task_data: TaskUpdates,
    session: CommandSession = Depends(current_session),
) -> Task:
    updated = merge_patch(find_task(session, task_id), TaskPatch(id=task_id, updates=task_data))
    if updated is None:
        raise HTTPException(status_code=422, detail="Invalid task update")
    await session.board.update(updated)
    return updated


@app.delete("/tasks/{task_id}")
async def delete_task(task_id: str, session: CommandSession = Depends(current_session)) -> dict:
    find_task(session, task_id)
    await session.board.delete(task_id)
    return {"status": "deleted"}


@app.post("/tasks/{task_id}/subtasks/generate")
async def generate_subtasks(task_id: str, session: CommandSession = Depends(current_session)) -> Task:
    """Ask the model to break a task into subtasks and append them."""
    task = find_task(session, task_id)
    subtasks = await assistant.generate_subtasks(task.title)
    updated = task.model_copy(update={"subtasks": task.subtasks + subtasks})
    await session.board.update(updated)
    return updated


@app.post("/tasks/{task_id}/subtasks/{subtask_id}/toggle")
async def toggle_subtask_route(
    task_id: str,
    subtask_id: str,
    session: CommandSession = Depends(current_session),
) -> Task:
    updated = toggle_subtask(find_task(session, task_id), subtask_id)
    if updated is None:
        raise HTTPException(status_code=404, detail="Subtask not found")
    await session.board.update(updated)
    return updated


@app.post("/tasks/{task_id}/comments")
async def add_task_comment(
    task_id: str,
    request: CommentRequest,
    session: CommandSession = Depends(current_session),
) -> Task:
    """
    Append a user comment. With askAi the model treats the comment as an
    instruction for this task and answers with an AI comment.
    """
    text = request.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Comment is empty")

    task = append_comment(find_task(session, task_id), new_comment(text, CommentAuthor.USER, datetime.now()))
    await session.board.update(task)

    if request.ask_ai:
        updated = await assistant.update_task_with_ai(task, text)
        if updated is None:
            logger.info(f"AI left task {task_id} unchanged")
        else:
            task = updated
            await session.board.update(task)
    return task


@app.post("/tasks/{task_id}/subtasks/{subtask_id}/comments")
async def add_subtask_comment(
    task_id: str,
    subtask_id: str,
    request: CommentRequest,
    session: CommandSession = Depends(current_session),
) -> Task:
    text = request.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Comment is empty")

    comment = new_comment(text, CommentAuthor.USER, datetime.now())
    updated = append_comment(find_task(session, task_id), comment, subtask_id)
    if updated is None:
        raise HTTPException(status_code=404, detail="Subtask not found")
    await session.board.update(updated)
    return updated


@app.post("/command")
async def command(request: CommandRequest, session: CommandSession = Depends(current_session)) -> CommandOutcome:
    """Process a natural-language command through the model and apply or hold the result."""
    text = request.input.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Command is empty")

    ui_context = UiContext(view_mode=request.view_mode, is_focus_mode=request.is_focus_mode)
    try:
        return await session.submit(text, ui_context, request.workspace)
    except ModelUnavailable as e:
        logger.error(f"Command {text!r} failed: {e}")
        raise HTTPException(status_code=503, detail="AI is currently unavailable")
    except InterpretationFailed as e:
        logger.error(f"Command {text!r} failed: {e}")
        raise HTTPException(status_code=502, detail="Could not understand the AI response")


@app.get("/command/pending")
async def get_pending(session: CommandSession = Depends(current_session)) -> Optional[PendingView]:
    if session.pending is None:
        return None
    return PendingView(command=session.pending.command, batch=session.pending.batch)


@app.post("/command/confirm")
async def confirm_command(session: CommandSession = Depends(current_session)) -> CommandOutcome:
    try:
        return await session.confirm()
    except NoPendingAction as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.post("/command/cancel")
async def cancel_command(session: CommandSession = Depends(current_session)) -> CommandOutcome:
    try:
        return session.cancel()
    except NoPendingAction as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.post("/command/undo")
async def undo_command(session: CommandSession = Depends(current_session)) -> CommandOutcome:
    return await session.undo()


@app.get("/command/history")
async def get_history(session: CommandSession = Depends(current_session)) -> list[CommandHistoryEntry]:
    return session.ledger.recent_history()


@app.delete("/command/history")
async def reset_history(session: CommandSession = Depends(current_session)) -> dict:
    session.ledger.reset_history()
    return {"status": "cleared"}


@app.post("/ai/brainstorm")
async def brainstorm(request: BrainstormRequest) -> list[TaskDraft]:
    return await assistant.brainstorm(request.goal)


@app.get("/ai/suggestions")
async def suggestions(session: CommandSession = Depends(current_session)) -> list[Suggestion]:
    return await assistant.suggestions(session.board.tasks)


@app.post("/ai/optimize-schedule")
async def optimize_schedule(session: CommandSession = Depends(current_session)) -> CommandOutcome:
    """Let the model assign due dates to open tasks. Applied directly and undoable."""
    patches = await assistant.optimize_schedule(session.board.tasks)
    message = f"Scheduled {len(patches)} task(s)." if patches else "No schedule changes."
    return await session.apply_now(MutationBatch(updated=patches, ai_response=message), "Optimize schedule")


@app.post("/ai/reset-fallback")
def reset_fallback() -> dict:
    """Forget the cached local-model health check."""
    gateway.reset_availability()
    return {"status": "reset"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
