# app.py — Tutor Workspace service v1.0.0
# - One live workspace per tutoring session, kept in memory
# - Agent action batches and learner edits share the same reducer path
# - Stateless extraction endpoint for chat replies

import logging
import threading
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

import content_extractor
from schemas import ItemWorkspace, LessonContext, Workspace, dump_workspace
from workspace_reducer import WorkspaceReducer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        # Validate environment variables first
        from env_validation import validate_environment
        validate_environment()
        logger.info("Workspace service ready")
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Tutor Workspace v1.0.0", version="1.0.0", lifespan=_lifespan)


class WorkspaceSession:
    """Live workspace for one tutoring session plus the agent errors it saw."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.workspace: Optional[Workspace] = None
        self.errors: List[str] = []
        self._lock = threading.Lock()
        self._reducer = WorkspaceReducer(on_error=self._record_error)

    def _record_error(self, message: Optional[str]) -> None:
        self.errors.append(message or "unknown error")

    def apply(self, actions: List[Dict[str, Any]]) -> Optional[Workspace]:
        # Single writer per session keeps actions in arrival order.
        with self._lock:
            self.workspace = self._reducer.apply(actions, self.workspace)
            return self.workspace

    def mark(self, index: int, correct: bool, feedback: Optional[str] = None) -> bool:
        """Mark one item; False when there is no item at ``index``."""
        action: Dict[str, Any] = {
            "action": "mark_correct" if correct else "mark_incorrect",
            "problemIndex": index,
        }
        if feedback is not None:
            action["feedback"] = feedback
        # The index is checked against the same state the reducer sees.
        with self._lock:
            workspace = self.workspace
            if not isinstance(workspace, ItemWorkspace) or not (0 <= index < len(workspace.items)):
                return False
            self.workspace = self._reducer.apply([action], workspace)
            return True

    def drain_errors(self) -> List[str]:
        with self._lock:
            errors, self.errors = self.errors, []
        return errors


SESSIONS: Dict[str, WorkspaceSession] = {}
_SESSIONS_LOCK = threading.Lock()


def get_session(session_id: str) -> WorkspaceSession:
    with _SESSIONS_LOCK:
        session = SESSIONS.get(session_id)
        if session is None:
            session = WorkspaceSession(session_id)
            SESSIONS[session_id] = session
        return session


def _require_workspace(session_id: str) -> WorkspaceSession:
    with _SESSIONS_LOCK:
        session = SESSIONS.get(session_id)
    if session is None or session.workspace is None:
        raise HTTPException(status_code=404, detail="no active workspace")
    return session


class ExtractBody(BaseModel):
    message: str
    lesson_context: Optional[LessonContext] = None


class ActionBatchBody(BaseModel):
    actions: List[Dict[str, Any]] = Field(default_factory=list)


class MarkBody(BaseModel):
    correct: bool
    feedback: Optional[str] = None


def _workspace_response(session: WorkspaceSession) -> Dict[str, Any]:
    return {
        "sessionId": session.session_id,
        "workspace": dump_workspace(session.workspace),
        "errors": session.drain_errors(),
    }


@app.post("/workspace/extract")
def extract_workspace_content(body: ExtractBody):
    document = content_extractor.extract(body.message, body.lesson_context)
    return {
        "document": document.model_dump(by_alias=True) if document is not None else None,
        "hasStructuredContent": content_extractor.has_structured_content(body.message),
    }


@app.post("/workspace/{session_id}/actions")
def apply_workspace_actions(session_id: str, body: ActionBatchBody):
    session = get_session(session_id)
    session.apply(body.actions)
    return _workspace_response(session)


@app.post("/workspace/{session_id}/items/{index}/mark")
def mark_workspace_item(session_id: str, index: int, body: MarkBody):
    session = _require_workspace(session_id)
    if not session.mark(index, body.correct, body.feedback):
        raise HTTPException(status_code=404, detail="item not found")
    return _workspace_response(session)


@app.get("/workspace/{session_id}")
def get_workspace(session_id: str):
    session = _require_workspace(session_id)
    return _workspace_response(session)


@app.delete("/workspace/{session_id}")
def clear_workspace(session_id: str):
    with _SESSIONS_LOCK:
        session = SESSIONS.pop(session_id, None)
    if session is None:
        session = WorkspaceSession(session_id)
    session.apply([{"action": "clear_workspace", "reason": "cleared by host"}])
    logger.info("Closed workspace session %s", session_id)
    return _workspace_response(session)
