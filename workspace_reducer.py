"""Apply agent workspace actions, in arrival order, to the live workspace.

Each action is validated and applied on its own. A malformed action is logged
and skipped; the rest of the batch still applies. Workspaces are never mutated
in place: every applied action yields a new object, so a host can diff the
result against what it rendered before.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from pydantic import BaseModel, ValidationError

from engines.validation import (
    ActionValidationError,
    require_item_index,
    require_item_workspace,
    require_new_items,
)
from env_validation import get_env_bool
from schemas import (
    AddItemsAction,
    ClearWorkspaceAction,
    CreateWorkspaceAction,
    ErrorAction,
    EvaluateContentAction,
    ItemWorkspace,
    MarkItemAction,
    Workspace,
    WorkspaceShapeError,
    WorkspaceStats,
    build_workspace,
    map_items,
    workspace_from_snapshot,
)

logger = logging.getLogger(__name__)

TRACE_ACTIONS = get_env_bool("WORKSPACE_TRACE_ACTIONS", False)

ItemCallback = Callable[[Optional[str]], Any]
ErrorCallback = Callable[[Optional[str]], Any]
_Handler = Callable[[Mapping[str, Any], Optional[Workspace]], Optional[Workspace]]


def _stats_after_add(supplied: Optional[WorkspaceStats], previous: WorkspaceStats, count: int) -> WorkspaceStats:
    # Only ``total`` is ever filled locally, and only when the agent left it out.
    stats = supplied if supplied is not None else previous
    if supplied is not None and supplied.total is not None:
        return supplied
    return stats.model_copy(update={"total": count})


class WorkspaceReducer:
    """Reduce batches of agent actions against a workspace.

    ``on_mark_correct`` / ``on_mark_incorrect`` receive the id of an item after
    it has been marked; ``on_error`` receives the message of an ``error``
    action. All three are optional.
    """

    def __init__(
        self,
        *,
        on_mark_correct: Optional[ItemCallback] = None,
        on_mark_incorrect: Optional[ItemCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.on_mark_correct = on_mark_correct
        self.on_mark_incorrect = on_mark_incorrect
        self.on_error = on_error
        self._handlers: Dict[str, _Handler] = {
            "create_workspace": self._create_workspace,
            "add_content": self._add_items,
            "add_problems": self._add_items,
            "evaluate_content": self._evaluate_content,
            "mark_correct": self._mark_correct,
            "mark_incorrect": self._mark_incorrect,
            "clear_workspace": self._clear_workspace,
            "error": self._report_error,
        }

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------
    def apply(
        self,
        actions: Optional[Iterable[Any]],
        prior_workspace: Workspace | Mapping[str, Any] | None = None,
    ) -> Optional[Workspace]:
        workspace = self._coerce_workspace(prior_workspace)
        if not actions:
            return workspace

        for position, raw in enumerate(actions, start=1):
            payload = self._as_mapping(raw)
            tag = payload.get("action") if payload is not None else None
            handler = self._handlers.get(tag) if isinstance(tag, str) else None
            if handler is None:
                logger.warning("Ignoring unknown workspace action %r (#%s)", tag, position)
                continue
            if TRACE_ACTIONS:
                logger.debug("Applying workspace action #%s: %s", position, tag)
            try:
                workspace = handler(payload, workspace)
            except (ActionValidationError, ValidationError, WorkspaceShapeError) as exc:
                logger.warning("Skipping malformed %s action (#%s): %s", tag, position, exc)
        return workspace

    @staticmethod
    def _as_mapping(raw: Any) -> Optional[Mapping[str, Any]]:
        if isinstance(raw, BaseModel):
            return raw.model_dump(by_alias=True)
        if isinstance(raw, Mapping):
            return raw
        return None

    @staticmethod
    def _coerce_workspace(prior: Workspace | Mapping[str, Any] | None) -> Optional[Workspace]:
        if prior is None or isinstance(prior, BaseModel):
            return prior
        try:
            return workspace_from_snapshot(prior)
        except (ValidationError, WorkspaceShapeError) as exc:
            logger.warning("Discarding unreadable prior workspace: %s", exc)
            return None

    # ------------------------------------------------------------------
    # structural actions
    # ------------------------------------------------------------------
    def _create_workspace(self, payload: Mapping[str, Any], workspace: Optional[Workspace]) -> Workspace:
        action = CreateWorkspaceAction.model_validate(payload)
        created = build_workspace(action.workspace)
        logger.info(
            "Created %s workspace %r", created.schema_generation, action.workspace.get("title")
        )
        return created

    def _bootstrap(self, action: AddItemsAction) -> Tuple[Optional[ItemWorkspace], bool]:
        for source, label in ((action.current_workspace, "snapshot"), (action.workspace, "seed")):
            if not source:
                continue
            restored = workspace_from_snapshot(source)
            if isinstance(restored, ItemWorkspace):
                logger.info("Bootstrapped workspace from %s before %s", label, action.action)
                return restored, True
        return None, False

    def _add_items(self, payload: Mapping[str, Any], workspace: Optional[Workspace]) -> Optional[Workspace]:
        action = AddItemsAction.model_validate(payload)
        raw_items: List[Any] = require_new_items(action.new_items, action.action)

        bootstrapped = False
        if workspace is None:
            workspace, bootstrapped = self._bootstrap(action)
            if workspace is None:
                logger.warning("Dropping %s: no active workspace and no snapshot to restore", action.action)
                return None
        base = require_item_workspace(workspace, action.action)
        existing = base.items

        if bootstrapped:
            # The restored snapshot may already contain what is being added.
            known: Set[str] = {item.id for item in existing if item.id is not None}
            raw_items = [
                raw for raw in raw_items
                if not (isinstance(raw, Mapping) and raw.get("id") is not None and str(raw["id"]) in known)
            ]

        added = map_items(raw_items, start=len(existing))
        items = existing + added
        stats = _stats_after_add(action.supplied_stats(), base.stats, len(items))
        logger.debug("Appended %s item(s) to %s workspace", len(added), base.schema_generation)
        return base.with_items(items, stats)

    # ------------------------------------------------------------------
    # evaluation actions
    # ------------------------------------------------------------------
    def _evaluate_content(self, payload: Mapping[str, Any], workspace: Optional[Workspace]) -> Workspace:
        action = EvaluateContentAction.model_validate(payload)
        base = require_item_workspace(workspace, action.action)
        items = base.items
        index = require_item_index(action.content_index, len(items), action.action)

        update = action.evaluation.model_dump(exclude_unset=True)
        if update.get("status") is None:
            update.pop("status", None)
        items[index] = items[index].model_copy(update=update)
        return base.with_items(items, action.supplied_stats())

    def _mark(self, payload: Mapping[str, Any], workspace: Optional[Workspace], status: str) -> Tuple[Workspace, Optional[str]]:
        action = MarkItemAction.model_validate(payload)
        base = require_item_workspace(workspace, action.action)
        items = base.items
        index = require_item_index(action.problem_index, len(items), action.action)

        update: Dict[str, Any] = {"status": status}
        feedback = action.item_feedback
        if feedback is not None:
            update["feedback"] = feedback
        items[index] = items[index].model_copy(update=update)
        logger.debug("Marked item %s %s", index, status)
        return base.with_items(items, action.supplied_stats()), action.item_id or items[index].id

    def _mark_correct(self, payload: Mapping[str, Any], workspace: Optional[Workspace]) -> Workspace:
        updated, item_id = self._mark(payload, workspace, "correct")
        self._notify(self.on_mark_correct, item_id)
        return updated

    def _mark_incorrect(self, payload: Mapping[str, Any], workspace: Optional[Workspace]) -> Workspace:
        updated, item_id = self._mark(payload, workspace, "incorrect")
        self._notify(self.on_mark_incorrect, item_id)
        return updated

    @staticmethod
    def _notify(callback: Optional[Callable[[Optional[str]], Any]], value: Optional[str]) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception:
            logger.exception("Workspace callback failed for %r", value)

    # ------------------------------------------------------------------
    # lifecycle actions
    # ------------------------------------------------------------------
    def _clear_workspace(self, payload: Mapping[str, Any], workspace: Optional[Workspace]) -> None:
        action = ClearWorkspaceAction.model_validate(payload)
        logger.info("Clearing workspace (reason: %s)", action.reason or "unspecified")
        return None

    def _report_error(self, payload: Mapping[str, Any], workspace: Optional[Workspace]) -> Optional[Workspace]:
        action = ErrorAction.model_validate(payload)
        logger.error("Workspace action error: %s", action.message)
        self._notify(self.on_error, action.message)
        return workspace


def apply_actions(
    actions: Optional[Iterable[Any]],
    prior_workspace: Workspace | Mapping[str, Any] | None = None,
    **callbacks: Any,
) -> Optional[Workspace]:
    """Reduce ``actions`` against ``prior_workspace`` with a one-off reducer."""

    return WorkspaceReducer(**callbacks).apply(actions, prior_workspace)
