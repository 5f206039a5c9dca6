"""Pydantic schemas for workspace state, agent actions and extracted documents."""

from __future__ import annotations

from typing import Any, ClassVar, Dict, List, Literal, Mapping, Sequence, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

__all__ = [
    "ItemStatus",
    "ContentItem",
    "ContentEvaluation",
    "WorkspaceStats",
    "SubjectWorkspace",
    "LegacyMathWorkspace",
    "CreativeWritingWorkspace",
    "ItemWorkspace",
    "Workspace",
    "CreateWorkspaceAction",
    "AddItemsAction",
    "EvaluateContentAction",
    "MarkItemAction",
    "ClearWorkspaceAction",
    "ErrorAction",
    "LessonJson",
    "LessonContext",
    "ExtractedProblem",
    "ExplanationBlock",
    "MathProblemsDocument",
    "MixedDocument",
    "AssignmentData",
    "AssignmentDocument",
    "ExtractedDocument",
    "WorkspaceShapeError",
    "map_items",
    "build_workspace",
    "workspace_from_snapshot",
    "dump_workspace",
]

ItemStatus = Literal[
    "unattempted",
    "correct",
    "incorrect",
    "excellent",
    "good",
    "needs_improvement",
]

CREATIVE_WRITING_TYPE = "creative_writing_toolkit"
LEGACY_SUBJECT = "math"
LEGACY_WORKSPACE_TYPE = "math_problems"
DEFAULT_SUBJECT = "general"

# Statuses emitted by older backends that map onto the current vocabulary.
_STATUS_ALIASES = {
    "pending": "unattempted",
    "needs improvement": "needs_improvement",
    "needs-improvement": "needs_improvement",
}


class WorkspaceShapeError(ValueError):
    """A workspace payload or snapshot is not shaped like a workspace."""


def _normalize_status(value: Any) -> Any:
    if value is None:
        return "unattempted"
    if isinstance(value, str):
        lowered = value.strip().lower()
        return _STATUS_ALIASES.get(lowered, lowered)
    return value


class _WireModel(BaseModel):
    """Base for payloads exchanged with the agent, which speaks camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContentItem(_WireModel):
    id: str | None = Field(default=None, description="Stable identifier used by mark callbacks.")
    index: int = Field(default=0, ge=0, description="Position of the item inside its workspace.")
    text: str = ""
    kind: str | None = Field(
        default=None,
        validation_alias=AliasChoices("kind", "type"),
        description="Problem classification, e.g. addition or fraction_multiplication.",
    )
    hint: str | None = None
    difficulty: str | None = "medium"
    status: ItemStatus = "unattempted"
    feedback: str | None = None
    evaluation_criteria: Any | None = None
    rubric_scores: Any | None = None
    evidence_quality: Any | None = None
    is_function_controlled: bool = Field(
        default=True,
        description="True for agent-authored items, so the UI can tell them apart from user-authored ones.",
    )

    model_config = ConfigDict(extra="allow")

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Any:
        return _normalize_status(value)


class ContentEvaluation(_WireModel):
    """Per-item evaluation fields overwritten by ``evaluate_content``."""

    status: ItemStatus | None = None
    feedback: str | None = None
    evaluation_criteria: Any | None = None
    rubric_scores: Any | None = None
    evidence_quality: Any | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Any:
        if value is None:
            return None
        return _normalize_status(value)


class WorkspaceStats(_WireModel):
    """Aggregates supplied by the agent. Stored as-is, never recomputed."""

    attempted: int | None = None
    correct: int | None = None
    total: int | None = None

    model_config = ConfigDict(extra="allow")


class ItemWorkspace(_WireModel):
    """Shared shape of the two workspace generations that hold items."""

    ITEMS_FIELD: ClassVar[str]

    subject: str
    workspace_type: str | None = None
    title: str | None = None
    explanation: str | None = None
    session_id: str | None = None
    stats: WorkspaceStats = Field(default_factory=WorkspaceStats)
    created_at: str | None = None

    @property
    def items(self) -> List[ContentItem]:
        return list(getattr(self, self.ITEMS_FIELD))

    def with_items(
        self,
        items: Sequence[ContentItem],
        stats: WorkspaceStats | None = None,
    ) -> "ItemWorkspace":
        """Return a copy holding ``items`` (re-indexed) and, if given, ``stats``."""

        reindexed = [
            item if item.index == position else item.model_copy(update={"index": position})
            for position, item in enumerate(items)
        ]
        update: Dict[str, Any] = {self.ITEMS_FIELD: reindexed}
        if stats is not None:
            update["stats"] = stats
        return self.model_copy(update=update)


class SubjectWorkspace(ItemWorkspace):
    ITEMS_FIELD: ClassVar[str] = "content"

    schema_generation: Literal["current"] = "current"
    learning_objectives: List[Any] = Field(default_factory=list)
    content: List[ContentItem] = Field(default_factory=list)


class LegacyMathWorkspace(ItemWorkspace):
    ITEMS_FIELD: ClassVar[str] = "problems"

    schema_generation: Literal["legacy"] = "legacy"
    subject: Literal["math"] = LEGACY_SUBJECT
    workspace_type: Literal["math_problems"] = LEGACY_WORKSPACE_TYPE
    problems: List[ContentItem] = Field(default_factory=list)


class CreativeWritingWorkspace(_WireModel):
    """Writing toolkit stored verbatim; it carries no items array."""

    schema_generation: Literal["creative_writing_toolkit"] = CREATIVE_WRITING_TYPE
    prompt_type: str | None = None
    title: str | None = None
    session_id: str | None = None
    brainstorming_section: Any | None = None
    planning_sections: Any | None = None
    progress: Any | None = None
    created_at: str | None = None

    model_config = ConfigDict(extra="allow")


Workspace = Union[SubjectWorkspace, LegacyMathWorkspace, CreativeWritingWorkspace]

_GENERATIONS = {
    "current": SubjectWorkspace,
    "legacy": LegacyMathWorkspace,
    CREATIVE_WRITING_TYPE: CreativeWritingWorkspace,
}


# ----------------------------------------------------------------------
# actions
# ----------------------------------------------------------------------
class _ActionBase(_WireModel):
    model_config = ConfigDict(extra="allow")

    def supplied_stats(self) -> WorkspaceStats | None:
        """Stats carried by the action, top-level first, then ``workspace.stats``."""

        raw = getattr(self, "stats", None)
        if raw is None:
            workspace = getattr(self, "workspace", None)
            if isinstance(workspace, Mapping):
                raw = workspace.get("stats")
        if raw is None:
            return None
        return WorkspaceStats.model_validate(raw)


class CreateWorkspaceAction(_ActionBase):
    action: Literal["create_workspace"]
    workspace: Dict[str, Any]


class AddItemsAction(_ActionBase):
    action: Literal["add_content", "add_problems"]
    new_content: List[Dict[str, Any]] | None = None
    new_problems: List[Dict[str, Any]] | None = None
    workspace: Dict[str, Any] | None = None
    current_workspace: Dict[str, Any] | None = None
    stats: Dict[str, Any] | None = None

    @property
    def new_items(self) -> List[Dict[str, Any]] | None:
        if self.new_content is not None:
            return self.new_content
        return self.new_problems


class EvaluateContentAction(_ActionBase):
    action: Literal["evaluate_content"]
    content_index: int = Field(
        validation_alias=AliasChoices("contentIndex", "content_index", "problemIndex", "index"),
    )
    evaluation: ContentEvaluation
    workspace: Dict[str, Any] | None = None
    stats: Dict[str, Any] | None = None


class MarkItemAction(_ActionBase):
    action: Literal["mark_correct", "mark_incorrect"]
    problem_index: int = Field(
        validation_alias=AliasChoices("problemIndex", "problem_index", "contentIndex", "index"),
    )
    problem: Dict[str, Any] | None = None
    feedback: str | None = None
    workspace: Dict[str, Any] | None = None
    stats: Dict[str, Any] | None = None

    @property
    def item_feedback(self) -> str | None:
        if self.feedback is not None:
            return self.feedback
        if self.problem:
            return self.problem.get("feedback")
        return None

    @property
    def item_id(self) -> str | None:
        if self.problem and self.problem.get("id") is not None:
            return str(self.problem["id"])
        return None


class ClearWorkspaceAction(_ActionBase):
    action: Literal["clear_workspace"]
    reason: str | None = None


class ErrorAction(_ActionBase):
    action: Literal["error"]
    message: str | None = None


# ----------------------------------------------------------------------
# lesson context
# ----------------------------------------------------------------------
class LessonJson(BaseModel):
    learning_objectives: List[Any] = Field(default_factory=list)
    tasks_or_questions: List[Any] = Field(default_factory=list)
    estimated_completion_time_minutes: float | None = None

    model_config = ConfigDict(extra="allow")

    @field_validator("learning_objectives", "tasks_or_questions", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        # Lesson payloads serialise empty sections as null.
        return [] if value is None else value


class LessonContext(BaseModel):
    title: str | None = None
    content_type: str | None = None
    lesson_json: LessonJson | None = None

    model_config = ConfigDict(extra="allow")


# ----------------------------------------------------------------------
# extracted documents
# ----------------------------------------------------------------------
class ExtractedProblem(BaseModel):
    text: str
    kind: str
    hint: str


class ExplanationBlock(BaseModel):
    type: Literal["explanation"] = "explanation"
    title: str
    content: str


class MathProblemsDocument(BaseModel):
    type: Literal["math_problems"] = "math_problems"
    problems: List[ExtractedProblem]


class MixedDocument(BaseModel):
    type: Literal["mixed"] = "mixed"
    content: List[Union[ExplanationBlock, ExtractedProblem]]


class AssignmentData(_WireModel):
    title: str
    content_type: str
    objectives: List[Any] = Field(default_factory=list)
    questions: List[Any] = Field(default_factory=list)
    estimated_time: float | None = None


class AssignmentDocument(BaseModel):
    type: Literal["assignment"] = "assignment"
    data: AssignmentData


ExtractedDocument = Union[MathProblemsDocument, MixedDocument, AssignmentDocument]


# ----------------------------------------------------------------------
# construction helpers
# ----------------------------------------------------------------------
def map_items(raw_items: Sequence[Mapping[str, Any]], *, start: int = 0) -> List[ContentItem]:
    """Validate agent items, stamp them as agent-authored and assign positions."""

    if not isinstance(raw_items, (list, tuple)):
        raise WorkspaceShapeError(
            f"expected a list of items, got {type(raw_items).__name__}"
        )
    items: List[ContentItem] = []
    for offset, raw in enumerate(raw_items):
        if isinstance(raw, ContentItem):
            raw = raw.model_dump(by_alias=True)
        item = ContentItem.model_validate(raw)
        position = start + offset
        items.append(
            item.model_copy(
                update={
                    "index": position,
                    "id": item.id if item.id is not None else f"item-{position}",
                    "is_function_controlled": True,
                }
            )
        )
    return items


def _has_items_list(payload: Mapping[str, Any], field: str) -> bool:
    return isinstance(payload.get(field), list)


def build_workspace(payload: Mapping[str, Any]) -> Workspace:
    """Resolve a ``create_workspace`` payload into one of the three stored shapes."""

    if payload.get("type") == CREATIVE_WRITING_TYPE:
        data = {key: value for key, value in payload.items() if key != "type"}
        return CreativeWritingWorkspace.model_validate(data)

    common = {
        "title": payload.get("title"),
        "explanation": payload.get("explanation"),
        "sessionId": payload.get("sessionId", payload.get("session_id")),
        "createdAt": payload.get("createdAt", payload.get("created_at")),
    }
    if payload.get("stats") is not None:
        common["stats"] = payload["stats"]

    if payload.get("subject") and payload.get("content") is not None:
        return SubjectWorkspace.model_validate(
            {
                **common,
                "subject": payload["subject"],
                "workspaceType": payload.get("workspaceType", payload.get("type")),
                "learningObjectives": payload.get("learningObjectives") or [],
                "content": map_items(payload["content"]),
            }
        )

    return LegacyMathWorkspace.model_validate(
        {**common, "problems": map_items(payload.get("problems") or [])}
    )


def workspace_from_snapshot(snapshot: Mapping[str, Any] | BaseModel) -> Workspace | None:
    """Rebuild a live workspace from a host-held snapshot.

    Snapshots tagged with ``schemaGeneration`` are restored into that shape.
    Untagged ones prefer a ``content`` array and fall back to ``problems``.
    A snapshot holding neither yields ``None``.
    """

    if isinstance(snapshot, BaseModel):
        snapshot = snapshot.model_dump(by_alias=True)
    if not isinstance(snapshot, Mapping):
        raise WorkspaceShapeError(
            f"expected a workspace mapping, got {type(snapshot).__name__}"
        )

    generation = snapshot.get("schemaGeneration", snapshot.get("schema_generation"))
    model = _GENERATIONS.get(generation) if isinstance(generation, str) else None
    if model is None and snapshot.get("type") == CREATIVE_WRITING_TYPE:
        model = CreativeWritingWorkspace

    if model is CreativeWritingWorkspace:
        data = {key: value for key, value in snapshot.items() if key != "type"}
        return CreativeWritingWorkspace.model_validate(data)

    if model is None:
        if _has_items_list(snapshot, "content"):
            model = SubjectWorkspace
        elif _has_items_list(snapshot, "problems"):
            model = LegacyMathWorkspace
        else:
            return None

    data = dict(snapshot)
    data.pop("schemaGeneration", None)
    data.pop("schema_generation", None)
    field = model.ITEMS_FIELD
    data[field] = map_items(snapshot.get(field) or [])
    if model is SubjectWorkspace:
        data.setdefault("subject", DEFAULT_SUBJECT)
        if not data.get("subject"):
            data["subject"] = DEFAULT_SUBJECT
    else:
        data.pop("subject", None)
        data.pop("workspaceType", None)
        data.pop("workspace_type", None)
        data.pop("type", None)
    return model.model_validate(data)


def dump_workspace(workspace: Workspace | None) -> Dict[str, Any] | None:
    """Serialise a workspace into the camelCase shape the rendering layer reads."""

    if workspace is None:
        return None
    return workspace.model_dump(by_alias=True, exclude_none=True)
