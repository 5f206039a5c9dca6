"""Heuristic extraction of practice problems from a tutor's chat reply.

The extractor never evaluates anything. It looks for arithmetic notation in
free text, classifies each expression through the ordered rule table in
``engines.classification`` and returns a document the workspace can render.
Ordinary conversational text yields ``None``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Iterator, List, Mapping, Optional

from pydantic import ValidationError

from engines.classification import FRACTION_OPERAND, TIMES_OPERATOR, classify_with_hint
from env_validation import DEFAULT_ASSIGNMENT_MAX_ITEMS, get_env_int
from schemas import (
    AssignmentData,
    AssignmentDocument,
    ExplanationBlock,
    ExtractedDocument,
    ExtractedProblem,
    LessonContext,
    LessonJson,
    MathProblemsDocument,
    MixedDocument,
)

logger = logging.getLogger(__name__)

ASSIGNMENT_MAX_ITEMS = get_env_int(
    "WORKSPACE_ASSIGNMENT_MAX_ITEMS", DEFAULT_ASSIGNMENT_MAX_ITEMS, minimum=1
)
DEFAULT_ASSIGNMENT_TITLE = "Current Assignment"
DEFAULT_CONTENT_TYPE = "lesson"
DEFAULT_EXPLANATION_TITLE = "Math Explanation"

_NUMBER = r"\d+(?:\.\d+)?"
_OPERATOR = r"(?:[+\-−–×*÷/]|x(?=\s*\d))"
_LATEX_FRACTION = r"\\frac\{\s*\d+\s*\}\{\s*\d+\s*\}"
_LATEX_OPERATOR = r"(?:[+\-−×*÷/]|\\times|\\div|\\cdot)"

BARE_ARITHMETIC = re.compile(rf"{_NUMBER}(?:\s*{_OPERATOR}\s*{_NUMBER})+(?:\s*=\s*\?)?")
WHAT_IS = re.compile(rf"\bwhat(?:'s|\s+is)\s+{_NUMBER}\s*{_OPERATOR}\s*{_NUMBER}", re.IGNORECASE)
FRACTION_PRODUCT = re.compile(rf"{FRACTION_OPERAND}\s*{TIMES_OPERATOR}\s*{FRACTION_OPERAND}")
LATEX_FRACTION = re.compile(_LATEX_FRACTION)
LATEX_OPERATION = re.compile(
    rf"{_LATEX_FRACTION}\s*{_LATEX_OPERATOR}\s*(?:{_LATEX_FRACTION}|{_NUMBER})"
    rf"|{_NUMBER}\s*{_LATEX_OPERATOR}\s*{_LATEX_FRACTION}"
)
DECIMAL_ARITHMETIC = re.compile(
    rf"\d+\.\d+\s*{_OPERATOR}\s*{_NUMBER}|{_NUMBER}\s*{_OPERATOR}\s*\d+\.\d+"
)
PROBLEM_HEADER = re.compile(r"\b(?:problem|question)\s*#?\s*\d+\s*[:.)]\s*(.+)", re.IGNORECASE)
EMPHASIS = re.compile(r"\*\*(.+?)\*\*|__(.+?)__")

# Any one of these means the text may carry structured content.
DETECTORS = (
    BARE_ARITHMETIC,
    WHAT_IS,
    FRACTION_PRODUCT,
    LATEX_FRACTION,
    DECIMAL_ARITHMETIC,
    PROBLEM_HEADER,
    EMPHASIS,
)

_TRAILING_UNKNOWN = re.compile(r"\s*=\s*\?\s*$")
_NUMBERED_BOLD = re.compile(r"\d+\.\s*\*\*")
_MULTIPLY_TOGETHER = re.compile(r"multiply[^.!?\n]*\btogether\b", re.IGNORECASE)
_ASSIGNMENT_FRAMING = re.compile(
    r"\bassignment\b|\blearning goals\b|\btackle\b|\bfundamental principle\b",
    re.IGNORECASE,
)
_QUESTION_NUMBERING = re.compile(r"^\d+\.\s*")

_EXPLANATION_TITLES = (
    (re.compile(r"\bmultiply(?:ing)?\s+fractions\b|\bfractions?\b.*\bmultipl", re.IGNORECASE | re.DOTALL),
     "Multiplying Fractions"),
    (re.compile(r"\bfractions?\b", re.IGNORECASE), "Working with Fractions"),
    (re.compile(r"\bdecimals?\b", re.IGNORECASE), "Working with Decimals"),
    (re.compile(r"\bdivi(?:de|ding|sion)\b", re.IGNORECASE), "Division Steps"),
    (re.compile(r"\bmultipl(?:y|ying|ication)\b", re.IGNORECASE), "Multiplication Steps"),
    (re.compile(r"\bsubtract(?:ing|ion)?\b", re.IGNORECASE), "Subtraction Steps"),
    (re.compile(r"\badd(?:ing|ition)?\b", re.IGNORECASE), "Addition Steps"),
)


def has_structured_content(text: Any) -> bool:
    """Cheap signal: does ``text`` match any candidate detector?"""

    if not isinstance(text, str) or not text.strip():
        return False
    return any(detector.search(text) for detector in DETECTORS)


def contains_arithmetic(text: str) -> bool:
    return bool(BARE_ARITHMETIC.search(text) or LATEX_OPERATION.search(text))


def _clean(text: str) -> str:
    return " ".join(text.strip().strip("*_").split())


def _comparison_key(text: str) -> str:
    return " ".join(_TRAILING_UNKNOWN.sub("", text).split()).casefold()


def _emphasized_spans(message: str) -> Iterator[str]:
    for match in EMPHASIS.finditer(message):
        span = match.group(1) or match.group(2) or ""
        if contains_arithmetic(span):
            yield span


def _problem_headers(message: str) -> Iterator[str]:
    for match in PROBLEM_HEADER.finditer(message):
        body = match.group(1)
        if contains_arithmetic(body):
            yield body


def _fraction_products(message: str) -> Iterator[str]:
    for match in FRACTION_PRODUCT.finditer(message):
        yield match.group(0)


def _bare_expressions(message: str) -> Iterator[str]:
    for match in BARE_ARITHMETIC.finditer(message):
        yield match.group(0)


class _CandidateCollector:
    """Accumulates problems, dropping any that overlap an earlier one."""

    def __init__(self) -> None:
        self.problems: List[ExtractedProblem] = []
        self._keys: List[str] = []

    def add_all(self, texts: Iterable[str]) -> None:
        for text in texts:
            self.add(text)

    def add(self, raw: str) -> None:
        text = _clean(raw)
        key = _comparison_key(text)
        if not key:
            return
        if any(key in seen or seen in key for seen in self._keys):
            return
        kind, hint = classify_with_hint(text)
        self.problems.append(ExtractedProblem(text=text, kind=kind, hint=hint))
        self._keys.append(key)


def _collect_problems(message: str) -> List[ExtractedProblem]:
    collector = _CandidateCollector()
    collector.add_all(_emphasized_spans(message))
    collector.add_all(_problem_headers(message))
    collector.add_all(_fraction_products(message))
    collector.add_all(_bare_expressions(message))
    return collector.problems


def _has_explanation_cues(message: str) -> bool:
    lowered = message.lower()
    if re.search(r"\bsteps\b", lowered):
        return True
    if re.search(r"\bfirst\b", lowered) and re.search(r"\bsecond\b", lowered):
        return True
    return bool(_MULTIPLY_TOGETHER.search(message) or _NUMBERED_BOLD.search(message))


def explanation_title(message: str) -> str:
    for pattern, title in _EXPLANATION_TITLES:
        if pattern.search(message):
            return title
    return DEFAULT_EXPLANATION_TITLE


def _coerce_lesson_context(lesson_context: Any) -> Optional[LessonContext]:
    if lesson_context is None or isinstance(lesson_context, LessonContext):
        return lesson_context
    if not isinstance(lesson_context, Mapping):
        logger.debug("Ignoring lesson context of type %s", type(lesson_context).__name__)
        return None
    try:
        return LessonContext.model_validate(lesson_context)
    except ValidationError as exc:
        logger.debug("Ignoring malformed lesson context: %s", exc)
        return None


def _assignment_document(context: LessonContext) -> AssignmentDocument:
    lesson = context.lesson_json or LessonJson()
    return AssignmentDocument(
        data=AssignmentData(
            title=context.title or DEFAULT_ASSIGNMENT_TITLE,
            content_type=context.content_type or DEFAULT_CONTENT_TYPE,
            objectives=list(lesson.learning_objectives[:ASSIGNMENT_MAX_ITEMS]),
            questions=list(lesson.tasks_or_questions[:ASSIGNMENT_MAX_ITEMS]),
            estimated_time=lesson.estimated_completion_time_minutes,
        )
    )


def extract(message: Any, lesson_context: Any = None) -> Optional[ExtractedDocument]:
    """Turn a tutor reply into a structured document, or ``None``.

    Problems found in the text win over the assignment fallback. When the
    reply also explains a method (numbered bold steps, "first ... second",
    "multiply ... together") the problems are returned alongside an
    explanation block carrying the whole message.
    """

    if not isinstance(message, str) or not message.strip():
        return None

    problems: List[ExtractedProblem] = []
    if has_structured_content(message):
        problems = _collect_problems(message)

    if problems:
        if _has_explanation_cues(message):
            block = ExplanationBlock(title=explanation_title(message), content=message)
            return MixedDocument(content=[block, *problems])
        return MathProblemsDocument(problems=problems)

    context = _coerce_lesson_context(lesson_context)
    if context is not None and _ASSIGNMENT_FRAMING.search(message):
        return _assignment_document(context)

    logger.debug("No structured content detected")
    return None


def extract_question_from_lesson(lesson_json: Any, question_number: int) -> Optional[MathProblemsDocument]:
    """Pull question ``question_number`` ("3. ...") out of a lesson's task list."""

    if isinstance(lesson_json, Mapping):
        try:
            lesson_json = LessonJson.model_validate(lesson_json)
        except ValidationError as exc:
            logger.debug("Ignoring malformed lesson json: %s", exc)
            return None
    if not isinstance(lesson_json, LessonJson):
        return None

    numbering = re.compile(rf"^{int(question_number)}\.\s")
    for question in lesson_json.tasks_or_questions:
        candidate = str(question).strip()
        if numbering.match(candidate):
            text = _QUESTION_NUMBERING.sub("", candidate).strip()
            kind, hint = classify_with_hint(text)
            return MathProblemsDocument(problems=[ExtractedProblem(text=text, kind=kind, hint=hint)])
    return None
