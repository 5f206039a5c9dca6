import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def legacy_payload():
    return {
        "type": "math_problems",
        "title": "Addition Warm-up",
        "explanation": "Add the numbers.",
        "sessionId": "practice-1",
        "problems": [
            {"id": "p-0", "index": 0, "text": "3 + 4", "type": "addition", "status": "pending"},
            {"id": "p-1", "index": 1, "text": "12 - 5", "type": "subtraction", "status": "pending"},
        ],
        "stats": {"totalProblems": 2, "completed": 0, "correct": 0, "streak": 0, "bestStreak": 0},
        "createdAt": "2026-10-19T10:00:00Z",
    }


@pytest.fixture
def current_payload():
    return {
        "subject": "science",
        "workspaceType": "concept_check",
        "title": "States of Matter",
        "sessionId": "session-7",
        "learningObjectives": ["Name the three states of matter"],
        "content": [
            {"id": "c-0", "text": "What happens to water at 100°C?", "type": "short_answer"},
            {"id": "c-1", "text": "Give an example of a gas.", "type": "short_answer"},
            {"id": "c-2", "text": "Why does ice float?", "type": "explanation"},
        ],
        "stats": {"attempted": 0, "correct": 0, "total": 3},
        "createdAt": "2026-10-19T10:05:00Z",
    }


@pytest.fixture
def reset_sessions():
    import app

    app.SESSIONS.clear()
    yield app
    app.SESSIONS.clear()
