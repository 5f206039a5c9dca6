"""Ordered rule table that classifies arithmetic notation and picks a hint."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Pattern, Tuple

FRACTION_OPERAND = r"(?:\\frac\{\s*\d+\s*\}\{\s*\d+\s*\}|\d+\s*/\s*\d+)"
TIMES_OPERATOR = r"(?:×|·|\*|\\times|\\cdot|x)"


@dataclass(frozen=True)
class KindRule:
    """One row of the classification table: notation pattern, kind and hint."""

    kind: str
    pattern: Pattern[str]
    hint: str

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


FALLBACK_KIND = "arithmetic"
FALLBACK_HINT = "Work through the expression one step at a time and check each step before moving on."

# Precedence is the tuple order; the first matching rule wins.
RULES: Tuple[KindRule, ...] = (
    KindRule(
        "addition",
        re.compile(r"\+|\bplus\b", re.IGNORECASE),
        "Line up the place values and add from right to left, carrying whenever a column goes past 9.",
    ),
    KindRule(
        "subtraction",
        re.compile(r"[\d)}]\s*[-−–]\s*[\d(\\]|\bminus\b", re.IGNORECASE),
        "Start with the ones column and borrow from the next column when the top digit is smaller.",
    ),
    KindRule(
        "fraction_multiplication",
        re.compile(FRACTION_OPERAND + r"\s*" + TIMES_OPERATOR + r"\s*" + FRACTION_OPERAND),
        "Multiply the numerators together, then multiply the denominators together, then simplify.",
    ),
    KindRule(
        "multiplication",
        re.compile(r"×|·|\*|\\times|\\cdot|\d\s*x\s*\d|\btimes\b", re.IGNORECASE),
        "Think of multiplication as repeated groups, or break one number into tens and ones.",
    ),
    KindRule(
        "division",
        re.compile(r"÷|\\div\b|\d\s+/\s*\d|\d\s*/\s+\d|\bdivided by\b", re.IGNORECASE),
        "Ask how many times the divisor fits into the dividend, and check with multiplication.",
    ),
    KindRule(
        "fraction",
        re.compile(r"\\frac\{|\d+/\d+"),
        "The top number counts the parts you have and the bottom number counts equal parts in the whole.",
    ),
    KindRule(
        "decimal",
        re.compile(r"\d+\.\d+"),
        "Line up the decimal points before you start, then work as with whole numbers.",
    ),
)

_HINTS: Dict[str, str] = {rule.kind: rule.hint for rule in RULES}


def classify(text: str) -> str:
    for rule in RULES:
        if rule.matches(text):
            return rule.kind
    return FALLBACK_KIND


def hint_for(kind: str) -> str:
    return _HINTS.get(kind, FALLBACK_HINT)


def classify_with_hint(text: str) -> Tuple[str, str]:
    """Return ``(kind, hint)`` for ``text`` using the rule table precedence."""

    kind = classify(text)
    return kind, hint_for(kind)
