"""Exception classification by ordered keyword rules.

The exception code and description are joined, lower-cased and tested
against ``CRASH_RULES`` in order. The first rule with any matching keyword
decides the category, severity and candidate causes.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from .constants import (
    ACCESS_VIOLATION,
    BREAKPOINT,
    HEAP_CORRUPTION,
    ILLEGAL_INSTRUCTION,
    INTEGER_DIVIDE_BY_ZERO,
    NO_MEMORY,
    STACK_OVERFLOW,
    normalize_code,
)
from .models import ExceptionInfo, Severity


@dataclass(frozen=True)
class CrashRule:
    """One row of the classification table."""
    identifier: str
    keywords: Tuple[str, ...]
    severity: Severity
    causes: Tuple[str, ...]
    explanation: str = ""

    def matches(self, text: str) -> bool:
        return any(keyword.lower() in text for keyword in self.keywords)


@dataclass(frozen=True)
class Classification:
    category: str
    severity: Severity
    root_cause: str
    possible_causes: Tuple[str, ...]
    explanation: str = ""
    rule: Optional[str] = None


CRASH_RULES: Tuple[CrashRule, ...] = (
    CrashRule(
        identifier='accessViolation',
        keywords=(ACCESS_VIOLATION, 'access violation', 'read', 'write', 'virtual address'),
        severity=Severity.CRITICAL,
        causes=(
            'Null pointer dereference',
            'Use after free',
            'Buffer overflow',
            'Uninitialized pointer',
            'Memory corruption',
        ),
        explanation='Invalid memory access occurred. The faulting instruction touched memory that was unmapped or protected.',
    ),
    CrashRule(
        identifier='stackOverflow',
        keywords=(STACK_OVERFLOW, 'stack overflow', 'stack'),
        severity=Severity.CRITICAL,
        causes=(
            'Infinite recursion',
            'Large local variables',
            'Deep call stack',
            'Stack corruption',
        ),
        explanation='The thread exhausted its stack, usually through unbounded recursion.',
    ),
    CrashRule(
        identifier='heapCorruption',
        keywords=('heap', 'corruption', HEAP_CORRUPTION),
        severity=Severity.CRITICAL,
        causes=(
            'Double free',
            'Buffer overrun',
            'Use after free',
            'Heap metadata corruption',
        ),
        explanation='The heap manager detected damaged heap metadata.',
    ),
    CrashRule(
        identifier='divideByZero',
        keywords=(INTEGER_DIVIDE_BY_ZERO, 'divide', 'zero'),
        severity=Severity.HIGH,
        causes=(
            'Unvalidated input',
            'Logic error',
            'Missing bounds checking',
        ),
        explanation='An integer division used a zero divisor.',
    ),
    CrashRule(
        identifier='illegalInstruction',
        keywords=(ILLEGAL_INSTRUCTION, 'illegal instruction', 'invalid instruction'),
        severity=Severity.HIGH,
        causes=(
            'Corrupted code pointer',
            'CPU feature not supported by this processor',
            'Jump into data',
        ),
        explanation='The processor was asked to execute an instruction it does not recognize.',
    ),
    CrashRule(
        identifier='outOfMemory',
        keywords=(NO_MEMORY, 'out of memory', 'not enough memory'),
        severity=Severity.HIGH,
        causes=(
            'Memory leak',
            'Address space exhaustion',
            'Oversized allocation request',
        ),
        explanation='An allocation could not be satisfied.',
    ),
    CrashRule(
        identifier='breakpoint',
        keywords=(BREAKPOINT, 'breakpoint'),
        severity=Severity.LOW,
        causes=(
            'Hard-coded debug break left in a release build',
            'Failed assertion',
        ),
        explanation='A breakpoint instruction was hit without a debugger attached.',
    ),
)

UNKNOWN_CLASSIFICATION = Classification(
    category='Unknown Exception',
    severity=Severity.MEDIUM,
    root_cause='insufficient information to determine cause',
    possible_causes=(
        'Insufficient debugging information',
        'Complex interaction between components',
    ),
    explanation='The exception did not match any known crash pattern.',
)


def format_category(identifier: str) -> str:
    """Split a rule identifier (camelCase or snake_case) into title-case words."""
    words = re.sub(r'([A-Z])', r' \1', identifier.replace('_', ' ')).split()
    return ' '.join(word[:1].upper() + word[1:] for word in words)


class ExceptionClassifier:
    """Maps an exception record to a crash category."""

    def __init__(self, rules: Tuple[CrashRule, ...] = CRASH_RULES):
        self.rules = rules

    def classify(self, exception: ExceptionInfo) -> Classification:
        text = f"{normalize_code(exception.code)} {exception.description}".lower()
        for rule in self.rules:
            if rule.matches(text):
                return Classification(
                    category=format_category(rule.identifier),
                    severity=rule.severity,
                    root_cause=rule.causes[0],
                    possible_causes=rule.causes,
                    explanation=rule.explanation,
                    rule=rule.identifier,
                )
        return UNKNOWN_CLASSIFICATION
