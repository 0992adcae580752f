"""Common crash pattern checklist reported alongside the diagnosis."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Tuple

from .constants import HEAP_CORRUPTION, NULL_PAGE_LIMIT, normalize_code, parse_address
from .models import CommonPattern, CrashSnapshot, Severity


@dataclass(frozen=True)
class PatternRule:
    pattern: str
    description: str
    severity: Severity
    test: Callable[[CrashSnapshot, bool], bool]


def _null_pointer(snapshot: CrashSnapshot, deadlock: bool) -> bool:
    address = snapshot.exception.address.strip()
    value = parse_address(address)
    if value is None:
        return False
    return address.endswith('00000000') or value < NULL_PAGE_LIMIT


def _stack_corruption(snapshot: CrashSnapshot, deadlock: bool) -> bool:
    return any(
        parse_address(frame.address) == 0 or 'unknown' in frame.function.lower()
        for thread in snapshot.threads
        for frame in thread.stack_trace
    )


def _heap_corruption(snapshot: CrashSnapshot, deadlock: bool) -> bool:
    exception = snapshot.exception
    return (normalize_code(exception.code) == HEAP_CORRUPTION
            or 'heap' in exception.description.lower())


def _thread_deadlock(snapshot: CrashSnapshot, deadlock: bool) -> bool:
    return deadlock


def _missing_symbols(snapshot: CrashSnapshot, deadlock: bool) -> bool:
    return any(not m.has_symbols and not m.is_system_module for m in snapshot.modules)


PATTERN_RULES: Tuple[PatternRule, ...] = (
    PatternRule('Null Pointer Dereference',
                'Access violation at address 0x00000000 or very low memory address',
                Severity.CRITICAL, _null_pointer),
    PatternRule('Stack Corruption',
                'Stack pointer or return address corruption detected',
                Severity.CRITICAL, _stack_corruption),
    PatternRule('Heap Corruption',
                'Heap metadata corruption or invalid heap pointer',
                Severity.CRITICAL, _heap_corruption),
    PatternRule('Thread Deadlock',
                'Multiple threads appear to be waiting indefinitely',
                Severity.HIGH, _thread_deadlock),
    PatternRule('Missing Symbols',
                'Important modules lack debugging symbols',
                Severity.MEDIUM, _missing_symbols),
)


class CommonPatternDetector:
    """Evaluates every pattern rule and reports each as found or not."""

    def __init__(self, rules: Tuple[PatternRule, ...] = PATTERN_RULES):
        self.rules = rules

    def detect(self, snapshot: CrashSnapshot, deadlock_detected: bool) -> Tuple[CommonPattern, ...]:
        return tuple(
            CommonPattern(
                pattern=rule.pattern,
                description=rule.description,
                severity=rule.severity,
                found=bool(rule.test(snapshot, deadlock_detected)),
            )
            for rule in self.rules
        )
