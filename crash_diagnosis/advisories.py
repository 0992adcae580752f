"""Recommendation and alternative-explanation rule tables.

Both generators walk an ordered table of ``AdvisoryRule`` rows. Every row
whose condition holds contributes its advice in order; general advice is
appended last and duplicates are dropped.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, List, Set, Tuple

from .models import EvidenceKind


@dataclass(frozen=True)
class AdvisorySignals:
    """Flags computed by earlier stages that advice is keyed on."""
    category: str
    stack_overflow: bool = False
    deadlock_detected: bool = False
    memory_corruption: bool = False
    problem_modules: Tuple[str, ...] = ()
    evidence_kinds: FrozenSet[EvidenceKind] = frozenset()


@dataclass(frozen=True)
class AdvisoryRule:
    name: str
    applies: Callable[[AdvisorySignals], bool]
    advice: Tuple[str, ...]

    def render(self, signals: AdvisorySignals) -> Tuple[str, ...]:
        modules = ', '.join(signals.problem_modules)
        return tuple(text.format(problem_modules=modules) for text in self.advice)


def _always(signals: AdvisorySignals) -> bool:
    return True


RECOMMENDATION_RULES: Tuple[AdvisoryRule, ...] = (
    AdvisoryRule(
        'access_violation',
        lambda s: 'Access Violation' in s.category,
        (
            'Review pointer usage and ensure proper null checks',
            'Use static analysis tools to detect potential buffer overflows',
            'Enable Application Verifier to catch heap corruption early',
        ),
    ),
    AdvisoryRule(
        'stack_overflow',
        lambda s: s.stack_overflow,
        (
            'Review recursive function calls for proper termination conditions',
            'Consider reducing local variable sizes or moving to heap allocation',
            'Increase stack size if recursion depth is expected',
        ),
    ),
    AdvisoryRule(
        'deadlock',
        lambda s: s.deadlock_detected,
        (
            'Review thread synchronization and lock ordering',
            'Consider using deadlock detection tools during development',
            'Implement timeout mechanisms for lock acquisitions',
        ),
    ),
    AdvisoryRule(
        'memory_corruption',
        lambda s: s.memory_corruption,
        (
            'Enable heap debugging features in debug builds',
            'Use memory debugging tools like Application Verifier',
            'Review memory allocation and deallocation patterns',
        ),
    ),
    AdvisoryRule(
        'problem_modules',
        lambda s: bool(s.problem_modules),
        (
            'Update or replace problematic modules: {problem_modules}',
            'Ensure all third-party libraries are compatible with your application',
        ),
    ),
    AdvisoryRule(
        'general',
        _always,
        (
            'Reproduce the issue in a controlled environment',
            'Enable crash dumps and logging for better diagnostics',
            'Update to the latest version of runtime libraries',
        ),
    ),
)

ALTERNATIVE_RULES: Tuple[AdvisoryRule, ...] = (
    AdvisoryRule(
        'access_violation',
        lambda s: 'Access Violation' in s.category,
        (
            'Memory mapped file became invalid',
            'Virtual memory exhaustion',
            'Hardware memory error',
        ),
    ),
    AdvisoryRule(
        'thread_state',
        lambda s: EvidenceKind.THREAD_STATE in s.evidence_kinds,
        (
            'Resource contention without deadlock',
            'Priority inversion scenario',
        ),
    ),
    AdvisoryRule(
        'general',
        _always,
        (
            'Timing-dependent race condition',
            'External process interference',
        ),
    ),
)


def _unique(items: Iterable[str]) -> Tuple[str, ...]:
    seen: Set[str] = set()
    ordered: List[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            ordered.append(item)
    return tuple(ordered)


class RecommendationGenerator:
    """Actionable advice for the detected conditions."""

    def __init__(self, rules: Tuple[AdvisoryRule, ...] = RECOMMENDATION_RULES):
        self.rules = rules

    def generate(self, signals: AdvisorySignals) -> Tuple[str, ...]:
        return _unique(text for rule in self.rules if rule.applies(signals)
                       for text in rule.render(signals))


class AlternativeExplanationGenerator(RecommendationGenerator):
    """Counter-hypotheses; listed, not ranked."""

    def __init__(self, rules: Tuple[AdvisoryRule, ...] = ALTERNATIVE_RULES):
        super().__init__(rules)
