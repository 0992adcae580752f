"""Evidentiary-strength score.

The score rewards completeness of the snapshot, not correctness of the
diagnosis: a fully populated snapshot of a misleading crash still scores high.
"""
from __future__ import annotations

import math

from .constants import is_unknown_code
from .models import CrashSnapshot

EXCEPTION_CODE_POINTS = 30
STACK_POINTS_PER_THREAD = 5
STACK_POINTS_MAX = 30
SYMBOL_POINTS_MAX = 25
MODULE_MATCH_POINTS = 15


class ConfidenceScorer:
    """Weighted, additive, clamped 0-100 score."""

    def score(self, snapshot: CrashSnapshot) -> int:
        total = 0.0
        exception = snapshot.exception

        if not is_unknown_code(exception.code):
            total += EXCEPTION_CODE_POINTS

        with_stacks = sum(1 for t in snapshot.threads if t.stack_trace)
        total += min(STACK_POINTS_MAX, STACK_POINTS_PER_THREAD * with_stacks)

        if snapshot.modules:
            with_symbols = sum(1 for m in snapshot.modules if m.has_symbols)
            total += min(SYMBOL_POINTS_MAX, SYMBOL_POINTS_MAX * with_symbols / len(snapshot.modules))

        if snapshot.find_module(exception.module) is not None:
            total += MODULE_MATCH_POINTS

        # Symbol coverage can be fractional; round half up
        return max(0, min(100, int(math.floor(total + 0.5))))
