"""Stack exhaustion detection."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .constants import (
    STACK_DEPTH_THRESHOLD,
    STACK_OVERFLOW,
    STACK_OVERFLOW_CONFIDENCE,
    normalize_code,
)
from .models import (
    CrashSnapshot,
    Evidence,
    EvidenceKind,
    StackAnalysis,
    StackRange,
    ThreadRecord,
)

_NULL_POINTER = '0x00000000'


@dataclass(frozen=True)
class StackReport:
    stack_overflow: bool = False
    stack_analysis: StackAnalysis = field(default_factory=StackAnalysis)


class StackAnalyzer:
    """Flags stack overflow from the exception code or main-thread depth."""

    def __init__(self, depth_threshold: int = STACK_DEPTH_THRESHOLD):
        self.depth_threshold = depth_threshold

    def analyze(self, snapshot: CrashSnapshot) -> StackReport:
        code_triggered = normalize_code(snapshot.exception.code) == STACK_OVERFLOW
        main = snapshot.main_thread
        depth = len(main.stack_trace) if main else 0
        overflow = code_triggered or depth > self.depth_threshold
        if not overflow:
            return StackReport()

        stack_range = _stack_range(main)
        range_text = f"{stack_range.base} - {stack_range.limit}" if stack_range else "unavailable"
        evidence = Evidence(
            kind=EvidenceKind.INSTRUCTION_ANALYSIS,
            description='Stack overflow detected',
            technical_details=(
                f"Stack overflow detected with {depth} frames. The stack has exceeded its "
                "allocated space, likely due to infinite recursion or excessive local "
                f"variable allocation. Stack range: {range_text}"
            ),
            confidence=STACK_OVERFLOW_CONFIDENCE,
        )
        return StackReport(
            stack_overflow=True,
            stack_analysis=StackAnalysis(
                overflow_detected=True,
                stack_depth=depth,
                guard_page_status='violated' if code_triggered else 'intact',
                stack_range=stack_range,
                evidence=(evidence,),
            ),
        )


def _stack_range(thread: Optional[ThreadRecord]) -> Optional[StackRange]:
    if thread is None or (thread.stack_base is None and thread.stack_limit is None):
        return None
    registers = {name.lower(): value for name, value in (thread.registers or {}).items()}
    current = registers.get('rsp') or registers.get('esp') or registers.get('sp') or _NULL_POINTER
    return StackRange(
        base=thread.stack_base or _NULL_POINTER,
        limit=thread.stack_limit or _NULL_POINTER,
        current=current,
    )
