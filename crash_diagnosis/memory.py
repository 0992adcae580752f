"""Heuristic heap/memory corruption detection."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

from .constants import (
    ACCESS_VIOLATION,
    CORRUPTION_INDICATOR_THRESHOLD,
    HEAP_CORRUPTION,
    HEAP_CORRUPTION_CONFIDENCE,
    HEAP_CORRUPTION_PATTERNS,
    normalize_code,
    parse_address,
)
from .models import (
    CrashSnapshot,
    Evidence,
    EvidenceKind,
    ExceptionInfo,
    HeapAnalysis,
    HeapBlock,
    ModuleRecord,
)


@dataclass(frozen=True)
class CorruptionIndicators:
    """The four independent corruption signals."""
    access_violation: bool = False
    heap_corruption_code: bool = False
    corruption_in_description: bool = False
    suspect_module: bool = False

    @property
    def count(self) -> int:
        return sum((
            self.access_violation,
            self.heap_corruption_code,
            self.corruption_in_description,
            self.suspect_module,
        ))


@dataclass(frozen=True)
class MemoryReport:
    memory_corruption: bool = False
    indicators: CorruptionIndicators = field(default_factory=CorruptionIndicators)
    heap_analysis: HeapAnalysis = field(default_factory=HeapAnalysis)


class MemoryCorruptionAnalyzer:
    """Combines exception, module and description signals into a corruption verdict."""

    def analyze(self, snapshot: CrashSnapshot) -> MemoryReport:
        indicators = self.indicators(snapshot)
        return MemoryReport(
            memory_corruption=indicators.count >= CORRUPTION_INDICATOR_THRESHOLD,
            indicators=indicators,
            heap_analysis=self.analyze_heap(snapshot.exception),
        )

    @staticmethod
    def indicators(snapshot: CrashSnapshot) -> CorruptionIndicators:
        exception = snapshot.exception
        code = normalize_code(exception.code)
        return CorruptionIndicators(
            access_violation=code == ACCESS_VIOLATION,
            heap_corruption_code=code == HEAP_CORRUPTION,
            corruption_in_description='corruption' in exception.description.lower(),
            suspect_module=any(_is_suspect_module(m) for m in snapshot.modules),
        )

    def analyze_heap(self, exception: ExceptionInfo) -> HeapAnalysis:
        code = normalize_code(exception.code)
        description = exception.description.lower()
        flagged = code == HEAP_CORRUPTION or 'heap' in description or 'corruption' in description
        if not flagged:
            return HeapAnalysis(corruption_detected=False)

        evidence = Evidence(
            kind=EvidenceKind.HEAP_CORRUPTION,
            description='Heap corruption indicators found',
            technical_details=(
                f"Exception code {exception.code or 'Unknown'} indicates heap corruption. "
                "This typically occurs due to buffer overruns, double-free operations, "
                f"or writing to freed memory. The corruption was detected at address "
                f"{exception.address or 'unknown'}."
            ),
            confidence=HEAP_CORRUPTION_CONFIDENCE,
            address=exception.address or None,
        )
        return HeapAnalysis(
            corruption_detected=True,
            corruption_patterns=HEAP_CORRUPTION_PATTERNS,
            evidence=(evidence,),
            heap_blocks=self._heap_blocks(exception),
        )

    @staticmethod
    def _heap_blocks(exception: ExceptionInfo) -> Tuple[HeapBlock, ...]:
        # Block detail is only available when the decoder captured memory regions
        if not exception.memory_regions:
            return ()
        fault = parse_address(exception.address)
        blocks: List[HeapBlock] = []
        for region in exception.memory_regions:
            if region.contains(fault):
                status = 'corrupted'
            elif region.state.lower() == 'free':
                status = 'free'
            else:
                status = 'allocated'
            blocks.append(HeapBlock(address=region.base_address, size=region.size, status=status))
        return tuple(blocks)


def _is_suspect_module(module: ModuleRecord) -> bool:
    name = module.name.lower()
    return 'unknown' in name or 'unsigned' in name or not module.has_symbols
