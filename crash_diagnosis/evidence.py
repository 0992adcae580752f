"""Technical evidence synthesis.

Each check is independent: it reads the snapshot, and either appends one
``Evidence`` item or nothing. Missing optional data simply skips the check.
"""
from __future__ import annotations

import json
from typing import Callable, List, Optional, Tuple

from .constants import (
    ACCESS_VIOLATION,
    INSTRUCTION_ANALYSIS_CONFIDENCE,
    MEMORY_PATTERN_CONFIDENCE,
    REGISTER_STATE_CONFIDENCE,
    THREAD_STATE_CONFIDENCE,
    THREAD_STATE_EVIDENCE_MIN_WAITING,
    normalize_code,
    parse_address,
)
from .models import CrashSnapshot, Evidence, EvidenceKind, ThreadState


def is_null_register(value: str) -> bool:
    """True when a register value is the all-zero pattern (any width)."""
    return bool(value and value.strip()) and parse_address(value) == 0


class EvidenceSynthesizer:
    """Derives register, memory, thread and instruction evidence."""

    def __init__(self):
        self.checks: Tuple[Callable[[CrashSnapshot], Optional[Evidence]], ...] = (
            self.register_state,
            self.memory_pattern,
            self.thread_state,
            self.instruction_analysis,
        )

    def synthesize(self, snapshot: CrashSnapshot) -> Tuple[Evidence, ...]:
        items: List[Evidence] = []
        for check in self.checks:
            item = check(snapshot)
            if item is not None:
                items.append(item)
        return tuple(items)

    @staticmethod
    def register_state(snapshot: CrashSnapshot) -> Optional[Evidence]:
        registers = snapshot.exception.registers
        if not registers or not any(is_null_register(v) for v in registers.values()):
            return None
        return Evidence(
            kind=EvidenceKind.REGISTER_STATE,
            description='Null pointer detected in CPU registers',
            technical_details=(
                'One or more CPU registers contain null values, indicating a potential '
                'null pointer dereference. This commonly occurs when accessing '
                'uninitialized pointers or when object references become invalid.'
            ),
            confidence=REGISTER_STATE_CONFIDENCE,
            address=snapshot.exception.address or None,
            raw_data=json.dumps(dict(registers), indent=2),
        )

    @staticmethod
    def memory_pattern(snapshot: CrashSnapshot) -> Optional[Evidence]:
        exception = snapshot.exception
        if normalize_code(exception.code) != ACCESS_VIOLATION:
            return None
        instruction = exception.faulting_instruction or 'unknown'
        protection = exception.memory_protection or 'unknown'
        return Evidence(
            kind=EvidenceKind.MEMORY_PATTERN,
            description='Access violation detected',
            technical_details=(
                f"Access violation at address {exception.address or 'unknown'}. "
                f"The instruction \"{instruction}\" attempted to access memory that was "
                "either not allocated, had incorrect permissions, or was corrupted. "
                f"Memory protection: {protection}"
            ),
            confidence=MEMORY_PATTERN_CONFIDENCE,
            address=exception.address or None,
            raw_data=exception.instruction_decode,
        )

    @staticmethod
    def thread_state(snapshot: CrashSnapshot) -> Optional[Evidence]:
        waiting = [t for t in snapshot.threads if t.state is ThreadState.WAITING]
        if len(waiting) < THREAD_STATE_EVIDENCE_MIN_WAITING:
            return None
        ids = ', '.join(str(t.id) for t in waiting)
        kinds = ', '.join(obj.kind.value for t in waiting for obj in (t.wait_objects or ()))
        return Evidence(
            kind=EvidenceKind.THREAD_STATE,
            description='Multiple threads in waiting state detected',
            technical_details=(
                f"{len(waiting)} threads are currently waiting, which may indicate "
                "synchronization issues or potential deadlock. "
                f"Threads {ids} are affected. Wait objects include: {kinds or 'none recorded'}"
            ),
            confidence=THREAD_STATE_CONFIDENCE,
            raw_data='\n'.join(
                f"Thread {t.id}: {t.wait_reason or 'unknown'} "
                f"({len(t.wait_objects or ())} wait objects)"
                for t in waiting
            ),
        )

    @staticmethod
    def instruction_analysis(snapshot: CrashSnapshot) -> Optional[Evidence]:
        exception = snapshot.exception
        if not exception.faulting_instruction:
            return None
        if exception.disassembly_context:
            context = '\n'.join(str(line) for line in exception.disassembly_context)
        else:
            context = 'No disassembly context available'
        return Evidence(
            kind=EvidenceKind.INSTRUCTION_ANALYSIS,
            description='Faulting instruction analysis',
            technical_details=(
                f"The instruction \"{exception.faulting_instruction}\" caused the exception. "
                f"Instruction decode: {exception.instruction_decode or 'unavailable'}. "
                "This suggests the processor was unable to complete the memory operation "
                "due to invalid target address or insufficient permissions."
            ),
            confidence=INSTRUCTION_ANALYSIS_CONFIDENCE,
            address=exception.address or None,
            raw_data=context,
        )
