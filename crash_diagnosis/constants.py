"""Exception codes, module markers and heuristic thresholds used by the analyzers."""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

# Windows exception code tokens (normalized form, see normalize_code)
ACCESS_VIOLATION = '0xC0000005'
NO_MEMORY = '0xC0000017'
ILLEGAL_INSTRUCTION = '0xC000001D'
ARRAY_BOUNDS_EXCEEDED = '0xC000008C'
INTEGER_DIVIDE_BY_ZERO = '0xC0000094'
PRIVILEGED_INSTRUCTION = '0xC0000096'
STACK_OVERFLOW = '0xC00000FD'
HEAP_CORRUPTION = '0xC0000374'
STACK_BUFFER_OVERRUN = '0xC0000409'
BREAKPOINT = '0x80000003'
SINGLE_STEP = '0x80000004'

UNKNOWN_CODE = 'Unknown'

EXCEPTION_DESCRIPTIONS: Dict[str, str] = {
    ACCESS_VIOLATION: 'Access Violation - The thread tried to read from or write to a virtual address for which it does not have the appropriate access.',
    NO_MEMORY: 'No Memory - Not enough memory resources are available to complete this operation.',
    ILLEGAL_INSTRUCTION: 'Illegal Instruction - The thread tried to execute an invalid instruction.',
    PRIVILEGED_INSTRUCTION: 'Privileged Instruction - The thread tried to execute an instruction whose operation is not allowed in the current machine mode.',
    STACK_OVERFLOW: 'Stack Overflow - The thread used up its stack.',
    INTEGER_DIVIDE_BY_ZERO: 'Integer Divide by Zero - The thread tried to divide an integer value by an integer divisor of zero.',
    ARRAY_BOUNDS_EXCEEDED: 'Array Bounds Exceeded - The thread tried to access an array element that is out of bounds.',
    BREAKPOINT: 'Breakpoint - A breakpoint was encountered.',
    SINGLE_STEP: 'Single Step - A trace trap or other single-instruction mechanism signaled that one instruction has been executed.',
    HEAP_CORRUPTION: 'Heap Corruption - A heap has been corrupted.',
    STACK_BUFFER_OVERRUN: 'Stack Buffer Overrun - The system detected an overrun of a stack-based buffer in this application.',
}

# Substrings that make a module name suspicious on their own
SUSPICIOUS_MODULE_MARKERS: Tuple[str, ...] = (
    'unknown',
    'corrupted',
    'unsigned',
    'debug',
    'test',
)

# Heuristic thresholds
STACK_DEPTH_THRESHOLD = 50  # frames; deeper main-thread stacks count as overflow
CORRUPTION_INDICATOR_THRESHOLD = 2
THREAD_STATE_EVIDENCE_MIN_WAITING = 3
NULL_PAGE_LIMIT = 0x10000

# Evidence confidences
REGISTER_STATE_CONFIDENCE = 85
MEMORY_PATTERN_CONFIDENCE = 90
THREAD_STATE_CONFIDENCE = 70
INSTRUCTION_ANALYSIS_CONFIDENCE = 95
DEADLOCK_PAIR_CONFIDENCE = 80
HEAP_CORRUPTION_CONFIDENCE = 90
STACK_OVERFLOW_CONFIDENCE = 95

HEAP_CORRUPTION_PATTERNS: Tuple[str, ...] = (
    'Heap metadata corruption detected',
    'Invalid heap block signature',
    'Corrupted free list pointers',
)


def normalize_code(code: Any) -> str:
    """Normalize an exception code to ``0x`` + eight upper-case hex digits.

    Integers are formatted directly. Strings that parse as hex are reformatted;
    anything else is returned stripped so that sentinels like ``Unknown``
    survive untouched.
    """
    if code is None:
        return ''
    if isinstance(code, bool):
        return str(code)
    if isinstance(code, int):
        return f"0x{code & 0xFFFFFFFF:08X}"
    text = str(code).strip()
    if not text:
        return ''
    try:
        value = int(text, 16)
    except ValueError:
        return text
    return f"0x{value & 0xFFFFFFFF:08X}"


def is_unknown_code(code: str) -> bool:
    """True for the empty code and the ``Unknown`` sentinel."""
    return not code or code.strip().lower() == UNKNOWN_CODE.lower()


def parse_address(value: Any) -> Optional[int]:
    """Parse a hex address token (``0x7FF0...`` or bare hex) into an int."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text, 16)
    except ValueError:
        return None
