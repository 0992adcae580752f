"""Data model for crash snapshots and the diagnoses produced from them.

A ``CrashSnapshot`` is built once by a decoder (see ``loader``) and handed to
the engine read-only. A ``CrashDiagnosis`` is built once by the orchestrator.
Both are frozen dataclasses whose sequences are tuples and whose register
maps are read-only proxies, so neither can be changed after construction.

``to_dict()`` projects any record onto plain JSON types. Snapshot documents
are parsed back into records by ``schemas.parse_snapshot``.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .constants import parse_address


class ThreadState(Enum):
    RUNNING = "running"
    WAITING = "waiting"
    BLOCKED = "blocked"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class WaitObjectKind(Enum):
    MUTEX = "mutex"
    EVENT = "event"
    CRITICAL_SECTION = "critical_section"
    SEMAPHORE = "semaphore"
    UNKNOWN = "unknown"


class Severity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EvidenceKind(Enum):
    """Kinds of technical evidence backing a diagnosis."""
    REGISTER_STATE = "register_state"
    MEMORY_PATTERN = "memory_pattern"
    INSTRUCTION_ANALYSIS = "instruction_analysis"
    THREAD_STATE = "thread_state"
    HEAP_CORRUPTION = "heap_corruption"


def to_plain(value: Any) -> Any:
    """Recursively convert records, enums and tuples to JSON-able values."""
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Mapping):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


def _freeze_registers(record: Any) -> None:
    if record.registers is not None:
        object.__setattr__(record, 'registers', MappingProxyType(dict(record.registers)))


class _Record:
    def to_dict(self) -> Dict[str, Any]:
        return to_plain(self)


# ============================================================================
# Snapshot (input)
# ============================================================================

@dataclass(frozen=True)
class SystemInfo(_Record):
    """Host information; informational only."""
    os_version: str = ""
    os_service_pack: str = ""
    processor_architecture: str = ""
    processor_count: int = 0
    total_memory: str = ""
    available_memory: str = ""
    page_size: str = ""


@dataclass(frozen=True)
class ProcessInfo(_Record):
    """Crashed process information; informational only."""
    name: str = ""
    id: int = 0
    command_line: str = ""
    start_time: str = ""
    session_id: int = 0
    handle_count: int = 0
    working_set_size: str = ""
    peak_working_set_size: str = ""
    virtual_size: str = ""
    peak_virtual_size: str = ""


@dataclass(frozen=True)
class MemoryRegion(_Record):
    """A virtual memory region near the faulting address."""
    base_address: str
    size: str = "0x0"
    state: str = ""  # commit, reserve, free
    protection: str = ""
    type: str = ""  # private, mapped, image

    def contains(self, address: Optional[int]) -> bool:
        if address is None:
            return False
        base = parse_address(self.base_address)
        size = parse_address(self.size) or 0
        return base is not None and base <= address < base + size


@dataclass(frozen=True)
class DisassemblyLine(_Record):
    address: str
    instruction: str

    def __str__(self) -> str:
        if self.address:
            return f"{self.address}: {self.instruction}"
        return self.instruction


@dataclass(frozen=True)
class ExceptionInfo(_Record):
    """The exception record that terminated the process."""
    code: str = ""
    address: str = ""
    description: str = ""
    module: str = ""
    function: Optional[str] = None
    offset: Optional[str] = None
    severity: Optional[str] = None  # hint from the decoder, not used for classification
    registers: Optional[Mapping[str, str]] = None
    faulting_instruction: Optional[str] = None
    instruction_decode: Optional[str] = None
    disassembly_context: Optional[Tuple[DisassemblyLine, ...]] = None
    memory_regions: Optional[Tuple[MemoryRegion, ...]] = None
    memory_protection: Optional[str] = None

    def __post_init__(self) -> None:
        _freeze_registers(self)


@dataclass(frozen=True)
class StackFrame(_Record):
    """A single native stack frame."""
    address: str
    module: str = ""
    function: str = ""
    offset: str = ""
    has_symbols: bool = False
    source_file: Optional[str] = None
    line_number: Optional[int] = None


@dataclass(frozen=True)
class WaitObject(_Record):
    """A synchronization object a thread is blocked on."""
    kind: WaitObjectKind
    handle: str
    owner_thread_id: Optional[int] = None
    wait_duration: int = 0  # milliseconds
    address: Optional[str] = None


@dataclass(frozen=True)
class ThreadRecord(_Record):
    """A thread captured in the snapshot."""
    id: int
    state: ThreadState = ThreadState.RUNNING
    name: Optional[str] = None
    priority: int = 0
    stack_trace: Tuple[StackFrame, ...] = ()
    cpu: int = 0
    kernel_time: int = 0
    user_time: int = 0
    wait_reason: Optional[str] = None
    is_main_thread: bool = False
    registers: Optional[Mapping[str, str]] = None
    wait_objects: Optional[Tuple[WaitObject, ...]] = None
    stack_base: Optional[str] = None
    stack_limit: Optional[str] = None

    def __post_init__(self) -> None:
        _freeze_registers(self)

    @property
    def is_waiting_or_blocked(self) -> bool:
        return self.state in (ThreadState.WAITING, ThreadState.BLOCKED)


@dataclass(frozen=True)
class ModuleRecord(_Record):
    """A loaded module (exe/dll/sys)."""
    name: str
    base_address: str = ""
    end_address: str = ""
    size: str = ""
    version: str = ""
    description: str = ""
    company: str = ""
    path: str = ""
    image_type: str = "unknown"  # exe, dll, sys, ocx, unknown
    has_symbols: bool = False
    is_system_module: bool = False
    checksum: str = ""
    timestamp: str = ""


@dataclass(frozen=True)
class SnapshotStatistics(_Record):
    total_threads: int = 0
    running_threads: int = 0
    waiting_threads: int = 0
    total_modules: int = 0
    system_modules: int = 0
    third_party_modules: int = 0
    modules_with_symbols: int = 0


@dataclass(frozen=True)
class CrashSnapshot(_Record):
    """Decoded, immutable view of a captured crash."""
    exception: ExceptionInfo = field(default_factory=ExceptionInfo)
    threads: Tuple[ThreadRecord, ...] = ()
    modules: Tuple[ModuleRecord, ...] = ()
    system_info: SystemInfo = field(default_factory=SystemInfo)
    process_info: ProcessInfo = field(default_factory=ProcessInfo)

    @property
    def main_thread(self) -> Optional[ThreadRecord]:
        for thread in self.threads:
            if thread.is_main_thread:
                return thread
        return None

    def find_module(self, name: str) -> Optional[ModuleRecord]:
        if not name:
            return None
        for module in self.modules:
            if module.name == name:
                return module
        return None

    def statistics(self) -> SnapshotStatistics:
        return SnapshotStatistics(
            total_threads=len(self.threads),
            running_threads=sum(1 for t in self.threads if t.state is ThreadState.RUNNING),
            waiting_threads=sum(1 for t in self.threads if t.state is ThreadState.WAITING),
            total_modules=len(self.modules),
            system_modules=sum(1 for m in self.modules if m.is_system_module),
            third_party_modules=sum(1 for m in self.modules if not m.is_system_module),
            modules_with_symbols=sum(1 for m in self.modules if m.has_symbols),
        )



# ============================================================================
# Diagnosis (output)
# ============================================================================

@dataclass(frozen=True)
class Evidence(_Record):
    """A discrete, confidence-scored technical finding."""
    kind: EvidenceKind
    description: str
    technical_details: str
    confidence: int  # 0-100
    address: Optional[str] = None
    raw_data: Optional[str] = None


@dataclass(frozen=True)
class DeadlockCycle(_Record):
    """Two waiters contending for at least one shared handle."""
    thread_ids: Tuple[int, ...]
    resource_handles: Tuple[str, ...]
    evidence: Tuple[Evidence, ...] = ()


@dataclass(frozen=True)
class DeadlockInfo(_Record):
    detected: bool = False
    cycles: Tuple[DeadlockCycle, ...] = ()
    # Strongly connected components of the waiter -> owner graph
    ownership_cycles: Tuple[Tuple[int, ...], ...] = ()


@dataclass(frozen=True)
class HeapBlock(_Record):
    address: str
    size: str
    status: str  # allocated, free, corrupted


@dataclass(frozen=True)
class HeapAnalysis(_Record):
    corruption_detected: bool = False
    corruption_patterns: Tuple[str, ...] = ()
    evidence: Tuple[Evidence, ...] = ()
    heap_blocks: Tuple[HeapBlock, ...] = ()


@dataclass(frozen=True)
class StackRange(_Record):
    base: str
    limit: str
    current: str


@dataclass(frozen=True)
class StackAnalysis(_Record):
    overflow_detected: bool = False
    stack_depth: int = 0
    guard_page_status: Optional[str] = None  # "violated" or "intact"
    stack_range: Optional[StackRange] = None
    evidence: Tuple[Evidence, ...] = ()


@dataclass(frozen=True)
class CommonPattern(_Record):
    pattern: str
    description: str
    severity: Severity
    found: bool


@dataclass(frozen=True)
class CrashDiagnosis(_Record):
    """Complete, evidence-backed explanation of a crash."""
    category: str
    severity: Severity
    confidence: int
    root_cause: str
    explanation: str = ""
    possible_causes: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()
    problem_modules: Tuple[str, ...] = ()
    deadlock_detected: bool = False
    memory_corruption: bool = False
    stack_overflow: bool = False
    evidence: Tuple[Evidence, ...] = ()
    deadlock_info: DeadlockInfo = field(default_factory=DeadlockInfo)
    heap_analysis: HeapAnalysis = field(default_factory=HeapAnalysis)
    stack_analysis: StackAnalysis = field(default_factory=StackAnalysis)
    alternative_explanations: Tuple[str, ...] = ()
    common_patterns: Tuple[CommonPattern, ...] = ()
    statistics: SnapshotStatistics = field(default_factory=SnapshotStatistics)

    def summary_lines(self) -> List[str]:
        """Short human-readable summary used by the CLI."""
        lines = [
            f"Category:   {self.category} ({self.severity.value})",
            f"Root cause: {self.root_cause}",
            f"Confidence: {self.confidence}%",
        ]
        flags = [name for name, on in (
            ('deadlock', self.deadlock_detected),
            ('memory corruption', self.memory_corruption),
            ('stack overflow', self.stack_overflow),
        ) if on]
        if flags:
            lines.append(f"Flags:      {', '.join(flags)}")
        if self.problem_modules:
            lines.append(f"Modules:    {', '.join(self.problem_modules)}")
        return lines
