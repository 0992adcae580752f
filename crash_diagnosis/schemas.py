"""Pydantic models for snapshot documents produced by other dump decoders.

Documents may use snake_case keys or the camelCase keys emitted by
browser-side dump tooling. ``null`` values fall back to field defaults.
Each schema maps onto its frozen record in ``models`` via ``to_record()``.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import (
    CrashSnapshot,
    DisassemblyLine,
    ExceptionInfo,
    MemoryRegion,
    ModuleRecord,
    ProcessInfo,
    StackFrame,
    SystemInfo,
    ThreadRecord,
    ThreadState,
    WaitObject,
    WaitObjectKind,
)


def _member(enum_cls: Type[Enum], value: Any, default: Enum) -> Enum:
    """Match 'Critical Section', 'critical-section' etc. to an enum member."""
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip().lower().replace(' ', '_').replace('-', '_')
    for member in enum_cls:
        if member.value == text:
            return member
    return default


class SnapshotSchema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra='ignore',
    )

    record: ClassVar[Any] = None

    @model_validator(mode='before')
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    def to_record(self) -> Any:
        return self.record(**self.model_dump())


class SystemInfoIn(SnapshotSchema):
    record = SystemInfo

    os_version: str = ""
    os_service_pack: str = ""
    processor_architecture: str = ""
    processor_count: int = 0
    total_memory: str = ""
    available_memory: str = ""
    page_size: str = ""


class ProcessInfoIn(SnapshotSchema):
    record = ProcessInfo

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


class MemoryRegionIn(SnapshotSchema):
    record = MemoryRegion

    base_address: str = Field(default="0x0", validation_alias=AliasChoices('base_address', 'baseAddress', 'address'))
    size: str = "0x0"
    state: str = ""
    protection: str = Field(default="", validation_alias=AliasChoices('protection', 'protect'))
    type: str = ""


class DisassemblyLineIn(SnapshotSchema):
    record = DisassemblyLine

    address: str = ""
    instruction: str = Field(default="", validation_alias=AliasChoices('instruction', 'text'))

    @model_validator(mode='before')
    @classmethod
    def _from_text(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)) and len(data) == 2:
            return {'address': data[0], 'instruction': data[1]}
        if isinstance(data, str):
            # "0x7ff6...: mov rax, [rcx]" style text lines
            address, sep, instruction = data.partition(':')
            if sep and address.strip().lower().startswith('0x'):
                return {'address': address.strip(), 'instruction': instruction.strip()}
            return {'instruction': data.strip()}
        return data


class ExceptionIn(SnapshotSchema):
    code: str = ""
    address: str = ""
    description: str = ""
    module: str = ""
    function: Optional[str] = None
    offset: Optional[str] = None
    severity: Optional[str] = None
    registers: Optional[Dict[str, str]] = None
    faulting_instruction: Optional[str] = None
    instruction_decode: Optional[str] = None
    disassembly_context: Optional[List[DisassemblyLineIn]] = None
    memory_regions: Optional[List[MemoryRegionIn]] = None
    memory_protection: Optional[str] = None

    def to_record(self) -> ExceptionInfo:
        return ExceptionInfo(
            code=self.code,
            address=self.address,
            description=self.description,
            module=self.module,
            function=self.function,
            offset=self.offset,
            severity=self.severity,
            registers=self.registers,
            faulting_instruction=self.faulting_instruction,
            instruction_decode=self.instruction_decode,
            disassembly_context=(tuple(line.to_record() for line in self.disassembly_context)
                                 if self.disassembly_context is not None else None),
            memory_regions=(tuple(region.to_record() for region in self.memory_regions)
                            if self.memory_regions is not None else None),
            memory_protection=self.memory_protection,
        )


class StackFrameIn(SnapshotSchema):
    record = StackFrame

    address: str = ""
    module: str = ""
    function: str = ""
    offset: str = ""
    has_symbols: bool = False
    source_file: Optional[str] = None
    line_number: Optional[int] = None


class WaitObjectIn(SnapshotSchema):
    record = WaitObject

    kind: WaitObjectKind = Field(default=WaitObjectKind.UNKNOWN, validation_alias=AliasChoices('kind', 'type'))
    handle: str = ""
    owner_thread_id: Optional[int] = Field(
        default=None, validation_alias=AliasChoices('owner_thread_id', 'ownerThreadId', 'ownerThread'))
    wait_duration: int = Field(
        default=0, validation_alias=AliasChoices('wait_duration', 'waitDuration', 'waitTime'))
    address: Optional[str] = None

    @field_validator('kind', mode='before')
    @classmethod
    def _kind(cls, value: Any) -> Any:
        return _member(WaitObjectKind, value, WaitObjectKind.UNKNOWN)


class ThreadIn(SnapshotSchema):
    id: int
    state: ThreadState = ThreadState.RUNNING
    name: Optional[str] = None
    priority: int = 0
    stack_trace: List[StackFrameIn] = Field(default_factory=list)
    cpu: int = 0
    kernel_time: int = 0
    user_time: int = 0
    wait_reason: Optional[str] = None
    is_main_thread: bool = False
    registers: Optional[Dict[str, str]] = None
    wait_objects: Optional[List[WaitObjectIn]] = None
    stack_base: Optional[str] = None
    stack_limit: Optional[str] = None

    @field_validator('state', mode='before')
    @classmethod
    def _state(cls, value: Any) -> Any:
        # Decoders report states this engine does not model; treat them as running
        return _member(ThreadState, value, ThreadState.RUNNING)

    def to_record(self) -> ThreadRecord:
        return ThreadRecord(
            id=self.id,
            state=self.state,
            name=self.name,
            priority=self.priority,
            stack_trace=tuple(frame.to_record() for frame in self.stack_trace),
            cpu=self.cpu,
            kernel_time=self.kernel_time,
            user_time=self.user_time,
            wait_reason=self.wait_reason,
            is_main_thread=self.is_main_thread,
            registers=self.registers,
            wait_objects=(tuple(w.to_record() for w in self.wait_objects)
                          if self.wait_objects is not None else None),
            stack_base=self.stack_base,
            stack_limit=self.stack_limit,
        )


class ModuleIn(SnapshotSchema):
    record = ModuleRecord

    name: str
    base_address: str = ""
    end_address: str = ""
    size: str = ""
    version: str = ""
    description: str = ""
    company: str = ""
    path: str = ""
    image_type: str = "unknown"
    has_symbols: bool = False
    is_system_module: bool = False
    checksum: str = ""
    timestamp: str = ""


class CrashSnapshotIn(SnapshotSchema):
    exception: ExceptionIn = Field(default_factory=ExceptionIn)
    threads: List[ThreadIn] = Field(default_factory=list)
    modules: List[ModuleIn] = Field(default_factory=list)
    system_info: SystemInfoIn = Field(default_factory=SystemInfoIn)
    process_info: ProcessInfoIn = Field(default_factory=ProcessInfoIn)

    def to_record(self) -> CrashSnapshot:
        return CrashSnapshot(
            exception=self.exception.to_record(),
            threads=tuple(thread.to_record() for thread in self.threads),
            modules=tuple(module.to_record() for module in self.modules),
            system_info=self.system_info.to_record(),
            process_info=self.process_info.to_record(),
        )


def parse_snapshot(data: Any) -> CrashSnapshot:
    """Validate a decoded snapshot document and build its ``CrashSnapshot``.

    Raises ``pydantic.ValidationError`` when the document does not match.
    """
    return CrashSnapshotIn.model_validate(data).to_record()
