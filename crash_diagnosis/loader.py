"""Decoders that turn dump files into ``CrashSnapshot`` objects.

``load_snapshot`` reads a Windows minidump with the ``minidump`` library and
maps its streams (system info, misc info, exception, threads, thread info,
modules, memory info) onto the snapshot model. A minidump carries no unwound
stacks or wait-object ownership, so each thread gets the single frame at its
instruction pointer and no wait objects.

``load_snapshot_json`` reads a snapshot that was already decoded elsewhere and
validates it against ``schemas``.
"""
from __future__ import annotations

import io
import json
import logging
import os
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from minidump.constants import MINIDUMP_STREAM_TYPE
from minidump.minidumpfile import MinidumpFile
from minidump.streams.ModuleListStream import MINIDUMP_MODULE_LIST
from pydantic import ValidationError

from .config import EngineSettings
from .constants import EXCEPTION_DESCRIPTIONS, UNKNOWN_CODE, normalize_code
from .errors import FormatError
from .models import (
    CrashSnapshot,
    ExceptionInfo,
    MemoryRegion,
    ModuleRecord,
    ProcessInfo,
    StackFrame,
    SystemInfo,
    ThreadRecord,
    ThreadState,
)
from .schemas import parse_snapshot

logger = logging.getLogger(__name__)

MINIDUMP_SIGNATURE = b'MDMP'

X64_REGISTERS = ('Rax', 'Rbx', 'Rcx', 'Rdx', 'Rsi', 'Rdi', 'Rsp', 'Rbp',
                 'R8', 'R9', 'R10', 'R11', 'R12', 'R13', 'R14', 'R15', 'Rip')
X86_REGISTERS = ('Eax', 'Ebx', 'Ecx', 'Edx', 'Esi', 'Edi', 'Esp', 'Ebp', 'Eip')

ACCESS_TYPES = {0: 'read', 1: 'write', 8: 'execute'}

# Seconds between 1601-01-01 (FILETIME epoch) and 1970-01-01
_FILETIME_EPOCH_DELTA = 11644473600


def load_snapshot(path: str, settings: Optional[EngineSettings] = None) -> CrashSnapshot:
    """Decode a minidump file.

    Raises ``FormatError`` when the file is missing, too large, lacks the
    ``MDMP`` signature or cannot be parsed.
    """
    settings = settings or EngineSettings()
    if not os.path.isfile(path):
        raise FormatError("Dump file not found", path)

    size = os.path.getsize(path)
    if size > settings.max_dump_size_bytes:
        raise FormatError(
            f"Dump is {size / (1024 * 1024):.0f}MB, above the {settings.max_dump_size_mb}MB limit", path)

    try:
        with open(path, 'rb') as f:
            magic = f.read(4)
    except OSError as e:
        raise FormatError(f"Could not read dump ({e})", path) from e
    if magic != MINIDUMP_SIGNATURE:
        raise FormatError("Not a valid minidump file (missing MDMP header)", path)

    try:
        md = MinidumpFile.parse(path)
    except Exception as e:
        raise FormatError(f"Minidump parsing error ({e})", path) from e

    logger.debug("Parsed minidump %s (%d bytes)", path, size)
    try:
        return snapshot_from_minidump(md)
    finally:
        handle = getattr(md, 'file_handle', None)
        if handle is not None:
            handle.close()


def load_snapshot_json(path: str) -> CrashSnapshot:
    """Load a JSON snapshot document (snake_case or camelCase keys)."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise FormatError("Snapshot file not found", path) from e
    except (OSError, UnicodeDecodeError) as e:
        raise FormatError(f"Could not read snapshot ({e})", path) from e
    except json.JSONDecodeError as e:
        raise FormatError(f"Invalid JSON ({e})", path) from e

    if not isinstance(data, dict):
        raise FormatError("Snapshot document must be a JSON object", path)
    try:
        return parse_snapshot(data)
    except ValidationError as e:
        raise FormatError(f"Invalid snapshot document ({e.error_count()} validation errors)", path) from e


def snapshot_from_minidump(md: Any) -> CrashSnapshot:
    """Map a parsed ``MinidumpFile`` onto a ``CrashSnapshot``.

    Each stream is read independently; a stream that fails to decode is
    logged and left empty rather than aborting the whole snapshot.
    """
    system_info = _stream(_system_info, md, SystemInfo())
    is_64bit = _is_64bit(system_info.processor_architecture)
    modules = _stream(_modules, md, ())
    module_map = _stream(_module_map, md, [])
    exception_record = _stream(_exception_record, md, None)
    crash_tid = exception_record[0] if exception_record else None
    regions = _stream(_memory_regions, md, ())

    threads = _stream(lambda m: _threads(m, module_map, is_64bit), md, ())
    crash_thread = next((t for t in threads if t.id == crash_tid), None)
    exception = _exception(exception_record, module_map, regions,
                           crash_thread.registers if crash_thread else None)

    return CrashSnapshot(
        exception=exception,
        threads=threads,
        modules=modules,
        system_info=system_info,
        process_info=_stream(lambda m: _process_info(m, modules), md, ProcessInfo()),
    )


def _stream(extract: Any, md: Any, default: Any) -> Any:
    try:
        return extract(md)
    except Exception as e:
        logger.warning("Skipping minidump stream via %s: %s",
                       getattr(extract, '__name__', 'extractor'), e)
        return default


def _to_int(value: Any) -> Optional[int]:
    """Coerce ints, enums and little-endian bytes to int."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, bytes):
        return int.from_bytes(value, 'little')
    if isinstance(value, Enum):
        return _to_int(value.value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _hex(value: Optional[int], width: int = 0) -> str:
    if value is None:
        return ""
    return f"0x{value:0{width}X}" if width else f"0x{value:X}"


def _enum_name(value: Any) -> str:
    if value is None:
        return ""
    name = getattr(value, 'name', None)
    return str(name) if name else str(value)


def _filetime_iso(value: Any) -> str:
    ticks = _to_int(value)
    if not ticks:
        return ""
    # misc_info stores time_t, thread info stores FILETIME (100ns ticks)
    seconds = ticks / 10_000_000 - _FILETIME_EPOCH_DELTA if ticks > 10 ** 12 else ticks
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return ""


def _is_64bit(architecture: str) -> bool:
    arch = architecture.upper()
    return 'AMD64' in arch or 'ARM64' in arch or 'IA64' in arch or 'X64' in arch


def _system_info(md: Any) -> SystemInfo:
    info = getattr(md, 'sysinfo', None)
    if not info:
        return SystemInfo()
    major = _to_int(getattr(info, 'MajorVersion', None)) or 0
    minor = _to_int(getattr(info, 'MinorVersion', None)) or 0
    build = _to_int(getattr(info, 'BuildNumber', None)) or 0
    return SystemInfo(
        os_version=f"Windows {major}.{minor}.{build}",
        os_service_pack=str(getattr(info, 'CSDVersion', None) or ""),
        processor_architecture=_enum_name(getattr(info, 'ProcessorArchitecture', None)),
        processor_count=_to_int(getattr(info, 'NumberOfProcessors', None)) or 0,
    )


def _process_info(md: Any, modules: Tuple[ModuleRecord, ...]) -> ProcessInfo:
    misc = getattr(md, 'misc_info', None)
    # The first module of a minidump is the main executable
    name = modules[0].name if modules else ""
    if not misc:
        return ProcessInfo(name=name)
    return ProcessInfo(
        name=name,
        id=_to_int(getattr(misc, 'ProcessId', None)) or 0,
        start_time=_filetime_iso(getattr(misc, 'ProcessCreateTime', None)),
    )


def _module_list(md: Any) -> List[Any]:
    modules = getattr(md, 'modules', None)
    if not modules:
        return []
    return list(getattr(modules, 'modules', None) or [])


def _module_map(md: Any) -> List[Tuple[int, int, str]]:
    entries: List[Tuple[int, int, str]] = []
    for m in _module_list(md):
        base = _to_int(getattr(m, 'baseaddress', None)) or 0
        size = _to_int(getattr(m, 'size', None)) or 0
        name = os.path.basename(str(getattr(m, 'name', '') or '').replace('\\', '/'))
        if base and name:
            entries.append((base, base + size, name))
    return entries


def _module_for(address: Optional[int], module_map: List[Tuple[int, int, str]]) -> Tuple[str, Optional[int]]:
    if address is None:
        return "", None
    for start, end, name in module_map:
        if start <= address < end:
            return name, address - start
    return "", None


def _modules(md: Any) -> Tuple[ModuleRecord, ...]:
    cv_sizes = _stream(_codeview_sizes, md, {})
    records: List[ModuleRecord] = []
    for m in _module_list(md):
        path = str(getattr(m, 'name', '') or '')
        name = os.path.basename(path.replace('\\', '/'))
        if not name:
            continue
        base = _to_int(getattr(m, 'baseaddress', None)) or 0
        size = _to_int(getattr(m, 'size', None)) or 0
        extension = os.path.splitext(name)[1].lower().lstrip('.')
        timestamp = _to_int(getattr(m, 'timestamp', None))
        records.append(ModuleRecord(
            name=name,
            base_address=_hex(base),
            end_address=_hex(base + size),
            size=_hex(size),
            version=_module_version(m),
            path=path,
            image_type=extension if extension in ('exe', 'dll', 'sys', 'ocx') else 'unknown',
            has_symbols=cv_sizes.get(base, 0) > 0,
            is_system_module='\\windows\\' in path.lower() or '/windows/' in path.lower(),
            checksum=_hex(_to_int(getattr(m, 'checksum', None)) or 0),
            timestamp=_filetime_iso(timestamp) if timestamp else "",
        ))
    return tuple(records)


def _module_version(module: Any) -> str:
    ffi = getattr(module, 'versioninfo', None)
    if not ffi:
        return ""
    ms = _to_int(getattr(ffi, 'dwFileVersionMS', None)) or 0
    ls = _to_int(getattr(ffi, 'dwFileVersionLS', None)) or 0
    if not ms and not ls:
        return ""
    return f"{(ms >> 16) & 0xFFFF}.{ms & 0xFFFF}.{(ls >> 16) & 0xFFFF}.{ls & 0xFFFF}"


def _codeview_sizes(md: Any) -> Dict[int, int]:
    """Map BaseOfImage to the CodeView record size of each module.

    ``MinidumpModule`` drops the CvRecord descriptor, so the raw
    ``MINIDUMP_MODULE`` entries are re-read from the module list stream.
    A non-empty CodeView record means a matching PDB can be located.
    """
    handle = getattr(md, 'file_handle', None)
    if handle is None:
        return {}
    for directory in getattr(md, 'directories', None) or []:
        if directory.StreamType != MINIDUMP_STREAM_TYPE.ModuleListStream:
            continue
        handle.seek(directory.Location.Rva)
        raw = MINIDUMP_MODULE_LIST.parse(io.BytesIO(handle.read(directory.Location.DataSize)))
        return {m.BaseOfImage: m.CvRecord.DataSize for m in raw.Modules}
    return {}


def _exception_record(md: Any) -> Optional[Tuple[Optional[int], Any]]:
    stream = getattr(md, 'exception', None)
    if stream is not None and getattr(stream, 'exception_records', None):
        stream = stream.exception_records[0]
    if not stream:
        return None
    record = getattr(stream, 'ExceptionRecord', None) or getattr(stream, 'exception_record', None)
    if record is None:
        return None
    return _to_int(getattr(stream, 'ThreadId', None)), record


def _exception(exception_record: Optional[Tuple[Optional[int], Any]],
               module_map: List[Tuple[int, int, str]],
               regions: Tuple[MemoryRegion, ...],
               registers: Optional[Mapping[str, str]]) -> ExceptionInfo:
    if not exception_record:
        return ExceptionInfo(code=UNKNOWN_CODE)
    _, record = exception_record

    raw_code = _to_int(getattr(record, 'ExceptionCode', None))
    code = normalize_code(raw_code) if raw_code is not None else UNKNOWN_CODE
    address = _to_int(getattr(record, 'ExceptionAddress', None))
    module, offset = _module_for(address, module_map)
    description = EXCEPTION_DESCRIPTIONS.get(code, f"Unrecognized exception {code}")

    decode = None
    target = None
    params = list(getattr(record, 'ExceptionInformation', None) or [])
    if len(params) >= 2 and code in ('0xC0000005', '0xC0000006'):
        access = ACCESS_TYPES.get(_to_int(params[0]) or 0, 'access')
        target = _to_int(params[1])
        decode = f"Attempted to {access} address {_hex(target)}"

    nearby = tuple(r for r in regions if r.contains(address) or r.contains(target))
    protection = next((r.protection for r in nearby if r.contains(target)), None)

    return ExceptionInfo(
        code=code,
        address=_hex(address),
        description=description,
        module=module,
        offset=f"+0x{offset:X}" if offset is not None else None,
        registers=registers,
        instruction_decode=decode,
        memory_regions=nearby or None,
        memory_protection=protection,
    )


def _memory_regions(md: Any) -> Tuple[MemoryRegion, ...]:
    info = getattr(md, 'memory_info', None)
    if not info:
        return ()
    regions: List[MemoryRegion] = []
    for entry in getattr(info, 'infos', None) or []:
        base = _to_int(getattr(entry, 'BaseAddress', None))
        if base is None:
            continue
        regions.append(MemoryRegion(
            base_address=_hex(base),
            size=_hex(_to_int(getattr(entry, 'RegionSize', None)) or 0),
            state=_enum_name(getattr(entry, 'State', None)).replace('MEM_', '').lower(),
            protection=_enum_name(getattr(entry, 'Protect', None)),
            type=_enum_name(getattr(entry, 'Type', None)).replace('MEM_', '').lower(),
        ))
    return tuple(regions)


def _thread_infos(md: Any) -> Dict[int, Any]:
    info_list = getattr(md, 'thread_info', None)
    infos: Dict[int, Any] = {}
    for info in getattr(info_list, 'infos', None) or []:
        tid = _to_int(getattr(info, 'ThreadId', None))
        if tid is not None:
            infos[tid] = info
    return infos


def _registers(context: Any, is_64bit: bool) -> Optional[Dict[str, str]]:
    if context is None:
        return None
    names = X64_REGISTERS if is_64bit else X86_REGISTERS
    width = 16 if is_64bit else 8
    registers: Dict[str, str] = {}
    for name in names:
        value = _to_int(getattr(context, name, None))
        if value is not None:
            registers[name.lower()] = _hex(value, width)
    return registers or None


def _threads(md: Any, module_map: List[Tuple[int, int, str]], is_64bit: bool) -> Tuple[ThreadRecord, ...]:
    thread_list = getattr(md, 'threads', None)
    if not thread_list:
        return ()
    infos = _thread_infos(md)
    records: List[ThreadRecord] = []
    for index, thread in enumerate(getattr(thread_list, 'threads', None) or []):
        tid = _to_int(getattr(thread, 'ThreadId', None))
        if tid is None:
            continue
        info = infos.get(tid)
        registers = _registers(getattr(thread, 'ContextObject', None), is_64bit)

        state = ThreadState.RUNNING
        if info is not None and _to_int(getattr(info, 'ExitTime', None)):
            state = ThreadState.TERMINATED
        elif (_to_int(getattr(thread, 'SuspendCount', None)) or 0) > 0:
            state = ThreadState.SUSPENDED

        stack_start, stack_size = _stack_bounds(thread)
        records.append(ThreadRecord(
            id=tid,
            state=state,
            priority=_to_int(getattr(thread, 'Priority', None)) or 0,
            stack_trace=_top_frame(registers, module_map),
            kernel_time=(_to_int(getattr(info, 'KernelTime', None)) or 0) if info else 0,
            user_time=(_to_int(getattr(info, 'UserTime', None)) or 0) if info else 0,
            # The first thread of a minidump thread list is the main thread
            is_main_thread=index == 0,
            registers=registers,
            stack_base=_hex(stack_start + stack_size) if stack_start else None,
            stack_limit=_hex(stack_start) if stack_start else None,
        ))
    return tuple(records)


def _stack_bounds(thread: Any) -> Tuple[int, int]:
    stack = getattr(thread, 'Stack', None)
    if not stack:
        return 0, 0
    start = _to_int(getattr(stack, 'StartOfMemoryRange', None)) or 0
    memory = getattr(stack, 'MemoryLocation', None) or getattr(stack, 'Memory', None)
    size = _to_int(getattr(memory, 'DataSize', None)) or 0 if memory is not None else 0
    return start, size


def _top_frame(registers: Optional[Mapping[str, str]],
               module_map: List[Tuple[int, int, str]]) -> Tuple[StackFrame, ...]:
    if not registers:
        return ()
    ip_text = registers.get('rip') or registers.get('eip')
    ip = int(ip_text, 16) if ip_text else 0
    if not ip:
        return ()
    module, offset = _module_for(ip, module_map)
    return (StackFrame(
        address=ip_text,
        module=module,
        offset=f"+0x{offset:X}" if offset is not None else "",
        has_symbols=False,
    ),)
