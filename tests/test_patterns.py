"""Tests for the common crash pattern checklist."""
from crash_diagnosis.models import (
    CrashSnapshot,
    ExceptionInfo,
    ModuleRecord,
    Severity,
    StackFrame,
    ThreadRecord,
)
from crash_diagnosis.patterns import CommonPatternDetector


def found(snapshot, deadlock=False):
    return {p.pattern for p in CommonPatternDetector().detect(snapshot, deadlock) if p.found}


def test_every_pattern_is_reported():
    patterns = CommonPatternDetector().detect(CrashSnapshot(), False)
    assert [p.pattern for p in patterns] == [
        'Null Pointer Dereference',
        'Stack Corruption',
        'Heap Corruption',
        'Thread Deadlock',
        'Missing Symbols',
    ]
    assert not any(p.found for p in patterns)
    assert patterns[0].severity is Severity.CRITICAL
    assert patterns[4].severity is Severity.MEDIUM


def test_null_pointer_dereference():
    assert 'Null Pointer Dereference' in found(CrashSnapshot(exception=ExceptionInfo(address='0x0000000000000000')))
    assert 'Null Pointer Dereference' in found(CrashSnapshot(exception=ExceptionInfo(address='0x00000010')))
    assert 'Null Pointer Dereference' not in found(CrashSnapshot(exception=ExceptionInfo(address='0x7FF612345678')))


def test_stack_corruption():
    zero_frame = ThreadRecord(id=1, stack_trace=(StackFrame(address='0x0'),))
    unknown_frame = ThreadRecord(id=2, stack_trace=(StackFrame(address='0x1000', function='Unknown_Function'),))
    assert 'Stack Corruption' in found(CrashSnapshot(threads=(zero_frame,)))
    assert 'Stack Corruption' in found(CrashSnapshot(threads=(unknown_frame,)))


def test_heap_corruption():
    assert 'Heap Corruption' in found(CrashSnapshot(exception=ExceptionInfo(code='0xC0000374')))
    assert 'Heap Corruption' in found(CrashSnapshot(exception=ExceptionInfo(description='Heap block damaged')))


def test_thread_deadlock_follows_summary_flag():
    assert 'Thread Deadlock' in found(CrashSnapshot(), deadlock=True)
    assert 'Thread Deadlock' not in found(CrashSnapshot(), deadlock=False)


def test_missing_symbols():
    snapshot = CrashSnapshot(modules=(
        ModuleRecord(name='ntdll.dll', is_system_module=True),
        ModuleRecord(name='plugin.dll'),
    ))
    assert 'Missing Symbols' in found(snapshot)

    system_only = CrashSnapshot(modules=(ModuleRecord(name='ntdll.dll', is_system_module=True),))
    assert 'Missing Symbols' not in found(system_only)
