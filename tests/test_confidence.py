"""Tests for the confidence score."""
from crash_diagnosis.confidence import ConfidenceScorer
from crash_diagnosis.models import CrashSnapshot, ExceptionInfo, ModuleRecord, StackFrame, ThreadRecord


def with_stack(tid):
    return ThreadRecord(id=tid, stack_trace=(StackFrame(address='0x1000'),))


def score(**kwargs):
    return ConfidenceScorer().score(CrashSnapshot(**kwargs))


def test_complete_snapshot():
    """Code, two stacks, full symbols and a module match: 30 + 10 + 25 + 15."""
    assert score(
        exception=ExceptionInfo(code='0xC0000005', module='app.exe'),
        threads=(with_stack(1), with_stack(2)),
        modules=(ModuleRecord(name='app.exe', has_symbols=True), ModuleRecord(name='ntdll.dll', has_symbols=True)),
    ) == 80


def test_empty_snapshot_scores_zero():
    assert score(modules=(ModuleRecord(name='mystery.dll'),)) == 0
    assert score() == 0


def test_unknown_sentinel_earns_nothing():
    assert score(exception=ExceptionInfo(code='Unknown')) == 0
    assert score(exception=ExceptionInfo(code='0xC0000094')) == 30


def test_stack_term_is_capped():
    assert score(threads=tuple(with_stack(i) for i in range(8))) == 30


def test_symbol_ratio_rounds_half_up():
    modules = (ModuleRecord(name='a.dll', has_symbols=True), ModuleRecord(name='b.dll'))
    # 30 + 12.5
    assert score(exception=ExceptionInfo(code='0xC0000005'), modules=modules) == 43


def test_fractional_symbol_ratio():
    modules = (ModuleRecord(name='a.dll', has_symbols=True), ModuleRecord(name='b.dll'), ModuleRecord(name='c.dll'))
    assert score(modules=modules) == 8


def test_module_match_requires_loaded_module():
    assert score(exception=ExceptionInfo(module='app.exe')) == 0
    assert score(exception=ExceptionInfo(module='app.exe'), modules=(ModuleRecord(name='app.exe'),)) == 15


def test_maximum_is_100():
    assert score(
        exception=ExceptionInfo(code='0xC0000005', module='app.exe'),
        threads=tuple(with_stack(i) for i in range(10)),
        modules=(ModuleRecord(name='app.exe', has_symbols=True),),
    ) == 100
