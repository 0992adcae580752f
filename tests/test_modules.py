"""Tests for problem-module detection."""
from crash_diagnosis.models import CrashSnapshot, ExceptionInfo, ModuleRecord
from crash_diagnosis.modules import ModuleRiskScanner


def test_problem_modules_in_first_seen_order():
    snapshot = CrashSnapshot(
        exception=ExceptionInfo(module='app.exe'),
        modules=(
            ModuleRecord(name='kernel32.dll', is_system_module=True),
            ModuleRecord(name='plugin.dll'),
            ModuleRecord(name='app.exe', has_symbols=True),
            ModuleRecord(name='test_helper.dll', has_symbols=True),
            ModuleRecord(name='debugsys.dll', has_symbols=True, is_system_module=True),
            ModuleRecord(name='clean.dll', has_symbols=True),
        ),
    )
    assert ModuleRiskScanner().scan(snapshot) == ('app.exe', 'plugin.dll', 'test_helper.dll', 'debugsys.dll')


def test_no_duplicates():
    snapshot = CrashSnapshot(
        exception=ExceptionInfo(module='unknown.dll'),
        modules=(
            ModuleRecord(name='unknown.dll'),
            ModuleRecord(name='unknown.dll'),
        ),
    )
    assert ModuleRiskScanner().scan(snapshot) == ('unknown.dll',)


def test_empty_snapshot():
    assert ModuleRiskScanner().scan(CrashSnapshot()) == ()


def test_custom_markers():
    scanner = ModuleRiskScanner(markers=('Inject',))
    assert scanner.is_suspicious(ModuleRecord(name='dllinjector.dll'))
    assert not scanner.is_suspicious(ModuleRecord(name='debug.dll'))
