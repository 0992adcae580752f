"""Tests for the command line launcher."""
import json

import pytest

import crash_diagnosis_cli

SNAPSHOT = {
    'exception': {
        'code': '0xC0000005',
        'description': 'Access violation reading location 0x00000000',
        'address': '0x00000000',
        'module': 'app.exe',
    },
    'threads': [{'id': 1, 'isMainThread': True, 'stackTrace': [{'address': '0x1000', 'module': 'app.exe'}]}],
    'modules': [{'name': 'app.exe', 'hasSymbols': True}],
}


@pytest.fixture
def snapshot_file(tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(SNAPSHOT), encoding='utf-8')
    return path


def test_analyze_summary(snapshot_file, capsys):
    assert crash_diagnosis_cli.main(['analyze', str(snapshot_file)]) == 0
    out = capsys.readouterr().out
    assert 'CRASH DIAGNOSIS' in out
    assert 'Category:   Access Violation (critical)' in out
    assert 'Null Pointer Dereference' in out


def test_analyze_json(snapshot_file, capsys):
    assert crash_diagnosis_cli.main(['analyze', str(snapshot_file), '--json', '--parallel']) == 0
    report = json.loads(capsys.readouterr().out)
    assert report['category'] == 'Access Violation'
    assert report['confidence'] == 75
    assert report['severity'] == 'critical'


def test_analyze_writes_output_file(snapshot_file, tmp_path):
    output = tmp_path / "report.json"
    assert crash_diagnosis_cli.main(['analyze', str(snapshot_file), '-o', str(output)]) == 0
    report = json.loads(output.read_text(encoding='utf-8'))
    assert report['root_cause'] == 'Null pointer dereference'


def test_format_error_exit_code(tmp_path, capsys):
    dump = tmp_path / "crash.dmp"
    dump.write_bytes(b"NOTADUMP")
    assert crash_diagnosis_cli.main(['analyze', str(dump)]) == 2
    assert 'MDMP' in capsys.readouterr().err


def test_analyze_requires_file():
    with pytest.raises(SystemExit) as info:
        crash_diagnosis_cli.main(['analyze'])
    assert info.value.code == 2
