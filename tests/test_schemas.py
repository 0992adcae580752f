"""Tests for parsing snapshot documents into records."""
import pytest
from pydantic import ValidationError

from crash_diagnosis.models import CrashSnapshot, DisassemblyLine, ThreadState, WaitObjectKind
from crash_diagnosis.schemas import DisassemblyLineIn, parse_snapshot

CAMEL_CASE_SNAPSHOT = {
    'exception': {
        'code': '0xc0000005',
        'address': '0x00007FF6A0001234',
        'description': 'Access violation',
        'module': 'app.exe',
        'registers': {'rax': '0x0', 'rcx': 0},
        'faultingInstruction': 'mov rax, [rcx]',
        'disassemblyContext': ['0x00007FF6A0001230: push rbp', '0x00007FF6A0001234: mov rax, [rcx]'],
        'memoryRegions': [{'baseAddress': '0x0', 'size': '0x10000', 'state': 'free', 'protect': 'PAGE_NOACCESS'}],
    },
    'threads': [
        {
            'id': 4242,
            'state': 'waiting',
            'isMainThread': True,
            'waitReason': 'Executive',
            'stackTrace': [{'address': '0x1000', 'module': 'app.exe', 'hasSymbols': True, 'lineNumber': '12'}],
            'waitObjects': [{'type': 'Critical Section', 'handle': '0x1c', 'ownerThread': 7, 'waitTime': 500}],
            'stackBase': '0x2000',
            'stackLimit': '0x1000',
        },
        {'id': 7, 'state': 'bogus', 'waitObjects': None},
    ],
    'modules': [
        {'name': 'app.exe', 'hasSymbols': True, 'imageType': 'exe'},
        {'name': 'ntdll.dll', 'isSystemModule': True},
    ],
    'systemInfo': {'osVersion': 'Windows 10.0.19045', 'processorCount': 8, 'totalMemory': 17179869184},
    'processInfo': {'name': 'app.exe', 'id': 1234},
}


def test_parse_camel_case_document():
    snapshot = parse_snapshot(CAMEL_CASE_SNAPSHOT)

    exception = snapshot.exception
    assert exception.faulting_instruction == 'mov rax, [rcx]'
    assert exception.disassembly_context[1] == DisassemblyLine('0x00007FF6A0001234', 'mov rax, [rcx]')
    assert exception.memory_regions[0].state == 'free'
    assert exception.memory_regions[0].protection == 'PAGE_NOACCESS'
    assert exception.registers['rcx'] == '0'

    main = snapshot.main_thread
    assert main.id == 4242
    assert main.state is ThreadState.WAITING
    assert main.wait_reason == 'Executive'
    assert main.stack_trace[0].has_symbols
    assert main.stack_trace[0].line_number == 12
    assert main.wait_objects[0].kind is WaitObjectKind.CRITICAL_SECTION
    assert main.wait_objects[0].owner_thread_id == 7
    assert main.wait_objects[0].wait_duration == 500
    assert main.stack_base == '0x2000'

    # Unrecognized states fall back to running
    assert snapshot.threads[1].state is ThreadState.RUNNING
    assert snapshot.threads[1].wait_objects is None

    assert snapshot.modules[0].image_type == 'exe'
    assert snapshot.modules[1].image_type == 'unknown'
    assert snapshot.modules[1].is_system_module
    assert snapshot.system_info.processor_count == 8
    assert snapshot.system_info.total_memory == '17179869184'
    assert snapshot.process_info.id == 1234


def test_snake_case_round_trip():
    snapshot = parse_snapshot(CAMEL_CASE_SNAPSHOT)
    data = snapshot.to_dict()
    assert data['threads'][0]['state'] == 'waiting'
    assert data['threads'][0]['wait_objects'][0]['kind'] == 'critical_section'
    assert parse_snapshot(data) == snapshot


def test_null_sections_use_defaults():
    assert parse_snapshot({'exception': None, 'threads': None}) == CrashSnapshot()
    assert parse_snapshot({}) == CrashSnapshot()


def test_parsed_registers_are_read_only():
    snapshot = parse_snapshot(CAMEL_CASE_SNAPSHOT)
    with pytest.raises(TypeError):
        snapshot.exception.registers['rax'] = '0x1'


def test_malformed_documents_are_rejected():
    with pytest.raises(ValidationError):
        parse_snapshot({'threads': 'not-a-list'})
    with pytest.raises(ValidationError):
        parse_snapshot({'threads': [{'state': 'running'}]})
    with pytest.raises(ValidationError):
        parse_snapshot({'threads': [{'id': 'main'}]})
    with pytest.raises(ValidationError):
        parse_snapshot({'modules': [{'hasSymbols': True}]})


def test_disassembly_line_forms():
    def parse(value):
        return DisassemblyLineIn.model_validate(value).to_record()

    assert parse({'address': '0x10', 'instruction': 'ret'}) == DisassemblyLine('0x10', 'ret')
    assert parse({'address': '0x10', 'text': 'ret'}) == DisassemblyLine('0x10', 'ret')
    assert parse(['0x10', 'ret']) == DisassemblyLine('0x10', 'ret')
    assert parse('0x10: ret') == DisassemblyLine('0x10', 'ret')
    assert parse('int3') == DisassemblyLine('', 'int3')
