#!/usr/bin/env python3
"""
Crash Diagnosis Engine - Main Entry Point

Quick launcher for diagnosing crash dumps and decoded JSON snapshots.
"""

import argparse
import json
import logging
import sys

from crash_diagnosis.config import load_settings
from crash_diagnosis.engine import DiagnosisOrchestrator
from crash_diagnosis.errors import FormatError
from crash_diagnosis.loader import load_snapshot, load_snapshot_json

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FORMAT_ERROR = 2


def build_parser():
    parser = argparse.ArgumentParser(
        prog='crash-diagnosis',
        description='Crash Diagnosis Engine - Evidence-backed diagnosis of crash dumps',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Diagnose a minidump
  %(prog)s analyze crash.dmp

  # Diagnose a decoded snapshot and write the full report as JSON
  %(prog)s analyze snapshot.json --json -o report.json

  # Run the test suite
  %(prog)s test
        """
    )

    parser.add_argument(
        'command',
        choices=['analyze', 'test'],
        help='Command to execute'
    )

    parser.add_argument(
        'dump_file',
        nargs='?',
        help='Path to crash dump (.dmp) or JSON snapshot (.json)'
    )

    parser.add_argument(
        '--json',
        action='store_true',
        help='Print the full diagnosis as JSON instead of a summary'
    )

    parser.add_argument(
        '--output',
        '-o',
        help='Output file for the JSON diagnosis (default: console)'
    )

    parser.add_argument(
        '--parallel',
        action='store_true',
        help='Run the independent analyzers on a thread pool'
    )

    return parser


def analyze(args, settings) -> int:
    logger.debug("Loading %s", args.dump_file)
    try:
        if args.dump_file.lower().endswith('.json'):
            snapshot = load_snapshot_json(args.dump_file)
        else:
            snapshot = load_snapshot(args.dump_file, settings)
    except FormatError as e:
        print(f"[!] {e}", file=sys.stderr)
        return EXIT_FORMAT_ERROR

    orchestrator = DiagnosisOrchestrator(
        parallel=args.parallel or settings.parallel,
        max_workers=settings.max_workers,
    )
    diagnosis = orchestrator.diagnose(snapshot)

    report = diagnosis.to_dict()
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2)
        print(f"Diagnosis saved to: {args.output}")

    if args.json and not args.output:
        print(json.dumps(report, indent=2))
    elif not args.json:
        print("\n" + "=" * 60)
        print("CRASH DIAGNOSIS")
        print("=" * 60)
        for line in diagnosis.summary_lines():
            print(line)
        if diagnosis.evidence:
            print(f"\nEvidence ({len(diagnosis.evidence)}):")
            for item in diagnosis.evidence:
                print(f"  - [{item.confidence}%] {item.description}")
        found = [p for p in diagnosis.common_patterns if p.found]
        if found:
            print("\nPatterns:")
            for pattern in found:
                print(f"  - {pattern.pattern} ({pattern.severity.value})")
        print("\nRecommendations:")
        for text in diagnosis.recommendations:
            print(f"  - {text}")
    return EXIT_OK


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    if args.command == 'analyze':
        if not args.dump_file:
            parser.error("analyze command requires dump_file argument")
        return analyze(args, settings)

    elif args.command == 'test':
        print("Running test suite...")
        import pytest
        return pytest.main(['tests/', '-v'])

    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
