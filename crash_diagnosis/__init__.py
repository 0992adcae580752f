"""
Crash Diagnosis Engine

Turns a decoded crash snapshot into a category, severity, root cause,
technical evidence and remediation advice.
"""

__version__ = "1.0.0"

from .engine import DiagnosisOrchestrator, diagnose
from .errors import DiagnosisCancelled, DiagnosisError, FormatError
from .loader import load_snapshot, load_snapshot_json
from .models import CrashDiagnosis, CrashSnapshot
from .schemas import parse_snapshot

__all__ = [
    'CrashDiagnosis',
    'CrashSnapshot',
    'DiagnosisCancelled',
    'DiagnosisError',
    'DiagnosisOrchestrator',
    'FormatError',
    'diagnose',
    'load_snapshot',
    'load_snapshot_json',
    'parse_snapshot',
]
