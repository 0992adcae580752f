"""Exception types raised at the edges of the diagnosis engine."""
from __future__ import annotations

from typing import Optional


class DiagnosisError(Exception):
    """Base class for errors raised by this package."""


class FormatError(DiagnosisError):
    """The input could not be decoded into a crash snapshot."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        message = super().__str__()
        if self.path:
            return f"{message}: {self.path}"
        return message


class DiagnosisCancelled(DiagnosisError):
    """The caller aborted an analysis before it completed."""

    def __init__(self, stage: str):
        super().__init__(f"Diagnosis cancelled before stage '{stage}'")
        self.stage = stage
