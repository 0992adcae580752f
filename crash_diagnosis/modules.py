"""Problem-module detection."""
from __future__ import annotations

from typing import List, Set, Tuple

from .constants import SUSPICIOUS_MODULE_MARKERS
from .models import CrashSnapshot, ModuleRecord


class ModuleRiskScanner:
    """Collects modules implicated by the fault or by suspicious traits.

    Order is first-seen: the faulting module, then snapshot module order.
    """

    def __init__(self, markers: Tuple[str, ...] = SUSPICIOUS_MODULE_MARKERS):
        self.markers = tuple(m.lower() for m in markers)

    def scan(self, snapshot: CrashSnapshot) -> Tuple[str, ...]:
        found: List[str] = []
        seen: Set[str] = set()

        def add(name: str) -> None:
            if name and name not in seen:
                seen.add(name)
                found.append(name)

        add(snapshot.exception.module)
        for module in snapshot.modules:
            if not module.has_symbols and not module.is_system_module:
                add(module.name)
            if self.is_suspicious(module):
                add(module.name)
        return tuple(found)

    def is_suspicious(self, module: ModuleRecord) -> bool:
        name = module.name.lower()
        return any(marker in name for marker in self.markers)
