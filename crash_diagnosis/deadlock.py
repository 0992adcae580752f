"""Deadlock detection over thread wait-object records.

Two signals are produced:

* ``deadlock_detected``: a structural smell test. More than one waiter, and
  waiters make up at least half of all threads.
* ``DeadlockInfo.cycles``: every pair of waiters whose wait objects share a
  handle. Pairwise contention is reported instead of a full wait-for cycle
  search because dumps rarely carry reliable ownership data.

When ownership data is present, strongly connected components of the
waiter -> owner graph are reported separately as ``ownership_cycles``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set, Tuple

from .constants import DEADLOCK_PAIR_CONFIDENCE
from .models import (
    CrashSnapshot,
    DeadlockCycle,
    DeadlockInfo,
    Evidence,
    EvidenceKind,
    ThreadRecord,
    WaitObject,
)


def is_waiter(thread: ThreadRecord) -> bool:
    """A waiting/blocked thread that carries at least one wait object."""
    return thread.is_waiting_or_blocked and bool(thread.wait_objects)


@dataclass(frozen=True)
class DeadlockReport:
    deadlock_detected: bool = False
    info: DeadlockInfo = field(default_factory=DeadlockInfo)


class DeadlockAnalyzer:
    """Finds resource-sharing waiters and ownership cycles."""

    def analyze(self, snapshot: CrashSnapshot) -> DeadlockReport:
        threads = _unique_threads(snapshot.threads)
        waiters = [t for t in threads if is_waiter(t)]
        cycles = self.find_contention_pairs(waiters)
        return DeadlockReport(
            deadlock_detected=self.detect(threads),
            info=DeadlockInfo(
                detected=bool(cycles),
                cycles=cycles,
                ownership_cycles=self.find_ownership_cycles(threads),
            ),
        )

    @staticmethod
    def detect(threads: Sequence[ThreadRecord]) -> bool:
        waiters = sum(1 for t in threads if is_waiter(t))
        return waiters > 1 and 2 * waiters >= len(threads)

    def find_contention_pairs(self, waiters: Sequence[ThreadRecord]) -> Tuple[DeadlockCycle, ...]:
        cycles: List[DeadlockCycle] = []
        for i, first in enumerate(waiters):
            for second in waiters[i + 1:]:
                shared = _shared_objects(first.wait_objects or (), second.wait_objects or ())
                if not shared:
                    continue
                cycles.append(DeadlockCycle(
                    thread_ids=(first.id, second.id),
                    resource_handles=tuple(obj.handle for obj in shared),
                    evidence=(self._pair_evidence(first, second, shared),),
                ))
        return tuple(cycles)

    @staticmethod
    def _pair_evidence(first: ThreadRecord, second: ThreadRecord,
                       shared: Sequence[WaitObject]) -> Evidence:
        objects = ', '.join(f"{obj.kind.value} ({obj.handle})" for obj in shared)
        return Evidence(
            kind=EvidenceKind.THREAD_STATE,
            description=f"Circular wait detected between threads {first.id} and {second.id}",
            technical_details=(
                f"Both threads are waiting on shared synchronization objects: {objects}. "
                "This creates a circular dependency that can result in deadlock."
            ),
            confidence=DEADLOCK_PAIR_CONFIDENCE,
        )

    @staticmethod
    def find_ownership_cycles(threads: Sequence[ThreadRecord]) -> Tuple[Tuple[int, ...], ...]:
        """Strongly connected components (size >= 2) of the waiter -> owner graph."""
        known = {t.id for t in threads}
        graph: Dict[int, List[int]] = {}
        for thread in threads:
            if not is_waiter(thread):
                continue
            for obj in thread.wait_objects or ():
                owner = obj.owner_thread_id
                if owner is None or owner == thread.id or owner not in known:
                    continue
                targets = graph.setdefault(thread.id, [])
                if owner not in targets:
                    targets.append(owner)
        if not graph:
            return ()

        components = _strongly_connected(graph)
        cycles = [tuple(sorted(c)) for c in components if len(c) > 1]
        return tuple(sorted(cycles))


def _unique_threads(threads: Sequence[ThreadRecord]) -> List[ThreadRecord]:
    # Thread ids are unique per snapshot; keep the first record if a decoder repeats one
    seen: Set[int] = set()
    unique: List[ThreadRecord] = []
    for thread in threads:
        if thread.id in seen:
            continue
        seen.add(thread.id)
        unique.append(thread)
    return unique


def _shared_objects(first: Sequence[WaitObject], second: Sequence[WaitObject]) -> List[WaitObject]:
    other_handles = {obj.handle for obj in second if obj.handle}
    shared: List[WaitObject] = []
    seen: Set[str] = set()
    for obj in first:
        if obj.handle and obj.handle in other_handles and obj.handle not in seen:
            seen.add(obj.handle)
            shared.append(obj)
    return shared


def _strongly_connected(graph: Dict[int, List[int]]) -> List[List[int]]:
    """Iterative Tarjan; returns components in discovery order."""
    index: Dict[int, int] = {}
    lowlink: Dict[int, int] = {}
    on_stack: Set[int] = set()
    stack: List[int] = []
    components: List[List[int]] = []
    counter = 0

    for root in graph:
        if root in index:
            continue
        work: List[Tuple[int, int]] = [(root, 0)]
        while work:
            node, edge_pos = work.pop()
            if edge_pos == 0:
                index[node] = lowlink[node] = counter
                counter += 1
                stack.append(node)
                on_stack.add(node)
            edges = graph.get(node, [])
            descended = False
            while edge_pos < len(edges):
                target = edges[edge_pos]
                edge_pos += 1
                if target not in index:
                    work.append((node, edge_pos))
                    work.append((target, 0))
                    descended = True
                    break
                if target in on_stack:
                    lowlink[node] = min(lowlink[node], index[target])
            if descended:
                continue
            if lowlink[node] == index[node]:
                component: List[int] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                components.append(component)
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])
    return components
