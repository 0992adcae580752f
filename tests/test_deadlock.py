"""Tests for deadlock detection."""
from crash_diagnosis.deadlock import DeadlockAnalyzer, is_waiter
from crash_diagnosis.models import (
    CrashSnapshot,
    EvidenceKind,
    ThreadRecord,
    ThreadState,
    WaitObject,
    WaitObjectKind,
)


def mutex(handle, owner=None):
    return WaitObject(kind=WaitObjectKind.MUTEX, handle=handle, owner_thread_id=owner)


def thread(tid, state=ThreadState.WAITING, waits=None):
    return ThreadRecord(id=tid, state=state, wait_objects=tuple(waits) if waits is not None else None)


def analyze(*threads):
    return DeadlockAnalyzer().analyze(CrashSnapshot(threads=tuple(threads)))


def test_pair_sharing_a_handle():
    """Two waiters on H1 and a running thread: one pair, both flags set."""
    report = analyze(
        thread(1, ThreadState.WAITING, [mutex('H1')]),
        thread(2, ThreadState.BLOCKED, [mutex('H1'), mutex('H2')]),
        thread(3, ThreadState.RUNNING),
    )
    assert report.deadlock_detected
    assert report.info.detected
    assert len(report.info.cycles) == 1

    cycle = report.info.cycles[0]
    assert cycle.thread_ids == (1, 2)
    assert cycle.resource_handles == ('H1',)
    assert len(cycle.evidence) == 1
    assert cycle.evidence[0].kind is EvidenceKind.THREAD_STATE
    assert cycle.evidence[0].confidence == 80
    assert cycle.evidence[0].description == 'Circular wait detected between threads 1 and 2'


def test_waiters_without_shared_handles():
    report = analyze(
        thread(1, waits=[mutex('H1')]),
        thread(2, waits=[mutex('H2')]),
    )
    assert report.deadlock_detected
    assert not report.info.detected
    assert report.info.cycles == ()


def test_summary_needs_half_of_threads_waiting():
    report = analyze(
        thread(1, waits=[mutex('H1')]),
        thread(2, waits=[mutex('H1')]),
        thread(3, ThreadState.RUNNING),
        thread(4, ThreadState.RUNNING),
        thread(5, ThreadState.RUNNING),
    )
    assert not report.deadlock_detected
    assert report.info.detected


def test_single_waiter_is_not_a_deadlock():
    report = analyze(thread(1, waits=[mutex('H1')]))
    assert not report.deadlock_detected
    assert not report.info.detected


def test_waiter_requires_wait_objects_and_state():
    assert is_waiter(thread(1, waits=[mutex('H1')]))
    assert not is_waiter(thread(1, waits=[]))
    assert not is_waiter(thread(1, waits=None))
    assert not is_waiter(thread(1, ThreadState.RUNNING, [mutex('H1')]))


def test_empty_handles_are_not_shared():
    report = analyze(
        thread(1, waits=[mutex('')]),
        thread(2, waits=[mutex('')]),
    )
    assert report.info.cycles == ()


def test_duplicate_thread_ids_are_ignored():
    report = analyze(
        thread(1, waits=[mutex('H1')]),
        thread(1, waits=[mutex('H1')]),
    )
    assert report.info.cycles == ()
    assert not report.deadlock_detected


def test_ownership_cycle():
    report = analyze(
        thread(1, waits=[mutex('H1', owner=2)]),
        thread(2, waits=[mutex('H2', owner=1)]),
    )
    assert report.info.ownership_cycles == ((1, 2),)
    # Pairwise contention is independent of ownership
    assert report.info.cycles == ()


def test_three_thread_ownership_cycle():
    report = analyze(
        thread(3, waits=[mutex('C', owner=1)]),
        thread(1, waits=[mutex('A', owner=2)]),
        thread(2, waits=[mutex('B', owner=3)]),
        thread(4, waits=[mutex('D', owner=1)]),
    )
    assert report.info.ownership_cycles == ((1, 2, 3),)


def test_ownership_ignores_unknown_and_self_owners():
    report = analyze(
        thread(1, waits=[mutex('H1', owner=99)]),
        thread(2, waits=[mutex('H2', owner=2)]),
    )
    assert report.info.ownership_cycles == ()


def test_ownership_chain_without_cycle():
    report = analyze(
        thread(1, waits=[mutex('H1', owner=2)]),
        thread(2, waits=[mutex('H2', owner=3)]),
        thread(3, ThreadState.RUNNING),
    )
    assert report.info.ownership_cycles == ()


def test_every_cycle_is_sound():
    threads = (
        thread(1, waits=[mutex('A'), mutex('B')]),
        thread(2, ThreadState.BLOCKED, [mutex('B')]),
        thread(3, waits=[mutex('A'), mutex('C')]),
        thread(4, ThreadState.RUNNING, [mutex('A')]),
        thread(5, waits=[mutex('C')]),
    )
    report = analyze(*threads)
    by_id = {t.id: t for t in threads}
    assert len(report.info.cycles) == 3
    for cycle in report.info.cycles:
        assert len(set(cycle.thread_ids)) >= 2
        for tid in cycle.thread_ids:
            assert is_waiter(by_id[tid])
            handles = {obj.handle for obj in by_id[tid].wait_objects}
            assert set(cycle.resource_handles) <= handles
        assert cycle.resource_handles
