"""Diagnosis orchestration.

``DiagnosisOrchestrator.diagnose`` is the single entry point. It runs the
independent snapshot analyzers (optionally on a thread pool), then derives
confidence, recommendations and alternatives from their results and builds
one ``CrashDiagnosis``. Analyzers only read the snapshot, so stages share no
state and need no locking.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Optional, Tuple

from .advisories import AdvisorySignals, AlternativeExplanationGenerator, RecommendationGenerator
from .classifier import Classification, ExceptionClassifier
from .confidence import ConfidenceScorer
from .config import EngineSettings
from .deadlock import DeadlockAnalyzer, DeadlockReport
from .errors import DiagnosisCancelled
from .evidence import EvidenceSynthesizer
from .memory import MemoryCorruptionAnalyzer, MemoryReport
from .models import CrashDiagnosis, CrashSnapshot, Evidence
from .modules import ModuleRiskScanner
from .patterns import CommonPatternDetector
from .stack import StackAnalyzer, StackReport

logger = logging.getLogger(__name__)

Stage = Callable[[CrashSnapshot], Any]


class DiagnosisOrchestrator:
    """Runs every analyzer over a snapshot and aggregates one diagnosis."""

    def __init__(self, parallel: bool = False, max_workers: int = 4):
        self.parallel = parallel
        self.max_workers = max(1, max_workers)

        self.classifier = ExceptionClassifier()
        self.deadlock_analyzer = DeadlockAnalyzer()
        self.memory_analyzer = MemoryCorruptionAnalyzer()
        self.stack_analyzer = StackAnalyzer()
        self.module_scanner = ModuleRiskScanner()
        self.evidence_synthesizer = EvidenceSynthesizer()
        self.pattern_detector = CommonPatternDetector()
        self.confidence_scorer = ConfidenceScorer()
        self.recommendation_generator = RecommendationGenerator()
        self.alternative_generator = AlternativeExplanationGenerator()

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "DiagnosisOrchestrator":
        return cls(parallel=settings.parallel, max_workers=settings.max_workers)

    def _stages(self) -> Tuple[Tuple[str, Stage], ...]:
        return (
            ('classification', lambda s: self.classifier.classify(s.exception)),
            ('deadlock', self.deadlock_analyzer.analyze),
            ('memory', self.memory_analyzer.analyze),
            ('stack', self.stack_analyzer.analyze),
            ('modules', self.module_scanner.scan),
            ('evidence', self.evidence_synthesizer.synthesize),
        )

    def diagnose(self, snapshot: CrashSnapshot,
                 cancel_event: Optional[threading.Event] = None) -> CrashDiagnosis:
        """Diagnose ``snapshot``.

        Raises ``DiagnosisCancelled`` if ``cancel_event`` is set before the
        analysis completes; a partial diagnosis is never returned.
        """
        if self.parallel:
            results = self._run_parallel(snapshot, cancel_event)
        else:
            results = self._run_sequential(snapshot, cancel_event)

        _check_cancelled(cancel_event, 'aggregation')
        diagnosis = self._aggregate(snapshot, results)
        logger.info("Diagnosed %s (%s) with confidence %d",
                    diagnosis.category, diagnosis.severity.value, diagnosis.confidence)
        return diagnosis

    def _run_sequential(self, snapshot: CrashSnapshot,
                        cancel_event: Optional[threading.Event]) -> Dict[str, Any]:
        results: Dict[str, Any] = {}
        for name, stage in self._stages():
            _check_cancelled(cancel_event, name)
            logger.debug("Running stage %s", name)
            results[name] = stage(snapshot)
        return results

    def _run_parallel(self, snapshot: CrashSnapshot,
                      cancel_event: Optional[threading.Event]) -> Dict[str, Any]:
        _check_cancelled(cancel_event, 'classification')
        results: Dict[str, Any] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_stage = {
                executor.submit(stage, snapshot): name
                for name, stage in self._stages()
            }
            for future in as_completed(future_to_stage):
                name = future_to_stage[future]
                if cancel_event is not None and cancel_event.is_set():
                    for pending in future_to_stage:
                        pending.cancel()
                    raise DiagnosisCancelled(name)
                results[name] = future.result()
                logger.debug("Stage %s finished", name)
        return results

    def _aggregate(self, snapshot: CrashSnapshot, results: Dict[str, Any]) -> CrashDiagnosis:
        classification: Classification = results['classification']
        deadlock: DeadlockReport = results['deadlock']
        memory: MemoryReport = results['memory']
        stack: StackReport = results['stack']
        problem_modules: Tuple[str, ...] = results['modules']
        evidence: Tuple[Evidence, ...] = results['evidence']

        signals = AdvisorySignals(
            category=classification.category,
            stack_overflow=stack.stack_overflow,
            deadlock_detected=deadlock.deadlock_detected,
            memory_corruption=memory.memory_corruption,
            problem_modules=problem_modules,
            evidence_kinds=frozenset(item.kind for item in evidence),
        )

        return CrashDiagnosis(
            category=classification.category,
            severity=classification.severity,
            confidence=self.confidence_scorer.score(snapshot),
            root_cause=classification.root_cause,
            explanation=classification.explanation,
            possible_causes=classification.possible_causes,
            recommendations=self.recommendation_generator.generate(signals),
            problem_modules=problem_modules,
            deadlock_detected=deadlock.deadlock_detected,
            memory_corruption=memory.memory_corruption,
            stack_overflow=stack.stack_overflow,
            evidence=evidence,
            deadlock_info=deadlock.info,
            heap_analysis=memory.heap_analysis,
            stack_analysis=stack.stack_analysis,
            alternative_explanations=self.alternative_generator.generate(signals),
            common_patterns=self.pattern_detector.detect(snapshot, deadlock.deadlock_detected),
            statistics=snapshot.statistics(),
        )


def _check_cancelled(cancel_event: Optional[threading.Event], stage: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.debug("Cancellation requested before stage %s", stage)
        raise DiagnosisCancelled(stage)


_default_orchestrator = DiagnosisOrchestrator()


def diagnose(snapshot: CrashSnapshot,
             cancel_event: Optional[threading.Event] = None) -> CrashDiagnosis:
    """Diagnose ``snapshot`` with a sequential default orchestrator."""
    return _default_orchestrator.diagnose(snapshot, cancel_event)
