"""AGF-v0.1 Generation Pipeline — Sequential loop and batch drivers.

Owns one run's long-lived state (Portfolio, AdaptiveStandards, counters)
and wires the components together:

    ModeSelector -> collaborators (idea, images+sounds, content)
                 -> FeatureVectorizer -> QualityScorer
                 -> accept (Portfolio.append, Publisher) / reject
                 -> AdaptiveThresholdController.adjust every N attempts

Two drivers share the same accept path:

    run_loop(target_accepted)       one attempt at a time until N accepted;
                                    backoff between attempts, long cooldown
                                    after unexpected errors
    run_batches(total_count, ...)   ConcurrencyBoundedExecutor; workers only
                                    produce Candidates, acceptance happens
                                    on the driver after each batch resolves

Every attempt ends in exactly one of ACCEPTED / REJECTED / FAILED, so
``attempts == accepted + rejected + failed`` always holds.

Usage:
    pipeline = GenerationPipeline(CollaboratorSet.mock(seed=7))
    summary = await pipeline.run_loop(target_accepted=20)
    summary = await pipeline.run_batches(total_count=50, batch_size=10, max_concurrency=5)
"""

from __future__ import annotations

import asyncio
import logging
import random as _random
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Optional

from agf.collaborators import AssetRefs, CollaboratorSet
from agf.config import AGFConfig
from agf.executor import ConcurrencyBoundedExecutor
from agf.mode_selector import ModeSelector
from agf.portfolio import Portfolio
from agf.protocol import (
    AttemptOutcome,
    BatchProgress,
    BatchReport,
    BatchTask,
    Candidate,
    GameArtifact,
    GenerationError,
    GenerationMode,
    GenerationStatistics,
    QualityEvaluation,
    RunReport,
)
from agf.scorer import QualityScorer, ScoringWeights
from agf.standards import AdaptiveStandards, AdaptiveThresholdController, ControllerSettings
from agf.state import RunSnapshot, StateStore
from agf.tracking import AGFTracker
from agf.util.diversity import DiversityAnalyzer
from agf.util.rolling import OutcomeWindow, RunningStats
from agf.util.vectorizer import FeatureVectorizer

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AttemptRecord:
    """Outcome of one attempt as seen by the driver."""
    attempt: int
    outcome: AttemptOutcome
    mode: Optional[GenerationMode] = None
    candidate: Optional[Candidate] = None
    evaluation: Optional[QualityEvaluation] = None
    error: str = ""


@dataclass(frozen=True)
class ProgressReport:
    """Periodic statistics for logging / UI callbacks."""
    attempts: int
    accepted: int
    rejected: int
    failed: int
    pass_rate: float                 # accepted / scored, lifetime
    rolling_pass_rate: float
    average_quality: float
    max_quality: float
    min_quality: float
    quality_threshold: float
    epsilon: float
    exploration_ratio: float
    portfolio_size: int
    diversity_score: float
    total_tokens: int
    total_cost: float
    batch: Optional[BatchProgress] = None


@dataclass(frozen=True)
class RunSummary:
    mode: str
    attempts: int
    accepted: int
    rejected: int
    failed: int
    publish_failures: int
    pass_rate: float
    average_quality: float
    quality_threshold: float
    epsilon: float
    exploration_ratio: float
    portfolio_size: int
    diversity_score: float
    total_tokens: int
    total_cost: float
    elapsed_seconds: float
    stopped: bool
    run_report: Optional[RunReport] = None

    def as_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d.pop("run_report")
        return d


ProgressCallback = Callable[[ProgressReport], None]
Sleep = Callable[[float], Awaitable[None]]


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class GenerationPipeline:
    """Single owner of the portfolio and the adaptive standards for a run.

    Attributes:
        collaborators: External generator roles.
        portfolio: Accepted entries (mutated only by the accept path).
        standards: Threshold / epsilon state (mutated only by the controller).
        controller: AdaptiveThresholdController.
        selector: ModeSelector.
        scorer: QualityScorer.
    """

    def __init__(
        self,
        collaborators: CollaboratorSet,
        analyzer: Optional[DiversityAnalyzer] = None,
        weights: Optional[ScoringWeights] = None,
        standards: Optional[AdaptiveStandards] = None,
        controller_settings: Optional[ControllerSettings] = None,
        vectorizer: Optional[FeatureVectorizer] = None,
        store: Optional[StateStore] = None,
        tracker: Optional[AGFTracker] = None,
        rng: Optional[_random.Random] = None,
        rolling_window: int = AGFConfig.ROLLING_WINDOW,
        attempt_delay: float = AGFConfig.ATTEMPT_DELAY,
        error_cooldown: float = AGFConfig.ERROR_COOLDOWN,
        report_every: int = AGFConfig.REPORT_EVERY,
        task_timeout: float = AGFConfig.TASK_TIMEOUT,
        progress_callback: Optional[ProgressCallback] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.collaborators = collaborators
        self.analyzer = analyzer or DiversityAnalyzer()
        self.weights = weights or ScoringWeights.from_config()
        self.vectorizer = vectorizer or FeatureVectorizer()
        self.scorer = QualityScorer(self.analyzer, self.weights)
        self.portfolio = Portfolio(self.analyzer, total_max=self.weights.total_max)
        self.standards = standards or AdaptiveStandards.from_config()
        self.controller = AdaptiveThresholdController(
            self.standards,
            controller_settings or ControllerSettings.from_config(self.weights.total_max),
        )
        self.selector = ModeSelector(self.analyzer, self.portfolio, rng=rng)
        self.store = store
        self.tracker = tracker or AGFTracker(enabled=False)
        self.attempt_delay = attempt_delay
        self.error_cooldown = error_cooldown
        self.report_every = report_every
        self.task_timeout = task_timeout
        self.progress_callback = progress_callback
        self._sleep = sleep
        self._stop_requested = False
        self._executor: Optional[ConcurrencyBoundedExecutor] = None

        self.attempts = 0
        self.accepted = 0
        self.rejected = 0
        self.failed = 0
        self.publish_failures = 0
        self.total_tokens = 0
        self.total_cost = 0.0
        self.quality = RunningStats()
        self.window = OutcomeWindow(size=rolling_window)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """Cooperative stop; the current attempt / batch finishes first."""
        self._stop_requested = True
        if self._executor is not None:
            self._executor.stop()
        logger.info("Stop requested")

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    # ------------------------------------------------------------------
    # Candidate production (safe to run concurrently)
    # ------------------------------------------------------------------

    async def generate_candidate(self, mode: GenerationMode) -> Candidate:
        """Run the collaborators for one attempt; raises GenerationError."""
        c = self.collaborators
        start = time.monotonic()

        try:
            seed = await c.ideas.generate(avoid=(), target=mode.target)
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"idea generation failed: {e}", stage="idea") from e

        try:
            images, sounds = await asyncio.gather(c.images.generate(seed), c.sounds.generate(seed))
        except Exception as e:
            raise GenerationError(f"asset generation failed: {e}", stage="assets") from e
        assets = AssetRefs(
            background=images.background,
            objects=images.objects,
            sounds=sounds.sounds,
            tokens_used=images.tokens_used + sounds.tokens_used,
        )

        try:
            artifact = await c.content.generate_from_seed(seed, assets)
        except Exception as e:
            raise GenerationError(f"content generation failed: {e}", stage="content") from e
        if not isinstance(artifact, GameArtifact):
            raise GenerationError(
                f"content generator returned {type(artifact).__name__}", stage="content",
            )

        tokens = seed.tokens_used + assets.tokens_used
        return Candidate(
            artifact=artifact,
            vector=self.vectorizer.vectorize(artifact),
            seed=seed,
            mode=mode,
            generation_seconds=time.monotonic() - start,
            tokens_used=tokens,
            cost_usd=tokens / 1000.0 * AGFConfig.COST_PER_1K_TOKENS,
        )

    # ------------------------------------------------------------------
    # Accept path (driver only)
    # ------------------------------------------------------------------

    async def accept_or_reject(self, candidate: Candidate) -> AttemptRecord:
        """Score against the current portfolio and standards, then accept or reject."""
        evaluation = self.scorer.evaluate(candidate, self.portfolio, self.standards)
        self.quality.update(evaluation.total)
        self.window.record(evaluation.total, evaluation.passed)
        self.total_tokens += candidate.tokens_used
        self.total_cost += candidate.cost_usd

        if evaluation.passed:
            entry = self.portfolio.append(candidate, evaluation)
            self.accepted += 1
            outcome = AttemptOutcome.ACCEPTED
            logger.info(
                "ACCEPTED %s '%s' (%s/%s) total=%.1f >= %.1f [portfolio=%d]",
                candidate.candidate_id, candidate.artifact.title, candidate.genre,
                candidate.mechanic, evaluation.total, evaluation.threshold, len(self.portfolio),
            )
            await self._publish(entry)
        else:
            self.rejected += 1
            outcome = AttemptOutcome.REJECTED
            reason = (
                ", ".join(evaluation.critical_violations)
                or f"total {evaluation.total:.1f} < {evaluation.threshold:.1f}"
            )
            logger.info("REJECTED %s '%s': %s", candidate.candidate_id, candidate.artifact.title, reason)

        return self._finish_attempt(AttemptRecord(
            attempt=self.attempts + 1,
            outcome=outcome,
            mode=candidate.mode,
            candidate=candidate,
            evaluation=evaluation,
        ))

    def record_failure(self, mode: Optional[GenerationMode], error: str) -> AttemptRecord:
        self.failed += 1
        logger.warning("FAILED attempt %d: %s", self.attempts + 1, error)
        return self._finish_attempt(AttemptRecord(
            attempt=self.attempts + 1,
            outcome=AttemptOutcome.FAILED,
            mode=mode,
            error=error,
        ))

    async def _publish(self, entry) -> None:
        publisher = self.collaborators.publisher
        if publisher is None:
            return
        try:
            result = await publisher.publish(entry)
        except Exception as e:
            self.publish_failures += 1
            logger.warning("Publish failed for %s: %s", entry.candidate.candidate_id, e)
            return
        if result.success:
            logger.info("Published %s as %s", entry.candidate.candidate_id, result.external_id)
        else:
            self.publish_failures += 1
            logger.warning("Publish failed for %s: %s", entry.candidate.candidate_id, result.error)

    def _finish_attempt(self, record: AttemptRecord) -> AttemptRecord:
        self.attempts += 1
        self._log_attempt(record)

        if self.controller.is_due(self.attempts):
            self.controller.adjust(self.statistics())
            self._save_state()
        return record

    def _log_attempt(self, record: AttemptRecord) -> None:
        ev = record.evaluation
        cand = record.candidate
        mode = record.mode
        log_record = {
            "attempt": record.attempt,
            "timestamp": time.time(),
            "outcome": record.outcome,
            "mode": mode.kind if mode else None,
            "target": mode.target if mode else None,
            "candidate_id": cand.candidate_id if cand else None,
            "title": cand.artifact.title if cand else None,
            "genre": cand.genre if cand else None,
            "mechanic": cand.mechanic if cand else None,
            "total": round(ev.total, 3) if ev else None,
            "relative": round(ev.relative.subtotal, 3) if ev else None,
            "absolute": round(ev.absolute.subtotal, 3) if ev else None,
            "diversity": round(ev.diversity.score, 4) if ev else None,
            "passed": ev.passed if ev else False,
            "critical": list(ev.critical_violations) if ev else [],
            "threshold": round(self.standards.quality_threshold, 3),
            "epsilon": round(self.standards.epsilon, 4),
            "portfolio_size": len(self.portfolio),
            "tokens": cand.tokens_used if cand else 0,
            "elapsed_seconds": round(cand.generation_seconds, 4) if cand else None,
            "error": record.error,
        }
        if self.store is not None:
            self.store.append_run_log(log_record)
        if ev is not None and cand is not None:
            self.tracker.log_attempt(
                step=record.attempt,
                total_score=ev.total,
                passed=ev.passed,
                threshold=ev.threshold,
                epsilon=self.standards.epsilon,
                exploration=bool(mode and mode.is_exploration),
                elapsed_seconds=cand.generation_seconds,
                tokens_used=cand.tokens_used,
            )

    def _save_state(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save_state(
                self.standards, self.portfolio, self.counters(),
                window=self.window, quality=self.quality, selector=self.selector,
            )
        except Exception as e:
            logger.warning("Failed to save state: %s", e)

    def restore(self, snapshot: RunSnapshot) -> None:
        """Continue from a saved snapshot.

        Standards, counters, the rolling outcome window, lifetime quality
        stats and mode counts carry over. The portfolio starts empty: its
        games were already handed to the publisher, and the snapshot keeps
        only their summary records.
        """
        saved = AdaptiveStandards.from_state_dict(snapshot.standards)
        st = self.standards
        st.quality_threshold = saved.quality_threshold
        st.epsilon = saved.epsilon
        st.min_diversity_score = saved.min_diversity_score
        st.history[:] = saved.history

        for name in self.counters():
            setattr(self, name, snapshot.stats.get(name, 0))
        if snapshot.window:
            # keep this run's window size; replay the most recent outcomes into it
            self.window = OutcomeWindow.from_state_dict({**snapshot.window, "size": self.window.size})
        if snapshot.quality:
            self.quality = RunningStats.from_state_dict(snapshot.quality)
        self.selector.load_state_dict(snapshot.selector)
        logger.info(
            "Resumed: attempts=%d accepted=%d threshold=%.1f epsilon=%.3f window=%d",
            self.attempts, self.accepted, st.quality_threshold, st.epsilon, len(self.window),
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def counters(self) -> dict[str, int]:
        return {
            "attempts": self.attempts,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "failed": self.failed,
            "publish_failures": self.publish_failures,
        }

    def statistics(self) -> GenerationStatistics:
        return GenerationStatistics(
            attempts=self.attempts,
            generated=self.accepted + self.rejected,
            passed=self.accepted,
            rejected=self.rejected,
            failed=self.failed,
            rolling_pass_rate=self.window.pass_rate,
            rolling_samples=len(self.window),
            median_score=self.window.median_score,
            mean_score=self.window.mean_score,
            diversity_score=self.portfolio.statistics.diversity_score,
            exploration_count=self.selector.exploration_count,
            exploitation_count=self.selector.exploitation_count,
        )

    def progress(self, batch: Optional[BatchProgress] = None) -> ProgressReport:
        scored = self.accepted + self.rejected
        return ProgressReport(
            attempts=self.attempts,
            accepted=self.accepted,
            rejected=self.rejected,
            failed=self.failed,
            pass_rate=self.accepted / scored if scored else 0.0,
            rolling_pass_rate=self.window.pass_rate,
            average_quality=self.quality.mean,
            max_quality=self.quality.max if self.quality.max is not None else 0.0,
            min_quality=self.quality.min if self.quality.min is not None else 0.0,
            quality_threshold=self.standards.quality_threshold,
            epsilon=self.standards.epsilon,
            exploration_ratio=self.selector.exploration_ratio,
            portfolio_size=len(self.portfolio),
            diversity_score=self.portfolio.statistics.diversity_score,
            total_tokens=self.total_tokens,
            total_cost=self.total_cost,
            batch=batch,
        )

    def _emit_progress(self, batch: Optional[BatchProgress] = None) -> None:
        report = self.progress(batch)
        logger.info(
            "Progress: attempts=%d accepted=%d rejected=%d failed=%d pass=%.1f%% "
            "(rolling %.1f%%) avgQ=%.1f threshold=%.1f epsilon=%.3f explore=%.1f%% "
            "diversity=%.2f%s",
            report.attempts, report.accepted, report.rejected, report.failed,
            100 * report.pass_rate, 100 * report.rolling_pass_rate, report.average_quality,
            report.quality_threshold, report.epsilon, 100 * report.exploration_ratio,
            report.diversity_score,
            f" eta={batch.eta_seconds:.0f}s" if batch is not None else "",
        )
        if self.progress_callback is not None:
            self.progress_callback(report)

    def summary(
        self,
        mode: str,
        elapsed_seconds: float,
        run_report: Optional[RunReport] = None,
    ) -> RunSummary:
        scored = self.accepted + self.rejected
        return RunSummary(
            mode=mode,
            attempts=self.attempts,
            accepted=self.accepted,
            rejected=self.rejected,
            failed=self.failed,
            publish_failures=self.publish_failures,
            pass_rate=self.accepted / scored if scored else 0.0,
            average_quality=self.quality.mean,
            quality_threshold=self.standards.quality_threshold,
            epsilon=self.standards.epsilon,
            exploration_ratio=self.selector.exploration_ratio,
            portfolio_size=len(self.portfolio),
            diversity_score=self.portfolio.statistics.diversity_score,
            total_tokens=self.total_tokens,
            total_cost=self.total_cost,
            elapsed_seconds=elapsed_seconds,
            stopped=self._stop_requested,
            run_report=run_report,
        )

    def _finish_run(self, summary: RunSummary) -> RunSummary:
        self._save_state()
        self.tracker.log_summary(summary.as_dict())
        logger.info(
            "=== %s run complete: %d attempts, %d accepted, %d rejected, %d failed "
            "(pass %.1f%%), avgQ=%.1f, portfolio=%d, diversity=%.2f, $%.4f, %.1fs ===",
            summary.mode, summary.attempts, summary.accepted, summary.rejected,
            summary.failed, 100 * summary.pass_rate, summary.average_quality,
            summary.portfolio_size, summary.diversity_score, summary.total_cost,
            summary.elapsed_seconds,
        )
        logger.info("\n%s", self.controller.report())
        return summary

    # ------------------------------------------------------------------
    # Driver 1: sequential long-running loop
    # ------------------------------------------------------------------

    async def run_loop(
        self,
        target_accepted: int = AGFConfig.TARGET_COUNT,
        max_attempts: Optional[int] = None,
    ) -> RunSummary:
        """Generate one attempt at a time until ``target_accepted`` entries exist."""
        start = time.monotonic()
        logger.info(
            "Loop started: target=%d accepted, threshold=%.1f, epsilon=%.3f",
            target_accepted, self.standards.quality_threshold, self.standards.epsilon,
        )

        while not self._stop_requested and self.accepted < target_accepted:
            if max_attempts is not None and self.attempts >= max_attempts:
                logger.info("Attempt budget of %d exhausted", max_attempts)
                break

            before = self.attempts
            delay = self.attempt_delay
            mode: Optional[GenerationMode] = None
            try:
                mode = self.selector.select_mode(self.controller)
                try:
                    candidate = await self.generate_candidate(mode)
                except GenerationError as e:
                    self.record_failure(mode, f"[{e.stage}] {e}")
                else:
                    await self.accept_or_reject(candidate)
            except Exception as e:
                logger.exception("Unexpected error in generation loop; cooling down %.0fs",
                                 self.error_cooldown)
                if self.attempts == before:
                    self.record_failure(mode, f"unexpected: {type(e).__name__}: {e}")
                delay = self.error_cooldown

            if self.report_every > 0 and self.attempts % self.report_every == 0:
                self._emit_progress()

            if self._stop_requested or self.accepted >= target_accepted:
                break
            if delay > 0:
                await self._sleep(delay)

        return self._finish_run(self.summary("loop", time.monotonic() - start))

    # ------------------------------------------------------------------
    # Driver 2: concurrency-bounded batches
    # ------------------------------------------------------------------

    async def run_batches(
        self,
        total_count: int = AGFConfig.TARGET_COUNT,
        batch_size: int = AGFConfig.BATCH_SIZE,
        max_concurrency: int = AGFConfig.MAX_CONCURRENCY,
        inter_batch_delay: float = AGFConfig.INTER_BATCH_DELAY,
    ) -> RunSummary:
        """Run ``total_count`` attempts through the bounded executor."""
        start = time.monotonic()
        modes: dict[int, GenerationMode] = {}

        def make_task(index: int) -> BatchTask:
            mode = self.selector.select_mode(self.controller)
            modes[index] = mode
            return BatchTask(task_id=f"task-{index:05d}", index=index, request=mode)

        async def worker(task: BatchTask) -> Candidate:
            return await self.generate_candidate(task.request)

        async def on_batch(report: BatchReport) -> None:
            for result in report.results:
                mode = modes.pop(result.index, None)
                if result.success and result.candidate is not None:
                    await self.accept_or_reject(result.candidate)
                else:
                    self.record_failure(mode, result.error)
            self.tracker.log_batch(
                report.batch_number, report.success_count, report.fail_count,
                report.elapsed_seconds,
            )

        self._executor = ConcurrencyBoundedExecutor(
            worker, timeout_seconds=self.task_timeout or None, sleep=self._sleep,
        )
        if self._stop_requested:
            self._executor.stop()
        try:
            run = await self._executor.run_all(
                total_count=total_count,
                batch_size=batch_size,
                max_concurrency=max_concurrency,
                inter_batch_delay=inter_batch_delay,
                task_factory=make_task,
                on_batch=on_batch,
                progress_callback=self._emit_progress,
            )
        finally:
            self._executor = None

        return self._finish_run(self.summary("batch", time.monotonic() - start, run))
