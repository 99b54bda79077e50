"""AGF-v0.1 Adaptive Standards — Threshold / exploration-rate controller.

AdaptiveStandards is the per-run mutable state read by the scorer and the
mode selector. AdaptiveThresholdController is the only writer: every
change goes through ``adjust(statistics)``, is clamped into hard bounds,
and is appended to an audit history with a reason.

One adjust() call combines four corrections:

    pass rate   |rate - target| > tol  ->  threshold += ceil/floor((rate - target) * gain)
    median      median >= high         ->  threshold += 1
                median <= low          ->  threshold -= 2
    diversity   diversity < low        ->  min_diversity += 1, epsilon += 0.05
                diversity > high       ->  min_diversity -= 0.5
    epsilon     poor pass rate         ->  epsilon += boost
                no boost signal        ->  epsilon *= decay

The threshold delta of one call is limited to ``max_threshold_step`` and
every field gets at most one history record per call.

Usage:
    standards = AdaptiveStandards.from_config()
    controller = AdaptiveThresholdController(standards)
    if controller.is_due(completed_attempts):
        controller.adjust(statistics)
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Optional

from agf.config import AGFConfig
from agf.protocol import AdjustmentRecord, GenerationStatistics

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

@dataclass
class AdaptiveStandards:
    """Mutable per-run standards plus their append-only change log."""
    quality_threshold: float
    epsilon: float
    min_diversity_score: float = 10.0
    history: list[AdjustmentRecord] = field(default_factory=list)

    @classmethod
    def from_config(cls) -> AdaptiveStandards:
        return cls(
            quality_threshold=AGFConfig.QUALITY_THRESHOLD,
            epsilon=AGFConfig.EPSILON,
            min_diversity_score=AGFConfig.MIN_DIVERSITY_SCORE,
        )

    def state_dict(self) -> dict:
        return {
            "quality_threshold": self.quality_threshold,
            "epsilon": self.epsilon,
            "min_diversity_score": self.min_diversity_score,
            "history": [
                {
                    "field": r.field_name,
                    "old": r.old_value,
                    "new": r.new_value,
                    "reason": r.reason,
                    "timestamp": r.timestamp,
                }
                for r in self.history
            ],
        }

    @classmethod
    def from_state_dict(cls, d: dict) -> AdaptiveStandards:
        return cls(
            quality_threshold=d["quality_threshold"],
            epsilon=d["epsilon"],
            min_diversity_score=d.get("min_diversity_score", 10.0),
            history=[
                AdjustmentRecord(
                    field_name=h["field"],
                    old_value=h["old"],
                    new_value=h["new"],
                    reason=h["reason"],
                    timestamp=h["timestamp"],
                )
                for h in d.get("history", [])
            ],
        )


@dataclass(frozen=True)
class ControllerSettings:
    """Bounds and gains for AdaptiveThresholdController."""
    min_threshold: float = 40.0
    max_threshold: float = 80.0
    max_threshold_step: float = 3.0
    target_pass_rate: float = 0.35
    pass_rate_tolerance: float = 0.05
    pass_rate_gain: float = 20.0
    median_high: float = 76.5
    median_low: float = 42.5
    median_up_step: float = 1.0
    median_down_step: float = 2.0
    epsilon_min: float = 0.1
    epsilon_max: float = 0.5
    epsilon_decay: float = 0.95
    epsilon_boost: float = 0.1
    low_diversity: float = 0.3
    high_diversity: float = 0.6
    diversity_epsilon_boost: float = 0.05
    min_diversity_floor: float = 5.0
    min_diversity_ceiling: float = 20.0
    recalibration_interval: int = 10

    @classmethod
    def from_config(cls, total_max: float = 85.0) -> ControllerSettings:
        return cls(
            min_threshold=AGFConfig.MIN_THRESHOLD,
            max_threshold=AGFConfig.MAX_THRESHOLD,
            max_threshold_step=AGFConfig.MAX_THRESHOLD_STEP,
            target_pass_rate=AGFConfig.TARGET_PASS_RATE,
            pass_rate_tolerance=AGFConfig.PASS_RATE_TOLERANCE,
            pass_rate_gain=AGFConfig.PASS_RATE_GAIN,
            median_high=0.9 * total_max,
            median_low=0.5 * total_max,
            epsilon_min=AGFConfig.EPSILON_MIN,
            epsilon_max=AGFConfig.EPSILON_MAX,
            epsilon_decay=AGFConfig.EPSILON_DECAY,
            epsilon_boost=AGFConfig.EPSILON_BOOST,
            low_diversity=AGFConfig.LOW_DIVERSITY,
            high_diversity=AGFConfig.HIGH_DIVERSITY,
            diversity_epsilon_boost=AGFConfig.DIVERSITY_EPSILON_BOOST,
            min_diversity_floor=AGFConfig.MIN_DIVERSITY_FLOOR,
            min_diversity_ceiling=AGFConfig.WEIGHT_DIVERSITY,
            recalibration_interval=AGFConfig.RECALIBRATION_INTERVAL,
        )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class AdaptiveThresholdController:
    """Single mutation point for AdaptiveStandards.

    Attributes:
        standards: The state being tuned (shared by reference).
        settings: Bounds, gains and cadence.
        adjust_count: Number of adjust() calls so far.
    """

    def __init__(
        self,
        standards: AdaptiveStandards,
        settings: Optional[ControllerSettings] = None,
    ) -> None:
        self.settings = settings or ControllerSettings.from_config()
        s = self.settings
        if s.min_threshold > s.max_threshold:
            raise ValueError(
                f"min_threshold {s.min_threshold} exceeds max_threshold {s.max_threshold}"
            )
        if s.epsilon_min > s.epsilon_max:
            raise ValueError(f"epsilon_min {s.epsilon_min} exceeds epsilon_max {s.epsilon_max}")
        if s.recalibration_interval <= 0:
            raise ValueError(
                f"recalibration_interval must be positive, got {s.recalibration_interval}"
            )
        self.standards = standards
        self.adjust_count = 0

        # Initial values may come from the environment; pull them into range.
        threshold = _clamp(standards.quality_threshold, s.min_threshold, s.max_threshold)
        epsilon = _clamp(standards.epsilon, s.epsilon_min, s.epsilon_max)
        self._commit("quality_threshold", threshold, "clamped initial value into bounds")
        self._commit("epsilon", epsilon, "clamped initial value into bounds")

    @property
    def quality_threshold(self) -> float:
        return self.standards.quality_threshold

    @property
    def epsilon(self) -> float:
        return self.standards.epsilon

    def is_due(self, completed_attempts: int) -> bool:
        """True every ``recalibration_interval`` completed attempts."""
        return (
            completed_attempts > 0
            and completed_attempts % self.settings.recalibration_interval == 0
        )

    # ------------------------------------------------------------------
    # Adjustment
    # ------------------------------------------------------------------

    def adjust(self, stats: GenerationStatistics) -> list[AdjustmentRecord]:
        """Apply one bounded recalibration step; return the records appended."""
        s = self.settings
        st = self.standards
        start = len(st.history)
        self.adjust_count += 1

        threshold_delta = 0.0
        threshold_reasons: list[str] = []
        epsilon = st.epsilon
        epsilon_reasons: list[str] = []
        min_div = st.min_diversity_score
        min_div_reasons: list[str] = []

        if stats.rolling_samples > 0:
            deviation = stats.rolling_pass_rate - s.target_pass_rate
            if abs(deviation) > s.pass_rate_tolerance:
                raw = deviation * s.pass_rate_gain
                step = math.ceil(raw) if deviation > 0 else math.floor(raw)
                threshold_delta += step
                threshold_reasons.append(
                    f"pass rate {stats.rolling_pass_rate:.0%} vs target "
                    f"{s.target_pass_rate:.0%}"
                )

            if stats.median_score >= s.median_high:
                threshold_delta += s.median_up_step
                threshold_reasons.append(f"median score {stats.median_score:.1f} very high")
            elif stats.median_score <= s.median_low:
                threshold_delta -= s.median_down_step
                threshold_reasons.append(f"median score {stats.median_score:.1f} very low")

        boosted = False
        if stats.diversity_score < s.low_diversity:
            min_div += 1.0
            min_div_reasons.append(f"low portfolio diversity {stats.diversity_score:.2f}")
            epsilon += s.diversity_epsilon_boost
            epsilon_reasons.append(f"low portfolio diversity {stats.diversity_score:.2f}")
            boosted = True
        elif stats.diversity_score > s.high_diversity:
            min_div -= 0.5
            min_div_reasons.append(f"high portfolio diversity {stats.diversity_score:.2f}")

        if (stats.rolling_samples > 0
                and stats.rolling_pass_rate < s.target_pass_rate - 2 * s.pass_rate_tolerance):
            epsilon += s.epsilon_boost
            epsilon_reasons.append(f"poor recent pass rate {stats.rolling_pass_rate:.0%}")
            boosted = True

        if not boosted:
            epsilon *= s.epsilon_decay
            epsilon_reasons.append("decay")

        threshold_delta = _clamp(threshold_delta, -s.max_threshold_step, s.max_threshold_step)
        self._commit(
            "quality_threshold",
            _clamp(st.quality_threshold + threshold_delta, s.min_threshold, s.max_threshold),
            "; ".join(threshold_reasons),
        )
        self._commit(
            "epsilon",
            _clamp(epsilon, s.epsilon_min, s.epsilon_max),
            "; ".join(epsilon_reasons),
        )
        self._commit(
            "min_diversity_score",
            _clamp(min_div, s.min_diversity_floor, s.min_diversity_ceiling),
            "; ".join(min_div_reasons),
        )

        records = st.history[start:]
        for r in records:
            logger.info(
                "Standards: %s %.3f -> %.3f (%s)",
                r.field_name, r.old_value, r.new_value, r.reason,
            )
        return records

    def _commit(self, name: str, new_value: float, reason: str) -> None:
        old_value = getattr(self.standards, name)
        if math.isclose(old_value, new_value, rel_tol=0.0, abs_tol=1e-9):
            return
        setattr(self.standards, name, new_value)
        self.standards.history.append(AdjustmentRecord(
            field_name=name,
            old_value=old_value,
            new_value=new_value,
            reason=reason,
            timestamp=time.time(),
        ))

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def history_tail(self, limit: int = 10) -> list[AdjustmentRecord]:
        return self.standards.history[-limit:] if limit > 0 else []

    def report(self) -> str:
        st = self.standards
        s = self.settings
        lines = [
            "=== Adaptive Standards ===",
            f"Quality threshold: {st.quality_threshold:.1f} "
            f"[{s.min_threshold:.0f}, {s.max_threshold:.0f}]",
            f"Exploration rate:  {st.epsilon:.3f} [{s.epsilon_min:.2f}, {s.epsilon_max:.2f}]",
            f"Min diversity:     {st.min_diversity_score:.1f}",
            f"Target pass rate:  {s.target_pass_rate:.0%} +/- {s.pass_rate_tolerance:.0%}",
            f"Adjustments:       {len(st.history)} over {self.adjust_count} recalibrations",
        ]
        tail = self.history_tail(5)
        if tail:
            lines.append("Recent changes:")
            for r in tail:
                stamp = time.strftime("%H:%M:%S", time.localtime(r.timestamp))
                lines.append(
                    f"  [{stamp}] {r.field_name}: {r.old_value:.3f} -> "
                    f"{r.new_value:.3f} ({r.reason})"
                )
        return "\n".join(lines)
