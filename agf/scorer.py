"""AGF-v0.1 Quality Scorer — Relative + absolute scoring with pass/fail.

    total = relative subtotal (portfolio-dependent, [0, RELATIVE_MAX])
          + absolute subtotal (artifact-only,      [0, ABSOLUTE_MAX])

Relative terms come from the DiversityAnalyzer and are scaled to their
point budgets:

    diversity * W1  -  density * W2  +  gap * W3  +  (balance + 0.5) * W4

Absolute terms are three sub-scores built from small deterministic checks,
each first computed on a 15-point scale and then rescaled to its budget:

    basic quality          file integrity 5, asset quality 5, rule consistency 5
    playability            clearable 7, difficulty fit 5, rule balance 3
    predicted satisfaction rule-based prediction 10, gameplay value 3, replay 2

A critical structural violation (no reachable success path) forces
``passed = False`` whatever the numeric total. Malformed artifacts never
raise: the affected sub-score is zeroed and an issue string is recorded.

Usage:
    scorer = QualityScorer(analyzer)
    evaluation = scorer.evaluate(candidate, portfolio, standards)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from agf.config import AGFConfig
from agf.protocol import (
    AbsoluteScore,
    Candidate,
    GameArtifact,
    QualityEvaluation,
    RelativeScore,
)
from agf.util.diversity import DiversityAnalyzer

if TYPE_CHECKING:
    from agf.portfolio import Portfolio
    from agf.standards import AdaptiveStandards

logger = logging.getLogger(__name__)

NATIVE_SUBSCORE_MAX: float = 15.0
MAX_PAYLOAD_BYTES: int = 8 * 1024 * 1024
MAX_RECOMMENDATIONS: int = 5
POPULAR_GENRES: frozenset[str] = frozenset({"action", "puzzle", "timing", "reflex"})

CRITICAL_NO_SUCCESS = "No reachable success path"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


@dataclass(frozen=True)
class ScoringWeights:
    """Point budgets for every scoring term."""
    diversity: float = 20.0
    density: float = 10.0
    gap: float = 10.0
    balance: float = 10.0
    basic: float = 15.0
    playability: float = 15.0
    satisfaction: float = 15.0

    @classmethod
    def from_config(cls) -> ScoringWeights:
        return cls(
            diversity=AGFConfig.WEIGHT_DIVERSITY,
            density=AGFConfig.WEIGHT_DENSITY,
            gap=AGFConfig.WEIGHT_GAP,
            balance=AGFConfig.WEIGHT_BALANCE,
            basic=AGFConfig.BUDGET_BASIC,
            playability=AGFConfig.BUDGET_PLAYABILITY,
            satisfaction=AGFConfig.BUDGET_SATISFACTION,
        )

    @property
    def relative_max(self) -> float:
        # density only subtracts, so it does not raise the ceiling
        return self.diversity + self.gap + self.balance

    @property
    def absolute_max(self) -> float:
        return self.basic + self.playability + self.satisfaction

    @property
    def total_max(self) -> float:
        return self.relative_max + self.absolute_max


class QualityScorer:
    """Pure scoring function over (candidate, portfolio, standards).

    Attributes:
        analyzer: DiversityAnalyzer used for the relative terms.
        weights: Point budgets.
    """

    def __init__(
        self,
        analyzer: Optional[DiversityAnalyzer] = None,
        weights: Optional[ScoringWeights] = None,
    ) -> None:
        self.analyzer = analyzer or DiversityAnalyzer()
        self.weights = weights or ScoringWeights.from_config()

    def evaluate(
        self,
        candidate: Candidate,
        portfolio: Portfolio,
        standards: AdaptiveStandards,
    ) -> QualityEvaluation:
        w = self.weights
        artifact = candidate.artifact
        issues: list[str] = []
        critical: list[str] = []

        # --- relative ---------------------------------------------------
        analysis = self.analyzer.analyze(candidate.vector, portfolio, genre=candidate.genre)
        diversity_pts = analysis.score * w.diversity
        density_pts = -analysis.density_penalty * w.density
        gap_pts = analysis.gap_filling_score * w.gap
        balance_pts = (analysis.balance_contribution + 0.5) * w.balance
        relative = RelativeScore(
            diversity=diversity_pts,
            density_penalty=density_pts,
            gap_filling=gap_pts,
            balance=balance_pts,
            subtotal=_clamp(diversity_pts + density_pts + gap_pts + balance_pts, 0.0, w.relative_max),
        )
        if diversity_pts < standards.min_diversity_score:
            issues.append(
                f"Below minimum diversity standard ({diversity_pts:.1f} < "
                f"{standards.min_diversity_score:.1f})"
            )

        # --- absolute ---------------------------------------------------
        basic = self.basic_quality(artifact, issues)
        if artifact.rules is None:
            issues.append("Missing script: playability and satisfaction not assessable")
            playability = 0.0
            satisfaction = 0.0
        else:
            playability = self.playability(artifact, issues)
            satisfaction = self.predicted_satisfaction(artifact, candidate.genre)
        if not artifact.has_success_path:
            critical.append(CRITICAL_NO_SUCCESS)

        basic = _clamp(basic * w.basic / NATIVE_SUBSCORE_MAX, 0.0, w.basic)
        playability = _clamp(playability * w.playability / NATIVE_SUBSCORE_MAX, 0.0, w.playability)
        satisfaction = _clamp(
            satisfaction * w.satisfaction / NATIVE_SUBSCORE_MAX, 0.0, w.satisfaction,
        )
        absolute = AbsoluteScore(
            basic_quality=basic,
            playability=playability,
            predicted_satisfaction=satisfaction,
            subtotal=_clamp(basic + playability + satisfaction, 0.0, w.absolute_max),
        )

        total = _clamp(relative.subtotal + absolute.subtotal, 0.0, w.total_max)
        threshold = standards.quality_threshold
        passed = total >= threshold and not critical

        return QualityEvaluation(
            relative=relative,
            absolute=absolute,
            total=total,
            threshold=threshold,
            passed=passed,
            diversity=analysis,
            critical_violations=tuple(critical),
            issues=tuple(critical + issues),
            recommendations=tuple(self.recommendations(total, relative, absolute, critical)),
            summary=self.analyzer.describe(analysis),
        )

    # ------------------------------------------------------------------
    # Absolute sub-scores (native 15-point scale)
    # ------------------------------------------------------------------

    def basic_quality(self, artifact: GameArtifact, issues: list[str]) -> float:
        integrity = 5.0
        for name in artifact.missing_fields:
            integrity -= 2.0
            issues.append(f"Missing {name}")
        if artifact.rules is not None and artifact.rule_count == 0:
            integrity -= 3.0
            issues.append("Script has no rules")

        if artifact.objects is None:
            assets = 0.0
        else:
            assets = 5.0
            if not artifact.has_background:
                assets -= 2.0
                issues.append("No background")
            if artifact.object_count == 0:
                assets -= 2.0
                issues.append("No objects")
            if artifact.payload_bytes > MAX_PAYLOAD_BYTES:
                assets -= 1.0
                issues.append(f"Payload too large ({artifact.payload_bytes} bytes)")

        consistency_issues: list[str] = []
        if artifact.rules is not None:
            if not artifact.has_success_path:
                consistency_issues.append("No win condition")
            if artifact.rule_count > 2 and not artifact.has_failure_path:
                consistency_issues.append("No game over condition for complex game")
        for obj in artifact.objects or ():
            if not obj.object_id:
                consistency_issues.append("Object with empty id")
        consistency_issues = consistency_issues[:5]
        issues.extend(consistency_issues)
        consistency = 5.0 - 0.5 * len(consistency_issues)

        return max(0.0, integrity) + max(0.0, assets) + max(0.0, consistency)

    def playability(self, artifact: GameArtifact, issues: list[str]) -> float:
        n = artifact.rule_count

        clearable = 7.0
        if not artifact.has_success_path:
            clearable = 0.0
        else:
            success_rules = [r for r in artifact.rules or () if "success" in r.actions]
            if (all("counter" in r.conditions for r in success_rules)
                    and not artifact.rules_with_action("counter")):
                clearable -= 3.0
                issues.append("Counter win condition never incremented (dead end)")
        if any("failure" in r.actions and not r.conditions for r in artifact.rules or ()):
            clearable -= 4.0
            issues.append("Unconditional failure rule (always-fail state)")

        difficulty = 5.0
        if n < 2:
            difficulty -= 2.0
        elif n > 15:
            difficulty -= 1.0
        if artifact.rules_with_condition("time") > 5:
            difficulty -= 1.0

        balance = 3.0
        if len(artifact.condition_types) <= 1:
            balance -= 1.0
        if len(artifact.action_types) <= 1:
            balance -= 1.0

        return max(0.0, clearable) + max(0.0, difficulty) + max(0.0, balance)

    def predicted_satisfaction(self, artifact: GameArtifact, genre: str) -> float:
        n = artifact.rule_count

        prediction = 5.0
        if 3 <= n <= 8:
            prediction += 2.0
        elif n < 2 or n > 12:
            prediction -= 1.0
        if genre in POPULAR_GENRES:
            prediction += 1.0
        if 2 <= artifact.object_count <= 5:
            prediction += 1.0
        if "time" in artifact.condition_types:
            prediction += 1.0

        gameplay = 1.5
        if len(artifact.condition_types) >= 2:
            gameplay += 0.5
        if {"counter", "effect"} & artifact.action_types:
            gameplay += 0.5
        if n >= 4:
            gameplay += 0.5

        replay = 1.0
        if "randomAction" in artifact.action_types or "random" in artifact.condition_types:
            replay += 0.5
        if "counter" in artifact.action_types:
            replay += 0.5

        return (_clamp(prediction, 0.0, 10.0) + _clamp(gameplay, 0.0, 3.0)
                + _clamp(replay, 0.0, 2.0))

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def recommendations(
        self,
        total: float,
        relative: RelativeScore,
        absolute: AbsoluteScore,
        critical: list[str],
    ) -> list[str]:
        w = self.weights
        out: list[str] = []
        if critical:
            out.append("Add a reachable success condition")
        if total < 0.9 * w.total_max:
            out.append("Overall quality needs improvement")
        if relative.subtotal < 0.5 * w.relative_max:
            out.append("Increase diversity - explore new game mechanics")
        if relative.diversity < 0.5 * w.diversity:
            out.append("Too similar to existing games")
        if relative.density_penalty < -0.5 * w.density:
            out.append("Avoid overcrowded game space")
        if absolute.basic_quality < 2.0 / 3.0 * w.basic:
            out.append("Fix file integrity and asset quality issues")
        if absolute.playability < 2.0 / 3.0 * w.playability:
            out.append("Ensure game is clearable and balanced")
        if absolute.predicted_satisfaction < 2.0 / 3.0 * w.satisfaction:
            out.append("Enhance gameplay value and replayability")
        if not out:
            out.append("Excellent quality - ready for publication")
        return out[:MAX_RECOMMENDATIONS]
