"""Unit tests for agf.scorer — relative/absolute scoring and pass/fail."""

from __future__ import annotations

import numpy as np
import pytest

from agf.portfolio import Portfolio
from agf.protocol import FEATURE_DIM, FeatureVector, GameArtifact, GameRule
from agf.scorer import CRITICAL_NO_SUCCESS, QualityScorer, ScoringWeights
from agf.standards import AdaptiveStandards
from agf.util.diversity import DiversityAnalyzer
from agf.util.vectorizer import FeatureVectorizer


@pytest.fixture
def analyzer():
    return DiversityAnalyzer(distance_ceiling=5.0, neighbor_radius=1.5, density_saturation=10,
                             min_portfolio_for_gaps=10, coverage_floor=3, max_gap_areas=5)


@pytest.fixture
def weights():
    return ScoringWeights()


@pytest.fixture
def scorer(analyzer, weights):
    return QualityScorer(analyzer, weights)


@pytest.fixture
def portfolio(analyzer):
    return Portfolio(analyzer, total_max=85.0)


@pytest.fixture
def standards():
    return AdaptiveStandards(quality_threshold=60.0, epsilon=0.3, min_diversity_score=10.0)


def _candidate(make_candidate, artifact, vector=None):
    vec = vector if vector is not None else FeatureVectorizer().vectorize(artifact)
    return make_candidate(vector=vec, artifact=artifact)


# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------

class TestScoringWeights:
    def test_default_budgets(self, weights):
        assert weights.relative_max == pytest.approx(40.0)
        assert weights.absolute_max == pytest.approx(45.0)
        assert weights.total_max == pytest.approx(85.0)

    def test_custom_budgets(self):
        w = ScoringWeights(diversity=10.0, gap=5.0, balance=5.0, basic=10.0)
        assert w.relative_max == pytest.approx(20.0)
        assert w.absolute_max == pytest.approx(40.0)


# ---------------------------------------------------------------------------
# First artifact against an empty portfolio
# ---------------------------------------------------------------------------

class TestEmptyPortfolio:
    def test_relative_terms(self, scorer, portfolio, standards, make_candidate, artifact):
        ev = scorer.evaluate(_candidate(make_candidate, artifact), portfolio, standards)
        assert ev.relative.diversity == pytest.approx(20.0)
        assert ev.relative.density_penalty == pytest.approx(0.0)
        assert ev.relative.gap_filling == pytest.approx(10.0)
        assert ev.relative.balance == pytest.approx(5.0)
        assert ev.relative.subtotal == pytest.approx(35.0)

    def test_absolute_terms(self, scorer, portfolio, standards, make_candidate, artifact):
        ev = scorer.evaluate(_candidate(make_candidate, artifact), portfolio, standards)
        assert ev.absolute.basic_quality == pytest.approx(15.0)
        assert ev.absolute.playability == pytest.approx(15.0)
        assert ev.absolute.predicted_satisfaction == pytest.approx(14.5)
        assert ev.total == pytest.approx(79.5)
        assert ev.passed
        assert ev.critical_violations == ()

    def test_threshold_is_inclusive(self, scorer, portfolio, make_candidate, artifact):
        standards = AdaptiveStandards(quality_threshold=79.5, epsilon=0.3)
        ev = scorer.evaluate(_candidate(make_candidate, artifact), portfolio, standards)
        assert ev.threshold == pytest.approx(79.5)
        assert ev.passed


# ---------------------------------------------------------------------------
# Bounds and portfolio dependence
# ---------------------------------------------------------------------------

class TestBounds:
    def test_total_within_budget(self, scorer, portfolio, standards, make_candidate, make_evaluation,
                                 artifact):
        gen = np.random.default_rng(0)
        for _ in range(12):
            portfolio.append(make_candidate(vector=FeatureVector(gen.random(FEATURE_DIM))),
                             make_evaluation())
        for _ in range(20):
            ev = scorer.evaluate(
                make_candidate(vector=FeatureVector(gen.random(FEATURE_DIM)), artifact=artifact),
                portfolio, standards,
            )
            assert 0.0 <= ev.relative.subtotal <= 40.0
            assert 0.0 <= ev.absolute.subtotal <= 45.0
            assert 0.0 <= ev.total <= 85.0
            assert ev.total == pytest.approx(ev.relative.subtotal + ev.absolute.subtotal)

    def test_duplicates_score_lower(self, scorer, portfolio, standards, make_candidate,
                                    make_evaluation, artifact):
        first = _candidate(make_candidate, artifact)
        fresh = scorer.evaluate(first, portfolio, standards)
        for _ in range(10):
            portfolio.append(_candidate(make_candidate, artifact), make_evaluation())
        crowded = scorer.evaluate(_candidate(make_candidate, artifact), portfolio, standards)
        assert crowded.relative.diversity == pytest.approx(0.0)
        assert crowded.relative.density_penalty == pytest.approx(-10.0)
        assert crowded.total < fresh.total
        assert crowded.absolute.subtotal == pytest.approx(fresh.absolute.subtotal)

    def test_low_diversity_issue_is_advisory(self, scorer, portfolio, make_candidate,
                                             make_evaluation, artifact):
        for _ in range(3):
            portfolio.append(_candidate(make_candidate, artifact), make_evaluation())
        lenient = AdaptiveStandards(quality_threshold=40.0, epsilon=0.3, min_diversity_score=10.0)
        ev = scorer.evaluate(_candidate(make_candidate, artifact), portfolio, lenient)
        assert any("Below minimum diversity" in i for i in ev.issues)
        assert ev.passed


# ---------------------------------------------------------------------------
# Critical violations and malformed artifacts
# ---------------------------------------------------------------------------

class TestCriticalAndMalformed:
    def test_no_success_path_forces_fail(self, scorer, portfolio, make_candidate, make_artifact):
        broken = make_artifact(rules=(
            GameRule(conditions=("touch",), actions=("effect",)),
            GameRule(conditions=("time",), actions=("failure",)),
        ))
        standards = AdaptiveStandards(quality_threshold=0.0, epsilon=0.3)
        ev = scorer.evaluate(_candidate(make_candidate, broken), portfolio, standards)
        assert CRITICAL_NO_SUCCESS in ev.critical_violations
        assert ev.total > 0.0
        assert not ev.passed
        assert ev.recommendations[0] == "Add a reachable success condition"

    def test_missing_script(self, scorer, portfolio, standards, make_candidate, make_artifact):
        ev = scorer.evaluate(_candidate(make_candidate, make_artifact(rules=None)), portfolio, standards)
        assert ev.absolute.playability == 0.0
        assert ev.absolute.predicted_satisfaction == 0.0
        assert any("Missing script" in i for i in ev.issues)
        assert not ev.passed

    def test_empty_payload_does_not_raise(self, scorer, portfolio, standards, make_candidate):
        artifact = GameArtifact.from_dict({})
        ev = scorer.evaluate(_candidate(make_candidate, artifact), portfolio, standards)
        assert ev.absolute.basic_quality >= 0.0
        assert {"Missing settings", "Missing script", "Missing assets"} <= set(ev.issues)
        assert not ev.passed

    def test_counter_dead_end(self, scorer, make_artifact):
        dead_end = make_artifact(rules=(
            GameRule(conditions=("counter",), actions=("success",)),
            GameRule(conditions=("touch",), actions=("effect",)),
        ))
        issues: list[str] = []
        native = scorer.playability(dead_end, issues)
        assert any("dead end" in i for i in issues)
        assert native == pytest.approx(4.0 + 5.0 + 3.0)

    def test_unconditional_failure(self, scorer, make_artifact):
        doomed = make_artifact(rules=(
            GameRule(conditions=("touch",), actions=("success",)),
            GameRule(conditions=(), actions=("failure",)),
        ))
        issues: list[str] = []
        scorer.playability(doomed, issues)
        assert any("always-fail" in i for i in issues)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

class TestReporting:
    def test_recommendations_capped(self, scorer, portfolio, standards, make_candidate):
        ev = scorer.evaluate(_candidate(make_candidate, GameArtifact()), portfolio, standards)
        assert 1 <= len(ev.recommendations) <= 5

    def test_summary_mentions_diversity(self, scorer, portfolio, standards, make_candidate, artifact):
        ev = scorer.evaluate(_candidate(make_candidate, artifact), portfolio, standards)
        assert ev.summary.startswith("Diversity 1.00")
