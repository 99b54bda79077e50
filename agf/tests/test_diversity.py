"""Unit tests for agf.util.diversity — novelty, density, gaps, balance."""

from __future__ import annotations

import math

import numpy as np
import pytest

from agf.portfolio import Portfolio
from agf.protocol import FEATURE_DIM, GENRES, FeatureVector
from agf.util.diversity import (
    DiversityAnalyzer,
    distances_to,
    euclidean_distance,
    mean_pairwise_distance,
    mechanic_prototype,
)


@pytest.fixture
def analyzer():
    return DiversityAnalyzer(
        distance_ceiling=5.0,
        neighbor_radius=1.5,
        density_saturation=10,
        min_portfolio_for_gaps=10,
        coverage_floor=3,
        max_gap_areas=5,
    )


@pytest.fixture
def portfolio(analyzer):
    return Portfolio(analyzer)


def _fill(portfolio, make_candidate, make_evaluation, vectors, genres=None, mechanic="tap-target"):
    genres = genres or ["action"] * len(vectors)
    for vec, genre in zip(vectors, genres):
        portfolio.append(make_candidate(vector=vec, genre=genre, mechanic=mechanic), make_evaluation())


def _random_vectors(n: int, seed: int = 0) -> list[FeatureVector]:
    gen = np.random.default_rng(seed)
    return [FeatureVector(gen.random(FEATURE_DIM)) for _ in range(n)]


# ---------------------------------------------------------------------------
# Distance helpers
# ---------------------------------------------------------------------------

class TestDistance:
    def test_identity_and_symmetry(self):
        a, b = _random_vectors(2)
        assert euclidean_distance(a, a) == 0.0
        assert euclidean_distance(a, b) == pytest.approx(euclidean_distance(b, a))

    def test_triangle_inequality(self):
        a, b, c = _random_vectors(3, seed=1)
        assert euclidean_distance(a, c) <= euclidean_distance(a, b) + euclidean_distance(b, c) + 1e-12

    def test_distances_to_empty(self):
        v = FeatureVector.neutral()
        assert distances_to(v, np.zeros((0, FEATURE_DIM))).shape == (0,)

    def test_mean_pairwise_matches_loop(self):
        vecs = _random_vectors(6, seed=2)
        matrix = np.vstack([v.values for v in vecs])
        expected = np.mean([
            euclidean_distance(vecs[i], vecs[j]) for i in range(6) for j in range(i + 1, 6)
        ])
        assert mean_pairwise_distance(matrix) == pytest.approx(expected)

    def test_mean_pairwise_single_row(self):
        assert mean_pairwise_distance(np.zeros((1, FEATURE_DIM))) == 0.0


# ---------------------------------------------------------------------------
# analyze
# ---------------------------------------------------------------------------

class TestAnalyze:
    def test_empty_portfolio_is_maximal(self, analyzer, portfolio):
        a = analyzer.analyze(FeatureVector.neutral(), portfolio, genre="action")
        assert a.score == 1.0
        assert a.density_penalty == 0.0
        assert a.gap_filling_score == 1.0
        assert a.balance_contribution == 0.0
        assert a.nearest_distance == analyzer.distance_ceiling

    def test_known_distance(self, analyzer, portfolio, make_candidate, make_evaluation):
        _fill(portfolio, make_candidate, make_evaluation, [FeatureVector(np.full(FEATURE_DIM, 0.5))])
        a = analyzer.analyze(FeatureVector(np.zeros(FEATURE_DIM)), portfolio, genre="action")
        expected = math.sqrt(FEATURE_DIM * 0.25)
        assert a.nearest_distance == pytest.approx(expected)
        assert a.score == pytest.approx(expected / 5.0)
        assert a.neighbor_count == 0

    def test_score_bounds(self, analyzer, portfolio, make_candidate, make_evaluation):
        _fill(portfolio, make_candidate, make_evaluation, _random_vectors(12))
        for v in _random_vectors(20, seed=9):
            a = analyzer.analyze(v, portfolio, genre="puzzle")
            assert 0.0 <= a.score <= 1.0
            assert 0.0 <= a.density_penalty <= 1.0
            assert -0.5 <= a.balance_contribution <= 0.5

    def test_duplicate_scores_lower_than_novel(self, analyzer, portfolio, make_candidate, make_evaluation):
        clustered = [FeatureVector(np.full(FEATURE_DIM, 0.2)) for _ in range(5)]
        _fill(portfolio, make_candidate, make_evaluation, clustered)
        near = analyzer.analyze(FeatureVector(np.full(FEATURE_DIM, 0.2)), portfolio, genre="action")
        far = analyzer.analyze(FeatureVector(np.full(FEATURE_DIM, 0.9)), portfolio, genre="action")
        assert near.score < far.score
        assert near.neighbor_count == 5
        assert near.density_penalty == pytest.approx(0.5)
        assert far.density_penalty == 0.0

    def test_density_saturates(self, analyzer, portfolio, make_candidate, make_evaluation):
        same = [FeatureVector.neutral() for _ in range(15)]
        _fill(portfolio, make_candidate, make_evaluation, same)
        a = analyzer.analyze(FeatureVector.neutral(), portfolio)
        assert a.density_penalty == 1.0

    def test_invalid_params(self):
        with pytest.raises(ValueError):
            DiversityAnalyzer(distance_ceiling=0)
        with pytest.raises(ValueError):
            DiversityAnalyzer(density_saturation=0)


# ---------------------------------------------------------------------------
# Gap areas
# ---------------------------------------------------------------------------

class TestGapAreas:
    def test_small_portfolio_generic_directions(self, analyzer, portfolio):
        gaps = analyzer.find_gap_areas(portfolio)
        assert [g.target for g in gaps] == ["genre:action", "genre:puzzle", "genre:timing"]
        assert gaps[0].priority >= gaps[1].priority >= gaps[2].priority

    def test_underrepresented_genres_first(self, analyzer, portfolio, make_candidate, make_evaluation):
        _fill(portfolio, make_candidate, make_evaluation, _random_vectors(10))
        gaps = analyzer.find_gap_areas(portfolio)
        assert len(gaps) == 5
        targets = [g.target for g in gaps]
        assert "genre:action" not in targets
        assert targets[0] == "genre:puzzle"
        assert all(g.priority == pytest.approx(1.0) for g in gaps)
        assert all(0.0 <= g.estimated_diversity <= 1.0 for g in gaps)

    def test_priority_decreases_with_count(self, make_candidate, make_evaluation):
        wide = DiversityAnalyzer(min_portfolio_for_gaps=10, coverage_floor=3, max_gap_areas=100)
        portfolio = Portfolio(wide)
        # every genre covered at least 3 times except rhythm (1) and memory (2)
        genres = []
        for g in GENRES:
            n = {"rhythm": 1, "memory": 2}.get(g, 3)
            genres += [g] * n
        _fill(portfolio, make_candidate, make_evaluation, _random_vectors(len(genres)), genres=genres)
        gaps = [g for g in wide.find_gap_areas(portfolio) if g.target.startswith("genre:")]
        assert len(gaps) == 2
        by_target = {g.target: g.priority for g in gaps}
        assert by_target.get("genre:rhythm") == pytest.approx(0.5)
        assert by_target.get("genre:memory") == pytest.approx(1.0 / 3.0)

    def test_gap_filling_neutral_without_gaps(self, analyzer):
        assert analyzer.gap_filling_score(FeatureVector.neutral(), []) == 0.5

    def test_gap_filling_prefers_close_vectors(self, analyzer):
        gaps = analyzer.find_gap_areas(Portfolio(analyzer))
        target = gaps[1].vector
        close = analyzer.gap_filling_score(target, gaps)
        far = analyzer.gap_filling_score(FeatureVector(np.zeros(FEATURE_DIM)), gaps)
        assert close == pytest.approx(gaps[1].priority)
        assert far < close

    def test_mechanic_prototype_hints(self):
        v = mechanic_prototype("tap-rhythm")
        assert v["uses_touch"] == 1.0
        assert v["uses_rhythm"] == 1.0


# ---------------------------------------------------------------------------
# Balance
# ---------------------------------------------------------------------------

class TestBalance:
    def test_empty_portfolio_zero(self, analyzer, portfolio):
        assert analyzer.balance_contribution("action", portfolio) == 0.0

    def test_missing_genre_improves_balance(self, analyzer, portfolio, make_candidate, make_evaluation):
        _fill(portfolio, make_candidate, make_evaluation, _random_vectors(10))
        assert analyzer.balance_contribution("puzzle", portfolio) > 0.0
        assert analyzer.balance_contribution("action", portfolio) <= 0.0

    def test_overweight_genre_skews_balanced_portfolio(self, analyzer, portfolio, make_candidate,
                                                       make_evaluation):
        _fill(portfolio, make_candidate, make_evaluation, _random_vectors(len(GENRES)), genres=list(GENRES))
        assert analyzer.balance_contribution("action", portfolio) < 0.0

    def test_unknown_genre_counts_as_other(self, analyzer, portfolio, make_candidate, make_evaluation):
        _fill(portfolio, make_candidate, make_evaluation, _random_vectors(len(GENRES)), genres=list(GENRES))
        assert analyzer.balance_contribution("shooter", portfolio) < 0.0


class TestPortfolioDiversity:
    def test_small_portfolio_is_one(self, analyzer):
        assert analyzer.portfolio_diversity(np.zeros((1, FEATURE_DIM))) == 1.0

    def test_identical_entries_zero(self, analyzer):
        assert analyzer.portfolio_diversity(np.full((4, FEATURE_DIM), 0.3)) == 0.0
