"""Unit tests for agf.mode_selector — epsilon-greedy exploration choice."""

from __future__ import annotations

import random

import pytest

from agf.mode_selector import ModeSelector
from agf.portfolio import Portfolio
from agf.protocol import ModeKind
from agf.standards import AdaptiveStandards, AdaptiveThresholdController, ControllerSettings
from agf.util.diversity import DiversityAnalyzer


def _controller(epsilon: float) -> AdaptiveThresholdController:
    return AdaptiveThresholdController(
        AdaptiveStandards(quality_threshold=60.0, epsilon=epsilon),
        ControllerSettings(epsilon_min=0.0, epsilon_max=1.0),
    )


@pytest.fixture
def analyzer():
    return DiversityAnalyzer(min_portfolio_for_gaps=10)


@pytest.fixture
def selector(analyzer):
    return ModeSelector(analyzer, Portfolio(analyzer), rng=random.Random(0))


class TestSelectMode:
    def test_epsilon_zero_always_exploits(self, selector):
        ctrl = _controller(0.0)
        modes = [selector.select_mode(ctrl) for _ in range(50)]
        assert all(m.kind is ModeKind.EXPLOITATION for m in modes)
        assert all(m.target is None for m in modes)
        assert selector.exploration_count == 0
        assert selector.exploitation_count == 50

    def test_epsilon_one_always_explores(self, selector):
        ctrl = _controller(1.0)
        modes = [selector.select_mode(ctrl) for _ in range(50)]
        assert all(m.is_exploration for m in modes)
        assert selector.exploration_ratio == 1.0

    def test_exploration_targets_come_from_gaps(self, selector):
        ctrl = _controller(1.0)
        targets = {selector.select_mode(ctrl).target for _ in range(200)}
        assert targets <= {"genre:action", "genre:puzzle", "genre:timing"}
        assert len(targets) == 3

    def test_mode_records_epsilon(self, selector):
        mode = selector.select_mode(_controller(0.0))
        assert mode.epsilon == 0.0
        assert mode.reason

    def test_ratio_tracks_epsilon(self, analyzer):
        sel = ModeSelector(analyzer, Portfolio(analyzer), rng=random.Random(1))
        ctrl = _controller(0.3)
        for _ in range(2000):
            sel.select_mode(ctrl)
        assert sel.exploration_ratio == pytest.approx(0.3, abs=0.05)


class TestFallback:
    def test_fallback_when_no_gaps(self, make_candidate, make_evaluation):
        analyzer = DiversityAnalyzer(min_portfolio_for_gaps=0, coverage_floor=0)
        portfolio = Portfolio(analyzer)
        portfolio.append(make_candidate(), make_evaluation())
        sel = ModeSelector(analyzer, portfolio, fallback_targets=["genre:memory"], rng=random.Random(0))
        assert sel.select_mode(_controller(1.0)).target == "genre:memory"

    def test_empty_fallbacks_rejected(self, analyzer):
        with pytest.raises(ValueError):
            ModeSelector(analyzer, Portfolio(analyzer), fallback_targets=[])

    def test_state_dict(self, selector):
        selector.select_mode(_controller(1.0))
        selector.select_mode(_controller(0.0))
        assert selector.state_dict() == {"exploration_count": 1, "exploitation_count": 1}

    def test_load_state_dict(self, selector):
        selector.load_state_dict({"exploration_count": 3, "exploitation_count": 7})
        assert selector.exploration_ratio == pytest.approx(0.3)
        selector.select_mode(_controller(0.0))
        assert selector.exploitation_count == 8
