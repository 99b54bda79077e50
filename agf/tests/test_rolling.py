"""Unit tests for agf.util.rolling — Welford stats and the outcome window."""

from __future__ import annotations

import numpy as np
import pytest

from agf.util.rolling import OutcomeWindow, RunningStats


class TestRunningStats:
    def test_empty(self):
        s = RunningStats()
        assert s.count == 0
        assert s.variance == 0.0
        assert s.min is None and s.max is None

    def test_matches_numpy(self, rng):
        xs = rng.normal(60.0, 8.0, size=200)
        s = RunningStats()
        for x in xs:
            s.update(x)
        assert s.mean == pytest.approx(float(np.mean(xs)))
        assert s.variance == pytest.approx(float(np.var(xs)))
        assert s.min == pytest.approx(float(xs.min()))
        assert s.max == pytest.approx(float(xs.max()))

    def test_state_round_trip(self):
        s = RunningStats()
        for x in (1.0, 2.0, 4.0):
            s.update(x)
        r = RunningStats.from_state_dict(s.state_dict())
        assert r.mean == pytest.approx(s.mean)
        assert r.variance == pytest.approx(s.variance)


class TestOutcomeWindow:
    def test_empty(self):
        w = OutcomeWindow(size=5)
        assert len(w) == 0
        assert w.pass_rate == 0.0
        assert w.median_score == 0.0

    def test_bounded(self):
        w = OutcomeWindow(size=3)
        for score, passed in ((10, False), (20, False), (30, True), (40, True)):
            w.record(score, passed)
        assert len(w) == 3
        assert w.pass_rate == pytest.approx(2 / 3)
        assert w.median_score == pytest.approx(30.0)
        assert w.mean_score == pytest.approx(30.0)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            OutcomeWindow(size=0)

    def test_state_round_trip(self):
        w = OutcomeWindow(size=4)
        for score in (40.0, 50.0, 55.0):
            w.record(score, False)
        w.record(75.0, True)
        w.record(80.0, True)
        r = OutcomeWindow.from_state_dict(w.state_dict())
        assert len(r) == 4
        assert r.size == 4
        assert r.pass_rate == pytest.approx(0.5)
        assert r.median_score == pytest.approx(65.0)
