"""Unit tests for agf.state and agf.tracking — local fallbacks and no-ops."""

from __future__ import annotations

import json

import numpy as np
import pytest

from agf.mode_selector import ModeSelector
from agf.portfolio import Portfolio
from agf.protocol import AttemptOutcome
from agf.standards import AdaptiveStandards
from agf.state import StateStore, json_dumps
from agf.tracking import AGFTracker
from agf.util.diversity import DiversityAnalyzer
from agf.util.rolling import OutcomeWindow, RunningStats


@pytest.fixture
def store(tmp_path):
    return StateStore(redis_url="", log_dir=str(tmp_path), use_redis=False)


class TestJsonEncoding:
    def test_numpy_and_enums(self):
        text = json_dumps({
            "arr": np.arange(3),
            "f": np.float64(0.5),
            "i": np.int64(7),
            "b": np.bool_(True),
            "outcome": AttemptOutcome.ACCEPTED,
        })
        assert json.loads(text) == {
            "arr": [0, 1, 2], "f": 0.5, "i": 7, "b": True, "outcome": "ACCEPTED",
        }


class TestStateStoreLocal:
    def test_no_redis(self, store):
        assert not store.has_redis

    def test_load_without_snapshot(self, store):
        assert store.load_state() is None

    def test_snapshot_round_trip(self, store, make_candidate, make_evaluation):
        standards = AdaptiveStandards(quality_threshold=64.0, epsilon=0.2)
        portfolio = Portfolio()
        portfolio.append(make_candidate(), make_evaluation(total=71.0))
        written = store.save_state(standards, portfolio, {"attempts": 12, "accepted": 1})

        snap = store.load_state()
        assert snap.standards["quality_threshold"] == 64.0
        assert snap.portfolio[0]["total"] == 71.0
        assert snap.stats == {"attempts": 12, "accepted": 1}
        assert snap.saved_at == written.saved_at
        assert store.snapshot_path.exists()
        assert not store.snapshot_path.with_suffix(".pkl.tmp").exists()

    def test_snapshot_carries_rolling_state(self, store):
        window = OutcomeWindow(size=5)
        quality = RunningStats()
        for score, passed in ((55.0, False), (68.0, True), (71.0, True)):
            window.record(score, passed)
            quality.update(score)
        selector = ModeSelector(DiversityAnalyzer(), Portfolio())
        selector.exploration_count, selector.exploitation_count = 1, 2

        store.save_state(AdaptiveStandards(quality_threshold=60.0, epsilon=0.3), Portfolio(),
                         {"attempts": 3}, window=window, quality=quality, selector=selector)
        snap = store.load_state()
        assert OutcomeWindow.from_state_dict(snap.window).pass_rate == pytest.approx(2 / 3)
        assert RunningStats.from_state_dict(snap.quality).mean == pytest.approx(quality.mean)
        assert snap.selector == {"exploration_count": 1, "exploitation_count": 2}

    def test_snapshot_without_rolling_state(self, store):
        store.save_state(AdaptiveStandards(quality_threshold=60.0, epsilon=0.3), Portfolio(), {})
        snap = store.load_state()
        assert snap.window == {} and snap.quality == {} and snap.selector == {}

    def test_corrupt_snapshot(self, store):
        store.snapshot_path.write_bytes(b"not a pickle")
        assert store.load_state() is None

    def test_run_log_jsonl(self, store):
        for i in range(5):
            store.append_run_log({"attempt": i + 1, "outcome": AttemptOutcome.REJECTED})
        assert len(list(store.iter_run_log())) == 5
        history = store.get_run_history(count=2)
        assert [r["attempt"] for r in history] == [4, 5]
        assert history[0]["outcome"] == "REJECTED"

    def test_empty_run_log(self, store):
        assert store.get_run_history() == []

    def test_unreachable_redis_falls_back(self, tmp_path):
        # nothing listens on port 1; connection fails and the store degrades
        s = StateStore(redis_url="redis://127.0.0.1:1/0", log_dir=str(tmp_path), use_redis=True)
        assert not s.has_redis
        s.append_run_log({"attempt": 1})
        assert s.runs_path.exists()


class TestTrackerDisabled:
    def test_noop_when_disabled(self):
        tracker = AGFTracker(enabled=False)
        assert not tracker.enabled
        tracker.start_run("test", {"a": 1})
        tracker.log_attempt(step=1, total_score=70.0, passed=True, threshold=60.0, epsilon=0.3)
        tracker.log_batch(1, 5, 0, 1.0)
        tracker.log_summary({"accepted": 3})
        tracker.end_run()
        assert repr(tracker) == "AGFTracker(disabled)"

    def test_run_context_reraises(self):
        tracker = AGFTracker(enabled=False)
        with pytest.raises(RuntimeError):
            with tracker.run("ctx"):
                raise RuntimeError("inside run")

    def test_no_uri_disables(self):
        assert not AGFTracker(tracking_uri="", enabled=True).enabled
