"""AGF-v0.1 Rolling Statistics — Welford accumulator + bounded outcome window.

RunningStats tracks lifetime mean/variance of total quality scores in O(1)
per sample. OutcomeWindow keeps the last N (score, passed) pairs so the
threshold controller reacts to recent behaviour only.

Usage:
    stats = RunningStats()
    stats.update(82.5)

    window = OutcomeWindow(size=50)
    window.record(82.5, passed=True)
    window.pass_rate, window.median_score
"""

from __future__ import annotations

from collections import deque
from typing import Optional

import numpy as np


class RunningStats:
    """Welford's online algorithm for a scalar stream.

    Attributes:
        count: Number of samples seen so far.
        mean: Running mean.
        m2: Running sum of squared deviations.
        min: Smallest sample seen (None before the first update).
        max: Largest sample seen (None before the first update).
    """

    __slots__ = ("count", "mean", "m2", "min", "max")

    def __init__(self) -> None:
        self.count: int = 0
        self.mean: float = 0.0
        self.m2: float = 0.0
        self.min: Optional[float] = None
        self.max: Optional[float] = None

    @property
    def variance(self) -> float:
        """Population variance; 0.0 with fewer than 2 samples."""
        if self.count < 2:
            return 0.0
        return self.m2 / self.count

    @property
    def std(self) -> float:
        return float(np.sqrt(self.variance))

    def update(self, x: float) -> None:
        x = float(x)
        self.count += 1
        delta = x - self.mean
        self.mean += delta / self.count
        self.m2 += delta * (x - self.mean)
        self.min = x if self.min is None else min(self.min, x)
        self.max = x if self.max is None else max(self.max, x)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def state_dict(self) -> dict:
        return {
            "count": self.count,
            "mean": self.mean,
            "m2": self.m2,
            "min": self.min,
            "max": self.max,
        }

    @classmethod
    def from_state_dict(cls, d: dict) -> RunningStats:
        stats = cls()
        stats.count = d["count"]
        stats.mean = d["mean"]
        stats.m2 = d["m2"]
        stats.min = d.get("min")
        stats.max = d.get("max")
        return stats

    def __repr__(self) -> str:
        return f"RunningStats(count={self.count}, mean={self.mean:.2f}, std={self.std:.2f})"


class OutcomeWindow:
    """Fixed-size FIFO of recent (total score, passed) outcomes.

    Only scored attempts belong here; generation failures never reach the
    scorer and would otherwise drag the pass rate toward zero.
    """

    def __init__(self, size: int = 50) -> None:
        if size <= 0:
            raise ValueError(f"size must be positive, got {size}")
        self.size = size
        self._scores: deque[float] = deque(maxlen=size)
        self._passed: deque[bool] = deque(maxlen=size)

    def __len__(self) -> int:
        return len(self._scores)

    def record(self, score: float, passed: bool) -> None:
        self._scores.append(float(score))
        self._passed.append(bool(passed))

    @property
    def pass_rate(self) -> float:
        if not self._passed:
            return 0.0
        return sum(self._passed) / len(self._passed)

    @property
    def median_score(self) -> float:
        if not self._scores:
            return 0.0
        return float(np.median(np.fromiter(self._scores, dtype=np.float64)))

    @property
    def mean_score(self) -> float:
        if not self._scores:
            return 0.0
        return float(np.mean(np.fromiter(self._scores, dtype=np.float64)))

    def state_dict(self) -> dict:
        return {
            "size": self.size,
            "scores": list(self._scores),
            "passed": list(self._passed),
        }

    @classmethod
    def from_state_dict(cls, d: dict) -> OutcomeWindow:
        window = cls(size=d["size"])
        for score, passed in zip(d["scores"], d["passed"]):
            window.record(score, passed)
        return window
