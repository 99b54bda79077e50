"""AGF-v0.1 Portfolio — Append-only collection of accepted games.

Entries are appended only by the pipeline's accept path and never mutated
or removed. Everything else (the vector matrix, category counts,
PortfolioStatistics) is derived from the entry sequence and cached; the
caches are dropped on every append and can always be rebuilt with
``compute_statistics()``.

Usage:
    portfolio = Portfolio()
    entry = portfolio.append(candidate, evaluation)
    portfolio.statistics.genre_counts
    portfolio.vectors            # (n, FEATURE_DIM) read-only matrix
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Iterator, Optional

import numpy as np
from numpy.typing import NDArray

from agf.protocol import (
    DIFFICULTY_LEVELS,
    FEATURE_DIM,
    Candidate,
    PortfolioEntry,
    PortfolioStatistics,
    QualityEvaluation,
)
from agf.util.diversity import DiversityAnalyzer
from agf.util.rolling import RunningStats

logger = logging.getLogger(__name__)

# Quality buckets as fractions of the maximum total score
QUALITY_BUCKETS: tuple[tuple[str, float], ...] = (
    ("excellent", 0.90),
    ("good", 0.80),
    ("acceptable", 0.70),
    ("poor", 0.0),
)
BALANCE_RATIO: float = 3.0          # max category count <= ratio * min count
COVERAGE_MIN_GENRES: int = 5
COVERAGE_MIN_MECHANICS: int = 5


class Portfolio:
    """Ordered, append-only set of PortfolioEntry objects.

    Attributes:
        analyzer: Used for the aggregate diversity score.
        total_max: Maximum possible total score, for quality buckets.
    """

    def __init__(
        self,
        analyzer: Optional[DiversityAnalyzer] = None,
        total_max: float = 85.0,
    ) -> None:
        self.analyzer = analyzer or DiversityAnalyzer()
        self.total_max = total_max
        self._entries: list[PortfolioEntry] = []
        # rows [0, len) hold the accepted vectors; capacity doubles on demand
        self._buffer: NDArray[np.float64] = np.zeros((0, FEATURE_DIM), dtype=np.float64)
        self._counts: dict[str, Counter[str]] = {}
        self._statistics: Optional[PortfolioStatistics] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PortfolioEntry]:
        return iter(self._entries)

    @property
    def entries(self) -> tuple[PortfolioEntry, ...]:
        return tuple(self._entries)

    def append(self, candidate: Candidate, evaluation: QualityEvaluation) -> PortfolioEntry:
        """Promote an accepted candidate. The only mutation point."""
        entry = PortfolioEntry(
            candidate=candidate,
            evaluation=evaluation,
            sequence=len(self._entries),
            accepted_at=time.time(),
        )
        self._entries.append(entry)
        self._append_row(candidate.vector.values)
        self._counts = {}
        self._statistics = None
        logger.debug(
            "Portfolio += %s (%s/%s) total=%.1f size=%d",
            candidate.candidate_id, candidate.genre, candidate.mechanic,
            evaluation.total, len(self._entries),
        )
        return entry

    # ------------------------------------------------------------------
    # Derived views (cached)
    # ------------------------------------------------------------------

    def _append_row(self, values: NDArray[np.float64]) -> None:
        n = len(self._entries)
        if n > self._buffer.shape[0]:
            grown = np.zeros((max(2 * self._buffer.shape[0], 16), FEATURE_DIM), dtype=np.float64)
            grown[:n - 1] = self._buffer[:n - 1]
            self._buffer = grown
        self._buffer[n - 1] = values

    @property
    def vectors(self) -> NDArray[np.float64]:
        matrix = self._buffer[:len(self._entries)]
        matrix.setflags(write=False)
        return matrix

    def category_counts(self, dimension: str) -> Counter[str]:
        """Counts by ``genre``, ``mechanic`` or ``difficulty``."""
        if dimension not in self._counts:
            self._counts[dimension] = Counter(
                self._category(e.candidate, dimension) for e in self._entries
            )
        return self._counts[dimension]

    @staticmethod
    def _category(candidate: Candidate, dimension: str) -> str:
        if dimension == "genre":
            return candidate.genre
        if dimension == "mechanic":
            return candidate.mechanic
        if dimension == "difficulty":
            level = str(candidate.artifact.difficulty or "").lower()
            return level if level in DIFFICULTY_LEVELS else "normal"
        raise ValueError(f"unknown category dimension: {dimension!r}")

    @property
    def statistics(self) -> PortfolioStatistics:
        if self._statistics is None:
            self._statistics = self.compute_statistics()
        return self._statistics

    def compute_statistics(self) -> PortfolioStatistics:
        """Rebuild statistics from the entry sequence alone."""
        genres: Counter[str] = Counter(self._category(e.candidate, "genre") for e in self._entries)
        mechanics: Counter[str] = Counter(self._category(e.candidate, "mechanic") for e in self._entries)
        difficulties: Counter[str] = Counter(
            self._category(e.candidate, "difficulty") for e in self._entries
        )

        quality = RunningStats()
        distribution = {name: 0 for name, _ in QUALITY_BUCKETS}
        for e in self._entries:
            quality.update(e.evaluation.total)
            fraction = e.evaluation.total / self.total_max if self.total_max else 0.0
            for name, floor in QUALITY_BUCKETS:
                if fraction >= floor:
                    distribution[name] += 1
                    break

        if self._entries:
            matrix = np.vstack([e.candidate.vector.values for e in self._entries])
        else:
            matrix = np.zeros((0, FEATURE_DIM), dtype=np.float64)

        present = [c for c in genres.values() if c > 0]
        is_balanced = not present or max(present) <= BALANCE_RATIO * min(present)
        has_coverage = (
            len(genres) >= COVERAGE_MIN_GENRES and len(mechanics) >= COVERAGE_MIN_MECHANICS
        )
        return PortfolioStatistics(
            total=len(self._entries),
            genre_counts=dict(genres),
            mechanic_counts=dict(mechanics),
            difficulty_counts=dict(difficulties),
            quality_mean=quality.mean,
            quality_variance=quality.variance,
            diversity_score=self.analyzer.portfolio_diversity(matrix),
            quality_distribution=distribution,
            is_balanced=is_balanced,
            has_coverage=has_coverage,
            needs_exploration=not (is_balanced and has_coverage),
        )

    def to_records(self) -> list[dict]:
        """JSON-safe summary of every entry, in acceptance order."""
        return [
            {
                "sequence": e.sequence,
                "candidate_id": e.candidate.candidate_id,
                "title": e.candidate.artifact.title,
                "genre": e.candidate.genre,
                "mechanic": e.candidate.mechanic,
                "total": e.evaluation.total,
                "threshold": e.evaluation.threshold,
                "accepted_at": e.accepted_at,
                "vector": e.candidate.vector.values.tolist(),
            }
            for e in self._entries
        ]

    def __repr__(self) -> str:
        return f"Portfolio(size={len(self._entries)})"
