"""AGF-v0.1 Diversity Analyzer — Portfolio-relative novelty scoring.

Scores a candidate FeatureVector against the accepted portfolio:

    score   = 0.6 * min(nearest / C, 1) + 0.4 * min(average / C, 1)
    density = min(#neighbors within radius / saturation, 1)
    gap     = (1 - min(d_gap / C, 1)) * priority(gap)   for the nearest gap area
    balance = change in genre-distribution skew, clamped to [-0.5, 0.5]

where C is a fixed distance ceiling. An empty portfolio yields the maximal
result so the first accepted artifact is never penalized.

Gap detection flags genres and mechanics whose accepted count is below a
coverage floor; each gap carries a prototype vector so "distance to a gap"
is well defined. Small portfolios get three generic directions instead.

Usage:
    analyzer = DiversityAnalyzer()
    analysis = analyzer.analyze(vec, portfolio, genre="puzzle")
    gaps = analyzer.find_gap_areas(portfolio)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from agf.config import AGFConfig
from agf.protocol import (
    DEFAULT_CATEGORY,
    GENRES,
    MECHANICS,
    DiversityAnalysis,
    FeatureVector,
    GapArea,
    normalize_category,
)

if TYPE_CHECKING:
    from agf.portfolio import Portfolio


NEAREST_WEIGHT: float = 0.6
AVERAGE_WEIGHT: float = 0.4
BALANCE_BOUND: float = 0.5
NEUTRAL_GAP_SCORE: float = 0.5


# ---------------------------------------------------------------------------
# Gap prototypes (partial feature mappings; the rest stays neutral)
# ---------------------------------------------------------------------------

GENERIC_DIRECTIONS: tuple[tuple[str, str, float, Mapping[str, float]], ...] = (
    ("Simple action games", "genre:action", 1.0, {
        "complexity": 0.2, "rule_count": 0.2, "accessibility": 0.9,
        "uses_touch": 1.0, "uses_reflex": 1.0,
    }),
    ("Complex puzzle games", "genre:puzzle", 0.9, {
        "complexity": 0.8, "rule_count": 0.6, "pace": 0.2,
        "uses_strategy": 1.0, "uses_pattern": 1.0,
    }),
    ("Reflex-based timing games", "genre:timing", 0.8, {
        "pace": 0.8, "tension": 0.7,
        "uses_timing": 1.0, "uses_reflex": 1.0, "uses_reaction": 1.0,
    }),
)

GENRE_PROTOTYPES: dict[str, Mapping[str, float]] = {
    "action": {"pace": 0.7, "tension": 0.6, "uses_touch": 1.0, "uses_reflex": 1.0},
    "puzzle": {"complexity": 0.8, "pace": 0.2, "uses_strategy": 1.0, "uses_pattern": 1.0},
    "rhythm": {"pace": 0.8, "uses_timing": 1.0, "uses_rhythm": 1.0},
    "reflex": {"pace": 0.9, "uses_reflex": 1.0, "uses_reaction": 1.0},
    "memory": {"learning_curve": 0.6, "uses_memory": 1.0, "uses_pattern": 1.0},
    "arcade": {"replayability": 0.7, "feedback_loop": 0.6, "uses_touch": 1.0, "uses_spatial": 1.0},
    "casual": {"accessibility": 0.9, "complexity": 0.2, "uses_touch": 1.0},
    "timing": {"pace": 0.6, "uses_timing": 1.0, "uses_precision": 1.0},
}

_MECHANIC_HINTS: tuple[tuple[str, Mapping[str, float]], ...] = (
    ("tap", {"uses_touch": 1.0}),
    ("rhythm", {"uses_timing": 1.0, "uses_rhythm": 1.0}),
    ("memory", {"uses_memory": 1.0}),
    ("timing", {"uses_timing": 1.0}),
    ("hold", {"uses_timing": 1.0, "uses_precision": 1.0}),
    ("reaction", {"uses_reflex": 1.0, "uses_reaction": 1.0}),
    ("dodge", {"uses_spatial": 1.0, "uses_reflex": 1.0}),
    ("chase", {"uses_spatial": 1.0}),
    ("catch", {"uses_spatial": 1.0}),
    ("collect", {"uses_spatial": 1.0}),
    ("drag", {"uses_spatial": 1.0, "uses_precision": 1.0}),
    ("swipe", {"uses_spatial": 1.0}),
    ("match", {"uses_pattern": 1.0}),
    ("find", {"uses_pattern": 1.0}),
    ("count", {"uses_pattern": 1.0}),
    ("balance", {"uses_strategy": 1.0}),
    ("protect", {"uses_strategy": 1.0}),
)


def mechanic_prototype(mechanic: str) -> FeatureVector:
    hints: dict[str, float] = {}
    for keyword, mapping in _MECHANIC_HINTS:
        if keyword in mechanic:
            hints.update(mapping)
    return FeatureVector.from_mapping(hints)


# ---------------------------------------------------------------------------
# Distance helpers
# ---------------------------------------------------------------------------

def euclidean_distance(a: FeatureVector, b: FeatureVector) -> float:
    """Euclidean distance over the concatenated feature groups."""
    return float(np.linalg.norm(a.values - b.values))


def distances_to(vector: FeatureVector, matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    """Distances from one vector to every row of an (n, dim) matrix."""
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float64)
    return np.linalg.norm(matrix - vector.values[np.newaxis, :], axis=1)


def mean_pairwise_distance(matrix: NDArray[np.float64]) -> float:
    """Mean distance over all unordered pairs (Gram-matrix form)."""
    n = matrix.shape[0]
    if n < 2:
        return 0.0
    sq = np.einsum("ij,ij->i", matrix, matrix)
    d2 = sq[:, None] + sq[None, :] - 2.0 * (matrix @ matrix.T)
    d = np.sqrt(np.clip(d2, 0.0, None))
    iu = np.triu_indices(n, k=1)
    return float(d[iu].mean())


def _skew(counts: Mapping[str, int], categories: Sequence[str]) -> float:
    """Total-variation distance between the category shares and uniform."""
    total = sum(counts.values())
    if total == 0:
        return 0.0
    uniform = 1.0 / len(categories)
    tvd = sum(abs(counts.get(c, 0) / total - uniform) for c in categories)
    tvd += counts.get(DEFAULT_CATEGORY, 0) / total
    return 0.5 * tvd


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

class DiversityAnalyzer:
    """Distance-based diversity scoring against a Portfolio.

    Attributes:
        distance_ceiling: Distance mapped to a normalized value of 1.0.
        neighbor_radius: Radius within which portfolio members count as neighbors.
        density_saturation: Neighbor count at which the density penalty reaches 1.0.
        min_portfolio_for_gaps: Below this size only generic directions are returned.
        coverage_floor: Categories with fewer accepted entries are gaps.
        max_gap_areas: Maximum number of gap areas returned.
    """

    def __init__(
        self,
        distance_ceiling: float = AGFConfig.DISTANCE_CEILING,
        neighbor_radius: float = AGFConfig.NEIGHBOR_RADIUS,
        density_saturation: int = AGFConfig.DENSITY_SATURATION,
        min_portfolio_for_gaps: int = AGFConfig.MIN_PORTFOLIO_FOR_GAPS,
        coverage_floor: int = AGFConfig.COVERAGE_FLOOR,
        max_gap_areas: int = AGFConfig.MAX_GAP_AREAS,
    ) -> None:
        if distance_ceiling <= 0:
            raise ValueError(f"distance_ceiling must be positive, got {distance_ceiling}")
        if density_saturation <= 0:
            raise ValueError(f"density_saturation must be positive, got {density_saturation}")
        self.distance_ceiling = distance_ceiling
        self.neighbor_radius = neighbor_radius
        self.density_saturation = density_saturation
        self.min_portfolio_for_gaps = min_portfolio_for_gaps
        self.coverage_floor = coverage_floor
        self.max_gap_areas = max_gap_areas

    def _normalize(self, distance: float) -> float:
        return min(distance / self.distance_ceiling, 1.0)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def analyze(
        self,
        vector: FeatureVector,
        portfolio: Portfolio,
        genre: Optional[str] = None,
    ) -> DiversityAnalysis:
        if len(portfolio) == 0:
            return DiversityAnalysis(
                score=1.0,
                nearest_distance=self.distance_ceiling,
                average_distance=self.distance_ceiling,
                density_penalty=0.0,
                gap_filling_score=1.0,
                balance_contribution=0.0,
                neighbor_count=0,
            )

        dists = distances_to(vector, portfolio.vectors)
        nearest = float(dists.min())
        average = float(dists.mean())
        score = (
            NEAREST_WEIGHT * self._normalize(nearest)
            + AVERAGE_WEIGHT * self._normalize(average)
        )
        neighbors = int(np.count_nonzero(dists <= self.neighbor_radius))

        return DiversityAnalysis(
            score=score,
            nearest_distance=nearest,
            average_distance=average,
            density_penalty=min(neighbors / self.density_saturation, 1.0),
            gap_filling_score=self.gap_filling_score(vector, self.find_gap_areas(portfolio)),
            balance_contribution=self.balance_contribution(genre, portfolio),
            neighbor_count=neighbors,
        )

    # ------------------------------------------------------------------
    # Gap detection
    # ------------------------------------------------------------------

    def find_gap_areas(self, portfolio: Portfolio) -> list[GapArea]:
        """Underrepresented regions, highest priority first."""
        matrix = portfolio.vectors
        if len(portfolio) < self.min_portfolio_for_gaps:
            gaps = [
                GapArea(
                    description=desc,
                    target=target,
                    vector=FeatureVector.from_mapping(proto),
                    priority=priority,
                )
                for desc, target, priority, proto in GENERIC_DIRECTIONS
            ]
        else:
            gaps = []
            genre_counts = portfolio.category_counts("genre")
            for genre in GENRES:
                count = genre_counts.get(genre, 0)
                if count < self.coverage_floor:
                    gaps.append(GapArea(
                        description=f"Underrepresented genre: {genre} ({count})",
                        target=f"genre:{genre}",
                        vector=FeatureVector.from_mapping(GENRE_PROTOTYPES.get(genre, {})),
                        priority=1.0 / (1 + count),
                    ))
            mechanic_counts = portfolio.category_counts("mechanic")
            for mechanic in MECHANICS:
                count = mechanic_counts.get(mechanic, 0)
                if count < self.coverage_floor:
                    gaps.append(GapArea(
                        description=f"Underrepresented mechanic: {mechanic} ({count})",
                        target=f"mechanic:{mechanic}",
                        vector=mechanic_prototype(mechanic),
                        priority=1.0 / (1 + count),
                    ))
            # stable sort keeps genres ahead of mechanics on ties
            gaps.sort(key=lambda g: g.priority, reverse=True)
            gaps = gaps[:self.max_gap_areas]

        if matrix.size == 0:
            return gaps
        return [
            GapArea(
                description=g.description,
                target=g.target,
                vector=g.vector,
                priority=g.priority,
                estimated_diversity=self._normalize(float(distances_to(g.vector, matrix).min())),
            )
            for g in gaps
        ]

    def gap_filling_score(self, vector: FeatureVector, gaps: Sequence[GapArea]) -> float:
        if not gaps:
            return NEUTRAL_GAP_SCORE
        nearest = min(gaps, key=lambda g: euclidean_distance(vector, g.vector))
        return (1.0 - self._normalize(euclidean_distance(vector, nearest.vector))) * nearest.priority

    # ------------------------------------------------------------------
    # Category balance
    # ------------------------------------------------------------------

    def balance_contribution(self, genre: Optional[str], portfolio: Portfolio) -> float:
        """Positive when adding ``genre`` moves the genre mix toward uniform."""
        counts = dict(portfolio.category_counts("genre"))
        n = sum(counts.values())
        if n == 0:
            return 0.0
        label = normalize_category(genre, GENRES)
        before = _skew(counts, GENRES)
        counts[label] = counts.get(label, 0) + 1
        after = _skew(counts, GENRES)
        change = 0.5 * (before - after) * (n + 1)
        return max(-BALANCE_BOUND, min(change, BALANCE_BOUND))

    # ------------------------------------------------------------------
    # Portfolio-level metrics
    # ------------------------------------------------------------------

    def portfolio_diversity(self, matrix: NDArray[np.float64]) -> float:
        """Mean pairwise distance normalized by the ceiling; 1.0 below two entries."""
        if matrix.shape[0] < 2:
            return 1.0
        return self._normalize(mean_pairwise_distance(matrix))

    def describe(self, analysis: DiversityAnalysis) -> str:
        if analysis.score >= 0.8:
            verdict = "Highly novel: far from everything in the portfolio."
        elif analysis.score >= 0.5:
            verdict = "Moderately novel: adds variety without breaking new ground."
        elif analysis.score >= 0.3:
            verdict = "Somewhat similar to existing entries."
        else:
            verdict = "Very similar to existing entries."
        parts = [
            f"Diversity {analysis.score:.2f}: {verdict}",
            f"nearest={analysis.nearest_distance:.2f} average={analysis.average_distance:.2f}",
        ]
        if analysis.neighbor_count:
            parts.append(f"{analysis.neighbor_count} close neighbors (density {analysis.density_penalty:.2f})")
        if analysis.balance_contribution > 0.1:
            parts.append("improves genre balance")
        elif analysis.balance_contribution < -0.1:
            parts.append("skews genre balance")
        return "; ".join(parts)
