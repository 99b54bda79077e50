"""AGF-v0.1 Mode Selector — Epsilon-greedy exploration/exploitation choice.

Per attempt, one uniform draw is compared to the controller's current
epsilon:

    u < epsilon   ->  Exploration(target)   target from gap detection
    otherwise     ->  Exploitation

Exploration targets are drawn from the analyzer's gap areas with
probability proportional to their priority; when no gap exists the
configured fallback list is used.

Usage:
    selector = ModeSelector(analyzer, portfolio, rng=random.Random(0))
    mode = selector.select_mode(controller)
    selector.exploration_ratio
"""

from __future__ import annotations

import logging
import random as _random
from typing import TYPE_CHECKING, Optional, Sequence

from agf.config import AGFConfig
from agf.protocol import GenerationMode
from agf.util.diversity import DiversityAnalyzer

if TYPE_CHECKING:
    from agf.portfolio import Portfolio
    from agf.standards import AdaptiveThresholdController

logger = logging.getLogger(__name__)


class ModeSelector:
    """Epsilon-greedy branch selection with branch counters.

    Attributes:
        analyzer: Source of gap areas.
        portfolio: Accepted portfolio (read only).
        fallback_targets: Targets used when no gap area exists.
        exploration_count: Number of exploration choices so far.
        exploitation_count: Number of exploitation choices so far.
    """

    def __init__(
        self,
        analyzer: DiversityAnalyzer,
        portfolio: Portfolio,
        fallback_targets: Optional[Sequence[str]] = None,
        rng: Optional[_random.Random] = None,
    ) -> None:
        self.analyzer = analyzer
        self.portfolio = portfolio
        self.fallback_targets = list(fallback_targets or AGFConfig.FALLBACK_TARGETS)
        if not self.fallback_targets:
            raise ValueError("fallback_targets must not be empty")
        self._rng = rng or _random.Random()
        self.exploration_count = 0
        self.exploitation_count = 0

    def select_mode(self, controller: AdaptiveThresholdController) -> GenerationMode:
        epsilon = controller.epsilon
        if self._rng.random() < epsilon:
            self.exploration_count += 1
            target = self._pick_target()
            logger.debug("Mode: exploration -> %s (epsilon=%.3f)", target, epsilon)
            return GenerationMode.exploration(target, epsilon)
        self.exploitation_count += 1
        return GenerationMode.exploitation(epsilon)

    def _pick_target(self) -> str:
        gaps = self.analyzer.find_gap_areas(self.portfolio)
        if not gaps:
            return self._rng.choice(self.fallback_targets)
        weights = [max(g.priority, 1e-6) for g in gaps]
        return self._rng.choices(gaps, weights=weights, k=1)[0].target

    @property
    def exploration_ratio(self) -> float:
        n = self.exploration_count + self.exploitation_count
        return self.exploration_count / n if n else 0.0

    def state_dict(self) -> dict:
        return {
            "exploration_count": self.exploration_count,
            "exploitation_count": self.exploitation_count,
        }

    def load_state_dict(self, d: dict) -> None:
        self.exploration_count = int(d.get("exploration_count", 0))
        self.exploitation_count = int(d.get("exploitation_count", 0))
