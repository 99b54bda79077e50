"""Shared pytest fixtures for AGF unit tests.

Builders are exposed as factory fixtures so each test can tweak the
artifact it needs without repeating the full constructor.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
import pytest

from agf.protocol import (
    FEATURE_DIM,
    AbsoluteScore,
    Candidate,
    DiversityAnalysis,
    FeatureVector,
    GameArtifact,
    GameObject,
    GameRule,
    QualityEvaluation,
    RelativeScore,
)


# Success via touch, failure on timeout, some feedback
DEFAULT_RULES: tuple[GameRule, ...] = (
    GameRule(conditions=("touch",), actions=("success", "effect"), target_ids=("obj0",)),
    GameRule(conditions=("time",), actions=("failure",)),
    GameRule(conditions=("collision",), actions=("addScore", "playSound")),
    GameRule(conditions=("touch",), actions=("counter",)),
)


def _make_artifact(
    genre: Optional[str] = "action",
    mechanic: Optional[str] = "tap-target",
    rules: Optional[tuple[GameRule, ...]] = DEFAULT_RULES,
    n_objects: int = 3,
    difficulty: str = "normal",
    title: str = "Test Game",
) -> GameArtifact:
    return GameArtifact(
        title=title,
        genre=genre,
        mechanic=mechanic,
        difficulty=difficulty,
        art_style="flat",
        duration_seconds=15.0,
        rules=rules,
        objects=tuple(GameObject(object_id=f"obj{i}", frame_count=2) for i in range(n_objects)),
        has_background=True,
        sounds=("bgm.mp3",),
        payload_bytes=500_000,
        settings={"name": title, "duration": 15},
    )


def _make_vector(fill: float = 0.5) -> FeatureVector:
    return FeatureVector(np.full(FEATURE_DIM, fill, dtype=np.float64))


def _make_candidate(
    vector: Optional[FeatureVector] = None,
    genre: str = "action",
    mechanic: str = "tap-target",
    artifact: Optional[GameArtifact] = None,
) -> Candidate:
    return Candidate(
        artifact=artifact or _make_artifact(genre=genre, mechanic=mechanic),
        vector=vector if vector is not None else _make_vector(),
    )


def _make_evaluation(total: float = 70.0, threshold: float = 60.0) -> QualityEvaluation:
    return QualityEvaluation(
        relative=RelativeScore(diversity=20.0, density_penalty=0.0, gap_filling=5.0,
                               balance=5.0, subtotal=30.0),
        absolute=AbsoluteScore(basic_quality=15.0, playability=15.0,
                               predicted_satisfaction=10.0, subtotal=40.0),
        total=total,
        threshold=threshold,
        passed=total >= threshold,
        diversity=DiversityAnalysis(
            score=1.0, nearest_distance=5.0, average_distance=5.0,
            density_penalty=0.0, gap_filling_score=0.5, balance_contribution=0.0,
        ),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_artifact():
    return _make_artifact


@pytest.fixture
def make_vector():
    return _make_vector


@pytest.fixture
def make_candidate():
    return _make_candidate


@pytest.fixture
def make_evaluation():
    return _make_evaluation


@pytest.fixture
def artifact() -> GameArtifact:
    return _make_artifact()


@pytest.fixture
def rng():
    return np.random.default_rng(42)
