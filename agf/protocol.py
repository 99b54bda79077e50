"""AGF-v0.1 Protocol Definitions.

Strict dataclass contracts for every message that flows through the
generation pipeline. Every field is typed; no dicts-as-messages allowed.

The artifact itself stays opaque: the core only sees it through the narrow
accessor surface of GameArtifact (rule count, condition/action type sets,
success/failure paths, object and asset presence).
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Mapping, Optional, Sequence

import numpy as np
from numpy.typing import NDArray


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class AGFError(Exception):
    """Base class for all pipeline errors."""


class GenerationError(AGFError):
    """A collaborator call failed or returned unusable data."""

    def __init__(self, message: str, stage: str = "unknown", reasons: Sequence[str] = ()):
        super().__init__(message)
        self.stage = stage
        self.reasons = tuple(reasons)


class IdeaRejection(Enum):
    """Why a single idea proposal was thrown away."""
    DUPLICATE = auto()          # same content hash as a previous proposal
    LOW_QUALITY = auto()        # self-reported fun score below minimum
    TRANSIENT_ERROR = auto()    # provider raised


class IdeaGenerationError(GenerationError):
    """Idea generation exhausted its retries."""

    def __init__(self, rejections: Sequence[IdeaRejection]):
        names = [r.name for r in rejections]
        super().__init__(
            f"idea generation failed after {len(names)} attempts: {', '.join(names)}",
            stage="idea",
            reasons=names,
        )
        self.rejections = tuple(rejections)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ModeKind(Enum):
    """Branch taken by the epsilon-greedy mode selector."""
    EXPLORATION = auto()
    EXPLOITATION = auto()


class AttemptOutcome(Enum):
    """Final accounting bucket of one generation attempt."""
    ACCEPTED = auto()
    REJECTED = auto()           # scored, below threshold or critical violation
    FAILED = auto()             # generation failed, never scored


# ---------------------------------------------------------------------------
# Artifact vocabularies
# ---------------------------------------------------------------------------

CONDITION_TYPES: tuple[str, ...] = (
    "touch", "collision", "animation", "time", "flag",
    "gameState", "position", "counter", "random",
)

ACTION_TYPES: tuple[str, ...] = (
    "success", "failure", "pause", "restart",
    "playSound", "stopSound", "playBGM", "stopBGM",
    "setFlag", "toggleFlag", "switchAnimation", "show", "hide", "move",
    "effect", "addScore", "showMessage", "counter", "randomAction",
)

GENRES: tuple[str, ...] = (
    "action", "puzzle", "rhythm", "reflex", "memory",
    "arcade", "casual", "timing",
)

MECHANICS: tuple[str, ...] = (
    "tap-target", "tap-avoid", "tap-sequence", "tap-rhythm",
    "swipe-direction", "drag-drop", "hold-release", "catch-falling",
    "dodge-moving", "match-pattern", "count-objects", "find-different",
    "memory-match", "timing-action", "chase-target", "collect-items",
    "protect-target", "balance-game", "reaction-test",
)

ART_STYLES: tuple[str, ...] = (
    "minimal", "pixel", "flat", "cartoon", "hand-drawn",
    "neon", "watercolor", "retro", "geometric", "realistic",
)

DIFFICULTY_LEVELS: dict[str, float] = {"easy": 0.3, "normal": 0.5, "hard": 0.8}

# Bucket for undefined / unknown categories
DEFAULT_CATEGORY: str = "other"


def normalize_category(value: Optional[str], known: Sequence[str]) -> str:
    """Map a raw category label onto its vocabulary, or the default bucket."""
    if not value:
        return DEFAULT_CATEGORY
    label = str(value).strip().lower()
    return label if label in known else DEFAULT_CATEGORY


# ---------------------------------------------------------------------------
# Feature vector layout
# Single source of truth: vectorizer, analyzer and portfolio depend on it.
#   [0..10)   gameplay
#   [10..20)  visual
#   [20..30)  rules / structure
#   [30..40)  interaction style (booleans)
# ---------------------------------------------------------------------------

FEATURE_GROUPS: dict[str, tuple[str, ...]] = {
    "gameplay": (
        "play_time", "interaction_frequency", "difficulty", "skill_ceiling",
        "complexity", "replayability", "accessibility", "learning_curve",
        "pace", "tension",
    ),
    "visual": (
        "color_intensity", "visual_complexity", "brightness", "contrast",
        "saturation", "object_density", "animation_amount", "effect_intensity",
        "art_style_index", "symmetry",
    ),
    "rules": (
        "rule_count", "condition_diversity", "action_diversity",
        "condition_complexity", "action_complexity", "rule_interaction",
        "randomness", "determinism", "feedback_loop", "emergent_complexity",
    ),
    "interaction": (
        "uses_touch", "uses_timing", "uses_memory", "uses_reflex",
        "uses_strategy", "uses_precision", "uses_rhythm", "uses_spatial",
        "uses_pattern", "uses_reaction",
    ),
}

FEATURE_NAMES: tuple[str, ...] = tuple(
    name for names in FEATURE_GROUPS.values() for name in names
)
FEATURE_DIM: int = len(FEATURE_NAMES)  # 40
BOOLEAN_FEATURES: frozenset[str] = frozenset(FEATURE_GROUPS["interaction"])
NEUTRAL_VALUE: float = 0.5

_FEATURE_INDEX: dict[str, int] = {name: i for i, name in enumerate(FEATURE_NAMES)}


def neutral_values() -> NDArray[np.float64]:
    """Neutral defaults: 0.5 for continuous features, 0 for booleans."""
    return np.array(
        [0.0 if name in BOOLEAN_FEATURES else NEUTRAL_VALUE for name in FEATURE_NAMES],
        dtype=np.float64,
    )


@dataclass(frozen=True, eq=False)
class FeatureVector:
    """Fixed-dimension embedding of one artifact.

    The backing array is copied, clipped into [0, 1], and made read-only
    on construction so vectors can be shared between portfolio entries.
    """
    values: NDArray[np.float64]

    def __post_init__(self) -> None:
        arr = np.asarray(self.values, dtype=np.float64).reshape(-1)
        if arr.shape != (FEATURE_DIM,):
            raise ValueError(f"feature vector must have {FEATURE_DIM} values, got {arr.shape[0]}")
        arr = np.clip(np.nan_to_num(arr, nan=NEUTRAL_VALUE), 0.0, 1.0)
        arr.setflags(write=False)
        object.__setattr__(self, "values", arr)

    @classmethod
    def neutral(cls) -> FeatureVector:
        return cls(neutral_values())

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, float]) -> FeatureVector:
        """Build from a partial name->value mapping; unknown names are ignored."""
        arr = neutral_values()
        for name, value in mapping.items():
            idx = _FEATURE_INDEX.get(name)
            if idx is not None:
                arr[idx] = float(value)
        return cls(arr)

    def __getitem__(self, name: str) -> float:
        return float(self.values[_FEATURE_INDEX[name]])

    def group(self, name: str) -> NDArray[np.float64]:
        names = FEATURE_GROUPS[name]
        start = _FEATURE_INDEX[names[0]]
        return self.values[start:start + len(names)]

    def as_dict(self) -> dict[str, float]:
        return {name: float(v) for name, v in zip(FEATURE_NAMES, self.values)}

    def distance(self, other: FeatureVector) -> float:
        return float(np.linalg.norm(self.values - other.values))


# ---------------------------------------------------------------------------
# Artifact accessor surface
# ---------------------------------------------------------------------------

def _as_list(value: Any) -> Sequence[Any]:
    """Lists and tuples pass through; anything else reads as empty."""
    return value if isinstance(value, (list, tuple)) else ()


def _as_size(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        size = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(size, 0)

@dataclass(frozen=True)
class GameRule:
    """One trigger rule: all listed condition types fire all listed actions."""
    conditions: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()
    target_ids: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GameRule:
        def _types(items: Any) -> tuple[str, ...]:
            out = []
            for item in _as_list(items):
                if isinstance(item, str):
                    out.append(item)
                elif isinstance(item, Mapping) and item.get("type"):
                    out.append(str(item["type"]))
            return tuple(out)

        targets = []
        for item in _as_list(data.get("conditions")):
            if isinstance(item, Mapping) and "target" in item:
                targets.append(str(item.get("target") or ""))
        return cls(
            conditions=_types(data.get("conditions")),
            actions=_types(data.get("actions")),
            target_ids=tuple(targets),
        )


@dataclass(frozen=True)
class GameObject:
    object_id: str = ""
    frame_count: int = 1


@dataclass(frozen=True)
class GameArtifact:
    """Narrow view of a generated game.

    ``rules`` / ``objects`` / ``settings`` are ``None`` when the generator
    omitted that part of the structure entirely; the scorer reports those
    as issues instead of failing.
    """
    title: str = ""
    genre: Optional[str] = None
    mechanic: Optional[str] = None
    difficulty: Optional[str] = None
    art_style: Optional[str] = None
    duration_seconds: Optional[float] = None
    rules: Optional[tuple[GameRule, ...]] = None
    objects: Optional[tuple[GameObject, ...]] = None
    has_background: bool = False
    sounds: tuple[str, ...] = ()
    payload_bytes: int = 0
    settings: Optional[Mapping[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GameArtifact:
        """Parse a loosely-shaped project payload without raising."""
        settings = data.get("settings") if isinstance(data.get("settings"), Mapping) else None
        script = data.get("script") if isinstance(data.get("script"), Mapping) else None
        assets = data.get("assets") if isinstance(data.get("assets"), Mapping) else None
        meta = settings or {}

        rules: Optional[tuple[GameRule, ...]] = None
        if script is not None and isinstance(script.get("rules"), (list, tuple)):
            rules = tuple(
                GameRule.from_dict(r) for r in script["rules"] if isinstance(r, Mapping)
            )

        objects: Optional[tuple[GameObject, ...]] = None
        has_background = False
        sounds: tuple[str, ...] = ()
        if assets is not None:
            raw_objects = assets.get("objects")
            if isinstance(raw_objects, (list, tuple)):
                objects = tuple(
                    GameObject(
                        object_id=str(o.get("id") or ""),
                        frame_count=len(_as_list(o.get("frames"))) or 1,
                    )
                    for o in raw_objects if isinstance(o, Mapping)
                )
            has_background = bool(assets.get("background"))
            sounds = tuple(str(s) for s in _as_list(assets.get("sounds")))

        duration = meta.get("duration")
        return cls(
            title=str(meta.get("name") or data.get("title") or ""),
            genre=meta.get("genre"),
            mechanic=meta.get("mechanic"),
            difficulty=meta.get("difficulty"),
            art_style=meta.get("artStyle"),
            duration_seconds=float(duration) if isinstance(duration, (int, float)) else None,
            rules=rules,
            objects=objects,
            has_background=has_background,
            sounds=sounds,
            payload_bytes=_as_size(data.get("totalSize")),
            settings=settings,
        )

    # --- structural accessors -------------------------------------------

    @property
    def rule_count(self) -> int:
        return len(self.rules) if self.rules else 0

    @property
    def object_count(self) -> int:
        return len(self.objects) if self.objects else 0

    @property
    def condition_types(self) -> frozenset[str]:
        return frozenset(c for r in self.rules or () for c in r.conditions)

    @property
    def action_types(self) -> frozenset[str]:
        return frozenset(a for r in self.rules or () for a in r.actions)

    @property
    def has_success_path(self) -> bool:
        return "success" in self.action_types

    @property
    def has_failure_path(self) -> bool:
        return "failure" in self.action_types

    @property
    def missing_fields(self) -> tuple[str, ...]:
        missing = []
        if self.settings is None:
            missing.append("settings")
        if self.rules is None:
            missing.append("script")
        if self.objects is None:
            missing.append("assets")
        return tuple(missing)

    def rules_with_condition(self, condition_type: str) -> int:
        return sum(1 for r in self.rules or () if condition_type in r.conditions)

    def rules_with_action(self, action_type: str) -> int:
        return sum(1 for r in self.rules or () if action_type in r.actions)


# ---------------------------------------------------------------------------
# Generation mode
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GenerationMode:
    """Tagged exploration/exploitation choice for one attempt."""
    kind: ModeKind
    epsilon: float
    reason: str
    target: Optional[str] = None    # only set for exploration

    @classmethod
    def exploration(cls, target: str, epsilon: float,
                    reason: str = "Exploring new game space for diversity") -> GenerationMode:
        return cls(ModeKind.EXPLORATION, epsilon, reason, target)

    @classmethod
    def exploitation(cls, epsilon: float,
                     reason: str = "Exploiting known successful patterns") -> GenerationMode:
        return cls(ModeKind.EXPLOITATION, epsilon, reason, None)

    @property
    def is_exploration(self) -> bool:
        return self.kind is ModeKind.EXPLORATION


# ---------------------------------------------------------------------------
# Candidates and evaluations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Candidate:
    """A freshly generated artifact awaiting scoring."""
    artifact: GameArtifact
    vector: FeatureVector
    candidate_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    seed: Any = None                 # opaque idea seed from the generator
    mode: Optional[GenerationMode] = None
    generation_seconds: float = 0.0
    tokens_used: int = 0
    cost_usd: float = 0.0
    created_at: float = field(default_factory=time.time)

    @property
    def genre(self) -> str:
        return normalize_category(self.artifact.genre, GENRES)

    @property
    def mechanic(self) -> str:
        return normalize_category(self.artifact.mechanic, MECHANICS)


@dataclass(frozen=True)
class GapArea:
    """An underrepresented region the pipeline should steer toward."""
    description: str
    target: str                      # "genre:<name>" / "mechanic:<name>" / "direction:<name>"
    vector: FeatureVector
    priority: float
    estimated_diversity: float = 0.0


@dataclass(frozen=True)
class DiversityAnalysis:
    score: float
    nearest_distance: float
    average_distance: float
    density_penalty: float           # in [0, 1]; applied negatively
    gap_filling_score: float
    balance_contribution: float      # in [-0.5, 0.5]
    neighbor_count: int = 0


@dataclass(frozen=True)
class RelativeScore:
    diversity: float
    density_penalty: float           # <= 0
    gap_filling: float
    balance: float
    subtotal: float


@dataclass(frozen=True)
class AbsoluteScore:
    basic_quality: float
    playability: float
    predicted_satisfaction: float
    subtotal: float


@dataclass(frozen=True)
class QualityEvaluation:
    relative: RelativeScore
    absolute: AbsoluteScore
    total: float
    threshold: float
    passed: bool
    diversity: DiversityAnalysis
    critical_violations: tuple[str, ...] = ()
    issues: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    summary: str = ""


@dataclass(frozen=True)
class PortfolioEntry:
    """An accepted candidate with its final evaluation. Never mutated."""
    candidate: Candidate
    evaluation: QualityEvaluation
    sequence: int
    accepted_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class PortfolioStatistics:
    total: int
    genre_counts: Mapping[str, int]
    mechanic_counts: Mapping[str, int]
    difficulty_counts: Mapping[str, int]
    quality_mean: float
    quality_variance: float
    diversity_score: float
    quality_distribution: Mapping[str, int]
    is_balanced: bool
    has_coverage: bool
    needs_exploration: bool


# ---------------------------------------------------------------------------
# Controller inputs / audit log
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AdjustmentRecord:
    field_name: str
    old_value: float
    new_value: float
    reason: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class GenerationStatistics:
    """Rolling snapshot handed to the controller at each recalibration."""
    attempts: int = 0
    generated: int = 0
    passed: int = 0
    rejected: int = 0
    failed: int = 0
    rolling_pass_rate: float = 0.0
    rolling_samples: int = 0
    median_score: float = 0.0
    mean_score: float = 0.0
    diversity_score: float = 1.0
    exploration_count: int = 0
    exploitation_count: int = 0

    @property
    def exploration_ratio(self) -> float:
        n = self.exploration_count + self.exploitation_count
        return self.exploration_count / n if n else 0.0


# ---------------------------------------------------------------------------
# Batch execution
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BatchTask:
    task_id: str
    index: int                       # position in the overall schedule
    request: Any = None              # opaque generation request


@dataclass(frozen=True)
class BatchResult:
    task_id: str
    index: int
    success: bool
    candidate: Optional[Candidate] = None
    error: str = ""
    elapsed_seconds: float = 0.0
    tokens_used: int = 0
    cost_usd: float = 0.0


@dataclass(frozen=True)
class BatchReport:
    batch_number: int
    results: tuple[BatchResult, ...]
    elapsed_seconds: float

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def fail_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def average_seconds(self) -> float:
        return (sum(r.elapsed_seconds for r in self.results) / len(self.results)
                if self.results else 0.0)


@dataclass(frozen=True)
class BatchProgress:
    total: int
    completed: int
    successful: int
    failed: int
    current_batch: int
    total_batches: int
    elapsed_seconds: float
    eta_seconds: float


@dataclass(frozen=True)
class RunReport:
    total_requested: int
    batches: tuple[BatchReport, ...]
    elapsed_seconds: float
    stopped: bool = False

    @property
    def results(self) -> tuple[BatchResult, ...]:
        """All results in scheduled order."""
        return tuple(r for b in self.batches for r in b.results)

    @property
    def total_generated(self) -> int:
        return sum(len(b.results) for b in self.batches)

    @property
    def successful(self) -> int:
        return sum(b.success_count for b in self.batches)

    @property
    def failed(self) -> int:
        return sum(b.fail_count for b in self.batches)

    @property
    def total_tokens(self) -> int:
        return sum(r.tokens_used for r in self.results)

    @property
    def total_cost(self) -> float:
        return sum(r.cost_usd for r in self.results)
