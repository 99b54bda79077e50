"""AGF-v0.1 Feature Vectorizer — Artifact-to-Vector Embedding.

Maps one GameArtifact to a fixed 40-dimensional FeatureVector made of four
groups of ten features each:

    [0..10)   gameplay     play time, pace, tension, difficulty, ...
    [10..20)  visual       object density, animation, effects, art style, ...
    [20..30)  rules        rule count, condition/action diversity, randomness, ...
    [30..40)  interaction  touch / timing / memory / reflex / ... booleans

Every feature is derived from simple structural signals (counts, ratios,
presence of condition or action types) and clamped independently into
[0, 1]. Signals that would need pixel analysis (brightness, contrast,
saturation, color intensity, symmetry) stay at the neutral 0.5.
Missing structure falls back to the neutral defaults of
``protocol.neutral_values()`` instead of raising.

The vectorizer is pure: no randomness, no I/O, no state between calls.

Usage:
    vectorizer = FeatureVectorizer()
    vec = vectorizer.vectorize(artifact)
    vec["uses_touch"], vec.group("rules")
"""

from __future__ import annotations

from typing import Optional

from agf.protocol import (
    ACTION_TYPES,
    ART_STYLES,
    CONDITION_TYPES,
    DIFFICULTY_LEVELS,
    NEUTRAL_VALUE,
    FeatureVector,
    GameArtifact,
)


# ---------------------------------------------------------------------------
# Normalization ceilings (count at which a feature saturates at 1.0)
# ---------------------------------------------------------------------------

PLAY_TIME_CEILING: float = 30.0     # seconds
RULE_COUNT_CEILING: float = 15.0
COMPLEXITY_CEILING: float = 8.0
SKILL_CEILING: float = 10.0
OBJECT_COMPLEXITY_CEILING: float = 10.0
OBJECT_DENSITY_CEILING: float = 15.0


def _clamp(value: float) -> float:
    return max(0.0, min(float(value), 1.0))


def _ratio(count: float, ceiling: float) -> float:
    return _clamp(count / ceiling)


class FeatureVectorizer:
    """Deterministic structural embedding of game artifacts.

    Attributes:
        rule_ceiling: Rule count mapped to 1.0 for the rule_count feature.
    """

    def __init__(self, rule_ceiling: float = RULE_COUNT_CEILING) -> None:
        if rule_ceiling <= 0:
            raise ValueError(f"rule_ceiling must be positive, got {rule_ceiling}")
        self.rule_ceiling = rule_ceiling

    def vectorize(self, artifact: GameArtifact) -> FeatureVector:
        features: dict[str, float] = {}
        features.update(self.gameplay_features(artifact))
        features.update(self.visual_features(artifact))
        if artifact.rules is not None:
            features.update(self.rule_features(artifact))
            features.update(self.interaction_features(artifact))
        return FeatureVector.from_mapping(features)

    # ------------------------------------------------------------------
    # Gameplay
    # ------------------------------------------------------------------

    def gameplay_features(self, artifact: GameArtifact) -> dict[str, float]:
        out: dict[str, float] = {
            "play_time": (
                _ratio(artifact.duration_seconds, PLAY_TIME_CEILING)
                if artifact.duration_seconds is not None else NEUTRAL_VALUE
            ),
            "difficulty": DIFFICULTY_LEVELS.get(
                str(artifact.difficulty or "").lower(), NEUTRAL_VALUE,
            ),
        }
        if artifact.rules is None:
            return out

        n = artifact.rule_count
        touch_rules = artifact.rules_with_condition("touch")
        time_rules = artifact.rules_with_condition("time")
        failure_rules = artifact.rules_with_action("failure")
        out.update({
            "interaction_frequency": _ratio(touch_rules, 5.0),
            "skill_ceiling": _ratio(n, SKILL_CEILING),
            "complexity": _ratio(n, COMPLEXITY_CEILING),
            "replayability": 0.7 if artifact.rules_with_action("randomAction") else 0.4,
            "accessibility": _clamp(1.0 - n / RULE_COUNT_CEILING),
            "learning_curve": _ratio(n, SKILL_CEILING),
            "pace": _ratio(time_rules, 3.0),
            "tension": _ratio(failure_rules, 3.0),
        })
        return out

    # ------------------------------------------------------------------
    # Visual
    # ------------------------------------------------------------------

    def visual_features(self, artifact: GameArtifact) -> dict[str, float]:
        out: dict[str, float] = {"art_style_index": self.art_style_index(artifact.art_style)}
        if artifact.objects is not None:
            n_obj = artifact.object_count
            animated = any(o.frame_count > 1 for o in artifact.objects)
            out.update({
                "visual_complexity": _ratio(n_obj, OBJECT_COMPLEXITY_CEILING),
                "object_density": _ratio(n_obj, OBJECT_DENSITY_CEILING),
                "animation_amount": 0.7 if animated else 0.3,
            })
        if artifact.rules is not None:
            out["effect_intensity"] = _ratio(artifact.rules_with_action("effect"), 5.0)
        return out

    @staticmethod
    def art_style_index(art_style: Optional[str]) -> float:
        """Position of the style in ART_STYLES, spread over [0, 1]."""
        if not art_style:
            return NEUTRAL_VALUE
        label = art_style.strip().lower()
        if label not in ART_STYLES:
            return NEUTRAL_VALUE
        return ART_STYLES.index(label) / (len(ART_STYLES) - 1)

    # ------------------------------------------------------------------
    # Rules / structure
    # ------------------------------------------------------------------

    def rule_features(self, artifact: GameArtifact) -> dict[str, float]:
        n = artifact.rule_count
        known_conditions = artifact.condition_types & set(CONDITION_TYPES)
        known_actions = artifact.action_types & set(ACTION_TYPES)
        randomness = 0.7 if artifact.rules_with_action("randomAction") else 0.1
        interaction = _ratio(n, RULE_COUNT_CEILING)
        return {
            "rule_count": _ratio(n, self.rule_ceiling),
            "condition_diversity": _ratio(len(known_conditions), len(CONDITION_TYPES)),
            "action_diversity": _ratio(len(known_actions), len(ACTION_TYPES)),
            "condition_complexity": _ratio(
                sum(len(r.conditions) for r in artifact.rules or ()), 2.0 * SKILL_CEILING,
            ),
            "action_complexity": _ratio(
                sum(len(r.actions) for r in artifact.rules or ()), 2.0 * SKILL_CEILING,
            ),
            "rule_interaction": interaction,
            "randomness": randomness,
            "determinism": 1.0 - randomness,
            "feedback_loop": _ratio(artifact.rules_with_action("counter"), 5.0),
            "emergent_complexity": _ratio(n * interaction, 10.0),
        }

    # ------------------------------------------------------------------
    # Interaction style
    # ------------------------------------------------------------------

    def interaction_features(self, artifact: GameArtifact) -> dict[str, float]:
        conditions = artifact.condition_types
        actions = artifact.action_types
        touch = "touch" in conditions
        timing = "time" in conditions
        reflex = touch and timing
        memory = "flag" in conditions and bool({"show", "hide", "setFlag", "toggleFlag"} & actions)
        rhythm = timing and bool({"playSound", "playBGM"} & actions) and artifact.rules_with_condition("time") >= 2
        pattern = "animation" in conditions or ("flag" in conditions and artifact.rule_count >= 3)
        return {
            "uses_touch": float(touch),
            "uses_timing": float(timing),
            "uses_memory": float(memory),
            "uses_reflex": float(reflex),
            "uses_strategy": float(artifact.rule_count > 5),
            "uses_precision": float(artifact.rules_with_condition("touch") > 3),
            "uses_rhythm": float(rhythm),
            "uses_spatial": float(bool({"position", "collision"} & conditions)),
            "uses_pattern": float(pattern),
            "uses_reaction": float(reflex),
        }
