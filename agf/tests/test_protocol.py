"""Unit tests for agf.protocol — feature layout, artifacts, records."""

from __future__ import annotations

import numpy as np
import pytest

from agf.protocol import (
    BOOLEAN_FEATURES,
    DEFAULT_CATEGORY,
    FEATURE_DIM,
    FEATURE_GROUPS,
    FEATURE_NAMES,
    GENRES,
    BatchReport,
    BatchResult,
    FeatureVector,
    GameArtifact,
    GenerationMode,
    GenerationStatistics,
    IdeaGenerationError,
    IdeaRejection,
    ModeKind,
    RunReport,
    neutral_values,
    normalize_category,
)


# ---------------------------------------------------------------------------
# Feature layout
# ---------------------------------------------------------------------------

class TestFeatureLayout:
    def test_dim_is_forty(self):
        assert FEATURE_DIM == 40
        assert len(FEATURE_NAMES) == 40

    def test_four_groups_of_ten(self):
        assert list(FEATURE_GROUPS) == ["gameplay", "visual", "rules", "interaction"]
        assert all(len(names) == 10 for names in FEATURE_GROUPS.values())

    def test_names_unique(self):
        assert len(set(FEATURE_NAMES)) == FEATURE_DIM

    def test_neutral_values(self):
        v = neutral_values()
        for name, value in zip(FEATURE_NAMES, v):
            expected = 0.0 if name in BOOLEAN_FEATURES else 0.5
            assert value == pytest.approx(expected)


# ---------------------------------------------------------------------------
# FeatureVector
# ---------------------------------------------------------------------------

class TestFeatureVector:
    def test_values_clipped(self):
        raw = np.linspace(-1.0, 2.0, FEATURE_DIM)
        v = FeatureVector(raw)
        assert v.values.min() >= 0.0
        assert v.values.max() <= 1.0

    def test_nan_becomes_neutral(self):
        raw = np.full(FEATURE_DIM, np.nan)
        v = FeatureVector(raw)
        assert np.allclose(v.values, 0.5)

    def test_read_only(self):
        v = FeatureVector.neutral()
        with pytest.raises(ValueError):
            v.values[0] = 0.9

    def test_source_array_not_aliased(self):
        raw = np.zeros(FEATURE_DIM)
        v = FeatureVector(raw)
        raw[0] = 1.0
        assert v.values[0] == 0.0

    def test_wrong_dim_rejected(self):
        with pytest.raises(ValueError):
            FeatureVector(np.zeros(FEATURE_DIM - 1))

    def test_from_mapping_ignores_unknown(self):
        v = FeatureVector.from_mapping({"uses_touch": 1.0, "not_a_feature": 0.3})
        assert v["uses_touch"] == 1.0
        assert v["pace"] == pytest.approx(0.5)

    def test_group_slice(self):
        v = FeatureVector.from_mapping({"rule_count": 0.9})
        rules = v.group("rules")
        assert rules.shape == (10,)
        assert rules[0] == pytest.approx(0.9)

    def test_distance_symmetric(self):
        a = FeatureVector.from_mapping({"pace": 0.1})
        b = FeatureVector.from_mapping({"pace": 0.9, "uses_touch": 1.0})
        assert a.distance(b) == pytest.approx(b.distance(a))
        assert a.distance(a) == 0.0


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

class TestNormalizeCategory:
    def test_known_label(self):
        assert normalize_category(" Puzzle ", GENRES) == "puzzle"

    @pytest.mark.parametrize("raw", [None, "", "shooter"])
    def test_unknown_goes_to_default(self, raw):
        assert normalize_category(raw, GENRES) == DEFAULT_CATEGORY


# ---------------------------------------------------------------------------
# GameArtifact
# ---------------------------------------------------------------------------

class TestGameArtifact:
    def test_from_dict_full(self):
        data = {
            "settings": {"name": "Star Tap", "genre": "action", "duration": 10, "artStyle": "neon"},
            "script": {"rules": [
                {"conditions": [{"type": "touch", "target": "star"}],
                 "actions": [{"type": "success"}]},
                {"conditions": [{"type": "time"}], "actions": [{"type": "failure"}]},
            ]},
            "assets": {"background": "bg.png", "objects": [{"id": "star", "frames": [1, 2]}],
                       "sounds": ["tap.mp3"]},
            "totalSize": 1234,
        }
        a = GameArtifact.from_dict(data)
        assert a.title == "Star Tap"
        assert a.rule_count == 2
        assert a.object_count == 1
        assert a.objects[0].frame_count == 2
        assert a.has_success_path and a.has_failure_path
        assert a.rules[0].target_ids == ("star",)
        assert a.payload_bytes == 1234
        assert a.missing_fields == ()

    def test_from_dict_empty(self):
        a = GameArtifact.from_dict({})
        assert a.rules is None
        assert a.objects is None
        assert set(a.missing_fields) == {"settings", "script", "assets"}
        assert a.rule_count == 0
        assert not a.has_success_path

    def test_from_dict_malformed_parts(self):
        a = GameArtifact.from_dict({
            "settings": "oops",
            "script": {"rules": [{"conditions": None, "actions": [42, {"type": "success"}]}, "x"]},
            "assets": {"objects": "nope"},
        })
        assert a.settings is None
        assert a.rule_count == 1
        assert a.has_success_path
        assert a.objects is None

    @pytest.mark.parametrize("data", [
        {"totalSize": "unknown"},
        {"totalSize": float("nan")},
        {"assets": {"objects": [{"id": "a", "frames": 3}]}},
        {"assets": {"sounds": 5}},
        {"script": {"rules": [{"conditions": 5, "actions": 7}]}},
    ])
    def test_from_dict_scalar_where_list_expected(self, data):
        a = GameArtifact.from_dict(data)
        assert a.payload_bytes == 0
        assert a.sounds == ()
        if a.objects:
            assert a.objects[0].frame_count == 1
        if a.rules:
            assert a.rules[0].conditions == ()
            assert a.rules[0].target_ids == ()

    def test_from_dict_numeric_string_size(self):
        assert GameArtifact.from_dict({"totalSize": "2048"}).payload_bytes == 2048

    def test_rule_counters(self, artifact):
        assert artifact.rules_with_condition("touch") == 2
        assert artifact.rules_with_action("failure") == 1


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class TestRecords:
    def test_generation_mode_constructors(self):
        explore = GenerationMode.exploration("genre:rhythm", 0.3)
        exploit = GenerationMode.exploitation(0.3)
        assert explore.kind is ModeKind.EXPLORATION and explore.is_exploration
        assert explore.target == "genre:rhythm"
        assert exploit.kind is ModeKind.EXPLOITATION and exploit.target is None

    def test_exploration_ratio(self):
        stats = GenerationStatistics(exploration_count=1, exploitation_count=3)
        assert stats.exploration_ratio == pytest.approx(0.25)
        assert GenerationStatistics().exploration_ratio == 0.0

    def test_idea_generation_error_reasons(self):
        err = IdeaGenerationError([IdeaRejection.DUPLICATE, IdeaRejection.LOW_QUALITY])
        assert err.stage == "idea"
        assert len(err.reasons) == 2

    def test_run_report_totals(self):
        ok = BatchResult(task_id="a", index=0, success=True, tokens_used=10, cost_usd=0.01)
        bad = BatchResult(task_id="b", index=1, success=False, error="boom")
        run = RunReport(
            total_requested=2,
            batches=(BatchReport(batch_number=1, results=(ok, bad), elapsed_seconds=1.0),),
            elapsed_seconds=1.0,
        )
        assert run.total_generated == 2
        assert run.successful == 1
        assert run.failed == 1
        assert run.total_tokens == 10
        assert run.total_cost == pytest.approx(0.01)
