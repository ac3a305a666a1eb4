"""Tests for the prioritization weight engine and preset profiles."""

from itertools import permutations

import pytest

from alchemist_kernel.models.weights import (
    CRITERIA,
    ConsistencyStatus,
    PresetProfile,
    PriorityWeights,
)
from alchemist_kernel.weights.engine import (
    ComparisonMatrix,
    classify_consistency,
    criterion_key,
    derive_ahp_weights,
    normalize_weights,
    ranking_from_weights,
    to_percentages,
    weights_from_ranking,
    weights_from_sliders,
)
from alchemist_kernel.weights.presets import (
    PRESET_PROFILES,
    compare_weights,
    get_preset,
    get_ranking_preset,
    list_presets,
    match_preset,
)


def _make_weights(*values: float) -> PriorityWeights:
    return PriorityWeights.from_list(list(values))


def _make_inconsistent_matrix():
    """fairness > priority > fulfillment, yet fulfillment strongly > fairness."""
    matrix = ComparisonMatrix()
    matrix.set_comparison(0, 1, 9)
    matrix.set_comparison(1, 2, 9)
    matrix.set_comparison(2, 0, 9)
    return matrix


class TestNormalization:
    @pytest.mark.parametrize("values", [
        (1, 2, 3, 4, 5),
        (10, 8, 6, 4, 2),
        (0.2, 0.3, 0.25, 0.15, 0.1),
        (7, 0, 0, 0, 0),
        (1e-6, 3, 1e6, 2, 9),
    ])
    def test_normalize_is_idempotent_and_sums_to_one(self, values):
        once = normalize_weights(_make_weights(*values))
        twice = normalize_weights(once)
        assert once.total() == pytest.approx(1.0, abs=1e-9)
        for a, b in zip(once.as_list(), twice.as_list()):
            assert a == pytest.approx(b, abs=1e-12)

    def test_all_zero_vector_rejected(self):
        with pytest.raises(ValueError):
            normalize_weights(_make_weights(0, 0, 0, 0, 0))

    def test_percentages(self):
        shares = to_percentages(_make_weights(1, 1, 1, 1, 0))
        assert shares["fairness"] == 25.0
        assert shares["constraints"] == 0.0


class TestSliders:
    def test_accepts_camel_case_names(self):
        weights = weights_from_sliders({
            "fairness": 5, "priorityLevel": 6, "taskFulfillment": 7,
            "workerUtilization": 8, "constraints": 9,
        })
        assert weights.as_list() == [5, 6, 7, 8, 9]

    def test_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            weights_from_sliders({key: 11 for key in CRITERIA})

    def test_all_zero_sliders_rejected(self):
        with pytest.raises(ValueError, match="above 0"):
            weights_from_sliders({key: 0 for key in CRITERIA})

    def test_missing_criterion_rejected(self):
        with pytest.raises(ValueError):
            weights_from_sliders({"fairness": 5})

    def test_unknown_criterion_rejected(self):
        with pytest.raises(ValueError):
            criterion_key("happiness")


class TestRanking:
    def test_every_permutation_gives_ten_eight_six_four_two(self):
        for ranking in permutations(CRITERIA):
            weights = weights_from_ranking(ranking)
            assert [getattr(weights, key) for key in ranking] == [10, 8, 6, 4, 2]

    def test_ranking_must_be_a_permutation(self):
        with pytest.raises(ValueError):
            weights_from_ranking(["fairness", "fairness", "constraints", "priority_level", "task_fulfillment"])
        with pytest.raises(ValueError):
            weights_from_ranking(["fairness"])

    def test_ranking_from_weights_is_stable_on_ties(self):
        assert ranking_from_weights(_make_weights(5, 5, 9, 1, 5)) == [
            "task_fulfillment", "fairness", "priority_level", "constraints", "worker_utilization",
        ]

    def test_ranking_presets_are_permutations(self):
        ranking = get_ranking_preset("Efficiency-Driven")
        assert sorted(ranking) == sorted(CRITERIA)
        assert get_ranking_preset("Nope") is None


class TestComparisonMatrix:
    def test_edit_keeps_reciprocal_and_diagonal(self):
        matrix = ComparisonMatrix()
        for i in range(5):
            for j in range(5):
                if i == j:
                    continue
                for value in (3, 1 / 7, 9):
                    matrix.set_comparison(i, j, value)
                    assert matrix.get(j, i) == pytest.approx(1 / value)
                    assert all(matrix.get(k, k) == 1 for k in range(5))

    def test_diagonal_edit_rejected(self):
        with pytest.raises(ValueError):
            ComparisonMatrix().set_comparison(2, 2, 3)

    def test_value_off_the_saaty_scale_rejected(self):
        with pytest.raises(ValueError):
            ComparisonMatrix().set_comparison(0, 1, 10)
        with pytest.raises(ValueError):
            ComparisonMatrix().set_comparison(0, 1, 2.5)

    def test_non_reciprocal_rows_rejected(self):
        rows = [[1] * 5 for _ in range(5)]
        rows[0][1] = 3
        with pytest.raises(ValueError):
            ComparisonMatrix.from_rows(rows)

    def test_non_square_rows_rejected(self):
        with pytest.raises(ValueError):
            ComparisonMatrix.from_rows([[1, 1], [1, 1], [1, 1]])


class TestAHP:
    def test_all_ones_matrix(self):
        result = derive_ahp_weights([[1] * 5 for _ in range(5)])
        assert result.normalized_weights == pytest.approx([0.2] * 5)
        assert result.consistency_ratio == pytest.approx(0, abs=1e-9)
        assert result.consistency_status == ConsistencyStatus.ACCEPTABLE
        assert result.priority_weights.as_list() == [10, 10, 10, 10, 10]
        assert result.warning is None

    def test_dominant_criterion_scores_ten(self):
        matrix = ComparisonMatrix()
        for j in range(1, 5):
            matrix.set_comparison(0, j, 5)
        result = derive_ahp_weights(matrix)
        assert result.priority_weights.fairness == 10
        assert max(result.priority_weights.as_list()[1:]) < 10
        assert sum(result.normalized_weights) == pytest.approx(1.0)

    def test_inconsistent_judgments_reported_not_rejected(self):
        result = derive_ahp_weights(_make_inconsistent_matrix())
        assert result.consistency_status == ConsistencyStatus.POOR
        assert result.warning.startswith("Poor consistency")

    def test_matrix_must_be_five_by_five(self):
        with pytest.raises(ValueError):
            derive_ahp_weights(ComparisonMatrix(size=3))

    @pytest.mark.parametrize("ratio, status", [
        (0.0, ConsistencyStatus.ACCEPTABLE),
        (0.10, ConsistencyStatus.ACCEPTABLE),
        (0.15, ConsistencyStatus.MARGINAL),
        (0.20, ConsistencyStatus.MARGINAL),
        (0.21, ConsistencyStatus.POOR),
    ])
    def test_classification(self, ratio, status):
        assert classify_consistency(ratio) == status


class TestPresets:
    def test_six_presets_on_ten_point_scale(self):
        presets = list_presets()
        assert len(presets) == 6
        for preset in presets:
            assert all(0 <= v <= 10 for v in preset.weights.as_list())

    def test_constraint_strict_weights(self):
        weights = get_preset(PresetProfile.CONSTRAINT_STRICT).weights
        assert weights.constraints == 10
        assert weights.worker_utilization == 4

    def test_custom_has_no_definition(self):
        with pytest.raises(KeyError):
            get_preset(PresetProfile.CUSTOM)

    def test_match_preset(self):
        balanced = PRESET_PROFILES[PresetProfile.BALANCED_APPROACH].weights
        assert match_preset(balanced) == PresetProfile.BALANCED_APPROACH
        assert match_preset(_make_weights(1, 2, 3, 4, 5)) is None

    def test_compare_weights(self):
        differences = compare_weights(_make_weights(9, 5, 5, 5, 5), _make_weights(5, 5, 5.5, 5, 7))
        assert [(d.criterion, d.diff, d.direction) for d in differences] == [
            ("fairness", 4, "higher"),
            ("constraints", 2, "lower"),
        ]
