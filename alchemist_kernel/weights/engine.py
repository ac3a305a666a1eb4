"""
Weight Derivation Engine.

Three independent ways of producing a ``PriorityWeights`` vector:

- sliders: the 0-10 UI values are the weights
- ranking: a total order over the five criteria maps to 10, 8, 6, 4, 2
- AHP: geometric-mean weights from a reciprocal pairwise comparison
  matrix, checked with Saaty's consistency ratio

All three end on the same 0-10 scale and share ``normalize_weights`` for the
sum-to-one form used downstream. Invalid input (non-permutation ranking,
broken matrix, all-zero vector) raises ValueError; poor AHP consistency only
warns.
"""

import logging
import math
from typing import Dict, List, Sequence, Union

from alchemist_kernel.models.weights import (
    AHPResult,
    CRITERIA,
    ConsistencyStatus,
    PriorityWeights,
)

logger = logging.getLogger(__name__)

SLIDER_MIN = 0.0
SLIDER_MAX = 10.0

# Saaty's Random Index by matrix size
RANDOM_INDEX = [0, 0, 0.58, 0.9, 1.12, 1.24, 1.32, 1.41, 1.45, 1.49]

ACCEPTABLE_CR = 0.10
MARGINAL_CR = 0.20

SAATY_VALUES = tuple(range(1, 10))

_CAMEL_TO_CRITERION = {
    "fairness": "fairness",
    "priorityLevel": "priority_level",
    "taskFulfillment": "task_fulfillment",
    "workerUtilization": "worker_utilization",
    "constraints": "constraints",
}


def criterion_key(name: str) -> str:
    """Canonical (snake_case) criterion name; accepts camelCase aliases."""
    if name in CRITERIA:
        return name
    if name in _CAMEL_TO_CRITERION:
        return _CAMEL_TO_CRITERION[name]
    raise ValueError(f"unknown criterion: {name!r}")


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_weights(weights: PriorityWeights) -> PriorityWeights:
    """Divide every weight by the vector sum, so the result sums to 1.0."""
    total = weights.total()
    if total <= 0:
        raise ValueError("cannot normalize a weight vector that sums to zero")
    return PriorityWeights.from_list([value / total for value in weights.as_list()])


def to_percentages(weights: PriorityWeights) -> Dict[str, float]:
    """Share of each criterion in percent, rounded to one decimal."""
    normalized = normalize_weights(weights)
    return {key: _round_half_up(getattr(normalized, key) * 100, 1) for key in CRITERIA}


# ---------------------------------------------------------------------------
# Sliders
# ---------------------------------------------------------------------------

def weights_from_sliders(values: Union[PriorityWeights, Dict[str, float]]) -> PriorityWeights:
    if isinstance(values, PriorityWeights):
        values = {key: getattr(values, key) for key in CRITERIA}
    resolved = {criterion_key(name): float(value) for name, value in values.items()}
    missing = [key for key in CRITERIA if key not in resolved]
    if missing:
        raise ValueError(f"missing slider values for: {', '.join(missing)}")
    for key, value in resolved.items():
        if not SLIDER_MIN <= value <= SLIDER_MAX:
            raise ValueError(f"slider value for {key} must be within [0, 10], got {value}")
    if not any(resolved.values()):
        raise ValueError("at least one slider value must be above 0")
    return PriorityWeights(**resolved)


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def rank_weight(rank: int) -> int:
    """Weight for a 0-indexed rank: 10, 8, 6, 4, 2 (never below 1)."""
    return max(10 - 2 * rank, 1)


def weights_from_ranking(ranking: Sequence[str]) -> PriorityWeights:
    """Convert a most-to-least important ordering of all five criteria."""
    keys = [criterion_key(name) for name in ranking]
    if sorted(keys) != sorted(CRITERIA):
        raise ValueError("ranking must be a permutation of the five criteria")
    return PriorityWeights(**{key: rank_weight(index) for index, key in enumerate(keys)})


def ranking_from_weights(weights: PriorityWeights) -> List[str]:
    """Criteria ordered by descending weight; ties keep canonical order."""
    return sorted(CRITERIA, key=lambda key: -getattr(weights, key))


# ---------------------------------------------------------------------------
# AHP
# ---------------------------------------------------------------------------

def _is_saaty_value(value: float, tolerance: float = 1e-9) -> bool:
    if value <= 0:
        return False
    magnitude = value if value >= 1 else 1 / value
    return any(abs(magnitude - allowed) <= tolerance for allowed in SAATY_VALUES)


class ComparisonMatrix:
    """
    A reciprocal pairwise comparison matrix over the criteria.

    ``M[i][j]`` says how much more important criterion i is than j. The
    diagonal stays 1 and every edit writes the reciprocal cell as well.
    """

    def __init__(self, size: int = len(CRITERIA)):
        if size < 1:
            raise ValueError("comparison matrix must have at least one row")
        self._values: List[List[float]] = [[1.0] * size for _ in range(size)]

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[float]], tolerance: float = 1e-6) -> "ComparisonMatrix":
        size = len(rows)
        if size == 0 or any(len(row) != size for row in rows):
            raise ValueError("comparison matrix must be square")
        matrix = cls(size)
        for i in range(size):
            if abs(rows[i][i] - 1.0) > tolerance:
                raise ValueError(f"diagonal entry ({i}, {i}) must be 1")
            for j in range(size):
                value = float(rows[i][j])
                if value <= 0:
                    raise ValueError(f"entry ({i}, {j}) must be positive")
                if abs(value * float(rows[j][i]) - 1.0) > tolerance:
                    raise ValueError(f"entries ({i}, {j}) and ({j}, {i}) are not reciprocal")
                matrix._values[i][j] = value
        return matrix

    @property
    def size(self) -> int:
        return len(self._values)

    @property
    def rows(self) -> List[List[float]]:
        return [list(row) for row in self._values]

    def get(self, i: int, j: int) -> float:
        return self._values[i][j]

    def set_comparison(self, i: int, j: int, value: float) -> None:
        """Set M[i][j] to a Saaty value (1-9 or a reciprocal) and M[j][i] to 1/value."""
        if i == j:
            raise ValueError("diagonal entries are fixed at 1")
        if not (0 <= i < self.size and 0 <= j < self.size):
            raise ValueError(f"cell ({i}, {j}) is outside a {self.size}x{self.size} matrix")
        value = float(value)
        if not _is_saaty_value(value):
            raise ValueError(f"{value} is not on Saaty's 1-9 scale")
        self._values[i][j] = value
        self._values[j][i] = 1.0 / value


def geometric_mean_weights(rows: Sequence[Sequence[float]]) -> List[float]:
    """Row geometric means, normalized to sum 1."""
    size = len(rows)
    means = [math.prod(row) ** (1 / size) for row in rows]
    total = sum(means)
    return [mean / total for mean in means]


def consistency_metrics(rows: Sequence[Sequence[float]], weights: Sequence[float]) -> Dict[str, float]:
    """Approximate lambda max, consistency index and consistency ratio."""
    size = len(rows)
    lambda_max = sum(
        sum(rows[i][j] * weights[j] for j in range(size)) / weights[i]
        for i in range(size)
    ) / size
    if size < 3:
        return {"lambda_max": lambda_max, "consistency_index": 0.0, "consistency_ratio": 0.0}

    ci = (lambda_max - size) / (size - 1)
    ri = RANDOM_INDEX[size] if size < len(RANDOM_INDEX) else RANDOM_INDEX[-1]
    cr = ci / ri
    # Consistent matrices land a hair below zero through rounding
    if abs(ci) < 1e-12:
        ci, cr = 0.0, 0.0
    return {"lambda_max": lambda_max, "consistency_index": ci, "consistency_ratio": cr}


def classify_consistency(consistency_ratio: float) -> ConsistencyStatus:
    if consistency_ratio <= ACCEPTABLE_CR:
        return ConsistencyStatus.ACCEPTABLE
    if consistency_ratio <= MARGINAL_CR:
        return ConsistencyStatus.MARGINAL
    return ConsistencyStatus.POOR


def derive_ahp_weights(matrix: Union[ComparisonMatrix, Sequence[Sequence[float]]]) -> AHPResult:
    """
    Derive weights from a 5x5 comparison matrix.

    The result carries the normalized geometric-mean weights, the same weights
    scaled to 0-10 (top criterion exactly 10, one decimal) and the consistency
    figures. Poor consistency is reported, never rejected.
    """
    if not isinstance(matrix, ComparisonMatrix):
        matrix = ComparisonMatrix.from_rows(matrix)
    if matrix.size != len(CRITERIA):
        raise ValueError(f"AHP matrix must be {len(CRITERIA)}x{len(CRITERIA)}")

    rows = matrix.rows
    weights = geometric_mean_weights(rows)
    metrics = consistency_metrics(rows, weights)
    status = classify_consistency(metrics["consistency_ratio"])

    top = max(weights)
    scaled = PriorityWeights.from_list([_round_half_up(w / top * 10, 1) for w in weights])

    warning = None
    cr_percent = metrics["consistency_ratio"] * 100
    if status == ConsistencyStatus.POOR:
        warning = (
            f"Poor consistency (CR {cr_percent:.1f}%): review your judgments and ensure "
            f"logical consistency across all pairwise comparisons"
        )
        logger.warning("AHP comparison matrix is inconsistent: CR=%.3f", metrics["consistency_ratio"])
    elif status == ConsistencyStatus.MARGINAL:
        warning = f"Marginal consistency (CR {cr_percent:.1f}%): some comparisons may be inconsistent"

    return AHPResult(
        normalized_weights=weights,
        priority_weights=scaled,
        lambda_max=metrics["lambda_max"],
        consistency_index=metrics["consistency_index"],
        consistency_ratio=metrics["consistency_ratio"],
        consistency_status=status,
        warning=warning,
    )
