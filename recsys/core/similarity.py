"""Similarity and distance metrics used for user-user comparison.

All functions are pure. Rating vectors are passed as ``{item_id: rating}``
mappings; preference vectors as ``{key: weight}`` mappings.
"""

import math
from dataclasses import dataclass
from typing import Mapping

# Weighted blend of rating-based and profile-based signals
SIMILARITY_WEIGHTS: dict[str, float] = {
    "pearson_correlation": 0.25,
    "cosine_similarity": 0.25,
    "jaccard_index": 0.15,
    "category_overlap": 0.15,
    "tag_similarity": 0.10,
    "behavior_similarity": 0.10,
}

# Minimum matrix size considered well-populated for confidence scaling
CONFIDENCE_ITEM_NORM = 10


@dataclass(frozen=True)
class SimilarityMetrics:
    """Rating-vector comparison over co-rated items."""

    pearson_correlation: float = 0.0
    cosine_similarity: float = 0.0
    jaccard_index: float = 0.0
    euclidean_distance: float = 1.0
    manhattan_distance: float = 1.0
    common_items: int = 0


@dataclass(frozen=True)
class SimilarityFactors:
    """Profile-derived similarity factors, each in [0, 1]."""

    category_overlap: float = 0.0
    tag_similarity: float = 0.0
    behavior_similarity: float = 0.0
    interest_alignment: float = 0.0
    temporal_patterns: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "category_overlap": self.category_overlap,
            "tag_similarity": self.tag_similarity,
            "behavior_similarity": self.behavior_similarity,
            "interest_alignment": self.interest_alignment,
            "temporal_patterns": self.temporal_patterns,
        }


def pearson_correlation(xs: list[float], ys: list[float]) -> float:
    """Pearson correlation of two paired samples, 0 when undefined."""
    if len(xs) != len(ys) or not xs:
        return 0.0

    n = len(xs)
    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_x2 = sum(x * x for x in xs)
    sum_y2 = sum(y * y for y in ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))

    numerator = sum_xy - (sum_x * sum_y / n)
    variance = (sum_x2 - sum_x * sum_x / n) * (sum_y2 - sum_y * sum_y / n)
    if variance <= 0:
        return 0.0
    return numerator / math.sqrt(variance)


def cosine_similarity(xs: list[float], ys: list[float]) -> float:
    """Cosine of the angle between two paired vectors, 0 when undefined."""
    if len(xs) != len(ys) or not xs:
        return 0.0

    dot = sum(x * y for x, y in zip(xs, ys))
    norm_x = math.sqrt(sum(x * x for x in xs))
    norm_y = math.sqrt(sum(y * y for y in ys))
    if norm_x == 0 or norm_y == 0:
        return 0.0
    return dot / (norm_x * norm_y)


def jaccard_index(a: set[str], b: set[str]) -> float:
    """Intersection over union of two sets."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def euclidean_distance(xs: list[float], ys: list[float]) -> float:
    if len(xs) != len(ys) or not xs:
        return 1.0
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(xs, ys)))


def manhattan_distance(xs: list[float], ys: list[float]) -> float:
    if len(xs) != len(ys) or not xs:
        return 1.0
    return sum(abs(x - y) for x, y in zip(xs, ys))


def rating_metrics(ratings1: Mapping[str, float], ratings2: Mapping[str, float]) -> SimilarityMetrics:
    """Compare two users' item ratings.

    With no co-rated items every metric reports zero similarity and
    maximum distance.
    """
    common = [item for item in ratings1 if item in ratings2]
    if not common:
        return SimilarityMetrics()

    xs = [ratings1[item] for item in common]
    ys = [ratings2[item] for item in common]
    return SimilarityMetrics(
        pearson_correlation=pearson_correlation(xs, ys),
        cosine_similarity=cosine_similarity(xs, ys),
        jaccard_index=jaccard_index(set(ratings1), set(ratings2)),
        euclidean_distance=euclidean_distance(xs, ys),
        manhattan_distance=manhattan_distance(xs, ys),
        common_items=len(common),
    )


def weight_overlap(weights1: Mapping[str, float], weights2: Mapping[str, float]) -> float:
    """Agreement between two weight vectors over the union of their keys.

    Each shared key contributes ``1 - |w1 - w2|``; keys present on only one
    side contribute nothing.
    """
    union = set(weights1) | set(weights2)
    if not union:
        return 0.0
    agreement = sum(1 - abs(weights1[k] - weights2[k]) for k in weights1 if k in weights2)
    return max(0.0, min(agreement / len(union), 1.0))


def distribution_similarity(counts1: Mapping[str, float], counts2: Mapping[str, float]) -> float:
    """Cosine similarity of two count distributions over the union of keys."""
    keys = sorted(set(counts1) | set(counts2))
    if not keys:
        return 0.0
    xs = [float(counts1.get(k, 0)) for k in keys]
    ys = [float(counts2.get(k, 0)) for k in keys]
    return max(0.0, cosine_similarity(xs, ys))


def combine_similarity(metrics: SimilarityMetrics, factors: SimilarityFactors) -> float:
    """Weighted composite similarity clamped to [0, 1]."""
    w = SIMILARITY_WEIGHTS
    score = (
        metrics.pearson_correlation * w["pearson_correlation"]
        + metrics.cosine_similarity * w["cosine_similarity"]
        + metrics.jaccard_index * w["jaccard_index"]
        + factors.category_overlap * w["category_overlap"]
        + factors.tag_similarity * w["tag_similarity"]
        + factors.behavior_similarity * w["behavior_similarity"]
    )
    return max(0.0, min(score, 1.0))


def similarity_confidence(common_items: int, size1: int, size2: int) -> float:
    """Confidence that degrades with sparse or non-overlapping data."""
    total = max(size1, size2)
    if total == 0 or common_items == 0:
        return 0.0
    overlap = common_items / total
    data_quality = min(size1, size2) / CONFIDENCE_ITEM_NORM
    return min(overlap * data_quality, 1.0)
