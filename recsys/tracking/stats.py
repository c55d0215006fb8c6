"""Statistics helpers for A/B analysis."""

import math
from dataclasses import dataclass

Z_95 = 1.96


def normal_cdf(x: float) -> float:
    return 0.5 * (1 + math.erf(x / math.sqrt(2)))


@dataclass(frozen=True)
class ZTestResult:
    z_score: float
    p_value: float
    effect_size: float
    pooled_proportion: float


def two_proportion_z_test(p1: float, n1: int, p2: float, n2: int) -> ZTestResult:
    """Two-tailed z-test for a difference between two proportions.

    Args:
        p1: Control proportion
        n1: Control sample size
        p2: Test proportion
        n2: Test sample size

    Returns:
        z-score, p-value, absolute effect size and pooled proportion
    """
    effect = abs(p2 - p1)
    if n1 <= 0 or n2 <= 0:
        return ZTestResult(z_score=0.0, p_value=1.0, effect_size=effect, pooled_proportion=0.0)

    pooled = (p1 * n1 + p2 * n2) / (n1 + n2)
    se = math.sqrt(pooled * (1 - pooled) * (1 / n1 + 1 / n2))
    # No variance in either group: identical rates are indistinguishable,
    # different rates are a deterministic difference.
    if se == 0:
        return ZTestResult(
            z_score=0.0 if effect == 0 else math.inf,
            p_value=1.0 if effect == 0 else 0.0,
            effect_size=effect,
            pooled_proportion=pooled,
        )

    z = effect / se
    p_value = 2 * (1 - normal_cdf(abs(z)))
    return ZTestResult(
        z_score=z,
        p_value=max(0.0, min(p_value, 1.0)),
        effect_size=effect,
        pooled_proportion=pooled,
    )


def confidence_interval(proportion: float, sample_size: int, z: float = Z_95) -> tuple[float, float]:
    """Normal-approximation interval for a proportion, clipped to [0, 1]."""
    if sample_size <= 0:
        return (0.0, 0.0)
    se = math.sqrt(proportion * (1 - proportion) / sample_size)
    return (max(0.0, proportion - z * se), min(1.0, proportion + z * se))


def mean(xs: list[float]) -> float:
    if not xs:
        return 0.0
    return sum(xs) / len(xs)


def percentile(xs: list[float], q: float) -> float:
    """Linear-interpolated percentile, ``q`` in [0, 100]."""
    if not xs:
        return 0.0
    ordered = sorted(xs)
    if len(ordered) == 1:
        return ordered[0]
    rank = (len(ordered) - 1) * max(0.0, min(q, 100.0)) / 100
    low = math.floor(rank)
    high = math.ceil(rank)
    if low == high:
        return ordered[low]
    return ordered[low] + (ordered[high] - ordered[low]) * (rank - low)
