"""A/B experiment validation, lifecycle, assignment and analysis."""

import hashlib
from datetime import datetime

from recsys.config import ALLOCATION_TOLERANCE
from recsys.core.contracts import ExperimentStatus
from recsys.core.errors import ExperimentStateError, InvariantViolationError
from recsys.tracking.models import (
    ABTestResults,
    Experiment,
    PerformanceMetrics,
    VariantComparison,
    VariantPerformance,
)
from recsys.tracking.stats import confidence_interval, mean, two_proportion_z_test

# (current status, action) -> next status
TRANSITIONS: dict[tuple[ExperimentStatus, str], ExperimentStatus] = {
    (ExperimentStatus.DRAFT, "start"): ExperimentStatus.RUNNING,
    (ExperimentStatus.RUNNING, "pause"): ExperimentStatus.PAUSED,
    (ExperimentStatus.RUNNING, "complete"): ExperimentStatus.COMPLETED,
    (ExperimentStatus.PAUSED, "resume"): ExperimentStatus.RUNNING,
    (ExperimentStatus.PAUSED, "complete"): ExperimentStatus.COMPLETED,
}

_HASH_SPACE = 2**64


def validate_experiment(experiment: Experiment) -> None:
    """Reject experiments whose variants cannot be routed.

    Raises:
        InvariantViolationError: Fewer than two variants, duplicate ids,
            allocations outside [0, 1], or allocations not summing to 1.0
    """
    if len(experiment.variants) < 2:
        raise InvariantViolationError("An experiment needs at least two variants")

    ids = [v.variant_id for v in experiment.variants]
    if len(set(ids)) != len(ids):
        raise InvariantViolationError(f"Duplicate variant ids: {', '.join(ids)}")

    for variant in experiment.variants:
        if not 0 <= variant.traffic_allocation <= 1:
            raise InvariantViolationError(
                f"Variant {variant.variant_id} allocation must be within [0, 1], "
                f"got {variant.traffic_allocation}"
            )

    total = sum(v.traffic_allocation for v in experiment.variants)
    if abs(total - 1.0) > ALLOCATION_TOLERANCE:
        raise InvariantViolationError(f"Variant traffic allocation must sum to 1.0, got {total:.4f}")


def transition(experiment: Experiment, action: str, now: datetime) -> Experiment:
    """Apply a lifecycle action in place.

    Raises:
        ExperimentStateError: The action is not allowed from the current state
    """
    target = TRANSITIONS.get((experiment.status, action))
    if target is None:
        raise ExperimentStateError(experiment.experiment_id, experiment.status.value, action)

    experiment.status = target
    if action == "start":
        experiment.started_at = now
    elif target is ExperimentStatus.COMPLETED:
        experiment.ended_at = now
    return experiment


def assignment_point(experiment_id: str, user_id: str) -> float:
    """Stable position of a user in [0, 1) for one experiment."""
    digest = hashlib.sha256(f"{experiment_id}:{user_id}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") / _HASH_SPACE


def assign_variant(experiment: Experiment, user_id: str) -> str | None:
    """Route a user to a variant by cumulative traffic allocation.

    Returns:
        Variant id, or None unless the experiment is running
    """
    if experiment.status is not ExperimentStatus.RUNNING:
        return None

    point = assignment_point(experiment.experiment_id, user_id)
    cumulative = 0.0
    for variant in experiment.variants:
        cumulative += variant.traffic_allocation
        if point < cumulative:
            return variant.variant_id
    return experiment.variants[-1].variant_id


def variant_performance(metrics: list[PerformanceMetrics]) -> VariantPerformance:
    if not metrics:
        return VariantPerformance()

    n = len(metrics)
    clicked = sum(1 for m in metrics if m.clicked)
    converted = sum(1 for m in metrics if m.converted)
    ratings = [m.rating for m in metrics if m.rating is not None]
    conversion_rate = converted / n
    return VariantPerformance(
        sample_size=n,
        conversion_rate=conversion_rate,
        click_through_rate=clicked / n,
        average_rating=mean(ratings),
        engagement_rate=(clicked + converted) / n,
        confidence_interval=confidence_interval(conversion_rate, n),
    )


def compare_to_control(
    performance: dict[str, VariantPerformance],
    control_id: str,
    alpha: float,
) -> tuple[list[VariantComparison], float]:
    """Pairwise control-vs-variant z-tests with a Bonferroni-corrected alpha.

    Returns:
        Comparisons for every variant with data, and the corrected alpha
    """
    control = performance[control_id]
    challengers = [vid for vid in performance if vid != control_id]
    corrected_alpha = alpha / max(len(challengers), 1)

    comparisons = []
    for variant_id in challengers:
        test = performance[variant_id]
        if control.sample_size == 0 or test.sample_size == 0:
            continue
        result = two_proportion_z_test(
            control.conversion_rate,
            control.sample_size,
            test.conversion_rate,
            test.sample_size,
        )
        comparisons.append(
            VariantComparison(
                variant_id=variant_id,
                z_score=result.z_score,
                p_value=result.p_value,
                effect_size=result.effect_size,
                significant=result.p_value < corrected_alpha,
            )
        )
    return comparisons, corrected_alpha


def ab_test_recommendations(
    performance: dict[str, VariantPerformance],
    comparisons: list[VariantComparison],
    control_id: str,
    min_sample: int,
) -> list[str]:
    """Plain-language next steps for an analyzed experiment."""
    control = performance[control_id]
    recommendations = []

    for comparison in comparisons:
        test = performance[comparison.variant_id]
        lift = (test.conversion_rate - control.conversion_rate) * 100
        if lift > 0 and comparison.significant:
            recommendations.append(
                f"Implement variant {comparison.variant_id} as it shows {lift:.1f}% improvement"
            )
        elif lift > 0:
            recommendations.append(
                f"Variant {comparison.variant_id} leads by {lift:.1f}% but the difference "
                f"is not yet significant"
            )
        else:
            recommendations.append(
                f"Keep control variant {control_id} as variant {comparison.variant_id} "
                f"did not show improvement"
            )

    if any(p.sample_size < min_sample for p in performance.values()):
        recommendations.append("Consider running the test longer to increase sample size")
    return recommendations


def analyze_experiment(
    experiment: Experiment,
    metrics: list[PerformanceMetrics],
    alpha: float,
    min_sample: int,
    now: datetime,
) -> ABTestResults:
    """Compare every variant against the control on conversion rate.

    Only metrics attributed to this experiment's variants are counted.
    """
    by_variant: dict[str, list[PerformanceMetrics]] = {v.variant_id: [] for v in experiment.variants}
    for m in metrics:
        if m.experiment_id == experiment.experiment_id and m.variant_id in by_variant:
            by_variant[m.variant_id].append(m)

    performance = {vid: variant_performance(ms) for vid, ms in by_variant.items()}
    control_id = experiment.control.variant_id
    comparisons, corrected_alpha = compare_to_control(performance, control_id, alpha)

    winning_variant = None
    significant = False
    p_value = 1.0
    effect_size = 0.0

    with_data = [vid for vid, p in performance.items() if p.sample_size > 0]
    if with_data:
        # Control wins ties
        winning_variant = max(
            with_data,
            key=lambda vid: (performance[vid].conversion_rate, vid == control_id),
        )
        leader = next((c for c in comparisons if c.variant_id == winning_variant), None)
        if leader is not None:
            significant = leader.significant
            p_value = leader.p_value
            effect_size = leader.effect_size
        elif comparisons:
            best = min(comparisons, key=lambda c: c.p_value)
            significant = best.significant
            p_value = best.p_value
            effect_size = best.effect_size

    return ABTestResults(
        winning_variant=winning_variant,
        statistical_significance=significant,
        confidence_level=experiment.confidence_level,
        p_value=p_value,
        effect_size=effect_size,
        generated_at=now,
        corrected_alpha=corrected_alpha,
        variant_performance=performance,
        comparisons=comparisons,
        recommendations=ab_test_recommendations(performance, comparisons, control_id, min_sample),
    )
