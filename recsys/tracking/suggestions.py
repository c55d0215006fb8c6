"""Rule-based optimization suggestions derived from recent outcomes.

Suggestions are advisory: they are stored for operators and never
change configuration on their own.
"""

import uuid
from datetime import datetime

from recsys.config import TrackerConfig
from recsys.tracking.models import (
    Feedback,
    OptimizationSuggestion,
    PerformanceMetrics,
    Priority,
    SuggestionType,
)
from recsys.tracking.reports import click_through_rate, context_metrics, group_by, metrics_by_type
from recsys.tracking.stats import mean

# Positions at or beyond this index are "lower" for ranking anomalies
LOWER_POSITION_START = 3
LOWER_POSITION_RATIO = 0.8


def _suggestion_id() -> str:
    return f"sug_{uuid.uuid4().hex[:12]}"


def algorithm_suggestions(
    metrics: list[PerformanceMetrics],
    config: TrackerConfig,
    now: datetime,
) -> list[OptimizationSuggestion]:
    by_type = metrics_by_type(metrics)
    low_types = sorted(
        t for t, perf in by_type.items() if perf["click_through_rate"] < config.low_ctr_threshold
    )
    if not low_types:
        return []

    return [
        OptimizationSuggestion(
            suggestion_id=_suggestion_id(),
            type=SuggestionType.ALGORITHM,
            priority=Priority.HIGH,
            title="Improve Low-Performing Recommendation Types",
            description=f"{', '.join(low_types)} recommendation types are underperforming",
            expected_impact=0.3,
            implementation_effort="medium",
            created_at=now,
            metrics=["click_through_rate", "conversion_rate"],
            evidence={
                "data_points": len(metrics),
                "confidence": 0.8,
                "supporting_metrics": by_type,
            },
            recommendations=[
                "Adjust algorithm weights",
                "Improve content similarity calculations",
                "Enhance user profiling",
            ],
        )
    ]


def configuration_suggestions(
    metrics: list[PerformanceMetrics],
    now: datetime,
) -> list[OptimizationSuggestion]:
    """Flag lower list positions that click nearly as well as the top one."""
    by_position = {
        position: click_through_rate(group)
        for position, group in group_by(metrics, lambda m: m.position).items()
    }
    ordered = sorted(by_position.items())
    if len(ordered) <= LOWER_POSITION_START:
        return []

    top_ctr = ordered[0][1]
    strong_lower = [
        position
        for position, ctr in ordered[LOWER_POSITION_START:]
        if ctr > top_ctr * LOWER_POSITION_RATIO
    ]
    if not strong_lower:
        return []

    return [
        OptimizationSuggestion(
            suggestion_id=_suggestion_id(),
            type=SuggestionType.CONFIGURATION,
            priority=Priority.MEDIUM,
            title="Optimize Recommendation Ranking",
            description="Some lower-positioned recommendations are performing better than expected",
            expected_impact=0.2,
            implementation_effort="low",
            created_at=now,
            metrics=["click_through_rate", "position"],
            evidence={
                "data_points": len(metrics),
                "confidence": 0.7,
                "supporting_metrics": {str(p): ctr for p, ctr in ordered},
            },
            recommendations=[
                "Review ranking algorithm",
                "Adjust scoring weights",
                "Consider position bias correction",
            ],
        )
    ]


def content_suggestions(
    feedback: list[Feedback],
    config: TrackerConfig,
    now: datetime,
) -> list[OptimizationSuggestion]:
    """Flag content categories whose explicit ratings average below the floor."""
    by_category: dict[str, list[float]] = {}
    for entry in feedback:
        by_category.setdefault(entry.content_category, []).append(entry.rating)

    averages = {category: mean(ratings) for category, ratings in by_category.items()}
    poor = sorted(c for c, avg in averages.items() if avg < config.low_rating_threshold)
    if not poor:
        return []

    return [
        OptimizationSuggestion(
            suggestion_id=_suggestion_id(),
            type=SuggestionType.CONTENT,
            priority=Priority.MEDIUM,
            title="Review Poorly Rated Content Categories",
            description=f"Users rate {', '.join(poor)} recommendations below {config.low_rating_threshold}",
            expected_impact=0.15,
            implementation_effort="medium",
            created_at=now,
            metrics=["average_rating"],
            evidence={
                "data_points": sum(len(by_category[c]) for c in poor),
                "confidence": 0.6,
                "supporting_metrics": {c: averages[c] for c in poor},
            },
            recommendations=[
                "Raise the minimum quality filter for these categories",
                "Reduce their share in content-based candidates",
            ],
        )
    ]


def presentation_suggestions(
    metrics: list[PerformanceMetrics],
    config: TrackerConfig,
    now: datetime,
) -> list[OptimizationSuggestion]:
    by_device = context_metrics(metrics, lambda m: m.device)
    mobile = by_device.get("mobile")
    desktop = by_device.get("desktop")
    if not mobile or not desktop:
        return []
    if mobile["click_through_rate"] >= desktop["click_through_rate"] * config.mobile_desktop_ratio:
        return []

    return [
        OptimizationSuggestion(
            suggestion_id=_suggestion_id(),
            type=SuggestionType.PRESENTATION,
            priority=Priority.HIGH,
            title="Optimize Mobile Presentation",
            description="Mobile click-through rates are significantly lower than desktop",
            expected_impact=0.25,
            implementation_effort="medium",
            created_at=now,
            metrics=["click_through_rate", "device"],
            evidence={
                "data_points": mobile["count"],
                "confidence": 0.8,
                "supporting_metrics": by_device,
            },
            recommendations=[
                "Improve mobile UI/UX",
                "Optimize for touch interactions",
                "Reduce cognitive load on mobile",
            ],
        )
    ]


def generate_suggestions(
    metrics: list[PerformanceMetrics],
    feedback: list[Feedback],
    config: TrackerConfig,
    now: datetime,
) -> list[OptimizationSuggestion]:
    """Run every rule and order results by priority, then expected impact."""
    suggestions = [
        *algorithm_suggestions(metrics, config, now),
        *configuration_suggestions(metrics, now),
        *content_suggestions(feedback, config, now),
        *presentation_suggestions(metrics, config, now),
    ]
    suggestions.sort(key=lambda s: (-s.priority.rank, -s.expected_impact))
    return suggestions
