"""Performance report aggregation over tracked recommendation outcomes."""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable

from recsys.tracking.models import PerformanceMetrics, PerformanceReport
from recsys.tracking.stats import mean

# Weighted outcome score used to rank performers
CLICK_WEIGHT = 0.3
BOOKMARK_WEIGHT = 0.7

LOW_PERFORMER_POSITION = 5
MAX_PERFORMERS = 10

ISSUE_LOW_CTR = "Very low click-through rate"
ISSUE_LOW_POSITION = "Consistently low ranking position"

IMPROVEMENTS = {
    ISSUE_LOW_CTR: ["Improve content relevance", "Enhance presentation"],
    ISSUE_LOW_POSITION: ["Review ranking algorithm", "Improve content quality score"],
}


@dataclass
class ReportFilters:
    user_id: str | None = None
    type: str | None = None
    page: str | None = None
    device: str | None = None
    experiment_id: str | None = None
    variant_id: str | None = None

    def matches(self, m: PerformanceMetrics) -> bool:
        if self.user_id and m.user_id != self.user_id:
            return False
        if self.type and m.type.value != self.type:
            return False
        if self.page and m.page != self.page:
            return False
        if self.device and m.device != self.device:
            return False
        if self.experiment_id and m.experiment_id != self.experiment_id:
            return False
        if self.variant_id and m.variant_id != self.variant_id:
            return False
        return True


def group_by(
    metrics: Iterable[PerformanceMetrics],
    key: Callable[[PerformanceMetrics], Any],
) -> dict[Any, list[PerformanceMetrics]]:
    groups: dict[Any, list[PerformanceMetrics]] = defaultdict(list)
    for m in metrics:
        groups[key(m)].append(m)
    return dict(groups)


def click_through_rate(metrics: list[PerformanceMetrics]) -> float:
    if not metrics:
        return 0.0
    return sum(1 for m in metrics if m.clicked) / len(metrics)


def conversion_rate(metrics: list[PerformanceMetrics]) -> float:
    if not metrics:
        return 0.0
    return sum(1 for m in metrics if m.converted) / len(metrics)


def average_rating(metrics: list[PerformanceMetrics]) -> float:
    return mean([m.rating for m in metrics if m.rating is not None])


def outcome_score(metrics: list[PerformanceMetrics]) -> float:
    if not metrics:
        return 0.0
    clicked = sum(1 for m in metrics if m.clicked)
    bookmarked = sum(1 for m in metrics if m.bookmarked)
    return (clicked * CLICK_WEIGHT + bookmarked * BOOKMARK_WEIGHT) / len(metrics)


def overall_metrics(metrics: list[PerformanceMetrics]) -> dict[str, Any]:
    return {
        "total_recommendations": len(metrics),
        "total_users": len({m.user_id for m in metrics}),
        "average_click_through_rate": click_through_rate(metrics),
        "average_conversion_rate": conversion_rate(metrics),
        "average_rating": average_rating(metrics),
        "average_time_to_click_ms": mean([m.time_to_click_ms for m in metrics if m.time_to_click_ms]),
        "average_time_spent": mean([m.time_spent for m in metrics if m.time_spent]),
        "dismissal_rate": (
            sum(1 for m in metrics if m.dismissed) / len(metrics) if metrics else 0.0
        ),
    }


def metrics_by_type(metrics: list[PerformanceMetrics]) -> dict[str, dict[str, Any]]:
    return {
        rec_type: {
            "count": len(group),
            "click_through_rate": click_through_rate(group),
            "conversion_rate": conversion_rate(group),
            "average_rating": average_rating(group),
            "average_position": mean([m.position for m in group]),
        }
        for rec_type, group in group_by(metrics, lambda m: m.type.value).items()
    }


def context_metrics(
    metrics: list[PerformanceMetrics],
    key: Callable[[PerformanceMetrics], Any],
) -> dict[str, dict[str, Any]]:
    return {
        str(value): {
            "count": len(group),
            "click_through_rate": click_through_rate(group),
            "conversion_rate": conversion_rate(group),
        }
        for value, group in group_by(metrics, key).items()
    }


def metrics_by_context(metrics: list[PerformanceMetrics]) -> dict[str, dict[str, dict[str, Any]]]:
    return {
        "by_page": context_metrics(metrics, lambda m: m.page),
        "by_device": context_metrics(metrics, lambda m: m.device),
        "by_time_of_day": context_metrics(metrics, lambda m: m.time_of_day),
        "by_day_of_week": context_metrics(metrics, lambda m: m.day_of_week),
    }


def growth_rate(daily: list[dict[str, Any]], days: int) -> float:
    """Relative CTR change of the last ``days`` points over the ``days`` before.

    Returns 0 when there are fewer than ``days`` points or no earlier window.
    """
    if days <= 0 or len(daily) < days:
        return 0.0
    recent = daily[-days:]
    previous = daily[-2 * days : -days]
    if not previous:
        return 0.0
    recent_avg = mean([d["click_through_rate"] for d in recent])
    previous_avg = mean([d["click_through_rate"] for d in previous])
    if previous_avg == 0:
        return 0.0
    return (recent_avg - previous_avg) / previous_avg


def trends(metrics: list[PerformanceMetrics]) -> dict[str, Any]:
    daily = [
        {
            "date": day,
            "count": len(group),
            "click_through_rate": click_through_rate(group),
            "conversion_rate": conversion_rate(group),
            "average_rating": average_rating(group),
        }
        for day, group in sorted(group_by(metrics, lambda m: m.created_at.date().isoformat()).items())
    ]
    return {
        "daily_metrics": daily,
        "weekly_growth": growth_rate(daily, 7),
        "monthly_growth": growth_rate(daily, 30),
    }


def top_performers(metrics: list[PerformanceMetrics]) -> dict[str, list[dict[str, Any]]]:
    recommendations = [
        {
            "rec_id": rec_id,
            "type": group[0].type.value,
            "score": outcome_score(group),
            "click_through_rate": click_through_rate(group),
            "conversion_rate": conversion_rate(group),
        }
        for rec_id, group in group_by(metrics, lambda m: m.rec_id).items()
    ]
    recommendations.sort(key=lambda r: (-r["score"], r["rec_id"]))

    categories = [
        {"category": category, "performance": outcome_score(group), "count": len(group)}
        for category, group in group_by(metrics, lambda m: m.category).items()
    ]
    categories.sort(key=lambda c: (-c["performance"], c["category"]))

    types = [
        {"type": rec_type, "performance": outcome_score(group), "count": len(group)}
        for rec_type, group in group_by(metrics, lambda m: m.type.value).items()
    ]
    types.sort(key=lambda t: (-t["performance"], t["type"]))

    return {
        "recommendations": recommendations[:MAX_PERFORMERS],
        "categories": categories,
        "types": types,
    }


def performance_issues(metrics: list[PerformanceMetrics], low_ctr: float) -> list[str]:
    issues = []
    if click_through_rate(metrics) < low_ctr:
        issues.append(ISSUE_LOW_CTR)
    if mean([m.position for m in metrics]) > LOW_PERFORMER_POSITION:
        issues.append(ISSUE_LOW_POSITION)
    return issues


def low_performers(metrics: list[PerformanceMetrics], low_ctr: float) -> list[dict[str, Any]]:
    results = []
    for rec_id, group in sorted(group_by(metrics, lambda m: m.rec_id).items()):
        if click_through_rate(group) >= low_ctr:
            continue
        issues = performance_issues(group, low_ctr)
        suggestions = [s for issue in issues for s in IMPROVEMENTS.get(issue, [])]
        results.append(
            {
                "rec_id": rec_id,
                "type": group[0].type.value,
                "issues": issues,
                "suggestions": suggestions,
            }
        )
        if len(results) >= MAX_PERFORMERS:
            break
    return results


def build_report(
    metrics: Iterable[PerformanceMetrics],
    start: datetime,
    end: datetime,
    filters: ReportFilters | None = None,
    low_ctr: float = 0.05,
) -> PerformanceReport:
    """Aggregate metrics presented within [start, end] that pass ``filters``."""
    filters = filters or ReportFilters()
    selected = [m for m in metrics if start <= m.created_at <= end and filters.matches(m)]

    return PerformanceReport(
        period_start=start,
        period_end=end,
        overall=overall_metrics(selected),
        by_type=metrics_by_type(selected),
        by_context=metrics_by_context(selected),
        trends=trends(selected),
        top_performers=top_performers(selected),
        low_performers=low_performers(selected, low_ctr),
    )
