"""Records kept by the performance tracker."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from recsys.core.contracts import (
    ExperimentStatus,
    RecommendationType,
    format_datetime,
    parse_datetime,
)


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class SuggestionType(str, Enum):
    """Areas an optimization suggestion targets."""

    ALGORITHM = "algorithm"
    CONFIGURATION = "configuration"
    CONTENT = "content"
    PRESENTATION = "presentation"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


@dataclass
class PerformanceMetrics:
    """Outcome of one presented recommendation.

    Created once at presentation time and mutated in place as
    interaction and rating events arrive.
    """

    rec_id: str
    user_id: str
    type: RecommendationType
    created_at: datetime
    updated_at: datetime
    position: int = 0
    page: str = "unknown"
    device: str = "desktop"
    time_of_day: int = 0
    day_of_week: int = 0
    session_duration: float = 0.0
    category: str = "general"
    experiment_id: str | None = None
    variant_id: str | None = None
    presented: bool = True
    viewed: bool = False
    clicked: bool = False
    bookmarked: bool = False
    shared: bool = False
    dismissed: bool = False
    rating: float | None = None
    time_to_click_ms: float | None = None
    time_spent: float | None = None  # seconds on the recommended content

    @property
    def converted(self) -> bool:
        """A bookmark is the conversion event."""
        return self.bookmarked

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "rec_id": self.rec_id,
            "user_id": self.user_id,
            "type": self.type.value,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "position": self.position,
            "page": self.page,
            "device": self.device,
            "time_of_day": self.time_of_day,
            "day_of_week": self.day_of_week,
            "session_duration": self.session_duration,
            "category": self.category,
            "experiment_id": self.experiment_id,
            "variant_id": self.variant_id,
            "presented": self.presented,
            "viewed": self.viewed,
            "clicked": self.clicked,
            "bookmarked": self.bookmarked,
            "shared": self.shared,
            "dismissed": self.dismissed,
            "rating": self.rating,
            "time_to_click_ms": self.time_to_click_ms,
            "time_spent": self.time_spent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PerformanceMetrics":
        """Create from dictionary."""
        return cls(
            rec_id=data["rec_id"],
            user_id=data["user_id"],
            type=RecommendationType(data["type"]),
            created_at=parse_datetime(data["created_at"]),
            updated_at=parse_datetime(data["updated_at"]),
            position=int(data.get("position", 0)),
            page=data.get("page", "unknown"),
            device=data.get("device", "desktop"),
            time_of_day=int(data.get("time_of_day", 0)),
            day_of_week=int(data.get("day_of_week", 0)),
            session_duration=float(data.get("session_duration", 0.0)),
            category=data.get("category", "general"),
            experiment_id=data.get("experiment_id"),
            variant_id=data.get("variant_id"),
            presented=data.get("presented", True),
            viewed=data.get("viewed", False),
            clicked=data.get("clicked", False),
            bookmarked=data.get("bookmarked", False),
            shared=data.get("shared", False),
            dismissed=data.get("dismissed", False),
            rating=data.get("rating"),
            time_to_click_ms=data.get("time_to_click_ms"),
            time_spent=data.get("time_spent"),
        )


@dataclass
class Feedback:
    """Explicit rating left on a recommendation."""

    rec_id: str
    user_id: str
    rating: float
    sentiment: Sentiment
    timestamp: datetime
    categories: list[str] = field(default_factory=list)  # relevant, accurate, ...
    comment: str | None = None
    feedback_type: str = "explicit"
    content_category: str = "general"

    def to_dict(self) -> dict[str, Any]:
        return {
            "rec_id": self.rec_id,
            "user_id": self.user_id,
            "rating": self.rating,
            "sentiment": self.sentiment.value,
            "timestamp": format_datetime(self.timestamp),
            "categories": list(self.categories),
            "comment": self.comment,
            "feedback_type": self.feedback_type,
            "content_category": self.content_category,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Feedback":
        return cls(
            rec_id=data["rec_id"],
            user_id=data["user_id"],
            rating=float(data["rating"]),
            sentiment=Sentiment(data.get("sentiment", "neutral")),
            timestamp=parse_datetime(data["timestamp"]),
            categories=list(data.get("categories", [])),
            comment=data.get("comment"),
            feedback_type=data.get("feedback_type", "explicit"),
            content_category=data.get("content_category", "general"),
        )


@dataclass
class Variant:
    """One arm of an A/B experiment."""

    variant_id: str
    name: str
    traffic_allocation: float
    description: str = ""
    config: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "name": self.name,
            "traffic_allocation": self.traffic_allocation,
            "description": self.description,
            "config": dict(self.config),
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Variant":
        return cls(
            variant_id=data.get("variant_id") or data["id"],
            name=data.get("name", ""),
            traffic_allocation=float(
                data.get("traffic_allocation", data.get("trafficAllocation", 0.0))
            ),
            description=data.get("description", ""),
            config=dict(data.get("config", {})),
            is_active=data.get("is_active", True),
        )


@dataclass
class VariantPerformance:
    sample_size: int = 0
    conversion_rate: float = 0.0
    click_through_rate: float = 0.0
    average_rating: float = 0.0
    engagement_rate: float = 0.0
    confidence_interval: tuple[float, float] = (0.0, 0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sample_size": self.sample_size,
            "conversion_rate": self.conversion_rate,
            "click_through_rate": self.click_through_rate,
            "average_rating": self.average_rating,
            "engagement_rate": self.engagement_rate,
            "confidence_interval": list(self.confidence_interval),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VariantPerformance":
        low, high = data.get("confidence_interval", (0.0, 0.0))
        return cls(
            sample_size=int(data.get("sample_size", 0)),
            conversion_rate=float(data.get("conversion_rate", 0.0)),
            click_through_rate=float(data.get("click_through_rate", 0.0)),
            average_rating=float(data.get("average_rating", 0.0)),
            engagement_rate=float(data.get("engagement_rate", 0.0)),
            confidence_interval=(float(low), float(high)),
        )


@dataclass
class VariantComparison:
    """Two-proportion z-test of one variant against the control."""

    variant_id: str
    z_score: float
    p_value: float
    effect_size: float
    significant: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "z_score": self.z_score,
            "p_value": self.p_value,
            "effect_size": self.effect_size,
            "significant": self.significant,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VariantComparison":
        return cls(
            variant_id=data["variant_id"],
            z_score=float(data.get("z_score", 0.0)),
            p_value=float(data.get("p_value", 1.0)),
            effect_size=float(data.get("effect_size", 0.0)),
            significant=data.get("significant", False),
        )


@dataclass
class ABTestResults:
    winning_variant: str | None
    statistical_significance: bool
    confidence_level: float
    p_value: float
    effect_size: float
    generated_at: datetime
    corrected_alpha: float = 0.05
    variant_performance: dict[str, VariantPerformance] = field(default_factory=dict)
    comparisons: list[VariantComparison] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "winning_variant": self.winning_variant,
            "statistical_significance": self.statistical_significance,
            "confidence_level": self.confidence_level,
            "p_value": self.p_value,
            "effect_size": self.effect_size,
            "generated_at": format_datetime(self.generated_at),
            "corrected_alpha": self.corrected_alpha,
            "variant_performance": {k: v.to_dict() for k, v in self.variant_performance.items()},
            "comparisons": [c.to_dict() for c in self.comparisons],
            "recommendations": list(self.recommendations),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ABTestResults":
        return cls(
            winning_variant=data.get("winning_variant"),
            statistical_significance=data.get("statistical_significance", False),
            confidence_level=float(data.get("confidence_level", 0.95)),
            p_value=float(data.get("p_value", 1.0)),
            effect_size=float(data.get("effect_size", 0.0)),
            generated_at=parse_datetime(data["generated_at"]),
            corrected_alpha=float(data.get("corrected_alpha", 0.05)),
            variant_performance={
                k: VariantPerformance.from_dict(v)
                for k, v in data.get("variant_performance", {}).items()
            },
            comparisons=[VariantComparison.from_dict(c) for c in data.get("comparisons", [])],
            recommendations=list(data.get("recommendations", [])),
        )


@dataclass
class Experiment:
    """A/B experiment. The first variant is the control."""

    experiment_id: str
    name: str
    variants: list[Variant]
    created_at: datetime
    description: str = ""
    hypothesis: str = ""
    metrics: list[str] = field(default_factory=lambda: ["conversion_rate"])
    target_sample_size: int = 1000
    current_sample_size: int = 0
    confidence_level: float = 0.95
    status: ExperimentStatus = ExperimentStatus.DRAFT
    results: ABTestResults | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def control(self) -> Variant:
        return self.variants[0]

    def get_variant(self, variant_id: str) -> Variant | None:
        for variant in self.variants:
            if variant.variant_id == variant_id:
                return variant
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "experiment_id": self.experiment_id,
            "name": self.name,
            "variants": [v.to_dict() for v in self.variants],
            "created_at": format_datetime(self.created_at),
            "description": self.description,
            "hypothesis": self.hypothesis,
            "metrics": list(self.metrics),
            "target_sample_size": self.target_sample_size,
            "current_sample_size": self.current_sample_size,
            "confidence_level": self.confidence_level,
            "status": self.status.value,
            "results": self.results.to_dict() if self.results else None,
            "started_at": format_datetime(self.started_at),
            "ended_at": format_datetime(self.ended_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Experiment":
        results = data.get("results")
        return cls(
            experiment_id=data["experiment_id"],
            name=data["name"],
            variants=[Variant.from_dict(v) for v in data.get("variants", [])],
            created_at=parse_datetime(data["created_at"]),
            description=data.get("description", ""),
            hypothesis=data.get("hypothesis", ""),
            metrics=list(data.get("metrics", ["conversion_rate"])),
            target_sample_size=int(data.get("target_sample_size", 1000)),
            current_sample_size=int(data.get("current_sample_size", 0)),
            confidence_level=float(data.get("confidence_level", 0.95)),
            status=ExperimentStatus(data.get("status", "draft")),
            results=ABTestResults.from_dict(results) if results else None,
            started_at=parse_datetime(data.get("started_at")),
            ended_at=parse_datetime(data.get("ended_at")),
        )


@dataclass
class PerformanceReport:
    """Aggregated recommendation outcomes over a period."""

    period_start: datetime
    period_end: datetime
    overall: dict[str, Any] = field(default_factory=dict)
    by_type: dict[str, dict[str, Any]] = field(default_factory=dict)
    by_context: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    trends: dict[str, Any] = field(default_factory=dict)
    top_performers: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    low_performers: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": {
                "start": format_datetime(self.period_start),
                "end": format_datetime(self.period_end),
            },
            "overall": dict(self.overall),
            "by_type": dict(self.by_type),
            "by_context": dict(self.by_context),
            "trends": dict(self.trends),
            "top_performers": dict(self.top_performers),
            "low_performers": list(self.low_performers),
        }


@dataclass
class OptimizationSuggestion:
    """Advisory, rule-derived improvement. Never applied automatically."""

    suggestion_id: str
    type: SuggestionType
    priority: Priority
    title: str
    description: str
    expected_impact: float
    implementation_effort: str
    created_at: datetime
    metrics: list[str] = field(default_factory=list)
    evidence: dict[str, Any] = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "suggestion_id": self.suggestion_id,
            "type": self.type.value,
            "priority": self.priority.value,
            "title": self.title,
            "description": self.description,
            "expected_impact": self.expected_impact,
            "implementation_effort": self.implementation_effort,
            "created_at": format_datetime(self.created_at),
            "metrics": list(self.metrics),
            "evidence": dict(self.evidence),
            "recommendations": list(self.recommendations),
        }
