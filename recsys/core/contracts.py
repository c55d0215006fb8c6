"""Domain contracts and type definitions."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Protocol

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock used by every component."""
    return datetime.now(timezone.utc)


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an ISO timestamp produced by ``to_dict`` helpers."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def format_datetime(value: datetime | None) -> str | None:
    """Serialize a timestamp for storage."""
    return value.isoformat() if value is not None else None


class InteractionType(str, Enum):
    """Item-level engagement events fed to collaborative filtering and trending."""

    VIEW = "view"
    BOOKMARK = "bookmark"
    COMMENT = "comment"
    SHARE = "share"
    FAVORITE = "favorite"


class ProfileAction(str, Enum):
    """User actions that shape a profile's learned preferences."""

    VIEW = "view"
    BOOKMARK = "bookmark"
    SHARE = "share"
    FAVORITE = "favorite"
    COMMENT = "comment"
    EDIT = "edit"
    DELETE = "delete"


class RecommendationType(str, Enum):
    """Recommendation strategies."""

    CONTENT_BASED = "content-based"
    COLLABORATIVE = "collaborative"
    TRENDING = "trending"
    HYBRID = "hybrid"


class TimeWindow(str, Enum):
    """Trending time horizons."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def hours(self) -> int:
        return {"hour": 1, "day": 24, "week": 24 * 7, "month": 24 * 30}[self.value]


class ContentType(str, Enum):
    """Kinds of saved content."""

    ARTICLE = "article"
    VIDEO = "video"
    DOCUMENTATION = "documentation"
    TUTORIAL = "tutorial"
    NEWS = "news"
    RESEARCH = "research"


class TrackedInteraction(str, Enum):
    """Interactions with a presented recommendation."""

    VIEWED = "viewed"
    CLICKED = "clicked"
    BOOKMARKED = "bookmarked"
    DISMISSED = "dismissed"
    SHARED = "shared"
    TIME_SPENT = "time_spent"


class ExperimentStatus(str, Enum):
    """A/B experiment lifecycle states."""

    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


# Profile actions that also count as item engagement
PROFILE_TO_INTERACTION: dict[ProfileAction, InteractionType] = {
    ProfileAction.VIEW: InteractionType.VIEW,
    ProfileAction.BOOKMARK: InteractionType.BOOKMARK,
    ProfileAction.SHARE: InteractionType.SHARE,
    ProfileAction.FAVORITE: InteractionType.FAVORITE,
    ProfileAction.COMMENT: InteractionType.COMMENT,
}


@dataclass
class ContentItem:
    """An extracted or enriched content record that can be recommended."""

    item_id: str
    title: str = ""
    url: str | None = None
    description: str = ""
    category: str = "general"
    tags: list[str] = field(default_factory=list)
    content_type: str | None = None
    language: str = "en"
    quality: float = 70.0  # 0-100 from the quality scorer
    reading_time: int = 5  # minutes
    domain: str | None = None
    published_at: datetime | None = None
    related_items: list[str] = field(default_factory=list)

    @property
    def target(self) -> str:
        """Stable key used to merge candidates across strategies."""
        return self.url or self.item_id

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "item_id": self.item_id,
            "title": self.title,
            "url": self.url,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
            "content_type": self.content_type,
            "language": self.language,
            "quality": self.quality,
            "reading_time": self.reading_time,
            "domain": self.domain,
            "published_at": format_datetime(self.published_at),
            "related_items": list(self.related_items),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContentItem":
        """Create from dictionary."""
        return cls(
            item_id=data["item_id"],
            title=data.get("title", ""),
            url=data.get("url"),
            description=data.get("description", ""),
            category=data.get("category") or "general",
            tags=list(data.get("tags", [])),
            content_type=data.get("content_type"),
            language=data.get("language", "en"),
            quality=float(data.get("quality", 70.0)),
            reading_time=int(data.get("reading_time", 5)),
            domain=data.get("domain"),
            published_at=parse_datetime(data.get("published_at")),
            related_items=list(data.get("related_items", [])),
        )


@dataclass
class RecommendationFilters:
    """Caller-supplied restrictions applied to every strategy."""

    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    domains: list[str] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)
    content_types: list[str] = field(default_factory=list)
    min_quality: float | None = None
    max_age_days: float | None = None
    exclude_items: list[str] = field(default_factory=list)


@dataclass
class RecommendationContext:
    """Where and when the recommendations will be shown."""

    current_page: str | None = None
    current_item: str | None = None
    session_duration: float | None = None
    recent_actions: list[str] = field(default_factory=list)
    time_of_day: int | None = None  # hour 0-23
    day_of_week: int | None = None  # 0 = Monday
    device: str = "desktop"


@dataclass
class RecommendationRequest:
    """Input to ``RecommendationEngine.generate``."""

    user_id: str
    count: int = 10
    types: list[RecommendationType] = field(
        default_factory=lambda: [
            RecommendationType.CONTENT_BASED,
            RecommendationType.COLLABORATIVE,
            RecommendationType.TRENDING,
            RecommendationType.HYBRID,
        ]
    )
    filters: RecommendationFilters = field(default_factory=RecommendationFilters)
    context: RecommendationContext = field(default_factory=RecommendationContext)
    # Per-request strategy proportions, used by A/B variants
    strategy_mix: dict[str, float] | None = None
    experiment_id: str | None = None
    variant_id: str | None = None


@dataclass(frozen=True)
class RecommendationMetadata:
    """Descriptive attributes attached to a recommendation."""

    category: str = "general"
    tags: tuple[str, ...] = ()
    estimated_reading_time: int = 5
    content_quality: float = 70.0
    freshness: float = 1.0
    similarity: float = 0.0
    popularity: float = 0.0
    personal_relevance: float = 0.0
    source: str = "unknown"
    related_items: tuple[str, ...] = ()
    language: str = "en"
    content_type: str | None = None
    published_at: datetime | None = None
    experiment_id: str | None = None
    variant_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "category": self.category,
            "tags": list(self.tags),
            "estimated_reading_time": self.estimated_reading_time,
            "content_quality": self.content_quality,
            "freshness": self.freshness,
            "similarity": self.similarity,
            "popularity": self.popularity,
            "personal_relevance": self.personal_relevance,
            "source": self.source,
            "related_items": list(self.related_items),
            "language": self.language,
            "content_type": self.content_type,
            "published_at": format_datetime(self.published_at),
            "experiment_id": self.experiment_id,
            "variant_id": self.variant_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecommendationMetadata":
        """Create from dictionary."""
        return cls(
            category=data.get("category", "general"),
            tags=tuple(data.get("tags", ())),
            estimated_reading_time=int(data.get("estimated_reading_time", 5)),
            content_quality=float(data.get("content_quality", 70.0)),
            freshness=float(data.get("freshness", 1.0)),
            similarity=float(data.get("similarity", 0.0)),
            popularity=float(data.get("popularity", 0.0)),
            personal_relevance=float(data.get("personal_relevance", 0.0)),
            source=data.get("source", "unknown"),
            related_items=tuple(data.get("related_items", ())),
            language=data.get("language", "en"),
            content_type=data.get("content_type"),
            published_at=parse_datetime(data.get("published_at")),
            experiment_id=data.get("experiment_id"),
            variant_id=data.get("variant_id"),
        )


@dataclass(frozen=True)
class Recommendation:
    """A single ranked, explained recommendation. Immutable once created."""

    rec_id: str
    user_id: str
    type: RecommendationType
    target: str
    title: str
    score: float
    confidence: float
    reasoning: tuple[str, ...]
    metadata: RecommendationMetadata
    created_at: datetime
    expires_at: datetime
    item_id: str | None = None
    url: str | None = None
    description: str = ""

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "rec_id": self.rec_id,
            "user_id": self.user_id,
            "type": self.type.value,
            "target": self.target,
            "title": self.title,
            "score": self.score,
            "confidence": self.confidence,
            "reasoning": list(self.reasoning),
            "metadata": self.metadata.to_dict(),
            "created_at": format_datetime(self.created_at),
            "expires_at": format_datetime(self.expires_at),
            "item_id": self.item_id,
            "url": self.url,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Recommendation":
        """Create from dictionary."""
        return cls(
            rec_id=data["rec_id"],
            user_id=data["user_id"],
            type=RecommendationType(data["type"]),
            target=data["target"],
            title=data.get("title", ""),
            score=float(data["score"]),
            confidence=float(data["confidence"]),
            reasoning=tuple(data.get("reasoning", ())),
            metadata=RecommendationMetadata.from_dict(data.get("metadata", {})),
            created_at=parse_datetime(data["created_at"]),
            expires_at=parse_datetime(data["expires_at"]),
            item_id=data.get("item_id"),
            url=data.get("url"),
            description=data.get("description", ""),
        )


class ContentSource(Protocol):
    """Protocol for the content catalog fed by the extraction pipeline."""

    async def get_item(self, item_id: str) -> ContentItem | None:
        """Look up a single item."""
        ...

    async def find_items(
        self,
        filters: RecommendationFilters,
        exclude: set[str] | None = None,
    ) -> list[ContentItem]:
        """Return candidate items matching the filters."""
        ...
