"""Recommendation service configuration loaded from environment variables."""

import math
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

STRATEGY_TYPES = ("content-based", "collaborative", "trending", "hybrid")
TIME_WINDOWS = ("hour", "day", "week", "month")
SCORE_COMPONENTS = (
    "popularity",
    "velocity",
    "acceleration",
    "freshness",
    "quality",
    "diversity",
    "sustainability",
)

ALLOCATION_TOLERANCE = 0.001


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.lower() in ("true", "1", "yes")


def _get_csv(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    values = tuple(v.strip().lower() for v in raw.split(",") if v.strip())
    return values or default


def _check_weights(name: str, weights: dict[str, float], keys: tuple[str, ...]) -> None:
    missing = [k for k in keys if k not in weights]
    if missing:
        raise ConfigurationError(f"{name} is missing keys: {', '.join(missing)}")
    for key, value in weights.items():
        if value < 0 or value > 1:
            raise ConfigurationError(f"{name}[{key}] must be within [0, 1], got {value}")
    total = sum(weights[k] for k in keys)
    if abs(total - 1.0) > ALLOCATION_TOLERANCE:
        raise ConfigurationError(f"{name} must sum to 1.0, got {total:.4f}")


@dataclass(frozen=True)
class CollaborativeFilterConfig:
    """Collaborative filtering thresholds and weights."""

    min_similarity_threshold: float = 0.3
    max_similar_users: int = 50
    min_supporting_users: int = 3
    # Per-day exponential decay rate for interaction weights and ratings
    decay_factor: float = 0.1
    diversity_weight: float = 0.2
    novelty_weight: float = 0.1
    confidence_threshold: float = 0.5
    # Users processed between event-loop yields during similarity sweeps
    sweep_batch_size: int = 50

    def __post_init__(self) -> None:
        if self.max_similar_users < 1:
            raise ConfigurationError("max_similar_users must be >= 1")
        if self.min_supporting_users < 1:
            raise ConfigurationError("min_supporting_users must be >= 1")
        if self.decay_factor < 0:
            raise ConfigurationError("decay_factor must be >= 0")
        if self.sweep_batch_size < 1:
            raise ConfigurationError("sweep_batch_size must be >= 1")

    @property
    def half_life_days(self) -> float:
        """Days until an interaction weight halves under ``decay_factor``."""
        if self.decay_factor == 0:
            return float("inf")
        return math.log(2) / self.decay_factor

    @classmethod
    def from_env(cls) -> "CollaborativeFilterConfig":
        """Load collaborative filter settings from environment variables."""
        return cls(
            min_similarity_threshold=_get_float("RECS_SIMILARITY_THRESHOLD", 0.3),
            max_similar_users=_get_int("RECS_MAX_SIMILAR_USERS", 50),
            min_supporting_users=_get_int("RECS_MIN_SUPPORTING_USERS", 3),
            decay_factor=_get_float("RECS_DECAY_FACTOR", 0.1),
            diversity_weight=_get_float("RECS_DIVERSITY_WEIGHT", 0.2),
            novelty_weight=_get_float("RECS_NOVELTY_WEIGHT", 0.1),
            confidence_threshold=_get_float("RECS_CONFIDENCE_THRESHOLD", 0.5),
            sweep_batch_size=_get_int("RECS_SWEEP_BATCH_SIZE", 50),
        )


def _default_score_weights() -> dict[str, float]:
    return {
        "popularity": 0.25,
        "velocity": 0.20,
        "acceleration": 0.15,
        "freshness": 0.15,
        "quality": 0.10,
        "diversity": 0.10,
        "sustainability": 0.05,
    }


@dataclass(frozen=True)
class TrendingConfig:
    """Trending discovery thresholds, score weights and maintenance cadence."""

    time_windows: tuple[str, ...] = TIME_WINDOWS
    categories: tuple[str, ...] = (
        "technology",
        "business",
        "science",
        "entertainment",
        "education",
        "health",
        "lifestyle",
    )
    min_views: int = 10
    min_bookmarks: int = 3
    min_unique_users: int = 5
    score_weights: dict[str, float] = field(default_factory=_default_score_weights)
    max_items_per_category: int = 50
    update_frequency_minutes: int = 15
    # Per-hour exponential decay rate for freshness
    decay_factor: float = 0.1
    retention_days: int = 30
    # Event timestamps retained per item for velocity/acceleration
    max_event_history: int = 500

    def __post_init__(self) -> None:
        _check_weights("score_weights", self.score_weights, SCORE_COMPONENTS)
        unknown = [w for w in self.time_windows if w not in TIME_WINDOWS]
        if unknown:
            raise ConfigurationError(f"Unknown time windows: {', '.join(unknown)}")
        if not self.categories:
            raise ConfigurationError("At least one trending category is required")
        if self.update_frequency_minutes < 1:
            raise ConfigurationError("update_frequency_minutes must be >= 1")

    @classmethod
    def from_env(cls) -> "TrendingConfig":
        """Load trending settings from environment variables."""
        defaults = cls()
        return cls(
            categories=_get_csv("TRENDING_CATEGORIES", defaults.categories),
            min_views=_get_int("TRENDING_MIN_VIEWS", 10),
            min_bookmarks=_get_int("TRENDING_MIN_BOOKMARKS", 3),
            min_unique_users=_get_int("TRENDING_MIN_UNIQUE_USERS", 5),
            max_items_per_category=_get_int("TRENDING_MAX_ITEMS_PER_CATEGORY", 50),
            update_frequency_minutes=_get_int("TRENDING_UPDATE_MINUTES", 15),
            decay_factor=_get_float("TRENDING_DECAY_FACTOR", 0.1),
            retention_days=_get_int("TRENDING_RETENTION_DAYS", 30),
        )


def _default_strategy_mix() -> dict[str, float]:
    return {
        "content-based": 0.4,
        "collaborative": 0.3,
        "trending": 0.2,
        "hybrid": 0.1,
    }


def _default_hybrid_weights() -> dict[str, float]:
    return {
        "content-based": 0.4,
        "collaborative": 0.3,
        "trending": 0.2,
    }


def _default_ttl_hours() -> dict[str, float]:
    return {
        "content-based": 24.0,
        "collaborative": 12.0,
        "trending": 6.0,
    }


@dataclass(frozen=True)
class EngineConfig:
    """Recommendation engine strategy mix, thresholds and caching."""

    strategy_mix: dict[str, float] = field(default_factory=_default_strategy_mix)
    content_threshold: float = 0.3
    collaborative_threshold: float = 0.2
    trending_threshold: float = 0.3
    hybrid_weights: dict[str, float] = field(default_factory=_default_hybrid_weights)
    hybrid_diversity_weight: float = 0.1
    ttl_hours: dict[str, float] = field(default_factory=_default_ttl_hours)
    cache_ttl_minutes: int = 30
    generation_timeout_seconds: float = 10.0
    # Each strategy asks its source for this many times its share before truncating
    overgeneration_factor: int = 3
    trending_window: str = "day"

    def __post_init__(self) -> None:
        _check_weights("strategy_mix", self.strategy_mix, STRATEGY_TYPES)
        if self.trending_window not in TIME_WINDOWS:
            raise ConfigurationError(f"Unknown trending window: {self.trending_window}")
        if self.generation_timeout_seconds <= 0:
            raise ConfigurationError("generation_timeout_seconds must be > 0")
        if self.overgeneration_factor < 1:
            raise ConfigurationError("overgeneration_factor must be >= 1")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load engine settings from environment variables.

        ``RECS_STRATEGY_MIX`` is a comma-separated list of four proportions in
        content-based, collaborative, trending, hybrid order.
        """
        strategy_mix = _default_strategy_mix()
        raw_mix = os.getenv("RECS_STRATEGY_MIX")
        if raw_mix:
            try:
                parts = [float(p) for p in raw_mix.split(",")]
            except ValueError:
                raise ConfigurationError(f"RECS_STRATEGY_MIX must be numeric, got: {raw_mix}")
            if len(parts) != len(STRATEGY_TYPES):
                raise ConfigurationError("RECS_STRATEGY_MIX needs exactly four values")
            strategy_mix = dict(zip(STRATEGY_TYPES, parts))

        return cls(
            strategy_mix=strategy_mix,
            content_threshold=_get_float("RECS_CONTENT_THRESHOLD", 0.3),
            collaborative_threshold=_get_float("RECS_COLLABORATIVE_THRESHOLD", 0.2),
            trending_threshold=_get_float("RECS_TRENDING_THRESHOLD", 0.3),
            hybrid_diversity_weight=_get_float("RECS_HYBRID_DIVERSITY_WEIGHT", 0.1),
            cache_ttl_minutes=_get_int("RECS_CACHE_TTL_MINUTES", 30),
            generation_timeout_seconds=_get_float("RECS_GENERATION_TIMEOUT_SECONDS", 10.0),
            overgeneration_factor=_get_int("RECS_OVERGENERATION_FACTOR", 3),
            trending_window=os.getenv("RECS_TRENDING_WINDOW", "day").lower(),
        )


@dataclass(frozen=True)
class TrackerConfig:
    """Performance tracking, A/B analysis and optimization rule thresholds."""

    significance_level: float = 0.05
    suggestion_interval_minutes: int = 60
    suggestion_lookback_hours: int = 24
    low_ctr_threshold: float = 0.10
    mobile_desktop_ratio: float = 0.7
    low_performer_ctr: float = 0.05
    low_rating_threshold: float = 2.5
    min_recommended_sample: int = 1000

    def __post_init__(self) -> None:
        if not 0 < self.significance_level < 1:
            raise ConfigurationError("significance_level must be within (0, 1)")

    @classmethod
    def from_env(cls) -> "TrackerConfig":
        """Load tracker settings from environment variables."""
        return cls(
            significance_level=_get_float("AB_SIGNIFICANCE_LEVEL", 0.05),
            suggestion_interval_minutes=_get_int("SUGGESTIONS_INTERVAL_MINUTES", 60),
            suggestion_lookback_hours=_get_int("SUGGESTIONS_LOOKBACK_HOURS", 24),
            low_ctr_threshold=_get_float("SUGGESTIONS_LOW_CTR", 0.10),
            mobile_desktop_ratio=_get_float("SUGGESTIONS_MOBILE_RATIO", 0.7),
        )


@dataclass(frozen=True)
class Config:
    """Top-level service configuration."""

    log_level: str = "INFO"
    database_url: str | None = None
    scheduler_enabled: bool = True
    collaborative: CollaborativeFilterConfig = field(default_factory=CollaborativeFilterConfig)
    trending: TrendingConfig = field(default_factory=TrendingConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        database_url = os.getenv("DATABASE_URL") or None
        scheduler_enabled = _get_bool("SCHEDULER_ENABLED", True)

        return cls(
            log_level=log_level,
            database_url=database_url,
            scheduler_enabled=scheduler_enabled,
            collaborative=CollaborativeFilterConfig.from_env(),
            trending=TrendingConfig.from_env(),
            engine=EngineConfig.from_env(),
            tracker=TrackerConfig.from_env(),
        )


config = Config.from_env()
