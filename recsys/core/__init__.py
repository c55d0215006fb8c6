"""Core module containing profiles, scoring strategies and the recommendation engine."""

from recsys.core.catalog import InMemoryCatalog, matches_filters
from recsys.core.collaborative import (
    CollaborativeFilter,
    CollaborativeRecommendation,
    SupportingUser,
    UserItemMatrix,
    UserSimilarity,
    interaction_weight,
)
from recsys.core.contracts import (
    ContentItem,
    ContentSource,
    ContentType,
    ExperimentStatus,
    InteractionType,
    ProfileAction,
    Recommendation,
    RecommendationContext,
    RecommendationFilters,
    RecommendationMetadata,
    RecommendationRequest,
    RecommendationType,
    TimeWindow,
    TrackedInteraction,
)
from recsys.core.engine import RecommendationEngine, content_match_score
from recsys.core.errors import (
    ExperimentNotFoundError,
    ExperimentStateError,
    InteractionTrackingError,
    InvariantViolationError,
    RecommendationGenerationError,
    RecommendationTimeoutError,
    RecsysError,
    StorageError,
    TrendingDiscoveryError,
)
from recsys.core.locks import KeyedLocks
from recsys.core.profiles import UserInterest, UserProfile, UserProfileStore, profile_completeness
from recsys.core.similarity import SimilarityFactors, SimilarityMetrics
from recsys.core.trending import (
    TrendingCategory,
    TrendingDiscovery,
    TrendingItem,
    TrendingQuery,
    TrendingScore,
)

__all__ = [
    # Contracts/Types
    "ContentItem",
    "ContentSource",
    "ContentType",
    "ExperimentStatus",
    "InteractionType",
    "ProfileAction",
    "Recommendation",
    "RecommendationContext",
    "RecommendationFilters",
    "RecommendationMetadata",
    "RecommendationRequest",
    "RecommendationType",
    "TimeWindow",
    "TrackedInteraction",
    # Errors
    "RecsysError",
    "InvariantViolationError",
    "ExperimentNotFoundError",
    "ExperimentStateError",
    "TrendingDiscoveryError",
    "RecommendationGenerationError",
    "RecommendationTimeoutError",
    "StorageError",
    "InteractionTrackingError",
    # Profiles
    "UserProfile",
    "UserInterest",
    "UserProfileStore",
    "profile_completeness",
    # Collaborative filtering
    "CollaborativeFilter",
    "CollaborativeRecommendation",
    "SupportingUser",
    "UserItemMatrix",
    "UserSimilarity",
    "SimilarityFactors",
    "SimilarityMetrics",
    "interaction_weight",
    # Trending
    "TrendingCategory",
    "TrendingDiscovery",
    "TrendingItem",
    "TrendingQuery",
    "TrendingScore",
    # Engine
    "RecommendationEngine",
    "content_match_score",
    # Catalog
    "InMemoryCatalog",
    "matches_filters",
    # Concurrency
    "KeyedLocks",
]
