"""Recommendation engine: blends content-based, collaborative and trending strategies."""

import asyncio
import math
import time
import uuid
from collections import deque
from dataclasses import astuple, dataclass, replace
from datetime import datetime, timedelta
from typing import Any

from recsys.config import ALLOCATION_TOLERANCE, STRATEGY_TYPES, EngineConfig
from recsys.core.catalog import matches_filters
from recsys.core.collaborative import CollaborativeFilter
from recsys.core.contracts import (
    Clock,
    ContentItem,
    ContentSource,
    Recommendation,
    RecommendationContext,
    RecommendationFilters,
    RecommendationMetadata,
    RecommendationRequest,
    RecommendationType,
    TimeWindow,
    utc_now,
)
from recsys.core.errors import (
    InvariantViolationError,
    RecommendationGenerationError,
    RecommendationTimeoutError,
)
from recsys.core.profiles import UserProfile, UserProfileStore, profile_completeness
from recsys.core.rationale import (
    collaborative_reasoning,
    content_reasoning,
    hybrid_reasoning,
    trending_reasoning,
)
from recsys.core.trending import TrendingDiscovery, TrendingQuery
from recsys.logging import get_logger
from recsys.tracking.stats import percentile

logger = get_logger(__name__)

# Overlap weights for content-based matching
CATEGORY_MATCH_WEIGHT = 0.4
TAG_MATCH_WEIGHT = 0.3
TYPE_MATCH_WEIGHT = 0.3

CONTEXT_RELATED_MULTIPLIER = 1.3

# Generation durations kept for latency percentiles
RECENT_DURATIONS = 500

# (start hour, end hour) -> category multipliers
TIME_OF_DAY_MULTIPLIERS: list[tuple[int, int, dict[str, float]]] = [
    (6, 12, {"productivity": 1.2, "news": 1.1}),
    (12, 18, {"education": 1.2, "technology": 1.1}),
    (18, 24, {"entertainment": 1.2, "lifestyle": 1.1}),
]

# Content freshness falls linearly to zero over this many days
FRESHNESS_HORIZON_DAYS = 30


@dataclass
class _CacheEntry:
    recommendations: list[Recommendation]
    expires_at: datetime
    # Request shape the list was generated for
    signature: tuple = ()


def request_signature(request: RecommendationRequest) -> tuple:
    """Everything about a request except user and count that shapes its result."""
    mix = request.strategy_mix
    return (
        tuple(RecommendationType(t).value for t in request.types),
        astuple(request.filters),
        astuple(request.context),
        tuple(sorted(mix.items())) if mix else None,
        request.experiment_id,
        request.variant_id,
    )


def content_match_score(profile: UserProfile, item: ContentItem) -> tuple[float, list[str]]:
    """Weighted overlap between a profile's preference vector and an item.

    Only dimensions where the user has a positive weight contribute, and
    the result is normalized by the weight of the contributing dimensions.

    Returns:
        Score in [0, 1] and the tags that matched
    """
    prefs = profile.preferences
    similarity = 0.0
    total_weight = 0.0
    matched_tags: list[str] = []

    category_weight = prefs.categories.get(item.category, 0.0)
    if category_weight > 0:
        similarity += category_weight * CATEGORY_MATCH_WEIGHT
        total_weight += CATEGORY_MATCH_WEIGHT

    for tag in item.tags:
        tag_weight = prefs.tags.get(tag, 0.0)
        if tag_weight > 0:
            similarity += tag_weight * TAG_MATCH_WEIGHT
            total_weight += TAG_MATCH_WEIGHT
            matched_tags.append(tag)

    if item.content_type:
        type_weight = prefs.content_types.get(item.content_type, 0.0)
        if type_weight > 0:
            similarity += type_weight * TYPE_MATCH_WEIGHT
            total_weight += TYPE_MATCH_WEIGHT

    if total_weight == 0:
        return 0.0, matched_tags
    return min(similarity / total_weight, 1.0), matched_tags


def time_of_day_multiplier(category: str, hour: int | None) -> float:
    if hour is None:
        return 1.0
    for start, end, boosts in TIME_OF_DAY_MULTIPLIERS:
        if start <= hour < end:
            return boosts.get(category, 1.0)
    return 1.0


def contextual_multiplier(rec: Recommendation, context: RecommendationContext) -> float:
    """Boost for items related to the one the user is looking at."""
    if context.current_item and context.current_item in rec.metadata.related_items:
        return CONTEXT_RELATED_MULTIPLIER
    return 1.0


def adjusted_score(rec: Recommendation, context: RecommendationContext) -> float:
    return (
        rec.score
        * time_of_day_multiplier(rec.metadata.category, context.time_of_day)
        * contextual_multiplier(rec, context)
    )


def _metadata_passes(
    metadata: RecommendationMetadata,
    target: str,
    filters: RecommendationFilters,
    now: datetime,
) -> bool:
    item = ContentItem(
        item_id=target,
        category=metadata.category,
        tags=list(metadata.tags),
        content_type=metadata.content_type,
        language=metadata.language,
        quality=metadata.content_quality,
        domain=metadata.source if metadata.source != "unknown" else None,
        published_at=metadata.published_at,
    )
    return matches_filters(item, filters, now)


class RecommendationEngine:
    """Orchestrates strategy generation, filtering, ranking and caching."""

    def __init__(
        self,
        profiles: UserProfileStore,
        collaborative: CollaborativeFilter,
        trending: TrendingDiscovery,
        catalog: ContentSource | None = None,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self._profiles = profiles
        self._collaborative = collaborative
        self._trending = trending
        self._catalog = catalog
        self._clock = clock or utc_now
        self._cache: dict[str, _CacheEntry] = {}
        self._metrics = {
            "total_requests": 0,
            "total_recommendations": 0,
            "type_distribution": {},
            "category_distribution": {},
            "total_generation_ms": 0.0,
            "cache_hits": 0,
            "cache_misses": 0,
            "errors": 0,
            "timeouts": 0,
        }
        self._recent_durations: deque[float] = deque(maxlen=RECENT_DURATIONS)

    # Public API

    async def generate(
        self,
        request: RecommendationRequest,
        use_cache: bool = False,
    ) -> list[Recommendation]:
        """Generate ranked recommendations for a request.

        Args:
            request: User, count, strategy types, filters and context
            use_cache: Serve a still-valid cached list generated for the same
                types, filters, context and strategy mix

        Returns:
            Up to ``request.count`` recommendations, best first

        Raises:
            InvariantViolationError: Invalid per-request strategy mix
            RecommendationTimeoutError: Generation exceeded the deadline
            RecommendationGenerationError: Unexpected scoring failure
        """
        if use_cache:
            cached = self.get_cached_recommendations(request.user_id, request)
            if cached is not None:
                return cached[: request.count]

        start = time.perf_counter()
        self._metrics["total_requests"] += 1
        timeout = self.config.generation_timeout_seconds

        try:
            recommendations = await asyncio.wait_for(self._generate(request), timeout=timeout)
        except asyncio.TimeoutError:
            self._metrics["errors"] += 1
            self._metrics["timeouts"] += 1
            logger.error(
                f"Recommendation generation timed out: user={request.user_id} timeout_s={timeout}"
            )
            raise RecommendationTimeoutError(request.user_id, timeout)
        except (InvariantViolationError, RecommendationGenerationError):
            self._metrics["errors"] += 1
            raise
        except Exception as e:
            self._metrics["errors"] += 1
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.error(
                f"Recommendation generation failed: duration_ms={duration_ms} error={e}",
                extra={"user_id": request.user_id},
            )
            raise RecommendationGenerationError(request.user_id, str(e), e) from e

        duration_ms = (time.perf_counter() - start) * 1000
        self._cache_recommendations(request, recommendations)
        self._update_metrics(recommendations, duration_ms)
        logger.info(
            f"Recommendations generated: user={request.user_id} count={len(recommendations)} "
            f"types={','.join(t.value for t in request.types)} duration_ms={int(duration_ms)}"
        )
        return recommendations

    def get_cached_recommendations(
        self,
        user_id: str,
        request: RecommendationRequest | None = None,
    ) -> list[Recommendation] | None:
        """Cached list for a user, or None if absent or expired.

        With ``request``, a list generated for a differently shaped request
        is also a miss.
        """
        entry = self._cache.get(user_id)
        now = self._clock()
        if entry is None or entry.expires_at <= now:
            if entry is not None:
                del self._cache[user_id]
            self._metrics["cache_misses"] += 1
            return None
        if request is not None and entry.signature != request_signature(request):
            self._metrics["cache_misses"] += 1
            return None
        live = [r for r in entry.recommendations if not r.is_expired(now)]
        self._metrics["cache_hits"] += 1
        return live

    def clear_user_cache(self, user_id: str) -> None:
        self._cache.pop(user_id, None)

    def evict_expired(self) -> int:
        """Drop expired cache entries and expired recommendations.

        Returns:
            Number of recommendations evicted
        """
        now = self._clock()
        evicted = 0
        for user_id in list(self._cache):
            entry = self._cache[user_id]
            if entry.expires_at <= now:
                evicted += len(entry.recommendations)
                del self._cache[user_id]
                continue
            live = [r for r in entry.recommendations if not r.is_expired(now)]
            evicted += len(entry.recommendations) - len(live)
            entry.recommendations = live
        return evicted

    def get_metrics(self) -> dict[str, Any]:
        m = self._metrics
        lookups = m["cache_hits"] + m["cache_misses"]
        requests = m["total_requests"]
        completed = requests - m["errors"]
        return {
            "total_requests": requests,
            "total_recommendations": m["total_recommendations"],
            "type_distribution": dict(m["type_distribution"]),
            "category_distribution": dict(m["category_distribution"]),
            "average_generation_ms": m["total_generation_ms"] / completed if completed > 0 else 0.0,
            "p95_generation_ms": percentile(list(self._recent_durations), 95),
            "cache_hit_rate": m["cache_hits"] / lookups if lookups else 0.0,
            "error_rate": m["errors"] / requests if requests else 0.0,
            "timeouts": m["timeouts"],
            "cached_users": len(self._cache),
        }

    # Generation

    def _strategy_mix(self, request: RecommendationRequest) -> dict[str, float]:
        mix = request.strategy_mix or self.config.strategy_mix
        missing = [k for k in STRATEGY_TYPES if k not in mix]
        total = sum(mix.get(k, 0.0) for k in STRATEGY_TYPES)
        if missing or abs(total - 1.0) > ALLOCATION_TOLERANCE:
            raise InvariantViolationError(
                f"Strategy mix must cover {', '.join(STRATEGY_TYPES)} and sum to 1.0, got {total:.4f}"
            )
        return mix

    async def _generate(self, request: RecommendationRequest) -> list[Recommendation]:
        mix = self._strategy_mix(request)
        if request.count <= 0 or not request.types:
            return []

        profile = await self._profiles.get_profile(request.user_id)
        completeness = profile_completeness(profile)
        seen = {event.item_id for event in profile.behavior.interaction_history}

        candidates: dict[RecommendationType, list[Recommendation]] = {}

        async def candidates_for(kind: RecommendationType) -> list[Recommendation]:
            if kind not in candidates:
                share = mix[kind.value]
                if kind is RecommendationType.CONTENT_BASED:
                    candidates[kind] = await self._content_based(profile, request, completeness, seen, share)
                elif kind is RecommendationType.COLLABORATIVE:
                    candidates[kind] = await self._collaborative_based(profile, request, completeness, share)
                elif kind is RecommendationType.TRENDING:
                    candidates[kind] = await self._trending_based(profile, request, completeness, seen, share)
            return candidates[kind]

        collected: list[Recommendation] = []
        for kind in dict.fromkeys(RecommendationType(t) for t in request.types):
            quota = math.ceil(request.count * mix[kind.value])
            if quota <= 0:
                continue
            if kind is RecommendationType.HYBRID:
                hybrid = self._hybrid(
                    request,
                    completeness,
                    await candidates_for(RecommendationType.CONTENT_BASED),
                    await candidates_for(RecommendationType.COLLABORATIVE),
                    await candidates_for(RecommendationType.TRENDING),
                )
                collected.extend(hybrid[:quota])
            else:
                collected.extend((await candidates_for(kind))[:quota])

        now = self._clock()
        filtered = [
            r for r in collected if _metadata_passes(r.metadata, r.target, request.filters, now)
        ]
        ranked = self._rank(filtered, request.context)[: request.count]

        if request.experiment_id:
            ranked = [
                replace(
                    r,
                    metadata=replace(
                        r.metadata,
                        experiment_id=request.experiment_id,
                        variant_id=request.variant_id,
                    ),
                )
                for r in ranked
            ]
        return ranked

    def _new_recommendation(
        self,
        user_id: str,
        kind: RecommendationType,
        item: ContentItem,
        score: float,
        completeness: float,
        reasoning: list[str],
        metadata: RecommendationMetadata,
        ttl_hours: float,
    ) -> Recommendation:
        now = self._clock()
        score = max(0.0, min(score, 1.0))
        return Recommendation(
            rec_id=f"rec_{uuid.uuid4().hex[:16]}",
            user_id=user_id,
            type=kind,
            target=item.target,
            title=item.title,
            score=score,
            confidence=min(score * completeness, 1.0),
            reasoning=tuple(reasoning),
            metadata=metadata,
            created_at=now,
            expires_at=now + timedelta(hours=ttl_hours),
            item_id=item.item_id,
            url=item.url,
            description=item.description,
        )

    def _content_freshness(self, item: ContentItem) -> float:
        if item.published_at is None:
            return 1.0
        age_days = (self._clock() - item.published_at).total_seconds() / 86400
        return max(0.0, min(1 - age_days / FRESHNESS_HORIZON_DAYS, 1.0))

    def _metadata(
        self,
        item: ContentItem,
        similarity: float,
        relevance: float,
        popularity: float | None = None,
    ) -> RecommendationMetadata:
        if popularity is None:
            trending_item = self._trending.get_item(item.item_id)
            popularity = trending_item.score.popularity if trending_item else 0.0
        return RecommendationMetadata(
            category=item.category or "general",
            tags=tuple(item.tags),
            estimated_reading_time=item.reading_time,
            content_quality=item.quality,
            freshness=self._content_freshness(item),
            similarity=similarity,
            popularity=popularity,
            personal_relevance=relevance,
            source=item.domain or "unknown",
            related_items=tuple(item.related_items),
            language=item.language,
            content_type=item.content_type,
            published_at=item.published_at,
        )

    async def _resolve_item(self, item_id: str) -> ContentItem:
        if self._catalog is not None:
            item = await self._catalog.get_item(item_id)
            if item is not None:
                return item
        trending_item = self._trending.get_item(item_id)
        if trending_item is not None:
            return ContentItem(
                item_id=item_id,
                title=trending_item.title,
                url=trending_item.url,
                description=trending_item.description,
                category=trending_item.category,
                tags=list(trending_item.tags),
                content_type=trending_item.metadata.content_type,
                language=trending_item.metadata.language,
                quality=trending_item.metadata.content_quality,
                reading_time=trending_item.metadata.reading_time,
            )
        return ContentItem(item_id=item_id)

    async def _content_based(
        self,
        profile: UserProfile,
        request: RecommendationRequest,
        completeness: float,
        seen: set[str],
        share: float,
    ) -> list[Recommendation]:
        if self._catalog is None:
            return []

        items = await self._catalog.find_items(request.filters, exclude=seen)
        ttl = self.config.ttl_hours["content-based"]
        recs = []
        for item in items:
            score, matched = content_match_score(profile, item)
            if score <= self.config.content_threshold:
                continue
            recs.append(
                self._new_recommendation(
                    profile.user_id,
                    RecommendationType.CONTENT_BASED,
                    item,
                    score,
                    completeness,
                    content_reasoning(item, matched),
                    self._metadata(item, similarity=score, relevance=score),
                    ttl,
                )
            )
        recs.sort(key=lambda r: (-r.score, r.target))
        return recs

    async def _collaborative_based(
        self,
        profile: UserProfile,
        request: RecommendationRequest,
        completeness: float,
        share: float,
    ) -> list[Recommendation]:
        want = max(math.ceil(request.count * share) * self.config.overgeneration_factor, 1)
        predictions = await self._collaborative.recommend_for(
            profile.user_id,
            count=want,
            exclude=request.filters.exclude_items,
        )
        if not predictions:
            return []

        ttl = self.config.ttl_hours["collaborative"]
        now = self._clock()
        recs = []
        for prediction in predictions:
            score = min(prediction.final_score, 1.0)
            if score <= self.config.collaborative_threshold:
                continue
            item = await self._resolve_item(prediction.item_id)
            if not matches_filters(item, request.filters, now):
                continue
            avg_similarity = 1 - prediction.novelty
            recs.append(
                self._new_recommendation(
                    profile.user_id,
                    RecommendationType.COLLABORATIVE,
                    item,
                    score,
                    completeness,
                    collaborative_reasoning(item.target, len(prediction.supporting_users), avg_similarity),
                    self._metadata(item, similarity=avg_similarity, relevance=prediction.predicted_rating),
                    ttl,
                )
            )
        recs.sort(key=lambda r: (-r.score, r.target))
        return recs

    async def _trending_based(
        self,
        profile: UserProfile,
        request: RecommendationRequest,
        completeness: float,
        seen: set[str],
        share: float,
    ) -> list[Recommendation]:
        filters = request.filters
        want = max(math.ceil(request.count * share) * self.config.overgeneration_factor, 1)
        query = TrendingQuery(
            time_window=TimeWindow(self.config.trending_window),
            limit=want,
            categories=list(filters.categories),
            tags=list(filters.tags),
            content_types=list(filters.content_types),
            languages=list(filters.languages),
            exclude_items=list(set(filters.exclude_items) | seen),
        )
        trending_items = await self._trending.discover(query)

        ttl = self.config.ttl_hours["trending"]
        now = self._clock()
        recs = []
        for trending_item in trending_items:
            item = await self._resolve_item(trending_item.item_id)
            if not matches_filters(item, filters, now):
                continue
            match, _ = content_match_score(profile, item)
            relevance = 0.5 + 0.5 * match
            score = trending_item.score.overall * relevance
            if score <= self.config.trending_threshold:
                continue
            recs.append(
                self._new_recommendation(
                    profile.user_id,
                    RecommendationType.TRENDING,
                    item,
                    score,
                    completeness,
                    trending_reasoning(item, trending_item.score.velocity, relevance),
                    self._metadata(
                        item,
                        similarity=match,
                        relevance=relevance,
                        popularity=trending_item.score.popularity,
                    ),
                    ttl,
                )
            )
        recs.sort(key=lambda r: (-r.score, r.target))
        return recs

    def _hybrid(
        self,
        request: RecommendationRequest,
        completeness: float,
        content: list[Recommendation],
        collaborative: list[Recommendation],
        trending: list[Recommendation],
    ) -> list[Recommendation]:
        """Merge strategy candidates by target, weighting each source's score."""
        weights = self.config.hybrid_weights
        merged: dict[str, dict[str, Any]] = {}

        for kind, recs in (
            (RecommendationType.CONTENT_BASED, content),
            (RecommendationType.COLLABORATIVE, collaborative),
            (RecommendationType.TRENDING, trending),
        ):
            weight = weights.get(kind.value, 0.0)
            for rec in recs:
                entry = merged.get(rec.target)
                if entry is None:
                    merged[rec.target] = {
                        "base": rec,
                        "score": rec.score * weight,
                        "reasoning": list(rec.reasoning),
                        "sources": [kind.value],
                        "expires_at": rec.expires_at,
                    }
                else:
                    entry["score"] += rec.score * weight
                    entry["reasoning"].extend(rec.reasoning)
                    entry["sources"].append(kind.value)
                    entry["expires_at"] = min(entry["expires_at"], rec.expires_at)

        if not merged:
            return []

        category_counts: dict[str, int] = {}
        for entry in merged.values():
            category = entry["base"].metadata.category
            category_counts[category] = category_counts.get(category, 0) + 1

        now = self._clock()
        diversity_weight = self.config.hybrid_diversity_weight
        hybrids = []
        for target, entry in merged.items():
            base: Recommendation = entry["base"]
            bonus = (1 / category_counts[base.metadata.category]) * diversity_weight
            score = max(0.0, min(entry["score"] + bonus, 1.0))
            reasoning = hybrid_reasoning(target, entry["sources"]) + entry["reasoning"]
            hybrids.append(
                replace(
                    base,
                    rec_id=f"rec_{uuid.uuid4().hex[:16]}",
                    type=RecommendationType.HYBRID,
                    score=score,
                    confidence=min(score * completeness, 1.0),
                    reasoning=tuple(dict.fromkeys(reasoning)),
                    created_at=now,
                    expires_at=entry["expires_at"],
                )
            )
        hybrids.sort(key=lambda r: (-r.score, r.target))
        return hybrids

    def _rank(
        self,
        recommendations: list[Recommendation],
        context: RecommendationContext,
    ) -> list[Recommendation]:
        """Order by context-adjusted score, ties broken by confidence.

        A target produced by several strategies is kept once, at its best.
        """
        best: dict[str, tuple[float, Recommendation]] = {}
        for rec in recommendations:
            adjusted = adjusted_score(rec, context)
            current = best.get(rec.target)
            if current is None or adjusted > current[0]:
                best[rec.target] = (adjusted, rec)

        ordered = sorted(
            best.values(),
            key=lambda pair: (-round(pair[0], 2), -pair[1].confidence, pair[1].target),
        )
        return [rec for _, rec in ordered]

    def _cache_recommendations(
        self, request: RecommendationRequest, recommendations: list[Recommendation]
    ) -> None:
        expires_at = self._clock() + timedelta(minutes=self.config.cache_ttl_minutes)
        self._cache[request.user_id] = _CacheEntry(
            list(recommendations), expires_at, request_signature(request)
        )

    def _update_metrics(self, recommendations: list[Recommendation], duration_ms: float) -> None:
        m = self._metrics
        m["total_recommendations"] += len(recommendations)
        m["total_generation_ms"] += duration_ms
        self._recent_durations.append(duration_ms)
        for rec in recommendations:
            m["type_distribution"][rec.type.value] = m["type_distribution"].get(rec.type.value, 0) + 1
            category = rec.metadata.category
            m["category_distribution"][category] = m["category_distribution"].get(category, 0) + 1

    def update_config(self, **changes: Any) -> EngineConfig:
        self.config = replace(self.config, **changes)
        logger.info(f"Recommendation engine config updated: {', '.join(sorted(changes))}")
        return self.config
