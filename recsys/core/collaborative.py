"""User-user collaborative filtering over implicit interaction ratings."""

import asyncio
import math
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable

from recsys.config import CollaborativeFilterConfig
from recsys.core.contracts import (
    Clock,
    InteractionType,
    format_datetime,
    parse_datetime,
    utc_now,
)
from recsys.core.errors import RecommendationGenerationError
from recsys.core.locks import KeyedLocks
from recsys.core.persistence import GuardedRepository
from recsys.core.profiles import UserProfile, UserProfileStore
from recsys.core.similarity import (
    SimilarityFactors,
    SimilarityMetrics,
    combine_similarity,
    distribution_similarity,
    jaccard_index,
    rating_metrics,
    similarity_confidence,
    weight_overlap,
)
from recsys.logging import get_logger
from recsys.storage.repository import MATRICES, Repository

logger = get_logger(__name__)

INTERACTION_WEIGHTS: dict[InteractionType, float] = {
    InteractionType.VIEW: 0.1,
    InteractionType.BOOKMARK: 0.5,
    InteractionType.COMMENT: 0.6,
    InteractionType.SHARE: 0.7,
    InteractionType.FAVORITE: 0.8,
}

# Interactions whose decayed weight falls below this are dropped
MIN_INTERACTION_WEIGHT = 0.01
# Summed weight that maps to a full rating
RATING_SATURATION = 5.0
SECONDS_PER_DAY = 86400.0


def interaction_weight(interaction_type: InteractionType, duration: float | None = None) -> float:
    """Base weight of a single interaction, capped at 1.0.

    Views are boosted by dwell time, up to 3x at three minutes.
    """
    weight = INTERACTION_WEIGHTS.get(interaction_type, 0.1)
    if interaction_type is InteractionType.VIEW and duration:
        weight *= 1 + min(duration / 60, 3)
    return min(weight, 1.0)


def _age_days(now: datetime, then: datetime) -> float:
    return max((now - then).total_seconds() / SECONDS_PER_DAY, 0.0)


@dataclass
class WeightedInteraction:
    type: InteractionType
    timestamp: datetime
    base_weight: float
    duration: float | None = None

    def weight_at(self, now: datetime, decay_factor: float) -> float:
        """Weight after continuous exponential decay since the interaction."""
        return self.base_weight * math.exp(-decay_factor * _age_days(now, self.timestamp))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": format_datetime(self.timestamp),
            "base_weight": self.base_weight,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WeightedInteraction":
        return cls(
            type=InteractionType(data["type"]),
            timestamp=parse_datetime(data["timestamp"]),
            base_weight=float(data["base_weight"]),
            duration=data.get("duration"),
        )


@dataclass
class UserItemInteraction:
    """A user's interaction record for one item.

    The implicit rating is never stored: it is always derived from the
    current interaction list at the time of the query.
    """

    item_id: str
    last_interaction: datetime
    interactions: list[WeightedInteraction] = field(default_factory=list)
    total_score: float = 0.0

    def rating(self, now: datetime, decay_factor: float) -> float:
        """Implicit rating in [0, 1] at ``now``."""
        total = sum(i.weight_at(now, decay_factor) for i in self.interactions)
        normalized = min(total, RATING_SATURATION) / RATING_SATURATION
        recency = math.exp(-decay_factor * _age_days(now, self.last_interaction))
        return max(0.0, min(normalized * recency, 1.0))

    def prune(self, now: datetime, decay_factor: float) -> int:
        """Drop interactions that have decayed below the minimum weight."""
        before = len(self.interactions)
        self.interactions = [
            i for i in self.interactions if i.weight_at(now, decay_factor) >= MIN_INTERACTION_WEIGHT
        ]
        return before - len(self.interactions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "last_interaction": format_datetime(self.last_interaction),
            "interactions": [i.to_dict() for i in self.interactions],
            "total_score": self.total_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserItemInteraction":
        return cls(
            item_id=data["item_id"],
            last_interaction=parse_datetime(data["last_interaction"]),
            interactions=[WeightedInteraction.from_dict(i) for i in data.get("interactions", [])],
            total_score=float(data.get("total_score", 0.0)),
        )


@dataclass
class UserItemMatrix:
    user_id: str
    last_updated: datetime
    items: dict[str, UserItemInteraction] = field(default_factory=dict)

    def ratings(self, now: datetime, decay_factor: float) -> dict[str, float]:
        return {item_id: rec.rating(now, decay_factor) for item_id, rec in self.items.items()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "last_updated": format_datetime(self.last_updated),
            "items": {k: v.to_dict() for k, v in self.items.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserItemMatrix":
        return cls(
            user_id=data["user_id"],
            last_updated=parse_datetime(data["last_updated"]),
            items={k: UserItemInteraction.from_dict(v) for k, v in data.get("items", {}).items()},
        )


@dataclass(frozen=True)
class UserSimilarity:
    """Symmetric similarity between two users."""

    user_id1: str
    user_id2: str
    similarity: float
    factors: SimilarityFactors
    confidence: float
    computed_at: datetime
    last_updated: datetime
    metrics: SimilarityMetrics = field(default_factory=SimilarityMetrics)

    def reversed(self) -> "UserSimilarity":
        return replace(self, user_id1=self.user_id2, user_id2=self.user_id1)


@dataclass(frozen=True)
class SupportingUser:
    user_id: str
    similarity: float
    rating: float


@dataclass(frozen=True)
class CollaborativeRecommendation:
    item_id: str
    predicted_rating: float
    confidence: float
    supporting_users: tuple[SupportingUser, ...]
    explanation: str
    diversity: float
    novelty: float
    final_score: float = 0.0


def profile_factors(profile1: UserProfile | None, profile2: UserProfile | None) -> SimilarityFactors:
    """Compare two stored profiles' actual preference and behavior data."""
    if profile1 is None or profile2 is None:
        return SimilarityFactors()

    prefs1, prefs2 = profile1.preferences, profile2.preferences
    return SimilarityFactors(
        category_overlap=weight_overlap(prefs1.categories, prefs2.categories),
        tag_similarity=jaccard_index(set(prefs1.tags), set(prefs2.tags)),
        behavior_similarity=distribution_similarity(
            profile1.behavior.action_counts, profile2.behavior.action_counts
        ),
        interest_alignment=weight_overlap(
            {t: i.score for t, i in profile1.interests.items()},
            {t: i.score for t, i in profile2.interests.items()},
        ),
        temporal_patterns=distribution_similarity(
            profile1.behavior.hour_histogram, profile2.behavior.hour_histogram
        ),
    )


def _top_category(profile: UserProfile | None) -> str:
    if profile is None or not profile.preferences.categories:
        return "unknown"
    return max(profile.preferences.categories.items(), key=lambda kv: (kv[1], kv[0]))[0]


class CollaborativeFilter:
    """Maintains user-item interaction matrices and predicts ratings from similar users."""

    def __init__(
        self,
        config: CollaborativeFilterConfig | None = None,
        repository: Repository | None = None,
        profiles: UserProfileStore | None = None,
        clock: Clock | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.config = config or CollaborativeFilterConfig()
        self._repository = GuardedRepository.wrap(repository)
        self._profiles = profiles
        self._clock = clock or utc_now
        self._locks = locks or KeyedLocks()
        self._matrices: dict[str, UserItemMatrix] = {}
        # user -> other user -> similarity, stored in both directions
        self._similarities: dict[str, dict[str, UserSimilarity]] = {}

    async def load(self) -> int:
        """Warm matrices from the repository."""
        records = await self._repository.scan(MATRICES)
        for user_id, record in records:
            try:
                self._matrices[user_id] = UserItemMatrix.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable interaction matrix {user_id}: {e}")
        logger.info(f"Loaded {len(self._matrices)} interaction matrices")
        return len(self._matrices)

    # Interaction recording

    async def record_interaction(
        self,
        user_id: str,
        item_id: str,
        interaction_type: InteractionType | str,
        duration: float | None = None,
        timestamp: datetime | None = None,
    ) -> float:
        """Add an interaction to the user's matrix.

        Returns:
            The item's implicit rating after the update
        """
        interaction_type = InteractionType(interaction_type)
        now = self._clock()
        ts = timestamp or now
        decay = self.config.decay_factor

        async with self._locks.for_key(user_id):
            matrix = self._matrices.get(user_id)
            if matrix is None:
                matrix = UserItemMatrix(user_id=user_id, last_updated=now)
                self._matrices[user_id] = matrix

            record = matrix.items.get(item_id)
            if record is None:
                record = UserItemInteraction(item_id=item_id, last_interaction=ts)
                matrix.items[item_id] = record

            weight = interaction_weight(interaction_type, duration)
            record.interactions.append(
                WeightedInteraction(
                    type=interaction_type,
                    timestamp=ts,
                    base_weight=weight,
                    duration=duration,
                )
            )
            record.total_score += weight
            if ts > record.last_interaction:
                record.last_interaction = ts
            record.prune(now, decay)
            if not record.interactions:
                del matrix.items[item_id]

            matrix.last_updated = now
            await self._repository.put(MATRICES, user_id, matrix.to_dict())

        rating = record.rating(now, decay) if record.interactions else 0.0
        logger.debug(
            f"Interaction matrix updated: user={user_id} item={item_id} "
            f"type={interaction_type.value} rating={rating:.3f}"
        )
        return rating

    async def batch_record_interactions(self, updates: Iterable[dict[str, Any]]) -> int:
        """Record many interactions.

        Each update is a dict with ``user_id``, ``item_id``, ``type`` and
        optional ``duration``/``timestamp``.

        Returns:
            Number of interactions recorded
        """
        recorded = 0
        for update in updates:
            await self.record_interaction(
                update["user_id"],
                update["item_id"],
                update["type"],
                duration=update.get("duration"),
                timestamp=update.get("timestamp"),
            )
            recorded += 1
        return recorded

    def get_rating(self, user_id: str, item_id: str) -> float | None:
        """Current implicit rating, or None if the user never touched the item."""
        matrix = self._matrices.get(user_id)
        if matrix is None or item_id not in matrix.items:
            return None
        return matrix.items[item_id].rating(self._clock(), self.config.decay_factor)

    def get_user_items(self, user_id: str) -> set[str]:
        matrix = self._matrices.get(user_id)
        return set(matrix.items) if matrix else set()

    def user_ids(self) -> list[str]:
        return list(self._matrices)

    async def decay_all(self) -> int:
        """Prune fully decayed interactions across every matrix.

        Returns:
            Number of interactions removed
        """
        now = self._clock()
        removed = 0
        for index, user_id in enumerate(list(self._matrices)):
            async with self._locks.for_key(user_id):
                matrix = self._matrices.get(user_id)
                if matrix is None:
                    continue
                changed = 0
                for item_id in list(matrix.items):
                    record = matrix.items[item_id]
                    changed += record.prune(now, self.config.decay_factor)
                    if not record.interactions:
                        del matrix.items[item_id]
                if changed:
                    removed += changed
                    await self._repository.put(MATRICES, user_id, matrix.to_dict())
            if (index + 1) % self.config.sweep_batch_size == 0:
                await asyncio.sleep(0)
        return removed

    # Similarity

    async def _profile(self, user_id: str) -> UserProfile | None:
        if self._profiles is None:
            return None
        return await self._profiles.find_profile(user_id)

    async def compute_similarity(self, user_id1: str, user_id2: str) -> UserSimilarity:
        """Similarity between two users, computed once and cached in both directions."""
        cached = self._similarities.get(user_id1, {}).get(user_id2)
        if cached is not None:
            return cached

        now = self._clock()
        try:
            decay = self.config.decay_factor
            matrix1 = self._matrices.get(user_id1)
            matrix2 = self._matrices.get(user_id2)
            ratings1 = matrix1.ratings(now, decay) if matrix1 else {}
            ratings2 = matrix2.ratings(now, decay) if matrix2 else {}

            metrics = rating_metrics(ratings1, ratings2)
            factors = profile_factors(await self._profile(user_id1), await self._profile(user_id2))

            if metrics.common_items == 0:
                composite = 0.0
            else:
                composite = combine_similarity(metrics, factors)

            similarity = UserSimilarity(
                user_id1=user_id1,
                user_id2=user_id2,
                similarity=composite,
                factors=factors,
                confidence=similarity_confidence(metrics.common_items, len(ratings1), len(ratings2)),
                computed_at=now,
                last_updated=now,
                metrics=metrics,
            )
        except Exception as e:
            logger.error(f"User similarity computation failed: users={user_id1},{user_id2} error={e}")
            return UserSimilarity(
                user_id1=user_id1,
                user_id2=user_id2,
                similarity=0.0,
                factors=SimilarityFactors(),
                confidence=0.0,
                computed_at=now,
                last_updated=now,
            )

        self._similarities.setdefault(user_id1, {})[user_id2] = similarity
        self._similarities.setdefault(user_id2, {})[user_id1] = similarity.reversed()
        return similarity

    async def find_similar_users(self, user_id: str) -> list[tuple[str, float]]:
        """Users at or above the similarity threshold, most similar first."""
        similar: list[tuple[str, float]] = []
        batch = self.config.sweep_batch_size

        for index, other_id in enumerate(list(self._matrices)):
            if other_id == user_id:
                continue
            sim = await self.compute_similarity(user_id, other_id)
            if sim.similarity >= self.config.min_similarity_threshold:
                similar.append((other_id, sim.similarity))
            if (index + 1) % batch == 0:
                await asyncio.sleep(0)

        similar.sort(key=lambda pair: (-pair[1], pair[0]))
        return similar[: self.config.max_similar_users]

    def get_user_similarities(self, user_id: str) -> list[UserSimilarity]:
        """Cached similarities for a user, most similar first."""
        cached = self._similarities.get(user_id, {})
        return sorted(cached.values(), key=lambda s: -s.similarity)

    def invalidate_similarities(self, user_id: str | None = None) -> int:
        """Drop cached similarities for one user (both directions) or for everyone.

        Returns:
            Number of cached pairs removed
        """
        if user_id is None:
            removed = sum(len(v) for v in self._similarities.values()) // 2
            self._similarities.clear()
            return removed

        others = self._similarities.pop(user_id, {})
        for other_id in others:
            peer = self._similarities.get(other_id)
            if peer is not None:
                peer.pop(user_id, None)
                if not peer:
                    del self._similarities[other_id]
        return len(others)

    # Recommendations

    async def recommend_for(
        self,
        user_id: str,
        count: int = 20,
        exclude: Iterable[str] | None = None,
    ) -> list[CollaborativeRecommendation]:
        """Predict items the user has not touched from similar users' ratings.

        Too few similar users is not an error: the result is simply empty.

        Raises:
            RecommendationGenerationError: On unexpected scoring failures
        """
        start = time.perf_counter()
        excluded = set(exclude or ())

        try:
            logger.info(
                f"Generating collaborative recommendations: user={user_id} "
                f"count={count} exclude={len(excluded)}"
            )
            similar_users = await self.find_similar_users(user_id)

            if len(similar_users) < self.config.min_supporting_users:
                logger.warning(
                    f"Insufficient similar users for collaborative filtering: user={user_id} "
                    f"found={len(similar_users)} required={self.config.min_supporting_users}"
                )
                return []

            candidates = self._collect_candidates(user_id, similar_users, excluded)
            recommendations = []
            for item_id, supporters in candidates.items():
                if len(supporters) < self.config.min_supporting_users:
                    continue
                rec = await self._score_item(item_id, supporters)
                if rec.confidence >= self.config.confidence_threshold:
                    recommendations.append(rec)

            ranked = self._rank(recommendations, count)
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.info(
                f"Collaborative recommendations generated: user={user_id} count={len(ranked)} "
                f"similar_users={len(similar_users)} duration_ms={duration_ms}"
            )
            return ranked

        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.error(
                f"Collaborative recommendation generation failed: user={user_id} "
                f"duration_ms={duration_ms} error={e}"
            )
            raise RecommendationGenerationError(user_id, f"collaborative filtering: {e}", e) from e

    def _collect_candidates(
        self,
        user_id: str,
        similar_users: list[tuple[str, float]],
        excluded: set[str],
    ) -> dict[str, list[SupportingUser]]:
        now = self._clock()
        decay = self.config.decay_factor
        own_items = self.get_user_items(user_id)
        candidates: dict[str, list[SupportingUser]] = {}

        for other_id, similarity in similar_users:
            matrix = self._matrices.get(other_id)
            if matrix is None:
                continue
            for item_id, record in matrix.items.items():
                if item_id in own_items or item_id in excluded:
                    continue
                candidates.setdefault(item_id, []).append(
                    SupportingUser(
                        user_id=other_id,
                        similarity=similarity,
                        rating=record.rating(now, decay),
                    )
                )
        return candidates

    async def _score_item(
        self,
        item_id: str,
        supporters: list[SupportingUser],
    ) -> CollaborativeRecommendation:
        weight_sum = sum(s.similarity for s in supporters)
        weighted = sum(s.rating * s.similarity for s in supporters)
        predicted = weighted / weight_sum if weight_sum > 0 else 0.0

        avg_similarity = weight_sum / len(supporters)
        confidence = min((len(supporters) / self.config.max_similar_users) * avg_similarity, 1.0)

        segments = {_top_category(await self._profile(s.user_id)) for s in supporters}
        diversity = len(segments) / len(supporters)
        novelty = 1 - avg_similarity

        ordered = tuple(sorted(supporters, key=lambda s: -s.similarity))
        explanation = (
            f"Recommended based on {len(supporters)} similar users who rated this highly "
            f"(avg similarity: {round(avg_similarity * 100)}%)"
        )
        return CollaborativeRecommendation(
            item_id=item_id,
            predicted_rating=predicted,
            confidence=confidence,
            supporting_users=ordered,
            explanation=explanation,
            diversity=diversity,
            novelty=novelty,
        )

    def _rank(
        self,
        recommendations: list[CollaborativeRecommendation],
        count: int,
    ) -> list[CollaborativeRecommendation]:
        scored = [
            replace(
                rec,
                final_score=rec.predicted_rating
                + rec.diversity * self.config.diversity_weight
                + rec.novelty * self.config.novelty_weight,
            )
            for rec in recommendations
        ]
        scored.sort(key=lambda r: (-r.final_score, r.item_id))
        return scored[:count]

    # Administration

    def get_config(self) -> CollaborativeFilterConfig:
        return self.config

    def update_config(self, **changes: Any) -> CollaborativeFilterConfig:
        """Replace configuration fields; validation runs on the new config."""
        self.config = replace(self.config, **changes)
        logger.info(f"Collaborative filter config updated: {', '.join(sorted(changes))}")
        return self.config

    def clear_cache(self) -> None:
        self._similarities.clear()

    def get_stats(self) -> dict[str, Any]:
        users = len(self._matrices)
        items = set()
        interactions = 0
        for matrix in self._matrices.values():
            items.update(matrix.items)
            interactions += sum(len(r.interactions) for r in matrix.items.values())
        cells = sum(len(m.items) for m in self._matrices.values())
        possible = users * len(items)
        return {
            "users": users,
            "items": len(items),
            "interactions": interactions,
            "cached_similarities": sum(len(v) for v in self._similarities.values()) // 2,
            "average_items_per_user": cells / users if users else 0.0,
            "sparsity": 1 - cells / possible if possible else 1.0,
        }
