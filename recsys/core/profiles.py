"""User profiles and the store that learns them from interactions."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from recsys.core.contracts import (
    Clock,
    ContentItem,
    ProfileAction,
    format_datetime,
    parse_datetime,
    utc_now,
)
from recsys.core.locks import KeyedLocks
from recsys.core.persistence import GuardedRepository
from recsys.logging import get_logger
from recsys.storage.repository import PROFILES, Repository

logger = get_logger(__name__)

MAX_INTERACTION_HISTORY = 1000
MAX_SEARCH_HISTORY = 200

DEFAULT_CONTENT_TYPE_PREFERENCES: dict[str, float] = {
    "article": 0.8,
    "video": 0.6,
    "documentation": 0.7,
    "tutorial": 0.9,
    "news": 0.5,
    "research": 0.4,
}
DEFAULT_LANGUAGE_PREFERENCES: dict[str, float] = {"en": 1.0}

# How far a single action moves a preference weight toward 1
ACTION_LEARNING_RATES: dict[ProfileAction, float] = {
    ProfileAction.VIEW: 0.05,
    ProfileAction.EDIT: 0.05,
    ProfileAction.COMMENT: 0.10,
    ProfileAction.BOOKMARK: 0.15,
    ProfileAction.SHARE: 0.15,
    ProfileAction.FAVORITE: 0.20,
}
# Fraction of a weight removed when the user deletes an item
DELETE_PENALTY = 0.3

# Category usage needed before a category becomes an inferred interest
INFERRED_INTEREST_MIN_USES = 3

COMPLETENESS_WEIGHTS = {
    "categories": 0.3,
    "tags": 0.2,
    "history": 0.3,
    "interests": 0.2,
}


@dataclass
class InteractionEvent:
    """One entry of a user's interaction history."""

    item_id: str
    action: str
    timestamp: datetime
    duration: float | None = None
    category: str | None = None
    tags: list[str] = field(default_factory=list)
    content_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "action": self.action,
            "timestamp": format_datetime(self.timestamp),
            "duration": self.duration,
            "category": self.category,
            "tags": list(self.tags),
            "content_type": self.content_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InteractionEvent":
        return cls(
            item_id=data["item_id"],
            action=data["action"],
            timestamp=parse_datetime(data["timestamp"]),
            duration=data.get("duration"),
            category=data.get("category"),
            tags=list(data.get("tags", [])),
            content_type=data.get("content_type"),
        )


@dataclass
class SearchEvent:
    query: str
    timestamp: datetime
    results_clicked: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "timestamp": format_datetime(self.timestamp),
            "results_clicked": self.results_clicked,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchEvent":
        return cls(
            query=data["query"],
            timestamp=parse_datetime(data["timestamp"]),
            results_clicked=int(data.get("results_clicked", 0)),
        )


@dataclass
class CategoryUsage:
    count: int = 0
    last_used: datetime | None = None
    average_rating: float = 0.0
    ratings: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "last_used": format_datetime(self.last_used),
            "average_rating": self.average_rating,
            "ratings": self.ratings,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CategoryUsage":
        return cls(
            count=int(data.get("count", 0)),
            last_used=parse_datetime(data.get("last_used")),
            average_rating=float(data.get("average_rating", 0.0)),
            ratings=int(data.get("ratings", 0)),
        )


@dataclass
class UserPreferences:
    """Weighted preference vectors, each weight in [0, 1]."""

    categories: dict[str, float] = field(default_factory=dict)
    tags: dict[str, float] = field(default_factory=dict)
    tag_frequency: dict[str, int] = field(default_factory=dict)
    content_types: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_CONTENT_TYPE_PREFERENCES)
    )
    languages: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_LANGUAGE_PREFERENCES))
    reading_level: str = "intermediate"
    content_length: str = "medium"
    freshness: str = "recent"

    def to_dict(self) -> dict[str, Any]:
        return {
            "categories": dict(self.categories),
            "tags": dict(self.tags),
            "tag_frequency": dict(self.tag_frequency),
            "content_types": dict(self.content_types),
            "languages": dict(self.languages),
            "reading_level": self.reading_level,
            "content_length": self.content_length,
            "freshness": self.freshness,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserPreferences":
        defaults = cls()
        return cls(
            categories=dict(data.get("categories", {})),
            tags=dict(data.get("tags", {})),
            tag_frequency=dict(data.get("tag_frequency", {})),
            content_types=dict(data.get("content_types", defaults.content_types)),
            languages=dict(data.get("languages", defaults.languages)),
            reading_level=data.get("reading_level", defaults.reading_level),
            content_length=data.get("content_length", defaults.content_length),
            freshness=data.get("freshness", defaults.freshness),
        )


@dataclass
class UserBehavior:
    """Observed behavior: interaction/search history and usage statistics."""

    interaction_history: list[InteractionEvent] = field(default_factory=list)
    search_history: list[SearchEvent] = field(default_factory=list)
    category_usage: dict[str, CategoryUsage] = field(default_factory=dict)
    action_counts: dict[str, int] = field(default_factory=dict)
    # Interaction counts per hour of day, keys "0".."23"
    hour_histogram: dict[str, int] = field(default_factory=dict)
    domain_counts: dict[str, int] = field(default_factory=dict)
    bookmark_count: int = 0
    average_reading_time: float = 0.0
    reading_samples: int = 0

    @property
    def peak_hours(self) -> list[int]:
        """Up to three busiest hours of day."""
        ranked = sorted(self.hour_histogram.items(), key=lambda kv: (-kv[1], int(kv[0])))
        return [int(hour) for hour, _ in ranked[:3]]

    @property
    def common_domains(self) -> list[str]:
        ranked = sorted(self.domain_counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return [domain for domain, _ in ranked[:5]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "interaction_history": [e.to_dict() for e in self.interaction_history],
            "search_history": [s.to_dict() for s in self.search_history],
            "category_usage": {k: v.to_dict() for k, v in self.category_usage.items()},
            "action_counts": dict(self.action_counts),
            "hour_histogram": dict(self.hour_histogram),
            "domain_counts": dict(self.domain_counts),
            "bookmark_count": self.bookmark_count,
            "average_reading_time": self.average_reading_time,
            "reading_samples": self.reading_samples,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserBehavior":
        return cls(
            interaction_history=[
                InteractionEvent.from_dict(e) for e in data.get("interaction_history", [])
            ],
            search_history=[SearchEvent.from_dict(s) for s in data.get("search_history", [])],
            category_usage={
                k: CategoryUsage.from_dict(v) for k, v in data.get("category_usage", {}).items()
            },
            action_counts=dict(data.get("action_counts", {})),
            hour_histogram=dict(data.get("hour_histogram", {})),
            domain_counts=dict(data.get("domain_counts", {})),
            bookmark_count=int(data.get("bookmark_count", 0)),
            average_reading_time=float(data.get("average_reading_time", 0.0)),
            reading_samples=int(data.get("reading_samples", 0)),
        )


@dataclass
class UserDemographics:
    timezone: str = "UTC"
    device_types: list[str] = field(default_factory=lambda: ["desktop"])
    location: str | None = None
    professional_field: str | None = None
    experience_level: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timezone": self.timezone,
            "device_types": list(self.device_types),
            "location": self.location,
            "professional_field": self.professional_field,
            "experience_level": self.experience_level,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserDemographics":
        return cls(
            timezone=data.get("timezone", "UTC"),
            device_types=list(data.get("device_types", ["desktop"])),
            location=data.get("location"),
            professional_field=data.get("professional_field"),
            experience_level=data.get("experience_level"),
        )


@dataclass
class UserInterest:
    """A topic the user cares about, with provenance."""

    topic: str
    score: float
    confidence: float
    sources: list[str] = field(default_factory=list)  # explicit / implicit / inferred
    keywords: list[str] = field(default_factory=list)
    observations: int = 0
    last_updated: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "score": self.score,
            "confidence": self.confidence,
            "sources": list(self.sources),
            "keywords": list(self.keywords),
            "observations": self.observations,
            "last_updated": format_datetime(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserInterest":
        return cls(
            topic=data["topic"],
            score=float(data["score"]),
            confidence=float(data["confidence"]),
            sources=list(data.get("sources", [])),
            keywords=list(data.get("keywords", [])),
            observations=int(data.get("observations", 0)),
            last_updated=parse_datetime(data.get("last_updated")),
        )


@dataclass
class UserProfile:
    """Everything known about a user's tastes."""

    user_id: str
    created_at: datetime
    updated_at: datetime
    preferences: UserPreferences = field(default_factory=UserPreferences)
    behavior: UserBehavior = field(default_factory=UserBehavior)
    demographics: UserDemographics = field(default_factory=UserDemographics)
    interests: dict[str, UserInterest] = field(default_factory=dict)

    def bookmarks_per_day(self, now: datetime) -> float:
        days = max((now - self.created_at).total_seconds() / 86400, 1.0)
        return self.behavior.bookmark_count / days

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "preferences": self.preferences.to_dict(),
            "behavior": self.behavior.to_dict(),
            "demographics": self.demographics.to_dict(),
            "interests": {k: v.to_dict() for k, v in self.interests.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserProfile":
        return cls(
            user_id=data["user_id"],
            created_at=parse_datetime(data["created_at"]),
            updated_at=parse_datetime(data["updated_at"]),
            preferences=UserPreferences.from_dict(data.get("preferences", {})),
            behavior=UserBehavior.from_dict(data.get("behavior", {})),
            demographics=UserDemographics.from_dict(data.get("demographics", {})),
            interests={
                k: UserInterest.from_dict(v) for k, v in data.get("interests", {}).items()
            },
        )


def profile_completeness(profile: UserProfile) -> float:
    """Weighted share of populated profile sections, in [0, 1]."""
    score = 0.0
    if profile.preferences.categories:
        score += COMPLETENESS_WEIGHTS["categories"]
    if profile.preferences.tags:
        score += COMPLETENESS_WEIGHTS["tags"]
    if profile.behavior.interaction_history:
        score += COMPLETENESS_WEIGHTS["history"]
    if profile.interests:
        score += COMPLETENESS_WEIGHTS["interests"]
    return score / sum(COMPLETENESS_WEIGHTS.values())


def _learn(weights: dict[str, float], key: str, rate: float) -> None:
    current = weights.get(key, 0.0)
    weights[key] = min(current + rate * (1.0 - current), 1.0)


def _unlearn(weights: dict[str, float], key: str) -> None:
    if key in weights:
        weights[key] = max(weights[key] * (1.0 - DELETE_PENALTY), 0.0)


class UserProfileStore:
    """Owns per-user profiles and updates them on every tracked interaction.

    Profiles are held in a process-local working set and written through
    to the repository after each mutation. They are never deleted
    automatically.
    """

    def __init__(
        self,
        repository: Repository | None = None,
        clock: Clock | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._repository = GuardedRepository.wrap(repository)
        self._clock = clock or utc_now
        self._locks = locks or KeyedLocks()
        self._profiles: dict[str, UserProfile] = {}

    async def load(self) -> int:
        """Warm the working set from the repository.

        Returns:
            Number of profiles loaded
        """
        records = await self._repository.scan(PROFILES)
        for user_id, record in records:
            try:
                self._profiles[user_id] = UserProfile.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable profile {user_id}: {e}")
        logger.info(f"Loaded {len(self._profiles)} user profiles")
        return len(self._profiles)

    def _new_profile(self, user_id: str) -> UserProfile:
        now = self._clock()
        return UserProfile(user_id=user_id, created_at=now, updated_at=now)

    async def find_profile(self, user_id: str) -> UserProfile | None:
        """Return an existing profile without creating one."""
        profile = self._profiles.get(user_id)
        if profile is not None:
            return profile
        record = await self._repository.get(PROFILES, user_id)
        if record is None:
            return None
        try:
            profile = UserProfile.from_dict(record)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Unreadable stored profile: error={e}", extra={"user_id": user_id})
            return None
        self._profiles[user_id] = profile
        return profile

    async def get_profile(self, user_id: str) -> UserProfile:
        """Return the user's profile, creating a default one on first access."""
        profile = await self.find_profile(user_id)
        if profile is not None:
            return profile

        async with self._locks.for_key(user_id):
            profile = self._profiles.get(user_id)
            if profile is None:
                profile = self._new_profile(user_id)
                self._profiles[user_id] = profile
                await self._save(profile)
                logger.debug(f"Created default profile for {user_id}")
        return profile

    async def _save(self, profile: UserProfile) -> None:
        await self._repository.put(PROFILES, profile.user_id, profile.to_dict())

    def user_ids(self) -> list[str]:
        return list(self._profiles)

    async def update_profile(
        self,
        user_id: str,
        *,
        preferences: UserPreferences | None = None,
        demographics: UserDemographics | None = None,
        interests: dict[str, UserInterest] | None = None,
    ) -> UserProfile:
        """Overwrite whole profile sections.

        Args:
            user_id: User ID
            preferences: Replacement preferences
            demographics: Replacement demographics
            interests: Replacement interests keyed by topic

        Returns:
            The updated profile
        """
        profile = await self.get_profile(user_id)
        updated: list[str] = []
        async with self._locks.for_key(user_id):
            if preferences is not None:
                profile.preferences = preferences
                updated.append("preferences")
            if demographics is not None:
                profile.demographics = demographics
                updated.append("demographics")
            if interests is not None:
                profile.interests = dict(interests)
                updated.append("interests")
            profile.updated_at = self._clock()
            await self._save(profile)

        logger.info(f"User profile updated: user={user_id} fields={','.join(updated) or 'none'}")
        return profile

    async def track_interaction(
        self,
        user_id: str,
        item_id: str,
        action: ProfileAction | str,
        item: ContentItem | None = None,
        duration: float | None = None,
        timestamp: datetime | None = None,
    ) -> UserProfile:
        """Record an interaction and learn preferences from it.

        Positive actions pull the item's category, tags, content type and
        language weights toward 1; deletes push them toward 0.
        """
        action = ProfileAction(action)
        ts = timestamp or self._clock()
        profile = await self.get_profile(user_id)

        async with self._locks.for_key(user_id):
            behavior = profile.behavior
            behavior.interaction_history.append(
                InteractionEvent(
                    item_id=item_id,
                    action=action.value,
                    timestamp=ts,
                    duration=duration,
                    category=item.category if item else None,
                    tags=list(item.tags) if item else [],
                    content_type=item.content_type if item else None,
                )
            )
            if len(behavior.interaction_history) > MAX_INTERACTION_HISTORY:
                behavior.interaction_history = behavior.interaction_history[-MAX_INTERACTION_HISTORY:]

            behavior.action_counts[action.value] = behavior.action_counts.get(action.value, 0) + 1
            hour_key = str(ts.hour)
            behavior.hour_histogram[hour_key] = behavior.hour_histogram.get(hour_key, 0) + 1
            if action is ProfileAction.BOOKMARK:
                behavior.bookmark_count += 1
            if action is ProfileAction.VIEW and duration:
                behavior.reading_samples += 1
                behavior.average_reading_time += (
                    duration - behavior.average_reading_time
                ) / behavior.reading_samples

            if item is not None:
                self._learn_from_item(profile, item, action, duration, ts)

            profile.updated_at = ts
            await self._save(profile)

        return profile

    def _learn_from_item(
        self,
        profile: UserProfile,
        item: ContentItem,
        action: ProfileAction,
        duration: float | None,
        ts: datetime,
    ) -> None:
        prefs = profile.preferences
        behavior = profile.behavior

        if item.domain:
            behavior.domain_counts[item.domain] = behavior.domain_counts.get(item.domain, 0) + 1

        usage = behavior.category_usage.setdefault(item.category, CategoryUsage())
        usage.count += 1
        usage.last_used = ts

        if action is ProfileAction.DELETE:
            _unlearn(prefs.categories, item.category)
            for tag in item.tags:
                _unlearn(prefs.tags, tag)
            if item.content_type:
                _unlearn(prefs.content_types, item.content_type)
            return

        rate = ACTION_LEARNING_RATES.get(action, 0.05)
        if action is ProfileAction.VIEW and duration:
            rate *= 1 + min(duration / 60, 3)

        _learn(prefs.categories, item.category, rate)
        for tag in item.tags:
            _learn(prefs.tags, tag, rate)
            prefs.tag_frequency[tag] = prefs.tag_frequency.get(tag, 0) + 1
            self._observe_interest(profile, tag, rate, "implicit", ts)
        if item.content_type:
            _learn(prefs.content_types, item.content_type, rate)
        if item.language:
            _learn(prefs.languages, item.language, rate)

        if usage.count >= INFERRED_INTEREST_MIN_USES:
            self._observe_interest(profile, item.category, rate, "inferred", ts)

    def _observe_interest(
        self,
        profile: UserProfile,
        topic: str,
        rate: float,
        source: str,
        ts: datetime,
    ) -> None:
        interest = profile.interests.get(topic)
        if interest is None:
            interest = UserInterest(topic=topic, score=0.0, confidence=0.0)
            profile.interests[topic] = interest
        interest.observations += 1
        if "explicit" not in interest.sources:
            interest.score = min(interest.score + rate * (1.0 - interest.score), 1.0)
            interest.confidence = min(interest.observations / 10, 1.0)
        if source not in interest.sources:
            interest.sources.append(source)
        interest.last_updated = ts

    async def set_interest(
        self,
        user_id: str,
        topic: str,
        score: float,
        keywords: list[str] | None = None,
    ) -> UserInterest:
        """Record an explicitly stated interest with full confidence."""
        score = max(0.0, min(score, 1.0))
        profile = await self.get_profile(user_id)
        async with self._locks.for_key(user_id):
            interest = profile.interests.get(topic)
            if interest is None:
                interest = UserInterest(topic=topic, score=score, confidence=1.0)
                profile.interests[topic] = interest
            interest.score = score
            interest.confidence = 1.0
            if "explicit" not in interest.sources:
                interest.sources.append("explicit")
            if keywords:
                interest.keywords = list(keywords)
            interest.last_updated = self._clock()
            profile.updated_at = interest.last_updated
            await self._save(profile)
        return interest

    async def record_search(self, user_id: str, query: str, results_clicked: int = 0) -> None:
        """Append a search to the user's bounded search history."""
        profile = await self.get_profile(user_id)
        async with self._locks.for_key(user_id):
            history = profile.behavior.search_history
            history.append(SearchEvent(query=query, timestamp=self._clock(), results_clicked=results_clicked))
            if len(history) > MAX_SEARCH_HISTORY:
                profile.behavior.search_history = history[-MAX_SEARCH_HISTORY:]
            await self._save(profile)

    async def record_rating(self, user_id: str, category: str, rating: float) -> None:
        """Fold an explicit 1-5 rating into the category's running average."""
        profile = await self.get_profile(user_id)
        async with self._locks.for_key(user_id):
            usage = profile.behavior.category_usage.setdefault(category, CategoryUsage())
            usage.ratings += 1
            usage.average_rating += (rating - usage.average_rating) / usage.ratings
            await self._save(profile)

    def profile_completeness(self, profile: UserProfile) -> float:
        return profile_completeness(profile)

    async def export_profile(self, user_id: str) -> dict[str, Any] | None:
        """Export a profile as a plain dict, or None for unknown users."""
        profile = await self.find_profile(user_id)
        if profile is None:
            return None
        data = profile.to_dict()
        data["derived"] = {
            "completeness": profile_completeness(profile),
            "peak_hours": profile.behavior.peak_hours,
            "common_domains": profile.behavior.common_domains,
            "bookmarks_per_day": profile.bookmarks_per_day(self._clock()),
        }
        return data

    def get_stats(self) -> dict[str, Any]:
        profiles = list(self._profiles.values())
        total_history = sum(len(p.behavior.interaction_history) for p in profiles)
        avg_completeness = (
            sum(profile_completeness(p) for p in profiles) / len(profiles) if profiles else 0.0
        )
        return {
            "profiles": len(profiles),
            "interactions": total_history,
            "average_completeness": avg_completeness,
        }
