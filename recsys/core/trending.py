"""Trending discovery: per-item engagement metrics and multi-factor trending scores."""

import asyncio
import copy
import math
import time
from collections import Counter, deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any

from recsys.config import TrendingConfig
from recsys.core.contracts import (
    Clock,
    ContentSource,
    InteractionType,
    TimeWindow,
    format_datetime,
    parse_datetime,
    utc_now,
)
from recsys.core.errors import TrendingDiscoveryError
from recsys.core.locks import KeyedLocks
from recsys.core.persistence import GuardedRepository
from recsys.logging import get_logger
from recsys.storage.repository import TRENDING_ITEMS, Repository

logger = get_logger(__name__)

SECONDS_PER_HOUR = 3600.0
EMERGING_MIN_ACCELERATION = 0.7
EMERGING_MIN_FRESHNESS = 0.8
VIRAL_MIN_COEFFICIENT = 1.5
# Sweeps yield to the event loop after this many items
SWEEP_BATCH = 200


@dataclass
class TrendingMetrics:
    views: int = 0
    bookmarks: int = 0
    shares: int = 0
    comments: int = 0
    favorites: int = 0
    unique_users: int = 0
    time_spent: float = 0.0  # seconds across all users
    impressions: int = 0
    click_through_rate: float = 0.0
    engagement_rate: float = 0.0
    virality_coefficient: float = 0.0

    def refresh_derived(self) -> None:
        """Recompute rates from the raw counters."""
        if self.views == 0:
            self.engagement_rate = 0.0
            self.virality_coefficient = 0.0
        else:
            self.engagement_rate = (
                self.bookmarks + self.shares + self.comments + self.favorites
            ) / self.views
            self.virality_coefficient = (self.shares + self.comments) / self.views
        if self.impressions > 0:
            self.click_through_rate = min(self.views / self.impressions, 1.0)
        else:
            self.click_through_rate = min(self.views / 100, 1.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "views": self.views,
            "bookmarks": self.bookmarks,
            "shares": self.shares,
            "comments": self.comments,
            "favorites": self.favorites,
            "unique_users": self.unique_users,
            "time_spent": self.time_spent,
            "impressions": self.impressions,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrendingMetrics":
        metrics = cls(
            views=int(data.get("views", 0)),
            bookmarks=int(data.get("bookmarks", 0)),
            shares=int(data.get("shares", 0)),
            comments=int(data.get("comments", 0)),
            favorites=int(data.get("favorites", 0)),
            unique_users=int(data.get("unique_users", 0)),
            time_spent=float(data.get("time_spent", 0.0)),
            impressions=int(data.get("impressions", 0)),
        )
        metrics.refresh_derived()
        return metrics


@dataclass(frozen=True)
class TrendingScore:
    overall: float = 0.0
    popularity: float = 0.0
    velocity: float = 0.0
    acceleration: float = 0.0
    freshness: float = 1.0
    quality: float = 0.5
    diversity: float = 0.0
    sustainability: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "overall": self.overall,
            "popularity": self.popularity,
            "velocity": self.velocity,
            "acceleration": self.acceleration,
            "freshness": self.freshness,
            "quality": self.quality,
            "diversity": self.diversity,
            "sustainability": self.sustainability,
        }


@dataclass
class TrendingMetadata:
    source: str = "unknown"
    domain: str = "unknown"
    content_type: str = "article"
    language: str = "en"
    reading_time: int = 5
    content_quality: float = 70.0
    published_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "domain": self.domain,
            "content_type": self.content_type,
            "language": self.language,
            "reading_time": self.reading_time,
            "content_quality": self.content_quality,
            "published_at": format_datetime(self.published_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrendingMetadata":
        return cls(
            source=data.get("source", "unknown"),
            domain=data.get("domain", "unknown"),
            content_type=data.get("content_type", "article"),
            language=data.get("language", "en"),
            reading_time=int(data.get("reading_time", 5)),
            content_quality=float(data.get("content_quality", 70.0)),
            published_at=parse_datetime(data.get("published_at")),
        )


@dataclass
class TrendingItem:
    """An item's engagement state. Created on the first event that references it."""

    item_id: str
    first_seen: datetime
    last_updated: datetime
    category: str = "general"
    tags: list[str] = field(default_factory=list)
    url: str | None = None
    title: str = ""
    description: str = ""
    metrics: TrendingMetrics = field(default_factory=TrendingMetrics)
    score: TrendingScore = field(default_factory=TrendingScore)
    metadata: TrendingMetadata = field(default_factory=TrendingMetadata)
    user_ids: set[str] = field(default_factory=set)
    # (timestamp, event type) pairs, most recent last
    events: deque = field(default_factory=deque)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "first_seen": format_datetime(self.first_seen),
            "last_updated": format_datetime(self.last_updated),
            "category": self.category,
            "tags": list(self.tags),
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "metrics": self.metrics.to_dict(),
            "metadata": self.metadata.to_dict(),
            "user_ids": sorted(self.user_ids),
            "events": [[format_datetime(ts), kind] for ts, kind in self.events],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], max_events: int = 500) -> "TrendingItem":
        return cls(
            item_id=data["item_id"],
            first_seen=parse_datetime(data["first_seen"]),
            last_updated=parse_datetime(data["last_updated"]),
            category=data.get("category", "general"),
            tags=list(data.get("tags", [])),
            url=data.get("url"),
            title=data.get("title", ""),
            description=data.get("description", ""),
            metrics=TrendingMetrics.from_dict(data.get("metrics", {})),
            metadata=TrendingMetadata.from_dict(data.get("metadata", {})),
            user_ids=set(data.get("user_ids", [])),
            events=deque(
                ((parse_datetime(ts), kind) for ts, kind in data.get("events", [])),
                maxlen=max_events,
            ),
        )


@dataclass
class TrendingQuery:
    time_window: TimeWindow = TimeWindow.DAY
    limit: int = 20
    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    content_types: list[str] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)
    min_score: float | None = None
    exclude_items: list[str] = field(default_factory=list)


@dataclass
class TrendingCategory:
    name: str
    total_items: int = 0
    average_score: float = 0.0
    top_tags: list[str] = field(default_factory=list)
    growth_rate: float = 0.0
    last_updated: datetime | None = None


# Score components


def freshness_score(age_hours: float, decay_factor: float) -> float:
    """Pure exponential decay from first-seen time; 1.0 at age 0."""
    return math.exp(-max(age_hours, 0.0) * decay_factor)


def popularity_score(metrics: TrendingMetrics) -> float:
    views = min(metrics.views / 1000, 1)
    bookmarks = min(metrics.bookmarks / 100, 1)
    shares = min(metrics.shares / 50, 1)
    engagement = min(metrics.engagement_rate, 1)
    return views * 0.4 + bookmarks * 0.3 + shares * 0.2 + engagement * 0.1


def velocity_score(metrics: TrendingMetrics, age_hours: float) -> float:
    """Event rate against expected maxima of 50 views/h and 5 bookmarks/h."""
    if age_hours <= 0:
        return 1.0
    views_per_hour = metrics.views / age_hours
    bookmarks_per_hour = metrics.bookmarks / age_hours
    return min(views_per_hour / 50 + bookmarks_per_hour / 5, 1.0)


def recent_activity_score(since_last_update_hours: float) -> float:
    """Linear decay to zero over one hour of inactivity."""
    return max(0.0, 1.0 - since_last_update_hours)


def acceleration_score(last_hour: int, previous_hour: int, recent_activity: float) -> float:
    """Growth of the event rate between the previous hour and the last one.

    Without a previous-hour baseline this falls back to recent activity.
    """
    if previous_hour == 0:
        return min(recent_activity * 2, 1.0)
    growth = (last_hour - previous_hour) / previous_hour
    return max(0.0, min(growth, 1.0))


def quality_score(metrics: TrendingMetrics) -> float:
    engagement = min(metrics.engagement_rate, 1.0)
    virality = min(metrics.virality_coefficient / 3, 1.0)
    if metrics.views > 0:
        time_per_view = min(metrics.time_spent / (metrics.views * 60), 1.0)
    else:
        time_per_view = 0.0
    return engagement * 0.5 + virality * 0.3 + time_per_view * 0.2


def diversity_score(metrics: TrendingMetrics) -> float:
    ratio = metrics.unique_users / max(metrics.views, 1)
    return min(ratio * 2, 1.0)


def sustainability_score(age_hours: float, recent_activity: float) -> float:
    if age_hours < 1:
        return 0.5
    return min(age_hours / 24, 1.0) * recent_activity


def window_adjusted_score(score: TrendingScore, window: TimeWindow) -> float:
    """Shorter windows up-weight velocity and acceleration."""
    if window is TimeWindow.HOUR:
        return score.overall * 0.5 + score.velocity * 0.3 + score.acceleration * 0.2
    if window is TimeWindow.DAY:
        return score.overall * 0.7 + score.velocity * 0.3
    return score.overall


class TrendingDiscovery:
    """Tracks item engagement and ranks items by time-window-adjusted trending score."""

    def __init__(
        self,
        config: TrendingConfig | None = None,
        repository: Repository | None = None,
        catalog: ContentSource | None = None,
        clock: Clock | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.config = config or TrendingConfig()
        self._repository = GuardedRepository.wrap(repository)
        self._catalog = catalog
        self._clock = clock or utc_now
        self._locks = locks or KeyedLocks()
        self._items: dict[str, TrendingItem] = {}
        self._categories: dict[str, TrendingCategory] = {}
        self._analytics: dict[str, Any] = {}

    async def load(self) -> int:
        records = await self._repository.scan(TRENDING_ITEMS)
        for item_id, record in records:
            try:
                self._items[item_id] = TrendingItem.from_dict(record, self.config.max_event_history)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable trending item {item_id}: {e}")
        logger.info(f"Loaded {len(self._items)} trending items")
        return len(self._items)

    # Scoring

    def _age_hours(self, item: TrendingItem, now: datetime) -> float:
        return max((now - item.first_seen).total_seconds() / SECONDS_PER_HOUR, 0.0)

    def _events_between(self, item: TrendingItem, start: datetime, end: datetime) -> int:
        return sum(1 for ts, _ in item.events if start <= ts < end)

    def score_item(self, item: TrendingItem, now: datetime | None = None) -> TrendingScore:
        """Compute the seven sub-scores and their weighted overall score at ``now``."""
        now = now or self._clock()
        weights = self.config.score_weights
        metrics = item.metrics
        age_hours = self._age_hours(item, now)
        since_update = max((now - item.last_updated).total_seconds() / SECONDS_PER_HOUR, 0.0)
        recent = recent_activity_score(since_update)

        hour = timedelta(hours=1)
        upper = now + timedelta(microseconds=1)
        last_hour = self._events_between(item, now - hour, upper)
        previous_hour = self._events_between(item, now - 2 * hour, now - hour)

        components = {
            "popularity": popularity_score(metrics),
            "velocity": velocity_score(metrics, age_hours),
            "acceleration": acceleration_score(last_hour, previous_hour, recent),
            "freshness": freshness_score(age_hours, self.config.decay_factor),
            "quality": quality_score(metrics),
            "diversity": diversity_score(metrics),
            "sustainability": sustainability_score(age_hours, recent),
        }
        overall = sum(components[name] * weights[name] for name in components)
        return TrendingScore(overall=max(0.0, min(overall, 1.0)), **components)

    # Event recording

    async def _create_item(self, item_id: str, now: datetime) -> TrendingItem:
        item = TrendingItem(item_id=item_id, first_seen=now, last_updated=now)
        item.events = deque(maxlen=self.config.max_event_history)
        if self._catalog is not None:
            content = await self._catalog.get_item(item_id)
            if content is not None:
                item.category = content.category or "general"
                item.tags = list(content.tags)
                item.url = content.url
                item.title = content.title
                item.description = content.description
                item.metadata = TrendingMetadata(
                    source=content.domain or "unknown",
                    domain=content.domain or "unknown",
                    content_type=content.content_type or "article",
                    language=content.language,
                    reading_time=content.reading_time,
                    content_quality=content.quality,
                    published_at=content.published_at,
                )
        return item

    async def record_event(
        self,
        item_id: str,
        event_type: InteractionType | str,
        user_id: str,
        duration: float | None = None,
        timestamp: datetime | None = None,
    ) -> TrendingItem | None:
        """Update an item's metrics from an interaction event.

        Failures are logged and swallowed: trending is advisory.

        Returns:
            The updated item, or None if the update failed
        """
        try:
            event_type = InteractionType(event_type)
            now = timestamp or self._clock()

            async with self._locks.for_key(item_id):
                item = self._items.get(item_id)
                if item is None:
                    item = await self._create_item(item_id, now)
                    self._items[item_id] = item

                metrics = item.metrics
                if event_type is InteractionType.VIEW:
                    metrics.views += 1
                    if duration:
                        metrics.time_spent += duration
                elif event_type is InteractionType.BOOKMARK:
                    metrics.bookmarks += 1
                elif event_type is InteractionType.SHARE:
                    metrics.shares += 1
                elif event_type is InteractionType.COMMENT:
                    metrics.comments += 1
                elif event_type is InteractionType.FAVORITE:
                    metrics.favorites += 1

                item.user_ids.add(user_id)
                metrics.unique_users = len(item.user_ids)
                metrics.refresh_derived()

                item.events.append((now, event_type.value))
                if now > item.last_updated:
                    item.last_updated = now
                item.score = self.score_item(item, now)
                await self._repository.put(TRENDING_ITEMS, item_id, item.to_dict())

            logger.debug(
                f"Item metrics updated: item={item_id} type={event_type.value} "
                f"score={item.score.overall:.3f} category={item.category}"
            )
            return item

        except Exception as e:
            logger.error(f"Failed to update item metrics: item={item_id} type={event_type} error={e}")
            return None

    async def record_impression(self, item_id: str, count: int = 1) -> None:
        """Count times an item was shown, enabling a real click-through rate.

        An item first seen through an impression is tracked from that point.
        """
        async with self._locks.for_key(item_id):
            item = self._items.get(item_id)
            if item is None:
                item = await self._create_item(item_id, self._clock())
                self._items[item_id] = item
            item.metrics.impressions += count
            item.metrics.refresh_derived()
            await self._repository.put(TRENDING_ITEMS, item_id, item.to_dict())

    # Queries

    def _cutoff(self, window: TimeWindow, now: datetime) -> datetime:
        return now - timedelta(hours=window.hours)

    def _meets_threshold(self, item: TrendingItem) -> bool:
        metrics = item.metrics
        return (
            metrics.views >= self.config.min_views
            and metrics.bookmarks >= self.config.min_bookmarks
            and metrics.unique_users >= self.config.min_unique_users
        )

    def _snapshot(self, item: TrendingItem, now: datetime) -> TrendingItem:
        """Scored copy of ``item`` that shares no mutable state with it."""
        return replace(
            item,
            tags=list(item.tags),
            metrics=copy.deepcopy(item.metrics),
            score=self.score_item(item, now),
            metadata=copy.deepcopy(item.metadata),
            user_ids=set(item.user_ids),
            events=deque(item.events, maxlen=item.events.maxlen),
        )

    def _passes_query(self, item: TrendingItem, query: TrendingQuery) -> bool:
        if query.categories and item.category not in query.categories:
            return False
        if query.tags and not any(tag in item.tags for tag in query.tags):
            return False
        if query.content_types and item.metadata.content_type not in query.content_types:
            return False
        if query.languages and item.metadata.language not in query.languages:
            return False
        if query.min_score is not None and item.score.overall < query.min_score:
            return False
        if item.item_id in query.exclude_items:
            return False
        return True

    def _diversify(self, items: list[TrendingItem], limit: int) -> list[TrendingItem]:
        """Cap items per category, then back-fill from the overall ranking."""
        max_per_category = math.ceil(limit / len(self.config.categories))
        results: list[TrendingItem] = []
        chosen: set[str] = set()
        per_category: Counter = Counter()

        for item in items:
            if len(results) >= limit:
                break
            if per_category[item.category] < max_per_category:
                results.append(item)
                chosen.add(item.item_id)
                per_category[item.category] += 1

        for item in items:
            if len(results) >= limit:
                break
            if item.item_id not in chosen:
                results.append(item)
                chosen.add(item.item_id)

        return results

    async def discover(self, query: TrendingQuery | None = None) -> list[TrendingItem]:
        """Trending items for a query, ordered by window-adjusted score.

        Raises:
            TrendingDiscoveryError: On unexpected ranking failures
        """
        query = query or TrendingQuery()
        start = time.perf_counter()
        window = TimeWindow(query.time_window)

        try:
            logger.info(
                f"Discovering trending content: window={window.value} "
                f"categories={','.join(query.categories) or 'all'} limit={query.limit}"
            )
            if query.limit <= 0:
                return []

            now = self._clock()
            cutoff = self._cutoff(window, now)
            candidates: list[TrendingItem] = []
            for index, item in enumerate(list(self._items.values())):
                if item.last_updated >= cutoff and self._meets_threshold(item):
                    snapshot = self._snapshot(item, now)
                    if self._passes_query(snapshot, query):
                        candidates.append(snapshot)
                if (index + 1) % SWEEP_BATCH == 0:
                    await asyncio.sleep(0)

            candidates.sort(key=lambda i: (-window_adjusted_score(i.score, window), i.item_id))
            results = self._diversify(candidates, query.limit)

            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.info(
                f"Trending discovery completed: window={window.value} "
                f"candidates={len(candidates)} results={len(results)} duration_ms={duration_ms}"
            )
            return results

        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.error(
                f"Trending discovery failed: window={window.value} duration_ms={duration_ms} error={e}"
            )
            raise TrendingDiscoveryError(f"Failed to discover trending content: {e}") from e

    async def get_trending_by_category(
        self,
        category: str,
        time_window: TimeWindow = TimeWindow.DAY,
        limit: int = 20,
    ) -> list[TrendingItem]:
        now = self._clock()
        cutoff = self._cutoff(TimeWindow(time_window), now)
        items = [
            self._snapshot(item, now)
            for item in self._items.values()
            if item.category == category and item.last_updated >= cutoff
        ]
        items.sort(key=lambda i: (-i.score.overall, i.item_id))
        return items[:limit]

    async def get_trending_tags(
        self,
        time_window: TimeWindow = TimeWindow.DAY,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """Tags of recently active items ranked by mean overall and velocity score."""
        now = self._clock()
        cutoff = self._cutoff(TimeWindow(time_window), now)
        by_tag: dict[str, list[TrendingScore]] = {}
        for item in self._items.values():
            if item.last_updated < cutoff:
                continue
            score = self.score_item(item, now)
            for tag in item.tags:
                by_tag.setdefault(tag, []).append(score)

        tags = []
        for tag, scores in by_tag.items():
            avg_overall = sum(s.overall for s in scores) / len(scores)
            avg_velocity = sum(s.velocity for s in scores) / len(scores)
            tags.append({"tag": tag, "frequency": len(scores), "trend": (avg_overall + avg_velocity) / 2})
        tags.sort(key=lambda t: (-t["trend"], t["tag"]))
        return tags[:limit]

    async def get_emerging_trends(
        self,
        time_window: TimeWindow = TimeWindow.HOUR,
        limit: int = 10,
    ) -> list[TrendingItem]:
        """New items that are accelerating while still fresh."""
        now = self._clock()
        cutoff = self._cutoff(TimeWindow(time_window), now)
        emerging = []
        for item in self._items.values():
            if item.first_seen < cutoff:
                continue
            snapshot = self._snapshot(item, now)
            if (
                snapshot.score.acceleration > EMERGING_MIN_ACCELERATION
                and snapshot.score.freshness > EMERGING_MIN_FRESHNESS
            ):
                emerging.append(snapshot)
        emerging.sort(
            key=lambda i: (-(i.score.acceleration * 0.6 + i.score.velocity * 0.4), i.item_id)
        )
        return emerging[:limit]

    async def get_viral_content(
        self,
        time_window: TimeWindow = TimeWindow.DAY,
        limit: int = 10,
    ) -> list[TrendingItem]:
        now = self._clock()
        cutoff = self._cutoff(TimeWindow(time_window), now)
        viral = [
            self._snapshot(item, now)
            for item in self._items.values()
            if item.last_updated >= cutoff
            and item.metrics.virality_coefficient > VIRAL_MIN_COEFFICIENT
            and item.metrics.shares > 0
        ]
        viral.sort(key=lambda i: (-i.metrics.virality_coefficient, i.item_id))
        return viral[:limit]

    def get_window_metrics(self, item_id: str, time_window: TimeWindow) -> dict[str, int]:
        """Event counts by type within a time window, from the retained event history."""
        item = self._items.get(item_id)
        if item is None:
            return {}
        cutoff = self._cutoff(TimeWindow(time_window), self._clock())
        counts = Counter(kind for ts, kind in item.events if ts >= cutoff)
        return {kind.value: counts.get(kind.value, 0) for kind in InteractionType}

    def get_item(self, item_id: str) -> TrendingItem | None:
        item = self._items.get(item_id)
        if item is None:
            return None
        return self._snapshot(item, self._clock())

    # Maintenance

    def _growth_rate(self, items: list[TrendingItem], now: datetime) -> float:
        day = timedelta(hours=24)
        upper = now + timedelta(microseconds=1)
        recent = sum(self._events_between(i, now - day, upper) for i in items)
        previous = sum(self._events_between(i, now - 2 * day, now - day) for i in items)
        if previous == 0:
            return 1.0 if recent else 0.0
        return (recent - previous) / previous

    def recompute_categories(self) -> dict[str, TrendingCategory]:
        """Rebuild per-category aggregates: size, average score, top tags, growth."""
        now = self._clock()
        grouped: dict[str, list[TrendingItem]] = {}
        for item in self._items.values():
            grouped.setdefault(item.category, []).append(item)

        categories = {}
        for name, items in grouped.items():
            tag_counts = Counter(tag for item in items for tag in item.tags)
            categories[name] = TrendingCategory(
                name=name,
                total_items=len(items),
                average_score=sum(self.score_item(i, now).overall for i in items) / len(items),
                top_tags=[tag for tag, _ in sorted(tag_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:10]],
                growth_rate=self._growth_rate(items, now),
                last_updated=now,
            )
        self._categories = categories
        return categories

    def get_categories(self) -> list[TrendingCategory]:
        if not self._categories and self._items:
            self.recompute_categories()
        return list(self._categories.values())

    async def cleanup(self) -> int:
        """Evict items with no update within the retention period."""
        cutoff = self._clock() - timedelta(days=self.config.retention_days)
        removed = 0
        for index, item_id in enumerate(list(self._items)):
            async with self._locks.for_key(item_id):
                item = self._items.get(item_id)
                if item is not None and item.last_updated < cutoff:
                    del self._items[item_id]
                    await self._repository.delete(TRENDING_ITEMS, item_id)
                    removed += 1
            if (index + 1) % SWEEP_BATCH == 0:
                await asyncio.sleep(0)
        return removed

    async def run_maintenance(self) -> dict[str, Any]:
        """Evict stale items, then refresh category aggregates and analytics."""
        start = time.perf_counter()
        removed = await self.cleanup()
        self.recompute_categories()
        self._analytics = self._compute_analytics()
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            f"Trending maintenance completed: items={len(self._items)} removed={removed} "
            f"categories={len(self._categories)} duration_ms={duration_ms}"
        )
        return {
            "items": len(self._items),
            "removed": removed,
            "categories": len(self._categories),
            "duration_ms": duration_ms,
        }

    def _compute_analytics(self) -> dict[str, Any]:
        now = self._clock()
        items = list(self._items.values())
        if not self._categories and items:
            self.recompute_categories()

        lifespans = [
            (i.last_updated - i.first_seen).total_seconds() / SECONDS_PER_HOUR for i in items
        ]
        hour_counts = Counter(ts.hour for i in items for ts, _ in i.events)
        peak_hours = sorted(hour for hour, _ in hour_counts.most_common(8))
        tag_counts = Counter(tag for i in items for tag in i.tags)

        quality = {"high": 0, "medium": 0, "low": 0}
        content_types: Counter = Counter()
        for item in items:
            q = self.score_item(item, now).quality
            if q > 0.8:
                quality["high"] += 1
            elif q > 0.5:
                quality["medium"] += 1
            else:
                quality["low"] += 1
            content_types[item.metadata.content_type] += 1

        top_categories = sorted(
            (
                {"category": c.name, "count": c.total_items, "growth": c.growth_rate}
                for c in self._categories.values()
            ),
            key=lambda c: (-c["count"], c["category"]),
        )[:10]

        return {
            "total_trending_items": len(items),
            "categories_count": len(self._categories),
            "average_lifespan_hours": sum(lifespans) / len(lifespans) if lifespans else 0.0,
            "top_categories": top_categories,
            "top_tags": [
                {"tag": tag, "frequency": freq}
                for tag, freq in sorted(tag_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:20]
            ],
            "peak_hours": peak_hours,
            "content_type_distribution": dict(content_types),
            "quality_distribution": quality,
        }

    def get_analytics(self) -> dict[str, Any]:
        """Analytics from the last maintenance run, computed now if none has run."""
        if not self._analytics:
            self._analytics = self._compute_analytics()
        return dict(self._analytics)

    def get_config(self) -> TrendingConfig:
        return self.config

    def update_config(self, **changes: Any) -> TrendingConfig:
        self.config = replace(self.config, **changes)
        logger.info(f"Trending discovery config updated: {', '.join(sorted(changes))}")
        return self.config

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_items": len(self._items),
            "total_categories": len({i.category for i in self._items.values()}),
            "tracked_events": sum(len(i.events) for i in self._items.values()),
        }
