"""In-process content catalog over extracted/enriched content records."""

from datetime import datetime

from recsys.core.contracts import Clock, ContentItem, RecommendationFilters, utc_now
from recsys.logging import get_logger

logger = get_logger(__name__)


def matches_filters(
    item: ContentItem,
    filters: RecommendationFilters,
    now: datetime,
) -> bool:
    """Check a content item against caller filters.

    Args:
        item: Candidate content
        filters: Request filters
        now: Reference time for the max-age check

    Returns:
        True if the item passes every populated filter
    """
    if filters.categories and item.category not in filters.categories:
        return False
    if filters.tags and not any(tag in item.tags for tag in filters.tags):
        return False
    if filters.domains and item.domain not in filters.domains:
        return False
    if filters.languages and item.language not in filters.languages:
        return False
    if filters.content_types and item.content_type not in filters.content_types:
        return False
    if filters.min_quality is not None and item.quality < filters.min_quality:
        return False
    if filters.max_age_days is not None and item.published_at is not None:
        age_days = (now - item.published_at).total_seconds() / 86400
        if age_days > filters.max_age_days:
            return False
    if item.item_id in filters.exclude_items or (item.url and item.url in filters.exclude_items):
        return False
    return True


class InMemoryCatalog:
    """ContentSource backed by a dict of ContentItem records."""

    def __init__(self, items: list[ContentItem] | None = None, clock: Clock | None = None) -> None:
        self._clock = clock or utc_now
        self._items: dict[str, ContentItem] = {}
        for item in items or []:
            self._items[item.item_id] = item

    def add(self, item: ContentItem) -> None:
        """Register or replace a content item."""
        self._items[item.item_id] = item

    def add_extracted(self, record: dict) -> ContentItem:
        """Register an extracted-content record as produced by the extraction pipeline.

        Accepts the pipeline's field names (``id``/``url``, ``readingTime``,
        ``qualityScore``) as well as this package's own.
        """
        item = ContentItem(
            item_id=str(record.get("item_id") or record.get("id") or record["url"]),
            title=record.get("title", ""),
            url=record.get("url"),
            description=record.get("description", ""),
            category=record.get("category") or "general",
            tags=list(record.get("tags", [])),
            content_type=record.get("content_type") or record.get("contentType"),
            language=record.get("language", "en"),
            quality=float(record.get("quality", record.get("qualityScore", 70.0))),
            reading_time=int(record.get("reading_time", record.get("readingTime", 5))),
            domain=record.get("domain"),
        )
        self.add(item)
        return item

    def remove(self, item_id: str) -> bool:
        return self._items.pop(item_id, None) is not None

    async def get_item(self, item_id: str) -> ContentItem | None:
        return self._items.get(item_id)

    async def find_items(
        self,
        filters: RecommendationFilters,
        exclude: set[str] | None = None,
    ) -> list[ContentItem]:
        now = self._clock()
        exclude = exclude or set()
        return [
            item
            for item in self._items.values()
            if item.item_id not in exclude and matches_filters(item, filters, now)
        ]

    def __len__(self) -> int:
        return len(self._items)
