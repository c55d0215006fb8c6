"""Human-readable reasoning strings attached to recommendations."""

import hashlib

from recsys.core.contracts import ContentItem

# Maximum length of a single reasoning line
MAX_REASON_LENGTH = 160

CONTENT_TEMPLATES = [
    "Based on your interest in {category}",
    "Because you often save {category} content",
    "Picked for your {category} reading",
]

COLLABORATIVE_TEMPLATES = [
    "Users with similar interests also bookmarked this",
    "Popular with readers who share your taste",
    "Saved by people whose bookmarks look like yours",
]

TRENDING_TEMPLATES = [
    "Currently trending in your areas of interest",
    "Gaining attention in {category} right now",
    "One of the most active {category} items today",
]

HYBRID_TEMPLATES = [
    "Combines multiple recommendation factors",
    "Matches your profile and what others are reading",
]


def _hash_seed(key: str, salt: str = "") -> int:
    """Deterministic integer from a key, used to vary wording per item."""
    digest = hashlib.sha256(f"{key}{salt}".encode()).digest()
    return int.from_bytes(digest[:4], "big")


def _select_by_hash(options: list[str], key: str, salt: str = "") -> str:
    if not options:
        return ""
    return options[_hash_seed(key, salt) % len(options)]


def _clip(text: str, max_length: int = MAX_REASON_LENGTH) -> str:
    text = " ".join(text.split())
    if len(text) <= max_length:
        return text
    cut = text[: max_length - 3].rsplit(" ", 1)[0]
    return f"{cut}..."


def content_reasoning(item: ContentItem, matched_tags: list[str]) -> list[str]:
    """Reasons for a content-based match."""
    category = item.category if item.category != "general" else "similar content"
    reasons = [_select_by_hash(CONTENT_TEMPLATES, item.target, "content").format(category=category)]
    if matched_tags:
        reasons.append(f"Matches your preferences for tags: {', '.join(matched_tags[:3])}")
    elif item.tags:
        reasons.append(f"Tagged {', '.join(item.tags[:3])}")
    return [_clip(r) for r in reasons]


def collaborative_reasoning(item_key: str, supporters: int, avg_similarity: float) -> list[str]:
    """Reasons for a collaborative match."""
    return [
        _clip(_select_by_hash(COLLABORATIVE_TEMPLATES, item_key, "collab")),
        f"{supporters} similar users, {round(avg_similarity * 100)}% average similarity with you",
    ]


def trending_reasoning(item: ContentItem, velocity: float, relevance: float) -> list[str]:
    """Reasons for a trending pick."""
    reasons = [
        _clip(_select_by_hash(TRENDING_TEMPLATES, item.target, "trend").format(category=item.category))
    ]
    if velocity >= 0.5:
        reasons.append("Engagement is growing quickly")
    else:
        reasons.append("High engagement from the community")
    if relevance >= 0.75:
        reasons.append("Closely matches your interests")
    return reasons


def hybrid_reasoning(item_key: str, sources: list[str]) -> list[str]:
    """Header reasons for a merged recommendation; source reasons follow."""
    first = _select_by_hash(HYBRID_TEMPLATES, item_key, "hybrid")
    if len(sources) > 1:
        return [first, f"Recommended by {' and '.join(sources)} signals"]
    return [first, "Balanced relevance and popularity"]
