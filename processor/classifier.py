"""Keyword-based event type classification."""
from typing import Iterable, Mapping, Optional, Sequence, Tuple

from processor.models import EventType
from sync.errors import ConfigError

# Types are checked in this order; the first with a matching keyword wins
CLASSIFICATION_ORDER = (
    EventType.HOLIDAY,
    EventType.PTO,
    EventType.TRAVEL,
    EventType.FOCUS,
    EventType.TRAINING,
)

DEFAULT_EVENT_TYPE_MAPPING = (
    (EventType.HOLIDAY, ('holiday', 'bank holiday')),
    (EventType.PTO, ('vacation', 'pto', 'out of office', 'ooo')),
    (EventType.TRAVEL, ('travel', 'flight', 'trip')),
    (EventType.FOCUS, ('focus', 'deep work', 'heads down')),
    (EventType.TRAINING, ('training', 'learning', 'workshop')),
)

KeywordTable = Sequence[Tuple[EventType, Tuple[str, ...]]]


def build_keyword_table(overrides: Mapping[str, Iterable[str]]) -> KeywordTable:
    """
    Build a keyword table from a type name -> keywords mapping.

    Types not named in the mapping get no keywords. The result is always in
    classification order, whatever order the mapping uses.

    Args:
        overrides: Mapping of event type name to its keywords

    Returns:
        Ordered list of (EventType, keywords) pairs

    Raises:
        ConfigError: If the mapping names an unknown type or has bad keywords
    """
    allowed = {event_type.value for event_type in CLASSIFICATION_ORDER}
    unknown = sorted(set(overrides) - allowed)
    if unknown:
        raise ConfigError(
            f"Unknown event types in mapping: {', '.join(unknown)}. "
            f"Allowed: {', '.join(sorted(allowed))}"
        )

    table = []
    for event_type in CLASSIFICATION_ORDER:
        keywords = overrides.get(event_type.value, ())
        if isinstance(keywords, str):
            raise ConfigError(
                f"Keywords for '{event_type.value}' must be a list, not a string"
            )
        normalized = []
        for keyword in keywords:
            if not isinstance(keyword, str) or not keyword.strip():
                raise ConfigError(
                    f"Invalid keyword for '{event_type.value}': {keyword!r}"
                )
            normalized.append(keyword.strip().lower())
        table.append((event_type, tuple(normalized)))
    return table


class EventClassifier:
    """Assigns an event type to an event title by keyword matching."""

    def __init__(self, keyword_table: Optional[KeywordTable] = None):
        """
        Initialize the classifier.

        Args:
            keyword_table: Ordered (EventType, keywords) pairs. Defaults to
                DEFAULT_EVENT_TYPE_MAPPING.
        """
        self.keyword_table = tuple(keyword_table or DEFAULT_EVENT_TYPE_MAPPING)

    def classify(self, title: str) -> EventType:
        """
        Classify an event title.

        Args:
            title: Event title

        Returns:
            First EventType whose keywords appear in the title, or MEETING
        """
        title_lower = (title or '').lower()

        for event_type, keywords in self.keyword_table:
            if any(keyword in title_lower for keyword in keywords):
                return event_type

        return EventType.MEETING
