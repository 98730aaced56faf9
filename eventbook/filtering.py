from difflib import SequenceMatcher
from typing import List

from eventbook.models.event import Event


def similarity_score(a: str, b: str) -> float:
    """Calculate similarity score between two strings (0-1)"""
    if not a or not b:
        return 0.0

    # Convert to lowercase for case-insensitive comparison
    a_lower = a.lower().strip()
    b_lower = b.lower().strip()

    # Exact match
    if a_lower == b_lower:
        return 1.0

    # Check if one contains the other
    if a_lower in b_lower or b_lower in a_lower:
        return 0.8

    # Use SequenceMatcher for fuzzy matching
    return SequenceMatcher(None, a_lower, b_lower).ratio()


def filter_events_by_category(events: List[Event], category: str) -> List[Event]:
    """Filter events by exact (case-insensitive) category; 'all' keeps everything"""
    if not category or category.lower() == "all":
        return events
    return [event for event in events if event.category.lower() == category.lower()]


def search_events(events: List[Event], search_query: str, threshold: float = 0.5) -> List[Event]:
    """Search events by title, description, category and location"""
    if not search_query:
        return events

    filtered_events = []
    for event in events:
        fields = [event.title, event.description, event.category, event.location]
        if any(similarity_score(search_query, field) >= threshold for field in fields):
            filtered_events.append(event)

    return filtered_events


def sort_events(events: List[Event], sort_by: str = "date", order: str = "asc") -> List[Event]:
    """Sort events by various criteria"""
    reverse = order.lower() == "desc"

    if sort_by == "date":
        events.sort(key=lambda x: (x.date, x.time), reverse=reverse)
    elif sort_by == "title":
        events.sort(key=lambda x: x.title.lower(), reverse=reverse)
    elif sort_by == "price":
        events.sort(key=lambda x: x.price, reverse=reverse)
    elif sort_by == "created":
        events.sort(key=lambda x: x.created_at, reverse=reverse)

    return events
