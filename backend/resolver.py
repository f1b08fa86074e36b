"""
Loose item lookup for conversational references.

Users say "mark the Google internship thing done", not an id. resolve_item()
tries, in order, and returns the first hit:

    1. direct id lookup, only when the input looks like a UUID
    2. exact title (case-insensitive)
    3. title contains the search term
    4. search term contains the title ("the laundry task" -> "laundry")
    5. any search word longer than two characters appears in the title

Candidates are scanned in store order (newest first), so the same data always
resolves to the same item.
"""
import logging
import re
import sqlite3
from typing import Optional

from database import get_item, list_items
from models import Item

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def _lookup_by_id(identifier: str, user_id: str) -> Optional[Item]:
    try:
        return get_item(identifier, user_id)
    except (sqlite3.Error, ValueError) as e:
        logger.debug("id lookup for %s failed, falling back to title search: %s", identifier, e)
        return None


def resolve_item(identifier: str, user_id: str) -> Optional[Item]:
    """Resolve an id or loose title to one of the user's items. None means not found."""
    if not identifier or not identifier.strip():
        return None
    identifier = identifier.strip()

    if UUID_PATTERN.match(identifier):
        item = _lookup_by_id(identifier, user_id)
        if item:
            return item

    items = list_items(user_id)
    search = identifier.lower()

    exact = next((i for i in items if i.title.lower() == search), None)
    if exact:
        logger.debug("resolved %r by exact title: %r", identifier, exact.title)
        return exact

    partial = next((i for i in items if search in i.title.lower()), None)
    if partial:
        logger.debug("resolved %r by partial title: %r", identifier, partial.title)
        return partial

    reverse = next((i for i in items if i.title.lower() in search), None)
    if reverse:
        logger.debug("resolved %r by reverse partial title: %r", identifier, reverse.title)
        return reverse

    words = [w for w in search.split() if len(w) > 2]
    if words:
        fuzzy = next((i for i in items if any(w in i.title.lower() for w in words)), None)
        if fuzzy:
            logger.debug("resolved %r by fuzzy word match: %r", identifier, fuzzy.title)
            return fuzzy

    logger.debug(
        "no match for %r; available titles: %s",
        identifier, ", ".join(i.title for i in items[:5])
    )
    return None
