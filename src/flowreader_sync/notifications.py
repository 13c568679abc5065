"""Server push notifications.

The event stream sends JSON objects of the form
``{"type": "...", "payload": {...}}``. Each recognized type decodes into
its own dataclass; anything else becomes :class:`UnknownNotification` so
newer servers never break older clients.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Union

from .models import MUTABLE_ARTICLE_FIELDS


class MalformedNotification(ValueError):
    """Raised when a frame is not a JSON object with a string ``type``."""


@dataclass(frozen=True)
class NewArticles:
    """A feed produced new items."""

    feed_id: str | None = None
    feed_title: str | None = None
    count: int = 0


@dataclass(frozen=True)
class ArticleUpdated:
    """Fields on an existing article changed server-side.

    ``article_id`` is None when the server sends a bare signal.
    """

    article_id: str | None = None
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UnknownNotification:
    type: str
    payload: dict[str, Any] = field(default_factory=dict)


Notification = Union[NewArticles, ArticleUpdated, UnknownNotification]


def parse_notification(raw: str | bytes) -> Notification:
    """Decode one event-stream frame.

    Raises:
        MalformedNotification: If the frame is not a tagged JSON object
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedNotification(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise MalformedNotification("Notification must be an object with a string 'type'")

    payload = data.get("payload")
    if not isinstance(payload, dict):
        # Older servers put the fields next to "type".
        payload = {k: v for k, v in data.items() if k != "type"}

    kind = data["type"]
    if kind == "new_articles":
        feed_id = payload.get("feed_id")
        count = payload.get("count")
        return NewArticles(
            feed_id=str(feed_id) if feed_id is not None else None,
            feed_title=payload.get("feed_title"),
            count=count if isinstance(count, int) else 0,
        )
    if kind == "article_updated":
        article_id = payload.get("id")
        changes = {k: v for k, v in payload.items() if k in MUTABLE_ARTICLE_FIELDS}
        return ArticleUpdated(
            article_id=str(article_id) if article_id is not None else None,
            changes=changes,
        )
    return UnknownNotification(type=kind, payload=payload)
