"""Data models for the FlowReader sync client."""

from dataclasses import asdict, dataclass, fields


@dataclass
class Article:
    """A FlowReader article as returned by the REST API.

    The cache holds copies of these; the server owns the canonical record.
    """

    id: str
    feed_id: str
    title: str = "Untitled"
    guid: str = ""
    url: str | None = None
    content: str | None = None
    summary: str | None = None
    author: str | None = None
    image_url: str | None = None
    published_at: str | None = None
    is_read: bool = False
    is_favorite: bool = False
    read_at: str | None = None
    created_at: str | None = None
    feed_title: str | None = None
    ai_summary: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Article":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["id"] = str(data["id"])
        values["feed_id"] = str(data.get("feed_id", ""))
        return cls(**values)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Feed:
    """A feed subscription, with the server-computed unread counter."""

    id: str
    url: str
    title: str = ""
    description: str | None = None
    site_url: str | None = None
    image_url: str | None = None
    last_fetched_at: str | None = None
    fetch_error: str | None = None
    unread_count: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "Feed":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["id"] = str(data["id"])
        values["url"] = data.get("url", "")
        values["unread_count"] = data.get("unread_count") or 0
        return cls(**values)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "site_url": self.site_url,
            "fetch_error": self.fetch_error,
            "unread_count": self.unread_count,
        }


@dataclass
class User:
    id: str
    email: str
    is_admin: bool = False


# Fields a client may patch optimistically.
MUTABLE_ARTICLE_FIELDS = frozenset({"is_read", "is_favorite", "read_at", "ai_summary"})
