"""Pydantic models describing the aggregate widget payload."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ContentType = Literal["anime", "manga"]


class ActivityEntry(BaseModel):
    """Normalized record for one tracked anime or manga item."""

    model_config = ConfigDict(populate_by_name=True)

    mal_id: int | None = None
    title: str | None = None
    url: str | None = None
    image: str | None = None
    progress: int | None = Field(default=0, ge=0)
    score: float = 0
    updated_at: str | None = None
    percent_complete: int = Field(default=0, ge=0, le=100, alias="percentComplete")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class AnimeActivity(ActivityEntry):
    """Recently updated anime; ``total_episodes`` of 0 means unknown."""

    total_episodes: int = Field(default=0, ge=0)


class MangaActivity(ActivityEntry):
    """Recently updated manga; ``total_chapters`` of 0 means unknown."""

    total_chapters: int = Field(default=0, ge=0)
    status: str | None = None


class UserProfile(BaseModel):
    """Subset of the public profile, every field independently nullable."""

    mal_id: int | None = None
    username: str | None = None
    url: str | None = None
    image: str | None = None
    joined: str | None = None
    last_online: str | None = None
    about: str | None = None
    gender: str | None = None
    birthday: str | None = None
    location: str | None = None

    @classmethod
    def from_jikan(cls, data: dict[str, Any]) -> "UserProfile":
        images = data.get("images") or {}
        jpg = images.get("jpg") if isinstance(images, dict) else None
        image = jpg.get("image_url") if isinstance(jpg, dict) else None
        return cls(
            mal_id=data.get("mal_id"),
            username=data.get("username"),
            url=data.get("url"),
            image=image or None,
            joined=data.get("joined"),
            last_online=data.get("last_online"),
            about=data.get("about") or None,
            gender=data.get("gender") or None,
            birthday=data.get("birthday") or None,
            location=data.get("location") or None,
        )


class Statistics(BaseModel):
    anime: dict[str, Any] = Field(default_factory=dict)
    manga: dict[str, Any] = Field(default_factory=dict)


class Favorites(BaseModel):
    """Favorite summaries passed through from upstream, at most 10 per type."""

    anime: list[dict[str, Any]] = Field(default_factory=list, max_length=10)
    manga: list[dict[str, Any]] = Field(default_factory=list, max_length=10)


class RecentUpdates(BaseModel):
    anime: list[AnimeActivity] = Field(default_factory=list, max_length=3)
    manga: list[MangaActivity] = Field(default_factory=list, max_length=3)


class AggregatePayload(BaseModel):
    """The unit returned to callers and stored in the response cache."""

    model_config = ConfigDict(populate_by_name=True)

    username: str
    profile: UserProfile
    statistics: Statistics = Field(default_factory=Statistics)
    favorites: Favorites = Field(default_factory=Favorites)
    recent_updates: RecentUpdates = Field(
        default_factory=RecentUpdates, alias="recentUpdates"
    )
    timestamp: int

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-ready representation used on the wire."""

        return self.model_dump(mode="json", by_alias=True)
