"""
Core data models for the Video Platform API

Table models (SQLModel) for users, videos, watch history, subscriptions and
playlists. Ordered references (watch history, playlist contents) are stored as
rows with an explicit `position` column.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """
    Account record. `username` is stored lower-cased; `password` holds the
    bcrypt digest; `refresh_token` is the single refresh credential that is
    currently valid for this user (None when logged out).
    """

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    username: str = Field(index=True, unique=True, max_length=64)
    email: str = Field(index=True, unique=True, max_length=255)
    full_name: str = Field(index=True, max_length=255)
    avatar: str = Field(max_length=1024)
    cover_image: str = Field(default="", max_length=1024)
    password: str = Field(max_length=255)
    refresh_token: Optional[str] = Field(default=None, max_length=2048)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Video(SQLModel, table=True):
    """Uploaded video. Managed elsewhere; read by history and playlist views."""

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    video_file: str = Field(max_length=1024)
    thumbnail: str = Field(max_length=1024)
    title: str = Field(max_length=255)
    description: str = Field(default="")
    duration: float = Field(default=0)
    views: int = Field(default=0)
    is_published: bool = Field(default=True)
    owner_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class WatchHistory(SQLModel, table=True):
    """One entry of a user's ordered watch history"""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    video_id: str = Field(foreign_key="video.id")
    position: int = Field(default=0)


class Subscription(SQLModel, table=True):
    """Directed edge: `subscriber_id` follows the channel `channel_id`"""

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    subscriber_id: str = Field(foreign_key="user.id", index=True)
    channel_id: str = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utc_now)


class Playlist(SQLModel, table=True):
    """User-owned playlist. Names are case-folded and unique per owner."""

    __table_args__ = (UniqueConstraint("owner_id", "name"),)

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    name: str = Field(max_length=255)
    description: str = Field(default="")
    owner_id: str = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class PlaylistVideo(SQLModel, table=True):
    """Ordered video reference inside a playlist; duplicates are allowed"""

    id: Optional[int] = Field(default=None, primary_key=True)
    playlist_id: str = Field(foreign_key="playlist.id", index=True)
    video_id: str = Field(max_length=32)
    position: int = Field(default=0)
