"""Wire schemas for XRPC responses and Jetstream messages.

Every field the client reads is declared here with an explicit default, so a
missing field becomes a typed default rather than a lookup error.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ─────────────────────────────────────────────────────────────────────────────
# Records
# ─────────────────────────────────────────────────────────────────────────────


class StrongRef(WireModel):
    uri: str | None = None
    cid: str | None = None


class ReplyRef(WireModel):
    parent: StrongRef | None = None
    root: StrongRef | None = None


class PostRecord(WireModel):
    text: str = ""
    created_at: datetime | None = Field(default=None, alias="createdAt")
    reply: ReplyRef | None = None
    langs: list[str] | None = None


# ─────────────────────────────────────────────────────────────────────────────
# Jetstream
# ─────────────────────────────────────────────────────────────────────────────


class Commit(WireModel):
    operation: str | None = None
    collection: str | None = None
    rkey: str | None = None
    record: dict[str, Any] | None = None


class JetstreamMessage(WireModel):
    did: str | None = None
    time_us: int | None = None
    kind: str | None = None
    commit: Commit | None = None


# ─────────────────────────────────────────────────────────────────────────────
# Views
# ─────────────────────────────────────────────────────────────────────────────


class Author(WireModel):
    did: str = ""
    handle: str | None = None


class EmbedImage(WireModel):
    fullsize: str | None = None
    thumb: str | None = None
    alt: str | None = None


class Embed(WireModel):
    type: str | None = Field(default=None, alias="$type")
    images: list[EmbedImage] = Field(default_factory=list)
    media: Embed | None = None


class PostView(WireModel):
    uri: str = ""
    cid: str | None = None
    author: Author = Field(default_factory=Author)
    record: PostRecord = Field(default_factory=PostRecord)
    like_count: int = Field(default=0, alias="likeCount")
    repost_count: int = Field(default=0, alias="repostCount")
    reply_count: int = Field(default=0, alias="replyCount")
    embed: Embed | None = None


class FeedItem(WireModel):
    post: PostView


class FeedResponse(WireModel):
    feed: list[FeedItem] = Field(default_factory=list)
    cursor: str | None = None


class Follower(WireModel):
    did: str
    handle: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")


class FollowersResponse(WireModel):
    followers: list[Follower] = Field(default_factory=list)
    cursor: str | None = None


class Label(WireModel):
    val: str = ""


class ProfileResponse(WireModel):
    handle: str = ""
    did: str = ""
    display_name: str | None = Field(default=None, alias="displayName")
    description: str | None = None
    avatar: str | None = None
    banner: str | None = None
    followers_count: int = Field(default=0, alias="followersCount")
    follows_count: int = Field(default=0, alias="followsCount")
    posts_count: int = Field(default=0, alias="postsCount")
    labels: list[Label] = Field(default_factory=list)


class ThreadViewPost(WireModel):
    """A thread node. Not-found and blocked nodes arrive without a `post`."""

    type: str | None = Field(default=None, alias="$type")
    post: PostView | None = None
    replies: list[ThreadViewPost] = Field(default_factory=list)


class ThreadResponse(WireModel):
    thread: ThreadViewPost


# ─────────────────────────────────────────────────────────────────────────────
# Server / Repo
# ─────────────────────────────────────────────────────────────────────────────


class SessionResponse(WireModel):
    access_jwt: str = Field(alias="accessJwt")
    did: str
    handle: str | None = None


class CreateRecordResponse(WireModel):
    uri: str
    cid: str | None = None
