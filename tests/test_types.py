"""Tests for bluesky_client.types module."""

import dataclasses

import pytest

from bluesky_client.types import (
    PostEvent,
    PostMetrics,
    ReplyPost,
    Session,
    StreamEvent,
    StreamEventType,
    StreamStats,
)


class TestStreamEvent:
    def test_type_properties(self):
        post = PostEvent(timestamp=None, post_id="p", author_id="a")
        event = StreamEvent(type=StreamEventType.POST, post=post)
        assert event.is_post
        assert not event.is_stats
        assert StreamEvent(type=StreamEventType.RETRY, message="Retrying").is_retry
        assert StreamEvent(type=StreamEventType.DIAGNOSTIC, message="x").is_diagnostic

    def test_post_event_is_immutable(self):
        post = PostEvent(timestamp=None, post_id="p", author_id="a")
        with pytest.raises(dataclasses.FrozenInstanceError):
            post.text = "changed"


class TestStreamStats:
    def test_match_ratio(self):
        assert StreamStats(messages=4, posts=1).match_ratio == 0.25
        assert StreamStats().match_ratio == 0.0


class TestSession:
    def test_authorization_header(self):
        session = Session(access_jwt="jwt", did="did:plc:me")
        assert session.authorization == {"Authorization": "Bearer jwt"}

    def test_session_is_immutable(self):
        session = Session(access_jwt="jwt", did="did:plc:me")
        with pytest.raises(dataclasses.FrozenInstanceError):
            session.access_jwt = "other"


class TestResults:
    def test_total_engagement(self):
        assert PostMetrics(like_count=5, repost_count=2, reply_count=3).total_engagement == 10

    def test_reply_lists_are_independent(self):
        a = ReplyPost(author_did="d", created_at=None, text="", post_id="a")
        b = ReplyPost(author_did="d", created_at=None, text="", post_id="b")
        a.replies.append(b)
        assert b.replies == []
