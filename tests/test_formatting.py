"""Tests for bluesky_client.formatting module."""

from datetime import datetime, timezone
from xml.etree import ElementTree

from bluesky_client.formatting import (
    format_metrics,
    format_post_event,
    format_profile,
    format_stats,
    replies_to_xml,
    wrap_text,
)
from bluesky_client.types import (
    PostEvent,
    PostMetrics,
    ProfileInfo,
    ReplyPost,
    StreamStats,
)


class TestWrapText:
    def test_empty(self):
        assert wrap_text("") == ""

    def test_short_text_unchanged(self):
        assert wrap_text("hello world") == "hello world"

    def test_wraps_on_word_boundaries(self):
        text = "one two three four"
        assert wrap_text(text, width=10) == "one two\n│ three four"

    def test_long_word_gets_own_line(self):
        assert wrap_text("a supercalifragilistic b", width=10) == "a\n│ supercalifragilistic\n│ b"


class TestFormatting:
    def test_post_event(self):
        event = PostEvent(
            timestamp=datetime(2024, 5, 1, 12, 30, 5, tzinfo=timezone.utc),
            post_id="3kabc",
            author_id="author",
            text="hello",
            is_reply=True,
            reply_target_id="P1",
        )
        block = format_post_event(event, 7).splitlines()

        assert block[0].startswith("╭─ Post 0007")
        assert "│ Time: 2024-05-01 12:30:05" in block
        assert "│ Reply: YES -> P1" in block
        assert "│ hello" in block
        assert block[-1].startswith("╰")

    def test_post_event_without_timestamp(self):
        event = PostEvent(timestamp=None, post_id="p", author_id="a")
        assert "│ Time: unknown" in format_post_event(event, 1)
        assert "│ Reply: NO" in format_post_event(event, 1)

    def test_stats(self):
        assert format_stats(StreamStats(messages=2000, posts=500)) == (
            "Stats: 2,000 messages, 500 posts (25.0%)"
        )
        assert format_stats(StreamStats()) == "Stats: 0 messages, 0 posts (0.0%)"

    def test_profile(self):
        text = format_profile(
            ProfileInfo(handle="alice.bsky.social", did="did:plc:a", followers_count=1200)
        )
        assert "│   • Followers: 1,200" in text
        assert "│   • Avatar: None" in text
        assert "│ No description" in text

    def test_metrics(self):
        text = format_metrics(PostMetrics(like_count=3, repost_count=2, reply_count=1))
        assert "│ Total Engagement: 6" in text


class TestRepliesXml:
    def test_nested_and_escaped(self):
        nested = ReplyPost(
            author_did="did:plc:b",
            created_at=None,
            text="child",
            post_id="c1",
            parent_post_id="r1",
        )
        outer = ReplyPost(
            author_did="did:plc:a",
            created_at=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc),
            text="a < b & c",
            post_id="r1",
            parent_post_id="P0",
            replies=[nested],
        )

        xml = replies_to_xml([outer])
        root = ElementTree.fromstring(xml.encode("utf-8"))

        assert root.tag == "replies"
        reply = root.find("reply")
        assert reply.findtext("text") == "a < b & c"
        assert reply.findtext("datetime") == "2024-05-01 09:00:00"
        assert reply.findtext("parentPostId") == "P0"
        assert reply.find("nestedReplies/reply").findtext("postId") == "c1"

    def test_empty(self):
        root = ElementTree.fromstring(replies_to_xml([]).encode("utf-8"))
        assert list(root) == []
