"""Plain-text and XML rendering of client results."""

from __future__ import annotations

from datetime import datetime
from xml.sax.saxutils import escape

from .types import PostEvent, PostMetrics, ProfileInfo, ReplyPost, StreamStats

LINE_PREFIX = "│ "
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def wrap_text(text: str, width: int = 50) -> str:
    """Greedy word wrap; continuation lines carry the box prefix."""
    if not text:
        return ""

    lines: list[str] = []
    current = ""
    for word in text.split(" "):
        if len(current) + len(word) + 1 > width:
            if current:
                lines.append(current.strip())
            current = word
        elif current:
            current = f"{current} {word}"
        else:
            current = word
    if current:
        lines.append(current.strip())
    return f"\n{LINE_PREFIX}".join(lines)


def _time(value: datetime | None) -> str:
    return value.strftime(TIME_FORMAT) if value is not None else "unknown"


def format_post_event(event: PostEvent, index: int) -> str:
    reply = f"YES -> {event.reply_target_id}" if event.is_reply else "NO"
    return "\n".join(
        [
            f"╭─ Post {index:04d} ─────────────────────",
            f"│ Time: {_time(event.timestamp)}",
            f"│ PostID: {event.post_id}",
            f"│ UserID: {event.author_id}",
            f"│ Reply: {reply}",
            "│",
            f"{LINE_PREFIX}{wrap_text(event.text)}",
            "╰────────────────────────────────────────",
        ]
    )


def format_stats(stats: StreamStats) -> str:
    return (
        f"Stats: {stats.messages:,} messages, {stats.posts:,} posts "
        f"({stats.match_ratio * 100:.1f}%)"
    )


def format_profile(profile: ProfileInfo) -> str:
    return "\n".join(
        [
            "╭─ Profile Information ─────────────────────",
            f"│ Handle: {profile.handle}",
            f"│ Name: {profile.display_name}",
            f"│ DID: {profile.did}",
            "│",
            "│ Stats:",
            f"│   • Followers: {profile.followers_count:,}",
            f"│   • Following: {profile.following_count:,}",
            f"│   • Posts: {profile.posts_count:,}",
            "│",
            "│ Images:",
            f"│   • Avatar: {profile.avatar or 'None'}",
            f"│   • Banner: {profile.banner or 'None'}",
            "│",
            "│ Bio:",
            f"{LINE_PREFIX}{wrap_text(profile.description or 'No description')}",
            "╰────────────────────────────────────────",
        ]
    )


def format_metrics(metrics: PostMetrics) -> str:
    return "\n".join(
        [
            "╭─ Post Metrics ─────────────────────",
            f"│ Likes: {metrics.like_count:,}",
            f"│ Reposts: {metrics.repost_count:,}",
            f"│ Comments: {metrics.reply_count:,}",
            "│",
            f"│ Total Engagement: {metrics.total_engagement:,}",
            "╰────────────────────────────────────",
        ]
    )


# ─────────────────────────────────────────────────────────────────────────────
# XML export
# ─────────────────────────────────────────────────────────────────────────────


def replies_to_xml(replies: list[ReplyPost]) -> str:
    """Render replies and their nested replies as an XML document.

    Usage:
        replies = await client.get_user_replies(session, did)
        Path("replies.xml").write_text(replies_to_xml(replies), encoding="utf-8")
    """
    lines = ['<?xml version="1.0" encoding="UTF-8"?>', "<replies>"]
    for reply in replies:
        _append_reply(lines, reply, 1)
    lines.append("</replies>")
    return "\n".join(lines) + "\n"


def _append_reply(lines: list[str], reply: ReplyPost, depth: int) -> None:
    pad = "  " * depth
    created = reply.created_at.strftime(TIME_FORMAT) if reply.created_at else ""
    lines.append(f"{pad}<reply>")
    lines.append(f"{pad}  <author>{escape(reply.author_did)}</author>")
    lines.append(f"{pad}  <datetime>{created}</datetime>")
    lines.append(f"{pad}  <postId>{escape(reply.post_id)}</postId>")
    lines.append(f"{pad}  <parentPostId>{escape(reply.parent_post_id or '')}</parentPostId>")
    lines.append(f"{pad}  <text>{escape(reply.text)}</text>")
    if reply.replies:
        lines.append(f"{pad}  <nestedReplies>")
        for nested in reply.replies:
            _append_reply(lines, nested, depth + 2)
        lines.append(f"{pad}  </nestedReplies>")
    lines.append(f"{pad}</reply>")
