"""Identifier helpers shared across the client."""

from __future__ import annotations

from datetime import datetime, timezone

DID_PLC_PREFIX = "did:plc:"
POST_COLLECTION = "app.bsky.feed.post"


def ensure_did(actor: str) -> str:
    """Prefix a bare PLC identifier with `did:plc:`.

    Anything that already looks like a DID is returned unchanged.
    """
    actor = actor.strip()
    if actor.startswith("did:"):
        return actor
    return f"{DID_PLC_PREFIX}{actor}"


def strip_did_prefix(did: str) -> str:
    return did[len(DID_PLC_PREFIX) :] if did.startswith(DID_PLC_PREFIX) else did


def post_id_from_uri(uri: str | None) -> str:
    """Last path segment of an `at://<did>/<collection>/<rkey>` URI."""
    if not uri:
        return ""
    return uri.rstrip("/").rsplit("/", 1)[-1]


def post_uri(did: str, post_id: str, collection: str = POST_COLLECTION) -> str:
    return f"at://{did}/{collection}/{post_id}"


def utc_timestamp() -> str:
    """Current time in the ISO-8601 form records use (`...Z`)."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
