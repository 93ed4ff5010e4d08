"""Tests for bluesky_client.client module (HTTP faked with httpx.MockTransport)."""

import json

import httpx
import pytest

from bluesky_client import (
    ApiError,
    BlueskyClient,
    ClientConfig,
    InvalidResponseError,
    NotAuthenticatedError,
    RetryExhaustedError,
    Session,
)
from bluesky_client.connection import CLOSED, Frame

BASE_URL = "https://bsky.test/xrpc/"
SESSION = Session(access_jwt="jwt-token", did="did:plc:me", handle="me.bsky.social")


class Router:
    """Maps XRPC method names to queued responses and records requests."""

    def __init__(self, routes):
        self.routes = {name: list(responses) for name, responses in routes.items()}
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        name = request.url.path.rsplit("/", 1)[-1]
        responses = self.routes[name]
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if callable(response):
            return response(request)
        return response

    def calls(self, name):
        return [r for r in self.requests if r.url.path.endswith(name)]


def ok(payload):
    return httpx.Response(200, json=payload)


def make_client(routes, **config):
    router = Router(routes)
    http = httpx.AsyncClient(transport=httpx.MockTransport(router), base_url=BASE_URL)
    client = BlueskyClient(ClientConfig(base_url=BASE_URL, **config), http_client=http)
    return client, router


def feed_post(post_id, text="post", parent=None, did="did:plc:me", **counts):
    record = {"text": text, "createdAt": "2024-05-01T10:00:00.000Z"}
    if parent:
        record["reply"] = {
            "parent": {"uri": f"at://did:plc:other/app.bsky.feed.post/{parent}"},
            "root": {"uri": "at://did:plc:other/app.bsky.feed.post/root"},
        }
    return {
        "post": {
            "uri": f"at://{did}/app.bsky.feed.post/{post_id}",
            "author": {"did": did, "handle": "me.bsky.social"},
            "record": record,
            **counts,
        }
    }


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_authenticate_returns_session(self, sleeps):
        client, router = make_client(
            {
                "com.atproto.server.createSession": [
                    ok({"accessJwt": "abc", "did": "did:plc:me", "handle": "me.bsky.social"})
                ]
            }
        )

        session = await client.authenticate("me@example.com", "app-password")

        assert session == Session(access_jwt="abc", did="did:plc:me", handle="me.bsky.social")
        request = router.requests[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {
            "identifier": "me@example.com",
            "password": "app-password",
        }
        assert "authorization" not in request.headers

    @pytest.mark.asyncio
    async def test_bad_credentials_fail_fast(self, sleeps):
        client, router = make_client(
            {"com.atproto.server.createSession": [httpx.Response(401, json={"error": "AuthFailed"})]}
        )

        with pytest.raises(ApiError) as exc_info:
            await client.authenticate("me", "wrong")

        assert exc_info.value.status_code == 401
        assert "AuthFailed" in exc_info.value.body
        assert len(router.requests) == 1

    @pytest.mark.asyncio
    async def test_session_header_sent(self, sleeps):
        client, router = make_client({"app.bsky.actor.getProfile": [ok({"handle": "a", "did": "d"})]})
        await client.get_profile(SESSION, "a")
        assert router.requests[0].headers["authorization"] == "Bearer jwt-token"

    @pytest.mark.asyncio
    async def test_missing_session(self, sleeps):
        client, router = make_client({})
        with pytest.raises(NotAuthenticatedError):
            await client.get_profile(None, "alice.bsky.social")
        assert router.requests == []


class TestCreatePost:
    @pytest.mark.asyncio
    async def test_create_post(self, sleeps):
        client, router = make_client(
            {
                "com.atproto.repo.createRecord": [
                    ok({"uri": "at://did:plc:me/app.bsky.feed.post/new", "cid": "c"})
                ]
            }
        )

        uri = await client.create_post(SESSION, "Hello world", tags=["python"])

        assert uri == "at://did:plc:me/app.bsky.feed.post/new"
        body = json.loads(router.requests[0].content)
        assert body["repo"] == "did:plc:me"
        assert body["collection"] == "app.bsky.feed.post"
        record = body["record"]
        assert record["$type"] == "app.bsky.feed.post"
        assert record["text"] == "Hello world"
        assert record["langs"] == ["en"]
        assert record["tags"] == ["python"]
        assert record["createdAt"].endswith("Z")

    @pytest.mark.asyncio
    async def test_rate_limit_retried(self, sleeps):
        client, router = make_client(
            {
                "com.atproto.repo.createRecord": [
                    httpx.Response(429),
                    ok({"uri": "at://did:plc:me/app.bsky.feed.post/new"}),
                ]
            }
        )
        assert await client.create_post(SESSION, "hi") == "at://did:plc:me/app.bsky.feed.post/new"
        assert sleeps.delays == [5.0]

    @pytest.mark.asyncio
    async def test_server_error_not_retried(self, sleeps):
        client, router = make_client({"com.atproto.repo.createRecord": [httpx.Response(502)]})
        with pytest.raises(ApiError):
            await client.create_post(SESSION, "hi")
        assert len(router.requests) == 1

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, sleeps):
        client, router = make_client({})
        with pytest.raises(ValueError):
            await client.create_post(SESSION, "   ")
        assert router.requests == []


class TestListings:
    @pytest.mark.asyncio
    async def test_followers_paginated_and_deduplicated(self, sleeps):
        client, router = make_client(
            {
                "app.bsky.graph.getFollowers": [
                    ok({"followers": [{"did": "did:plc:a"}, {"did": "did:plc:b"}], "cursor": "c1"}),
                    ok({"followers": [{"did": "did:plc:b"}, {"did": "did:plc:c"}]}),
                ]
            }
        )

        dids = await client.get_followers(SESSION, "alice.bsky.social")

        assert dids == ["did:plc:a", "did:plc:b", "did:plc:c"]
        first, second = router.requests
        assert first.url.params["actor"] == "alice.bsky.social"
        assert first.url.params["limit"] == "100"
        assert "cursor" not in first.url.params
        assert second.url.params["cursor"] == "c1"
        assert sleeps.delays == [1.0]

    @pytest.mark.asyncio
    async def test_followers_exhaustion(self, sleeps):
        client, router = make_client({"app.bsky.graph.getFollowers": [httpx.Response(429)]})

        with pytest.raises(RetryExhaustedError) as exc_info:
            await client.get_followers(SESSION, "alice.bsky.social")

        assert str(exc_info.value).startswith("followers of alice.bsky.social failed after 3 attempts")
        assert exc_info.value.status_code == 429
        assert len(router.requests) == 3

    @pytest.mark.asyncio
    async def test_user_posts(self, sleeps):
        client, router = make_client(
            {
                "app.bsky.feed.getAuthorFeed": [
                    ok({"feed": [feed_post("p1", "first", likeCount=3, replyCount=1)]})
                ]
            }
        )

        posts = await client.get_user_posts(SESSION, "me.bsky.social", page_size=10)

        assert len(posts) == 1
        assert posts[0].text == "first"
        assert posts[0].like_count == 3
        assert posts[0].reply_count == 1
        assert posts[0].repost_count == 0
        assert router.requests[0].url.params["limit"] == "10"

    @pytest.mark.asyncio
    async def test_liked_posts(self, sleeps):
        client, router = make_client(
            {
                "app.bsky.feed.getActorLikes": [
                    ok({"feed": [feed_post("p1", did="did:plc:x"), feed_post("p2", parent="P0")]})
                ]
            }
        )

        liked = await client.get_liked_posts(SESSION, "abc123")

        assert router.requests[0].url.params["actor"] == "did:plc:abc123"
        assert router.requests[0].url.params["limit"] == "50"
        assert [p.post_id for p in liked] == ["p1", "p2"]
        assert liked[0].author_did == "did:plc:x"
        assert liked[0].parent_post_id is None
        assert liked[1].parent_post_id == "P0"

    @pytest.mark.asyncio
    async def test_user_replies_with_threads(self, sleeps):
        def thread(request):
            uri = request.url.params["uri"]
            if uri.endswith("/r2"):
                return httpx.Response(400, json={"error": "NotFound"})
            return ok(
                {
                    "thread": {
                        "post": {"uri": uri},
                        "replies": [
                            {"post": {"uri": "at://did:plc:z/app.bsky.feed.post/n1", "author": {"did": "did:plc:z"}, "record": {"text": "nested"}}}
                        ],
                    }
                }
            )

        client, router = make_client(
            {
                "app.bsky.feed.getAuthorFeed": [
                    ok({"feed": [feed_post("r1", parent="P1"), feed_post("own"), feed_post("r2", parent="P2")]})
                ],
                "app.bsky.feed.getPostThread": [thread],
            }
        )

        replies = await client.get_user_replies(SESSION, "did:plc:me")

        assert [r.post_id for r in replies] == ["r1", "r2"]
        assert [r.parent_post_id for r in replies] == ["P1", "P2"]
        assert [n.post_id for n in replies[0].replies] == ["n1"]
        assert replies[0].replies[0].parent_post_id == "r1"
        assert replies[1].replies == []
        thread_uris = [r.url.params["uri"] for r in router.calls("getPostThread")]
        assert thread_uris == [
            "at://did:plc:me/app.bsky.feed.post/r1",
            "at://did:plc:me/app.bsky.feed.post/r2",
        ]


class TestProfilesAndPosts:
    @pytest.mark.asyncio
    async def test_profile(self, sleeps):
        client, router = make_client(
            {
                "app.bsky.actor.getProfile": [
                    ok(
                        {
                            "handle": "alice.bsky.social",
                            "did": "did:plc:alice",
                            "followersCount": 10,
                            "followsCount": 5,
                            "postsCount": 42,
                            "labels": [{"val": "verified"}],
                        }
                    )
                ]
            }
        )

        profile = await client.get_profile(SESSION, "alice.bsky.social")

        assert profile.display_name == "alice.bsky.social"
        assert profile.followers_count == 10
        assert profile.following_count == 5
        assert profile.posts_count == 42
        assert profile.labels.is_verified
        assert not profile.labels.is_admin

    @pytest.mark.asyncio
    async def test_handle_from_did(self, sleeps):
        client, router = make_client(
            {"app.bsky.actor.getProfile": [ok({"handle": "alice.bsky.social", "did": "did:plc:alice"})]}
        )
        assert await client.get_handle_from_did(SESSION, "alice") == "alice.bsky.social"
        assert router.requests[0].url.params["actor"] == "did:plc:alice"

    @pytest.mark.asyncio
    async def test_post_metrics(self, sleeps):
        client, router = make_client(
            {
                "app.bsky.actor.getProfile": [ok({"handle": "alice.bsky.social", "did": "did:plc:alice"})],
                "app.bsky.feed.getPostThread": [
                    ok({"thread": {"post": {"uri": "x", "likeCount": 4, "repostCount": 2, "replyCount": 1}}})
                ],
            }
        )

        metrics = await client.get_post_metrics(SESSION, "alice.bsky.social", "3kabc")

        assert (metrics.like_count, metrics.repost_count, metrics.reply_count) == (4, 2, 1)
        assert metrics.total_engagement == 7
        uri = router.calls("getPostThread")[0].url.params["uri"]
        assert uri == "at://did:plc:alice/app.bsky.feed.post/3kabc"

    @pytest.mark.asyncio
    async def test_metrics_for_missing_post(self, sleeps):
        client, router = make_client(
            {
                "app.bsky.actor.getProfile": [ok({"handle": "a", "did": "did:plc:a"})],
                "app.bsky.feed.getPostThread": [ok({"thread": {"$type": "app.bsky.feed.defs#notFoundPost"}})],
            }
        )
        with pytest.raises(InvalidResponseError):
            await client.get_post_metrics(SESSION, "a", "gone")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "embed",
        [
            {
                "$type": "app.bsky.embed.images#view",
                "images": [{"fullsize": "https://cdn/1.jpg"}, {"fullsize": "https://cdn/2.jpg"}],
            },
            {
                "$type": "app.bsky.embed.recordWithMedia#view",
                "media": {
                    "$type": "app.bsky.embed.images#view",
                    "images": [{"fullsize": "https://cdn/1.jpg"}, {"fullsize": "https://cdn/2.jpg"}],
                },
            },
        ],
    )
    async def test_media_urls(self, sleeps, embed):
        client, router = make_client(
            {
                "app.bsky.actor.getProfile": [ok({"handle": "a", "did": "did:plc:a"})],
                "app.bsky.feed.getPostThread": [ok({"thread": {"post": {"uri": "x", "embed": embed}}})],
            }
        )
        urls = await client.get_post_media_urls(SESSION, "a", "p")
        assert urls == ["https://cdn/1.jpg", "https://cdn/2.jpg"]

    @pytest.mark.asyncio
    async def test_media_urls_without_images(self, sleeps):
        client, router = make_client(
            {
                "app.bsky.actor.getProfile": [ok({"handle": "a", "did": "did:plc:a"})],
                "app.bsky.feed.getPostThread": [
                    ok({"thread": {"post": {"uri": "x", "embed": {"$type": "app.bsky.embed.external#view"}}}})
                ],
            }
        )
        assert await client.get_post_media_urls(SESSION, "a", "p") == []


class TestResponses:
    @pytest.mark.asyncio
    async def test_schema_mismatch_not_retried(self, sleeps):
        client, router = make_client({"com.atproto.server.createSession": [ok({"did": "x"})]})
        with pytest.raises(InvalidResponseError):
            await client.authenticate("me", "pw")
        assert len(router.requests) == 1

    @pytest.mark.asyncio
    async def test_non_json_body(self, sleeps):
        client, router = make_client(
            {"app.bsky.actor.getProfile": [httpx.Response(200, text="<html>oops</html>")]}
        )
        with pytest.raises(InvalidResponseError):
            await client.get_profile(SESSION, "a")

    @pytest.mark.asyncio
    async def test_transport_error_retried(self, sleeps):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        client, router = make_client(
            {
                "app.bsky.actor.getProfile": [
                    refuse,
                    ok({"handle": "a", "did": "did:plc:a"}),
                ]
            }
        )
        profile = await client.get_profile(SESSION, "a")
        assert profile.did == "did:plc:a"
        assert sleeps.delays == [5.0]


class TestStreaming:
    @pytest.mark.asyncio
    async def test_stream_posts_uses_configured_endpoints(self, sleeps):
        message = json.dumps(
            {
                "did": "did:plc:author",
                "commit": {
                    "collection": "app.bsky.feed.post",
                    "rkey": "p1",
                    "record": {"text": "live"},
                },
            }
        ).encode()
        connected = []

        class Transport:
            def __init__(self):
                self.frames = [Frame(message), CLOSED]

            async def receive(self):
                return self.frames.pop(0)

            async def close(self):
                pass

        async def connector(url):
            connected.append(url)
            return Transport()

        received = []
        async with BlueskyClient(
            ClientConfig(stream_endpoints=["wss://jet.test/subscribe"]), connector=connector
        ) as client:
            stats = await client.stream_posts(received.append)

        assert connected == ["wss://jet.test/subscribe"]
        assert stats.posts == 1
        assert [e.post.text for e in received if e.is_post] == ["live"]
