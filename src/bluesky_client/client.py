"""Bluesky client facade: authentication, publishing, queries and the firehose."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ._utils import ensure_did, post_id_from_uri, post_uri, utc_timestamp
from .cancellation import CancelToken
from .config import ClientConfig
from .connection import ConnectionManager, Connector, Sink
from .errors import ApiError, InvalidResponseError, NotAuthenticatedError
from .events import EventBus, ObservabilityEvent
from .logging import logger
from .pagination import PaginatedFetcher
from .retry import Classifier, RetryManager, rate_limit_only
from .schemas import (
    CreateRecordResponse,
    Embed,
    FeedItem,
    FeedResponse,
    Follower,
    FollowersResponse,
    ProfileResponse,
    SessionResponse,
    ThreadResponse,
)
from .threads import ReplyThreadResolver, reply_from_view
from .types import (
    InteractionPost,
    Page,
    PostInfo,
    PostMetrics,
    ProfileInfo,
    ProfileLabels,
    ReplyPost,
    Session,
    StreamStats,
)

M = TypeVar("M", bound=BaseModel)

IMAGES_EMBED = "app.bsky.embed.images#view"
RECORD_WITH_MEDIA_EMBED = "app.bsky.embed.recordWithMedia#view"


class BlueskyClient:
    """Async client for the Bluesky XRPC API and Jetstream firehose.

    Usage:
        async with BlueskyClient() as client:
            session = await client.authenticate("me@example.com", "app-password")
            followers = await client.get_followers(session, "alice.bsky.social")
            uri = await client.create_post(session, "Hello from Python")

            cancel = CancelToken()
            await client.stream_posts(print, cancel=cancel)

    Every authenticated call takes the `Session` returned by `authenticate()`;
    the client itself holds no credentials.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        connector: Connector | None = None,
        on_event: Callable[[ObservabilityEvent], None] | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.request_timeout,
        )
        self._connector = connector
        self.event_bus = EventBus(on_event)

    async def __aenter__(self) -> BlueskyClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        await self.aclose()
        return False

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ─────────────────────────────────────────────────────────────────────────
    # Session & publishing
    # ─────────────────────────────────────────────────────────────────────────

    async def authenticate(
        self,
        identifier: str,
        password: str,
        cancel: CancelToken | None = None,
    ) -> Session:
        """Create a session. The returned value is passed to every other call."""
        response = await self._call(
            SessionResponse,
            "POST",
            "com.atproto.server.createSession",
            operation=f"authenticate {identifier}",
            json={"identifier": identifier, "password": password},
            cancel=cancel,
            authenticated=False,
        )
        logger.info(f"Authentication successful for user: {identifier}, DID: {response.did}")
        return Session(access_jwt=response.access_jwt, did=response.did, handle=response.handle)

    async def create_post(
        self,
        session: Session,
        text: str,
        *,
        langs: list[str] | None = None,
        tags: list[str] | None = None,
        cancel: CancelToken | None = None,
    ) -> str:
        """Publish a text post and return its `at://` URI.

        Only rate-limit responses are retried, so a post is never created twice.
        """
        if not text or not text.strip():
            raise ValueError("Post text cannot be empty")
        if session is None:
            raise NotAuthenticatedError()

        collection = self.config.post_collection
        record = {
            "$type": collection,
            "text": text,
            "createdAt": utc_timestamp(),
            "langs": langs or ["en"],
            "facets": [],
            "tags": tags or [],
        }
        logger.info(f"Attempting to create post with text: {text}")
        response = await self._call(
            CreateRecordResponse,
            "POST",
            "com.atproto.repo.createRecord",
            operation="create post",
            session=session,
            json={"repo": session.did, "collection": collection, "record": record},
            classify=rate_limit_only,
            cancel=cancel,
        )
        logger.info(f"Post created successfully with URI: {response.uri}")
        return response.uri

    # ─────────────────────────────────────────────────────────────────────────
    # Listings
    # ─────────────────────────────────────────────────────────────────────────

    async def get_followers(
        self,
        session: Session,
        actor: str,
        page_size: int | None = None,
        cancel: CancelToken | None = None,
        max_pages: int | None = None,
    ) -> list[str]:
        """DIDs of everyone following `actor`, without duplicates."""
        limit = page_size or self.config.followers_page_size

        async def page(cursor: str | None) -> Page[Follower]:
            data = await self._request(
                "GET",
                "app.bsky.graph.getFollowers",
                operation=f"followers of {actor}",
                session=session,
                params=_page_params(actor, limit, cursor),
            )
            response = _parse(FollowersResponse, data, "getFollowers")
            return Page(items=response.followers, cursor=response.cursor)

        return await self._fetcher().fetch(
            page,
            extract=lambda follower: follower.did,
            dedupe_key=lambda did: did,
            name=f"followers of {actor}",
            cancel=cancel,
            max_pages=max_pages,
        )

    async def get_user_posts(
        self,
        session: Session,
        actor: str,
        page_size: int | None = None,
        cancel: CancelToken | None = None,
        max_pages: int | None = None,
    ) -> list[PostInfo]:
        """Posts on `actor`'s author feed with engagement counts."""
        page = self._feed_page(
            session, "app.bsky.feed.getAuthorFeed", actor, page_size, f"posts of {actor}"
        )
        return await self._fetcher().fetch(
            page,
            extract=_post_info,
            name=f"posts of {actor}",
            cancel=cancel,
            max_pages=max_pages,
        )

    async def get_liked_posts(
        self,
        session: Session,
        actor: str,
        page_size: int | None = None,
        cancel: CancelToken | None = None,
        max_pages: int | None = None,
    ) -> list[InteractionPost]:
        """Posts `actor` has liked. Bare PLC ids get the `did:plc:` prefix."""
        actor = ensure_did(actor)
        page = self._feed_page(
            session, "app.bsky.feed.getActorLikes", actor, page_size, f"likes of {actor}"
        )
        return await self._fetcher().fetch(
            page,
            extract=_interaction_post,
            name=f"likes of {actor}",
            cancel=cancel,
            max_pages=max_pages,
        )

    async def get_user_replies(
        self,
        session: Session,
        actor: str,
        page_size: int | None = None,
        cancel: CancelToken | None = None,
        max_pages: int | None = None,
    ) -> list[ReplyPost]:
        """Replies written by `actor`, each with its immediate child replies."""
        actor = ensure_did(actor)
        page = self._feed_page(
            session, "app.bsky.feed.getAuthorFeed", actor, page_size, f"replies of {actor}"
        )
        replies: list[ReplyPost] = await self._fetcher().fetch(
            page,
            extract=_reply_post,
            name=f"replies of {actor}",
            cancel=cancel,
            max_pages=max_pages,
        )

        resolver = ReplyThreadResolver(
            lambda uri: self.get_post_thread(session, uri, cancel=cancel),
            event_bus=self.event_bus,
        )
        await resolver.resolve_all(replies, cancel)
        logger.info(f"Retrieved {len(replies)} replies for user {actor}")
        return replies

    # ─────────────────────────────────────────────────────────────────────────
    # Profiles & posts
    # ─────────────────────────────────────────────────────────────────────────

    async def get_profile(
        self,
        session: Session,
        actor: str,
        cancel: CancelToken | None = None,
    ) -> ProfileInfo:
        profile = await self._get_profile(session, actor, cancel)
        labels = {label.val for label in profile.labels}
        return ProfileInfo(
            handle=profile.handle,
            did=profile.did,
            display_name=profile.display_name or actor,
            description=profile.description or "",
            avatar=profile.avatar or "",
            banner=profile.banner or "",
            followers_count=profile.followers_count,
            following_count=profile.follows_count,
            posts_count=profile.posts_count,
            labels=ProfileLabels(
                is_admin="admin" in labels,
                is_moderator="moderator" in labels,
                is_verified="verified" in labels,
            ),
        )

    async def get_handle_from_did(
        self,
        session: Session,
        did: str,
        cancel: CancelToken | None = None,
    ) -> str:
        did = ensure_did(did)
        profile = await self._get_profile(session, did, cancel)
        logger.info(f"Found handle {profile.handle} for DID {did}")
        return profile.handle

    async def get_post_thread(
        self,
        session: Session,
        uri: str,
        cancel: CancelToken | None = None,
    ) -> ThreadResponse:
        return await self._call(
            ThreadResponse,
            "GET",
            "app.bsky.feed.getPostThread",
            operation=f"thread {uri}",
            session=session,
            params={"uri": uri},
            cancel=cancel,
        )

    async def get_post_metrics(
        self,
        session: Session,
        handle: str,
        post_id: str,
        cancel: CancelToken | None = None,
    ) -> PostMetrics:
        """Like, repost and reply counts of one of `handle`'s posts."""
        thread = await self._thread_for(session, handle, post_id, cancel)
        post = thread.thread.post
        if post is None:
            raise InvalidResponseError(
                f"Post {post_id} by {handle} is not available", operation="post metrics"
            )
        logger.info(f"Successfully retrieved metrics for post {post_id}")
        return PostMetrics(
            like_count=post.like_count,
            repost_count=post.repost_count,
            reply_count=post.reply_count,
        )

    async def get_post_media_urls(
        self,
        session: Session,
        handle: str,
        post_id: str,
        cancel: CancelToken | None = None,
    ) -> list[str]:
        """Full-size image URLs embedded in one of `handle`'s posts."""
        thread = await self._thread_for(session, handle, post_id, cancel)
        post = thread.thread.post
        if post is None or post.embed is None:
            return []
        return _image_urls(post.embed)

    # ─────────────────────────────────────────────────────────────────────────
    # Firehose
    # ─────────────────────────────────────────────────────────────────────────

    def stream_manager(self) -> ConnectionManager:
        config = self.config
        return ConnectionManager(
            config.stream_endpoints,
            connector=self._connector,
            retry=config.stream_retry,
            read_size=config.read_size,
            stats_interval=config.stats_interval,
            collection=config.post_collection,
            error_report_limit=config.error_report_limit,
            event_bus=self.event_bus.child(operation="stream"),
        )

    async def stream_posts(
        self,
        sink: Sink,
        cancel: CancelToken | None = None,
    ) -> StreamStats:
        """Deliver live posts from the firehose to `sink` until closed or cancelled."""
        return await self.stream_manager().run(sink, cancel)

    # ─────────────────────────────────────────────────────────────────────────
    # Plumbing
    # ─────────────────────────────────────────────────────────────────────────

    def _fetcher(self) -> PaginatedFetcher:
        return PaginatedFetcher(
            self.config.retry,
            page_delay=self.config.page_delay,
            event_bus=self.event_bus,
        )

    def _feed_page(
        self,
        session: Session,
        endpoint: str,
        actor: str,
        page_size: int | None,
        operation: str,
    ) -> Callable[[str | None], Any]:
        limit = page_size or self.config.default_page_size

        async def page(cursor: str | None) -> Page[FeedItem]:
            data = await self._request(
                "GET",
                endpoint,
                operation=operation,
                session=session,
                params=_page_params(actor, limit, cursor),
            )
            response = _parse(FeedResponse, data, endpoint)
            return Page(items=response.feed, cursor=response.cursor)

        return page

    async def _get_profile(
        self,
        session: Session,
        actor: str,
        cancel: CancelToken | None,
    ) -> ProfileResponse:
        logger.info(f"Fetching profile info for: {actor}")
        return await self._call(
            ProfileResponse,
            "GET",
            "app.bsky.actor.getProfile",
            operation=f"profile {actor}",
            session=session,
            params={"actor": actor},
            cancel=cancel,
        )

    async def _thread_for(
        self,
        session: Session,
        handle: str,
        post_id: str,
        cancel: CancelToken | None,
    ) -> ThreadResponse:
        profile = await self._get_profile(session, handle, cancel)
        return await self.get_post_thread(session, post_uri(profile.did, post_id), cancel)

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        operation: str,
        session: Session | None = None,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> Any:
        headers = None
        if authenticated:
            if session is None or not session.access_jwt:
                raise NotAuthenticatedError()
            headers = session.authorization
        logger.debug(f"{method} {endpoint} params={params}")
        response = await self._http.request(
            method, endpoint, params=params, json=json, headers=headers
        )
        if response.is_error:
            logger.debug(f"API returned {response.status_code}: {response.text}")
            raise ApiError(
                f"{operation} failed with status {response.status_code}",
                response.status_code,
                operation=operation,
                body=response.text,
            )
        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseError(
                f"Failed to parse API response for {operation}: {e}", operation=operation
            ) from e

    async def _call(
        self,
        model: type[M],
        method: str,
        endpoint: str,
        *,
        operation: str,
        session: Session | None = None,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        classify: Classifier | None = None,
        cancel: CancelToken | None = None,
        authenticated: bool = True,
    ) -> M:
        async def attempt() -> M:
            data = await self._request(
                method,
                endpoint,
                operation=operation,
                session=session,
                params=params,
                json=json,
                authenticated=authenticated,
            )
            return _parse(model, data, operation)

        retry_mgr = RetryManager(self.config.retry, self.event_bus)
        return await retry_mgr.execute(
            attempt, name=operation, classify=classify, cancel=cancel
        )


# ─────────────────────────────────────────────────────────────────────────────
# Response conversion
# ─────────────────────────────────────────────────────────────────────────────


def _page_params(actor: str, limit: int, cursor: str | None) -> dict[str, Any]:
    params: dict[str, Any] = {"actor": actor, "limit": limit}
    if cursor:
        params["cursor"] = cursor
    return params


def _parse(model: type[M], data: Any, operation: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidResponseError(
            f"Unexpected response for {operation}: {e}", operation=operation
        ) from e


def _post_info(item: FeedItem) -> PostInfo:
    post = item.post
    return PostInfo(
        text=post.record.text,
        posted_at=post.record.created_at,
        like_count=post.like_count,
        repost_count=post.repost_count,
        reply_count=post.reply_count,
    )


def _interaction_post(item: FeedItem) -> InteractionPost:
    post = item.post
    reply = post.record.reply
    parent_uri = reply.parent.uri if reply and reply.parent else None
    return InteractionPost(
        author_did=post.author.did,
        created_at=post.record.created_at,
        text=post.record.text,
        post_id=post_id_from_uri(post.uri),
        parent_post_id=post_id_from_uri(parent_uri) if parent_uri else None,
    )


def _reply_post(item: FeedItem) -> ReplyPost | None:
    reply = item.post.record.reply
    if reply is None or reply.parent is None:
        return None
    return reply_from_view(item.post, post_id_from_uri(reply.parent.uri))


def _image_urls(embed: Embed) -> list[str]:
    if embed.type == IMAGES_EMBED:
        images = embed.images
    elif (
        embed.type == RECORD_WITH_MEDIA_EMBED
        and embed.media is not None
        and embed.media.type == IMAGES_EMBED
    ):
        images = embed.media.images
    else:
        return []
    return [image.fullsize for image in images if image.fullsize]
