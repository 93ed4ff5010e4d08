"""Classification of firehose documents into post events."""

from __future__ import annotations

from pydantic import ValidationError

from ._utils import POST_COLLECTION, post_id_from_uri, strip_did_prefix
from .logging import logger
from .schemas import JetstreamMessage, PostRecord
from .types import PostEvent


class DiagnosticLimiter:
    """Counts failures and allows only the first `limit` to be reported.

    Later failures are still counted, so totals stay accurate while the
    diagnostic output stays bounded for the rest of the session.
    """

    def __init__(self, limit: int = 5) -> None:
        self.limit = limit
        self.count = 0

    def record(self) -> bool:
        """Count one failure; True if it falls within the reporting budget."""
        self.count += 1
        return self.count <= self.limit

    @property
    def suppressed(self) -> int:
        return max(0, self.count - self.limit)


class EventClassifier:
    """Turns one reassembled document into zero or one PostEvent.

    Usage:
        classifier = EventClassifier()
        post = classifier.classify(envelope)
        for message in classifier.pop_diagnostics():
            print(message)
    """

    def __init__(
        self,
        collection: str = POST_COLLECTION,
        error_report_limit: int = 5,
    ) -> None:
        self.collection = collection
        self.limiter = DiagnosticLimiter(error_report_limit)
        self._diagnostics: list[str] = []

    @property
    def error_count(self) -> int:
        return self.limiter.count

    def parse(self, envelope: str) -> PostEvent | None:
        """Parse a document, raising on malformed input."""
        message = JetstreamMessage.model_validate_json(envelope)
        commit = message.commit
        if commit is None or commit.collection != self.collection:
            return None
        if commit.record is None:
            # Deletes carry no record
            return None

        record = PostRecord.model_validate(commit.record)
        reply_uri: str | None = None
        is_reply = False
        if record.reply is not None:
            parent, root = record.reply.parent, record.reply.root
            is_reply = parent is not None or root is not None
            if parent is not None and parent.uri:
                reply_uri = parent.uri
            elif root is not None and root.uri:
                reply_uri = root.uri

        return PostEvent(
            timestamp=record.created_at,
            post_id=commit.rkey or "",
            author_id=strip_did_prefix(message.did or ""),
            text=record.text,
            is_reply=is_reply,
            reply_target_id=post_id_from_uri(reply_uri) if is_reply else "",
        )

    def classify(self, envelope: str, message_number: int | None = None) -> PostEvent | None:
        """Parse a document; malformed input is counted, never raised."""
        try:
            return self.parse(envelope)
        except (ValidationError, ValueError) as e:
            label = f"message {message_number}" if message_number is not None else "message"
            if self.limiter.record():
                text = f"Error processing {label}: {e}"
                logger.warning(text)
                self._diagnostics.append(text)
                if self.limiter.count == self.limiter.limit:
                    logger.info(
                        f"Suppressing further message errors "
                        f"(limit {self.limiter.limit} reached)"
                    )
            else:
                logger.debug(f"Suppressed parse error for {label}: {e}")
            return None

    def pop_diagnostics(self) -> list[str]:
        """Return and clear diagnostics not yet delivered."""
        diagnostics, self._diagnostics = self._diagnostics, []
        return diagnostics
