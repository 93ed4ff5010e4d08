"""Reassembly of transport frames into JSON documents."""

from __future__ import annotations

import json

from .logging import logger

_DECODER = json.JSONDecoder()
_WHITESPACE = " \t\n\r"


def split_documents(text: str) -> list[str]:
    """Split concatenated top-level JSON documents.

    Upstream senders may glue several objects together with no delimiter
    (`{...}{...}`) or with whitespace between them. Documents are read off the
    text with an incremental decoder, so boundaries inside strings or nested
    objects never cause a split.

    If the remainder of the text cannot be decoded, it is returned as a single
    trailing fragment so the caller can report it as one malformed document.
    """
    documents: list[str] = []
    length = len(text)
    pos = 0

    while True:
        while pos < length and text[pos] in _WHITESPACE:
            pos += 1
        if pos >= length:
            return documents

        try:
            _, end = _DECODER.raw_decode(text, pos)
        except json.JSONDecodeError:
            documents.append(text[pos:].rstrip(_WHITESPACE))
            return documents

        documents.append(text[pos:end])
        pos = end


class FrameAssembler:
    """Accumulates partial frames until the transport marks a message boundary.

    Usage:
        assembler = FrameAssembler()
        assembler.feed(b'{"did": "did:plc:a"', final=False)   # []
        assembler.feed(b'}{"did": "did:plc:b"}', final=True)  # two documents
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Bytes buffered for the message in progress."""
        return len(self._buffer)

    def feed(self, data: bytes, final: bool) -> list[str]:
        """Append one chunk; on the final chunk, return the message's documents."""
        self._buffer.extend(data)
        if not final:
            return []

        text = self._buffer.decode("utf-8", errors="replace")
        self._buffer.clear()
        documents = split_documents(text)
        if len(documents) > 1:
            logger.debug(f"Split one message into {len(documents)} documents")
        return documents

    def reset(self) -> None:
        """Drop any partial message (e.g. after a reconnect)."""
        self._buffer.clear()
