"""Pytest configuration and fixtures."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

from bluesky_client import ObservabilityEvent

# Load .env file if it exists
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(dotenv_path=env_path)


def has_bluesky_credentials() -> bool:
    """Check if live Bluesky credentials are configured."""
    return bool(os.environ.get("BSKY_IDENTIFIER") and os.environ.get("BSKY_PASSWORD"))


class SleepRecorder:
    """Stands in for cancellation.sleep; records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.on_sleep = None

    async def __call__(self, seconds, cancel=None, operation=None):
        if cancel is not None:
            cancel.raise_if_cancelled(operation)
        self.delays.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(len(self.delays))
        if cancel is not None:
            cancel.raise_if_cancelled(operation)


@pytest.fixture
def sleeps(monkeypatch):
    """Make every client delay instant and record the requested durations."""
    recorder = SleepRecorder()
    monkeypatch.setattr("bluesky_client.cancellation.sleep", recorder)
    return recorder


@pytest.fixture
def events():
    """Collects observability events; pass `events.append` as `on_event`."""
    collected: list[ObservabilityEvent] = []
    return collected
