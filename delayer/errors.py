"""Error taxonomy for the promotion pipeline."""
from __future__ import annotations

from typing import Any


class DelayerError(Exception):
    """Base class for every error raised by the delayer."""


class StoreError(DelayerError):
    """Connectivity or protocol failure talking to Redis."""


class NotFoundError(DelayerError):
    """Job metadata is absent. Expected, triggers orphan cleanup."""

    def __init__(self, job_id: str):
        super().__init__(f"job metadata not found: {job_id}")
        self.job_id = job_id


class PartialCommitError(DelayerError):
    """The transaction committed but one staged operation had no effect."""

    def __init__(self, topic: str, results: list[Any]):
        super().__init__(
            f"zero-effect operation in commit for topic {topic!r}: {results}"
        )
        self.topic = topic
        self.results = results


class ConfigError(DelayerError):
    """Invalid configuration value."""
