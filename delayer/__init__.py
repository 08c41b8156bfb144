"""Delayer: promotes expired delayed jobs from Redis into per-topic ready queues."""

from delayer.errors import (
    ConfigError,
    DelayerError,
    NotFoundError,
    PartialCommitError,
    StoreError,
)
from delayer.timer import PassReport, Timer

__all__ = [
    "ConfigError",
    "DelayerError",
    "NotFoundError",
    "PartialCommitError",
    "PassReport",
    "StoreError",
    "Timer",
]

__version__ = "0.1.0"
