"""
Timer: drives one promotion pass per tick.

    fetch expired ids -> resolve topics (fan-out) -> group by topic -> move (per topic)

Each tick spawns the pass as its own task, so a slow pass never delays the
next tick and passes may overlap. Passes share no mutable state; all
coordination between them happens inside Redis (ZREM under MULTI/EXEC or the
promotion script). stop() halts ticking only; passes already running finish.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

import structlog
from redis.asyncio import Redis

from delayer.config import DelayerConfig
from delayer.errors import StoreError
from delayer.expiry import fetch_expired
from delayer.mover import QueueMover
from delayer.reporting import ErrorSink, LogSink, StructlogErrorSink, StructlogLogSink
from delayer.topics import TopicResolver, group_by_topic

logger = structlog.get_logger(__name__)


@dataclass
class PassReport:
    fetched: int = 0
    resolved: int = 0
    orphans: list[str] = field(default_factory=list)
    lookup_failures: list[str] = field(default_factory=list)
    promoted: dict[str, list[str]] = field(default_factory=dict)
    failed_topics: list[str] = field(default_factory=list)
    aborted: bool = False

    def as_log_fields(self) -> dict:
        return {
            "fetched": self.fetched,
            "resolved": self.resolved,
            "orphans": len(self.orphans),
            "lookup_failures": len(self.lookup_failures),
            "promoted": sum(len(v) for v in self.promoted.values()),
            "topics": len(self.promoted),
            "failed_topics": self.failed_topics,
        }


class Timer:
    def __init__(
        self,
        r: Redis,
        config: Optional[DelayerConfig] = None,
        errors: Optional[ErrorSink] = None,
        info: Optional[LogSink] = None,
    ):
        self.r = r
        self.config = config or DelayerConfig()
        self.errors = errors or StructlogErrorSink()
        self.info = info or StructlogLogSink()
        self.resolver = TopicResolver(r, self.errors, self.info,
                                      self.config.resolve_concurrency)
        self.mover = QueueMover(
            r,
            self.errors,
            self.info,
            atomic_mode=self.config.atomic_mode,
            concurrency=self.config.move_concurrency,
        )
        self.last_report: Optional[PassReport] = None
        self._ticker: Optional[asyncio.Task] = None
        self._passes: set[asyncio.Task] = set()

    @property
    def interval_s(self) -> float:
        return self.config.timer_interval / 1000.0

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def in_flight(self) -> int:
        return len(self._passes)

    def start(self) -> None:
        """Begin ticking. Must be called from inside a running event loop."""
        if self.running:
            return
        self._ticker = asyncio.create_task(self._tick_loop(), name="delayer_timer")
        logger.info("timer_started", interval_ms=self.config.timer_interval,
                    atomic_mode=self.config.atomic_mode)

    async def stop(self) -> None:
        """Stop future ticks. In-flight passes keep running; see drain()."""
        if self._ticker is None:
            return
        self._ticker.cancel()
        try:
            await self._ticker
        except asyncio.CancelledError:
            pass
        self._ticker = None
        logger.info("timer_stopped", in_flight=self.in_flight)

    async def drain(self) -> None:
        """Wait for every pass started so far to finish."""
        while self._passes:
            await asyncio.gather(*list(self._passes), return_exceptions=True)

    async def _tick_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval_s
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            # Fixed schedule: ticks missed while the loop was blocked are skipped
            next_tick += self.interval_s
            if next_tick < loop.time():
                next_tick = loop.time() + self.interval_s
            self._spawn_pass()

    def _spawn_pass(self) -> asyncio.Task:
        task = asyncio.create_task(self._guarded_pass())
        self._passes.add(task)
        task.add_done_callback(self._passes.discard)
        return task

    async def _guarded_pass(self) -> None:
        try:
            await self.run_pass()
        except Exception as e:
            self.errors.handle_error(e, "run")

    async def run_pass(self, now: Optional[float] = None) -> PassReport:
        """One full fetch -> resolve -> group -> move pass."""
        report = PassReport()

        try:
            jobs = await fetch_expired(self.r, now)
        except StoreError as e:
            self.errors.handle_error(e, "getExpireJobs")
            report.aborted = True
            self.last_report = report
            return report

        report.fetched = len(jobs)
        if not jobs:
            self.last_report = report
            return report

        resolved = await self.resolver.resolve(jobs)
        report.orphans = resolved.orphans
        report.lookup_failures = resolved.failures

        groups = group_by_topic(resolved.pairs)
        report.resolved = sum(len(ids) for ids in groups.values())

        for result in await self.mover.move_all(groups):
            if result.ok:
                report.promoted[result.topic] = result.promoted
            else:
                report.failed_topics.append(result.topic)

        self.info.info("pass_complete", **report.as_log_fields())
        self.last_report = report
        return report
