"""Shared test fixtures for the delayer."""
import asyncio
import hashlib
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import NoScriptError

from delayer.config import DelayerConfig
from delayer.lua_ops import PROMOTE_JOBS_LUA
from delayer.redis_schema import job_bucket_key, job_pool_key, ready_queue_key


# ──────────────────────────────────────────────────────────────
#  In-memory Redis double
# ──────────────────────────────────────────────────────────────

class FakePipeline:
    """MULTI/EXEC double: staged commands apply together inside execute()."""

    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._staged: list[tuple[str, tuple]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self._staged = []

    def zrem(self, key, *members):
        self._staged.append(("zrem", (key, *members)))
        return self

    def lpush(self, key, *values):
        self._staged.append(("lpush", (key, *values)))
        return self

    async def execute(self):
        r = self._redis
        r.calls.append("exec")
        for _, args in self._staged:
            delay = r.exec_delay.get(args[0])
            if delay:
                await asyncio.sleep(delay)
        if r.fail_exec:
            raise RedisConnectionError("connection reset during EXEC")
        for _, args in self._staged:
            r._maybe_raise(args[0])
        # No await between here and return: the block is atomic
        results = []
        for name, args in self._staged:
            results.append(getattr(r, f"_{name}")(*args))
        return results


class FakeRedis:
    """Implements exactly the commands the delayer issues."""

    def __init__(self):
        self.zsets: dict[str, dict[str, float]] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.lists: dict[str, list[str]] = {}
        self.scripts: dict[str, str] = {}
        self.calls: list[str] = []
        self.fail_zrange = False
        self.fail_hget: set[str] = set()
        self.fail_zrem = False
        self.fail_exec = False
        self.exec_delay: dict[str, float] = {}
        self.raise_on: dict[str, Exception] = {}

    # -- seeding helpers -------------------------------------------------
    def add_job(self, job_id: str, ready_at: float, topic: str = None):
        self.zsets.setdefault(job_pool_key(), {})[job_id] = ready_at
        if topic is not None:
            self.hashes[job_bucket_key(job_id)] = {"topic": topic}

    def pool(self) -> dict[str, float]:
        return dict(self.zsets.get(job_pool_key(), {}))

    def ready(self, topic: str) -> list[str]:
        return list(self.lists.get(ready_queue_key(topic), []))

    def mutations(self) -> int:
        return sum(1 for c in self.calls if c in ("zrem", "exec", "evalsha"))

    def _maybe_raise(self, key):
        if key in self.raise_on:
            raise self.raise_on[key]

    # -- raw operations ----------------------------------------------------
    def _zrem(self, key, *members) -> int:
        zset = self.zsets.get(key, {})
        removed = 0
        for m in members:
            if m in zset:
                del zset[m]
                removed += 1
        return removed

    def _lpush(self, key, *values) -> int:
        lst = self.lists.setdefault(key, [])
        for v in values:
            lst.insert(0, v)
        return len(lst)

    # -- async client API --------------------------------------------------
    async def zrangebyscore(self, key, min, max):
        self.calls.append("zrangebyscore")
        if self.fail_zrange:
            raise RedisConnectionError("connection refused")
        lo = float(min)
        hi = float(max)
        members = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])
        return [m for m, score in members if lo <= score <= hi]

    async def hget(self, key, field):
        self.calls.append("hget")
        for job_id in self.fail_hget:
            if key == job_bucket_key(job_id):
                raise RedisConnectionError("timeout reading from socket")
        self._maybe_raise(key)
        return self.hashes.get(key, {}).get(field)

    async def zrem(self, key, *members):
        self.calls.append("zrem")
        if self.fail_zrem:
            raise RedisConnectionError("connection reset")
        return self._zrem(key, *members)

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def script_load(self, script):
        sha = hashlib.sha1(script.encode()).hexdigest()
        self.scripts[sha] = script
        return sha

    async def evalsha(self, sha, numkeys, *keys_and_args):
        self.calls.append("evalsha")
        if sha not in self.scripts:
            raise NoScriptError("NOSCRIPT No matching script.")
        assert self.scripts[sha] == PROMOTE_JOBS_LUA
        keys, args = keys_and_args[:numkeys], keys_and_args[numkeys:]
        for key in keys:
            if self.exec_delay.get(key):
                await asyncio.sleep(self.exec_delay[key])
            self._maybe_raise(key)
        # args[0] is the LPUSH chunk size; the real script runs in test_promote_script.py
        removed = [a for a in args[1:] if self._zrem(keys[0], a) == 1]
        if not removed:
            return [0, 0, []]
        return [len(removed), self._lpush(keys[1], *removed), removed]


class RecordingErrorSink:
    def __init__(self):
        self.records: list[tuple[Any, str, str]] = []

    def handle_error(self, err, func_name, data=""):
        if err is not None:
            self.records.append((err, func_name, data))

    def funcs(self) -> list[str]:
        return [f for _, f, _ in self.records]


class RecordingLogSink:
    def __init__(self):
        self.messages: list[tuple[str, dict]] = []

    def info(self, msg, **fields):
        self.messages.append((msg, fields))


# ──────────────────────────────────────────────────────────────
#  Fixtures
# ──────────────────────────────────────────────────────────────

NOW = 1_700_000_000


@pytest.fixture
def now() -> int:
    return NOW


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def errors() -> RecordingErrorSink:
    return RecordingErrorSink()


@pytest.fixture
def info() -> RecordingLogSink:
    return RecordingLogSink()


@pytest.fixture(params=["transaction", "script"])
def delayer_config(request) -> DelayerConfig:
    return DelayerConfig(timer_interval=20, atomic_mode=request.param,
                         resolve_concurrency=4, move_concurrency=2)
