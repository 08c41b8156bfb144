"""
Queue mover: promotes one topic group at a time.

transaction mode:  MULTI; ZREM pool ids...; LPUSH queue ids...; EXEC
script mode:       EVALSHA of PROMOTE_JOBS_LUA (only removed ids are pushed)

Either way both effects land together or not at all. A commit where either
operation reports zero effect means another pass (or an external actor)
consumed the entries first; the group is abandoned and reported.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import NoScriptError, RedisError

from delayer.errors import PartialCommitError, StoreError
from delayer.lua_ops import PROMOTE_CHUNK, PROMOTE_JOBS_LUA
from delayer.redis_schema import job_pool_key, ready_queue_key
from delayer.reporting import ErrorSink, LogSink
from delayer.workpool import run_bounded


@dataclass
class MoveResult:
    topic: str
    job_ids: list[str]
    promoted: list[str] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def check_commit(topic: str, values: list[Any]) -> tuple[int, int]:
    """Validate [removed, new_len] from a commit; zero in either is a failure."""
    if len(values) < 2:
        raise PartialCommitError(topic, list(values))
    removed, pushed = int(values[0]), int(values[1])
    if removed == 0 or pushed == 0:
        raise PartialCommitError(topic, list(values))
    return removed, pushed


class QueueMover:
    def __init__(
        self,
        r: Redis,
        errors: ErrorSink,
        info: LogSink,
        atomic_mode: str = "script",
        concurrency: int = 16,
    ):
        self.r = r
        self.errors = errors
        self.info = info
        self.atomic_mode = atomic_mode
        self.concurrency = concurrency
        self._promote_sha: Optional[str] = None

    async def _move_transaction(self, topic: str, job_ids: list[str]) -> list[str]:
        # One pooled connection for the whole MULTI/EXEC block
        async with self.r.pipeline(transaction=True) as pipe:
            pipe.zrem(job_pool_key(), *job_ids)
            pipe.lpush(ready_queue_key(topic), *job_ids)
            values = await pipe.execute()
        check_commit(topic, values)
        return list(job_ids)

    async def _evalsha_promote(self, topic: str, job_ids: list[str]) -> list[Any]:
        keys_and_args = (job_pool_key(), ready_queue_key(topic), PROMOTE_CHUNK, *job_ids)
        if self._promote_sha is None:
            self._promote_sha = await self.r.script_load(PROMOTE_JOBS_LUA)
        try:
            return await self.r.evalsha(self._promote_sha, 2, *keys_and_args)
        except NoScriptError:
            # Script cache flushed on the server (restart, SCRIPT FLUSH)
            self._promote_sha = await self.r.script_load(PROMOTE_JOBS_LUA)
            return await self.r.evalsha(self._promote_sha, 2, *keys_and_args)

    async def _move_script(self, topic: str, job_ids: list[str]) -> list[str]:
        values = await self._evalsha_promote(topic, job_ids)
        check_commit(topic, values)
        promoted = [str(v) for v in values[2]]
        taken = set(promoted)
        skipped = [j for j in job_ids if j not in taken]
        if skipped:
            self.info.info(
                f"Jobs already taken, Topic: {topic}, IDs: [{','.join(skipped)}]",
                topic=topic,
                job_ids=skipped,
            )
        return promoted

    async def move(self, topic: str, job_ids: list[str]) -> MoveResult:
        """Promote one topic group. Never raises; failures are reported."""
        result = MoveResult(topic=topic, job_ids=list(job_ids))
        joined = ",".join(job_ids)
        try:
            if self.atomic_mode == "script":
                result.promoted = await self._move_script(topic, job_ids)
            else:
                result.promoted = await self._move_transaction(topic, job_ids)
        except PartialCommitError as e:
            result.error = e
            self.errors.handle_error(e, "commit", joined)
            return result
        except RedisError as e:
            result.error = StoreError(str(e))
            self.errors.handle_error(result.error, "moveJobToReadyQueue", joined)
            return result
        except Exception as e:
            # Unexpected reply or client bug: isolate it to this topic
            result.error = e
            self.errors.handle_error(e, "moveJobToReadyQueue", joined)
            return result

        self.info.info(
            f"Job is ready, Topic: {topic}, IDs: [{','.join(result.promoted)}]",
            topic=topic,
            job_ids=result.promoted,
        )
        return result

    async def move_all(self, groups: dict[str, list[str]]) -> list[MoveResult]:
        """Move every topic group concurrently; groups never affect each other."""
        return await run_bounded(
            groups.items(),
            lambda item: self.move(item[0], item[1]),
            self.concurrency,
        )
