"""
Topic resolution and grouping.

Every expired job id is looked up in its metadata hash. Outcomes:
  topic found       -> (job_id, topic)
  metadata missing  -> orphan; removed from the job pool, (job_id, "")
  lookup failed     -> reported, (job_id, ""); stays pooled for the next tick
Pairs with an empty topic never reach the mover.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from delayer.errors import NotFoundError, StoreError
from delayer.redis_schema import TOPIC_FIELD, job_bucket_key, job_pool_key
from delayer.reporting import ErrorSink, LogSink, StructlogLogSink
from delayer.workpool import run_bounded


@dataclass
class Resolution:
    job_id: str
    topic: str = ""
    orphan: bool = False
    failed: bool = False


@dataclass
class ResolveResult:
    pairs: list[tuple[str, str]] = field(default_factory=list)
    orphans: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)


async def get_job_topic(r: Redis, job_id: str) -> str:
    """Read the topic of one job. Raises NotFoundError or StoreError."""
    try:
        topic = await r.hget(job_bucket_key(job_id), TOPIC_FIELD)
    except RedisError as e:
        raise StoreError(str(e)) from e
    if not topic:
        raise NotFoundError(job_id)
    return topic


async def remove_orphan(r: Redis, job_id: str) -> int:
    try:
        return await r.zrem(job_pool_key(), job_id)
    except RedisError as e:
        raise StoreError(str(e)) from e


class TopicResolver:
    def __init__(self, r: Redis, errors: ErrorSink, info: Optional[LogSink] = None,
                 concurrency: int = 64):
        self.r = r
        self.errors = errors
        self.info = info or StructlogLogSink()
        self.concurrency = concurrency

    async def resolve_one(self, job_id: str) -> Resolution:
        try:
            topic = await get_job_topic(self.r, job_id)
        except NotFoundError:
            # Orphan: best effort, a failed removal is retried on a later tick
            try:
                await remove_orphan(self.r, job_id)
                self.info.info(f"Orphan removed, ID: {job_id}", job_id=job_id)
            except Exception as e:
                self.errors.handle_error(e, "removeOrphan", job_id)
            return Resolution(job_id, orphan=True)
        except StoreError as e:
            self.errors.handle_error(e, "getJobTopic", job_id)
            return Resolution(job_id, failed=True)
        except Exception as e:
            # Anything else stays confined to this job; it is retried next tick
            self.errors.handle_error(e, "getJobTopic", job_id)
            return Resolution(job_id, failed=True)
        return Resolution(job_id, topic=topic)

    async def resolve(self, job_ids: list[str]) -> ResolveResult:
        resolutions = await run_bounded(job_ids, self.resolve_one, self.concurrency)
        result = ResolveResult()
        for res in resolutions:
            result.pairs.append((res.job_id, res.topic))
            if res.orphan:
                result.orphans.append(res.job_id)
            elif res.failed:
                result.failures.append(res.job_id)
        return result


def group_by_topic(pairs: Iterable[tuple[str, str]]) -> dict[str, list[str]]:
    """Partition (job_id, topic) pairs by topic, dropping empty topics."""
    topics: dict[str, list[str]] = {}
    for job_id, topic in pairs:
        if not topic:
            continue
        topics.setdefault(topic, []).append(job_id)
    return topics
