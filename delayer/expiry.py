# Reads the ids of jobs whose delay has elapsed from the job pool ZSET.

import time
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from delayer.errors import StoreError
from delayer.redis_schema import job_pool_key


def now_s() -> int:
    return int(time.time())


async def fetch_expired(r: Redis, now: Optional[float] = None) -> list[str]:
    """Return every job id with ready-at <= now. Empty list when nothing is due."""
    if now is None:
        now = now_s()
    try:
        return list(await r.zrangebyscore(job_pool_key(), "-inf", now))
    except RedisError as e:
        raise StoreError(str(e)) from e
