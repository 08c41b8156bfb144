# Pooled Redis client for the delayer.
# Every command borrows a pooled connection and gives it back when done,
# including when the command raises.

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from delayer.config import RedisConfig
from delayer.errors import StoreError


def build_pool(cfg: RedisConfig) -> ConnectionPool:
    return ConnectionPool(
        host=cfg.host,
        port=cfg.port,
        db=cfg.database,
        password=cfg.password or None,
        max_connections=cfg.max_active,
        socket_timeout=cfg.socket_timeout,
        socket_connect_timeout=cfg.socket_timeout,
        # idle connections are pinged before reuse once this many seconds pass
        health_check_interval=cfg.idle_timeout,
        decode_responses=True,
    )


def build_redis(cfg: RedisConfig) -> Redis:
    return Redis(connection_pool=build_pool(cfg))


async def ping_redis(r: Redis) -> None:
    try:
        await r.ping()
    except RedisError as e:
        raise StoreError(f"redis ping failed: {e}") from e


async def close_redis(r: Redis) -> None:
    await r.aclose()
    await r.connection_pool.disconnect()
