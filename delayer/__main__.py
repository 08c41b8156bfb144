# Runs the delayer timer until SIGINT/SIGTERM.

import argparse
import asyncio
import signal

import structlog

from delayer.config import load_settings
from delayer.errors import DelayerError
from delayer.log import setup_logging
from delayer.store import build_redis, close_redis, ping_redis
from delayer.timer import Timer

logger = structlog.get_logger("delayer")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="delayer",
        description="Promote expired delayed jobs into per-topic ready queues.",
    )
    parser.add_argument("-c", "--config", default=None,
                        help="YAML config file (default: $DELAYER_CONFIG or ./delayer.yaml)")
    return parser.parse_args(argv)


async def serve(config_path=None) -> None:
    settings = load_settings(config_path)
    setup_logging(settings.log.level, settings.log.format)

    r = build_redis(settings.redis)
    try:
        await ping_redis(r)
        logger.info("redis_connected", host=settings.redis.host,
                    port=settings.redis.port, db=settings.redis.database)

        timer = Timer(r, settings.delayer)
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        timer.start()
        await stop.wait()

        await timer.stop()
        await timer.drain()
    finally:
        await close_redis(r)
    logger.info("delayer_exited")


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        asyncio.run(serve(args.config))
    except DelayerError as e:
        logger.error("delayer_startup_failed", error=str(e))
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
