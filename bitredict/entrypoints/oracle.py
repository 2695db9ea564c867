"""Oracle process entrypoint.

Loads settings, runs migrations, then drives every component in one event
loop until SIGINT/SIGTERM. Exits non-zero when a component escalates a
FatalError so the supervisor restarts the process.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv

from bitredict.config import Settings, _data_dir, load_settings, sanitize_dict
from bitredict.config.db_url import resolve_database_url
from bitredict.oracle.app import build_components, build_services
from bitredict.oracle.database.migrate import upgrade_head
from bitredict.oracle.health import HealthServer
from bitredict.oracle.runner import ComponentRunner
from bitredict.shared.errors import FatalError
from bitredict.shared.logging import configure_logging

logger = logging.getLogger("bitredict.oracle")


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bitredict-oracle", description="BitRedict settlement oracle")
    parser.add_argument("--config", default=None, help="Path to the YAML config file")
    parser.add_argument("--skip-migrations", action="store_true", help="Do not run Alembic before starting")
    parser.add_argument("--log-level", default=None, help="Override runtime.log_level")
    return parser.parse_args(argv)


async def serve(settings: Settings) -> None:
    services = build_services(settings)
    runner = ComponentRunner(
        build_components(settings, services),
        fatal_after_failures=settings.runtime.fatal_after_failures,
    )
    health = HealthServer(runner, host=settings.runtime.health_host, port=settings.runtime.health_port)

    loop = asyncio.get_running_loop()
    received_signal = {"signum": 0}

    def _handle_signal(signum: int) -> None:
        received_signal["signum"] = signum
        runner.stop()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, _handle_signal, signum)

    run_task: Optional[asyncio.Task] = None
    try:
        await health.start()
        run_task = asyncio.create_task(runner.run())
        stop_wait = asyncio.create_task(runner.shutdown.wait())
        await asyncio.wait({run_task, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        stop_wait.cancel()
        if received_signal["signum"]:
            logger.info({"oracle_signal": received_signal["signum"]})
        try:
            # running ticks finish on their own; only a hung one is cancelled
            await asyncio.wait_for(run_task, timeout=settings.runtime.shutdown_grace_seconds)
        except asyncio.TimeoutError:
            logger.warning({"oracle_shutdown": {"grace_expired_seconds": settings.runtime.shutdown_grace_seconds}})
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        await health.stop()
        await services.close()
        logger.info({"oracle_shutdown": "complete"})


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    settings = load_settings(args.config)
    level = args.log_level or settings.runtime.log_level
    configure_logging(_data_dir() / "logs", level=level, retention_bytes=settings.runtime.log_retention_bytes)
    logger.info({"oracle_settings": sanitize_dict(settings.model_dump())})

    try:
        if settings.database.run_migrations and not args.skip_migrations:
            # alembic drives its own event loop, so it runs before ours starts
            upgrade_head(resolve_database_url(settings.database))
        asyncio.run(serve(settings))
    except FatalError as exc:
        logger.critical({"oracle_fatal": {"error": str(exc)}})
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
