"""Agent entry point"""

import asyncio
import signal
import sys

import click

from docker2lm.core.config import Settings, get_settings, load_relay_config
from docker2lm.core.exceptions import ConfigurationError
from docker2lm.core.logging import logger
from docker2lm.core.logging_config import setup_logging
from docker2lm.services.memory_reclaimer import MemoryReclaimer
from docker2lm.services.orchestrator import Orchestrator


async def serve(orchestrator: Orchestrator, settings: Settings) -> None:
    """Run the relay until SIGINT/SIGTERM"""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, orchestrator.stop)
        except NotImplementedError:
            pass

    reclaimer = MemoryReclaimer(settings.gc_interval)
    reclaimer.start()
    try:
        await orchestrator.run()
    finally:
        await reclaimer.stop()


@click.command()
@click.option('--log-level', default=None,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Override DOCKER_LM_LOG_LEVEL')
def cli(log_level):
    """Ship Docker container logs and stats to the log intake"""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    try:
        config = load_relay_config(settings.relay_config)
    except ConfigurationError as e:
        click.echo('Nothing is going to be shipped, exit!', err=True)
        click.echo(f' - {e.message}', err=True)
        sys.exit(1)

    logger.info(f"Starting {settings.app_name} {settings.app_version}")

    async def _main():
        orchestrator = Orchestrator(config, settings)
        await serve(orchestrator, settings)

    asyncio.run(_main())


if __name__ == "__main__":
    cli()
