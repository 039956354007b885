"""
Run one ingestion pass for the configured sources.

Intended for cron or an external orchestrator: exits 0 when every source
completed, 1 otherwise. SIGINT/SIGTERM stop the run between units.
"""

import argparse
import asyncio
import signal
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import create_db_engine, create_session_factory
from core.logging import setup_logging
from ingestion.runner import IngestionRunner
from ingestion.sources import SOURCE_REGISTRY, get_profiles

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Ingest rover photo metadata")
    parser.add_argument(
        "--sources",
        nargs="+",
        choices=sorted(SOURCE_REGISTRY),
        default=None,
        help=f"Sources to ingest (default: {' '.join(settings.ACTIVE_SOURCES)})",
    )
    parser.add_argument("--lookback", type=int, default=None, help="Units re-fetched before the watermark")
    parser.add_argument("--no-history", action="store_true", help="Do not persist run history")
    parser.add_argument("--log-format", choices=["text", "json"], default=None)
    return parser.parse_args(argv)


async def run(args) -> int:
    """Run ingestion and return the process exit code"""
    engine = create_db_engine()

    try:
        runner = IngestionRunner(
            create_session_factory(engine),
            lookback=args.lookback,
            record_history=not args.no_history,
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, runner.cancel)
            except NotImplementedError:
                # Signal handlers are unavailable on some platforms (Windows)
                pass

        profiles = get_profiles(args.sources)
        logger.info(f"Ingesting sources: {', '.join(p.name for p in profiles)}")
        report = await runner.run(profiles)
        return report.exit_code
    finally:
        await engine.dispose()


if __name__ == "__main__":
    arguments = parse_args()
    setup_logging(log_format=arguments.log_format)
    sys.exit(asyncio.run(run(arguments)))
