"""
Main application entry point for the drive service.

Runs the drive behind the HTTP status API, or headless with signal handling.
"""

# Standard library imports
import argparse
import asyncio
import signal
import sys
from pathlib import Path

# Third-party imports
import uvicorn
from dotenv import load_dotenv

# Local imports
from common.config import load_config
from common.errors import TransportError
from common.logging import get_logger, setup_logging
from gateway.drive_service import DriveService
from gateway.status_api import create_status_app

# Load environment variables from .env file at module level
load_dotenv()

logger = get_logger(__name__)


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Filesystem control over a pub/sub channel")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--storage-dir", type=str, help="Override the storage directory")
    parser.add_argument("--port", type=int, help="Override the status API port")
    parser.add_argument("--host", type=str, help="Override the status API host")
    parser.add_argument(
        "--headless", action="store_true", help="Run without the HTTP status API"
    )
    return parser.parse_args()


async def run_headless(service: DriveService) -> None:
    """Run the drive until SIGINT or SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await service.initialize()
    try:
        await stop.wait()
        logger.info(event="shutdown_signal_received")
    finally:
        await service.shutdown()


def main() -> None:
    """Main entry point."""
    try:
        args = parse_args()

        config = load_config(args.config)
        if args.storage_dir:
            config.storage.storage_dir = args.storage_dir

        setup_logging(config)

        logger.info(
            event="application_starting",
            device_id=config.device_id,
            transport_url=config.transport.url,
            channel=config.transport.channel,
        )

        service = DriveService(config)

        if args.headless:
            asyncio.run(run_headless(service))
            return

        app = create_status_app(service)

        host = args.host or config.status_api.host
        port = args.port or config.status_api.port

        logger.info(event="starting_status_api", host=host, port=port)

        # uvicorn runs the lifespan shutdown on SIGINT/SIGTERM
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_config=None,  # Use our custom logging setup
            access_log=False,
        )

    except KeyboardInterrupt:
        logger.info(event="application_shutdown", reason="Keyboard interrupt")
    except TransportError as e:
        logger.critical(event="startup_failed", reason="Transport unreachable", error=str(e))
        sys.exit(1)
    except SystemExit as e:
        if e.code:
            logger.critical(event="application_failed", exit_code=e.code)
        raise
    except Exception as e:
        logger.critical(event="application_crashed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    main()
