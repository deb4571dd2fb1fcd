"""Queue worker process: runs the dispatcher until interrupted."""

import argparse
import asyncio
import importlib
import logging
import signal
import sys
from collections.abc import Sequence

from .config import Config
from .database import create_db_engine, create_session_factory, init_db
from .delivery import DeliveryAgent
from .mqtt import get_default_broadcaster, shutdown_broadcaster
from .service import SubmissionQueueService

logger = logging.getLogger("submission-queue-worker")


def load_delivery_agent(path: str) -> DeliveryAgent:
    """Load a delivery agent from a "module:attribute" path.

    The attribute may be a DeliveryAgent instance, or a class or factory
    callable taking no arguments that returns one.

    Raises:
        ValueError: If the path is malformed or does not yield a DeliveryAgent
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Delivery agent must be given as 'module:attribute', got {path!r}")

    module = importlib.import_module(module_name)
    target = getattr(module, attr)
    agent = target if isinstance(target, DeliveryAgent) else target()
    if not isinstance(agent, DeliveryAgent):
        raise ValueError(f"{path} did not produce a DeliveryAgent")
    return agent


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the submission retry queue dispatcher")
    parser.add_argument(
        "--delivery-agent",
        required=True,
        help="Delivery agent as module:attribute",
    )
    parser.add_argument("--database-url", default=Config.DATABASE_URL, help="Queue database URL")
    parser.add_argument(
        "--interval-ms",
        type=int,
        default=Config.QUEUE_POLL_INTERVAL_MS,
        help="Time between dispatcher passes",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=Config.QUEUE_BATCH_SIZE,
        help="Entries claimed per pass",
    )
    return parser


async def run_worker(service: SubmissionQueueService, interval_ms: int) -> None:
    """Start the dispatcher and block until SIGINT/SIGTERM."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass

    _ = await service.start(interval_ms)
    try:
        _ = await stop_event.wait()
    finally:
        _ = service.stop()


def main(argv: Sequence[str] | None = None) -> int:
    """
    Run the queue worker.

    This function handles:
    1. Parsing command line arguments
    2. Setting up logging, the database and the event broadcaster
    3. Loading the delivery agent
    4. Running the dispatcher until interrupted
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=Config.LOG_LEVEL)
    logger.info(f"Worker starting (interval {args.interval_ms} ms, batch {args.batch_size})")

    try:
        agent = load_delivery_agent(args.delivery_agent)
    except (ImportError, AttributeError, ValueError) as e:
        logger.error(f"Cannot load delivery agent: {e}")
        return 2

    engine = create_db_engine(args.database_url)
    init_db(engine)

    service = SubmissionQueueService(
        create_session_factory(engine),
        agent,
        broadcaster=get_default_broadcaster(),
        batch_size=args.batch_size,
        interval_ms=args.interval_ms,
    )

    try:
        asyncio.run(run_worker(service, args.interval_ms))
    except KeyboardInterrupt:
        pass
    finally:
        shutdown_broadcaster()
        engine.dispose()
        logger.info("Worker stopped")

    return 0


if __name__ == "__main__":
    sys.exit(main())
