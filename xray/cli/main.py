#!/usr/bin/env python3
"""X-Ray CLI - management utility for the decision trail service."""

import argparse
import asyncio
import sys

from xray.services.queue import ALL_QUEUES
from xray.settings import settings
from xray.utils.db_manager import DatabaseManager
from xray.utils.logger import configure_logging, logger


def run_server(host: str | None = None, port: int | None = None) -> None:
    """Run the X-Ray API server."""
    import uvicorn

    host = host or settings.host or "127.0.0.1"
    port = port or settings.port or 3000

    logger.info(f"Starting X-Ray server at http://{host}:{port}")

    uvicorn.run(
        "xray.api.app:app",
        host=host,
        port=port,
        reload=settings.debug,
        log_level="info" if settings.debug else "warning",
    )


def run_worker(queues: list[str] | None = None, concurrency: int | None = None) -> None:
    """Run a worker consuming the ingestion queues."""
    from xray.services.worker import run_worker as start_worker

    asyncio.run(start_worker(settings, queues=queues, concurrency=concurrency))


async def init_database() -> None:
    """Create all tables."""
    configure_logging(settings, component="cli")
    db_manager = DatabaseManager(settings)
    logger.info("Initializing database...")
    try:
        await db_manager.create_db_and_tables_async()
    finally:
        await db_manager.close()
    logger.info("Database initialized successfully")


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="xray", description="X-Ray CLI - decision trail service for multi-step pipelines"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run the API server")
    run_parser.add_argument(
        "--host", type=str, default=None, help="Host to bind to (default: 127.0.0.1)"
    )
    run_parser.add_argument(
        "--port", type=int, default=None, help="Port to bind to (default: 3000)"
    )

    # worker command
    worker_parser = subparsers.add_parser("worker", help="Run a queue worker")
    worker_parser.add_argument(
        "--queue",
        dest="queues",
        action="append",
        choices=ALL_QUEUES,
        default=None,
        help="Queue to consume, repeatable (default: all ingestion queues)",
    )
    worker_parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help=f"Jobs processed at once per queue (default: {settings.worker_concurrency})",
    )

    # db command
    db_parser = subparsers.add_parser("db", help="Database management")
    db_subparsers = db_parser.add_subparsers(dest="db_command")
    db_subparsers.add_parser("init", help="Initialize database with tables")

    args = parser.parse_args()

    if args.command == "run":
        run_server(args.host, args.port)
    elif args.command == "worker":
        run_worker(args.queues, args.concurrency)
    elif args.command == "db":
        if args.db_command == "init":
            asyncio.run(init_database())
        else:
            db_parser.print_help()
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
