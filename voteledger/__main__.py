"""
Run the ledger service with uvicorn.

Usage:
    python -m voteledger [--host HOST] [--port PORT] [--reload]
"""
import argparse
import logging

import uvicorn

from . import config


def setup_logging() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Voting ledger service")
    parser.add_argument("--host", default=config.HOST, help=f"Bind address (default: {config.HOST})")
    parser.add_argument("--port", type=int, default=config.PORT, help=f"Port (default: {config.PORT})")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args()

    setup_logging()
    uvicorn.run(
        "voteledger.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
