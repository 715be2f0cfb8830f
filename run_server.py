#!/usr/bin/env python3
"""
TP/SL HTTP service entry point

Usage:
  python run_server.py                 # bind settings.API_HOST:API_PORT
  python run_server.py --port 9000
  python run_server.py --dry-run       # simulate all order mutations
"""
import argparse
import sys
from pathlib import Path

# Add project root to path (works with absolute paths)
PROJECT_ROOT = Path(__file__).parent.resolve()
sys.path.insert(0, str(PROJECT_ROOT))

import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


def parse_args():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="TP/SL Synchronizer HTTP service")
    parser.add_argument("--host", default=settings.API_HOST, help="Bind host")
    parser.add_argument("--port", type=int, default=settings.API_PORT, help="Bind port")
    parser.add_argument("--dry-run", action="store_true",
                        help="Simulate order mutations instead of sending them")
    return parser.parse_args()


def main():
    args = parse_args()
    if args.dry_run:
        settings.DRY_RUN = True

    from src.api.server import run_server

    logger.info("tpsl_service_starting", host=args.host, port=args.port, dry_run=settings.DRY_RUN)
    run_server(host=args.host, port=args.port)


if __name__ == "__main__":
    main()
