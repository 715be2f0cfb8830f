#!/usr/bin/env python3
"""
One-shot TP/SL synchronization from the command line

Usage:
  python run_sync.py --symbol BTCUSDT --side Long --sl 99 --tp 101
  python run_sync.py --symbol BTC --side Short --tp2 95 --tp3 93 --tp2-id tp2_1700000000000
  python run_sync.py ... --qty 1.5           # skip position lookup, use this size
  python run_sync.py ... --real              # send orders (default is dry-run)

Exit code: 0 success, 1 partial success, 2 failure
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path (works with absolute paths)
PROJECT_ROOT = Path(__file__).parent.resolve()
sys.path.insert(0, str(PROJECT_ROOT))

import structlog

from config.settings import settings
from src.core.models import (
    ApiCredentials,
    LadderLevel,
    LadderOrderRef,
    LadderTarget,
    PositionLookupError,
    ReconciliationOutcome,
)
from src.sync.reporter import classify, summarize
from src.sync.synchronizer import PositionOrderSynchronizer

logger = structlog.get_logger(__name__)

EXIT_CODES = {
    ReconciliationOutcome.SUCCESS: 0,
    ReconciliationOutcome.PARTIAL_SUCCESS: 1,
    ReconciliationOutcome.FAILURE: 2,
}


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Synchronize position SL/TP and TP2/TP3 ladder orders on Bybit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--symbol", required=True, help="Instrument, e.g. BTCUSDT")
    parser.add_argument("--side", required=True, choices=["Long", "Short", "long", "short"],
                        help="Direction of the open position")
    parser.add_argument("--sl", type=float, default=None, help="Stop-loss price")
    parser.add_argument("--tp", type=float, default=None, help="Primary take-profit price")
    parser.add_argument("--tp2", type=float, default=None, help="TP2 limit price (30%% of size)")
    parser.add_argument("--tp3", type=float, default=None, help="TP3 limit price (20%% of size)")
    parser.add_argument("--tp2-id", default=None, help="Client order id of the current TP2 order")
    parser.add_argument("--tp3-id", default=None, help="Client order id of the current TP3 order")
    parser.add_argument("--qty", type=float, default=None,
                        help="Position size; read from the exchange when omitted")
    parser.add_argument("--env", default=settings.BYBIT_ENVIRONMENT,
                        choices=["mainnet", "testnet", "demo"], help="Venue environment")
    parser.add_argument("--real", action="store_true",
                        help="Send REAL orders. Without this flag mutations are simulated.")
    return parser.parse_args(argv)


async def run(args) -> ReconciliationOutcome:
    credentials = ApiCredentials(settings.BYBIT_API_KEY, settings.BYBIT_API_SECRET, args.env)

    ladder = []
    if args.tp2 is not None:
        ladder.append(LadderTarget(LadderLevel.TP2, args.tp2))
    if args.tp3 is not None:
        ladder.append(LadderTarget(LadderLevel.TP3, args.tp3))
    prior_refs = [
        LadderOrderRef(LadderLevel.TP2, args.tp2_id),
        LadderOrderRef(LadderLevel.TP3, args.tp3_id),
    ]

    synchronizer = PositionOrderSynchronizer(dry_run=not args.real)
    report = await synchronizer.synchronize(
        credentials,
        args.symbol,
        args.side,
        stop_loss=args.sl,
        take_profit_main=args.tp,
        take_profit_ladder=ladder,
        prior_refs=prior_refs,
        position_quantity=args.qty,
    )
    print(json.dumps(summarize(report), indent=2))
    return classify(report)


def main(argv=None) -> int:
    args = parse_args(argv)

    if not settings.BYBIT_API_KEY or not settings.BYBIT_API_SECRET:
        print("ERROR: BYBIT_API_KEY and BYBIT_API_SECRET must be set (env or .env)")
        return 2

    if args.real:
        print("=" * 60)
        print("REAL MODE - orders will be sent to Bybit", args.env)
        print("=" * 60)
    else:
        print("DRY-RUN - mutations are simulated, position reads are live")

    try:
        outcome = asyncio.run(run(args))
    except PositionLookupError as e:
        logger.error("position_lookup_aborted", error=str(e))
        return 2
    except ValueError as e:
        print(f"ERROR: {e}")
        return 2

    return EXIT_CODES[outcome]


if __name__ == "__main__":
    sys.exit(main())
