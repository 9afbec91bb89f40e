#!/usr/bin/env python3
"""
Marks overdue loans once and exits; suitable for cron when the API's
built-in sweeper is disabled (STACKS_SWEEP_INTERVAL=0).
"""
import argparse
import logging
import sys
from dotenv import load_dotenv

load_dotenv()

from stacks.core.db import init as db_init
from stacks.core.engine import BorrowingEngine
from stacks.core.exceptions import StacksAPIError


def main():
    parser = argparse.ArgumentParser(description="Mark overdue Stacks loans")
    parser.add_argument(
        "--now",
        help="ISO-8601 timestamp to sweep as of (default: current UTC time)"
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)

    try:
        db_init()
        count = BorrowingEngine.sweep_overdue(now=args.now)
    except StacksAPIError as e:
        print(f"Sweep failed: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"Marked {count} loan(s) overdue.")


if __name__ == "__main__":
    main()
