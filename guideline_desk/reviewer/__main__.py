"""
Review worker CLI entry point.

Usage:
    python -m guideline_desk.reviewer [OPTIONS]

Options:
    --reviewer TYPE     Reviewer backend: stub or claude (default: from config)
    --poll-interval N   Seconds between polls (default: from config)
    --once              Drain the queue and exit
"""
from __future__ import annotations

import argparse
import sys

from ..config import get_settings
from ..log import configure_logging
from .loop import run_worker


def main() -> int:
    """Main entry point for the review worker CLI."""
    parser = argparse.ArgumentParser(
        description="Guideline Desk review worker - processes queued review requests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run with default settings
    python -m guideline_desk.reviewer

    # Use the Claude reviewer (requires ANTHROPIC_API_KEY)
    python -m guideline_desk.reviewer --reviewer claude

    # Process everything queued, then exit
    python -m guideline_desk.reviewer --once
        """,
    )

    parser.add_argument(
        "--reviewer",
        type=str,
        choices=["stub", "claude"],
        default=None,
        help="Reviewer backend (default: from config)",
    )
    parser.add_argument(
        "--poll-interval",
        type=int,
        default=None,
        help="Seconds between poll cycles (default: from config)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Drain the queue and exit",
    )

    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    print("Starting review worker...")
    print(f"  Reviewer: {args.reviewer or settings.reviewer_backend}")
    print(f"  Poll interval: {args.poll_interval or 'from config'}")
    print()

    try:
        processed = run_worker(
            reviewer_backend=args.reviewer,
            poll_interval=args.poll_interval,
            once=args.once,
        )
        if args.once:
            print(f"Processed {processed} review request(s)")
        return 0
    except KeyboardInterrupt:
        print("\nWorker stopped by user")
        return 0
    except Exception as e:
        print(f"Worker error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
