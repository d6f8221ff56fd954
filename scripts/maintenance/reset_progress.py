"""
Reset review progress.

DANGEROUS: This deletes schedule entries and their history!
Only use when you want to start fresh.

Usage:
    python -m scripts.maintenance.reset_progress                  # device only
    python -m scripts.maintenance.reset_progress --user ben       # device + remote
    python -m scripts.maintenance.reset_progress --kind word --yes
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from studycore import ItemKind, ScheduleService, SessionIdentity, run_sync
from studycore.config import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Delete review schedule entries and history")
    parser.add_argument(
        "--user",
        help="Identity whose remote progress is reset as well (default: device only)"
    )
    parser.add_argument(
        "--kind",
        choices=[kind.value for kind in ItemKind],
        help="Only reset lessons or only words"
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Skip the confirmation prompt"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: LOG_LEVEL or INFO)"
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    scope = f"{args.kind} items" if args.kind else "all items"
    target = f"device and remote store for {args.user}" if args.user else "device store"

    print("=" * 60)
    print("WARNING: Reset Review Progress")
    print("=" * 60)
    print()
    print(f"This will DELETE {scope} from the {target}:")
    print("  - Schedule entries (repetition counts, due dates)")
    print("  - Category change history and review events")
    print()

    if not args.yes:
        response = input("Are you sure you want to reset? (type 'yes' to confirm): ")
        if response.lower() != "yes":
            print("\nCancelled. No changes made.")
            return 1

    identity = SessionIdentity(args.user) if args.user else None
    service = ScheduleService.from_env(identity)
    prefix = ItemKind(args.kind) if args.kind else None

    print("\nResetting progress...")
    remote_reset = run_sync(service.reset_all(prefix))
    print("✓ Device store reset complete!")
    if args.user:
        if remote_reset:
            print(f"✓ Remote store reset complete for {args.user}")
        else:
            print(f"⚠ Remote store not reset for {args.user} (unavailable or not configured)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
