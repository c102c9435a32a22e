#!/usr/bin/env python3
"""
Leaderboard Recompute Tool

Rebuilds the leaderboard snapshot for one scope directly against a data
directory and prints the ranked table.

Usage:
    python scripts/recompute_leaderboard.py --scope-type tournament --scope-id t1
    python scripts/recompute_leaderboard.py --scope-type season --scope-id 2025 --sport football --gender women
    python scripts/recompute_leaderboard.py --scope-type season --scope-id 2025 --data-dir /home/data

Exit codes:
    0: Success
    1: Data directory not found
    2: Invalid scope
    3: Store busy or recompute failed
"""
import argparse
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from brackets.errors import BracketError, ValidationError  # noqa: E402
from brackets.leaderboard import load_scoring  # noqa: E402
from brackets.models import Actor  # noqa: E402
from brackets.service import BracketService  # noqa: E402
from brackets.store import EntityStore  # noqa: E402


def format_table(snapshot: dict) -> str:
    """Render snapshot entries as a fixed-width table."""
    lines = [
        f"{'#':>3}  {'Team':<20} {'P':>3} {'W':>3} {'D':>3} {'L':>3} {'+/-':>5} {'Pts':>4}",
    ]
    for entry in snapshot['entries']:
        lines.append(
            f"{entry['rank']:>3}  {str(entry['team_id']):<20} {entry['played']:>3} "
            f"{entry['wins']:>3} {entry['draws']:>3} {entry['losses']:>3} "
            f"{entry['score_diff']:>5} {entry['points']:>4}"
        )
    return '\n'.join(lines)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Recompute a leaderboard snapshot from completed matches'
    )
    parser.add_argument(
        '--data-dir',
        default=os.environ.get('BRACKET_DATA_DIR', os.path.join(os.path.dirname(__file__), '..', 'data')),
        help='Data directory holding store.yaml (default: $BRACKET_DATA_DIR or ./data)'
    )
    parser.add_argument(
        '--scope-type',
        required=True,
        choices=['tournament', 'season'],
        help='Leaderboard scope type'
    )
    parser.add_argument(
        '--scope-id',
        required=True,
        help='Tournament id or season label'
    )
    parser.add_argument('--sport', help='Only count tournaments of this sport')
    parser.add_argument('--gender', help='Only count tournaments of this gender')
    parser.add_argument(
        '--lock-timeout',
        type=float,
        default=float(os.environ.get('BRACKET_LOCK_TIMEOUT', '10')),
        help='Seconds to wait for the store lock'
    )

    args = parser.parse_args(argv)

    if not os.path.isdir(args.data_dir):
        print(f"Error: Data directory not found: {args.data_dir}", file=sys.stderr)
        return 1

    store = EntityStore(args.data_dir, lock_timeout=args.lock_timeout)
    service = BracketService(store, scoring=load_scoring(args.data_dir))
    scope = {
        'scope_type': args.scope_type,
        'scope_id': args.scope_id,
        'sport': args.sport,
        'gender': args.gender,
    }

    try:
        snapshot = service.recompute_leaderboard(Actor('cli', role='admin'), scope)
    except ValidationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    except BracketError as e:
        print(f"Error: Recompute failed ({e.code}): {e.message}", file=sys.stderr)
        return 3

    print(f"Leaderboard {snapshot['id']} computed at {snapshot['computed_at']}")
    print(f"Completed matches counted: {snapshot['match_count']}\n")
    print(format_table(snapshot))
    return 0


if __name__ == '__main__':
    sys.exit(main())
