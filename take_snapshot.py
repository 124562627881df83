#!/usr/bin/env python3
"""
Take one snapshot of a PollDaddy poll's vote counts and append it to today's
history file.

Each run fetches the current counts once, records them in
snapshots/<YYYY-MM-DD>.json (keeping at most one day's worth of entries for
the configured cadence) and exits. Scheduling is left to cron or a CI
schedule, e.g.:

    */5 * * * *  cd /path/to/tool && python3 take_snapshot.py

Usage:
    python3 take_snapshot.py [--strategy http|script|widget] [--poll-id ID]
                             [--page-url URL] [--snapshot-dir DIR]
                             [--cadence MINUTES | --max-entries N]
                             [--top N] [--debug]

No argument is required; the defaults poll the configured widget over HTTP
at a 5-minute cadence (288 entries per day).
"""

import argparse
import sys
from datetime import date
from pathlib import Path

import console
from console import debug_print
from snapshot_store import (
    DEFAULT_CADENCE_MINUTES,
    SNAPSHOT_DIR,
    SnapshotStore,
    capacity_for_cadence,
)
from vote_sources import POLL_ID, RESULTS_TIMEOUT, STRATEGIES, create_source


def build_parser():
    parser = argparse.ArgumentParser(description='Record the current vote counts of a PollDaddy poll')
    parser.add_argument('--strategy', choices=STRATEGIES, default='http',
                        help='How to read the votes: http (fetch the widget script), '
                             'script (inject the widget into headless Chrome) or '
                             'widget (open --page-url in headless Chrome). Default: http.')
    parser.add_argument('--poll-id', type=int, default=POLL_ID,
                        help=f'Numeric poll identifier (default: {POLL_ID})')
    parser.add_argument('--page-url', default=None,
                        help='Page embedding the poll widget, required by --strategy widget')
    parser.add_argument('--snapshot-dir', default=SNAPSHOT_DIR,
                        help=f'Directory holding one JSON file per day (default: {SNAPSHOT_DIR})')
    parser.add_argument('--cadence', type=int, default=DEFAULT_CADENCE_MINUTES,
                        help='Minutes between scheduled runs; sets the per-day capacity '
                             f'(default: {DEFAULT_CADENCE_MINUTES}, i.e. 288 entries)')
    parser.add_argument('--max-entries', type=int, default=None,
                        help='Explicit per-day capacity, overrides --cadence')
    parser.add_argument('--timeout', type=float, default=RESULTS_TIMEOUT,
                        help=f'Seconds to wait for the poll results (default: {RESULTS_TIMEOUT})')
    parser.add_argument('--top', type=int, default=0,
                        help='Print the top N candidates after saving (default: 0 = off)')
    parser.add_argument('-debug', '--debug', action='store_true',
                        help='Enable debug output (verbose logging)')
    return parser


def summarize_history(history):
    """
    Summarize the latest counts of a history and their gain since the baseline.

    Args:
        history (dict): History structure as stored by SnapshotStore

    Returns:
        list: (name, latest_count, gain) tuples sorted by latest count
            descending. Candidates with no recorded counts are left out and
            the baseline count is 0 for candidates absent from the baseline.
    """
    baseline = history.get("baselineVotes") or {}
    summary = []
    for name, counts in history["voteIncrements"].items():
        if not counts:
            continue
        latest = counts[-1]
        summary.append((name, latest, latest - baseline.get(name, 0)))
    summary.sort(key=lambda entry: entry[1], reverse=True)
    return summary


def print_top_results(summary, top_n=5):
    """
    Print the top N candidates with their current count and gain today.

    Args:
        summary (list): Output of summarize_history()
        top_n (int): Number of candidates to display
    """
    if not summary:
        print("No vote counts recorded yet.")
        return

    print(f"\n{'='*60}")
    print(f"TOP {min(top_n, len(summary))} CANDIDATES")
    print(f"{'='*60}")
    for position, (name, latest, gain) in enumerate(summary[:top_n], 1):
        print(f"{position:>2}. {name:<30} {latest:>10,} ({gain:+,} today)")
    print(f"{'='*60}\n")


def main(argv=None):
    """
    Fetch the current votes once and append them to today's snapshot file.

    Returns:
        int: Process exit code (0 on success, 1 on invalid arguments)
    """
    args = build_parser().parse_args(argv)
    console.debug_mode = args.debug

    try:
        max_entries = args.max_entries if args.max_entries is not None else capacity_for_cadence(args.cadence)
        store = SnapshotStore(snapshot_dir=args.snapshot_dir, max_entries=max_entries)
        source = create_source(args.strategy, poll_id=args.poll_id, page_url=args.page_url, timeout=args.timeout)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    debug_print(f"Strategy: {args.strategy}, poll {args.poll_id}, capacity {max_entries}")

    votes = source.fetch_votes()
    debug_print(f"Fetched {len(votes)} candidates")

    # Write failures are not caught: the run aborts and the previous file stays as it was
    path = store.append(votes)
    print(f"[Snapshot Saved] {path}")

    if args.top > 0:
        # Summarize the file just written, even if the clock has since passed midnight
        written_day = date.fromisoformat(Path(path).stem)
        print_top_results(summarize_history(store.load(written_day)), args.top)

    return 0


if __name__ == '__main__':
    sys.exit(main())
