"""
Day-scoped, bounded history of vote snapshots stored as JSON files.

Each UTC calendar day gets its own file named after the date
(e.g. snapshots/2025-08-19.json) with the structure:

    {
        "times": ["2025-08-19T00:00:03.120Z", ...],
        "voteIncrements": {"Candidate A": [10, 12, ...], ...},
        "baselineVotes": {"Candidate A": 10, ...} | null
    }

The history keeps at most max_entries timestamps. Once that capacity is
exceeded the oldest timestamp and the oldest count of every tracked
candidate are dropped together.

Candidates that are missing from a round are not padded, so their sequences
can be shorter than "times". Only candidates observed in every round stay
index-aligned with the timestamps.

Only one invocation may append to a snapshot directory at a time. There is
no file locking; the external scheduler is expected to never overlap runs.
"""

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from console import debug_print, display_error_message

SNAPSHOT_DIR = 'snapshots'
DEFAULT_CADENCE_MINUTES = 5
MINUTES_PER_DAY = 24 * 60
MAX_ENTRIES = MINUTES_PER_DAY // DEFAULT_CADENCE_MINUTES  # 288 (every 5 minutes)

# Result of load_with_status()
LOAD_EXISTING = 'existing'    # File read and parsed successfully
LOAD_FRESH = 'fresh'          # No file for this day yet
LOAD_RECOVERED = 'recovered'  # File existed but was unreadable or malformed


def empty_history():
    """Return a new, empty history structure."""
    return {"times": [], "voteIncrements": {}, "baselineVotes": None}


def capacity_for_cadence(cadence_minutes):
    """
    Number of entries needed to cover one full day at the given cadence.

    Args:
        cadence_minutes (int): Minutes between scheduled invocations

    Returns:
        int: Capacity, e.g. 288 for a 5-minute cadence and 96 for 15 minutes

    Raises:
        ValueError: If cadence_minutes is not between 1 and 1440
    """
    if cadence_minutes < 1 or cadence_minutes > MINUTES_PER_DAY:
        raise ValueError(f"cadence must be between 1 and {MINUTES_PER_DAY} minutes, got {cadence_minutes}")
    return MINUTES_PER_DAY // cadence_minutes


def format_timestamp(moment):
    """Format an aware datetime as UTC ISO-8601 with milliseconds and a Z suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"


def _new_file_mode():
    # mkstemp creates 0600 files; snapshots follow the umask like a plain open() would
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _utc_now():
    return datetime.now(timezone.utc)


def _is_valid_history(data):
    if not isinstance(data, dict):
        return False
    if not isinstance(data.get("times"), list):
        return False
    increments = data.get("voteIncrements")
    if not isinstance(increments, dict):
        return False
    if not all(isinstance(counts, list) for counts in increments.values()):
        return False
    baseline = data.get("baselineVotes")
    return baseline is None or isinstance(baseline, dict)


class SnapshotStore:
    """
    Bounded, append-only store of vote snapshots partitioned by UTC day.

    Args:
        snapshot_dir (str | Path): Directory holding one JSON file per day.
            Created on the first save if it does not exist.
        max_entries (int): Maximum number of timestamps kept per day
        clock (callable, optional): Returns the current aware datetime.
            Defaults to datetime.now(timezone.utc); tests pass a fixed clock.
    """

    def __init__(self, snapshot_dir=SNAPSHOT_DIR, max_entries=MAX_ENTRIES, clock=None):
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        self.snapshot_dir = Path(snapshot_dir)
        self.max_entries = max_entries
        self.clock = clock or _utc_now

    def today(self):
        return self.clock().astimezone(timezone.utc).date()

    def path_for(self, day=None):
        """Return the file path for the given date (today when omitted)."""
        if day is None:
            day = self.today()
        return self.snapshot_dir / f"{day.isoformat()}.json"

    def load_with_status(self, day=None):
        """
        Read a day's history and report how it was obtained.

        Never raises: a missing file yields LOAD_FRESH and any read or parse
        problem yields LOAD_RECOVERED, both with an empty default history.

        Args:
            day (date, optional): Day to load, defaults to today

        Returns:
            tuple: (history, status) where status is one of LOAD_EXISTING,
                LOAD_FRESH or LOAD_RECOVERED
        """
        path = self.path_for(day)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            debug_print(f"No snapshot file at {path}, starting a new history")
            return empty_history(), LOAD_FRESH
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
            display_error_message(f"Could not read {path} ({e}), starting a new history", source="SnapshotStore")
            return empty_history(), LOAD_RECOVERED

        if not _is_valid_history(data):
            display_error_message(f"Unexpected content in {path}, starting a new history", source="SnapshotStore")
            return empty_history(), LOAD_RECOVERED

        # Older files may omit the baseline key
        data.setdefault("baselineVotes", None)
        return data, LOAD_EXISTING

    def load(self, day=None):
        """Read a day's history, falling back to an empty one. Never raises."""
        history, _status = self.load_with_status(day)
        return history

    def save(self, history, day=None):
        """
        Write the full history for a day, replacing the previous file.

        The JSON is written to a temporary file in the same directory which
        then replaces the target, so a failed write leaves the old file
        untouched. Write errors are not caught.

        Args:
            history (dict): History structure to persist
            day (date, optional): Day to write, defaults to today

        Returns:
            Path: The file that was written
        """
        path = self.path_for(day)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.stem}-", suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(history, f, indent=2, ensure_ascii=False)
            os.chmod(temp_name, _new_file_mode())
            os.replace(temp_name, path)
        except BaseException:
            if os.path.exists(temp_name):
                os.remove(temp_name)
            raise

        debug_print(f"Wrote {len(history['times'])} entries to {path}")
        return path

    def append(self, snapshot):
        """
        Record one snapshot in today's history and persist it.

        Precondition: no other process appends to the same directory at the
        same time.

        Args:
            snapshot (dict): Mapping of candidate name to vote count

        Returns:
            Path: The file that was written
        """
        now = self.clock()
        day = now.astimezone(timezone.utc).date()
        history = self.load(day)

        # Set once per day, even when the first snapshot is empty
        if history["baselineVotes"] is None:
            history["baselineVotes"] = dict(snapshot)

        history["times"].append(format_timestamp(now))

        increments = history["voteIncrements"]
        for name, count in snapshot.items():
            increments.setdefault(name, []).append(count)

        # Loops more than once only if the capacity was lowered since the file was written
        while len(history["times"]) > self.max_entries:
            history["times"].pop(0)
            for counts in increments.values():
                if counts:
                    counts.pop(0)

        return self.save(history, day)
