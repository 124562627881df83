#!/usr/bin/env python3
"""
Test suite for the take_snapshot entry point.

Tests:
- Command-line arguments and validation
- One full fetch + append run
- History summary and top results display
- Debug flag
"""

import io
import json
import os
import shutil
import tempfile
import unittest
from contextlib import redirect_stdout
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import console
import take_snapshot
from snapshot_store import SnapshotStore


class TestCommandLineArguments(unittest.TestCase):
    """Test argument parsing defaults and overrides."""

    def test_defaults(self):
        args = take_snapshot.build_parser().parse_args([])
        self.assertEqual(args.strategy, 'http')
        self.assertEqual(args.poll_id, 15909793)
        self.assertEqual(args.snapshot_dir, 'snapshots')
        self.assertEqual(args.cadence, 5)
        self.assertIsNone(args.max_entries)
        self.assertEqual(args.top, 0)
        self.assertFalse(args.debug)

    def test_custom_arguments(self):
        args = take_snapshot.build_parser().parse_args(
            ['--strategy', 'widget', '--page-url', 'https://example.com/poll',
             '--poll-id', '42', '--cadence', '15', '-debug'])
        self.assertEqual(args.strategy, 'widget')
        self.assertEqual(args.page_url, 'https://example.com/poll')
        self.assertEqual(args.poll_id, 42)
        self.assertEqual(args.cadence, 15)
        self.assertTrue(args.debug)

    def test_invalid_strategy_exits(self):
        with redirect_stdout(io.StringIO()), patch('sys.stderr', new_callable=io.StringIO):
            with self.assertRaises(SystemExit):
                take_snapshot.build_parser().parse_args(['--strategy', 'fax'])


class TestMain(unittest.TestCase):
    """Test complete runs with a mocked vote source."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.snapshot_dir = os.path.join(self.temp_dir, 'snapshots')

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)
        console.debug_mode = False

    def run_main(self, votes, extra_args=()):
        source = Mock()
        source.fetch_votes.return_value = votes
        output = io.StringIO()
        with patch('take_snapshot.create_source', return_value=source) as mock_create:
            with redirect_stdout(output):
                exit_code = take_snapshot.main(['--snapshot-dir', self.snapshot_dir] + list(extra_args))
        return exit_code, output.getvalue(), mock_create

    def read_only_file(self):
        files = os.listdir(self.snapshot_dir)
        self.assertEqual(len(files), 1)
        with open(os.path.join(self.snapshot_dir, files[0]), 'r', encoding='utf-8') as f:
            return files[0], json.load(f)

    def test_run_writes_snapshot_and_confirms(self):
        exit_code, output, mock_create = self.run_main({"Jane Doe": 10, "John Smith": 8})

        self.assertEqual(exit_code, 0)
        name, data = self.read_only_file()
        self.assertIn(f"[Snapshot Saved] {os.path.join(self.snapshot_dir, name)}", output)
        self.assertEqual(data["baselineVotes"], {"Jane Doe": 10, "John Smith": 8})
        self.assertEqual(len(data["times"]), 1)
        mock_create.assert_called_once_with('http', poll_id=15909793, page_url=None,
                                            timeout=take_snapshot.RESULTS_TIMEOUT)

    def test_empty_fetch_still_records_timestamp(self):
        exit_code, _output, _mock = self.run_main({})
        self.assertEqual(exit_code, 0)
        _name, data = self.read_only_file()
        self.assertEqual(len(data["times"]), 1)
        self.assertEqual(data["voteIncrements"], {})

    def test_cadence_sets_capacity(self):
        with patch('take_snapshot.SnapshotStore') as mock_store:
            mock_store.return_value.append.return_value = 'snapshots/x.json'
            with patch('take_snapshot.create_source'), redirect_stdout(io.StringIO()):
                take_snapshot.main(['--cadence', '15'])
        self.assertEqual(mock_store.call_args[1]['max_entries'], 96)

    def test_max_entries_overrides_cadence(self):
        with patch('take_snapshot.SnapshotStore') as mock_store:
            mock_store.return_value.append.return_value = 'snapshots/x.json'
            with patch('take_snapshot.create_source'), redirect_stdout(io.StringIO()):
                take_snapshot.main(['--cadence', '15', '--max-entries', '10'])
        self.assertEqual(mock_store.call_args[1]['max_entries'], 10)

    def test_invalid_cadence_returns_error(self):
        output = io.StringIO()
        with redirect_stdout(output):
            exit_code = take_snapshot.main(['--cadence', '0', '--snapshot-dir', self.snapshot_dir])
        self.assertEqual(exit_code, 1)
        self.assertIn("Error:", output.getvalue())
        self.assertFalse(os.path.exists(self.snapshot_dir))

    def test_widget_without_page_url_returns_error(self):
        output = io.StringIO()
        with redirect_stdout(output):
            exit_code = take_snapshot.main(['--strategy', 'widget', '--snapshot-dir', self.snapshot_dir])
        self.assertEqual(exit_code, 1)
        self.assertIn("page URL", output.getvalue())

    def test_write_failure_propagates(self):
        source = Mock()
        source.fetch_votes.return_value = {"A": 1}
        with patch('take_snapshot.create_source', return_value=source), \
                patch('snapshot_store.SnapshotStore.save', side_effect=PermissionError("read-only")):
            with redirect_stdout(io.StringIO()):
                with self.assertRaises(PermissionError):
                    take_snapshot.main(['--snapshot-dir', self.snapshot_dir])

    def test_top_results_printed(self):
        _exit_code, output, _mock = self.run_main({"Jane Doe": 1200, "John Smith": 800}, ['--top', '1'])
        self.assertIn("TOP 1 CANDIDATES", output)
        self.assertIn("Jane Doe", output)
        self.assertNotIn("John Smith", output)

    def test_top_results_use_day_written_across_midnight(self):
        # First clock reading (the append) is before midnight, later ones after
        times = iter([datetime(2025, 8, 19, 23, 59, 59, 900000, tzinfo=timezone.utc)])

        def clock():
            return next(times, datetime(2025, 8, 20, 0, 0, 1, tzinfo=timezone.utc))

        def store_factory(**kwargs):
            return SnapshotStore(clock=clock, **kwargs)

        source = Mock()
        source.fetch_votes.return_value = {"Jane Doe": 1200}
        output = io.StringIO()
        with patch('take_snapshot.create_source', return_value=source), \
                patch('take_snapshot.SnapshotStore', side_effect=store_factory):
            with redirect_stdout(output):
                take_snapshot.main(['--snapshot-dir', self.snapshot_dir, '--top', '3'])

        text = output.getvalue()
        self.assertIn("2025-08-19.json", text)
        self.assertIn("Jane Doe", text)
        self.assertNotIn("No vote counts recorded yet.", text)

    def test_debug_flag_enables_debug_output(self):
        _exit_code, output, _mock = self.run_main({"A": 1}, ['--debug'])
        self.assertTrue(console.debug_mode)
        self.assertIn("Fetched 1 candidates", output)


class TestSummarizeHistory(unittest.TestCase):
    """Test the history summary used by --top."""

    def test_summary_sorted_with_gain(self):
        history = {
            "times": ["t1", "t2"],
            "voteIncrements": {"A": [10, 12], "B": [5], "C": [20, 30]},
            "baselineVotes": {"A": 10, "C": 20},
        }
        summary = take_snapshot.summarize_history(history)
        self.assertEqual(summary, [("C", 30, 10), ("A", 12, 2), ("B", 5, 5)])

    def test_summary_skips_empty_sequences(self):
        history = {"times": ["t1"], "voteIncrements": {"A": [], "B": [3]}, "baselineVotes": None}
        self.assertEqual(take_snapshot.summarize_history(history), [("B", 3, 3)])

    def test_print_top_results_empty(self):
        output = io.StringIO()
        with redirect_stdout(output):
            take_snapshot.print_top_results([], top_n=5)
        self.assertIn("No vote counts recorded yet.", output.getvalue())

    def test_print_top_results_format(self):
        output = io.StringIO()
        with redirect_stdout(output):
            take_snapshot.print_top_results([("Jane Doe", 12345, 45)], top_n=5)
        text = output.getvalue()
        self.assertIn("12,345", text)
        self.assertIn("+45 today", text)


class TestDebugPrint(unittest.TestCase):
    """Test debug_print functionality."""

    def tearDown(self):
        console.debug_mode = False

    def test_debug_print_enabled(self):
        console.debug_mode = True
        output = io.StringIO()
        with redirect_stdout(output):
            console.debug_print("Test debug message")
        self.assertIn("Test debug message", output.getvalue())

    def test_debug_print_disabled(self):
        console.debug_mode = False
        output = io.StringIO()
        with redirect_stdout(output):
            console.debug_print("Test debug message")
        self.assertEqual(output.getvalue(), "")

    def test_display_error_message(self):
        output = io.StringIO()
        with redirect_stdout(output):
            console.display_error_message("boom", source="fetchVotes")
        self.assertIn("[fetchVotes] ⚠ boom", output.getvalue())


if __name__ == '__main__':
    unittest.main(verbosity=2)
