"""
Console output helpers shared by the snapshot tool.

All user-facing output goes through plain print() calls. Debug output is
only emitted when debug_mode is enabled (set from the --debug flag), and
warnings/errors are prefixed with a timestamp and a warning marker so they
stand out in scheduler logs.
"""

import traceback
from datetime import datetime

# Global flag, toggled by take_snapshot.main() from the --debug argument
debug_mode = False


def _timestamp(with_millis=False):
    if with_millis:
        return datetime.now().strftime('[%H:%M:%S.%f')[:-3] + ']'
    return datetime.now().strftime('[%H:%M:%S]')


def debug_print(*args, **kwargs):
    """
    Print debug messages only if debug mode is enabled, with timestamps.

    Messages are prefixed with a timestamp in [HH:MM:SS.mmm] format. When
    debug mode is disabled, all debug messages are silently ignored.

    Args:
        *args: Variable positional arguments passed to print()
        **kwargs: Variable keyword arguments passed to print()
    """
    if debug_mode:
        print(_timestamp(with_millis=True), *args, **kwargs)


def display_error_message(message, source=None):
    """
    Display an error or warning message.

    Args:
        message (str): Error/warning message to display
        source (str, optional): Name of the component reporting the message
    """
    if source:
        line = f"{_timestamp()} [{source}] ⚠ {message}"
    else:
        line = f"{_timestamp()} ⚠ {message}"
    print(line, flush=True)


def debug_traceback():
    """Print the current exception's traceback when debug mode is on."""
    if debug_mode:
        traceback.print_exc()
