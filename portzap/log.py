import os
import sys
import time

# Debug logging
DEBUG_LOG_PATH = os.environ.get(
    "PORTZAP_DEBUG_LOG",
    os.path.expanduser("~/.config/portzap/debug.log"),
)

# set by --debug; mirrors every line to stderr
ECHO_TO_STDERR = False


def enable_stderr_echo(enabled=True):
    global ECHO_TO_STDERR
    ECHO_TO_STDERR = enabled


def debug_log(msg):
    """Write a timestamped message to the debug log."""
    line = f"[{time.strftime('%Y-%m-%d %H:%M:%S')}] {msg}"
    if ECHO_TO_STDERR:
        print(line, file=sys.stderr)
    try:
        os.makedirs(os.path.dirname(DEBUG_LOG_PATH), exist_ok=True)
        with open(DEBUG_LOG_PATH, "a") as f:
            f.write(line + "\n")
    except OSError:
        pass
