"""portzap: find, kill, watch and wait on processes bound to network ports."""

import os


def _get_app_version():
    v_file = os.path.join(os.path.dirname(__file__), "VERSION")
    try:
        with open(v_file) as f:
            return f.read().strip()
    except OSError:
        return "0.0.0"


__version__ = _get_app_version()

from .errors import (  # noqa: E402
    Cancelled, InvalidPortSpec, PermissionDenied, PortzapError, ScanError, Unsupported, WaitTimeout,
)
from .killer import kill_process, kill_processes  # noqa: E402
from .ports import PortSpec, parse_port, resolve_ports  # noqa: E402
from .process import (  # noqa: E402
    KillPolicy, KillResult, KillSignal, Outcome, ProcessInfo, Protocol, WaitCondition,
)
from .scanner import create_scanner  # noqa: E402
from .supervisor import CancellationToken, WaitSupervisor, WatchSupervisor  # noqa: E402
