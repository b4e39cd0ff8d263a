"""Port scanner contract and platform selection.

Every platform strategy answers the same question: which processes are
listening on these ports right now? Nothing is cached; each ``scan`` is a
fresh, self-contained query.
"""

import sys

import psutil

from .errors import Unsupported
from .log import debug_log
from .process import ProcessInfo

UNKNOWN_NAME = "<unknown>"


class PortScanner:
    """Base class for platform strategies.

    Subclasses implement ``_listening(ports)`` returning raw
    ``(pid, port, protocol, address)`` tuples; filtering, de-duplication,
    metadata and ordering are shared here.
    """

    name = "base"

    def scan(self, ports=None):
        """Return ProcessInfo records for processes listening on ``ports``.

        ``None`` or an empty PortSpec means every listening port.
        """
        wanted = set(ports) if ports else None
        sockets = self._listening(ports or None)

        seen = set()
        records = []
        meta = {}
        for pid, port, protocol, address in sockets:
            if wanted is not None and port not in wanted:
                continue
            key = (pid, port, protocol)
            if key in seen:
                continue
            seen.add(key)
            if pid not in meta:
                meta[pid] = describe_process(pid)
            name, command, user = meta[pid]
            records.append(ProcessInfo(pid, name, port, protocol, command, user, address))

        return sort_records(records, ports)

    def _listening(self, ports):
        raise NotImplementedError


class UnsupportedScanner(PortScanner):
    """Stand-in for platforms without a strategy. Fails closed."""

    name = "unsupported"

    def __init__(self, platform_name=None):
        self.platform_name = platform_name or sys.platform

    def scan(self, ports=None):
        raise Unsupported(self.platform_name)


def sort_records(records, ports=None):
    """Order by the caller's port order (ascending port for 'all'), then pid."""
    if ports:
        rank = {port: i for i, port in enumerate(ports)}
        return sorted(records, key=lambda r: (rank.get(r.port, len(rank)), r.pid, r.protocol.value))
    return sorted(records, key=lambda r: (r.port, r.pid, r.protocol.value))


def describe_process(pid):
    """Best-effort (name, command line, user) for a pid."""
    try:
        proc = psutil.Process(pid)
        with proc.oneshot():
            name = proc.name() or UNKNOWN_NAME
            try:
                cmdline = proc.cmdline()
            except (psutil.AccessDenied, psutil.ZombieProcess):
                cmdline = []
            try:
                user = proc.username()
            except (psutil.AccessDenied, KeyError):
                user = None
    except psutil.NoSuchProcess:
        return UNKNOWN_NAME, None, None
    except psutil.AccessDenied:
        return UNKNOWN_NAME, None, None
    command = " ".join(cmdline) if cmdline else None
    return name, command, user


def create_scanner(platform_name=None):
    """Pick the scanner for the running OS. Called once per invocation."""
    platform_name = platform_name or sys.platform
    if platform_name.startswith("linux"):
        from .platform.linux import LinuxScanner
        scanner = LinuxScanner()
    elif platform_name == "darwin":
        from .platform.macos import MacosScanner
        scanner = MacosScanner()
    elif platform_name == "win32":
        from .platform.windows import WindowsScanner
        scanner = WindowsScanner()
    else:
        scanner = UnsupportedScanner(platform_name)
    debug_log(f"SCANNER: using {scanner.name} strategy on {platform_name}")
    return scanner
