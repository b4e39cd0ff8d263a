"""Error taxonomy shared by the resolver, scanners and supervisors.

Kill failures are not exceptions: they are reported per target as
``Outcome.FAILED`` results so one stubborn process never aborts a batch.
"""


class PortzapError(Exception):
    """Base class for every error portzap raises on purpose."""


class InvalidPortSpec(PortzapError, ValueError):
    """A user-supplied port, list or range could not be resolved."""


class ScanError(PortzapError):
    """The operating system could not be queried for listening sockets."""


class PermissionDenied(ScanError):
    def __init__(self, detail="cannot inspect processes owned by another user"):
        super().__init__(f"permission denied: {detail}. Try running with sudo")


class Unsupported(ScanError):
    def __init__(self, platform_name):
        self.platform_name = platform_name
        super().__init__(f"platform '{platform_name}' is not supported")


class WaitTimeout(PortzapError):
    def __init__(self, port, condition, timeout):
        self.port = port
        self.condition = condition
        self.timeout = timeout
        super().__init__(f"port {port} did not become {condition.label} within {timeout:g}s")


class Cancelled(PortzapError):
    """A long-running loop was stopped by an interrupt."""
