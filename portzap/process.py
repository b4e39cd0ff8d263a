"""Data types passed between the scanner, the killer and the supervisors."""

import enum
import signal
import sys
from collections import namedtuple


# --------------------------------------------------
# Process records
# --------------------------------------------------
class Protocol(enum.Enum):
    TCP = "tcp"
    UDP = "udp"

    def __str__(self):
        return self.value.upper()


_ProcessInfoBase = namedtuple(
    "ProcessInfo",
    ["pid", "name", "port", "protocol", "command", "user", "address"],
)


class ProcessInfo(_ProcessInfoBase):
    """One process bound to one port, as seen by a single scan.

    Records are snapshots: they are never updated in place, every re-check
    goes back to the scanner.
    """

    __slots__ = ()

    def __new__(cls, pid, name, port, protocol, command=None, user=None, address=None):
        return super().__new__(cls, pid, name, port, protocol, command, user, address)

    @property
    def key(self):
        return (self.pid, self.port, self.protocol)

    def as_dict(self):
        data = {
            "pid": self.pid,
            "name": self.name,
            "port": self.port,
            "protocol": self.protocol.value,
        }
        for field in ("command", "user", "address"):
            value = getattr(self, field)
            if value is not None:
                data[field] = value
        return data

    def __str__(self):
        return f"PID {self.pid} ({self.name}) on port {self.port}/{self.protocol}"


# --------------------------------------------------
# Signals & kill policy
# --------------------------------------------------
class KillSignal(enum.Enum):
    TERM = "term"
    KILL = "kill"
    INT = "int"
    HUP = "hup"

    def __str__(self):
        return "SIG" + self.name

    @classmethod
    def from_name(cls, name):
        return cls(name.lower())

    def native(self):
        """Closest signal the running platform can deliver."""
        if sys.platform == "win32":
            if self is KillSignal.INT:
                return getattr(signal, "CTRL_BREAK_EVENT", signal.SIGTERM)
            # psutil turns SIGTERM into TerminateProcess; KILL goes through Process.kill()
            return signal.SIGTERM
        return {
            KillSignal.TERM: signal.SIGTERM,
            KillSignal.KILL: signal.SIGKILL,
            KillSignal.INT: signal.SIGINT,
            KillSignal.HUP: signal.SIGHUP,
        }[self]


DEFAULT_KILL_TIMEOUT = 5.0
DEFAULT_ESCALATION_TIMEOUT = 2.0
DEFAULT_LIVENESS_POLL = 0.1

_KillPolicyBase = namedtuple(
    "KillPolicy",
    ["signal", "graceful", "timeout", "dry_run", "escalation_timeout", "poll_interval"],
)


class KillPolicy(_KillPolicyBase):
    """How to terminate targets.

    ``timeout`` bounds the wait after the first signal, ``escalation_timeout``
    bounds the wait after SIGKILL. ``poll_interval`` is the liveness check
    period inside both windows.
    """

    __slots__ = ()

    def __new__(
        cls,
        signal=KillSignal.TERM,
        graceful=True,
        timeout=DEFAULT_KILL_TIMEOUT,
        dry_run=False,
        escalation_timeout=DEFAULT_ESCALATION_TIMEOUT,
        poll_interval=DEFAULT_LIVENESS_POLL,
    ):
        if timeout < 0 or escalation_timeout < 0:
            raise ValueError("kill timeouts must not be negative")
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        return super().__new__(cls, signal, graceful, timeout, dry_run, escalation_timeout, poll_interval)


# --------------------------------------------------
# Kill results
# --------------------------------------------------
class Outcome(enum.Enum):
    KILLED_GRACEFULLY = "killed-gracefully"
    KILLED_FORCEFULLY = "killed-forcefully"
    ALREADY_GONE = "already-gone"
    SKIPPED = "skipped"
    FAILED = "failed"


_KillResultBase = namedtuple("KillResult", ["process", "outcome", "signal_sent", "reason"])


class KillResult(_KillResultBase):
    __slots__ = ()

    def __new__(cls, process, outcome, signal_sent="", reason=None):
        return super().__new__(cls, process, outcome, signal_sent, reason)

    @property
    def success(self):
        return self.outcome is not Outcome.FAILED

    def as_dict(self):
        data = {
            "process": self.process.as_dict(),
            "outcome": self.outcome.value,
            "success": self.success,
            "signal_sent": self.signal_sent,
        }
        if self.reason is not None:
            data["error"] = self.reason
        return data


def any_failed(results):
    return any(not r.success for r in results)


# --------------------------------------------------
# Wait conditions
# --------------------------------------------------
class WaitCondition(enum.Enum):
    FREE = "down"
    OCCUPIED = "up"

    @property
    def label(self):
        return "free" if self is WaitCondition.FREE else "occupied"

    def is_met(self, occupants):
        occupied = bool(occupants)
        return occupied if self is WaitCondition.OCCUPIED else not occupied
