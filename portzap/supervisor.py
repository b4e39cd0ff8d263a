"""Long-running polling loops: watch-and-kill and wait-for-state.

Both loops look at a CancellationToken immediately before every scan and
immediately after every sleep, so an interrupt is honoured within one poll
interval.
"""

import signal
import time

from .errors import Cancelled, WaitTimeout
from .killer import CANCELLED, kill_processes
from .log import debug_log
from .ports import PortSpec


# --------------------------------------------------
# Cancellation
# --------------------------------------------------
class CancellationToken:
    """One-way flag set from a signal handler and polled by the loops.

    Setting it is a single attribute store: no locks on the signal path.
    """

    def __init__(self):
        self._cancelled = False
        self.reason = None

    @property
    def cancelled(self):
        return self._cancelled

    def cancel(self, reason="cancelled"):
        if not self._cancelled:
            self.reason = reason
        self._cancelled = True


def _interrupt_signals():
    sigs = [signal.SIGINT, signal.SIGTERM]
    if hasattr(signal, "SIGBREAK"):
        sigs.append(signal.SIGBREAK)
    return sigs


def install_signal_handlers(token):
    """Route SIGINT/SIGTERM to ``token``. Returns the previous handlers."""
    previous = {}

    def handle_interrupt(sig, frame):
        token.cancel(signal.Signals(sig).name)

    for sig in _interrupt_signals():
        previous[sig] = signal.signal(sig, handle_interrupt)
    return previous


def restore_signal_handlers(previous):
    for sig, handler in previous.items():
        signal.signal(sig, handler)


# --------------------------------------------------
# Watch: kill whatever newly binds to the ports
# --------------------------------------------------
class WatchSupervisor:
    def __init__(self, ports, policy, scanner, token, poll_interval=1.0, on_result=None):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.ports = PortSpec(ports)
        self.policy = policy
        self.scanner = scanner
        self.token = token
        self.poll_interval = poll_interval
        self.on_result = on_result
        self.previous = set()  # occupant keys from the last scan
        self.kill_invocations = 0

    def stop(self):
        self.token.cancel("stopped")

    def poll_once(self):
        """One iteration: scan, kill newcomers, remember what was seen."""
        current = self.scanner.scan(self.ports)
        newcomers = [p for p in current if p.key not in self.previous]
        if newcomers:
            debug_log(f"WATCH: {len(newcomers)} new occupant(s): {', '.join(str(p) for p in newcomers)}")
            self.kill_invocations += 1
            results = kill_processes(newcomers, self.policy, self.token)
            for result in results:
                if result.reason == CANCELLED:
                    # stopped by the interrupt, not a kill failure
                    debug_log(f"WATCH: left {result.process} alone after cancellation")
                    continue
                if self.on_result:
                    self.on_result(result)
        # replaced even when a kill failed, so a survivor is not hit every tick
        self.previous = {p.key for p in current}
        return newcomers

    def run(self):
        """Loop until the token is cancelled. Returns the number of kill rounds."""
        debug_log(f"WATCH: started on {self.ports.describe()} every {self.poll_interval:g}s")
        while not self.token.cancelled:
            self.poll_once()
            time.sleep(self.poll_interval)
        debug_log(f"WATCH: stopped ({self.token.reason}) after {self.kill_invocations} kill round(s)")
        return self.kill_invocations


# --------------------------------------------------
# Wait: block until a port is free / occupied
# --------------------------------------------------
class WaitSupervisor:
    def __init__(self, port, condition, scanner, token, timeout=0, poll_interval=0.5):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if timeout < 0:
            raise ValueError("timeout must not be negative")
        self.port = port
        self.condition = condition
        self.scanner = scanner
        self.token = token
        self.timeout = timeout
        self.poll_interval = poll_interval

    def run(self):
        """Return the occupants once the condition holds.

        Raises WaitTimeout when a finite timeout elapses first and Cancelled
        when the token is set.
        """
        deadline = time.monotonic() + self.timeout if self.timeout else None
        ports = PortSpec([self.port])
        debug_log(f"WAIT: port {self.port} until {self.condition.label}, timeout {self.timeout:g}s")
        while True:
            if self.token.cancelled:
                raise Cancelled(f"wait for port {self.port} interrupted")
            occupants = self.scanner.scan(ports)
            if self.condition.is_met(occupants):
                debug_log(f"WAIT: port {self.port} is {self.condition.label}")
                return occupants

            delay = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise WaitTimeout(self.port, self.condition, self.timeout)
                delay = min(delay, remaining)
            time.sleep(delay)
