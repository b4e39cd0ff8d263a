"""Graceful-then-forced termination.

Each target moves through::

    Pending -> SignalSent -> (Exited | StillAlive) -> [Escalated ->] Exited | TimedOut

and ends with exactly one KillResult. Liveness goes through psutil, which
also catches pid reuse: a recycled pid has a different create time and
counts as gone.
"""

import time

import psutil

from .log import debug_log
from .process import KillResult, KillSignal, Outcome

PERMISSION_HINT = "permission denied. Try running with sudo"
CANCELLED = "cancelled"


def _is_gone(proc):
    try:
        if not proc.is_running():
            return True
        return proc.status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True
    except psutil.AccessDenied:
        # still there, just not ours to inspect
        return False


def _cancelled(token):
    return token is not None and token.cancelled


def _send(proc, kill_signal):
    if kill_signal is KillSignal.KILL:
        proc.kill()
    else:
        proc.send_signal(kill_signal.native())


def wait_until_gone(proc, timeout, poll_interval, token=None):
    """Poll until the process exits or ``timeout`` seconds pass. True if it exited.

    A cancelled ``token`` ends the wait at the next liveness check.
    """
    deadline = time.monotonic() + timeout
    while True:
        if _is_gone(proc):
            return True
        if _cancelled(token):
            return False
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        time.sleep(min(poll_interval, remaining))


def kill_process(process, policy, token=None):
    """Drive one ProcessInfo through the termination state machine.

    Once ``token`` is cancelled no further signal is sent: the target is
    reported as failed("cancelled") unless it exited in the meantime.
    """
    if policy.dry_run:
        debug_log(f"KILL: dry-run, skipping {process}")
        return KillResult(process, Outcome.SKIPPED, f"{policy.signal} (dry-run)")

    first_signal = policy.signal if policy.graceful else KillSignal.KILL
    try:
        proc = psutil.Process(process.pid)
    except psutil.NoSuchProcess:
        debug_log(f"KILL: {process} already gone before signalling")
        return KillResult(process, Outcome.ALREADY_GONE)

    if _is_gone(proc):
        return KillResult(process, Outcome.ALREADY_GONE)

    try:
        _send(proc, first_signal)
    except psutil.NoSuchProcess:
        debug_log(f"KILL: {process} exited before {first_signal} was delivered")
        return KillResult(process, Outcome.ALREADY_GONE)
    except psutil.AccessDenied:
        debug_log(f"KILL: {first_signal} to {process} denied")
        return KillResult(process, Outcome.FAILED, str(first_signal), PERMISSION_HINT)
    except OSError as e:
        return KillResult(process, Outcome.FAILED, str(first_signal), str(e))
    debug_log(f"KILL: sent {first_signal} to {process}")

    if first_signal is KillSignal.KILL:
        # nothing left to escalate to
        if wait_until_gone(proc, policy.escalation_timeout, policy.poll_interval, token):
            return KillResult(process, Outcome.KILLED_FORCEFULLY, str(first_signal))
        if _cancelled(token):
            return KillResult(process, Outcome.FAILED, str(first_signal), CANCELLED)
        debug_log(f"KILL: {process} survived {first_signal}")
        return KillResult(process, Outcome.FAILED, str(first_signal), "timeout")

    if wait_until_gone(proc, policy.timeout, policy.poll_interval, token):
        return KillResult(process, Outcome.KILLED_GRACEFULLY, str(first_signal))
    if _cancelled(token):
        debug_log(f"KILL: cancelled while waiting for {process}, not escalating")
        return KillResult(process, Outcome.FAILED, str(first_signal), CANCELLED)

    return _escalate(proc, process, policy, first_signal, token)


def _escalate(proc, process, policy, first_signal, token=None):
    sent = f"{first_signal} -> {KillSignal.KILL}"
    debug_log(f"KILL: {process} still alive after {policy.timeout:g}s, escalating to {KillSignal.KILL}")
    try:
        _send(proc, KillSignal.KILL)
    except psutil.NoSuchProcess:
        # exited right at the end of the graceful window
        return KillResult(process, Outcome.KILLED_GRACEFULLY, str(first_signal))
    except psutil.AccessDenied:
        return KillResult(process, Outcome.FAILED, sent, PERMISSION_HINT)
    except OSError as e:
        return KillResult(process, Outcome.FAILED, sent, str(e))

    if wait_until_gone(proc, policy.escalation_timeout, policy.poll_interval, token):
        return KillResult(process, Outcome.KILLED_FORCEFULLY, sent)
    if _cancelled(token):
        return KillResult(process, Outcome.FAILED, sent, CANCELLED)
    debug_log(f"KILL: {process} still alive {policy.escalation_timeout:g}s after {KillSignal.KILL}")
    return KillResult(process, Outcome.FAILED, sent, "timeout")


def kill_processes(processes, policy, token=None):
    """Kill targets one after another, in order, one result per target.

    A failure never stops the batch. A pid bound to several ports is
    signalled once; its other records share that outcome. Once ``token`` is
    cancelled, targets not yet signalled are reported as failed without being
    touched.
    """
    results = []
    by_pid = {}
    for process in processes:
        if process.pid in by_pid:
            results.append(by_pid[process.pid]._replace(process=process))
            continue
        if _cancelled(token):
            results.append(KillResult(process, Outcome.FAILED, "", CANCELLED))
            continue
        result = kill_process(process, policy, token)
        by_pid[process.pid] = result
        results.append(result)
    return results
