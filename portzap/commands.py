"""One function per command. Each returns the process exit status."""

from . import output
from .errors import Cancelled, PermissionDenied, WaitTimeout
from .interactive import select_processes
from .killer import kill_processes
from .log import debug_log
from .ports import PortSpec
from .process import any_failed
from .supervisor import (
    CancellationToken, WaitSupervisor, WatchSupervisor,
    install_signal_handlers, restore_signal_handlers,
)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _by_port(processes):
    grouped = {}
    for p in processes:
        grouped.setdefault(p.port, []).append(p)
    return grouped


# --------------------------------------------------
# kill (default command)
# --------------------------------------------------
def run_kill(scanner, ports, policy, interactive=False, fmt="table"):
    found = scanner.scan(ports)
    grouped = _by_port(found)
    for port in ports:
        if port not in grouped:
            output.print_no_process(port)

    targets = found
    if interactive and targets:
        if fmt == "table":
            output.print_processes(targets, "table")
        targets = select_processes(targets)

    results = kill_processes(targets, policy)
    if results or fmt == "json":
        output.print_kill_results(results, fmt)
    failed = any_failed(results)
    debug_log(f"CMD-KILL: {len(results)} target(s) on {ports.describe()}, failed={failed}")
    return EXIT_FAILURE if failed else EXIT_OK


# --------------------------------------------------
# list
# --------------------------------------------------
def run_list(scanner, ports=None, fmt="table"):
    found = scanner.scan(ports)
    if ports:
        grouped = _by_port(found)
        for port in ports:
            if port not in grouped:
                output.print_no_process(port)
    elif not found:
        output.info("No listening processes found")
    if found or fmt == "json":
        output.print_processes(found, fmt)
    return EXIT_OK


# --------------------------------------------------
# watch
# --------------------------------------------------
def run_watch(scanner, ports, policy, poll_ms=1000, fmt="table", token=None):
    token = token or CancellationToken()
    previous = install_signal_handlers(token)
    plural = "s" if len(ports) > 1 else ""
    output.info(f"Watching port{plural} {ports.describe()} (poll every {poll_ms}ms, Ctrl+C to stop)")
    try:
        supervisor = WatchSupervisor(
            ports, policy, scanner, token,
            poll_interval=poll_ms / 1000.0,
            on_result=lambda result: output.print_watch_event(result, fmt),
        )
        supervisor.run()
    finally:
        restore_signal_handlers(previous)
    output.info("\nWatch mode stopped.")
    return EXIT_OK


# --------------------------------------------------
# wait
# --------------------------------------------------
def run_wait(scanner, port, condition, timeout=0, poll_ms=500, fmt="table", token=None):
    token = token or CancellationToken()
    timeout_text = "infinite" if not timeout else f"{timeout:g}s"
    output.info(
        f"Waiting for port {port} to become {condition.label} "
        f"(timeout: {timeout_text}, poll: {poll_ms}ms)"
    )
    previous = install_signal_handlers(token)
    try:
        WaitSupervisor(port, condition, scanner, token, timeout=timeout, poll_interval=poll_ms / 1000.0).run()
    except WaitTimeout:
        output.print_wait_status(port, "timeout", fmt, expected=condition.label)
        return EXIT_FAILURE
    except Cancelled:
        output.print_wait_status(port, "interrupted", fmt)
        return EXIT_INTERRUPTED
    finally:
        restore_signal_handlers(previous)
    output.print_wait_status(port, condition.label, fmt)
    return EXIT_OK


# --------------------------------------------------
# free
# --------------------------------------------------
def find_free_port(scanner, start, end):
    """First port in ``start..=end`` nobody is listening on, or None."""
    busy = {p.port for p in scanner.scan()}
    for port in range(start, end + 1):
        if port in busy:
            continue
        # the bulk scan skips sockets whose owner we may not inspect; confirm
        try:
            if scanner.scan(PortSpec([port])):
                continue
        except PermissionDenied:
            continue
        return port
    return None


def run_free(scanner, start, end=65535, fmt="table"):
    port = find_free_port(scanner, start, end)
    output.print_free_port(port, start, end, fmt)
    return EXIT_OK if port is not None else EXIT_FAILURE
