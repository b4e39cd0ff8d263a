"""Rendering of scan and kill results.

Machine-readable data (table rows, json, plain) goes to stdout, human
messages go to stderr, so ``portzap list --format json | jq`` never sees
status text.
"""

import json
import sys

from .process import Outcome

FORMATS = ("table", "json", "plain")
MAX_COMMAND_WIDTH = 80

OUTCOME_ICONS = {
    Outcome.KILLED_GRACEFULLY: "✅",
    Outcome.KILLED_FORCEFULLY: "✅",
    Outcome.ALREADY_GONE: "👻",
    Outcome.SKIPPED: "🔎",
    Outcome.FAILED: "❌",
}


def info(msg):
    print(msg, file=sys.stderr)


def truncate_command(cmd, width=MAX_COMMAND_WIDTH):
    if cmd is None:
        return "-"
    return cmd if len(cmd) <= width else cmd[:width - 3] + "..."


def _emit_json(data, out):
    out.write(json.dumps(data, indent=2) + "\n")


# --------------------------------------------------
# Process listings
# --------------------------------------------------
def render_table(processes):
    headers = ["PID", "NAME", "PORT", "PROTO", "USER", "COMMAND"]
    rows = [
        [str(p.pid), p.name, str(p.port), str(p.protocol), p.user or "-", truncate_command(p.command)]
        for p in processes
    ]
    widths = [len(h) for h in headers]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]

    def line(left, mid, right):
        return left + mid.join("─" * (w + 2) for w in widths) + right

    def fmt(cells):
        return "│" + "│".join(f" {c.ljust(w)} " for c, w in zip(cells, widths)) + "│"

    lines = [line("┌", "┬", "┐"), fmt(headers), line("├", "┼", "┤")]
    lines.extend(fmt(row) for row in rows)
    lines.append(line("└", "┴", "┘"))
    return "\n".join(lines)


def print_processes(processes, fmt="table", out=None):
    out = out or sys.stdout
    if fmt == "json":
        _emit_json([p.as_dict() for p in processes], out)
    elif fmt == "plain":
        for p in processes:
            out.write(f"{p.pid}\t{p.name}\t{p.port}\t{p.protocol}\n")
    elif processes:
        out.write(render_table(processes) + "\n")


def print_no_process(port):
    info(f"No processes found on port {port}")


# --------------------------------------------------
# Kill results
# --------------------------------------------------
def describe_result(result):
    p = result.process
    icon = OUTCOME_ICONS[result.outcome]
    target = f"{p.name} (PID {p.pid}) on port {p.port}/{p.protocol}"
    if result.outcome is Outcome.KILLED_GRACEFULLY:
        return f"{icon} Killed {target} [{result.signal_sent}]"
    if result.outcome is Outcome.KILLED_FORCEFULLY:
        return f"{icon} Force killed {target} [{result.signal_sent}]"
    if result.outcome is Outcome.ALREADY_GONE:
        return f"{icon} {target} had already exited"
    if result.outcome is Outcome.SKIPPED:
        return f"{icon} Would kill {target} [{result.signal_sent}]"
    return f"{icon} Failed to kill {target}: {result.reason or 'unknown error'}"


def print_kill_results(results, fmt="table", out=None):
    if fmt == "json":
        _emit_json([r.as_dict() for r in results], out or sys.stdout)
        return
    for result in results:
        info(describe_result(result))


# --------------------------------------------------
# free / wait
# --------------------------------------------------
def print_free_port(port, start, end, fmt="table", out=None):
    out = out or sys.stdout
    if fmt == "json":
        if port is None:
            _emit_json({"port": None, "error": f"no free port found in range {start}..={end}"}, out)
        else:
            _emit_json({"port": port}, out)
    elif port is None:
        info(f"No free port found in range {start}..={end}")
    else:
        out.write(f"{port}\n")


def print_wait_status(port, status, fmt="table", out=None, expected=None):
    if fmt == "json":
        _emit_json({"port": port, "status": status}, out or sys.stdout)
    elif status == "timeout":
        info(f"⏱️ Timeout: port {port} did not become {expected or 'ready'}")
    elif status == "interrupted":
        info("\nInterrupted.")
    else:
        info(f"Port {port} is {status}")


def print_watch_event(result, fmt="table", out=None):
    """One kill from watch mode. JSON is emitted as one object per line."""
    if fmt == "json":
        out = out or sys.stdout
        out.write(json.dumps(result.as_dict()) + "\n")
        out.flush()
    else:
        info(describe_result(result))
