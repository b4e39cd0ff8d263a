import argparse
import os
import sys

from . import __version__, commands
from .completions import SHELLS, generate
from .errors import InvalidPortSpec, PortzapError
from .log import debug_log, enable_stderr_echo
from .output import FORMATS
from .ports import parse_port, resolve_ports
from .process import KillPolicy, KillSignal, WaitCondition
from .scanner import create_scanner

PROG = "portzap"
COMMANDS = ("kill", "list", "watch", "wait", "free", "completions", "gui")

# top-level options that consume the following token
VALUE_OPTIONS = {"-s", "--signal", "-t", "--timeout", "--format"}

EXAMPLES = """\
Examples:
  portzap 3000              Kill process on port 3000
  portzap 3000 8080 9090    Kill processes on multiple ports
  portzap 3000-3010         Kill processes on port range
  portzap -i 3000           Interactive mode: choose which to kill
  portzap --dry-run 3000    Show what would be killed
  portzap list              List all listening ports
  portzap list 3000         Show what's on port 3000
  portzap watch 3000        Watch and auto-kill anything on port 3000
  portzap wait 5432 --until up --timeout 30
  portzap free 3000         Print the first free port from 3000 on
"""


# --------------------------------------------------
# Parser
# --------------------------------------------------
def _seconds(text):
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number of seconds: '{text}'")
    if value < 0:
        raise argparse.ArgumentTypeError("seconds must not be negative")
    return value


def _milliseconds(text):
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number of milliseconds: '{text}'")
    if value <= 0:
        raise argparse.ArgumentTypeError("poll interval must be positive")
    return value


def _format_parent():
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("--format", choices=FORMATS, default="table", help="Output format")
    return parent


def _policy_parent():
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("-s", "--signal", choices=[s.value for s in KillSignal], default="term",
                        help="Signal to send")
    parent.add_argument("--no-graceful", action="store_true",
                        help="Skip the graceful signal and send SIGKILL immediately")
    parent.add_argument("-t", "--timeout", type=_seconds, default=5.0,
                        help="Seconds to wait after the graceful signal before escalating to SIGKILL")
    parent.add_argument("--dry-run", action="store_true",
                        help="Show what would be killed without actually killing")
    return parent


def build_parser():
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="A fast, cross-platform port management tool. Kill, list, and watch processes on network ports.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"{PROG} {__version__}")
    parser.add_argument("--debug", action="store_true", help="Echo debug log lines to stderr")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    fmt = _format_parent()
    policy = _policy_parent()

    def add(name, text, parents=()):
        return sub.add_parser(name, help=text, description=text, parents=list(parents))

    p = add("kill", "Kill processes on ports (the default command)", [policy, fmt])
    p.add_argument("ports", nargs="+", metavar="PORTS", help="Ports, lists (3000,3001) or ranges (3000-3010)")
    p.add_argument("-i", "--interactive", action="store_true", help="Choose which processes to kill")

    p = add("list", "List processes on ports, or every listening port", [fmt])
    p.add_argument("ports", nargs="*", metavar="PORTS", help="Ports to inspect. If omitted, lists all listening ports.")

    p = add("watch", "Watch ports and auto-kill anything that binds to them", [policy, fmt])
    p.add_argument("ports", nargs="+", metavar="PORTS", help="Ports to watch. Supports ranges like 3000-3010.")
    p.add_argument("--poll", type=_milliseconds, default=1000, help="Poll interval in milliseconds")

    p = add("wait", "Wait until a port becomes free or occupied", [fmt])
    p.add_argument("port", metavar="PORT")
    p.add_argument("--until", choices=[c.value for c in WaitCondition], default="down",
                   help="down = wait for free, up = wait for occupied")
    p.add_argument("--timeout", type=_seconds, default=0.0, help="Seconds before giving up (0 = wait forever)")
    p.add_argument("--poll", type=_milliseconds, default=500, help="Poll interval in milliseconds")

    p = add("free", "Print the first free port at or above START", [fmt])
    p.add_argument("start", metavar="START")
    p.add_argument("--max", default="65535", metavar="PORT", help="Highest port to try")

    p = add("completions", "Print a shell completion script")
    p.add_argument("shell", choices=SHELLS)

    add("gui", "Interactive dashboard")
    return parser


def normalize_argv(argv):
    """Insert the implicit ``kill`` command for ``portzap 3000 8080``."""
    skip = False
    for token in argv:
        if skip:
            skip = False
            continue
        if token in ("-h", "--help", "--version"):
            return argv
        if token in VALUE_OPTIONS:
            skip = True
            continue
        if token.startswith("-"):
            continue
        if token in COMMANDS:
            return argv
        break
    else:
        # only flags: let argparse handle --debug alone, otherwise it is a kill
        if not [t for t in argv if t != "--debug"]:
            return argv
    leading = [t for t in argv if t == "--debug"]
    rest = [t for t in argv if t != "--debug"]
    return leading + ["kill"] + rest


def _policy_from_args(args):
    return KillPolicy(
        signal=KillSignal.from_name(args.signal),
        graceful=not args.no_graceful,
        timeout=args.timeout,
        dry_run=args.dry_run,
    )


# --------------------------------------------------
# Dispatch
# --------------------------------------------------
def dispatch(args, parser):
    if args.command == "completions":
        sys.stdout.write(generate(args.shell, parser, PROG))
        return commands.EXIT_OK

    if args.command == "gui":
        try:
            from . import tui
        except ImportError as e:
            print(f"error: the dashboard needs curses ({e})", file=sys.stderr)
            return commands.EXIT_FAILURE
        tui.run()
        return commands.EXIT_OK

    # resolve everything before touching the OS
    if args.command == "kill":
        ports = resolve_ports(args.ports)
        policy = _policy_from_args(args)
        return commands.run_kill(create_scanner(), ports, policy, args.interactive, args.format)
    if args.command == "list":
        ports = resolve_ports(args.ports) if args.ports else None
        return commands.run_list(create_scanner(), ports, args.format)
    if args.command == "watch":
        ports = resolve_ports(args.ports)
        policy = _policy_from_args(args)
        return commands.run_watch(create_scanner(), ports, policy, args.poll, args.format)
    if args.command == "wait":
        port = parse_port(args.port)
        return commands.run_wait(create_scanner(), port, WaitCondition(args.until),
                                 args.timeout, args.poll, args.format)
    if args.command == "free":
        start = parse_port(args.start)
        end = parse_port(args.max)
        if start > end:
            raise InvalidPortSpec(f"start ({start}) > max ({end})")
        return commands.run_free(create_scanner(), start, end, args.format)
    parser.print_help(sys.stderr)
    return commands.EXIT_USAGE


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    if not argv:
        parser.print_help(sys.stderr)
        return commands.EXIT_USAGE

    args = parser.parse_args(normalize_argv(argv))
    if args.debug or os.environ.get("PORTZAP_DEBUG"):
        enable_stderr_echo()
    debug_log(f"CLI: {PROG} {' '.join(argv)}")

    try:
        return dispatch(args, parser)
    except InvalidPortSpec as e:
        print(f"error: {e}", file=sys.stderr)
        return commands.EXIT_USAGE
    except PortzapError as e:
        debug_log(f"CLI: {type(e).__name__}: {e}")
        print(f"error: {e}", file=sys.stderr)
        return commands.EXIT_FAILURE
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return commands.EXIT_INTERRUPTED


def cli_entry():
    """terminal command 'portzap' entry point"""
    sys.exit(main())


if __name__ == "__main__":
    cli_entry()
