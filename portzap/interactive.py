import sys

from .output import truncate_command


def format_choice(index, p):
    cmd = f" ({truncate_command(p.command, 60)})" if p.command else ""
    return f"  [{index}] PID {p.pid:>6} | {p.port:>5}/{p.protocol} | {p.name}{cmd}"


def parse_selection(answer, count):
    """Turn ``"1,3"``, ``"2-4"``, ``"a"`` or ``""`` into 0-based indices."""
    answer = answer.strip().lower()
    if answer in ("", "a", "all", "y", "yes"):
        return list(range(count))
    if answer in ("n", "none", "no", "q"):
        return []
    picked = []
    for item in answer.replace(" ", ",").split(","):
        if not item:
            continue
        start, sep, end = item.partition("-")
        if not start.isdigit() or (sep and not end.isdigit()):
            raise ValueError(f"not a selection: '{item}'")
        low = int(start)
        high = int(end) if sep else low
        if low < 1 or high > count or low > high:
            raise ValueError(f"selection '{item}' is out of range 1-{count}")
        for i in range(low - 1, high):
            if i not in picked:
                picked.append(i)
    return picked


def select_processes(processes, stdin=None, stderr=None):
    """Let the user pick which processes to kill. Everything is pre-selected."""
    if not processes:
        return []
    stdin = stdin or sys.stdin
    stderr = stderr or sys.stderr

    print("Select processes to kill:", file=stderr)
    for i, p in enumerate(processes, 1):
        print(format_choice(i, p), file=stderr)

    while True:
        stderr.write("Numbers or ranges (e.g. 1,3-4), Enter = all, n = none: ")
        stderr.flush()
        try:
            answer = stdin.readline()
        except KeyboardInterrupt:
            print("\nSelection cancelled.", file=stderr)
            return []
        if not answer:
            print("\nSelection cancelled.", file=stderr)
            return []
        try:
            indices = parse_selection(answer, len(processes))
        except ValueError as e:
            print(f"  {e}", file=stderr)
            continue
        return [processes[i] for i in indices]
