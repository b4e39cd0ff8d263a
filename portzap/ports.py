"""Resolve user-supplied port targets into a canonical PortSpec.

Accepted forms, freely mixed::

    "3000"            single port
    "3000-3010"       inclusive range
    "3000,8080,9000"  comma list (items may themselves be ranges)

Resolution is pure: nothing here touches the network or the process table.
"""

from .errors import InvalidPortSpec

MIN_PORT = 1
MAX_PORT = 65535


class PortSpec(tuple):
    """Ordered, de-duplicated ports. Order is first appearance."""

    def __new__(cls, ports=()):
        seen = set()
        ordered = []
        for port in ports:
            if port in seen:
                continue
            _check_range(port, str(port))
            seen.add(port)
            ordered.append(port)
        return super().__new__(cls, ordered)

    def __repr__(self):
        return f"PortSpec({list(self)!r})"

    def describe(self):
        """Compact human form, collapsing consecutive runs: ``3000-3002, 8080``."""
        parts = []
        run_start = prev = None
        for port in self:
            if prev is not None and port == prev + 1:
                prev = port
                continue
            if run_start is not None:
                parts.append(_run_text(run_start, prev))
            run_start = prev = port
        if run_start is not None:
            parts.append(_run_text(run_start, prev))
        return ", ".join(parts)


def _run_text(start, end):
    return str(start) if start == end else f"{start}-{end}"


def _check_range(port, token):
    if port < MIN_PORT or port > MAX_PORT:
        if port == 0:
            raise InvalidPortSpec(f"port 0 is not valid (in '{token}')")
        raise InvalidPortSpec(f"port {port} is not in valid range ({MIN_PORT}-{MAX_PORT})")


def parse_port(text):
    """Parse exactly one port number."""
    raw = str(text).strip()
    if not raw.isdigit():
        raise InvalidPortSpec(f"invalid port: '{text}'")
    port = int(raw)
    _check_range(port, raw)
    return port


def _expand_item(item):
    if "-" in item:
        start_str, _, end_str = item.partition("-")
        start_str, end_str = start_str.strip(), end_str.strip()
        if not start_str.isdigit() or not end_str.isdigit():
            raise InvalidPortSpec(f"invalid port range: '{item}'")
        start, end = int(start_str), int(end_str)
        if start > end:
            raise InvalidPortSpec(f"invalid port range: start ({start}) > end ({end})")
        _check_range(start, item)
        _check_range(end, item)
        return range(start, end + 1)
    return [parse_port(item)]


def resolve_ports(tokens):
    """Turn one token or a list of tokens into a PortSpec.

    Raises InvalidPortSpec on non-numeric input, inverted ranges, 0, values
    above 65535, or when no port was given at all.
    """
    if isinstance(tokens, (str, int)):
        tokens = [tokens]

    ports = []
    for token in tokens:
        for item in str(token).split(","):
            item = item.strip()
            if not item:
                continue
            ports.extend(_expand_item(item))

    if not ports:
        raise InvalidPortSpec("no ports given")
    return PortSpec(ports)
