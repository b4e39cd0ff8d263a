import subprocess

from ..errors import ScanError
from ..log import debug_log
from ..process import Protocol
from ..scanner import PortScanner

LSOF_TIMEOUT = 15
# above this many ports a port list on the lsof command line stops paying off
MAX_LSOF_PORT_FILTER = 64


def lsof_command(ports=None):
    cmd = ["lsof", "-nP", "-FpPn"]
    if ports and len(ports) <= MAX_LSOF_PORT_FILTER:
        joined = ",".join(str(p) for p in ports)
        cmd += [f"-iTCP:{joined}", "-sTCP:LISTEN", f"-iUDP:{joined}"]
    else:
        cmd += ["-iTCP", "-sTCP:LISTEN", "-iUDP"]
    return cmd


def parse_lsof_fields(output):
    """Parse ``lsof -F pPn`` output into ``(pid, port, protocol, address)`` tuples."""
    results = []
    pid = None
    protocol = None
    for line in output.splitlines():
        if not line:
            continue
        tag, value = line[0], line[1:]
        if tag == "p":
            pid = int(value)
            protocol = None
        elif tag == "f":
            protocol = None
        elif tag == "P":
            protocol = {"TCP": Protocol.TCP, "UDP": Protocol.UDP}.get(value.upper())
        elif tag == "n" and pid is not None and protocol is not None:
            local = value.split("->", 1)[0]
            host, _, port_text = local.rpartition(":")
            if not port_text.isdigit():
                continue
            port = int(port_text)
            if port == 0:
                continue
            host = host.strip("[]") or None
            results.append((pid, port, protocol, host))
    return results


class MacosScanner(PortScanner):
    """Ask lsof for listening TCP sockets and bound UDP sockets."""

    name = "lsof"

    def _listening(self, ports):
        cmd = lsof_command(ports)
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=LSOF_TIMEOUT,
            )
        except FileNotFoundError as e:
            raise ScanError("'lsof' command not found") from e
        except subprocess.TimeoutExpired as e:
            raise ScanError(f"lsof did not answer within {LSOF_TIMEOUT}s") from e

        # lsof exits 1 when nothing matched
        if result.returncode not in (0, 1):
            debug_log(f"SCAN-MACOS: lsof exited {result.returncode}: {result.stderr.strip()}")
            raise ScanError(f"lsof failed: {result.stderr.strip() or result.returncode}")
        if result.returncode == 1 and not result.stdout.strip():
            return []
        return parse_lsof_fields(result.stdout)
