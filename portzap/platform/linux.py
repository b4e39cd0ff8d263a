import ipaddress
import os

from ..errors import PermissionDenied, ScanError
from ..log import debug_log
from ..process import Protocol
from ..scanner import PortScanner

TCP_LISTEN = "0A"
UDP_UNCONNECTED = "07"

NET_TABLES = (
    ("tcp", Protocol.TCP, TCP_LISTEN),
    ("tcp6", Protocol.TCP, TCP_LISTEN),
    ("udp", Protocol.UDP, UDP_UNCONNECTED),
    ("udp6", Protocol.UDP, UDP_UNCONNECTED),
)


# --------------------------------------------------
# /proc/net parsing
# --------------------------------------------------
def decode_address(hex_addr):
    """Turn the kernel's ``0100007F:0BB8`` notation into ``("127.0.0.1", 3000)``."""
    host_hex, _, port_hex = hex_addr.partition(":")
    port = int(port_hex, 16)
    raw = bytes.fromhex(host_hex)
    # addresses are stored as native-endian 32-bit words
    packed = b"".join(raw[i:i + 4][::-1] for i in range(0, len(raw), 4))
    return str(ipaddress.ip_address(packed)), port


def read_socket_table(path, protocol, wanted_state):
    """Yield ``(inode, port, protocol, address)`` for bound sockets in one table."""
    try:
        with open(path, "r") as f:
            lines = f.readlines()[1:]
    except FileNotFoundError:
        # tcp6/udp6 are missing when IPv6 is disabled
        return
    for line in lines:
        parts = line.split()
        if len(parts) < 10 or parts[3] != wanted_state:
            continue
        try:
            address, port = decode_address(parts[1])
            inode = int(parts[9])
        except ValueError:
            debug_log(f"SCAN-LINUX: unparseable row in {path}: {line.strip()}")
            continue
        if port == 0 or inode == 0:
            continue
        yield inode, port, protocol, address


# --------------------------------------------------
# Scanner
# --------------------------------------------------
class LinuxScanner(PortScanner):
    """Join /proc/net socket tables with the socket inodes in /proc/<pid>/fd."""

    name = "procfs"

    def __init__(self, proc_root="/proc"):
        self.proc_root = proc_root

    def listening_inodes(self, ports=None):
        inodes = {}
        for table, protocol, state in NET_TABLES:
            path = os.path.join(self.proc_root, "net", table)
            for inode, port, proto, address in read_socket_table(path, protocol, state):
                if ports and port not in ports:
                    continue
                inodes.setdefault(inode, (port, proto, address))
        return inodes

    def _pids(self):
        try:
            entries = os.listdir(self.proc_root)
        except OSError as e:
            raise ScanError(f"failed to read {self.proc_root}: {e}") from e
        return sorted(int(entry) for entry in entries if entry.isdigit())

    def _socket_inodes(self, pid):
        fd_dir = os.path.join(self.proc_root, str(pid), "fd")
        found = set()
        for fd in os.listdir(fd_dir):
            try:
                target = os.readlink(os.path.join(fd_dir, fd))
            except OSError:
                # fd closed between listdir and readlink
                continue
            if target.startswith("socket:["):
                found.add(int(target[8:-1]))
        return found

    def _listening(self, ports):
        wanted = set(ports) if ports else None
        inodes = self.listening_inodes(wanted)
        if not inodes:
            return []

        results = []
        resolved = set()
        denied = []
        for pid in self._pids():
            try:
                owned = self._socket_inodes(pid)
            except PermissionError:
                denied.append(pid)
                continue
            except OSError:
                # process exited mid-scan
                continue
            for inode in owned.intersection(inodes):
                port, protocol, address = inodes[inode]
                resolved.add(inode)
                results.append((pid, port, protocol, address))

        unresolved = {inodes[i][0] for i in inodes.keys() - resolved}
        if denied:
            debug_log(f"SCAN-LINUX: fd tables unreadable for {len(denied)} processes")
        if unresolved and denied and wanted is not None:
            # an owner that exited mid-scan also leaves its socket unresolved;
            # only sockets that are still listening count as hidden from us
            still = self.listening_inodes(wanted)
            unresolved = {still[i][0] for i in still.keys() - resolved}
            if unresolved:
                ports_text = ", ".join(str(p) for p in sorted(unresolved))
                raise PermissionDenied(f"owner of port {ports_text} belongs to another user")
        if unresolved:
            debug_log(f"SCAN-LINUX: no owner found for ports {sorted(unresolved)}")
        return results
