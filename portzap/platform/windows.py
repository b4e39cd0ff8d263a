import socket

import psutil

from ..errors import PermissionDenied
from ..log import debug_log
from ..process import Protocol
from ..scanner import PortScanner


class WindowsScanner(PortScanner):
    """Read the system connection table through psutil (GetExtendedTcpTable)."""

    name = "psutil"

    def _listening(self, ports):
        try:
            conns = psutil.net_connections(kind="inet")
        except psutil.AccessDenied as e:
            raise PermissionDenied("the connection table is not readable") from e

        results = []
        for conn in conns:
            if not conn.laddr or not conn.pid:
                continue
            if conn.type == socket.SOCK_DGRAM:
                protocol = Protocol.UDP
            elif conn.status == psutil.CONN_LISTEN:
                protocol = Protocol.TCP
            else:
                continue
            results.append((conn.pid, conn.laddr.port, protocol, conn.laddr.ip))
        debug_log(f"SCAN-WINDOWS: {len(results)} bound sockets")
        return results
