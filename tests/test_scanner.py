import os
import shutil
import sys
import tempfile
import unittest
from collections import namedtuple
from unittest import mock

import psutil

from tests.helpers import ListenerGuard, make_proc
from portzap.errors import PermissionDenied, ScanError, Unsupported
from portzap.platform.linux import LinuxScanner, decode_address, read_socket_table
from portzap.platform.macos import MacosScanner, lsof_command, parse_lsof_fields
from portzap.platform.windows import WindowsScanner
from portzap.ports import PortSpec
from portzap.process import Protocol
from portzap.scanner import (
    UNKNOWN_NAME, PortScanner, UnsupportedScanner, create_scanner, describe_process, sort_records,
)

TABLE_HEADER = "  sl  local_address rem_address   st tx_queue rx_queue tr tm->when retrnsmt   uid  timeout inode\n"


def tcp_row(local, state, inode):
    return (f"   0: {local} 00000000:0000 {state} 00000000:00000000 00:00000000 00000000  "
            f"1000        0 {inode} 1 0000000000000000 100 0 0 10 0\n")


def fake_meta(pid):
    return f"proc{pid}", f"/usr/bin/proc{pid} --serve", "dev"


class StaticScanner(PortScanner):
    name = "static"

    def __init__(self, sockets):
        self.sockets = sockets

    def _listening(self, ports):
        return list(self.sockets)


# --------------------------------------------------
# Shared scan behaviour
# --------------------------------------------------
@mock.patch("portzap.scanner.describe_process", side_effect=fake_meta)
class TestPortScanner(unittest.TestCase):
    def test_dual_stack_socket_reported_once(self, _meta):
        scanner = StaticScanner([
            (10, 3000, Protocol.TCP, "0.0.0.0"),
            (10, 3000, Protocol.TCP, "::"),
        ])
        found = scanner.scan(PortSpec([3000]))
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0].name, "proc10")
        self.assertEqual(found[0].user, "dev")

    def test_tcp_and_udp_are_separate_records(self, _meta):
        scanner = StaticScanner([
            (10, 53, Protocol.UDP, "0.0.0.0"),
            (10, 53, Protocol.TCP, "0.0.0.0"),
        ])
        found = scanner.scan()
        self.assertEqual([p.protocol for p in found], [Protocol.TCP, Protocol.UDP])

    def test_filters_to_requested_ports(self, _meta):
        scanner = StaticScanner([
            (10, 3000, Protocol.TCP, None),
            (11, 4000, Protocol.TCP, None),
        ])
        self.assertEqual([p.port for p in scanner.scan(PortSpec([4000]))], [4000])

    def test_metadata_looked_up_once_per_pid(self, meta):
        scanner = StaticScanner([
            (10, 3000, Protocol.TCP, None),
            (10, 3001, Protocol.TCP, None),
        ])
        scanner.scan()
        meta.assert_called_once_with(10)

    def test_order_follows_requested_ports(self, _meta):
        scanner = StaticScanner([
            (5, 3000, Protocol.TCP, None),
            (7, 8080, Protocol.TCP, None),
            (6, 8080, Protocol.TCP, None),
        ])
        found = scanner.scan(PortSpec([8080, 3000]))
        self.assertEqual([(p.port, p.pid) for p in found], [(8080, 6), (8080, 7), (3000, 5)])


class TestSortRecords(unittest.TestCase):
    def test_ascending_port_when_listing_everything(self):
        records = [make_proc(pid=2, port=9000), make_proc(pid=1, port=80), make_proc(pid=3, port=80)]
        self.assertEqual([(r.port, r.pid) for r in sort_records(records)], [(80, 1), (80, 3), (9000, 2)])


class TestDescribeProcess(unittest.TestCase):
    def test_own_process(self):
        name, _command, _user = describe_process(os.getpid())
        self.assertTrue(name)
        self.assertNotEqual(name, UNKNOWN_NAME)

    def test_vanished_process(self):
        with mock.patch("portzap.scanner.psutil.Process", side_effect=psutil.NoSuchProcess(999999)):
            self.assertEqual(describe_process(999999), (UNKNOWN_NAME, None, None))


class TestCreateScanner(unittest.TestCase):
    def test_platform_selection(self):
        self.assertIsInstance(create_scanner("linux"), LinuxScanner)
        self.assertIsInstance(create_scanner("darwin"), MacosScanner)
        self.assertIsInstance(create_scanner("win32"), WindowsScanner)

    def test_unknown_platform_fails_closed(self):
        scanner = create_scanner("plan9")
        self.assertIsInstance(scanner, UnsupportedScanner)
        with self.assertRaises(Unsupported) as ctx:
            scanner.scan(PortSpec([3000]))
        self.assertIn("plan9", str(ctx.exception))


# --------------------------------------------------
# Linux (procfs)
# --------------------------------------------------
class TestDecodeAddress(unittest.TestCase):
    def test_ipv4(self):
        self.assertEqual(decode_address("0100007F:0BB8"), ("127.0.0.1", 3000))
        self.assertEqual(decode_address("00000000:1F90"), ("0.0.0.0", 8080))

    def test_ipv6(self):
        self.assertEqual(decode_address("00000000000000000000000001000000:1F90"), ("::1", 8080))
        self.assertEqual(decode_address("00000000000000000000000000000000:0050"), ("::", 80))


class FakeProc:
    """A throwaway /proc tree: net tables plus fd symlinks."""

    def __init__(self):
        self.root = tempfile.mkdtemp(prefix="portzap-proc-")
        os.makedirs(os.path.join(self.root, "net"))
        self.tables = {}

    def add_socket(self, table, local, state, inode):
        self.tables.setdefault(table, []).append(tcp_row(local, state, inode))
        with open(os.path.join(self.root, "net", table), "w") as f:
            f.write(TABLE_HEADER + "".join(self.tables[table]))

    def add_process(self, pid, *inodes):
        fd_dir = os.path.join(self.root, str(pid), "fd")
        os.makedirs(fd_dir)
        os.symlink("/dev/null", os.path.join(fd_dir, "0"))
        for n, inode in enumerate(inodes, start=3):
            os.symlink(f"socket:[{inode}]", os.path.join(fd_dir, str(n)))

    def remove_process(self, pid):
        shutil.rmtree(os.path.join(self.root, str(pid)))

    def clear_table(self, table):
        self.tables[table] = []
        with open(os.path.join(self.root, "net", table), "w") as f:
            f.write(TABLE_HEADER)

    def cleanup(self):
        shutil.rmtree(self.root, ignore_errors=True)


class DeniedLinuxScanner(LinuxScanner):
    def __init__(self, proc_root, denied):
        super().__init__(proc_root)
        self.denied = set(denied)

    def _socket_inodes(self, pid):
        if pid in self.denied:
            raise PermissionError(13, "Permission denied")
        return super()._socket_inodes(pid)


class ExitingOwnerScanner(DeniedLinuxScanner):
    """The owner of every socket exits right after the tables were read."""

    def __init__(self, fake_proc, owner, denied):
        super().__init__(fake_proc.root, denied)
        self.fake_proc = fake_proc
        self.owner = owner

    def _pids(self):
        self.fake_proc.remove_process(self.owner)
        self.fake_proc.clear_table("tcp")
        return super()._pids()


@mock.patch("portzap.scanner.describe_process", side_effect=fake_meta)
class TestLinuxScanner(unittest.TestCase):
    def setUp(self):
        self.proc = FakeProc()
        self.addCleanup(self.proc.cleanup)

    def test_listening_tcp_owner_found(self, _meta):
        self.proc.add_socket("tcp", "0100007F:0BB8", "0A", 111)
        self.proc.add_process(42, 111)
        self.proc.add_process(43)
        found = LinuxScanner(self.proc.root).scan(PortSpec([3000]))
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0].pid, 42)
        self.assertEqual(found[0].protocol, Protocol.TCP)
        self.assertEqual(found[0].address, "127.0.0.1")
        self.assertEqual(found[0].name, "proc42")

    def test_established_tcp_ignored(self, _meta):
        # state 01 is ESTABLISHED
        self.proc.add_socket("tcp", "0100007F:0BB8", "01", 111)
        self.proc.add_process(42, 111)
        self.assertEqual(LinuxScanner(self.proc.root).scan(PortSpec([3000])), [])

    def test_bound_udp_and_tcp6(self, _meta):
        self.proc.add_socket("udp", "00000000:14E9", "07", 200)
        self.proc.add_socket("tcp6", "00000000000000000000000000000000:1F90", "0A", 201)
        self.proc.add_process(50, 200, 201)
        found = LinuxScanner(self.proc.root).scan()
        self.assertEqual([(p.port, p.protocol) for p in found], [(5353, Protocol.UDP), (8080, Protocol.TCP)])

    def test_missing_ipv6_tables_are_fine(self, _meta):
        self.proc.add_socket("tcp", "0100007F:0BB8", "0A", 111)
        self.proc.add_process(42, 111)
        self.assertFalse(os.path.exists(os.path.join(self.proc.root, "net", "tcp6")))
        self.assertEqual(len(LinuxScanner(self.proc.root).scan()), 1)

    def test_free_port_returns_empty(self, _meta):
        self.proc.add_socket("tcp", "0100007F:0BB8", "0A", 111)
        self.proc.add_process(42, 111)
        self.assertEqual(LinuxScanner(self.proc.root).scan(PortSpec([3001])), [])

    def test_unreadable_owner_of_requested_port(self, _meta):
        self.proc.add_socket("tcp", "0100007F:0BB8", "0A", 111)
        self.proc.add_process(1, 111)
        scanner = DeniedLinuxScanner(self.proc.root, denied=[1])
        with self.assertRaises(PermissionDenied) as ctx:
            scanner.scan(PortSpec([3000]))
        self.assertIn("3000", str(ctx.exception))

    def test_owner_exiting_mid_scan_means_free(self, _meta):
        self.proc.add_socket("tcp", "0100007F:0BB8", "0A", 111)
        self.proc.add_process(1)
        self.proc.add_process(42, 111)
        scanner = ExitingOwnerScanner(self.proc, owner=42, denied=[1])
        self.assertEqual(scanner.scan(PortSpec([3000])), [])

    def test_unreadable_owner_skipped_when_listing_everything(self, _meta):
        self.proc.add_socket("tcp", "0100007F:0BB8", "0A", 111)
        self.proc.add_socket("tcp", "0100007F:0BB9", "0A", 112)
        self.proc.add_process(1, 111)
        self.proc.add_process(2, 112)
        found = DeniedLinuxScanner(self.proc.root, denied=[1]).scan()
        self.assertEqual([(p.pid, p.port) for p in found], [(2, 3001)])

    def test_resolved_port_ignores_unrelated_denials(self, _meta):
        self.proc.add_socket("tcp", "0100007F:0BB8", "0A", 111)
        self.proc.add_process(1)
        self.proc.add_process(42, 111)
        found = DeniedLinuxScanner(self.proc.root, denied=[1]).scan(PortSpec([3000]))
        self.assertEqual([p.pid for p in found], [42])

    def test_unreadable_proc_root(self, _meta):
        self.proc.add_socket("tcp", "0100007F:0BB8", "0A", 111)
        scanner = LinuxScanner(self.proc.root)
        with mock.patch("portzap.platform.linux.os.listdir", side_effect=OSError("boom")):
            with self.assertRaises(ScanError):
                scanner.scan()

    def test_read_socket_table_skips_port_zero(self, _meta):
        self.proc.add_socket("udp", "00000000:0000", "07", 300)
        path = os.path.join(self.proc.root, "net", "udp")
        self.assertEqual(list(read_socket_table(path, Protocol.UDP, "07")), [])


@unittest.skipUnless(sys.platform.startswith("linux"), "procfs only exists on Linux")
class TestLinuxScannerLive(unittest.TestCase):
    def test_finds_own_listener(self):
        with ListenerGuard() as guard:
            found = LinuxScanner().scan(PortSpec([guard.port]))
        self.assertIn(os.getpid(), [p.pid for p in found])
        self.assertTrue(all(p.port == guard.port for p in found))

    def test_released_port_is_free(self):
        guard = ListenerGuard()
        port = guard.port
        guard.close()
        self.assertEqual(LinuxScanner().scan(PortSpec([port])), [])


# --------------------------------------------------
# macOS (lsof)
# --------------------------------------------------
LSOF_OUTPUT = """p123
f5
PTCP
n*:3000
f6
PUDP
n127.0.0.1:5353
p456
f7
PTCP
n[::1]:8080
f8
PTCP
n127.0.0.1:52000->127.0.0.1:3000
"""


class TestLsofParsing(unittest.TestCase):
    def test_fields(self):
        self.assertEqual(parse_lsof_fields(LSOF_OUTPUT), [
            (123, 3000, Protocol.TCP, "*"),
            (123, 5353, Protocol.UDP, "127.0.0.1"),
            (456, 8080, Protocol.TCP, "::1"),
            (456, 52000, Protocol.TCP, "127.0.0.1"),
        ])

    def test_command_with_ports(self):
        cmd = lsof_command(PortSpec([3000, 3001]))
        self.assertIn("-iTCP:3000,3001", cmd)
        self.assertIn("-iUDP:3000,3001", cmd)
        self.assertIn("-sTCP:LISTEN", cmd)

    def test_command_without_ports(self):
        self.assertEqual(lsof_command(None), ["lsof", "-nP", "-FpPn", "-iTCP", "-sTCP:LISTEN", "-iUDP"])


@mock.patch("portzap.scanner.describe_process", side_effect=fake_meta)
class TestMacosScanner(unittest.TestCase):
    def _run(self, returncode=0, stdout="", stderr=""):
        return mock.Mock(returncode=returncode, stdout=stdout, stderr=stderr)

    def test_scan(self, _meta):
        with mock.patch("portzap.platform.macos.subprocess.run", return_value=self._run(stdout=LSOF_OUTPUT)):
            found = MacosScanner().scan(PortSpec([3000]))
        self.assertEqual([(p.pid, p.port) for p in found], [(123, 3000)])

    def test_nothing_matched(self, _meta):
        with mock.patch("portzap.platform.macos.subprocess.run", return_value=self._run(returncode=1)):
            self.assertEqual(MacosScanner().scan(PortSpec([3000])), [])

    def test_lsof_missing(self, _meta):
        with mock.patch("portzap.platform.macos.subprocess.run", side_effect=FileNotFoundError):
            with self.assertRaises(ScanError):
                MacosScanner().scan()

    def test_lsof_error(self, _meta):
        with mock.patch("portzap.platform.macos.subprocess.run",
                        return_value=self._run(returncode=2, stderr="bad option")):
            with self.assertRaises(ScanError) as ctx:
                MacosScanner().scan()
        self.assertIn("bad option", str(ctx.exception))


# --------------------------------------------------
# Windows (psutil)
# --------------------------------------------------
Addr = namedtuple("Addr", ["ip", "port"])
Conn = namedtuple("Conn", ["fd", "family", "type", "laddr", "raddr", "status", "pid"])


@mock.patch("portzap.scanner.describe_process", side_effect=fake_meta)
class TestWindowsScanner(unittest.TestCase):
    CONNS = [
        Conn(-1, 2, 1, Addr("0.0.0.0", 3000), (), "LISTEN", 100),
        Conn(-1, 2, 1, Addr("127.0.0.1", 3000), Addr("127.0.0.1", 50000), "ESTABLISHED", 100),
        Conn(-1, 2, 2, Addr("0.0.0.0", 5353), (), "NONE", 200),
        Conn(-1, 2, 1, Addr("0.0.0.0", 445), (), "LISTEN", None),
        Conn(-1, 2, 1, (), (), "LISTEN", 300),
    ]

    def test_scan(self, _meta):
        with mock.patch("portzap.platform.windows.psutil.net_connections", return_value=self.CONNS):
            found = WindowsScanner().scan()
        self.assertEqual([(p.pid, p.port, p.protocol) for p in found],
                         [(100, 3000, Protocol.TCP), (200, 5353, Protocol.UDP)])

    def test_access_denied(self, _meta):
        with mock.patch("portzap.platform.windows.psutil.net_connections", side_effect=psutil.AccessDenied()):
            with self.assertRaises(PermissionDenied):
                WindowsScanner().scan(PortSpec([3000]))


if __name__ == "__main__":
    unittest.main()
