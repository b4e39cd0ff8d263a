import os
import socket
import subprocess
import sys
import tempfile
import textwrap

from portzap.process import ProcessInfo, Protocol

# keep test runs out of the user's real debug log
os.environ.setdefault("PORTZAP_DEBUG_LOG", os.path.join(tempfile.gettempdir(), "portzap-test-debug.log"))
import portzap.log  # noqa: E402

portzap.log.DEBUG_LOG_PATH = os.environ["PORTZAP_DEBUG_LOG"]


def make_proc(pid=1234, port=3000, name="node", protocol=Protocol.TCP, command=None, user=None, address=None):
    return ProcessInfo(pid, name, port, protocol, command, user, address)


class FakeScanner:
    """Replays scripted scan results; the last one repeats forever."""

    name = "fake"

    def __init__(self, *scripted, on_exhausted=None):
        self.scripted = list(scripted) or [[]]
        self.calls = []
        self.on_exhausted = on_exhausted

    def scan(self, ports=None):
        self.calls.append(ports)
        index = len(self.calls) - 1
        if index >= len(self.scripted) - 1 and self.on_exhausted:
            self.on_exhausted()
        result = self.scripted[min(index, len(self.scripted) - 1)]
        if isinstance(result, Exception):
            raise result
        if ports:
            return [p for p in result if p.port in ports]
        return list(result)


class ListenerGuard:
    """Binds a TCP port in this process and holds it open until closed."""

    def __init__(self, port=0):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", port))
        self.sock.listen(1)
        self.port = self.sock.getsockname()[1]

    def close(self):
        self.sock.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


CHILD_SCRIPT = textwrap.dedent("""
    import signal, socket, sys, time
    if sys.argv[1] == "ignore-term":
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    s.listen(1)
    print(s.getsockname()[1], flush=True)
    while True:
        time.sleep(0.05)
""")


def spawn_listener(ignore_term=False):
    """Start a child process that listens on a fresh port. Returns (Popen, port)."""
    child = subprocess.Popen(
        [sys.executable, "-c", CHILD_SCRIPT, "ignore-term" if ignore_term else "normal"],
        stdout=subprocess.PIPE,
        text=True,
    )
    port = int(child.stdout.readline().strip())
    return child, port


def reap(child):
    if child.poll() is None:
        child.kill()
    child.wait(timeout=5)
    if child.stdout:
        child.stdout.close()
