"""Interactive dashboard (``portzap gui``).

A thin curses layer over the same ``scan`` and ``kill_processes`` calls the
command line uses. State lives in ``Dashboard`` so that filtering, sorting
and selection can be exercised without a terminal.
"""

import curses
import time

from .config import load_config, save_config
from .errors import ScanError
from .killer import kill_processes
from .log import debug_log
from .output import describe_result
from .process import KillPolicy, any_failed
from .scanner import create_scanner
from .theme import (
    CP_ACCENT, CP_BORDER, CP_HEADER, CP_OK, CP_TCP, CP_TEXT, CP_UDP, CP_WARN,
    apply_theme, theme_attr, toggle_theme,
)

AUTO_REFRESH_SECONDS = 2.0
SORT_KEYS = ("port", "pid", "name")

KEY_ESC = 27
KEY_ENTER_CODES = (10, 13, curses.KEY_ENTER)
KEY_BACKSPACE_CODES = (8, 127, curses.KEY_BACKSPACE)

HELP_LINES = [
    "↑/k ↓/j   move",
    "g / G     first / last",
    "space     toggle selection",
    "a         select all / none",
    "x, Enter  kill selected (or current)",
    "/         filter",
    "s         cycle sort (port, pid, name)",
    "r         refresh now",
    "t         toggle theme",
    "?         this help",
    "q, Esc    quit",
]


# --------------------------------------------------
# State
# --------------------------------------------------
class Dashboard:
    def __init__(self, scanner, config, policy=None):
        self.scanner = scanner
        self.config = config
        self.policy = policy or KillPolicy()
        self.processes = []
        self.selected_keys = set()
        self.cursor = 0
        self.filter_text = ""
        self.sort_key = "port"
        self.status = ""
        self.status_ok = True
        self.status_expires = 0.0
        self.last_refresh = 0.0

    # ---- data ----
    def refresh(self):
        current_key = self.current.key if self.current else None
        try:
            procs = self.scanner.scan()
        except ScanError as e:
            self.set_status(str(e), ok=False)
            debug_log(f"GUI: scan failed: {e}")
            procs = []
        self.processes = self.sort(procs)
        self.last_refresh = time.monotonic()
        live = {p.key for p in self.processes}
        self.selected_keys &= live
        # keep the cursor on the same process across refreshes
        visible = self.visible()
        if current_key is not None:
            for i, p in enumerate(visible):
                if p.key == current_key:
                    self.cursor = i
                    break
        self.clamp_cursor()

    def sort(self, procs):
        if self.sort_key == "pid":
            return sorted(procs, key=lambda p: (p.pid, p.port))
        if self.sort_key == "name":
            return sorted(procs, key=lambda p: (p.name.lower(), p.port))
        return sorted(procs, key=lambda p: (p.port, p.pid))

    def cycle_sort(self):
        self.sort_key = SORT_KEYS[(SORT_KEYS.index(self.sort_key) + 1) % len(SORT_KEYS)]
        self.processes = self.sort(self.processes)
        self.set_status(f"Sorted by {self.sort_key}")

    def visible(self):
        needle = self.filter_text.lower().strip()
        if not needle:
            return list(self.processes)
        return [
            p for p in self.processes
            if needle in str(p.port)
            or needle in str(p.pid)
            or needle in p.name.lower()
            or needle in (p.command or "").lower()
        ]

    # ---- selection ----
    @property
    def current(self):
        visible = self.visible()
        if 0 <= self.cursor < len(visible):
            return visible[self.cursor]
        return None

    def clamp_cursor(self):
        count = len(self.visible())
        self.cursor = max(0, min(self.cursor, count - 1))

    def move(self, delta):
        self.cursor += delta
        self.clamp_cursor()

    def toggle_current(self):
        proc = self.current
        if proc is None:
            return
        if proc.key in self.selected_keys:
            self.selected_keys.discard(proc.key)
        else:
            self.selected_keys.add(proc.key)

    def toggle_all(self):
        keys = {p.key for p in self.visible()}
        if keys and keys <= self.selected_keys:
            self.selected_keys -= keys
        else:
            self.selected_keys |= keys

    def targets(self):
        """Selected processes, or the one under the cursor when nothing is selected."""
        chosen = [p for p in self.processes if p.key in self.selected_keys]
        if chosen:
            return chosen
        return [self.current] if self.current else []

    # ---- actions ----
    def kill_targets(self):
        targets = self.targets()
        if not targets:
            return []
        results = kill_processes(targets, self.policy)
        for result in results:
            debug_log(f"GUI: {describe_result(result)}")
        if any_failed(results):
            failed = [r for r in results if not r.success]
            self.set_status(describe_result(failed[0]), ok=False)
        elif len(results) == 1:
            self.set_status(describe_result(results[0]))
        else:
            self.set_status(f"Killed {len(results)} processes")
        self.selected_keys.clear()
        self.refresh()
        return results

    def switch_theme(self):
        self.config["theme"] = toggle_theme(self.config.get("theme", "dark"))
        save_config(self.config)
        self.set_status(f"Theme: {self.config['theme']}")

    def set_status(self, msg, ok=True):
        self.status = msg
        self.status_ok = ok
        duration = self.config.get("animation_duration_ms", 1000) / 1000.0
        self.status_expires = time.monotonic() + duration

    def status_line(self):
        if self.status and time.monotonic() < self.status_expires:
            return self.status
        return ""


# --------------------------------------------------
# Drawing
# --------------------------------------------------
def _addstr(win, y, x, text, attr=0):
    h, w = win.getmaxyx()
    if y < 0 or y >= h or x >= w:
        return
    try:
        win.addstr(y, x, text[:max(0, w - x - 1)], attr)
    except curses.error:
        pass


def draw_header(stdscr, dash):
    theme = dash.config.get("theme", "dark")
    tcp = sum(1 for p in dash.processes if p.protocol.value == "tcp")
    udp = len(dash.processes) - tcp
    title = " ⚡ portzap "
    stats = f" {len(dash.processes)} listening · {tcp} TCP · {udp} UDP · sort: {dash.sort_key} "
    _addstr(stdscr, 0, 1, title, theme_attr(theme, CP_HEADER))
    _addstr(stdscr, 0, 1 + len(title) + 1, stats, theme_attr(theme, CP_TEXT))


def draw_filter_bar(stdscr, dash, editing):
    theme = dash.config.get("theme", "dark")
    if editing or dash.filter_text:
        text = f" / {dash.filter_text}" + ("▏" if editing else "")
        _addstr(stdscr, 1, 1, text, theme_attr(theme, CP_ACCENT))


def draw_table(stdscr, dash, top, height, offset):
    theme = dash.config.get("theme", "dark")
    h, w = stdscr.getmaxyx()
    headers = ["", "PORT", "PROTO", "PID", "NAME", "USER", "COMMAND"]
    widths = [3, 7, 6, 8, 18, 12, max(10, w - 58)]
    x = 1
    for htxt, wd in zip(headers, widths):
        _addstr(stdscr, top, x, htxt.ljust(wd), theme_attr(theme, CP_HEADER))
        x += wd
    try:
        stdscr.hline(top + 1, 1, curses.ACS_HLINE, w - 2, theme_attr(theme, CP_BORDER))
    except curses.error:
        pass

    visible = dash.visible()
    for i in range(height):
        idx = offset + i
        if idx >= len(visible):
            break
        p = visible[idx]
        mark = "●" if p.key in dash.selected_keys else " "
        cells = [f" {mark}", str(p.port), str(p.protocol), str(p.pid), p.name, p.user or "-", p.command or "-"]
        is_cursor = idx == dash.cursor
        base = theme_attr(theme, CP_ACCENT) | curses.A_REVERSE if is_cursor else theme_attr(theme, CP_TEXT)
        x = 1
        for col, (cell, wd) in enumerate(zip(cells, widths)):
            attr = base
            if col == 2 and not is_cursor:
                attr = theme_attr(theme, CP_TCP if p.protocol.value == "tcp" else CP_UDP)
            _addstr(stdscr, top + 2 + i, x, cell[:wd - 1].ljust(wd), attr)
            x += wd


def draw_status_bar(stdscr, dash):
    theme = dash.config.get("theme", "dark")
    h, w = stdscr.getmaxyx()
    msg = dash.status_line()
    if msg:
        _addstr(stdscr, h - 2, 1, msg, theme_attr(theme, CP_OK if dash.status_ok else CP_WARN))
    hints = " q quit · space select · x kill · / filter · s sort · r refresh · t theme · ? help "
    _addstr(stdscr, h - 1, 1, hints, theme_attr(theme, CP_BORDER))


def confirm_dialog(stdscr, theme, question):
    h, w = stdscr.getmaxyx()
    win_h, win_w = 5, min(max(len(question) + 6, 30), w - 4)
    win = curses.newwin(win_h, win_w, (h - win_h) // 2, (w - win_w) // 2)
    win.bkgd(" ", curses.color_pair(CP_TEXT))
    win.box()
    _addstr(win, 1, 2, question, theme_attr(theme, CP_WARN) | curses.A_BOLD)
    _addstr(win, 3, 2, "[y] Yes    [n] No", theme_attr(theme, CP_ACCENT))
    win.refresh()
    stdscr.timeout(-1)
    try:
        while True:
            k = win.getch()
            if k in (ord("y"), ord("Y")):
                return True
            if k in (ord("n"), ord("N"), KEY_ESC):
                return False
    finally:
        stdscr.timeout(250)


def show_help(stdscr, theme):
    h, w = stdscr.getmaxyx()
    win_h, win_w = len(HELP_LINES) + 4, min(44, w - 4)
    win = curses.newwin(win_h, win_w, max(0, (h - win_h) // 2), (w - win_w) // 2)
    win.bkgd(" ", curses.color_pair(CP_TEXT))
    win.box()
    _addstr(win, 0, 2, " Keys ", theme_attr(theme, CP_HEADER))
    for i, line in enumerate(HELP_LINES):
        _addstr(win, i + 2, 2, line, theme_attr(theme, CP_TEXT))
    win.refresh()
    stdscr.timeout(-1)
    try:
        win.getch()
    finally:
        stdscr.timeout(250)


# --------------------------------------------------
# Main loop
# --------------------------------------------------
def handle_filter_key(dash, k):
    """Feed one key to the filter editor. Returns False when editing ends."""
    if k in (KEY_ESC,) + KEY_ENTER_CODES:
        return False
    if k in KEY_BACKSPACE_CODES:
        dash.filter_text = dash.filter_text[:-1]
    elif 32 <= k < 127:
        dash.filter_text += chr(k)
    dash.cursor = 0
    dash.clamp_cursor()
    return True


def main(stdscr, dash):
    curses.curs_set(0)
    stdscr.keypad(True)
    stdscr.timeout(250)
    apply_theme(dash.config.get("theme", "dark"), stdscr)

    dash.refresh()
    editing_filter = False
    offset = 0

    while True:
        if time.monotonic() - dash.last_refresh >= AUTO_REFRESH_SECONDS:
            dash.refresh()

        h, w = stdscr.getmaxyx()
        table_top = 2
        table_h = max(1, h - table_top - 4)
        if dash.cursor < offset:
            offset = dash.cursor
        elif dash.cursor >= offset + table_h:
            offset = dash.cursor - table_h + 1

        stdscr.erase()
        draw_header(stdscr, dash)
        draw_filter_bar(stdscr, dash, editing_filter)
        draw_table(stdscr, dash, table_top, table_h, offset)
        draw_status_bar(stdscr, dash)
        stdscr.refresh()

        k = stdscr.getch()
        if k == -1:
            continue

        if editing_filter:
            editing_filter = handle_filter_key(dash, k)
            continue

        theme = dash.config.get("theme", "dark")
        if k in (ord("q"), KEY_ESC):
            break
        elif k in (curses.KEY_UP, ord("k")):
            dash.move(-1)
        elif k in (curses.KEY_DOWN, ord("j")):
            dash.move(1)
        elif k in (curses.KEY_HOME, ord("g")):
            dash.cursor = 0
        elif k in (curses.KEY_END, ord("G")):
            dash.cursor = len(dash.visible()) - 1
            dash.clamp_cursor()
        elif k == ord(" "):
            dash.toggle_current()
            dash.move(1)
        elif k == ord("a"):
            dash.toggle_all()
        elif k in (ord("x"),) + KEY_ENTER_CODES:
            targets = dash.targets()
            if not targets:
                continue
            if not dash.config.get("skip_confirm_dialog"):
                if len(targets) == 1:
                    question = f"Kill {targets[0].name} (PID {targets[0].pid}) on :{targets[0].port}?"
                else:
                    question = f"Kill {len(targets)} selected processes?"
                if not confirm_dialog(stdscr, theme, question):
                    continue
            dash.kill_targets()
        elif k == ord("r"):
            dash.refresh()
            dash.set_status("Refreshed")
        elif k == ord("s"):
            dash.cycle_sort()
        elif k == ord("/"):
            editing_filter = True
        elif k == ord("t"):
            dash.switch_theme()
            apply_theme(dash.config["theme"], stdscr)
        elif k == ord("?"):
            show_help(stdscr, theme)


def run(scanner=None, config=None):
    """Entry point for the ``gui`` command."""
    dash = Dashboard(scanner or create_scanner(), config or load_config())
    debug_log("GUI: dashboard started")
    curses.wrapper(main, dash)
    debug_log("GUI: dashboard closed")
