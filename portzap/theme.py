import curses

# Curses color pair IDs (1-based because 0 is reserved)
CP_HEADER = 1   # title bar, column headers
CP_ACCENT = 2   # selection marks, key hints
CP_TEXT = 3     # normal body text
CP_WARN = 4     # errors, kill confirmations
CP_BORDER = 5   # borders, separators
CP_OK = 6       # success messages
CP_TCP = 7
CP_UDP = 8

THEMES = {
    "dark": {
        "colors": {
            CP_HEADER: (curses.COLOR_RED, -1),
            CP_ACCENT: (curses.COLOR_YELLOW, -1),
            CP_TEXT: (curses.COLOR_WHITE, -1),
            CP_WARN: (curses.COLOR_RED, -1),
            CP_BORDER: (curses.COLOR_BLUE, -1),
            CP_OK: (curses.COLOR_GREEN, -1),
            CP_TCP: (curses.COLOR_CYAN, -1),
            CP_UDP: (curses.COLOR_MAGENTA, -1),
        },
        "colors_256": {
            CP_HEADER: (202, 234),   # OrangeRed on near-black
            CP_ACCENT: (220, 234),   # Gold
            CP_TEXT: (253, 234),
            CP_WARN: (203, 234),     # IndianRed
            CP_BORDER: (60, 234),
            CP_OK: (78, 234),
            CP_TCP: (75, 234),
            CP_UDP: (177, 234),
        },
        "attrs": {CP_HEADER: curses.A_BOLD, CP_ACCENT: curses.A_BOLD, CP_BORDER: curses.A_DIM},
    },
    "light": {
        "colors": {
            CP_HEADER: (curses.COLOR_RED, curses.COLOR_WHITE),
            CP_ACCENT: (curses.COLOR_BLUE, curses.COLOR_WHITE),
            CP_TEXT: (curses.COLOR_BLACK, curses.COLOR_WHITE),
            CP_WARN: (curses.COLOR_RED, curses.COLOR_WHITE),
            CP_BORDER: (curses.COLOR_BLACK, curses.COLOR_WHITE),
            CP_OK: (curses.COLOR_GREEN, curses.COLOR_WHITE),
            CP_TCP: (curses.COLOR_BLUE, curses.COLOR_WHITE),
            CP_UDP: (curses.COLOR_MAGENTA, curses.COLOR_WHITE),
        },
        "colors_256": {
            CP_HEADER: (166, 255),
            CP_ACCENT: (130, 255),
            CP_TEXT: (236, 255),
            CP_WARN: (160, 255),
            CP_BORDER: (250, 255),
            CP_OK: (28, 255),
            CP_TCP: (25, 255),
            CP_UDP: (91, 255),
        },
        "attrs": {CP_HEADER: curses.A_BOLD, CP_ACCENT: curses.A_BOLD},
    },
}


def toggle_theme(name):
    return "light" if name == "dark" else "dark"


def apply_theme(name, stdscr=None):
    """Initialise color pairs for ``name``, using 256 colors when available."""
    if not curses.has_colors():
        return
    theme = THEMES.get(name, THEMES["dark"])
    use_256 = curses.COLORS >= 256
    if not use_256:
        try:
            curses.use_default_colors()
        except curses.error:
            pass
    color_map = theme["colors_256"] if use_256 else theme["colors"]
    for pair_id, (fg, bg) in color_map.items():
        try:
            curses.init_pair(pair_id, fg, bg)
        except curses.error:
            pass
    if stdscr is not None:
        stdscr.bkgd(" ", curses.color_pair(CP_TEXT))


def theme_attr(name, pair_id):
    """Color pair plus the theme's extra attribute (BOLD, DIM) for an element."""
    theme = THEMES.get(name, THEMES["dark"])
    return curses.color_pair(pair_id) | theme.get("attrs", {}).get(pair_id, curses.A_NORMAL)
