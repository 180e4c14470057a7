from __future__ import annotations

import os
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, Sequence

from textual.widgets import Static
from rich.cells import cell_len, set_cell_size
from rich.style import Style
from rich.text import Text

from crt import DisplayState, MonoMode
from logger import get_logger
from navigation import ViewerModel, ViewportState
from render import detect_color_caps

log = get_logger(__name__)

FILLED = "█"
EMPTY = "░"
LAMP_ON = "●"
LAMP_OFF = "·"
SIZE_UNITS = ["B", "KB", "MB", "GB", "TB", "PB"]

SELECTED_LINK_STYLE = Style(reverse=True)

THEME = """
$primary: #61afef;
$secondary: #c678dd;
$accent: #56b6c2;
$warning: #e5c07b;
$success: #98c379;
$error: #e06c75;
$background: #1a1a1a;
$surface: #21252b;
$boost: #2c313a;

Screen {
    background: $background;
    layout: vertical;
}

#header {
    dock: top;
    height: 1;
    background: $surface;
    color: $primary;
    text-style: bold;
}

#body {
    height: 1fr;
    background: $background;
    padding: 0;
}

#body.error {
    color: $error;
    text-style: bold;
}

#footer {
    dock: bottom;
    height: 1;
    background: $surface;
    color: $accent;
}

#header.canvas, #body.canvas, #footer.canvas {
    width: 80;
}

#body.canvas {
    height: 23;
}
"""


# ============================================================================
# Formatting
# ============================================================================

def human_size(n: int) -> str:
    if n < 1024:
        return f"{n}B"
    size = float(n)
    unit = 0
    while size >= 1024 and unit < len(SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{size:.2f}{SIZE_UNITS[unit]}"


def truncate_to_width(text: str, width: int) -> str:
    """Cut text to at most width terminal cells."""
    if cell_len(text) <= width:
        return text
    return set_cell_size(text, max(0, width))


def format_mtime(mtime: float) -> str:
    """RFC 3339 timestamp in local time, seconds precision."""
    return datetime.fromtimestamp(mtime).astimezone().isoformat(timespec="seconds")


def color_caps_label() -> str:
    truecolor, palette256 = detect_color_caps()
    if truecolor:
        return "TC"
    if palette256:
        return "256"
    return "16"


def display_badges(display: DisplayState) -> list[str]:
    """Active display modes, in the order the header lists them."""
    modes = display.modes
    badges = []
    if modes.canvas_80x25:
        badges.append("80x25")
    if modes.scanlines:
        badges.append("Scanlines")
    if modes.mono is not MonoMode.OFF:
        badges.append(f"Mono:{modes.mono.label}")
    if modes.bbs:
        badges.append("BBS")
    if display.streaming:
        badges.append(f"RX {display.transmission.bytes_per_second:.0f}B/s")
    return badges


def header_text(
    path: Path,
    mtime: float,
    size: int,
    width: int,
    caps: Optional[str] = None,
    badges: Sequence[str] = (),
) -> str:
    """'<abs path>  [badges]   <mtime> <size> [caps]' fitted to width."""
    caps = caps or color_caps_label()
    right = f"{format_mtime(mtime)} {human_size(size)} [{caps}]"
    available = max(1, width - cell_len(right) - 1)
    suffix = "  [" + " | ".join(badges) + "]" if badges else ""
    path_room = max(1, available - cell_len(suffix))
    left = truncate_to_width(truncate_to_width(str(path), path_room) + suffix, available)
    return set_cell_size(left, available) + " " + right


def progress_bar(width: int, ratio: float, label: str = "") -> str:
    if width < 3:
        return FILLED * max(0, width)

    fill = min(max(int(width * ratio), 0), width)
    bar = FILLED * fill + EMPTY * (width - fill)

    if label and len(label) < width:
        start = (width - len(label)) // 2
        bar = bar[:start] + label + bar[start + len(label):]
    return bar


def scroll_ratio(viewport: ViewportState) -> float:
    denominator = max(1, viewport.total_lines - viewport.height)
    return min(max(viewport.offset / denominator, 0.0), 1.0)


def bbs_status_line(width: int, display: DisplayState) -> str:
    rx = LAMP_ON if display.rx_blink > 0 else LAMP_OFF
    tx = LAMP_ON if display.tx_blink > 0 else LAMP_OFF
    label = (
        f" CONNECT {display.modes.baudrate}  RX:{rx} TX:{tx}"
        "  [s]canlines [m]ono [b]bs [d]egauss  [q]uit "
    )
    return set_cell_size(label, max(0, width))


def footer_text(viewport: ViewportState, width: int, display: Optional[DisplayState] = None) -> str:
    """Progress bar with a centred 'current / total' line counter.

    With the BBS dressing on, the modem status line replaces the bar.
    """
    if display is not None and display.modes.bbs:
        return bbs_status_line(width, display)
    current = min(viewport.total_lines, viewport.offset + viewport.height)
    if current < 1 and viewport.total_lines > 0:
        current = 1
    total = max(1, viewport.total_lines)
    return progress_bar(width, scroll_ratio(viewport), f" {current} / {total} ")


def body_text(model: ViewerModel) -> Text:
    """The visible slice of the rendered document, selected link highlighted."""
    viewport = model.viewport
    top = viewport.offset
    visible = model.lines[top:top + viewport.height]

    rendered = [Text.from_ansi(line, no_wrap=True, overflow="crop") for line in visible]

    link = model.selected
    if link is not None and top <= link.rendered_line < top + len(rendered):
        line = rendered[link.rendered_line - top]
        start = line.plain.find(link.needle)
        if start >= 0:
            line.stylize(SELECTED_LINK_STYLE, start, start + len(link.needle))

    body = Text("\n", no_wrap=True, overflow="crop").join(rendered)
    return body


# ============================================================================
# URL opening
# ============================================================================

class UrlOpener(Protocol):
    def open(self, url: str) -> None:
        ...


class SystemUrlOpener:
    """Hands a URL to the desktop's default handler without waiting on it."""

    def open(self, url: str) -> None:
        log.info("opening %s", url)
        try:
            if os.name == "nt":
                os.startfile(url)
            else:
                cmd = "open" if sys.platform == "darwin" else "xdg-open"
                subprocess.Popen(
                    [cmd, url],
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
        except OSError as e:
            log.warning("failed to open %s: %s", url, e)


# ============================================================================
# Widgets
# ============================================================================

class HeaderBar(Static):
    """File path and metadata."""

    def __init__(self):
        super().__init__("", id="header")


class DocumentBody(Static):
    """The visible window of rendered lines, or the render error."""

    def __init__(self):
        super().__init__("", id="body")

    def show(self, model: ViewerModel) -> None:
        if model.error is not None:
            self.add_class("error")
            self.update(Text(f"error: {model.error}"))
            return
        self.remove_class("error")
        self.update(body_text(model))


class ProgressFooter(Static):
    """Scroll position bar."""

    def __init__(self):
        super().__init__("", id="footer")
