#!/usr/bin/env python3
"""
mdglide - terminal markdown viewer with smooth scrolling and link hopping.

Installation:
    pip install textual rich markdown-it-py pygments

Usage:
    mdglide document.md [--style NAME|PATH] [--wrap N]
    mdglide document.md --scanlines --mono green --bbs --baudrate 9600
    mdglide document.md --80x25
"""

from __future__ import annotations

import argparse
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.message import Message

from config import ConfigError, ViewerConfig, load_config
from crt import CANVAS_COLUMNS, CANVAS_ROWS, DisplayState, MonoMode
from logger import get_logger, setup_logging
from navigation import (
    CycleMono, Degauss, Event, FollowLink, JumpEnd, JumpHome, OpenUrl,
    RenderFailed, Rendered, ScrollBy, ScrollPages, SelectNextLink,
    SelectPreviousLink, Tick, ToggleBbs, ToggleScanlines, ViewerModel, update,
)
from render import RenderError, detect_color_caps, known_styles, render_markdown
from toc import EXTRACTORS, DocumentIndex, get_extractor
from utility import (
    THEME, DocumentBody, HeaderBar, ProgressFooter, SystemUrlOpener, UrlOpener,
    display_badges, footer_text, header_text,
)

log = get_logger(__name__)

# ~60 frames per second while a scroll or display effect runs.
TICK_INTERVAL = 1 / 60

Renderer = Callable[[str, int, str], str]


@dataclass(frozen=True)
class Document:
    path: Path
    raw: str
    mtime: float
    size: int


def load_document(filepath: str | Path) -> Document:
    """Read and stat the file; OSError propagates to the caller."""
    path = Path(filepath).expanduser().resolve()
    raw = path.read_text(encoding="utf-8", errors="replace")
    stat = path.stat()
    return Document(path=path, raw=raw, mtime=stat.st_mtime, size=stat.st_size)


# ============================================================================
# Main Application
# ============================================================================

class BodyResized(Message):
    """The document area changed size (also sent on first layout)."""
    def __init__(self, width: int, height: int):
        super().__init__()
        self.width = width
        self.height = height


class ViewerBody(DocumentBody):
    def on_resize(self, event: events.Resize) -> None:
        self.post_message(BodyResized(event.size.width, event.size.height))


class MdGlide(App):
    """Markdown viewer: one document, keyboard scrolling, link hopping."""

    CSS = THEME

    BINDINGS = [
        Binding("up", "scroll_lines(-1)", "Up", show=False, priority=True),
        Binding("down", "scroll_lines(1)", "Down", show=False, priority=True),
        Binding("pageup,ctrl+b", "scroll_pages(-1)", "Page up", show=False, priority=True),
        Binding("pagedown,ctrl+f", "scroll_pages(1)", "Page down", show=False, priority=True),
        Binding("home", "jump_home", "Top", show=False, priority=True),
        Binding("end", "jump_end", "Bottom", show=False, priority=True),
        Binding("tab", "next_link", "Next link", show=False, priority=True),
        Binding("shift+tab", "previous_link", "Previous link", show=False, priority=True),
        Binding("enter", "follow_link", "Follow link", show=False, priority=True),
        Binding("s", "toggle_scanlines", "Scanlines", show=False, priority=True),
        Binding("m", "cycle_mono", "Mono", show=False, priority=True),
        Binding("b", "toggle_bbs", "BBS", show=False, priority=True),
        Binding("d", "degauss", "Degauss", show=False, priority=True),
        Binding("escape", "quit", "Quit", show=False, priority=True),
    ]

    TITLE = "mdglide"

    def __init__(
        self,
        document: Document,
        config: Optional[ViewerConfig] = None,
        opener: Optional[UrlOpener] = None,
        renderer: Renderer = render_markdown,
    ):
        super().__init__()
        self.document = document
        self.viewer_config = config or ViewerConfig()
        self.opener = opener or SystemUrlOpener()
        self.markdown_renderer = renderer
        self.extractor = get_extractor(self.viewer_config.extractor)
        self._source: Optional[DocumentIndex] = None
        truecolor, palette256 = detect_color_caps()
        self.model = ViewerModel(display=DisplayState(
            modes=self.viewer_config.display_modes(),
            seed=time.time_ns(),
            truecolor=truecolor,
            palette256=palette256,
        ))
        self._tick_timer = None
        self._tick_started = 0.0
        self._body_size: Optional[tuple[int, int]] = None

    def compose(self) -> ComposeResult:
        yield HeaderBar()
        yield ViewerBody()
        yield ProgressFooter()

    def on_mount(self) -> None:
        self.sub_title = str(self.document.path)
        if self.canvas_80x25:
            for widget in self.query("#header, #body, #footer"):
                widget.add_class("canvas")
        log.info("viewing %s (%d bytes)", self.document.path, self.document.size)

    # --- rendering ---------------------------------------------------------

    def on_body_resized(self, message: BodyResized) -> None:
        size = (message.width, message.height)
        if size == self._body_size:
            return
        self._body_size = size
        self.render_document(message.width, message.height)

    @property
    def canvas_80x25(self) -> bool:
        return self.model.display.modes.canvas_80x25

    @property
    def source_index(self) -> DocumentIndex:
        """Headings and links of the source; the file never changes while shown."""
        if self._source is None:
            headings, links = self.extractor.extract(self.document.raw)
            self._source = DocumentIndex(headings=tuple(headings), links=tuple(links))
        return self._source

    def render_document(self, width: int, height: int) -> None:
        """Re-render at the current size; positions are re-resolved from scratch."""
        if self.canvas_80x25:
            width, height = CANVAS_COLUMNS, CANVAS_ROWS - 2
        wrap = self.viewer_config.wrap or width
        try:
            styled = self.markdown_renderer(self.document.raw, wrap, self.viewer_config.style)
        except RenderError as e:
            log.error("cannot render %s: %s", self.document.path, e)
            self.apply_event(RenderFailed(str(e)))
            return

        source = self.source_index
        log.debug("rendered %d lines at wrap %d: %d headings, %d links",
                  styled.count("\n") + 1, wrap, len(source.headings), len(source.links))
        self.apply_event(Rendered(styled=styled, index=source, height=height))

    # --- state transitions -------------------------------------------------

    def apply_event(self, event: Event) -> None:
        transition = update(self.model, event)
        self.model = transition.model

        for effect in transition.effects:
            if isinstance(effect, OpenUrl):
                self.opener.open(effect.url)

        if transition.needs_tick:
            self._schedule_tick()
        self.refresh_view()

    def _schedule_tick(self) -> None:
        if self._tick_timer is None:
            self._tick_started = time.monotonic()
            self._tick_timer = self.set_timer(TICK_INTERVAL, self._advance_animation)

    def _advance_animation(self) -> None:
        self._tick_timer = None
        self.apply_event(Tick(elapsed=time.monotonic() - self._tick_started))

    @property
    def tick_scheduled(self) -> bool:
        return self._tick_timer is not None

    def refresh_view(self) -> None:
        width = CANVAS_COLUMNS if self.canvas_80x25 else self.size.width
        display = self.model.display
        self.query_one(HeaderBar).update(header_text(
            self.document.path, self.document.mtime, self.document.size, width,
            badges=display_badges(display),
        ))
        self.query_one(ViewerBody).show(self.model)
        self.query_one(ProgressFooter).update(footer_text(self.model.viewport, width, display))

    # --- keys --------------------------------------------------------------

    def on_key(self, event: events.Key) -> None:
        if event.character in ("q", "Q"):
            event.stop()
            self.exit()

    def action_scroll_lines(self, lines: int) -> None:
        self.apply_event(ScrollBy(lines))

    def action_scroll_pages(self, pages: int) -> None:
        self.apply_event(ScrollPages(pages))

    def action_jump_home(self) -> None:
        self.apply_event(JumpHome())

    def action_jump_end(self) -> None:
        self.apply_event(JumpEnd())

    def action_next_link(self) -> None:
        self.apply_event(SelectNextLink())

    def action_previous_link(self) -> None:
        self.apply_event(SelectPreviousLink())

    def action_follow_link(self) -> None:
        self.apply_event(FollowLink())

    def action_toggle_scanlines(self) -> None:
        self.apply_event(ToggleScanlines())

    def action_cycle_mono(self) -> None:
        self.apply_event(CycleMono())

    def action_toggle_bbs(self) -> None:
        self.apply_event(ToggleBbs())

    def action_degauss(self) -> None:
        self.apply_event(Degauss())


# ============================================================================
# Command line
# ============================================================================

def non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mdglide",
        description="Terminal markdown viewer with smooth scrolling and link navigation.",
        epilog="keys: up/down scroll, pgup/pgdn page, home/end jump, "
               "tab/shift+tab select link, enter follow, s scanlines, m mono, "
               "b bbs, d degauss, esc/q quit",
    )
    parser.add_argument("file", help="markdown file to view")
    parser.add_argument(
        "--style",
        default=None,
        metavar="NAME|PATH",
        help="auto, dark, light, notty, dracula, pink, a pygments style, "
             "or a rich theme file (unknown names fall back to auto)",
    )
    parser.add_argument(
        "--wrap", type=non_negative_int, default=None, metavar="N",
        help="wrap width (0 = terminal width)",
    )
    parser.add_argument(
        "--extractor", choices=sorted(EXTRACTORS), default=None,
        help="how headings and links are found in the source (default: regex)",
    )
    parser.add_argument(
        "--scanlines", action="store_true", default=None, help="dim every other line like a CRT",
    )
    parser.add_argument(
        "--mono", type=str.lower, default=None,
        choices=[mode.value for mode in MonoMode] + ["paperwhite"],
        help="monochrome phosphor: off, green, amber, white",
    )
    parser.add_argument(
        "--80x25", dest="canvas_80x25", action="store_true", default=None,
        help="force the classic 80x25 canvas",
    )
    parser.add_argument(
        "--bbs", action="store_true", default=None, help="show the BBS modem status line",
    )
    parser.add_argument(
        "--baudrate", type=non_negative_int, default=None, metavar="BPS",
        help="stream the page at this modem speed, e.g. 1200, 9600 (0 = instant)",
    )
    parser.add_argument("--log-file", default=None, help="also write logs to this file")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config({
            "style": args.style,
            "wrap": args.wrap,
            "extractor": args.extractor,
            "log_file": args.log_file,
            "log_level": args.log_level,
            "scanlines": args.scanlines,
            "mono": args.mono,
            "canvas_80x25": args.canvas_80x25,
            "bbs": args.bbs,
            "baudrate": args.baudrate,
        })
    except ConfigError as e:
        parser.error(str(e))

    try:
        setup_logging(config.log_file, config.log_level)
    except OSError as e:
        print(f"error: cannot open log file: {e}", file=sys.stderr)
        return 1
    log.debug("known styles: %s", ", ".join(known_styles()))

    try:
        document = load_document(args.file)
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if not sys.stdout.isatty():
        print("error: stdout is not a TTY (refusing to render ANSI output)", file=sys.stderr)
        return 1

    app = MdGlide(document, config)
    app.run()
    return 0


if __name__ == '__main__':
    sys.exit(main())
