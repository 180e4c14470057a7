"""
Markdown -> ANSI text, via rich.

render_markdown() is the only thing the viewer needs from here. Links are
printed as 'text (url)' rather than OSC 8 hyperlinks so that link targets
can be found again in the output.
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from io import StringIO
from pathlib import Path
from typing import Optional

from pygments.styles import get_all_styles
from rich.console import Console
from rich.errors import StyleSyntaxError
from rich.markdown import Markdown
from rich.theme import Theme

from logger import get_logger

log = get_logger(__name__)


class RenderError(Exception):
    """The markdown could not be rendered (bad style file, renderer failure)."""


# ============================================================================
# Palettes
# ============================================================================

ONE_DARK = {
    "markdown.paragraph": "#abb2bf",
    "markdown.text": "#abb2bf",
    "markdown.h1": "bold #ffffff on #0051a8",
    "markdown.h1.border": "#0051a8",
    "markdown.h2": "bold #c678dd",
    "markdown.h3": "bold #56b6c2",
    "markdown.h4": "bold #e5c07b",
    "markdown.h5": "bold #98c379",
    "markdown.h6": "bold #abb2bf",
    "markdown.strong": "bold #e5c07b",
    "markdown.em": "italic",
    "markdown.s": "strike",
    "markdown.code": "#e06c75 on #2c313a",
    "markdown.block_quote": "#98c379",
    "markdown.item.bullet": "#61afef",
    "markdown.item.number": "#e5c07b",
    "markdown.hr": "#0051a8",
    "markdown.link": "#61afef underline",
    "markdown.link_url": "#5c6370",
    "markdown.table.border": "#3e4451",
    "markdown.table.header": "bold #61afef",
}

ONE_LIGHT = {
    "markdown.paragraph": "#383a42",
    "markdown.text": "#383a42",
    "markdown.h1": "bold #ffffff on #0051a8",
    "markdown.h1.border": "#0051a8",
    "markdown.h2": "bold #a626a4",
    "markdown.h3": "bold #0184bc",
    "markdown.h4": "bold #c18401",
    "markdown.h5": "bold #50a14f",
    "markdown.h6": "bold #383a42",
    "markdown.strong": "bold #986801",
    "markdown.em": "italic",
    "markdown.s": "strike",
    "markdown.code": "#e45649 on #f0f0f0",
    "markdown.block_quote": "#50a14f",
    "markdown.item.bullet": "#4078f2",
    "markdown.item.number": "#c18401",
    "markdown.hr": "#a0a1a7",
    "markdown.link": "#4078f2 underline",
    "markdown.link_url": "#a0a1a7",
    "markdown.table.border": "#d3d3d3",
    "markdown.table.header": "bold #4078f2",
}

DRACULA = {
    "markdown.paragraph": "#f8f8f2",
    "markdown.text": "#f8f8f2",
    "markdown.h1": "bold #282a36 on #bd93f9",
    "markdown.h1.border": "#bd93f9",
    "markdown.h2": "bold #bd93f9",
    "markdown.h3": "bold #ff79c6",
    "markdown.h4": "bold #8be9fd",
    "markdown.h5": "bold #50fa7b",
    "markdown.h6": "bold #ffb86c",
    "markdown.strong": "bold #ffb86c",
    "markdown.em": "italic #f1fa8c",
    "markdown.s": "strike",
    "markdown.code": "#50fa7b on #44475a",
    "markdown.block_quote": "italic #6272a4",
    "markdown.item.bullet": "#ff79c6",
    "markdown.item.number": "#bd93f9",
    "markdown.hr": "#6272a4",
    "markdown.link": "#8be9fd underline",
    "markdown.link_url": "#6272a4",
    "markdown.table.border": "#6272a4",
    "markdown.table.header": "bold #bd93f9",
}

PINK = {
    "markdown.paragraph": "#ffd7ef",
    "markdown.text": "#ffd7ef",
    "markdown.h1": "bold #ffffff on #d7005f",
    "markdown.h1.border": "#d7005f",
    "markdown.h2": "bold #ff5faf",
    "markdown.h3": "bold #ff87d7",
    "markdown.h4": "bold #ffafd7",
    "markdown.h5": "bold #d787af",
    "markdown.h6": "bold #af5f87",
    "markdown.strong": "bold #ff5faf",
    "markdown.em": "italic",
    "markdown.s": "strike",
    "markdown.code": "#ff5faf on #3a3a3a",
    "markdown.block_quote": "#d787af",
    "markdown.item.bullet": "#ff5faf",
    "markdown.item.number": "#ff87d7",
    "markdown.hr": "#af5f87",
    "markdown.link": "#ff87d7 underline",
    "markdown.link_url": "#af5f87",
    "markdown.table.border": "#af5f87",
    "markdown.table.header": "bold #ff5faf",
}

# name -> (markdown styles, pygments code theme)
PALETTES = {
    "dark": (ONE_DARK, "monokai"),
    "light": (ONE_LIGHT, "friendly"),
    "dracula": (DRACULA, "monokai"),
    "pink": (PINK, "monokai"),
}

SPECIAL_STYLES = ("auto", "notty")

# Pygments discovers styles through plugin entry points; scan once.
PYGMENTS_STYLES = frozenset(get_all_styles())


@dataclass(frozen=True)
class StyleSpec:
    """A resolved --style selector."""

    name: str
    styles: Optional[dict] = None
    code_theme: str = "monokai"
    path: Optional[Path] = None
    color: bool = True

    def load_theme(self) -> Optional[Theme]:
        if self.path is not None:
            try:
                return Theme.read(str(self.path))
            except (OSError, UnicodeDecodeError, configparser.Error, StyleSyntaxError) as e:
                raise RenderError(f"invalid style file {self.path}: {e}") from e
        if self.styles:
            return Theme(self.styles)
        return None


def detect_background() -> str:
    """'light' or 'dark', from the COLORFGBG hint some terminals export."""
    hint = os.environ.get("COLORFGBG", "")
    background = hint.split(";")[-1].strip() if hint else ""
    return "light" if background in ("7", "15") else "dark"


def detect_color_caps() -> tuple[bool, bool]:
    """(truecolor, palette256) guessed from COLORTERM and TERM."""
    colorterm = os.environ.get("COLORTERM", "").lower()
    term = os.environ.get("TERM", "").lower()
    truecolor = "truecolor" in colorterm or "24bit" in colorterm
    palette256 = truecolor or "256color" in term or "xterm" in term
    return truecolor, palette256


def color_system() -> str:
    truecolor, palette256 = detect_color_caps()
    if truecolor:
        return "truecolor"
    if palette256:
        return "256"
    return "standard"


def known_styles() -> list[str]:
    return sorted(set(SPECIAL_STYLES) | set(PALETTES) | PYGMENTS_STYLES)


def resolve_style(selector: Optional[str]) -> StyleSpec:
    """Map a --style value to a StyleSpec; unknown values fall back to auto."""
    raw = (selector or "").strip()
    name = raw.lower()

    if name in ("", "auto"):
        if os.environ.get("NO_COLOR"):
            return StyleSpec(name="notty", color=False)
        name = detect_background()

    if name == "notty":
        return StyleSpec(name="notty", color=False)

    if name in PALETTES:
        styles, code_theme = PALETTES[name]
        return StyleSpec(name=name, styles=styles, code_theme=code_theme)

    if name in PYGMENTS_STYLES:
        return StyleSpec(name=name, styles=ONE_DARK, code_theme=name)

    path = Path(raw).expanduser()
    if path.is_file():
        return StyleSpec(name=str(path), path=path)

    log.warning("unknown style %r, falling back to auto", raw)
    return resolve_style("auto")


# ============================================================================
# Rendering
# ============================================================================

def render_markdown(raw: str, width: int, style: Optional[str] = "auto") -> str:
    """Render raw markdown to ANSI-styled text wrapped at width columns."""
    resolved = resolve_style(style)
    theme = resolved.load_theme()

    buffer = StringIO()
    console = Console(
        file=buffer,
        width=max(1, width),
        force_terminal=True,
        force_jupyter=False,
        color_system=color_system() if resolved.color else None,
        theme=theme,
        legacy_windows=False,
        emoji=False,
        highlight=False,
    )

    try:
        console.print(Markdown(raw, code_theme=resolved.code_theme, hyperlinks=False))
    except Exception as e:
        log.error("render failed (style=%s, width=%d): %s", resolved.name, width, e)
        raise RenderError(str(e)) from e

    return buffer.getvalue().rstrip("\n")
