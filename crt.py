"""
Old-school terminal dressing for the rendered document.

Two things live here: CRT post-effects (scanlines, monochrome phosphor, the
80x25 canvas, degauss) and a modem transmission that lets the rendered bytes
arrive at a given baud rate. Both map text to text; nothing here touches the
terminal, so the document index can be resolved against exactly what ends up
on screen.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Union

from rich.cells import cell_len

from toc import ANSI_RE, strip_ansi

CANVAS_COLUMNS = 80
CANVAS_ROWS = 25

DEGAUSS_FRAMES = 30
DEGAUSS_FLASH_FRAMES = 6
BLINK_FRAMES = 6

# 8N1 framing: start bit, eight data bits, stop bit.
BITS_PER_BYTE = 10

DIM_ON, DIM_OFF = "\x1b[2m", "\x1b[22m"
REVERSE_ON, REVERSE_OFF = "\x1b[7m", "\x1b[27m"
RESET = "\x1b[0m"


class MonoMode(Enum):
    OFF = "off"
    GREEN = "green"
    AMBER = "amber"
    WHITE = "white"

    @property
    def label(self) -> str:
        return _MONO_LABELS[self]

    def next(self) -> "MonoMode":
        members = list(MonoMode)
        return members[(members.index(self) + 1) % len(members)]

    @classmethod
    def parse(cls, value: Union[str, "MonoMode", None]) -> "MonoMode":
        if isinstance(value, MonoMode):
            return value
        name = str(value or "").strip().lower()
        if name in ("", "off"):
            return cls.OFF
        if name == "paperwhite":
            return cls.WHITE
        try:
            return cls(name)
        except ValueError:
            raise ValueError(
                f"invalid mono mode {value!r} (use off|green|amber|white)"
            ) from None


_MONO_LABELS = {
    MonoMode.OFF: "Off",
    MonoMode.GREEN: "Green",
    MonoMode.AMBER: "Amber",
    MonoMode.WHITE: "Paperwhite",
}

# mode -> (16-colour, 256-colour, truecolor) foreground parameters
_MONO_COLORS = {
    MonoMode.GREEN: ("32", "38;5;82", "38;2;0;255;128"),
    MonoMode.AMBER: ("33", "38;5;214", "38;2;255;176;0"),
    MonoMode.WHITE: ("37", "38;5;252", "38;2;230;230;230"),
}


def mono_sgr(mode: MonoMode, truecolor: bool = False, palette256: bool = False) -> tuple[str, str]:
    """Opening and closing SGR sequences for a phosphor colour."""
    if mode is MonoMode.OFF:
        return "", ""
    basic, indexed, rgb = _MONO_COLORS[mode]
    if truecolor:
        fg = rgb
    elif palette256:
        fg = indexed
    else:
        fg = basic
    return f"\x1b[{fg}m", RESET


# ============================================================================
# Escape-aware text helpers
# ============================================================================

def split_escapes(text: str) -> list[tuple[str, bool]]:
    """Split text into (chunk, is_escape) pieces, escapes never cut."""
    pieces = []
    last = 0
    for match in ANSI_RE.finditer(text):
        if match.start() > last:
            pieces.append((text[last:match.start()], False))
        pieces.append((match.group(), True))
        last = match.end()
    if last < len(text):
        pieces.append((text[last:], False))
    return pieces


def clip_columns(line: str, columns: int) -> str:
    """Cut a styled line to at most columns visible cells.

    Escape sequences past the cut are kept so styles still get closed.
    """
    if cell_len(strip_ansi(line)) <= columns:
        return line

    parts = []
    room = columns
    for chunk, is_escape in split_escapes(line):
        if is_escape:
            parts.append(chunk)
            continue
        kept = []
        for char in chunk:
            width = cell_len(char)
            if width > room:
                room = 0
                break
            kept.append(char)
            room -= width
        parts.append("".join(kept))
    return "".join(parts)


# ============================================================================
# Modem transmission
# ============================================================================

@dataclass(frozen=True)
class StreamToken:
    text: str
    is_escape: bool
    size: int  # bytes on the wire (UTF-8)


def tokenize(text: str) -> tuple[StreamToken, ...]:
    return tuple(
        StreamToken(chunk, is_escape, len(chunk.encode("utf-8")))
        for chunk, is_escape in split_escapes(text)
    )


def _prefix_within_bytes(text: str, budget: int) -> str:
    used = 0
    for i, char in enumerate(text):
        used += len(char.encode("utf-8"))
        if used > budget:
            return text[:i]
    return text


@dataclass(frozen=True)
class Transmission:
    """Rendered bytes arriving at baudrate bits per second.

    A baudrate of 0 delivers everything at once. elapsed survives a
    re-render, so a resize mid-transfer does not restart the line.
    """

    tokens: tuple[StreamToken, ...] = ()
    total_bytes: int = 0
    baudrate: int = 0
    elapsed: float = 0.0

    @classmethod
    def start(cls, text: str, baudrate: int = 0, elapsed: float = 0.0) -> "Transmission":
        tokens = tokenize(text)
        return cls(
            tokens=tokens,
            total_bytes=sum(t.size for t in tokens),
            baudrate=max(0, baudrate),
            elapsed=elapsed,
        )

    @property
    def bytes_per_second(self) -> float:
        return self.baudrate / BITS_PER_BYTE

    @property
    def sent_bytes(self) -> int:
        if self.baudrate <= 0:
            return self.total_bytes
        return min(self.total_bytes, max(0, int(self.elapsed * self.bytes_per_second)))

    @property
    def done(self) -> bool:
        return self.sent_bytes >= self.total_bytes

    def advance(self, seconds: float) -> "Transmission":
        if self.done:
            return self
        return replace(self, elapsed=self.elapsed + max(0.0, seconds))

    def received(self) -> str:
        """What has arrived so far; a half-sent escape sequence is held back."""
        budget = self.sent_bytes
        parts = []
        for token in self.tokens:
            if budget <= 0:
                break
            if token.size <= budget:
                parts.append(token.text)
                budget -= token.size
                continue
            if not token.is_escape:
                parts.append(_prefix_within_bytes(token.text, budget))
            break
        return "".join(parts)


# ============================================================================
# Display state and post-effects
# ============================================================================

@dataclass(frozen=True)
class DisplayModes:
    """User-selected dressing, from the command line and the s/m/b keys."""

    scanlines: bool = False
    mono: MonoMode = MonoMode.OFF
    canvas_80x25: bool = False
    bbs: bool = False
    baudrate: int = 0


@dataclass(frozen=True)
class DisplayState:
    modes: DisplayModes = field(default_factory=DisplayModes)
    transmission: Transmission = field(default_factory=Transmission)
    degauss: int = 0  # frames left
    rx_blink: int = 0
    tx_blink: int = 0
    seed: int = 0
    truecolor: bool = False
    palette256: bool = False

    @property
    def streaming(self) -> bool:
        return not self.transmission.done

    @property
    def flashing(self) -> bool:
        return self.degauss > DEGAUSS_FRAMES - DEGAUSS_FLASH_FRAMES

    @property
    def busy(self) -> bool:
        """True while an effect still has frames to play."""
        if self.streaming or self.degauss > 0:
            return True
        return self.modes.bbs and (self.rx_blink > 0 or self.tx_blink > 0)

    def restart(self, styled: str) -> "DisplayState":
        """Transmit a freshly rendered document, keeping the elapsed time."""
        transmission = Transmission.start(
            styled, self.modes.baudrate, self.transmission.elapsed
        )
        return replace(self, transmission=transmission)


def apply_post_effects(text: str, display: DisplayState) -> str:
    modes = display.modes
    lines = text.split("\n")

    if modes.mono is not MonoMode.OFF:
        opener, closer = mono_sgr(modes.mono, display.truecolor, display.palette256)
        lines = [opener + strip_ansi(line) + closer for line in lines]

    if modes.scanlines or display.degauss > 0:
        rng = random.Random(display.seed * DEGAUSS_FRAMES + display.degauss)
        for i, line in enumerate(lines):
            if display.degauss > 0 and rng.randrange(3) == 0:
                line = " " * rng.randrange(2) + line
            if i % 2 == 1:
                line = DIM_ON + line + DIM_OFF
            lines[i] = line

    if display.flashing:
        lines = [REVERSE_ON + line + REVERSE_OFF for line in lines]

    if modes.canvas_80x25:
        lines = [clip_columns(line, CANVAS_COLUMNS) for line in lines]

    return "\n".join(lines)


def visible_text(display: DisplayState) -> str:
    """The received part of the transmission with every post-effect applied."""
    return apply_post_effects(display.transmission.received().rstrip("\n"), display)
