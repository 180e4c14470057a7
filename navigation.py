"""
Viewport state, smooth scrolling and link navigation.

Everything here is pure: each keyboard, resize or timer event is turned into
a new ViewerModel plus a list of side effects by update(). The app owns the
timer and the URL opener and only acts on what update() hands back.

The model keeps the full styled document; the lines on screen and the index
are derived from it through the transmission and the CRT post-effects, so
links and headings are located where they are actually shown.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional, Union

from logger import get_logger
from crt import (
    BLINK_FRAMES, DEGAUSS_FRAMES, DisplayState, visible_text,
)
from toc import DocumentIndex, Heading, Link, resolve_positions, slugify

log = get_logger(__name__)

# One tick moves a fifth of the remaining distance.
SCROLL_DIVISOR = 5

# Nominal frame length, used when a Tick does not say how long it was.
TICK_SECONDS = 1 / 60


# ============================================================================
# State
# ============================================================================

@dataclass(frozen=True)
class ViewportState:
    """Visible window over the rendered lines. offset is the top line."""

    offset: int = 0
    height: int = 1
    total_lines: int = 0
    animating: bool = False
    target_offset: int = 0
    selected_link: Optional[int] = None

    def __post_init__(self):
        if self.height < 1:
            raise ValueError(f"viewport height must be positive, got {self.height}")
        if self.total_lines < 0:
            raise ValueError(f"total_lines must be >= 0, got {self.total_lines}")
        if not 0 <= self.offset <= self.max_offset:
            raise ValueError(
                f"offset {self.offset} outside [0, {self.max_offset}]"
            )

    @property
    def max_offset(self) -> int:
        return max(0, self.total_lines - self.height)

    def clamp(self, offset: int) -> int:
        return min(max(offset, 0), self.max_offset)


@dataclass(frozen=True)
class ViewerModel:
    """Everything the view needs: visible lines, their index and the viewport.

    styled and source are the full rendered document and the extracted,
    not yet positioned records; lines and index are derived from them.
    """

    lines: tuple[str, ...] = ()
    index: DocumentIndex = field(default_factory=DocumentIndex)
    viewport: ViewportState = field(default_factory=ViewportState)
    error: Optional[str] = None
    styled: str = ""
    source: DocumentIndex = field(default_factory=DocumentIndex)
    display: DisplayState = field(default_factory=DisplayState)

    @property
    def selected(self) -> Optional[Link]:
        i = self.viewport.selected_link
        if i is None or not 0 <= i < len(self.index.links):
            return None
        return self.index.links[i]


# ============================================================================
# Scroll engine
# ============================================================================

def request_scroll_to(state: ViewportState, target: int) -> ViewportState:
    target = state.clamp(target)
    if target == state.offset:
        return replace(state, animating=False, target_offset=target)
    return replace(state, animating=True, target_offset=target)


def scroll_step(diff: int) -> int:
    """diff / 5 truncated toward zero, but never 0 for a non-zero diff."""
    if diff == 0:
        return 0
    sign = 1 if diff > 0 else -1
    return sign * max(1, abs(diff) // SCROLL_DIVISOR)


def tick(state: ViewportState) -> ViewportState:
    """Advance one animation frame toward target_offset."""
    if not state.animating:
        return state

    target = state.clamp(state.target_offset)
    diff = target - state.offset
    if diff == 0:
        return replace(state, animating=False, target_offset=target)

    new_offset = state.offset + scroll_step(diff)
    if (diff > 0 and new_offset > target) or (diff < 0 and new_offset < target):
        new_offset = target

    return replace(
        state,
        offset=new_offset,
        target_offset=target,
        animating=new_offset != target,
    )


def jump_to(state: ViewportState, offset: int) -> ViewportState:
    """Move instantly; cancels any animation in flight."""
    offset = state.clamp(offset)
    return replace(state, offset=offset, target_offset=offset, animating=False)


def jump_home(state: ViewportState) -> ViewportState:
    return jump_to(state, 0)


def jump_end(state: ViewportState) -> ViewportState:
    return jump_to(state, state.max_offset)


def resize(state: ViewportState, height: int, total_lines: int, link_count: int) -> ViewportState:
    """Fresh viewport for a re-rendered document.

    The offset is clamped into the new range. An in-flight target is left
    alone; tick() re-clamps it against the current bounds.
    """
    height = max(1, height)
    max_offset = max(0, total_lines - height)

    selected = state.selected_link
    if link_count == 0:
        selected = None
    elif selected is not None and selected >= link_count:
        selected = link_count - 1

    return ViewportState(
        offset=min(max(state.offset, 0), max_offset),
        height=height,
        total_lines=total_lines,
        animating=state.animating,
        target_offset=state.target_offset,
        selected_link=selected,
    )


# ============================================================================
# Link navigator
# ============================================================================

def center_on(state: ViewportState, line: int) -> ViewportState:
    """Jump so that line sits mid-viewport; unresolved lines do nothing."""
    if line < 0:
        return state
    return jump_to(state, line - state.height // 2)


def select_next(state: ViewportState, links: tuple[Link, ...]) -> ViewportState:
    if not links:
        return state
    if state.selected_link is None:
        index = 0
    else:
        index = (state.selected_link + 1) % len(links)
    state = replace(state, selected_link=index)
    return center_on(state, links[index].rendered_line)


def select_previous(state: ViewportState, links: tuple[Link, ...]) -> ViewportState:
    if not links:
        return state
    if state.selected_link is None:
        index = len(links) - 1
    else:
        index = (state.selected_link - 1) % len(links)
    state = replace(state, selected_link=index)
    return center_on(state, links[index].rendered_line)


def heading_matches(heading: Heading, anchor: str) -> bool:
    """Exact anchor, slugged heading text, slugged request, or both slugged."""
    return (
        heading.anchor == anchor
        or slugify(heading.text) == anchor
        or heading.anchor == slugify(anchor)
        or slugify(heading.text) == slugify(anchor)
    )


def find_heading(headings: tuple[Heading, ...], anchor: str) -> Optional[Heading]:
    """First heading matching anchor that has a rendered position."""
    for heading in headings:
        if heading_matches(heading, anchor) and heading.resolved:
            return heading
    return None


def follow_selected(
    state: ViewportState, index: DocumentIndex
) -> tuple[ViewportState, Optional[str]]:
    """Act on the selected link.

    Returns the new viewport and, for external targets, the URL to open.
    """
    i = state.selected_link
    if i is None or not 0 <= i < len(index.links):
        return state, None

    link = index.links[i]
    dest = link.target.strip()
    if not dest:
        return state, None

    if not dest.startswith("#"):
        return state, dest

    anchor = dest[1:]
    heading = find_heading(index.headings, anchor)
    if heading is not None:
        return jump_to(state, heading.rendered_line), None

    log.debug("no heading for anchor %r, falling back to link position", anchor)
    if link.resolved:
        return jump_to(state, link.rendered_line), None
    return state, None



# ============================================================================
# Presentation
# ============================================================================

def present(model: ViewerModel, height: Optional[int] = None) -> ViewerModel:
    """Re-derive the visible lines and the index from the styled document."""
    visible = visible_text(model.display)
    lines = tuple(visible.split("\n"))
    index = resolve_positions(model.source.headings, model.source.links, visible)
    if height is None:
        height = model.viewport.height
    viewport = resize(model.viewport, height, len(lines), len(index.links))
    return replace(model, lines=lines, index=index, viewport=viewport)


def advance_display(model: ViewerModel, seconds: float) -> ViewerModel:
    """One frame of transmission, degauss and status-light decay."""
    display = model.display
    changed = False

    if display.streaming:
        before = display.transmission.sent_bytes
        transmission = display.transmission.advance(seconds)
        display = replace(display, transmission=transmission)
        if transmission.sent_bytes > before:
            display = replace(display, rx_blink=BLINK_FRAMES)
            changed = True

    if display.degauss > 0:
        display = replace(display, degauss=display.degauss - 1)
        changed = True

    display = replace(
        display,
        rx_blink=max(0, display.rx_blink - 1),
        tx_blink=max(0, display.tx_blink - 1),
    )
    model = replace(model, display=display)
    return present(model) if changed else model


def change_modes(model: ViewerModel, **changes) -> ViewerModel:
    display = model.display
    display = replace(display, modes=replace(display.modes, **changes), rx_blink=BLINK_FRAMES)
    return present(replace(model, display=display))


# ============================================================================
# Events and the update function
# ============================================================================

@dataclass(frozen=True)
class ScrollTo:
    target: int


@dataclass(frozen=True)
class ScrollBy:
    lines: int


@dataclass(frozen=True)
class ScrollPages:
    pages: int


@dataclass(frozen=True)
class Tick:
    elapsed: float = TICK_SECONDS


@dataclass(frozen=True)
class JumpHome:
    pass


@dataclass(frozen=True)
class JumpEnd:
    pass


@dataclass(frozen=True)
class SelectNextLink:
    pass


@dataclass(frozen=True)
class SelectPreviousLink:
    pass


@dataclass(frozen=True)
class FollowLink:
    pass


@dataclass(frozen=True)
class ToggleScanlines:
    pass


@dataclass(frozen=True)
class CycleMono:
    pass


@dataclass(frozen=True)
class ToggleBbs:
    pass


@dataclass(frozen=True)
class Degauss:
    pass


@dataclass(frozen=True)
class Rendered:
    """A successful (re-)render at a new width, style or terminal size.

    index holds the extracted headings and links; their positions are
    resolved here against the text that will actually be shown.
    """

    styled: str
    index: DocumentIndex
    height: int


@dataclass(frozen=True)
class RenderFailed:
    message: str


Event = Union[
    ScrollTo, ScrollBy, ScrollPages, Tick, JumpHome, JumpEnd,
    SelectNextLink, SelectPreviousLink, FollowLink,
    ToggleScanlines, CycleMono, ToggleBbs, Degauss,
    Rendered, RenderFailed,
]

# Keys that light the TX lamp on the BBS status line.
_TRANSMITTING = (ScrollBy, ScrollPages, JumpHome, JumpEnd, FollowLink)


@dataclass(frozen=True)
class OpenUrl:
    url: str


@dataclass(frozen=True)
class Transition:
    model: ViewerModel
    effects: tuple[OpenUrl, ...] = ()

    @property
    def needs_tick(self) -> bool:
        """True while a scroll animation or a display effect has frames to run."""
        if self.model.error is not None:
            return False
        return self.model.viewport.animating or self.model.display.busy


def update(model: ViewerModel, event: Event) -> Transition:
    if isinstance(event, Rendered):
        model = replace(
            model,
            styled=event.styled,
            source=event.index,
            error=None,
            display=model.display.restart(event.styled),
        )
        return Transition(present(model, event.height))

    if isinstance(event, RenderFailed):
        viewport = replace(
            model.viewport, animating=False, target_offset=model.viewport.offset
        )
        return Transition(replace(model, viewport=viewport, error=event.message))

    # Nothing to scroll until a successful re-render clears the error.
    if model.error is not None:
        return Transition(model)

    if isinstance(event, Tick):
        model = advance_display(model, event.elapsed)
        return Transition(replace(model, viewport=tick(model.viewport)))

    modes = model.display.modes
    if isinstance(event, ToggleScanlines):
        return Transition(change_modes(model, scanlines=not modes.scanlines))
    if isinstance(event, CycleMono):
        return Transition(change_modes(model, mono=modes.mono.next()))
    if isinstance(event, ToggleBbs):
        return Transition(change_modes(model, bbs=not modes.bbs))
    if isinstance(event, Degauss):
        display = replace(
            model.display,
            degauss=DEGAUSS_FRAMES,
            rx_blink=2 * BLINK_FRAMES,
            tx_blink=2 * BLINK_FRAMES,
        )
        return Transition(present(replace(model, display=display)))

    viewport = model.viewport
    effects: tuple[OpenUrl, ...] = ()

    if isinstance(event, ScrollTo):
        viewport = request_scroll_to(viewport, event.target)
    elif isinstance(event, ScrollBy):
        viewport = request_scroll_to(viewport, viewport.offset + event.lines)
    elif isinstance(event, ScrollPages):
        viewport = request_scroll_to(viewport, viewport.offset + event.pages * viewport.height)
    elif isinstance(event, JumpHome):
        viewport = jump_home(viewport)
    elif isinstance(event, JumpEnd):
        viewport = jump_end(viewport)
    elif isinstance(event, SelectNextLink):
        viewport = select_next(viewport, model.index.links)
    elif isinstance(event, SelectPreviousLink):
        viewport = select_previous(viewport, model.index.links)
    elif isinstance(event, FollowLink):
        viewport, url = follow_selected(viewport, model.index)
        if url is not None:
            effects = (OpenUrl(url),)
    else:
        raise TypeError(f"unhandled event: {event!r}")

    display = model.display
    if isinstance(event, _TRANSMITTING) or (
        isinstance(event, (SelectNextLink, SelectPreviousLink)) and model.index.links
    ):
        display = replace(display, tx_blink=BLINK_FRAMES)

    return Transition(replace(model, viewport=viewport, display=display), effects)
