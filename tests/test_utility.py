import os
import subprocess
from pathlib import Path

import pytest
from rich.cells import cell_len

import utility
from crt import DisplayModes, DisplayState, MonoMode
from navigation import ViewerModel, ViewportState
from toc import DocumentIndex, Link
from utility import (
    EMPTY, FILLED, LAMP_OFF, LAMP_ON, SystemUrlOpener, bbs_status_line, body_text,
    display_badges, footer_text, header_text,
    human_size, progress_bar, truncate_to_width,
)


@pytest.mark.parametrize("n, expected", [
    (0, "0B"),
    (1023, "1023B"),
    (1024, "1.00KB"),
    (1536, "1.50KB"),
    (5 * 1024 ** 2, "5.00MB"),
    (3 * 1024 ** 6, "3072.00PB"),
])
def test_human_size(n, expected):
    assert human_size(n) == expected


def test_truncate_to_width():
    assert truncate_to_width("abcdef", 10) == "abcdef"
    assert truncate_to_width("abcdef", 3) == "abc"


class TestProgressBar:
    def test_tiny_widths_are_all_filled(self):
        assert progress_bar(2, 0.0) == FILLED * 2
        assert progress_bar(0, 0.5) == ""

    def test_fill_proportional(self):
        assert progress_bar(10, 0.5) == FILLED * 5 + EMPTY * 5
        assert progress_bar(10, 1.5) == FILLED * 10

    def test_label_centered(self):
        bar = progress_bar(20, 0.0, " 5 / 5 ")
        assert bar == EMPTY * 6 + " 5 / 5 " + EMPTY * 7

    def test_label_too_wide_is_dropped(self):
        assert progress_bar(5, 0.0, " 10 / 10 ") == EMPTY * 5


class TestFooter:
    def test_document_shorter_than_viewport(self):
        footer = footer_text(ViewportState(height=10, total_lines=5), 20)
        assert footer == EMPTY * 6 + " 5 / 5 " + EMPTY * 7

    def test_at_bottom(self):
        footer = footer_text(ViewportState(height=10, total_lines=50, offset=40), 20)
        assert " 50 / 50 " in footer
        assert EMPTY not in footer

    def test_midway(self):
        footer = footer_text(ViewportState(height=10, total_lines=50, offset=20), 40)
        assert footer.startswith(FILLED * 15)
        assert " 30 / 50 " in footer

    def test_empty_document(self):
        assert " 0 / 1 " in footer_text(ViewportState(height=10, total_lines=0), 20)


class TestDisplayDressing:
    def test_badges_in_header_order(self):
        modes = DisplayModes(scanlines=True, mono=MonoMode.AMBER, canvas_80x25=True,
                             bbs=True, baudrate=2400)
        display = DisplayState(modes=modes).restart("some text")
        assert display_badges(display) == [
            "80x25", "Scanlines", "Mono:Amber", "BBS", "RX 240B/s",
        ]

    def test_no_badges_when_idle(self):
        assert display_badges(DisplayState().restart("text")) == []

    def test_header_with_badges_fits_width(self):
        path = Path("/very/long/path/to/some/deeply/nested/document.md")
        header = header_text(path, 0, 2048, 70, caps="TC", badges=["Scanlines", "BBS"])
        assert cell_len(header) == 70
        assert "[Scanlines | BBS]" in header
        assert header.endswith("2.00KB [TC]")

    def test_bbs_line_replaces_progress_bar(self):
        display = DisplayState(modes=DisplayModes(bbs=True, baudrate=9600), rx_blink=2)
        footer = footer_text(ViewportState(height=10, total_lines=50), 80, display)
        assert cell_len(footer) == 80
        assert footer.startswith(" CONNECT 9600  RX:" + LAMP_ON + " TX:" + LAMP_OFF)
        assert FILLED not in footer and EMPTY not in footer

    def test_bbs_off_keeps_progress_bar(self):
        footer = footer_text(ViewportState(height=10, total_lines=50), 40, DisplayState())
        assert " 10 / 50 " in footer

    def test_bbs_line_cropped_to_narrow_footer(self):
        display = DisplayState(modes=DisplayModes(bbs=True))
        assert cell_len(bbs_status_line(12, display)) == 12


def test_header_fits_width():
    path = Path("/very/long/path/to/some/deeply/nested/document.md")
    header = header_text(path, 0, 2048, 60, caps="TC")
    assert len(header) == 60
    assert header.startswith("/very/long")
    assert header.endswith("2.00KB [TC]")


def test_header_uses_rfc3339_mtime():
    header = header_text(Path("/a.md"), 86400, 10, 80, caps="16")
    right = header.split()[-3]
    assert right.startswith("1970-01-0")
    assert "T" in right


class TestBodyText:
    def model(self, selected=None, offset=0):
        lines = tuple(f"line {i} see \x1b[4mhere\x1b[0m" for i in range(20))
        index = DocumentIndex(links=(Link(text="here", target="#x", rendered_line=5),))
        viewport = ViewportState(height=4, total_lines=20, offset=offset, selected_link=selected)
        return ViewerModel(lines=lines, index=index, viewport=viewport)

    def test_visible_slice(self):
        text = body_text(self.model(offset=3))
        assert text.plain.split("\n") == [f"line {i} see here" for i in range(3, 7)]

    def test_selected_link_highlighted(self):
        text = body_text(self.model(selected=0, offset=3))
        line = text.plain.split("\n")[2]
        start = sum(len(l) + 1 for l in text.plain.split("\n")[:2]) + line.find("here")
        reversed_spans = [s for s in text.spans if s.style == utility.SELECTED_LINK_STYLE]
        assert [(s.start, s.end) for s in reversed_spans] == [(start, start + 4)]

    def test_offscreen_selection_not_highlighted(self):
        text = body_text(self.model(selected=0, offset=10))
        assert not [s for s in text.spans if s.style == utility.SELECTED_LINK_STYLE]


@pytest.mark.skipif(os.name == "nt", reason="posix launcher")
class TestSystemUrlOpener:
    def test_spawns_detached(self, monkeypatch):
        calls = []

        def fake_popen(args, **kwargs):
            calls.append((args, kwargs))

        monkeypatch.setattr(utility.subprocess, "Popen", fake_popen)
        SystemUrlOpener().open("https://example.org")

        (args, kwargs), = calls
        assert args[-1] == "https://example.org"
        assert kwargs["stdout"] is subprocess.DEVNULL
        assert kwargs["start_new_session"] is True

    def test_failure_is_swallowed(self, monkeypatch):
        def broken_popen(args, **kwargs):
            raise FileNotFoundError("xdg-open")

        monkeypatch.setattr(utility.subprocess, "Popen", broken_popen)
        SystemUrlOpener().open("https://example.org")
