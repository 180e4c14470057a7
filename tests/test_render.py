import pytest
from rich.cells import cell_len

import render
from render import (
    RenderError, StyleSpec, detect_background, known_styles, render_markdown,
    resolve_style,
)
from toc import strip_ansi

from conftest import SAMPLE


def test_links_rendered_as_plain_text():
    plain = strip_ansi(render_markdown(SAMPLE, 60, "dark"))
    assert "Title" in plain
    assert "https://example.org" in plain
    assert "\x1b]8;" not in plain


def test_wraps_to_width():
    raw = "word " * 200
    styled = render_markdown(raw, 30, "dark")
    lines = strip_ansi(styled).split("\n")
    assert len(lines) > 10
    assert all(cell_len(line) <= 30 for line in lines)


def test_notty_has_no_escape_sequences():
    assert "\x1b" not in render_markdown(SAMPLE, 40, "notty")


def test_dark_is_colored():
    assert "\x1b[" in render_markdown(SAMPLE, 40, "dark")


def test_no_trailing_newlines():
    assert not render_markdown(SAMPLE, 40, "dark").endswith("\n")


class TestResolveStyle:
    def test_case_and_whitespace_insensitive(self):
        assert resolve_style("  DARK ").name == "dark"

    def test_auto_uses_background_hint(self, monkeypatch):
        assert resolve_style("auto").name == "dark"
        monkeypatch.setenv("COLORFGBG", "0;15")
        assert detect_background() == "light"
        assert resolve_style("").name == "light"

    def test_auto_respects_no_color(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        resolved = resolve_style("auto")
        assert resolved.name == "notty"
        assert not resolved.color

    def test_empty_no_color_is_not_set(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert resolve_style("auto").name == "dark"

    def test_style_registry_scanned_once(self, monkeypatch):
        def rescan():
            raise AssertionError("style registry scanned again")

        monkeypatch.setattr(render, "get_all_styles", rescan)
        assert isinstance(render.PYGMENTS_STYLES, frozenset)
        assert resolve_style("monokai").code_theme == "monokai"
        assert "monokai" in known_styles()

    def test_named_palettes(self):
        assert resolve_style("dracula").styles["markdown.h2"] == "bold #bd93f9"
        assert resolve_style("pink").name == "pink"

    def test_pygments_style_sets_code_theme(self):
        resolved = resolve_style("monokai")
        assert resolved.code_theme == "monokai"
        assert "monokai" in known_styles()

    def test_unknown_falls_back_to_auto(self):
        assert resolve_style("no-such-style") == resolve_style("auto")

    def test_theme_file(self, tmp_path):
        path = tmp_path / "theme.ini"
        path.write_text("[styles]\nmarkdown.h1 = bold red\n", encoding="utf-8")
        resolved = resolve_style(str(path))
        assert resolved.path == path
        theme = resolved.load_theme()
        assert "markdown.h1" in theme.styles
        assert "\x1b[" in render_markdown(SAMPLE, 40, str(path))


@pytest.mark.parametrize("content", [
    "this is not an ini file\n",
    "[colors]\nmarkdown.h1 = red\n",
    "[styles]\nmarkdown.h1 = bold notacolor\n",
])
def test_malformed_theme_file_raises(tmp_path, content):
    path = tmp_path / "bad.ini"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(RenderError):
        render_markdown(SAMPLE, 40, str(path))


def test_style_spec_without_palette_has_no_theme():
    assert StyleSpec(name="notty", color=False).load_theme() is None
