import pytest

SAMPLE = "# Title\n\nSee [here](#title) and [site](https://example.org).\n"


class RecordingOpener:
    """Stands in for the desktop URL handler."""

    def __init__(self):
        self.urls = []

    def open(self, url):
        self.urls.append(url)


@pytest.fixture
def opener():
    return RecordingOpener()


@pytest.fixture
def long_markdown():
    paragraphs = "\n\n".join(f"Paragraph number {i}." for i in range(60))
    return SAMPLE + "\n" + paragraphs + "\n\n## Usage\n\nBack to [the top](#title).\n"


@pytest.fixture
def doc_path(tmp_path, long_markdown):
    path = tmp_path / "doc.md"
    path.write_text(long_markdown, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """No user config file, no MDGLIDE_* overrides, predictable colours."""
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in ("MDGLIDE_STYLE", "MDGLIDE_WRAP", "MDGLIDE_EXTRACTOR",
                "MDGLIDE_LOG_FILE", "MDGLIDE_LOG_LEVEL", "MDGLIDE_SCANLINES",
                "MDGLIDE_MONO", "MDGLIDE_CANVAS_80X25", "MDGLIDE_BBS", "MDGLIDE_BAUDRATE",
                "NO_COLOR", "COLORFGBG"):
        monkeypatch.delenv(key, raising=False)
