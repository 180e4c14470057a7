"""
Document index: headings and links pulled from the markdown source and
located in the rendered terminal output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional, Protocol

from markdown_it import MarkdownIt
from markdown_it.token import Token

from logger import get_logger

log = get_logger(__name__)

UNRESOLVED = -1

# SGR/CSI sequences, OSC sequences (OSC 8 hyperlinks included) and stray ST.
ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)|\x1b\\")

HEADING_RE = re.compile(r"^ {0,3}#{1,6}[ \t]+(.*)$", re.MULTILINE)
LINK_RE = re.compile(r"\[(?P<text>[^\]]+)\]\((?P<dest>[^)]+)\)")

_SLUG_DROP_RE = re.compile(r"[^a-z0-9 \-]")
_SLUG_JOIN_RE = re.compile(r"[\s\-]+")


@dataclass(frozen=True)
class Heading:
    text: str
    anchor: str
    rendered_line: int = UNRESOLVED

    @property
    def resolved(self) -> bool:
        return self.rendered_line >= 0


@dataclass(frozen=True)
class Link:
    text: str
    target: str
    rendered_line: int = UNRESOLVED

    @property
    def resolved(self) -> bool:
        return self.rendered_line >= 0

    @property
    def is_anchor(self) -> bool:
        return self.target.startswith("#")

    @property
    def needle(self) -> str:
        """Text searched for in the rendered output.

        An anchor never shows up in rendered prose, so anchor links are found
        by their display text instead.
        """
        return self.text if self.is_anchor else self.target


@dataclass(frozen=True)
class DocumentIndex:
    headings: tuple[Heading, ...] = ()
    links: tuple[Link, ...] = ()


def slugify(text: str) -> str:
    """GitHub-style anchor: 'Getting Started!' -> 'getting-started'."""
    kept = _SLUG_DROP_RE.sub("", text.lower())
    return _SLUG_JOIN_RE.sub("-", kept).strip("-")


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


def index_line_of(haystack: str, needle: str) -> int:
    """Zero-based line of the first occurrence of needle, or UNRESOLVED."""
    if not needle:
        return UNRESOLVED
    pos = haystack.find(needle)
    if pos < 0:
        return UNRESOLVED
    return haystack.count("\n", 0, pos)


# ============================================================================
# Extractors
# ============================================================================

class Extractor(Protocol):
    def extract(self, raw: str) -> tuple[list[Heading], list[Link]]:
        ...


class RegexExtractor:
    """Line-pattern scan of the raw source.

    Code spans and fenced blocks are not excluded: a '# comment' inside a
    fence is reported as a heading.
    """

    name = "regex"

    def extract(self, raw: str) -> tuple[list[Heading], list[Link]]:
        headings = []
        for match in HEADING_RE.finditer(raw):
            text = match.group(1).strip()
            if not text:
                continue
            headings.append(Heading(text=text, anchor=slugify(text)))

        links = [
            Link(text=match.group("text"), target=match.group("dest"))
            for match in LINK_RE.finditer(raw)
        ]
        return headings, links


class MarkdownItExtractor:
    """Token-based scan using markdown-it; skips code spans and code blocks."""

    name = "markdown-it"

    def __init__(self):
        self._parser = MarkdownIt("commonmark").enable(["table", "strikethrough"])

    def extract(self, raw: str) -> tuple[list[Heading], list[Link]]:
        tokens = self._parser.parse(raw)
        headings: list[Heading] = []
        links: list[Link] = []

        i = 0
        while i < len(tokens):
            token = tokens[i]

            if token.type == "heading_open":
                i += 1
                if i < len(tokens) and tokens[i].type == "inline":
                    text = self._extract_text_from_inline(tokens[i]).strip()
                    if text:
                        headings.append(Heading(text=text, anchor=slugify(text)))
                    links.extend(self._extract_links(tokens[i]))
                i += 1

            elif token.type == "inline":
                links.extend(self._extract_links(token))
                i += 1

            else:
                i += 1

        return headings, links

    def _extract_text_from_inline(self, token: Token) -> str:
        if not token.children:
            return token.content
        return "".join(
            c.content for c in token.children if c.type in ("text", "code_inline")
        )

    def _extract_links(self, token: Token) -> list[Link]:
        links = []
        in_link = False
        link_text = ""
        link_href = ""

        for child in token.children or []:
            if child.type == "link_open":
                # href arrives percent-encoded; targets keep the source spelling.
                link_href = self._parser.normalizeLinkText(str(child.attrGet("href") or ""))
                link_text = ""
                in_link = True

            elif child.type in ("text", "code_inline") and in_link:
                link_text += child.content

            elif child.type == "link_close":
                if link_href:
                    links.append(Link(text=link_text or link_href, target=link_href))
                in_link = False
                link_text = ""
                link_href = ""

        return links


EXTRACTORS = {
    RegexExtractor.name: RegexExtractor,
    MarkdownItExtractor.name: MarkdownItExtractor,
}


def get_extractor(name: str) -> Extractor:
    try:
        return EXTRACTORS[name]()
    except KeyError:
        raise ValueError(f"unknown extractor: {name!r} (use {', '.join(EXTRACTORS)})") from None


# ============================================================================
# Position resolver
# ============================================================================

def resolve_positions(
    headings: list[Heading], links: list[Link], styled: str
) -> DocumentIndex:
    """Assign rendered_line to every record against the current styled output.

    Identical texts all land on the first occurrence.
    """
    plain = strip_ansi(styled)
    resolved_headings = tuple(
        replace(h, rendered_line=index_line_of(plain, h.text)) for h in headings
    )
    resolved_links = tuple(
        replace(link, rendered_line=index_line_of(plain, link.needle)) for link in links
    )

    unresolved = sum(1 for r in resolved_headings + resolved_links if not r.resolved)
    if unresolved:
        log.debug("%d of %d index entries not found in rendered output",
                  unresolved, len(resolved_headings) + len(resolved_links))
    return DocumentIndex(headings=resolved_headings, links=resolved_links)


def build_index(raw: str, styled: str, extractor: Optional[Extractor] = None) -> DocumentIndex:
    """Extract from the raw source, then resolve against the styled output."""
    extractor = extractor or RegexExtractor()
    headings, links = extractor.extract(raw)
    return resolve_positions(headings, links, styled)
