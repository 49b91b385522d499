"""Markdown conversion and comment formatting for schema documentation text."""

from __future__ import annotations

import re
from enum import Enum
from html.parser import HTMLParser
from typing import NamedTuple

import markdown2

from ..core.config import TargetFormat

MARKDOWN_EXTRAS = ["tables", "fenced-code-blocks"]

_BLOCK_TAGS = {"p", "pre", "blockquote", "table", "ul", "ol", "h1", "h2", "h3", "h4", "h5", "h6"}
_LINE_TAGS = {"li", "tr", "br", "hr"}


def to_html(text: str) -> str:
    """Convert markdown to an HTML fragment (no trailing newline)."""
    return str(markdown2.markdown(text, extras=MARKDOWN_EXTRAS)).strip()


class _TextExtractor(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._list_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in ("ul", "ol"):
            self._list_depth += 1
        elif tag == "li":
            if self.parts and not self.parts[-1].endswith("\n"):
                self.parts.append("\n")
            self.parts.append("  " * (self._list_depth - 1) + "- ")
        elif tag in ("td", "th") and self.parts and not self.parts[-1].endswith("\n"):
            self.parts.append(" | ")

    def handle_endtag(self, tag):
        if tag in ("ul", "ol"):
            self._list_depth -= 1
        if tag in _BLOCK_TAGS:
            self.parts.append("\n\n")
        elif tag in _LINE_TAGS:
            self.parts.append("\n")

    def handle_startendtag(self, tag, attrs):
        if tag in _LINE_TAGS:
            self.parts.append("\n")

    def handle_data(self, data):
        # whitespace between block tags
        if not data.strip() and "\n" in data:
            return
        self.parts.append(data)

    def text(self) -> str:
        joined = "".join(self.parts)
        joined = re.sub(r"[ \t]+\n", "\n", joined)
        joined = re.sub(r"\n{3,}", "\n\n", joined)
        return joined.strip()


def to_text(text: str) -> str:
    """Convert markdown to plain text: markup removed, paragraphs kept."""
    extractor = _TextExtractor()
    extractor.feed(to_html(text))
    extractor.close()
    return extractor.text()


def convert(text: str, target: TargetFormat | str) -> str:
    """Convert markdown ``text`` to ``target`` (``markdown`` returns it unchanged)."""
    target = TargetFormat(target)
    if target is TargetFormat.HTML:
        return to_html(text)
    if target is TargetFormat.TEXT:
        return to_text(text)
    return text


class CommentStyle(str, Enum):
    C = "c"
    JAVADOC = "javadoc"
    SLASH = "slash"
    RUSTDOC = "rustdoc"
    HASH = "hash"
    DASH = "dash"
    XML = "xml"


class _Delimiters(NamedTuple):
    header: str | None
    prefix: str
    footer: str | None
    unsafe: str | None
    safe: str | None


_DELIMITERS = {
    CommentStyle.C: _Delimiters("/*", " * ", " */", "*/", "*\\/"),
    CommentStyle.JAVADOC: _Delimiters("/**", " * ", " */", "*/", "*&#47;"),
    CommentStyle.SLASH: _Delimiters(None, "// ", None, None, None),
    CommentStyle.RUSTDOC: _Delimiters(None, "/// ", None, None, None),
    CommentStyle.HASH: _Delimiters(None, "# ", None, None, None),
    CommentStyle.DASH: _Delimiters(None, "-- ", None, None, None),
    CommentStyle.XML: _Delimiters("<!--", "  ", "-->", "--", "- -"),
}


def comment(text: str, style: CommentStyle | str = CommentStyle.SLASH, indent: int = 0) -> str:
    """Format ``text`` as a comment block in ``style``.

    The first line carries no indentation (the template positions it);
    every following line is indented by ``indent`` spaces. Sequences that
    would close the comment early are neutralised.
    """
    delimiters = _DELIMITERS[CommentStyle(style)]
    if delimiters.unsafe:
        while delimiters.unsafe in text:
            text = text.replace(delimiters.unsafe, delimiters.safe)

    lines = []
    if delimiters.header:
        lines.append(delimiters.header)
    for line in text.strip("\n").splitlines() or [""]:
        lines.append((delimiters.prefix + line).rstrip())
    if delimiters.footer:
        lines.append(delimiters.footer)

    pad = " " * indent
    return ("\n" + pad).join(lines)
