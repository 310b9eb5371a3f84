"""Markdown section extraction."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

MAX_CHUNK_SIZE = 2000

MARKDOWN_EXTENSIONS = frozenset({".md", ".markdown"})

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


@dataclass(frozen=True)
class Section:
    """A searchable slice of a Markdown document."""

    index: int
    heading: str
    content: str


def _by_heading(text: str) -> Iterator[tuple[str, str]]:
    """Yield ``(heading, body)`` per ``##`` heading; the preamble has heading ``""``."""
    heading = ""
    body: list[str] = []
    for line in text.splitlines():
        if line.startswith("## "):
            yield heading, "\n".join(body).strip()
            heading, body = line[3:].strip(), []
        elif heading or not (line == "#" or line.startswith("# ")):
            body.append(line)
    yield heading, "\n".join(body).strip()


def _pack(body: str) -> list[str]:
    """Greedily join paragraphs into pieces of at most MAX_CHUNK_SIZE characters.

    A single paragraph longer than the limit is kept whole.
    """
    pieces: list[str] = []
    for paragraph in _PARAGRAPH_BREAK.split(body):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if pieces and len(pieces[-1]) + 2 + len(paragraph) <= MAX_CHUNK_SIZE:
            pieces[-1] = f"{pieces[-1]}\n\n{paragraph}"
        else:
            pieces.append(paragraph)
    return pieces


def chunk_markdown(text: str) -> list[Section]:
    """Cut a Markdown document into sections at level-two headings.

    H1 title lines before the first ``##`` are not content. A section whose
    body exceeds :data:`MAX_CHUNK_SIZE` becomes several sections sharing the
    heading. Indexes count from zero in document order.
    """
    sections: list[Section] = []
    for heading, body in _by_heading(text):
        if not heading and not body:
            continue
        pieces = [body] if len(body) <= MAX_CHUNK_SIZE else _pack(body)
        for content in pieces:
            sections.append(Section(len(sections), heading, content))
    return sections
