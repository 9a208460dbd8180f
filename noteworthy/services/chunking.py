"""Text normalization and markdown-aware chunking service."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass


@dataclass
class TextChunk:
    """A chunk of text with its position index."""
    index: int
    content: str
    char_count: int


def normalize_text(text: str) -> str:
    """Normalize unicode, drop control characters, tidy line endings."""
    text = unicodedata.normalize("NFC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    # Remove control characters (except newlines and tabs)
    text = "".join(
        ch for ch in text
        if ch in "\n\t" or unicodedata.category(ch) != "Cc"
    )
    # Trailing spaces on each line carry no meaning in markdown prose
    text = re.sub(r"[ \t]+\n", "\n", text)
    # Collapse multiple blank lines into at most two newlines
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


# Separators ordered by preference: markdown structure first, characters last.
# Regexes without capturing groups; a match is kept at the start of the next piece.
MARKDOWN_SEPARATORS = [
    r"\n#{1,6} ",      # headings
    r"```\n",          # fenced code blocks
    r"\n\*\*\*+\n",    # horizontal rules
    r"\n---+\n",
    r"\n___+\n",
    r"\n\n",           # paragraph breaks
    r"\n",             # line breaks
    r" ",              # word boundaries
    "",                # character-level fallback
]


def chunk_text(
    text: str,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
    separators: list[str] | None = None,
) -> list[TextChunk]:
    """Split text into overlapping chunks using recursive splitting.

    Args:
        text: The input text to chunk (plain text or markdown).
        chunk_size: Maximum characters per chunk.
        chunk_overlap: Maximum characters repeated from the end of one chunk
            at the start of the next when a break is forced.
        separators: Ordered regex separators to try. Defaults to markdown
            structure → paragraphs → lines → words → characters.

    Returns:
        List of TextChunk objects, each non-empty and at most chunk_size long.
        Identical input and arguments always give the identical list.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size")

    text = normalize_text(text)
    if not text:
        return []

    seps = list(separators or MARKDOWN_SEPARATORS)
    if seps[-1] != "":
        seps.append("")

    pieces = _split_text(text, seps, chunk_size, chunk_overlap)
    return [
        TextChunk(index=i, content=piece, char_count=len(piece))
        for i, piece in enumerate(pieces)
    ]


def _split_keeping_separator(text: str, separator: str) -> list[str]:
    if separator == "":
        return list(text)
    parts = re.split(f"({separator})", text)
    pieces = [parts[0]]
    # parts alternates text / separator / text ...
    for i in range(1, len(parts), 2):
        pieces.append(parts[i] + parts[i + 1])
    return [p for p in pieces if p]


def _split_text(
    text: str,
    separators: list[str],
    chunk_size: int,
    chunk_overlap: int,
) -> list[str]:
    """Split on the first separator present, recursing into oversized pieces."""
    separator = separators[-1]
    remaining: list[str] = []
    for i, sep in enumerate(separators):
        if sep == "" or re.search(sep, text):
            separator = sep
            remaining = separators[i + 1:]
            break

    chunks: list[str] = []
    small: list[str] = []
    for piece in _split_keeping_separator(text, separator):
        if len(piece) <= chunk_size:
            small.append(piece)
            continue
        if small:
            chunks.extend(_merge_pieces(small, chunk_size, chunk_overlap))
            small = []
        if remaining:
            chunks.extend(_split_text(piece, remaining, chunk_size, chunk_overlap))
        else:
            # Only reachable without the "" fallback
            chunks.extend(piece[i:i + chunk_size].strip() for i in range(0, len(piece), chunk_size))
    if small:
        chunks.extend(_merge_pieces(small, chunk_size, chunk_overlap))
    return [c for c in chunks if c]


def _merge_pieces(pieces: list[str], chunk_size: int, chunk_overlap: int) -> list[str]:
    """Greedily join pieces up to chunk_size, carrying whole pieces as overlap."""
    merged: list[str] = []
    window: list[str] = []
    total = 0

    for piece in pieces:
        length = len(piece)
        if window and total + length > chunk_size:
            joined = "".join(window).strip()
            if joined:
                merged.append(joined)
            # Drop pieces from the front until the tail fits the overlap budget
            # and leaves room for the incoming piece
            while window and (total > chunk_overlap or total + length > chunk_size):
                total -= len(window.pop(0))
        window.append(piece)
        total += length

    joined = "".join(window).strip()
    if joined:
        merged.append(joined)
    return merged
