"""Unit tests for the chunking service."""

import pytest

from noteworthy.services.chunking import chunk_text, normalize_text


def test_normalize_strips_trailing_spaces_and_blank_runs():
    raw = "  Hello   world  \n\n\n\n  foo  "
    assert normalize_text(raw) == "Hello   world\n\n  foo"


def test_normalize_line_endings_and_control_chars():
    raw = "Hello\x00\x01World\r\nnext\rline\tend"
    assert normalize_text(raw) == "HelloWorld\nnext\nline\tend"


def test_chunk_empty_returns_empty():
    assert chunk_text("") == []
    assert chunk_text("   ") == []
    assert chunk_text("\n\n\t\n") == []


def test_chunk_short_text_single_chunk():
    text = "Hello, world!"
    chunks = chunk_text(text, chunk_size=100)
    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].content == "Hello, world!"
    assert chunks[0].char_count == len("Hello, world!")


def test_chunk_respects_size_limit():
    text = "word " * 400
    chunks = chunk_text(text, chunk_size=200, chunk_overlap=50)
    assert len(chunks) > 1
    for chunk in chunks:
        assert 0 < chunk.char_count <= 200
        assert chunk.content.strip() == chunk.content


def test_chunk_indices_are_sequential():
    text = "Paragraph one.\n\nParagraph two.\n\nParagraph three.\n\nParagraph four."
    chunks = chunk_text(text, chunk_size=30, chunk_overlap=0)
    assert [c.index for c in chunks] == list(range(len(chunks)))


def test_chunk_is_deterministic():
    text = "\n\n".join(f"## Section {i}\n" + "Some content here. " * 30 for i in range(6))
    first = chunk_text(text, chunk_size=300, chunk_overlap=60)
    second = chunk_text(text, chunk_size=300, chunk_overlap=60)
    assert [c.content for c in first] == [c.content for c in second]


def test_chunk_prefers_heading_boundaries():
    text = "# Intro\nalpha beta gamma\n## Details\ndelta epsilon zeta"
    chunks = chunk_text(text, chunk_size=40, chunk_overlap=0)
    assert [c.content for c in chunks] == [
        "# Intro\nalpha beta gamma",
        "## Details\ndelta epsilon zeta",
    ]


def test_chunk_overlap_repeats_tail_words():
    text = " ".join(f"w{i:02d}" for i in range(40))
    chunks = chunk_text(text, chunk_size=50, chunk_overlap=20)

    assert len(chunks) >= 3
    assert chunks[0].content.split()[-1] == "w11"
    # The next chunk starts inside the previous one
    assert chunks[1].content.split()[0] == "w07"
    for prev, nxt in zip(chunks, chunks[1:]):
        assert nxt.content.split()[0] in prev.content.split()


def test_chunk_unbroken_text_falls_back_to_characters():
    chunks = chunk_text("x" * 250, chunk_size=100, chunk_overlap=0)
    assert [c.char_count for c in chunks] == [100, 100, 50]


def test_chunk_large_text():
    """Ensure we can handle a substantial document."""
    text = "\n\n".join([f"Section {i}. " + ("Content. " * 50) for i in range(10)])
    chunks = chunk_text(text, chunk_size=512, chunk_overlap=64)
    assert len(chunks) > 5
    total_chars = sum(c.char_count for c in chunks)
    assert total_chars > len(text) * 0.9


@pytest.mark.parametrize("size,overlap", [(0, 0), (-5, 0), (100, 100), (100, -1)])
def test_chunk_rejects_bad_arguments(size, overlap):
    with pytest.raises(ValueError):
        chunk_text("some text", chunk_size=size, chunk_overlap=overlap)
