import pytest

from services.vector_index.ChunkingService import ChunkingService


def _sentences(count: int, length: int = 100) -> str:
    # every sentence is exactly ``length`` characters including its period
    return " ".join(f"S{i:03d} " + "x" * (length - 6) + "." for i in range(count))


def test_short_text_is_one_chunk():
    text = "Short text. Still short."
    assert ChunkingService().chunk(text, size=1000, overlap=200) == [text]
    exact = "y" * 1000
    assert ChunkingService().chunk(exact, size=1000, overlap=200) == [exact]


def test_empty_text():
    assert ChunkingService().chunk("", 1000, 200) == []
    assert ChunkingService().chunk("   \n ", 1000, 200) == []


def test_invalid_overlap():
    with pytest.raises(ValueError):
        ChunkingService().chunk("abc", size=100, overlap=100)


def test_simple_chunk_reconstructs_text():
    text = "".join(chr(ord("a") + i % 26) for i in range(2345))
    size, overlap = 300, 70
    chunks = ChunkingService().simple_chunk(text, size, overlap)

    assert all(len(c) <= size for c in chunks)
    rebuilt = chunks[0] + "".join(c[overlap:] for c in chunks[1:])
    assert rebuilt == text


def test_text_without_punctuation_falls_back_to_window():
    text = "z" * 2500
    chunks = ChunkingService().chunk(text, size=1000, overlap=200)
    assert chunks == ChunkingService().simple_chunk(text, 1000, 200)
    assert len(chunks) == 3


def test_smart_chunks_respect_size_and_seed_overlap():
    text = _sentences(25)
    chunks = ChunkingService().chunk(text, size=1000, overlap=200)

    assert 3 <= len(chunks) <= 4
    assert all(len(c) <= 1000 for c in chunks)
    # the last sentence of a chunk opens the next one
    for previous, following in zip(chunks, chunks[1:]):
        last_sentence = previous.split(". ")[-1]
        assert following.startswith(last_sentence.rstrip("."))
    assert chunks[0].startswith("S000")
    assert chunks[-1].endswith("S024 " + "x" * 94 + ".")


def test_oversized_sentence_is_windowed():
    long_sentence = "w" * 1500 + "."
    text = "Intro sentence. " + long_sentence + " Outro sentence."
    chunks = ChunkingService().chunk(text, size=1000, overlap=200)

    assert chunks[0] == "Intro sentence."
    assert chunks[1] == "w" * 1000
    assert chunks[-1] == "Outro sentence."
    assert all(len(c) <= 1000 for c in chunks)


def test_deterministic():
    text = _sentences(40, 77)
    assert ChunkingService().chunk(text, 500, 100) == ChunkingService().chunk(text, 500, 100)


def test_split_sentences():
    assert ChunkingService.split_sentences("One. Two?! Three") == ["One.", "Two?!", "Three"]


def test_chunk_by_separator_and_stats():
    chunks = ChunkingService.chunk_by_separator("a\n\nbb\n\nccc", "\n\n", 6)
    assert chunks == ["a\n\nbb", "ccc"]
    assert ChunkingService.chunk_stats(chunks) == {
        "count": 2, "total_size": 8, "avg_size": 4, "min_size": 3, "max_size": 5,
    }
