"""Unit tests for ChunkingEngine."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from services.chunking_engine import ChunkingEngine, DEFAULT_SEPARATORS
from services.token_counter import count_tokens
from models.chunk import Chunk


def word_count(text: str) -> int:
    """Whitespace word count, standing in for the tokenizer."""
    return len(text.split())


def make_sentence(label: str, words: int) -> str:
    """Build a sentence of exactly `words` words ending with a period."""
    body = [f"{label}w{j}" for j in range(words - 1)]
    return " ".join(body + [f"{label}end."])


class TestChunkingEngine:
    """Test suite for ChunkingEngine."""

    @pytest.fixture
    def engine(self):
        """Create a ChunkingEngine that counts words instead of tokens."""
        return ChunkingEngine(chunk_size=50, chunk_overlap=10, length_function=word_count)

    def test_defaults(self):
        """Test default configuration."""
        engine = ChunkingEngine()
        assert engine.chunk_size == 1000
        assert engine.chunk_overlap == 200
        assert engine.separators == DEFAULT_SEPARATORS
        assert engine.separators[0] == "\n\n\n"
        assert engine.separators[-1] == ""
        assert engine.length_function is count_tokens

    def test_empty_input(self, engine):
        """Test that empty or blank input yields no chunks."""
        assert engine.split_text("") == []
        assert engine.split_text("   \n\n\t  ") == []

    def test_input_smaller_than_chunk_size(self, engine):
        """Test that small input becomes a single chunk equal to the trimmed input."""
        chunks = engine.split_text("  Small text  ")

        assert chunks == [Chunk(text="Small text", index=0, token_count=2)]

    def test_whitespace_normalization(self, engine):
        """Test that runs of spaces and tabs collapse to one space."""
        chunks = engine.split_text("Hello \t  world\r\nNext   line")

        assert len(chunks) == 1
        assert chunks[0].text == "Hello world\nNext line"

    def test_sentence_boundaries_with_overlap(self, engine):
        """Test a 120-word paragraph with two sentence boundaries."""
        text = " ".join(make_sentence(label, 40) for label in ("a", "b", "c"))
        assert word_count(text) == 120

        chunks = engine.split_text(text)

        assert len(chunks) >= 2
        for chunk in chunks:
            assert chunk.token_count <= 50
            assert chunk.token_count == word_count(chunk.text)

        # chunk_overlap=10 carries one trailing word into the next chunk
        for previous, current in zip(chunks, chunks[1:]):
            assert current.text.split()[0] == previous.text.split()[-1]

    def test_indices_are_contiguous(self, engine):
        """Test that chunk indices start at 0 and are contiguous."""
        text = " ".join(make_sentence(f"s{i}", 30) for i in range(6))

        chunks = engine.split_text(text)

        assert [chunk.index for chunk in chunks] == list(range(len(chunks)))

    def test_no_words_dropped(self, engine):
        """Test that every original word appears in at least one chunk."""
        text = "\n\n".join(
            " ".join(make_sentence(f"p{p}s{s}", 17) for s in range(3))
            for p in range(4)
        )

        chunks = engine.split_text(text)

        chunk_words = set()
        for chunk in chunks:
            chunk_words.update(chunk.text.split())
        assert set(text.split()) <= chunk_words

    def test_prefers_paragraph_boundaries(self):
        """Test that coarse separators are used before finer ones."""
        engine = ChunkingEngine(chunk_size=5, chunk_overlap=0, length_function=word_count)
        text = "First paragraph.\n\nSecond paragraph here with words.\n\nThird."

        chunks = engine.split_text(text)

        assert [chunk.text for chunk in chunks] == [
            "First paragraph.",
            "Second paragraph here with words.",
            "Third.",
        ]

    def test_falls_back_to_characters(self):
        """Test that text without any separator is split into characters."""
        engine = ChunkingEngine(chunk_size=10, chunk_overlap=0, length_function=len)
        text = "abcdefghijklmnopqrstuvwxyz"

        chunks = engine.split_text(text)

        assert [chunk.text for chunk in chunks] == ["abcdefghij", "klmnopqrst", "uvwxyz"]
        assert "".join(chunk.text for chunk in chunks) == text

    def test_oversized_segment_is_split_finer(self):
        """Test that a paragraph larger than chunk_size is split on finer separators."""
        engine = ChunkingEngine(chunk_size=12, chunk_overlap=0, length_function=word_count)
        long_paragraph = "one two three four five six, seven eight nine ten eleven twelve, thirteen fourteen."
        text = f"Intro line.\n\n{long_paragraph}"

        chunks = engine.split_text(text)

        assert all(chunk.token_count <= 12 for chunk in chunks)
        assert chunks[0].text.startswith("Intro line.")

    def test_overlap_shrinks_to_fit(self):
        """Test that a large overlap window never pushes a chunk over chunk_size."""
        engine = ChunkingEngine(chunk_size=10, chunk_overlap=100, length_function=word_count)
        text = " ".join(f"word{i}" for i in range(30))

        chunks = engine.split_text(text)

        assert len(chunks) > 1
        assert all(chunk.token_count <= 10 for chunk in chunks)
        assert chunks[-1].text.split()[-1] == "word29"

    def test_zero_overlap(self):
        """Test that chunk_overlap=0 produces disjoint chunks."""
        engine = ChunkingEngine(chunk_size=50, chunk_overlap=0, length_function=word_count)
        text = " ".join(make_sentence(label, 40) for label in ("a", "b", "c"))

        chunks = engine.split_text(text)

        all_words = [word for chunk in chunks for word in chunk.text.split()]
        assert all_words == text.split()

    def test_split_documents(self, engine):
        """Test batch splitting returns one independently indexed list per document."""
        long_text = " ".join(make_sentence(label, 40) for label in ("a", "b"))

        results = engine.split_documents(["Short document.", "", long_text])

        assert len(results) == 3
        assert [c.index for c in results[0]] == [0]
        assert results[1] == []
        assert [c.index for c in results[2]] == list(range(len(results[2])))

    def test_chunks_are_immutable(self, engine):
        """Test that produced chunks cannot be mutated."""
        chunk = engine.split_text("Some text")[0]

        with pytest.raises(AttributeError):
            chunk.text = "changed"

    @pytest.mark.parametrize("chunk_overlap, expected_words", [(5, 1), (15, 2), (25, 3), (4, 0)])
    def test_overlap_rounds_half_up(self, chunk_overlap, expected_words):
        """Test that the overlap word count rounds halves up."""
        engine = ChunkingEngine(chunk_size=50, chunk_overlap=chunk_overlap, length_function=word_count)

        words = ["one", "two", "three", "four", "five"]

        seeded = engine._seed_with_overlap(" ".join(words), "next.")

        assert seeded.split()[:-1] == words[len(words) - expected_words:]
