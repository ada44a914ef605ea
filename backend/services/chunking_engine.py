"""Chunking engine with semantic-boundary-aware recursive splitting."""
import logging
import re
from typing import Callable, List, Optional, Sequence

from models.chunk import Chunk
from services.token_counter import count_tokens
from config import CHUNK_SIZE, CHUNK_OVERLAP

logger = logging.getLogger(__name__)

# Separators for recursive splitting (coarsest to finest)
DEFAULT_SEPARATORS = [
    "\n\n\n",
    "\n\n",
    "\n",
    ". ",
    "! ",
    "? ",
    ": ",
    "; ",
    ", ",
    " ",
    "",
]


class ChunkingEngine:
    """Segments document text into bounded, overlapping chunks."""

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        separators: Optional[Sequence[str]] = None,
        length_function: Callable[[str], int] = count_tokens
    ):
        """
        Initialize ChunkingEngine.

        Args:
            chunk_size: Maximum chunk size in tokens
            chunk_overlap: Target overlap between consecutive chunks in tokens.
                The overlap is taken as roughly chunk_overlap / 10 trailing
                words of the previous chunk.
            separators: Separators in priority order, coarsest first
            length_function: Token counter (tokenizer of the downstream model)
        """
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = list(separators) if separators is not None else list(DEFAULT_SEPARATORS)
        self.length_function = length_function

    def split_text(self, text: str) -> List[Chunk]:
        """
        Split text into chunks respecting token limits and semantic boundaries.

        Args:
            text: Raw document text

        Returns:
            Ordered list of chunks indexed from 0; empty for blank input
        """
        text = self._normalize(text)
        if not text:
            return []

        if self.length_function(text) <= self.chunk_size:
            return [Chunk(text=text, index=0, token_count=self.length_function(text))]

        segments = self._split_segments(text, self.separators)
        chunks_text = self._merge_segments(segments)

        chunks = [
            Chunk(text=chunk_text, index=idx, token_count=self.length_function(chunk_text))
            for idx, chunk_text in enumerate(chunks_text)
        ]
        logger.debug(f"Split {len(text)} characters into {len(chunks)} chunks")
        return chunks

    def split_documents(self, texts: Sequence[str]) -> List[List[Chunk]]:
        """
        Split several documents, one chunk list per document.

        Args:
            texts: Raw document texts

        Returns:
            List of chunk lists, each indexed from 0
        """
        results = [self.split_text(text) for text in texts]
        logger.info(
            f"Created {sum(len(chunks) for chunks in results)} chunks from {len(texts)} documents"
        )
        return results

    def _normalize(self, text: str) -> str:
        """Normalize line endings and collapse runs of spaces and tabs."""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = re.sub(r"[ \t\f\v]+", " ", text)
        text = re.sub(r" *\n *", "\n", text)
        return text.strip()

    def _split_segments(self, text: str, separators: List[str]) -> List[str]:
        """
        Recursively split text into segments no larger than chunk_size.

        The coarsest separator present in the text is used first; segments
        that are still too large are split again with the finer separators.
        The empty separator splits into single characters.

        Args:
            text: Text to split
            separators: Remaining separators, coarsest first

        Returns:
            Segments that concatenate back to the input text
        """
        separator = separators[-1] if separators else ""
        finer: List[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "" or candidate in text:
                separator = candidate
                finer = separators[i + 1:]
                break

        if separator:
            parts = text.split(separator)
            # Keep the separator attached to the preceding part
            parts = [part + separator for part in parts[:-1]] + [parts[-1]]
        else:
            parts = list(text)

        segments = []
        for part in parts:
            if not part:
                continue
            if not finer or self.length_function(part.strip()) <= self.chunk_size:
                segments.append(part)
            else:
                segments.extend(self._split_segments(part, finer))
        return segments

    def _merge_segments(self, segments: List[str]) -> List[str]:
        """
        Greedily pack segments into chunks, seeding each new chunk with overlap.

        Args:
            segments: Segments produced by _split_segments

        Returns:
            List of stripped chunk texts
        """
        chunks: List[str] = []
        current_chunk = ""

        for segment in segments:
            test_chunk = current_chunk + segment
            if not current_chunk.strip() or self.length_function(test_chunk.strip()) <= self.chunk_size:
                current_chunk = test_chunk
                continue

            # Save current chunk and start a new one with overlap
            chunks.append(current_chunk.strip())
            current_chunk = self._seed_with_overlap(chunks[-1], segment)

        # Add final chunk
        if current_chunk.strip():
            chunks.append(current_chunk.strip())

        return chunks

    def _seed_with_overlap(self, previous_chunk: str, segment: str) -> str:
        """
        Start a chunk with the tail of the previous chunk followed by segment.

        The overlap window shrinks from the front until the seeded chunk fits
        within chunk_size.
        """
        # Half-up rounding: overlap 5 carries one word, 25 carries three
        overlap_words = int(self.chunk_overlap / 10 + 0.5)
        if overlap_words <= 0:
            return segment

        words = previous_chunk.split()[-overlap_words:]
        while words:
            seeded = " ".join(words) + " " + segment.lstrip()
            if self.length_function(seeded.strip()) <= self.chunk_size:
                return seeded
            words = words[1:]

        return segment
