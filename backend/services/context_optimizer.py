"""
Context optimization for retrieved chunks.

Turns a working set of embedded candidate chunks into the final context for
the language model. Stages run in order:

1. Score      semantic (cosine) + keyword relevance per chunk
2. Threshold  adaptive cutoff from the score distribution
3. Prune      drop chunks below the cutoff
4. Compress   keep the top sentences of long chunks
5. Sort       relevance descending
6. Dedupe     Jaccard-based duplicate removal and same-source merging
7. Budget     greedy token-budget cutoff

The adaptive cutoff and deduplication are whole-collection statistics, so
every stage works on a fully materialized list.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from models.chunk import ContextChunk
from services.embedding_model import EmbeddingModel
from services.keyword_scorer import extract_keywords, keyword_score
from services.token_counter import count_tokens
from config import (
    MAX_CONTEXT_TOKENS,
    MIN_RELEVANCE_SCORE,
    OVERLAP_THRESHOLD,
    DEDUPLICATION_THRESHOLD,
    COMPRESSION_THRESHOLD,
    COMPRESS_MIN_TOKENS,
    SEMANTIC_WEIGHT,
    KEYWORD_WEIGHT,
)

logger = logging.getLogger(__name__)

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_WORD = re.compile(r"\w+")


@dataclass
class OptimizerConfig:
    """Tuning knobs for ContextOptimizer."""
    max_tokens: int = MAX_CONTEXT_TOKENS
    min_relevance_score: float = MIN_RELEVANCE_SCORE
    overlap_threshold: float = OVERLAP_THRESHOLD
    deduplication_threshold: float = DEDUPLICATION_THRESHOLD
    compression_threshold: float = COMPRESSION_THRESHOLD
    semantic_weight: float = SEMANTIC_WEIGHT
    keyword_weight: float = KEYWORD_WEIGHT
    adaptive_threshold: bool = True
    compress_min_tokens: int = COMPRESS_MIN_TOKENS
    # False scores sentences against the chunk-level proxy, True against the query
    score_sentences_against_query: bool = False


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 if either has zero norm."""
    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)
    norm = np.linalg.norm(vec_a) * np.linalg.norm(vec_b)
    if norm == 0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / norm)


def text_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity of the case-insensitive word sets of two texts."""
    words1 = set(_WORD.findall(text1.lower()))
    words2 = set(_WORD.findall(text2.lower()))
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def split_sentences(text: str) -> List[str]:
    """Split text at '.', '!' or '?' followed by whitespace."""
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text.strip()) if s.strip()]


class ContextOptimizer:
    """Prunes, compresses, deduplicates and budgets context chunks for a query."""

    def __init__(
        self,
        embedding_model: EmbeddingModel,
        config: Optional[OptimizerConfig] = None,
        token_counter: Callable[[str], int] = count_tokens
    ):
        """
        Initialize the optimizer.

        Args:
            embedding_model: EmbeddingModel used for the query and for sentences
            config: Optimizer configuration (defaults from config.py)
            token_counter: Token counter used after compression and merging
        """
        self.embedding_model = embedding_model
        self.config = config or OptimizerConfig()
        self.token_counter = token_counter

    def optimize(
        self,
        query: str,
        chunks: List[ContextChunk],
        embeddings: Sequence[Sequence[float]]
    ) -> List[ContextChunk]:
        """
        Produce the final context for a query.

        Args:
            query: User question
            chunks: Candidate chunks; mutated in place by the scoring and
                compression stages
            embeddings: Chunk embeddings, index-aligned with chunks

        Returns:
            Chunks sorted by relevance descending whose total token_count
            fits within max_tokens

        Raises:
            IndexError: If embeddings is shorter than chunks
            RuntimeError: If the embedding service fails
        """
        if not chunks:
            return []

        if not query or not query.strip():
            logger.warning("Empty query string provided, returning empty context")
            return []

        query_embedding = self.embedding_model.embed_query(query)

        scored = self.score_chunks(query, chunks, embeddings, query_embedding)
        threshold = self.compute_threshold(scored)
        pruned = self.prune_by_relevance(scored, threshold)
        filtered = self.compress_chunks(pruned, query_embedding)
        filtered = sorted(filtered, key=lambda c: c.relevance_score or 0.0, reverse=True)
        filtered = self.deduplicate_chunks(filtered)
        result = self.limit_tokens(filtered)

        logger.info(
            f"Optimized context: {len(chunks)} candidates -> {len(result)} chunks "
            f"(threshold: {threshold:.3f})",
            extra={"extra": {
                "candidates": len(chunks),
                "after_prune": len(pruned),
                "after_dedup": len(filtered),
                "selected": len(result),
                "total_tokens": sum(c.token_count for c in result),
                "threshold": round(threshold, 4),
            }}
        )
        return result

    def score_chunks(
        self,
        query: str,
        chunks: List[ContextChunk],
        embeddings: Sequence[Sequence[float]],
        query_embedding: Sequence[float]
    ) -> List[ContextChunk]:
        """Annotate chunks with semantic, keyword and combined relevance scores."""
        query_keywords = extract_keywords(query)

        for i, chunk in enumerate(chunks):
            chunk.semantic_score = cosine_similarity(query_embedding, embeddings[i])
            chunk.keyword_score = keyword_score(chunk.text, query_keywords)
            chunk.relevance_score = (
                self.config.semantic_weight * chunk.semantic_score
                + self.config.keyword_weight * chunk.keyword_score
            )

        return chunks

    def compute_threshold(self, chunks: List[ContextChunk]) -> float:
        """
        Relevance cutoff for the current score distribution.

        With adaptive thresholding the cutoff is mean - 1 std (population),
        never lower than min_relevance_score.
        """
        if not self.config.adaptive_threshold or not chunks:
            return self.config.min_relevance_score

        scores = np.array([c.relevance_score or 0.0 for c in chunks], dtype=float)
        adaptive = float(scores.mean() - scores.std())
        return max(adaptive, self.config.min_relevance_score)

    def prune_by_relevance(self, chunks: List[ContextChunk], threshold: float) -> List[ContextChunk]:
        return [c for c in chunks if (c.relevance_score or 0.0) >= threshold]

    def compress_chunks(
        self,
        chunks: List[ContextChunk],
        query_embedding: Optional[Sequence[float]] = None
    ) -> List[ContextChunk]:
        """
        Compress chunks longer than compress_min_tokens to their top sentences.

        Sentences of one chunk are embedded in a single batch request. By
        default each sentence is scored against the chunk-level proxy: its own
        embedding when the chunk has a semantic score, a zero vector otherwise.
        Every sentence therefore ties, and the stable sort keeps the leading
        sentences. Setting score_sentences_against_query ranks sentences by
        cosine similarity to the query instead.

        Kept sentences are joined in score order, not original order.
        """
        for chunk in chunks:
            if chunk.token_count <= self.config.compress_min_tokens:
                continue

            sentences = split_sentences(chunk.text)
            if len(sentences) <= 1:
                continue

            sentence_embeddings = self.embedding_model.embed_documents(sentences)
            scores = [
                cosine_similarity(embedding, self._sentence_reference(chunk, embedding, query_embedding))
                for embedding in sentence_embeddings
            ]

            order = sorted(range(len(sentences)), key=lambda i: scores[i], reverse=True)
            keep = math.ceil(len(sentences) * self.config.compression_threshold)
            compressed_text = " ".join(sentences[i] for i in order[:keep])

            original_tokens = chunk.token_count
            chunk.text = compressed_text
            chunk.token_count = self.token_counter(compressed_text)
            chunk.compression_ratio = chunk.token_count / original_tokens

            logger.debug(
                f"Compressed chunk {chunk.index}: {original_tokens} -> {chunk.token_count} tokens "
                f"({keep}/{len(sentences)} sentences)"
            )

        return chunks

    def _sentence_reference(
        self,
        chunk: ContextChunk,
        sentence_embedding: Sequence[float],
        query_embedding: Optional[Sequence[float]]
    ) -> Sequence[float]:
        if self.config.score_sentences_against_query and query_embedding is not None:
            return query_embedding
        if chunk.semantic_score:
            return sentence_embedding
        return [0.0] * len(sentence_embedding)

    def deduplicate_chunks(self, chunks: List[ContextChunk]) -> List[ContextChunk]:
        """
        Remove duplicate or highly overlapping chunks.

        Chunks are compared against the accepted ones in order; the first
        accepted chunk above either threshold decides the outcome:
        - similarity >= deduplication_threshold: the higher relevance wins
        - similarity >= overlap_threshold: same source and timestamp are
          merged, otherwise the higher relevance wins
        """
        unique_chunks: List[ContextChunk] = []

        for chunk in chunks:
            is_duplicate = False

            for i, existing in enumerate(unique_chunks):
                similarity = text_similarity(chunk.text, existing.text)

                if similarity >= self.config.deduplication_threshold:
                    is_duplicate = True
                    if (chunk.relevance_score or 0.0) > (existing.relevance_score or 0.0):
                        unique_chunks[i] = chunk
                    break

                if similarity >= self.config.overlap_threshold:
                    is_duplicate = True
                    if self._provenance(chunk) == self._provenance(existing):
                        unique_chunks[i] = self.merge_chunks(chunk, existing)
                    elif (chunk.relevance_score or 0.0) > (existing.relevance_score or 0.0):
                        unique_chunks[i] = chunk
                    break

            if not is_duplicate:
                unique_chunks.append(chunk)

        if len(unique_chunks) < len(chunks):
            logger.debug(f"Deduplicated {len(chunks)} chunks to {len(unique_chunks)}")
        return unique_chunks

    @staticmethod
    def _provenance(chunk: ContextChunk) -> Tuple[Optional[str], Optional[str]]:
        if chunk.metadata is None:
            return None, None
        return chunk.metadata.source, chunk.metadata.timestamp

    def merge_chunks(self, first: ContextChunk, second: ContextChunk) -> ContextChunk:
        """Merge two overlapping chunks, keeping the first chunk's metadata."""
        combined_text = f"{first.text}\n{second.text}"
        best = first if (first.relevance_score or 0.0) >= (second.relevance_score or 0.0) else second

        return ContextChunk(
            text=combined_text,
            index=first.index,
            token_count=self.token_counter(combined_text),
            relevance_score=max(first.relevance_score or 0.0, second.relevance_score or 0.0),
            semantic_score=best.semantic_score,
            keyword_score=best.keyword_score,
            metadata=first.metadata
        )

    def limit_tokens(self, chunks: List[ContextChunk]) -> List[ContextChunk]:
        """Keep chunks in order until the next one would exceed max_tokens."""
        result: List[ContextChunk] = []
        total_tokens = 0

        for chunk in chunks:
            if total_tokens + chunk.token_count > self.config.max_tokens:
                break
            result.append(chunk)
            total_tokens += chunk.token_count

        return result
