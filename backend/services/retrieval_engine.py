"""Retrieval engine orchestrating hybrid ranking and context optimization."""
import logging
from typing import Callable, List, Optional
from models.chunk import ChunkMetadata, ContextChunk
from models.passage import ScoredPassage
from services.hybrid_ranker import HybridRanker
from services.context_optimizer import ContextOptimizer
from services.embedding_model import EmbeddingModel
from services.token_counter import count_tokens
from config import RANKER_TOP_K

logger = logging.getLogger(__name__)

# Metadata keys lifted into ChunkMetadata rather than additional_info
_RESERVED_METADATA_KEYS = {"text", "original_name", "processed_at", "chunk_index", "token_count"}


class RetrievalEngine:
    """Turn a query into the ordered context chunks handed to the generation step."""

    def __init__(
        self,
        ranker: HybridRanker,
        optimizer: Optional[ContextOptimizer] = None,
        embedding_model: Optional[EmbeddingModel] = None,
        token_counter: Callable[[str], int] = count_tokens
    ):
        """
        Initialize the retrieval engine.

        Args:
            ranker: HybridRanker producing first-pass candidates
            optimizer: Optional ContextOptimizer refining the candidates
            embedding_model: Embeds candidate passages for the optimizer
                (defaults to the optimizer's own embedding model)
            token_counter: Token counter for candidate passages
        """
        self.ranker = ranker
        self.optimizer = optimizer
        self.embedding_model = embedding_model or (optimizer.embedding_model if optimizer else None)
        self.token_counter = token_counter
        logger.info("Initialized RetrievalEngine")

    def retrieve(
        self,
        query: str,
        use_case: Optional[str] = None,
        top_k: int = RANKER_TOP_K,
        optimize: bool = True
    ) -> List[ContextChunk]:
        """
        Retrieve context chunks for a query.

        Args:
            query: User question
            use_case: Optional use-case filter
            top_k: Maximum number of ranked passages
            optimize: Run the context optimizer when one is configured

        Returns:
            Context chunks, most relevant first

        Raises:
            RuntimeError: If ranking or embedding fails
        """
        passages = self.ranker.rank(query, use_case=use_case, top_k=top_k)
        if not passages:
            return []

        chunks = [self._to_context_chunk(passage, position) for position, passage in enumerate(passages)]

        if not optimize or self.optimizer is None:
            return chunks

        embeddings = self.embedding_model.embed_documents([chunk.text for chunk in chunks])
        optimized = self.optimizer.optimize(query, chunks, embeddings)

        logger.info(f"Retrieved {len(optimized)} context chunks from {len(passages)} ranked passages")
        return optimized

    @staticmethod
    def build_context(chunks: List[ContextChunk], separator: str = "\n") -> str:
        """Join chunk texts, most relevant first, into one context string."""
        return separator.join(chunk.text for chunk in chunks)

    def _to_context_chunk(self, passage: ScoredPassage, position: int) -> ContextChunk:
        metadata = passage.metadata or {}
        chunk_index = metadata.get("chunk_index")
        token_count = metadata.get("token_count")

        return ContextChunk(
            text=passage.text,
            index=chunk_index if isinstance(chunk_index, int) else position,
            token_count=token_count if isinstance(token_count, int) else self.token_counter(passage.text),
            relevance_score=passage.combined_score,
            semantic_score=passage.vector_score,
            keyword_score=passage.keyword_score,
            metadata=ChunkMetadata(
                source=passage.source,
                timestamp=str(metadata.get("processed_at") or ""),
                additional_info={
                    key: value for key, value in metadata.items()
                    if key not in _RESERVED_METADATA_KEYS
                }
            )
        )
