"""Hybrid ranking that blends vector similarity with keyword overlap."""
import logging
from typing import List, Optional
from models.passage import ScoredPassage
from services.vector_store import VectorStore
from services.embedding_model import EmbeddingModel
from services.keyword_scorer import extract_keywords, keyword_score
from config import RANKER_TOP_K, RANKER_MIN_SCORE, VECTOR_WEIGHT, KEYWORD_WEIGHT

logger = logging.getLogger(__name__)


class HybridRanker:
    """Produce the first-pass candidate set for a query from the vector index."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_model: EmbeddingModel
    ):
        """
        Initialize the hybrid ranker.

        Args:
            vector_store: VectorStore instance for nearest-neighbour search
            embedding_model: EmbeddingModel instance for query embedding (cached)
        """
        self.vector_store = vector_store
        self.embedding_model = embedding_model
        logger.info("Initialized HybridRanker")

    def rank(
        self,
        query: str,
        use_case: Optional[str] = None,
        top_k: int = RANKER_TOP_K,
        min_score: float = RANKER_MIN_SCORE,
        vector_weight: float = VECTOR_WEIGHT,
        keyword_weight: float = KEYWORD_WEIGHT
    ) -> List[ScoredPassage]:
        """
        Rank indexed passages for a query.

        Implements the following strategy:
        1. Embed the query (the embedding client serves repeats from its cache)
        2. Fetch 2 * top_k nearest neighbours, filtered by use case if given.
           Over-fetching lets keyword reranking surface lexical matches that
           sit just outside the dense top_k.
        3. Drop matches without stored text
        4. combined = vector_weight * vector_score + keyword_weight * keyword_score
        5. Keep combined > min_score, sort descending (stable), truncate to top_k

        Args:
            query: User question
            use_case: Optional use-case filter on the stored metadata
            top_k: Maximum number of passages to return
            min_score: Combined scores at or below this are discarded
            vector_weight: Weight of the index similarity
            keyword_weight: Weight of the keyword overlap

        Returns:
            Scored passages sorted by combined score, empty if nothing qualifies

        Raises:
            RuntimeError: If embedding or search operations fail
        """
        if not query or not query.strip():
            logger.warning("Empty query string provided, returning empty results")
            return []

        try:
            query_embedding = self.embedding_model.embed_query(query)

            search_filter = {"use_case": use_case} if use_case else None
            logger.debug(f"Searching for top {top_k * 2} vectors (filter: {search_filter})")
            matches = self.vector_store.query(
                query_embedding,
                top_k=top_k * 2,
                include_metadata=True,
                filter=search_filter
            )
        except Exception as e:
            error_msg = f"Failed to rank passages for query: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

        if not matches:
            logger.info("No vector matches found for query")
            return []

        keywords = extract_keywords(query)

        passages = []
        for match in matches:
            metadata = match.metadata or {}
            text = metadata.get("text")
            if not isinstance(text, str):
                continue

            passage_keyword_score = keyword_score(text, keywords)
            combined_score = vector_weight * match.score + keyword_weight * passage_keyword_score

            passages.append(ScoredPassage(
                id=match.id,
                text=text,
                source=metadata.get("original_name") or "unknown",
                vector_score=match.score,
                keyword_score=passage_keyword_score,
                combined_score=combined_score,
                metadata=dict(metadata)
            ))

        passages = [p for p in passages if p.combined_score > min_score]
        # sorted() is stable, so ties keep the index's return order
        passages = sorted(passages, key=lambda p: p.combined_score, reverse=True)[:top_k]

        logger.info(
            f"Ranked {len(passages)} passages from {len(matches)} matches "
            f"(keywords: {len(keywords)}, min score: {min_score})"
        )
        return passages

