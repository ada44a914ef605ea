"""Unit tests for RetrievalEngine."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import Mock, patch
from models.chunk import ChunkMetadata, ContextChunk
from models.passage import ScoredPassage
from services.retrieval_engine import RetrievalEngine
from services.hybrid_ranker import HybridRanker
from services.context_optimizer import ContextOptimizer
from services.vector_store import VectorStore
from models.passage import VectorMatch
from services.embedding_model import EmbeddingModel


def word_count(text: str) -> int:
    return len(text.split())


def make_passage(id, text, combined, metadata=None, source="guide.pdf"):
    return ScoredPassage(
        id=id,
        text=text,
        source=source,
        vector_score=0.8,
        keyword_score=0.5,
        combined_score=combined,
        metadata=metadata if metadata is not None else {"text": text}
    )


class TestRetrievalEngine:
    """Test suite for RetrievalEngine class."""

    @pytest.fixture
    def mock_ranker(self):
        """Create a mock HybridRanker."""
        return Mock(spec=HybridRanker)

    @pytest.fixture
    def mock_optimizer(self):
        """Create a mock ContextOptimizer."""
        return Mock(spec=ContextOptimizer)

    @pytest.fixture
    def mock_embedding_model(self):
        """Create a mock EmbeddingModel."""
        return Mock(spec=EmbeddingModel)

    @pytest.fixture
    def engine(self, mock_ranker, mock_optimizer, mock_embedding_model):
        """Create a RetrievalEngine instance with mocks."""
        return RetrievalEngine(
            mock_ranker,
            optimizer=mock_optimizer,
            embedding_model=mock_embedding_model,
            token_counter=word_count
        )

    def test_initialization(self, engine, mock_ranker, mock_optimizer, mock_embedding_model):
        """Test that RetrievalEngine initializes correctly."""
        assert engine.ranker == mock_ranker
        assert engine.optimizer == mock_optimizer
        assert engine.embedding_model == mock_embedding_model

    def test_embedding_model_defaults_to_optimizer(self, mock_ranker):
        """Test that the optimizer's embedding model is reused when none is given."""
        optimizer = Mock()

        engine = RetrievalEngine(mock_ranker, optimizer=optimizer)

        assert engine.embedding_model is optimizer.embedding_model

    def test_retrieve_no_passages(self, engine, mock_ranker, mock_optimizer, mock_embedding_model):
        """Test retrieval when nothing ranks."""
        mock_ranker.rank.return_value = []

        assert engine.retrieve("refund policy", use_case="support") == []

        mock_ranker.rank.assert_called_once_with("refund policy", use_case="support", top_k=5)
        mock_embedding_model.embed_documents.assert_not_called()
        mock_optimizer.optimize.assert_not_called()

    def test_passage_conversion(self, mock_ranker):
        """Test that stored metadata is lifted into ContextChunk fields."""
        mock_ranker.rank.return_value = [
            make_passage("doc_7_chunk_3", "Refunds take five days.", 0.74, metadata={
                "text": "Refunds take five days.",
                "original_name": "guide.pdf",
                "processed_at": "2024-01-01T00:00:00",
                "chunk_index": 3,
                "token_count": 12,
                "use_case": "support",
                "document_id": 7
            })
        ]
        engine = RetrievalEngine(mock_ranker, token_counter=word_count)

        chunks = engine.retrieve("refund policy")

        assert chunks == [ContextChunk(
            text="Refunds take five days.",
            index=3,
            token_count=12,
            relevance_score=0.74,
            semantic_score=0.8,
            keyword_score=0.5,
            metadata=ChunkMetadata(
                source="guide.pdf",
                timestamp="2024-01-01T00:00:00",
                additional_info={"use_case": "support", "document_id": 7}
            )
        )]

    def test_passage_conversion_fallbacks(self, mock_ranker):
        """Test position and token counting when metadata lacks them."""
        mock_ranker.rank.return_value = [
            make_passage("a", "First passage here.", 0.9),
            make_passage("b", "Second one.", 0.8, source="unknown")
        ]
        engine = RetrievalEngine(mock_ranker, token_counter=word_count)

        chunks = engine.retrieve("query")

        assert [c.index for c in chunks] == [0, 1]
        assert [c.token_count for c in chunks] == [3, 2]
        assert chunks[1].metadata.source == "unknown"
        assert chunks[1].metadata.timestamp == ""
        assert chunks[1].metadata.additional_info == {}

    def test_retrieve_with_optimizer(self, engine, mock_ranker, mock_optimizer, mock_embedding_model):
        """Test that candidates are embedded and handed to the optimizer."""
        mock_ranker.rank.return_value = [
            make_passage("a", "First passage here.", 0.9),
            make_passage("b", "Second one.", 0.8)
        ]
        mock_embedding_model.embed_documents.return_value = [[1.0, 0.0], [0.0, 1.0]]
        optimized = [ContextChunk(text="First passage here.", index=0, token_count=3)]
        mock_optimizer.optimize.return_value = optimized

        result = engine.retrieve("refund policy")

        assert result is optimized
        mock_embedding_model.embed_documents.assert_called_once_with(["First passage here.", "Second one."])
        query, chunks, embeddings = mock_optimizer.optimize.call_args[0]
        assert query == "refund policy"
        assert [c.text for c in chunks] == ["First passage here.", "Second one."]
        assert embeddings == [[1.0, 0.0], [0.0, 1.0]]

    def test_retrieve_skip_optimization(self, engine, mock_ranker, mock_optimizer, mock_embedding_model):
        """Test that optimize=False returns the ranked chunks as-is."""
        mock_ranker.rank.return_value = [make_passage("a", "First passage here.", 0.9)]

        result = engine.retrieve("refund policy", optimize=False)

        assert [c.text for c in result] == ["First passage here."]
        mock_embedding_model.embed_documents.assert_not_called()
        mock_optimizer.optimize.assert_not_called()

    def test_ranker_failure_propagates(self, engine, mock_ranker):
        """Test that ranking errors reach the caller."""
        mock_ranker.rank.side_effect = RuntimeError("Failed to rank passages for query: boom")

        with pytest.raises(RuntimeError, match="Failed to rank passages"):
            engine.retrieve("refund policy")

    def test_build_context(self):
        """Test joining chunk texts in order."""
        chunks = [
            ContextChunk(text="First.", index=0, token_count=1),
            ContextChunk(text="Second.", index=1, token_count=1)
        ]

        assert RetrievalEngine.build_context(chunks) == "First.\nSecond."
        assert RetrievalEngine.build_context(chunks, separator="\n\n") == "First.\n\nSecond."
        assert RetrievalEngine.build_context([]) == ""


class TestRetrievalEngineEmbeddingReuse:
    """The ranker and optimizer share one cached embedding client."""

    @pytest.fixture
    def mock_vector_store(self):
        store = Mock(spec=VectorStore)
        store.query.return_value = [
            VectorMatch(id="a", score=0.9, metadata={"text": "Our refund policy allows returns."}),
            VectorMatch(id="b", score=0.8, metadata={"text": "Shipping takes three days."})
        ]
        return store

    def test_query_embedded_once_across_retrievals(self, mock_vector_store):
        """Test that repeated retrievals fetch the query embedding from the API once."""
        model = EmbeddingModel(api_key="test_key")
        engine = RetrievalEngine(
            HybridRanker(mock_vector_store, model),
            optimizer=ContextOptimizer(model, token_counter=word_count),
            token_counter=word_count
        )

        with patch.object(model, "_request_with_retry", side_effect=lambda texts: [[1.0, 0.0] for _ in texts]) as request:
            first = engine.retrieve("refund policy")
            second = engine.retrieve("refund policy")

        query_requests = [c for c in request.call_args_list if c[0][0] == ["refund policy"]]
        assert len(query_requests) == 1
        # passages are cached after the first retrieval as well
        assert request.call_count == 2
        assert [c.text for c in second] == [c.text for c in first]
        assert mock_vector_store.query.call_count == 2
