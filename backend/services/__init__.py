"""Services for the context retrieval pipeline."""
from .chunking_engine import ChunkingEngine
from .keyword_scorer import extract_keywords, keyword_score
from .embedding_model import EmbeddingModel
from .embedding_cache import EmbeddingCache
from .vector_store import VectorStore
from .hybrid_ranker import HybridRanker
from .context_optimizer import ContextOptimizer, OptimizerConfig
from .retrieval_engine import RetrievalEngine

__all__ = ['ChunkingEngine', 'extract_keywords', 'keyword_score', 'EmbeddingModel', 'EmbeddingCache', 'VectorStore', 'HybridRanker', 'ContextOptimizer', 'OptimizerConfig', 'RetrievalEngine']
