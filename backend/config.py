"""Configuration management for the context retrieval pipeline."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Model Configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-mpnet-base-v2")
EMBEDDING_API_URL = os.getenv(
    "EMBEDDING_API_URL",
    "https://api-inference.huggingface.co/models"
)
TOKENIZER_ENCODING = os.getenv("TOKENIZER_ENCODING", "o200k_base")
EMBEDDING_BATCH_SIZE = int(os.getenv("EMBEDDING_BATCH_SIZE", "32"))

# Vector Index Configuration
VECTOR_TABLE = os.getenv("VECTOR_TABLE", "document_vectors")
VECTOR_MATCH_FUNCTION = os.getenv("VECTOR_MATCH_FUNCTION", "match_vectors")

# Chunking Configuration
CHUNK_SIZE = 1000  # tokens
CHUNK_OVERLAP = 200  # tokens

# Hybrid Ranking Configuration
RANKER_TOP_K = 5
RANKER_MIN_SCORE = 0.3
VECTOR_WEIGHT = 0.7
KEYWORD_WEIGHT = 0.3

# Context Optimization Configuration
MAX_CONTEXT_TOKENS = 3000
MIN_RELEVANCE_SCORE = 0.3
OVERLAP_THRESHOLD = 0.8
DEDUPLICATION_THRESHOLD = 0.9
COMPRESSION_THRESHOLD = 0.5
COMPRESS_MIN_TOKENS = 100  # Chunks at or below this size are never compressed
SEMANTIC_WEIGHT = 0.7

# Embedding Cache Configuration
EMBEDDING_CACHE_TTL_SECONDS = 7 * 24 * 60 * 60  # 7 days
EMBEDDING_CACHE_MAX_ENTRIES = 10000

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
