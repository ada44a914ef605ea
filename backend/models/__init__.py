"""Data models for the context retrieval pipeline."""
from .chunk import Chunk, ChunkMetadata, ContextChunk
from .passage import ScoredPassage, VectorMatch

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "ContextChunk",
    "ScoredPassage",
    "VectorMatch",
]
