"""Chunk data models."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

@dataclass(frozen=True)
class Chunk:
    """A bounded passage of text produced by splitting one document."""
    text: str
    index: int  # Position within the source document, starting at 0
    token_count: int

@dataclass
class ChunkMetadata:
    """Provenance of a context chunk."""
    source: str
    timestamp: str = ""
    additional_info: Dict[str, Any] = field(default_factory=dict)

@dataclass
class ContextChunk:
    """
    Chunk carried through context optimization.

    Scores are filled in by the optimizer's scoring stage; compression_ratio
    is only set when the chunk was compressed.
    """
    text: str
    index: int
    token_count: int
    relevance_score: Optional[float] = None
    semantic_score: Optional[float] = None
    keyword_score: Optional[float] = None
    compression_ratio: Optional[float] = None
    metadata: Optional[ChunkMetadata] = None

