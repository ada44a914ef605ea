"""Vector index match and ranked passage models."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

@dataclass
class VectorMatch:
    """Nearest-neighbour hit returned by the vector index."""
    id: str
    score: float  # 0.0 to 1.0
    metadata: Optional[Dict[str, Any]] = None

@dataclass
class ScoredPassage:
    """Passage scored by hybrid (vector + keyword) ranking."""
    id: str
    text: str
    source: str
    vector_score: float  # 0.0 to 1.0
    keyword_score: float  # 0.0 to 1.0
    combined_score: float
    metadata: Dict[str, Any] = field(default_factory=dict)
