"""Token counting with the downstream language model's tokenizer."""
import logging
from typing import Optional

import tiktoken

from config import TOKENIZER_ENCODING

logger = logging.getLogger(__name__)

# Loaded on first use; tiktoken fetches the encoding file the first time
_encoder: Optional[tiktoken.Encoding] = None


def get_encoder() -> tiktoken.Encoding:
    """Return the shared tiktoken encoder, loading it on first call."""
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding(TOKENIZER_ENCODING)
        logger.info(f"Initialized tiktoken encoder ({TOKENIZER_ENCODING})")
    return _encoder


def count_tokens(text: str) -> int:
    """Count tokens in a string."""
    if not text:
        return 0
    return len(get_encoder().encode(text))
