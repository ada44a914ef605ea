"""
Embedding client for the Hugging Face Inference API.

Every lookup goes through an EmbeddingCache keyed on normalized text, so a
query embedded by the ranker is not fetched again by the optimizer and
passages seen by earlier queries are not re-embedded. Only cache misses are
sent to the API, in batches of at most batch_size texts.
"""
import time
import logging
from typing import List, Optional
import httpx
from services.embedding_cache import EmbeddingCache
from config import HUGGINGFACE_API_KEY, EMBEDDING_MODEL, EMBEDDING_API_URL, EMBEDDING_BATCH_SIZE

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 60.0


class ModelLoadingError(Exception):
    """Hosted model is cold (HTTP 503) and the request can be retried."""


class EmbeddingModel:
    """Cached, batched client for a hosted sentence-embedding model."""

    def __init__(
        self,
        api_key: str = HUGGINGFACE_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        cache: Optional[EmbeddingCache] = None,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        max_retries: int = 5,
        initial_delay: float = 5.0,
        timeout: float = 120.0,
        api_base_url: str = EMBEDDING_API_URL
    ):
        """
        Initialize the embedding client.

        Args:
            api_key: Hugging Face API key
            model_name: Model identifier (default: sentence-transformers/all-mpnet-base-v2)
            cache: Embedding cache shared by every caller of this client
                (a private one by default)
            batch_size: Maximum number of texts per API request
            max_retries: Maximum number of attempts for 503, timeout and network errors
            initial_delay: Initial delay in seconds for exponential backoff
            timeout: Request timeout in seconds
            api_base_url: Inference API base URL; the model name is appended
        """
        if not api_key:
            raise ValueError("HUGGINGFACE_API_KEY environment variable is required")

        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        self.api_key = api_key
        self.model_name = model_name
        self.cache = cache if cache is not None else EmbeddingCache()
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.timeout = timeout
        self.api_url = f"{api_base_url.rstrip('/')}/{model_name}"

        logger.info(f"Initialized EmbeddingModel with model: {model_name} (batch size {batch_size})")

    def embed_query(self, text: str) -> List[float]:
        """
        Embed a single query or passage.

        Raises:
            ValueError: If text is empty
            RuntimeError: If the API request fails after all retries
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        return self.embed_documents([text])[0]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """
        Embed several texts, fetching only the ones missing from the cache.

        The result is index-aligned with texts, so empty strings are rejected
        rather than filtered out.

        Args:
            texts: Texts to embed

        Returns:
            One embedding vector per input text

        Raises:
            ValueError: If texts list is empty or contains empty strings
            RuntimeError: If the API fails or returns the wrong number of vectors
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")

        empty_count = sum(1 for t in texts if not t or not t.strip())
        if empty_count:
            raise ValueError(f"Texts list contains {empty_count} empty strings")

        results: List[Optional[List[float]]] = [self.cache.get(text) for text in texts]
        missing = [i for i, embedding in enumerate(results) if embedding is None]

        if len(missing) < len(texts):
            logger.debug(f"Embedding cache: {len(texts) - len(missing)} hits, {len(missing)} misses")

        for start in range(0, len(missing), self.batch_size):
            positions = missing[start:start + self.batch_size]
            batch = [texts[i] for i in positions]

            embeddings = self._request_with_retry(batch)
            if len(embeddings) != len(batch):
                raise RuntimeError(
                    f"Embedding API returned {len(embeddings)} vectors for {len(batch)} texts"
                )

            for i, embedding in zip(positions, embeddings):
                self.cache.set(texts[i], embedding)
                results[i] = embedding

        return results

    def _request_with_retry(self, texts: List[str]) -> List[List[float]]:
        """
        Send one batch, retrying cold-model, timeout and network failures.

        The hosted free tier puts idle models to sleep and answers 503 for
        15-20s while they load. Delays double after every failed attempt.
        """
        delay = self.initial_delay
        last_error = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return self._post(texts)
            except ModelLoadingError as e:
                last_error = str(e)
            except httpx.TimeoutException:
                last_error = f"Request timeout after {self.timeout}s"
            except httpx.RequestError as e:
                last_error = f"Network error: {str(e)}"

            logger.warning(f"{last_error} on attempt {attempt}/{self.max_retries}")
            if attempt < self.max_retries:
                logger.info(f"Retrying embedding request in {delay}s...")
                time.sleep(delay)
                delay = min(delay * 2, MAX_BACKOFF_SECONDS)

        error_msg = f"Failed to generate embeddings after {self.max_retries} attempts. Last error: {last_error}"
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    def _post(self, texts: List[str]) -> List[List[float]]:
        """Make a single API request and map its status to a result or an error."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload = {
            "inputs": texts,
            "options": {"wait_for_model": True}
        }

        start_time = time.time()
        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(self.api_url, headers=headers, json=payload)
        elapsed = time.time() - start_time

        if response.status_code == 503:
            raise ModelLoadingError(f"Model loading (503), estimated time: {self._estimated_load_time(response)}s")

        if response.status_code == 429:
            logger.error("Rate limit exceeded for Hugging Face API")
            raise RuntimeError("Rate limit exceeded. Please try again later.")

        if response.status_code == 401:
            logger.error("Authentication failed for Hugging Face API")
            raise RuntimeError("Invalid API key")

        if response.status_code != 200:
            error_msg = f"Embedding API request failed with status {response.status_code}: {response.text}"
            logger.error(error_msg)
            raise RuntimeError(error_msg)

        logger.debug(f"Embedded {len(texts)} texts in {elapsed:.2f}s")
        return response.json()

    @staticmethod
    def _estimated_load_time(response: httpx.Response) -> Optional[float]:
        if not response.text:
            return None
        try:
            return response.json().get("estimated_time")
        except ValueError:
            return None

    def warmup(self) -> bool:
        """
        Wake the hosted model with a throwaway request, bypassing the cache.

        Returns:
            True if the model answered, False otherwise
        """
        try:
            logger.info("Warming up embedding model...")
            start_time = time.time()
            self._request_with_retry(["warmup query"])
            logger.info(f"Model warmup completed in {time.time() - start_time:.1f}s")
            return True

        except Exception as e:
            logger.error(f"Model warmup failed: {str(e)}")
            return False
