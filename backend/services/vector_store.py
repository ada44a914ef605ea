"""Vector index implementation using Supabase pgvector."""
import logging
from typing import Any, Dict, List, Optional
from supabase import create_client, Client
from models.chunk import Chunk
from models.passage import VectorMatch
from services.embedding_model import EmbeddingModel
from config import SUPABASE_URL, SUPABASE_KEY, VECTOR_TABLE, VECTOR_MATCH_FUNCTION

logger = logging.getLogger(__name__)


class VectorStore:
    """Store chunk embeddings and run nearest-neighbour queries using Supabase pgvector."""

    def __init__(
        self,
        embedding_model: EmbeddingModel,
        supabase_url: str = SUPABASE_URL,
        supabase_key: str = SUPABASE_KEY,
        table_name: str = VECTOR_TABLE,
        match_function: str = VECTOR_MATCH_FUNCTION
    ):
        """
        Initialize the vector store with Supabase client.

        Args:
            embedding_model: EmbeddingModel instance for generating embeddings
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Name of the table holding vectors
            match_function: Name of the similarity-search RPC function

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")

        self.embedding_model = embedding_model
        self.table_name = table_name
        self.match_function = match_function

        self.client: Client = create_client(supabase_url, supabase_key)

        logger.info(f"Initialized VectorStore with table: {table_name}")

    def index_chunks(
        self,
        document_id: Any,
        chunks: List[Chunk],
        metadata: Optional[Dict[str, Any]] = None
    ) -> List[str]:
        """
        Embed and upsert the chunks of one document.

        Each vector stores the chunk text in its metadata so that query
        matches can be used without a second lookup.

        Args:
            document_id: Identifier of the source document
            chunks: Chunks produced from that document
            metadata: Document-level metadata (original_name, use_case, processed_at, ...)

        Returns:
            Vector IDs in chunk order

        Raises:
            ValueError: If chunks list is empty
            RuntimeError: If embedding or database operation fails
        """
        if not chunks:
            raise ValueError("Chunks list cannot be empty")

        logger.info(f"Indexing {len(chunks)} chunks for document {document_id}...")

        try:
            embeddings = self.embedding_model.embed_documents([chunk.text for chunk in chunks])

            records = []
            for chunk, embedding in zip(chunks, embeddings):
                records.append({
                    "id": f"doc_{document_id}_chunk_{chunk.index}",
                    "embedding": embedding,
                    "metadata": {
                        **(metadata or {}),
                        "document_id": document_id,
                        "chunk_index": chunk.index,
                        "token_count": chunk.token_count,
                        "text": chunk.text
                    }
                })

            # Upsert so re-processing a document replaces its vectors
            self.client.table(self.table_name).upsert(records).execute()

            logger.info(f"Successfully indexed {len(records)} chunks for document {document_id}")
            return [record["id"] for record in records]

        except Exception as e:
            error_msg = f"Failed to index chunks: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

    def query(
        self,
        vector: List[float],
        top_k: int = 5,
        include_metadata: bool = True,
        filter: Optional[Dict[str, Any]] = None
    ) -> List[VectorMatch]:
        """
        Find the nearest stored vectors using cosine similarity.

        Args:
            vector: Query embedding
            top_k: Number of matches to return
            include_metadata: Whether to return stored metadata with each match
            filter: Metadata equality filter (e.g. {"use_case": "sales"})

        Returns:
            Matches ordered by similarity, scores normalized to [0, 1]

        Raises:
            ValueError: If vector is empty or top_k is invalid
            RuntimeError: If database operation fails
        """
        if not vector:
            raise ValueError("Query embedding cannot be empty")

        if top_k <= 0:
            raise ValueError("top_k must be positive")

        try:
            # The RPC function is created in Supabase with:
            # CREATE OR REPLACE FUNCTION match_vectors(
            #   query_embedding vector(768),
            #   match_count int,
            #   filter jsonb DEFAULT '{}'
            # )
            # RETURNS TABLE (id text, metadata jsonb, similarity float)
            # LANGUAGE sql STABLE
            # AS $$
            #   SELECT id, metadata, 1 - (embedding <=> query_embedding) AS similarity
            #   FROM document_vectors
            #   WHERE metadata @> filter
            #   ORDER BY embedding <=> query_embedding
            #   LIMIT match_count;
            # $$;
            response = self.client.rpc(
                self.match_function,
                {
                    "query_embedding": vector,
                    "match_count": top_k,
                    "filter": filter or {}
                }
            ).execute()

            matches = []
            for row in response.data or []:
                # 1 - cosine distance; clamp in case of negative similarity
                score = max(0.0, min(1.0, row.get("similarity") or 0.0))
                matches.append(VectorMatch(
                    id=str(row["id"]),
                    score=score,
                    metadata=row.get("metadata") if include_metadata else None
                ))

            logger.debug(f"Found {len(matches)} vector matches")
            return matches

        except Exception as e:
            error_msg = f"Failed to query vector store: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

    def count(self) -> int:
        """
        Get the total number of vectors in the store.

        Raises:
            RuntimeError: If database operation fails
        """
        try:
            response = self.client.table(self.table_name).select("id", count="exact").execute()
            return response.count if response.count is not None else 0
        except Exception as e:
            error_msg = f"Failed to count vectors in vector store: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e
