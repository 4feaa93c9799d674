"""
Vector index client.

Wraps a LangChain VectorStore with the operations the ingestion core
needs: add, delete, search and stats. Every remote call goes through
call_with_retry, so callers only ever see VectorIndexError subclasses
carrying a VectorErrorKind.

Dependencies: langchain_core, knowledge_ingest.boundary.vdb.error_classification
System role: Vector store client for ingestion and reconciliation
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from langchain_core.documents import Document
from langchain_core.vectorstores import VectorStore

from knowledge_ingest.boundary.vdb.error_classification import call_with_retry
from knowledge_ingest.boundary.vdb.vector_schemas import (
    DeleteResult,
    VectorIndexStats,
    VectorSearchResult,
)
from knowledge_ingest.boundary.vdb.vector_store_factory import create_vector_store
from knowledge_ingest.configs.vector_store import VectorStoreSettings
from knowledge_ingest.core.exceptions import VectorIndexNotConnectedError
from knowledge_ingest.models.chunk import Chunk, make_chunk_id

logger = logging.getLogger(__name__)

T = TypeVar("T")
StoreFactory = Callable[[VectorStoreSettings], VectorStore]


class VectorIndexClient:
    """
    Retrying client over a LangChain vector store.

    The store is either injected or built by store_factory on connect().
    A client whose store could not be built stays disconnected: add and
    search raise VectorIndexNotConnectedError, stats reports connected=False.
    """

    def __init__(
        self,
        settings: VectorStoreSettings | None = None,
        vector_store: VectorStore | None = None,
        store_factory: StoreFactory | None = None,
    ) -> None:
        """
        Args:
            settings: Vector store settings (defaults from environment)
            vector_store: Ready-made store, marks the client connected
            store_factory: Builds the store on connect()
        """
        self._settings = settings or VectorStoreSettings()
        self._store = vector_store
        self._store_factory = store_factory or create_vector_store

    @property
    def is_connected(self) -> bool:
        return self._store is not None

    @property
    def index_name(self) -> str:
        return self._settings.index_name

    async def connect(self) -> bool:
        """
        Build the vector store if it is not already available.

        Returns:
            True if the client is connected afterwards
        """
        if self._store is not None:
            return True
        try:
            self._store = await asyncio.to_thread(self._store_factory, self._settings)
        except Exception as e:
            logger.error(
                f"{__name__}:connect - Vector index unavailable: {e}",
                extra={"store_type": self._settings.store_type},
            )
            return False
        logger.info(
            f"{__name__}:connect - Connected to vector index",
            extra={"store_type": self._settings.store_type, "index_name": self.index_name},
        )
        return True

    def _require_store(self, operation: str) -> VectorStore:
        if self._store is None:
            raise VectorIndexNotConnectedError(
                "Vector index is not connected",
                operation=operation,
            )
        return self._store

    async def _retry(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        return await call_with_retry(
            operation,
            func,
            max_attempts=self._settings.retry_max_attempts,
            base_delay=self._settings.retry_base_delay_seconds,
            max_delay=self._settings.retry_max_delay_seconds,
        )

    async def _persist(self) -> None:
        """Write a FAISS index back to disk after a mutation."""
        if self._settings.store_type.lower() != "faiss":
            return
        save_local = getattr(self._store, "save_local", None)
        if save_local is not None:
            await asyncio.to_thread(
                save_local,
                self._settings.faiss_index_dir,
                self._settings.index_name,
            )

    async def add_documents(self, chunks: Sequence[Chunk]) -> list[str]:
        """
        Embed and store chunks under their own ids.

        Args:
            chunks: Chunks produced by the chunker

        Returns:
            Ids of the stored chunks

        Raises:
            VectorIndexError: Store rejected the chunks or stayed unreachable
        """
        if not chunks:
            return []
        store = self._require_store("add")
        documents = [
            Document(page_content=chunk.content, metadata=dict(chunk.metadata), id=chunk.id)
            for chunk in chunks
        ]
        ids = [chunk.id for chunk in chunks]

        await self._retry("add", lambda: store.aadd_documents(documents, ids=ids))
        await self._persist()

        logger.info(
            f"{__name__}:add_documents - Indexed {len(ids)} chunks",
            extra={"chunk_count": len(ids)},
        )
        return ids

    async def _present_ids(self, store: VectorStore, ids: Sequence[str]) -> list[str]:
        """
        Restrict ids to those the store holds.

        Local stores expose their id map. Remote stores are asked through
        get_by_ids when they implement it; otherwise every id is assumed
        present and deleted_count reports the requested count.
        """
        docstore_ids = getattr(store, "index_to_docstore_id", None)
        if isinstance(docstore_ids, dict):
            known = set(docstore_ids.values())
            return [chunk_id for chunk_id in ids if chunk_id in known]
        in_memory = getattr(store, "store", None)
        if isinstance(in_memory, dict):
            return [chunk_id for chunk_id in ids if chunk_id in in_memory]
        lookup = getattr(type(store), "get_by_ids", None)
        if lookup is None or lookup is VectorStore.get_by_ids:
            return list(ids)
        found = await self._retry("lookup", lambda: store.aget_by_ids(list(ids)))
        found_ids = {doc.id for doc in found}
        return [chunk_id for chunk_id in ids if chunk_id in found_ids]

    async def delete_chunks(self, ids: Sequence[str]) -> DeleteResult:
        """
        Delete chunks by id. Unknown ids are ignored.

        Args:
            ids: Chunk identifiers

        Returns:
            DeleteResult with the number of chunks removed

        Raises:
            VectorIndexError: Deletion failed
        """
        if not ids:
            return DeleteResult(deleted_count=0)
        store = self._require_store("delete")

        present = await self._present_ids(store, list(dict.fromkeys(ids)))
        if not present:
            return DeleteResult(deleted_count=0)

        await self._retry("delete", lambda: store.adelete(ids=present))
        await self._persist()

        logger.info(
            f"{__name__}:delete_chunks - Deleted {len(present)} chunks",
            extra={"requested": len(ids), "deleted": len(present)},
        )
        return DeleteResult(deleted_count=len(present))

    async def search(self, query: str, k: int | None = None) -> list[VectorSearchResult]:
        """
        Rank stored chunks by similarity to a text query.

        Args:
            query: Query text
            k: Number of results (settings.top_k when None)

        Returns:
            Results in rank order

        Raises:
            VectorIndexError: Search failed
        """
        store = self._require_store("search")
        top_k = k or self._settings.top_k

        matches = await self._retry(
            "search",
            lambda: store.asimilarity_search_with_score(query, k=top_k),
        )
        return [
            VectorSearchResult(
                id=self._result_id(doc),
                content=doc.page_content,
                metadata=dict(doc.metadata),
                distance=float(score),
            )
            for doc, score in matches
        ]

    @staticmethod
    def _result_id(doc: Document) -> str:
        if doc.id:
            return doc.id
        metadata: dict[str, Any] = doc.metadata
        return make_chunk_id(metadata.get("source_document_id", ""), metadata.get("chunk_index", 0))

    def _count(self) -> int | None:
        ntotal = getattr(getattr(self._store, "index", None), "ntotal", None)
        if isinstance(ntotal, int):
            return ntotal
        in_memory = getattr(self._store, "store", None)
        if isinstance(in_memory, dict):
            return len(in_memory)
        return None

    async def stats(self) -> VectorIndexStats:
        """Connection state and, where the backend exposes it, the vector count."""
        if self._store is None:
            return VectorIndexStats(connected=False, count=None, index_name=self.index_name)
        return VectorIndexStats(connected=True, count=self._count(), index_name=self.index_name)
