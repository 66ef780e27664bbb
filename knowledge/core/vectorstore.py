"""
ChromaDB implementation of the Store contract.

This module provides:
- Connection management (HTTP, persistent or in-memory client)
- Datasets mapped one-to-one onto Chroma collections
- Similarity search with metadata and document-content filters
- Document storage with embeddings supplied by an EmbeddingModelProvider
"""

from __future__ import annotations

import asyncio
from typing import Any
from uuid import uuid4

import chromadb
from chromadb.api.models.Collection import Collection
from chromadb.errors import NotFoundError

from knowledge.config.settings import ChromaSettings
from knowledge.core.embeddings import EmbeddingModelProvider
from knowledge.core.store import Store
from knowledge.core.types import (
    SIMILARITY_KEY,
    Dataset,
    DatasetGetOpts,
    Document,
    WhereDocument,
)
from knowledge.utils.exceptions import (
    DatasetNotFoundError,
    StoreConnectionError,
    StoreQueryError,
    StoreWriteError,
)
from knowledge.utils.logging import LoggerMixin, get_logger

logger = get_logger(__name__)

_SCALAR_TYPES = (str, int, float, bool)


def build_where(where: dict[str, str] | None) -> dict[str, Any] | None:
    """Convert a key/value mapping to a conjunctive Chroma ``where`` clause."""
    if not where:
        return None
    clauses = [{key: {"$eq": value}} for key, value in where.items()]
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def build_where_document(where_document: list[WhereDocument] | None) -> dict[str, Any] | None:
    """Convert content predicates to a conjunctive Chroma ``where_document`` clause."""
    if not where_document:
        return None
    clauses = [w.to_chroma() for w in where_document]
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def sanitize_metadata(metadata: dict[str, Any]) -> dict[str, Any] | None:
    """Keep the scalar values Chroma accepts; stringify the rest, drop None."""
    cleaned = {}
    for key, value in metadata.items():
        if value is None:
            continue
        cleaned[key] = value if isinstance(value, _SCALAR_TYPES) else str(value)
    return cleaned or None


class ChromaStore(LoggerMixin, Store):
    """
    Store backed by ChromaDB.

    Blocking client calls run in worker threads, so cancelling the awaiting
    task returns immediately.

    Example:
        >>> from knowledge.config.settings import get_settings
        >>> from knowledge.core.embeddings import get_embedding_provider
        >>> provider = get_embedding_provider()
        >>> provider.configure()
        >>> store = ChromaStore(get_settings().chroma, provider)
        >>> docs = await store.similarity_search("what is RAG?", 4, "handbook")
    """

    def __init__(
        self,
        settings: ChromaSettings,
        embedding_provider: EmbeddingModelProvider,
    ) -> None:
        self.settings = settings
        self.embedding_provider = embedding_provider
        self._client: chromadb.ClientAPI | None = None
        self._client_lock = asyncio.Lock()

        self.logger.info(
            "chroma_store_initialized",
            host=settings.host,
            port=settings.port,
            in_memory=settings.in_memory,
            provider=embedding_provider.name,
        )

    async def _get_client(self) -> chromadb.ClientAPI:
        """
        Get or create the ChromaDB client.

        The client is built in a worker thread, since an HTTP client blocks
        on its heartbeat.

        Raises:
            StoreConnectionError: If unable to connect to ChromaDB.
        """
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    self._client = await asyncio.to_thread(self._create_client)
        return self._client

    def _create_client(self) -> chromadb.ClientAPI:
        try:
            if self.settings.in_memory:
                self.logger.info("creating_in_memory_client")
                return chromadb.Client()

            if self.settings.persist_directory:
                self.logger.info(
                    "creating_persistent_client",
                    path=self.settings.persist_directory,
                )
                return chromadb.PersistentClient(path=self.settings.persist_directory)

            self.logger.info(
                "creating_http_client",
                host=self.settings.host,
                port=self.settings.port,
            )
            client = chromadb.HttpClient(
                host=self.settings.host,
                port=self.settings.port,
            )
            client.heartbeat()
            self.logger.info("chromadb_connection_successful")
            return client

        except Exception as e:
            self.logger.error(
                "chromadb_connection_failed",
                error=str(e),
                host=self.settings.host,
                port=self.settings.port,
                exc_info=True,
            )
            raise StoreConnectionError(
                f"Failed to connect to ChromaDB at {self.settings.host}:{self.settings.port}",
                cause=e,
            ) from e

    async def _get_collection(self, dataset_id: str) -> Collection:
        client = await self._get_client()
        try:
            return await asyncio.to_thread(client.get_collection, name=dataset_id)
        except (NotFoundError, ValueError) as e:
            raise DatasetNotFoundError(
                f"Dataset not found: {dataset_id}",
                details={"dataset_id": dataset_id},
                cause=e,
            ) from e
        except Exception as e:
            self.logger.error("get_collection_failed", dataset_id=dataset_id, error=str(e))
            raise StoreConnectionError(
                f"Opening dataset '{dataset_id}' failed",
                details={"dataset_id": dataset_id},
                cause=e,
            ) from e

    def _similarity(self, distance: float) -> float:
        # cosine and ip distances are 1 - similarity; l2 is unbounded
        if self.settings.distance == "l2":
            return 1.0 / (1.0 + distance)
        return 1.0 - distance

    # -- read side ------------------------------------------------------------

    async def list_datasets(self) -> list[Dataset]:
        client = await self._get_client()

        datasets = []
        try:
            entries = await asyncio.to_thread(client.list_collections)
            for entry in entries:
                # chromadb 0.6 returned bare names, 1.x returns collections
                if isinstance(entry, str):
                    entry = await asyncio.to_thread(client.get_collection, name=entry)
                count = await asyncio.to_thread(entry.count)
                datasets.append(
                    Dataset(id=entry.name, metadata=dict(entry.metadata or {}), document_count=count)
                )
        except Exception as e:
            self.logger.error("list_datasets_failed", error=str(e), exc_info=True)
            raise StoreQueryError("Listing datasets failed", cause=e) from e

        self.logger.info("datasets_listed", count=len(datasets))
        return datasets

    async def get_dataset(
        self,
        dataset_id: str,
        opts: DatasetGetOpts | None = None,
    ) -> Dataset:
        opts = opts or DatasetGetOpts()
        collection = await self._get_collection(dataset_id)
        try:
            count = await asyncio.to_thread(collection.count)
            results = None
            if opts.include_documents:
                results = await asyncio.to_thread(
                    collection.get,
                    limit=opts.limit,
                    offset=opts.offset,
                    include=["documents", "metadatas"],
                )
        except Exception as e:
            self.logger.error("get_dataset_failed", dataset_id=dataset_id, error=str(e))
            raise StoreQueryError(
                f"Reading dataset '{dataset_id}' failed",
                details={"dataset_id": dataset_id},
                cause=e,
            ) from e

        dataset = Dataset(
            id=dataset_id,
            metadata=dict(collection.metadata or {}),
            document_count=count,
        )
        if results is not None:
            dataset.documents = self._to_documents(results)

        self.logger.info(
            "dataset_retrieved",
            dataset_id=dataset_id,
            document_count=count,
            included=len(dataset.documents),
        )
        return dataset

    async def _similarity_search(
        self,
        query: str,
        k: int,
        collection: str,
        where: dict[str, str],
        where_document: list[WhereDocument],
    ) -> list[Document]:
        self.logger.info(
            "searching",
            collection=collection,
            query_length=len(query),
            k=k,
            has_where=bool(where),
            has_where_document=bool(where_document),
        )
        chroma_collection = await self._get_collection(collection)

        embed = self.embedding_provider.embedding_func()
        query_embeddings = await embed([query])

        try:
            results = await asyncio.to_thread(
                chroma_collection.query,
                query_embeddings=query_embeddings,
                n_results=k,
                where=build_where(where),
                where_document=build_where_document(where_document),
                include=["documents", "metadatas", "distances"],
            )
        except Exception as e:
            self.logger.error("search_failed", collection=collection, error=str(e), exc_info=True)
            raise StoreQueryError(
                f"Similarity search in '{collection}' failed",
                details={"collection": collection},
                cause=e,
            ) from e

        ids = (results.get("ids") or [[]])[0]
        contents = (results.get("documents") or [[]])[0]
        metadatas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        documents = []
        for doc_id, content, metadata, distance in zip(ids, contents, metadatas, distances):
            metadata = dict(metadata or {})
            metadata[SIMILARITY_KEY] = self._similarity(distance)
            documents.append(Document(id=doc_id, page_content=content or "", metadata=metadata))

        self.logger.info("search_completed", collection=collection, results_count=len(documents))
        return documents

    async def get_documents(
        self,
        dataset_id: str,
        where: dict[str, str] | None = None,
        where_document: list[WhereDocument] | None = None,
    ) -> list[Document]:
        collection = await self._get_collection(dataset_id)
        try:
            results = await asyncio.to_thread(
                collection.get,
                where=build_where(where),
                where_document=build_where_document(where_document),
                include=["documents", "metadatas"],
            )
        except Exception as e:
            self.logger.error("get_documents_failed", dataset_id=dataset_id, error=str(e))
            raise StoreQueryError(
                f"Fetching documents from '{dataset_id}' failed",
                details={"dataset_id": dataset_id},
                cause=e,
            ) from e

        documents = self._to_documents(results)
        self.logger.info("documents_retrieved", dataset_id=dataset_id, count=len(documents))
        return documents

    @staticmethod
    def _to_documents(results: dict[str, Any]) -> list[Document]:
        ids = results.get("ids") or []
        contents = results.get("documents") or [None] * len(ids)
        metadatas = results.get("metadatas") or [None] * len(ids)
        return [
            Document(id=doc_id, page_content=content or "", metadata=dict(metadata or {}))
            for doc_id, content, metadata in zip(ids, contents, metadatas)
        ]

    # -- write side -----------------------------------------------------------

    async def add_documents(self, dataset_id: str, documents: list[Document]) -> list[str]:
        if not documents:
            return []

        self.logger.info("adding_documents", dataset_id=dataset_id, count=len(documents))

        missing = [doc for doc in documents if doc.embedding is None]
        if missing:
            embed = self.embedding_provider.embedding_func()
            vectors = await embed([doc.page_content for doc in missing])
            for doc, vector in zip(missing, vectors):
                doc.embedding = vector

        ids = [doc.id or str(uuid4()) for doc in documents]
        client = await self._get_client()
        try:
            collection = await asyncio.to_thread(
                client.get_or_create_collection,
                name=dataset_id,
                metadata={"hnsw:space": self.settings.distance},
            )
            await asyncio.to_thread(
                collection.upsert,
                ids=ids,
                embeddings=[doc.embedding for doc in documents],
                documents=[doc.page_content for doc in documents],
                metadatas=[sanitize_metadata(doc.metadata) for doc in documents],
            )
        except Exception as e:
            self.logger.error(
                "add_documents_failed",
                dataset_id=dataset_id,
                count=len(documents),
                error=str(e),
                exc_info=True,
            )
            raise StoreWriteError(
                f"Storing documents in '{dataset_id}' failed",
                details={"dataset_id": dataset_id, "count": len(documents)},
                cause=e,
            ) from e

        self.logger.info("documents_added", dataset_id=dataset_id, count=len(ids))
        return ids

    async def delete_documents(self, dataset_id: str, ids: list[str]) -> None:
        if not ids:
            return

        collection = await self._get_collection(dataset_id)
        try:
            await asyncio.to_thread(collection.delete, ids=ids)
        except Exception as e:
            self.logger.error("delete_documents_failed", dataset_id=dataset_id, error=str(e))
            raise StoreWriteError(
                f"Deleting documents from '{dataset_id}' failed",
                details={"dataset_id": dataset_id, "count": len(ids)},
                cause=e,
            ) from e
        self.logger.info("documents_deleted", dataset_id=dataset_id, count=len(ids))

    async def delete_dataset(self, dataset_id: str) -> None:
        self.logger.warning("deleting_dataset", dataset_id=dataset_id)
        client = await self._get_client()
        try:
            await asyncio.to_thread(client.delete_collection, name=dataset_id)
        except (NotFoundError, ValueError) as e:
            raise DatasetNotFoundError(
                f"Dataset not found: {dataset_id}",
                details={"dataset_id": dataset_id},
                cause=e,
            ) from e
        except Exception as e:
            self.logger.error("delete_dataset_failed", dataset_id=dataset_id, error=str(e))
            raise StoreWriteError(
                f"Deleting dataset '{dataset_id}' failed",
                details={"dataset_id": dataset_id},
                cause=e,
            ) from e
        self.logger.info("dataset_deleted", dataset_id=dataset_id)


def get_store(
    settings: ChromaSettings | None = None,
    embedding_provider: EmbeddingModelProvider | None = None,
    configure_provider: bool = True,
) -> ChromaStore:
    """
    Convenience function to get a configured Chroma store.

    Args:
        settings: Optional ChromaDB settings. If None, loads from environment.
        embedding_provider: Optional provider. If None, one is selected from
            settings.
        configure_provider: Configure the selected provider. Pass False for
            stores that never embed, e.g. to list datasets.
    """
    if settings is None:
        from knowledge.config.settings import get_settings

        settings = get_settings().chroma

    if embedding_provider is None:
        from knowledge.core.embeddings import get_embedding_provider

        embedding_provider = get_embedding_provider()
        if configure_provider:
            embedding_provider.configure()

    return ChromaStore(settings, embedding_provider)
