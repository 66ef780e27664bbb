"""
Ingestion pipeline.

This module orchestrates the document ingestion workflow:
1. Load documents from a byte stream with the loader for its file type
2. Split documents into chunks
3. Run the transformer chain over the chunks
4. Embed the surviving chunks
5. Store them in a dataset, dropping chunks left by an earlier ingestion
   of the same source

Splitter and transformers come from the request when given, and from the
file-type defaults otherwise. Every failure is reported with the document id
and the stage it happened in; in ingest_many a failing document never stops
its siblings.
"""

from __future__ import annotations

import asyncio
import io
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, BinaryIO, Callable, Iterator, List

from knowledge.core.embeddings import EmbeddingModelProvider
from knowledge.core.store import Store
from knowledge.core.types import (
    DATASET_ID_KEY,
    FILETYPE_KEY,
    SOURCE_ID_KEY,
    Document,
)
from knowledge.ingestion.defaults import default_document_transformers, default_text_splitter
from knowledge.ingestion.loader import DocumentLoaderFactory, Loader, LoaderFactory
from knowledge.ingestion.textsplitter import TextSplitter, TextSplitterOptions
from knowledge.ingestion.transformers import DocumentTransformer
from knowledge.utils.exceptions import (
    DatasetNotFoundError,
    KnowledgeError,
    PipelineStageError,
    TransformationError,
)
from knowledge.utils.logging import LoggerMixin, document_context

if TYPE_CHECKING:
    from knowledge.config.settings import Settings

SplitterFactory = Callable[[str, TextSplitterOptions | None], TextSplitter]
TransformersFactory = Callable[[str], List[DocumentTransformer]]


class Stage(str, Enum):
    """Pipeline stages, in execution order."""

    LOAD = "load"
    SPLIT = "split"
    TRANSFORM = "transform"
    EMBED = "embed"
    STORE = "store"


class TransformerErrorPolicy(str, Enum):
    """What the pipeline does when a transformer raises TransformationError."""

    ABORT = "abort"
    SKIP = "skip"


@dataclass
class IngestionRequest:
    """
    One document to ingest.

    Attributes:
        dataset_id: Dataset (collection) receiving the chunks.
        source_id: Stable identifier of the source document.
        filetype: File extension or MIME type driving default selection.
        content: Raw bytes or a binary stream.
        metadata: Extra metadata stamped on every chunk.
        loader: Explicit loader, overrides the loader factory.
        text_splitter: Explicit splitter, overrides the file-type default.
        transformers: Explicit transformer chain, overrides the file-type
            default. An empty list means no transformers.
    """

    dataset_id: str
    source_id: str
    filetype: str
    content: bytes | BinaryIO
    metadata: dict[str, Any] = field(default_factory=dict)
    loader: Loader | None = None
    text_splitter: TextSplitter | None = None
    transformers: List[DocumentTransformer] | None = None


@dataclass
class IngestionResult:
    """
    Result of an ingestion operation.

    Attributes:
        success: Whether the ingestion was successful.
        source_id: Identifier of the ingested document.
        dataset_id: Dataset the chunks were written to.
        num_documents_loaded: Number of documents produced by the loader.
        num_chunks_created: Number of chunks left after splitting and transforming.
        num_chunks_stored: Number of chunks written to the store.
        stage: Stage that failed (None if successful).
        error: Error message if ingestion failed (None if successful).
        exception: The PipelineStageError raised, for callers that re-raise.
    """
    success: bool
    source_id: str
    dataset_id: str
    num_documents_loaded: int = 0
    num_chunks_created: int = 0
    num_chunks_stored: int = 0
    stage: Stage | None = None
    error: str | None = None
    exception: PipelineStageError | None = field(default=None, repr=False)

    def __str__(self) -> str:
        """Human-readable string representation."""
        if self.success:
            return (
                f"✓ {self.source_id}: "
                f"{self.num_documents_loaded} docs → "
                f"{self.num_chunks_created} chunks → "
                f"{self.num_chunks_stored} stored"
            )
        return f"✗ {self.source_id} [{self.stage.value if self.stage else '?'}]: {self.error}"


class IngestionPipeline(LoggerMixin):
    """
    Document ingestion pipeline.

    Args:
        store: Store receiving the chunks.
        embedding_provider: Configured provider embedding the chunks.
        loader_factory: Maps a file type to a loader.
        splitter_factory: Default splitter selection.
        transformers_factory: Default transformer selection.
        splitter_options: Explicit options handed to splitter_factory.
        transformer_error_policy: abort the document or skip the failing
            transformer when a TransformationError is raised.
        max_concurrency: Default parallelism of ingest_many.

    Example:
        >>> pipeline = IngestionPipeline(store, provider)
        >>> result = await pipeline.ingest(
        ...     IngestionRequest("handbook", "intro.md", ".md", b"# Intro\\n\\nHello")
        ... )
        >>> print(result)
        ✓ intro.md: 1 docs → 1 chunks → 1 stored
    """

    def __init__(
        self,
        store: Store,
        embedding_provider: EmbeddingModelProvider,
        loader_factory: LoaderFactory | None = None,
        splitter_factory: SplitterFactory = default_text_splitter,
        transformers_factory: TransformersFactory = default_document_transformers,
        splitter_options: TextSplitterOptions | None = None,
        transformer_error_policy: TransformerErrorPolicy | str = TransformerErrorPolicy.ABORT,
        max_concurrency: int = 4,
    ) -> None:
        self.store = store
        self.embedding_provider = embedding_provider
        self.loader_factory = loader_factory or DocumentLoaderFactory()
        self.splitter_factory = splitter_factory
        self.transformers_factory = transformers_factory
        self.splitter_options = splitter_options
        self.transformer_error_policy = TransformerErrorPolicy(transformer_error_policy)
        self.max_concurrency = max_concurrency

        self.logger.info(
            "ingestion_pipeline_initialized",
            provider=embedding_provider.name,
            transformer_error_policy=self.transformer_error_policy.value,
        )

    async def ingest(self, request: IngestionRequest) -> IngestionResult:
        """
        Ingest a single document.

        Errors are captured in the returned IngestionResult; cancellation
        propagates to the caller.
        """
        result = IngestionResult(
            success=False,
            source_id=request.source_id,
            dataset_id=request.dataset_id,
        )
        with document_context(request.source_id, request.dataset_id):
            self.logger.info("ingestion_started", filetype=request.filetype)
            try:
                await self._run(request, result)
            except PipelineStageError as e:
                result.stage = Stage(e.stage)
                result.error = str(e.cause) if e.cause else e.message
                result.exception = e
                self.logger.error("ingestion_failed", stage=e.stage, error=result.error)
                return result

            result.success = True
            self.logger.info(
                "ingestion_complete",
                num_documents=result.num_documents_loaded,
                num_chunks=result.num_chunks_created,
                num_stored=result.num_chunks_stored,
            )
        return result

    async def ingest_many(
        self,
        requests: List[IngestionRequest],
        max_concurrency: int | None = None,
    ) -> List[IngestionResult]:
        """
        Ingest documents concurrently.

        Returns one result per request, in request order.
        """
        semaphore = asyncio.Semaphore(max_concurrency or self.max_concurrency)

        async def bounded(request: IngestionRequest) -> IngestionResult:
            async with semaphore:
                return await self.ingest(request)

        results = await asyncio.gather(*(bounded(r) for r in requests))

        successful = sum(1 for r in results if r.success)
        self.logger.info(
            "batch_ingestion_complete",
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            total_chunks_stored=sum(r.num_chunks_stored for r in results),
        )
        return list(results)

    async def _run(self, request: IngestionRequest, result: IngestionResult) -> None:
        source_id = request.source_id

        with self._stage(Stage.LOAD, source_id):
            documents = await self._load(request)
        result.num_documents_loaded = len(documents)

        with self._stage(Stage.SPLIT, source_id):
            splitter = request.text_splitter or self.splitter_factory(
                request.filetype, self.splitter_options
            )
            chunks = splitter.split_documents(documents)

        with self._stage(Stage.TRANSFORM, source_id):
            transformers = (
                request.transformers
                if request.transformers is not None
                else self.transformers_factory(request.filetype)
            )
            chunks = self._transform(transformers, chunks)
        result.num_chunks_created = len(chunks)

        ids: List[str] = []
        if chunks:
            with self._stage(Stage.EMBED, source_id):
                embed = self.embedding_provider.embedding_func()
                vectors = await embed([chunk.page_content for chunk in chunks])
                for chunk, vector in zip(chunks, vectors):
                    chunk.embedding = vector

            with self._stage(Stage.STORE, source_id):
                ids = await self.store.add_documents(request.dataset_id, chunks)
        else:
            self.logger.warning("no_chunks_to_store")
        result.num_chunks_stored = len(ids)

        with self._stage(Stage.STORE, source_id):
            await self._remove_stale_chunks(request, ids)

    async def _remove_stale_chunks(self, request: IngestionRequest, kept_ids: List[str]) -> None:
        """Delete chunks of this source that the latest ingestion did not rewrite."""
        try:
            previous = await self.store.get_documents(
                request.dataset_id, where={SOURCE_ID_KEY: request.source_id}
            )
        except DatasetNotFoundError:
            return

        kept = set(kept_ids)
        stale = [doc.id for doc in previous if doc.id not in kept]
        if stale:
            await self.store.delete_documents(request.dataset_id, stale)
            self.logger.info("stale_chunks_removed", count=len(stale))

    async def _load(self, request: IngestionRequest) -> List[Document]:
        loader = request.loader or self.loader_factory(request.filetype)
        reader = (
            io.BytesIO(request.content)
            if isinstance(request.content, (bytes, bytearray))
            else request.content
        )
        loaded = await loader(reader)

        provenance = {
            SOURCE_ID_KEY: request.source_id,
            DATASET_ID_KEY: request.dataset_id,
            FILETYPE_KEY: request.filetype,
        }
        documents = []
        for index, doc in enumerate(loaded):
            metadata = {**doc.metadata, **request.metadata, **provenance}
            doc_id = request.source_id if len(loaded) == 1 else f"{request.source_id}-{index}"
            documents.append(
                Document(id=doc_id, page_content=doc.page_content, metadata=metadata)
            )

        self.logger.debug("documents_loaded", count=len(documents))
        return documents

    def _transform(
        self,
        transformers: List[DocumentTransformer],
        documents: List[Document],
    ) -> List[Document]:
        for transformer in transformers:
            try:
                documents = transformer.transform(documents)
            except TransformationError as e:
                if self.transformer_error_policy is TransformerErrorPolicy.ABORT:
                    raise
                self.logger.warning(
                    "transformer_skipped",
                    transformer=transformer.name,
                    error=str(e),
                )
        return documents

    @contextmanager
    def _stage(self, stage: Stage, document_id: str) -> Iterator[None]:
        """Wrap any failure inside a stage in PipelineStageError."""
        self.logger.debug("stage_started", stage=stage.value)
        try:
            yield
        except Exception as e:
            message = e.message if isinstance(e, KnowledgeError) else str(e)
            raise PipelineStageError(
                f"Stage '{stage.value}' failed for {document_id}: {message}",
                document_id=document_id,
                stage=stage.value,
                cause=e,
            ) from e


def get_ingestion_pipeline(
    settings: Settings | None = None,
    store: Store | None = None,
    embedding_provider: EmbeddingModelProvider | None = None,
) -> IngestionPipeline:
    """
    Convenience function wiring a pipeline from settings.

    Args:
        settings: Optional settings. If None, loads from environment.
        store: Optional store. If None, a ChromaStore is created.
        embedding_provider: Optional provider. If None, one is selected from
            settings and configured.

    Example:
        >>> pipeline = get_ingestion_pipeline()
        >>> results = await pipeline.ingest_many(requests)
    """
    from knowledge.config.settings import get_settings
    from knowledge.core.embeddings import get_embedding_provider
    from knowledge.core.vectorstore import ChromaStore

    settings = settings or get_settings()

    if embedding_provider is None:
        embedding_provider = get_embedding_provider(settings=settings.embedding)
        embedding_provider.configure()

    if store is None:
        store = ChromaStore(settings.chroma, embedding_provider)

    return IngestionPipeline(
        store=store,
        embedding_provider=embedding_provider,
        splitter_options=settings.chunking.as_options(),
        transformer_error_policy=settings.ingestion.transformer_error_policy,
        max_concurrency=settings.ingestion.max_concurrency,
    )
