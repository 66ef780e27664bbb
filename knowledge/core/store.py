"""Abstract base class for vector-store backends.

Adding a new backend only requires subclassing :class:`Store` and
implementing its abstract coroutines. Ingestion and query code depend on
this contract alone.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from knowledge.core.types import Dataset, DatasetGetOpts, Document, WhereDocument
from knowledge.utils.exceptions import InvalidQueryError


class Store(ABC):
    """Backend-agnostic persistence and query facade.

    Every method is a coroutine. Cancelling the awaiting task abandons the
    call; implementations must not leave partially written batches behind.
    """

    # -- read side ------------------------------------------------------------

    @abstractmethod
    async def list_datasets(self) -> list[Dataset]:
        """Return every known dataset, or an empty list."""

    @abstractmethod
    async def get_dataset(
        self,
        dataset_id: str,
        opts: DatasetGetOpts | None = None,
    ) -> Dataset:
        """Return one dataset.

        Raises:
            DatasetNotFoundError: No dataset with that id exists.
        """

    async def similarity_search(
        self,
        query: str,
        k: int,
        collection: str,
        where: dict[str, str] | None = None,
        where_document: list[WhereDocument] | None = None,
    ) -> list[Document]:
        """Return up to *k* documents of *collection* ranked by similarity.

        ``k`` is validated here, before the backend is touched.

        Raises:
            InvalidQueryError: ``k`` is zero or negative.
            DatasetNotFoundError: *collection* does not exist.
        """
        if k <= 0:
            raise InvalidQueryError(
                f"k must be a positive integer, got {k}",
                details={"k": k, "collection": collection},
            )
        return await self._similarity_search(
            query, k, collection, where or {}, where_document or []
        )

    @abstractmethod
    async def _similarity_search(
        self,
        query: str,
        k: int,
        collection: str,
        where: dict[str, str],
        where_document: list[WhereDocument],
    ) -> list[Document]:
        """Backend search; arguments are already validated."""

    @abstractmethod
    async def get_documents(
        self,
        dataset_id: str,
        where: dict[str, str] | None = None,
        where_document: list[WhereDocument] | None = None,
    ) -> list[Document]:
        """Return all documents of a dataset matching the filters, unranked."""

    # -- write side -----------------------------------------------------------

    @abstractmethod
    async def add_documents(self, dataset_id: str, documents: list[Document]) -> list[str]:
        """Persist *documents*, creating the dataset on first write.

        Returns the stored document ids.
        """

    @abstractmethod
    async def delete_documents(self, dataset_id: str, ids: list[str]) -> None:
        """Remove the documents with the given ids from a dataset.

        Raises:
            DatasetNotFoundError: No dataset with that id exists.
        """

    @abstractmethod
    async def delete_dataset(self, dataset_id: str) -> None:
        """Remove a dataset and all of its documents."""
