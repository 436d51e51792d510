"""
EntityDB: an embedded vector store with exact cosine and Hamming search.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .core.backend import IRecordBackend
from .core.config import StoreConfig, get_backend
from .vector.accel import load_kernel
from .vector.distance import AcceleratedHamming, DistanceEngine
from .vector.embeddings import IEmbeddingProvider, get_embedding_provider
from .vector.query import QueryEngine, QueryVector
from .vector.store import RecordStore
from .vector.types import QueryMode, QueryResult


class EntityDB:
    """
    Async facade wiring configuration, backend, record store and query engine.

    Args:
        options: Store options (`name`, `vector_field`, `model_id`); unknown keys are ignored
        backend: Backend to use instead of the configured one
        embedder: Embedding provider to use instead of the one named by `model_id`
        kernel: Already-loaded accelerated kernel instance
    """

    def __init__(self, options: Optional[Mapping[str, Any]] = None, *,
                 backend: Optional[IRecordBackend] = None,
                 embedder: Optional[IEmbeddingProvider] = None,
                 kernel: Any = None):
        self.config = StoreConfig.from_options(options)
        self.backend = backend if backend is not None else get_backend(self.config)
        self.embedder = embedder if embedder is not None else get_embedding_provider(self.config.model_id)

        self.store = RecordStore(self.backend, self.embedder, vector_field=self.config.vector_field)
        self.distance = DistanceEngine(AcceleratedHamming(kernel) if kernel is not None else None)
        self.engine = QueryEngine(self.store, self.distance)

    @property
    def vector_field(self) -> str:
        return self.config.vector_field

    def load_acceleration(self, module_name: Optional[str] = None) -> None:
        """Load and validate the accelerated kernel; raises AccelerationUnavailable on failure."""
        if self.distance.accelerator is None:
            self.distance.accelerator = AcceleratedHamming(load_kernel(module_name))

    def _results(self, results: List[QueryResult]) -> List[Dict[str, Any]]:
        return [result.as_dict(self.vector_field) for result in results]

    # ---------------- writes ----------------

    async def insert(self, data: Mapping[str, Any]) -> Any:
        return await self.store.insert(data)

    async def insert_binary(self, data: Mapping[str, Any]) -> Any:
        return await self.store.insert_binary(data)

    async def insert_manual_vectors(self, data: Mapping[str, Any]) -> Any:
        return await self.store.insert_manual(data)

    async def insert_manual_batch(self, items: Iterable[Mapping[str, Any]]) -> List[Any]:
        return await self.store.insert_manual_batch(items)

    async def insert_batch(self, items: Iterable[Mapping[str, Any]]) -> List[Any]:
        return await self.store.insert_batch(items)

    async def update(self, key: Any, data: Mapping[str, Any]) -> None:
        await self.store.update(key, data)

    async def update_batch(self, updates: Iterable[Mapping[str, Any]]) -> List[Any]:
        return await self.store.update_batch(updates)

    async def delete(self, key: Any) -> None:
        await self.store.delete(key)

    async def delete_batch(self, keys: Iterable[Any]) -> None:
        await self.store.delete_batch(keys)

    # ---------------- reads ----------------

    async def has_embedding(self, key: Any) -> bool:
        return await self.store.has_embedding(key)

    async def has_embeddings(self, keys: Iterable[Any]) -> Dict[Any, bool]:
        return await self.store.has_embeddings(keys)

    async def get_all_keys(self) -> List[Any]:
        return await self.store.get_all_keys()

    async def query(self, query_text: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Cosine similarity against the embedding of query_text."""
        return self._results(await self.engine.query_by_text(query_text, QueryMode.COSINE, limit))

    async def query_binary(self, query_text: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Hamming distance against the quantized embedding of query_text."""
        return self._results(await self.engine.query_by_text(query_text, QueryMode.HAMMING, limit))

    async def query_binary_accelerated(self, query_text: str, limit: int = 10) -> List[Dict[str, Any]]:
        """As query_binary, with distances computed by the accelerated kernel."""
        self.load_acceleration()
        return self._results(
            await self.engine.query_by_text(query_text, QueryMode.HAMMING, limit, accelerated=True)
        )

    async def query_manual_vectors(self, query_vector: Sequence[float], limit: int = 10) -> List[Dict[str, Any]]:
        """Cosine similarity against a precomputed vector."""
        return self._results(await self.engine.query_manual(query_vector, limit))

    async def query_by_vector(self, query: QueryVector, mode: QueryMode = QueryMode.COSINE,
                              limit: int = 10, accelerated: bool = False) -> List[Dict[str, Any]]:
        if accelerated:
            self.load_acceleration()
        return self._results(await self.engine.query_by_vector(query, mode, limit, accelerated))

    # ---------------- lifecycle ----------------

    async def close(self) -> None:
        await self.backend.close()

    async def __aenter__(self) -> "EntityDB":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
