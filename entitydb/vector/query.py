"""
Full-scan top-k queries over a RecordStore.

Every query reads all records from one readonly scope, scores each one, sorts
and slices. Sorting is stable, so records with equal scores keep the
backend's enumeration order (ascending id for the shipped backends). That
order is an implementation detail, not part of the result contract.
"""

from typing import Any, List, Optional, Sequence, Union

from ..core.errors import AccelerationUnavailable, IncompatibleVector
from ..util.logging import logger
from .distance import DistanceEngine
from .quantize import quantize
from .similarity import cosine
from .store import RecordStore
from .types import PackedVector, QueryMode, QueryResult, Record

QueryVector = Union[Sequence[float], PackedVector]


def _binary_words(vector: PackedVector) -> List[str]:
    return [format(int(w), "b") for w in vector.words]


class QueryEngine:
    """Scores records with cosine similarity or Hamming distance and returns the top k."""

    def __init__(self, store: RecordStore, distance: Optional[DistanceEngine] = None):
        self.store = store
        self.distance = distance or DistanceEngine()

    @staticmethod
    def _packed_query(query: QueryVector) -> PackedVector:
        if isinstance(query, PackedVector):
            return query
        return quantize(query)

    def _score(self, mode: QueryMode, query: Any, record: Record, accelerated: bool) -> float:
        if mode is QueryMode.HAMMING:
            if not record.is_packed():
                raise IncompatibleVector(
                    "Hamming query requires packed vectors", operation="query_by_vector", key=record.id
                )
            return self.distance.distance(query, record.vector, accelerated=accelerated)

        if record.is_packed() or not record.has_vector():
            raise IncompatibleVector(
                "Cosine query requires dense vectors", operation="query_by_vector", key=record.id
            )
        return cosine(query, record.vector)

    @staticmethod
    def _rank(results: List[QueryResult], mode: QueryMode, limit: int) -> List[QueryResult]:
        results.sort(key=lambda r: r.score, reverse=mode.descending)
        return results[:limit]

    async def query_by_vector(self, query: QueryVector, mode: QueryMode = QueryMode.COSINE,
                              limit: int = 10, accelerated: bool = False) -> List[QueryResult]:
        """
        Rank every stored record against a query vector.

        Args:
            query: Dense vector; in hamming mode it may also be a PackedVector,
                a dense query is quantized first
            mode: COSINE (descending similarity) or HAMMING (ascending distance)
            limit: Number of results to keep; <= 0 returns nothing
            accelerated: Use the loaded kernel for Hamming distances

        Returns:
            At most `limit` QueryResults in rank order
        """
        mode = QueryMode(mode)
        if limit <= 0:
            return []

        if mode is QueryMode.HAMMING:
            query = self._packed_query(query)
            if accelerated and not self.distance.accelerated_available:
                raise AccelerationUnavailable("No accelerated kernel is loaded", operation="query_by_vector")

        dump = mode is QueryMode.HAMMING and accelerated and logger.is_debug()
        if dump:
            logger.debug(f"Query vector (binary): {_binary_words(query)}")

        records = await self.store.scan_all()
        if dump:
            for record in records:
                if record.is_packed():
                    logger.debug(f"Record {record.id!r} vector (binary): {_binary_words(record.vector)}")

        results = [
            QueryResult(id=record.id, score=self._score(mode, query, record, accelerated), mode=mode, record=record)
            for record in records
        ]
        ranked = self._rank(results, mode, limit)

        logger.log_query(mode.value, limit, scanned=len(records), returned=len(ranked), accelerated=accelerated)
        return ranked

    async def query_by_text(self, text: str, mode: QueryMode = QueryMode.COSINE,
                            limit: int = 10, accelerated: bool = False) -> List[QueryResult]:
        """Embed text with the store's provider, then delegate to query_by_vector."""
        vector = await self.store.embed_text(text, "query_by_text")
        return await self.query_by_vector(vector, mode=mode, limit=limit, accelerated=accelerated)

    async def query_manual(self, query: Sequence[float], limit: int = 10) -> List[QueryResult]:
        """Cosine query that skips, rather than fails on, records without a dense vector."""
        if limit <= 0:
            return []

        records = await self.store.scan_all()

        results: List[QueryResult] = []
        skipped = 0
        for record in records:
            if record.is_packed() or not record.has_vector():
                logger.warning(f"Skipping entry {record.id}: missing vector")
                skipped += 1
                continue
            results.append(QueryResult(id=record.id, score=cosine(query, record.vector),
                                       mode=QueryMode.COSINE, record=record))

        ranked = self._rank(results, QueryMode.COSINE, limit)
        logger.log_query("manual", limit, scanned=len(records), returned=len(ranked), skipped=skipped)
        return ranked
