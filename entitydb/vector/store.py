"""
Record lifecycle against the persistent backend: inserts (embedded, binary,
manual, batched), partial updates, deletes and embedding presence checks.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..core.backend import READONLY, READWRITE, IRecordBackend
from ..core.errors import (
    BackendFailure,
    EntityDBError,
    IncompatibleVector,
    MissingIdentifier,
    NotFound,
)
from ..util.logging import logger
from .embeddings import IEmbeddingProvider
from .quantize import quantize
from .types import Record, VectorAccessor


class RecordStore:
    """
    Owns record CRUD against an IRecordBackend.

    Records are written through a VectorAccessor fixed at construction, so
    the attribute holding the vector is resolved once, not per record.
    """

    def __init__(self, backend: IRecordBackend, embedder: Optional[IEmbeddingProvider] = None,
                 vector_field: str = "vector"):
        self.backend = backend
        self.embedder = embedder
        self.accessor = VectorAccessor(vector_field)

    @property
    def vector_field(self) -> str:
        return self.accessor.field

    # ---------------- helpers ----------------

    @asynccontextmanager
    async def _guard(self, operation: str, key: Any = None):
        """Log failures and wrap untyped backend errors in BackendFailure."""
        try:
            yield
        except EntityDBError as e:
            logger.log_store_operation(operation, key, status="failed", details={"error": e.message})
            raise
        except Exception as e:
            logger.log_store_operation(operation, key, status="failed", details={"error": str(e)})
            raise BackendFailure(f"{type(e).__name__}: {e}", operation=operation, key=key) from e

    @staticmethod
    def _require_id(data: Mapping[str, Any], operation: str) -> Any:
        if not isinstance(data, Mapping):
            raise TypeError(f"{operation} expects a mapping, got {type(data).__name__}")
        key = data.get("id")
        if key is None:
            raise MissingIdentifier(f"ID is required for {operation}", operation=operation)
        return key

    async def embed_text(self, text: str, operation: str, key: Any = None) -> List[float]:
        if self.embedder is None:
            raise EntityDBError("No embedding provider configured", operation=operation, key=key)
        return await self.embedder.embed(text)

    async def _resolve(self, data: Mapping[str, Any], operation: str, embed: bool) -> Record:
        """Build a Record from a caller mapping; text, when present, is embedded."""
        key = self._require_id(data, operation)
        _, vector, attributes = self.accessor.split(data)

        text = data.get("text")
        if embed and text:
            vector = await self.embed_text(text, operation, key)

        try:
            vector = self.accessor.coerce(vector)
        except IncompatibleVector as e:
            raise IncompatibleVector(e.message, operation=operation, key=key) from e
        return Record(id=key, vector=vector, attributes=attributes)

    @staticmethod
    def _binarize(record: Record, operation: str) -> Record:
        if record.is_packed():
            return record
        if not record.has_vector():
            raise IncompatibleVector(
                "A vector or text is required for binary insert", operation=operation, key=record.id
            )
        return Record(id=record.id, vector=quantize(record.vector), attributes=record.attributes)

    async def _add_all(self, operation: str, records: List[Record]) -> List[Any]:
        """Add records in one readwrite scope; any failure rolls back every add."""
        key = records[0].id if len(records) == 1 else None
        keys: List[Any] = []
        async with self._guard(operation, key):
            async with self.backend.transaction(READWRITE) as tx:
                for record in records:
                    keys.append(await tx.add(record.to_document()))

        if len(records) == 1:
            logger.log_store_operation(operation, keys[0])
        else:
            logger.log_store_operation(operation, details={"count": len(keys)})
        return keys

    # ---------------- inserts ----------------

    async def insert(self, data: Mapping[str, Any]) -> Any:
        """Insert one record, embedding its `text` field when present."""
        record = await self._resolve(data, "insert", embed=True)
        return (await self._add_all("insert", [record]))[0]

    async def insert_binary(self, data: Mapping[str, Any]) -> Any:
        """Insert one record with its vector quantized and packed."""
        record = await self._resolve(data, "insert_binary", embed=True)
        record = self._binarize(record, "insert_binary")
        return (await self._add_all("insert_binary", [record]))[0]

    async def insert_manual(self, data: Mapping[str, Any]) -> Any:
        """Insert one record with its caller-supplied vector stored verbatim."""
        record = await self._resolve(data, "insert_manual", embed=False)
        return (await self._add_all("insert_manual", [record]))[0]

    async def insert_manual_batch(self, items: Iterable[Mapping[str, Any]]) -> List[Any]:
        records = [await self._resolve(data, "insert_manual_batch", embed=False) for data in items]
        if not records:
            return []
        return await self._add_all("insert_manual_batch", records)

    async def insert_batch(self, items: Iterable[Mapping[str, Any]]) -> List[Any]:
        """
        Insert many records atomically.

        Every id is checked and every embedding resolved before the write
        scope opens; the adds then share one transaction, so a duplicate id
        or backend error leaves none of the batch stored.
        """
        records = [await self._resolve(data, "insert_batch", embed=True) for data in items]
        if not records:
            return []
        return await self._add_all("insert_batch", records)

    # ---------------- updates ----------------

    async def update(self, key: Any, patch: Mapping[str, Any]) -> Record:
        """
        Merge a patch into a stored record.

        Raises:
            NotFound: if no record has this id
        """
        if key is None:
            raise MissingIdentifier("ID is required for update", operation="update")

        async with self._guard("update", key):
            async with self.backend.transaction(READWRITE) as tx:
                document = await tx.get(key)
                if document is None:
                    raise NotFound("Cannot update non-existent key", operation="update", key=key)
                merged = self.accessor.merge(Record.from_document(document), patch or {})
                await tx.put(merged.to_document())

        logger.log_store_operation("update", key, details={"fields": sorted(k for k in (patch or {}) if k != "id")})
        return merged

    @staticmethod
    def _split_patch(item: Mapping[str, Any]) -> Tuple[Any, Dict[str, Any]]:
        fields = dict(item)
        if "id" in fields:
            key = fields.pop("id")
        else:
            key = fields.pop("key", None)
        if key is None:
            raise MissingIdentifier("ID is required for update_batch", operation="update_batch")
        return key, fields

    async def update_batch(self, patches: Iterable[Mapping[str, Any]]) -> List[Any]:
        """
        Apply several patches in one transaction.

        Items are `{"id": key, **fields}` (`key` is accepted in place of `id`).
        If any id is missing, nothing is applied and NotFound lists every
        missing id in `keys`.

        Returns:
            The updated ids in input order
        """
        items = [self._split_patch(item) for item in patches]
        if not items:
            return []

        updated: List[Any] = []
        async with self._guard("update_batch"):
            async with self.backend.transaction(READWRITE) as tx:
                missing: List[Any] = []
                for key, fields in items:
                    document = await tx.get(key)
                    if document is None:
                        missing.append(key)
                        continue
                    merged = self.accessor.merge(Record.from_document(document), fields)
                    await tx.put(merged.to_document())
                    updated.append(key)

                if missing:
                    raise NotFound(
                        f"Cannot update non-existent keys {missing}",
                        operation="update_batch",
                        keys=missing,
                    )

        logger.log_store_operation("update_batch", details={"count": len(updated)})
        return updated

    # ---------------- deletes ----------------

    async def delete(self, key: Any) -> None:
        """Delete a record; unknown ids are a no-op."""
        async with self._guard("delete", key):
            async with self.backend.transaction(READWRITE) as tx:
                await tx.delete(key)
        logger.log_store_operation("delete", key)

    async def delete_batch(self, keys: Iterable[Any]) -> None:
        keys = list(keys)
        async with self._guard("delete_batch"):
            async with self.backend.transaction(READWRITE) as tx:
                for key in keys:
                    await tx.delete(key)
        logger.log_store_operation("delete_batch", details={"count": len(keys)})

    # ---------------- reads ----------------

    async def get(self, key: Any) -> Optional[Record]:
        async with self._guard("get", key):
            async with self.backend.transaction(READONLY) as tx:
                document = await tx.get(key)
        return Record.from_document(document) if document is not None else None

    async def has_embedding(self, key: Any) -> bool:
        """True when the record exists and carries a non-empty vector."""
        record = await self.get(key)
        return record is not None and record.has_vector()

    async def has_embeddings(self, keys: Iterable[Any]) -> Dict[Any, bool]:
        """Map each id to whether it has a non-empty vector; missing ids map to False."""
        result: Dict[Any, bool] = {}
        async with self._guard("has_embeddings"):
            async with self.backend.transaction(READONLY) as tx:
                for key in keys:
                    document = await tx.get(key)
                    result[key] = document is not None and Record.from_document(document).has_vector()
        return result

    async def get_all_keys(self) -> List[Any]:
        async with self._guard("get_all_keys"):
            async with self.backend.transaction(READONLY) as tx:
                return await tx.get_all_keys()

    async def scan_all(self) -> List[Record]:
        """Every stored record from one consistent readonly scope."""
        async with self._guard("scan_all"):
            async with self.backend.transaction(READONLY) as tx:
                documents = await tx.get_all()
        return [Record.from_document(document) for document in documents]
