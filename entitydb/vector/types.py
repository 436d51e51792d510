"""
Record, packed vector and query result types shared by the store and the query engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from ..core.errors import IncompatibleVector

WORD_BITS = 64


class PackedVector:
    """Binary vector packed into little-endian uint64 words, LSB first within a word."""

    __slots__ = ("words", "bit_length")

    def __init__(self, words: Union[np.ndarray, Sequence[int]], bit_length: int):
        words = np.asarray(words, dtype=np.uint64).reshape(-1)
        if bit_length < 0 or bit_length > len(words) * WORD_BITS:
            raise ValueError(f"bit_length {bit_length} does not fit in {len(words)} words")
        words.setflags(write=False)
        self.words = words
        self.bit_length = int(bit_length)

    @property
    def byte_length(self) -> int:
        return len(self.words) * 8

    def to_bytes(self) -> bytes:
        return self.words.astype("<u8").tobytes()

    @classmethod
    def from_bytes(cls, data: bytes, bit_length: int) -> "PackedVector":
        return cls(np.frombuffer(data, dtype="<u8").astype(np.uint64), bit_length)

    def __len__(self) -> int:
        return self.bit_length

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackedVector):
            return NotImplemented
        return self.bit_length == other.bit_length and np.array_equal(self.words, other.words)

    def __hash__(self) -> int:
        return hash((self.bit_length, self.to_bytes()))

    def __repr__(self) -> str:
        return f"PackedVector(bit_length={self.bit_length}, words={[int(w) for w in self.words]})"


Vector = Union[List[float], PackedVector]


def vector_is_present(vector: Any) -> bool:
    """True for a non-empty dense sequence or a packed vector with at least one bit."""
    if vector is None:
        return False
    if isinstance(vector, PackedVector):
        return vector.bit_length > 0
    if isinstance(vector, (str, bytes, Mapping)):
        return False
    try:
        return len(vector) > 0
    except TypeError:
        return False


def _dense(vector: Any) -> List[float]:
    return [float(x) for x in np.asarray(vector, dtype=np.float64).reshape(-1)]


@dataclass
class Record:
    """A stored record: caller-supplied id, one vector and opaque attributes."""

    id: Any
    """Unique identifier supplied by the caller"""

    vector: Optional[Vector] = None
    """Dense embedding (cosine mode) or packed bit-vector (binary mode)"""

    attributes: Dict[str, Any] = field(default_factory=dict)
    """Every other field, passed through verbatim"""

    def has_vector(self) -> bool:
        return vector_is_present(self.vector)

    def is_packed(self) -> bool:
        return isinstance(self.vector, PackedVector)

    def to_document(self) -> Dict[str, Any]:
        """Convert to the JSON-safe mapping persisted by backends."""
        if self.vector is None:
            vector_doc = None
        elif isinstance(self.vector, PackedVector):
            vector_doc = {
                "kind": "packed",
                "bit_length": self.vector.bit_length,
                "words": [int(w) for w in self.vector.words],
            }
        else:
            vector_doc = {"kind": "dense", "values": _dense(self.vector)}

        return {"id": self.id, "vector": vector_doc, "attributes": dict(self.attributes)}

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "Record":
        vector_doc = document.get("vector")
        vector: Optional[Vector] = None
        if vector_doc is not None:
            if vector_doc.get("kind") == "packed":
                vector = PackedVector(vector_doc["words"], vector_doc["bit_length"])
            else:
                vector = list(vector_doc.get("values") or [])

        return cls(id=document["id"], vector=vector, attributes=dict(document.get("attributes") or {}))

    def as_dict(self, vector_field: str = "vector") -> Dict[str, Any]:
        """Flatten into the caller-facing mapping."""
        out = dict(self.attributes)
        out[vector_field] = self.vector
        out["id"] = self.id
        return out


class VectorAccessor:
    """Reads and merges the vector attribute of caller mappings.

    The field name is fixed when the store is constructed and never
    re-resolved per record.
    """

    def __init__(self, field_name: str = "vector"):
        self.field = field_name

    def split(self, data: Mapping[str, Any]) -> Tuple[Any, Any, Dict[str, Any]]:
        """Split a caller mapping into (id, raw vector, remaining attributes)."""
        attributes = {k: v for k, v in data.items() if k not in ("id", self.field)}
        return data.get("id"), data.get(self.field), attributes

    def coerce(self, vector: Any) -> Optional[Vector]:
        """Normalize a caller-supplied vector into a stored representation.

        Dense vectors with NaN or infinite components are rejected.
        """
        if vector is None or isinstance(vector, PackedVector):
            return vector
        dense = _dense(vector)
        if not np.isfinite(dense).all():
            raise IncompatibleVector(f"Field '{self.field}' holds a non-finite component")
        return dense

    def merge(self, existing: Record, patch: Mapping[str, Any]) -> Record:
        """Apply a partial update.

        The vector is replaced only when the patch carries a non-empty one;
        every other patch field overwrites the stored value; the id never changes.
        """
        _, new_vector, patch_attributes = self.split(patch)

        attributes = dict(existing.attributes)
        attributes.update(patch_attributes)

        vector = self.coerce(new_vector) if vector_is_present(new_vector) else existing.vector

        return Record(id=existing.id, vector=vector, attributes=attributes)


class QueryMode(str, Enum):
    """Scoring mode of a full-scan query."""

    COSINE = "cosine"
    HAMMING = "hamming"

    @property
    def descending(self) -> bool:
        return self is QueryMode.COSINE

    @property
    def score_field(self) -> str:
        return "similarity" if self is QueryMode.COSINE else "distance"


@dataclass
class QueryResult:
    """Represents a scored record returned by a query."""

    id: Any
    """Identifier of the matching record"""

    score: float
    """Cosine similarity (cosine mode) or Hamming distance (hamming mode)"""

    mode: QueryMode
    """Mode the score was computed in"""

    record: Record
    """The full stored record"""

    @property
    def similarity(self) -> Optional[float]:
        return self.score if self.mode is QueryMode.COSINE else None

    @property
    def distance(self) -> Optional[int]:
        return int(self.score) if self.mode is QueryMode.HAMMING else None

    def as_dict(self, vector_field: str = "vector") -> Dict[str, Any]:
        out = self.record.as_dict(vector_field)
        out[self.mode.score_field] = self.similarity if self.mode is QueryMode.COSINE else self.distance
        return out
