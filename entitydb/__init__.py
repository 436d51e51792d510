"""
EntityDB - embedded vector store with exact cosine and Hamming search.
"""

from .core.errors import (
    AccelerationUnavailable,
    BackendFailure,
    DuplicateIdentifier,
    EntityDBError,
    IncompatibleVector,
    LengthMismatch,
    MissingIdentifier,
    NotFound,
)
from .entity_db import EntityDB
from .vector.types import PackedVector, QueryMode, QueryResult, Record

__version__ = "1.0.0"

__all__ = [
    'EntityDB',
    'Record',
    'PackedVector',
    'QueryMode',
    'QueryResult',
    'EntityDBError',
    'MissingIdentifier',
    'DuplicateIdentifier',
    'NotFound',
    'LengthMismatch',
    'IncompatibleVector',
    'AccelerationUnavailable',
    'BackendFailure',
]
