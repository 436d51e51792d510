"""
Vector layer: quantization, distance and similarity kernels, embedding
providers, the record store and the full-scan query engine.
"""

from .types import PackedVector, Record, VectorAccessor, QueryMode, QueryResult
from .quantize import binarize, pack, unpack, quantize
from .distance import hamming, AcceleratedHamming, DistanceEngine
from .similarity import cosine
from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, SentenceTransformerEmbedding
from .store import RecordStore
from .query import QueryEngine

__all__ = [
    'PackedVector',
    'Record',
    'VectorAccessor',
    'QueryMode',
    'QueryResult',
    'binarize',
    'pack',
    'unpack',
    'quantize',
    'hamming',
    'AcceleratedHamming',
    'DistanceEngine',
    'cosine',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'RecordStore',
    'QueryEngine',
]
