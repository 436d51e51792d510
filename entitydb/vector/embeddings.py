"""
Embedding providers. Text is turned into a mean-pooled, unit-normalized dense
vector by an external model; the store only ever awaits `embed(text)`.
"""

import asyncio
import hashlib
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future
from functools import partial
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from ..util.logging import logger


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for testing purposes.

    Expands a SHA-256 digest of the text into `dimension` values in [-1, 1]
    and unit-normalizes the result, so the same text always maps to the
    same vector without loading a model.
    """

    def __init__(self, dimension: int = 384):
        self.dimension = dimension

    def embed_sync(self, text: str) -> List[float]:
        values: List[float] = []
        counter = 0
        while len(values) < self.dimension:
            digest = hashlib.sha256(f"{counter}:{text}".encode()).digest()
            for i in range(0, len(digest), 4):
                value = int.from_bytes(digest[i:i + 4], "little")
                values.append((value / (2**32)) * 2 - 1)
            counter += 1

        vector = np.asarray(values[:self.dimension], dtype=np.float64)
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.tolist()

    async def embed(self, text: str) -> List[float]:
        return self.embed_sync(text)

    def get_dimension(self) -> int:
        return self.dimension


# Process-wide model handles, one per model id, never torn down
_MODEL_FUTURES: Dict[str, Future] = {}
_MODEL_LOCK = threading.Lock()


def _load_model(model_name: str) -> Any:
    from sentence_transformers import SentenceTransformer

    logger.info(f"Loading embedding model {model_name}")
    return SentenceTransformer(model_name)


def _run_loader(future: Future, loader: Callable[[str], Any], model_name: str) -> None:
    if not future.set_running_or_notify_cancel():
        return
    try:
        future.set_result(loader(model_name))
    except BaseException as e:
        logger.error(f"Embedding model {model_name} failed to load: {e}")
        future.set_exception(e)


def shared_model_future(model_name: str) -> Future:
    """
    Get the shared loading future for a model.

    The first caller starts loading on a background thread; every later
    caller, from any thread or event loop, gets the same future and so the
    same outcome, including a failure.
    """
    with _MODEL_LOCK:
        future = _MODEL_FUTURES.get(model_name)
        if future is not None:
            return future
        future = Future()
        _MODEL_FUTURES[model_name] = future

    thread = threading.Thread(
        target=_run_loader,
        args=(future, _load_model, model_name),
        name=f"entitydb-model-{model_name}",
        daemon=True,
    )
    thread.start()
    return future


async def shared_model(model_name: str) -> Any:
    """Await the process-wide model handle for model_name."""
    return await asyncio.wrap_future(shared_model_future(model_name))


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    Defaults to all-MiniLM-L6-v2 (mean pooling, 384 dimensions).
    """

    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._dimension: Optional[int] = None

    async def embed(self, text: str) -> List[float]:
        """Generate a unit-normalized embedding without blocking the event loop."""
        model = await shared_model(self.model_name)
        loop = asyncio.get_running_loop()
        embedding = await loop.run_in_executor(
            None,
            partial(model.encode, text, convert_to_numpy=True, normalize_embeddings=True),
        )
        vector = np.asarray(embedding, dtype=np.float64).reshape(-1)
        if self._dimension is None:
            self._dimension = int(vector.size)
        return vector.tolist()

    def get_dimension(self) -> int:
        if self._dimension is None:
            model = shared_model_future(self.model_name).result()
            self._dimension = int(model.get_sentence_embedding_dimension())
        return self._dimension


def get_embedding_provider(model_id: str) -> IEmbeddingProvider:
    """Get the embedding provider for a model id. "hash" selects the deterministic provider."""
    if model_id == "hash":
        return DeterministicHashEmbedding()
    return SentenceTransformerEmbedding(model_id)
