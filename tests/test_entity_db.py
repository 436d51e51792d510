"""
End-to-end tests for the EntityDB facade over the in-memory backend.
"""

import asyncio

import pytest

from entitydb import EntityDB, MissingIdentifier, NotFound, PackedVector, QueryMode
from entitydb.core.backend import MemoryBackend
from entitydb.vector import _kernel
from entitydb.vector.embeddings import DeterministicHashEmbedding


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def db():
    return EntityDB(
        {"name": "facade", "unknown_option": True},
        backend=MemoryBackend("facade"),
        embedder=DeterministicHashEmbedding(dimension=64),
    )


def test_unknown_options_are_ignored(db):
    assert db.config.name == "facade"
    assert db.vector_field == "vector"
    assert not hasattr(db.config, "unknown_option")


def test_configured_from_environment(monkeypatch):
    """Backend and embedder fall back to configuration when not injected."""
    monkeypatch.setenv("ENTITYDB_BACKEND", "memory")
    db = EntityDB({"model_id": "hash"})

    assert isinstance(db.backend, MemoryBackend)
    assert isinstance(db.embedder, DeterministicHashEmbedding)


def test_manual_vectors_round_trip(db):
    async def scenario():
        await db.insert_manual_vectors({"id": 1, "vector": [1.0, 0.0, 0.0], "label": "x"})
        await db.insert_manual_vectors({"id": 2, "vector": [0.0, 1.0, 0.0]})
        await db.insert_manual_vectors({"id": 3, "vector": [1.0, 1.0, 0.0]})
        return await db.query_manual_vectors([1.0, 0.0, 0.0], limit=2)

    results = run(scenario())

    assert [r["id"] for r in results] == [1, 3]
    assert results[0]["label"] == "x"
    assert results[0]["similarity"] == pytest.approx(1.0)
    assert results[1]["similarity"] == pytest.approx(0.7071, abs=1e-4)


def test_text_insert_and_query(db):
    async def scenario():
        await db.insert({"id": "a", "text": "vector search in python"})
        await db.insert_batch([
            {"id": "b", "text": "sourdough bread recipe"},
            {"id": "c", "text": "weather report for tuesday"},
        ])
        return await db.query("vector search in python", limit=3)

    results = run(scenario())
    assert results[0]["id"] == "a"
    assert results[0]["text"] == "vector search in python"
    assert len(results) == 3


def test_binary_queries(db):
    async def scenario():
        await db.insert_binary({"id": "a", "text": "first document"})
        await db.insert_binary({"id": "b", "text": "second document"})
        scalar = await db.query_binary("second document", limit=2)
        accelerated = await db.query_binary_accelerated("second document", limit=2)
        return scalar, accelerated

    scalar, accelerated = run(scenario())

    assert scalar[0]["id"] == "b"
    assert scalar[0]["distance"] == 0
    assert isinstance(scalar[0]["vector"], PackedVector)
    assert [(r["id"], r["distance"]) for r in scalar] == [(r["id"], r["distance"]) for r in accelerated]


def test_injected_kernel_is_used():
    db = EntityDB(
        backend=MemoryBackend("kernel"),
        embedder=DeterministicHashEmbedding(dimension=64),
        kernel=_kernel.instantiate(1),
    )
    assert db.distance.accelerated_available

    async def scenario():
        await db.insert_binary({"id": 1, "vector": [0.5, -0.2, 0.1, 0.9]})
        return await db.query_by_vector([0.5, -0.2, 0.1, 0.9], QueryMode.HAMMING, limit=1, accelerated=True)

    assert run(scenario())[0]["distance"] == 0


def test_update_and_delete(db):
    async def scenario():
        await db.insert_manual_batch([
            {"id": 1, "vector": [1.0], "label": "a"},
            {"id": 2, "vector": [1.0], "label": "b"},
            {"id": 3, "vector": [1.0], "label": "c"},
        ])
        await db.update(1, {"label": "A"})
        updated = await db.update_batch([{"id": 2, "label": "B"}])
        await db.delete(3)
        return updated, await db.get_all_keys(), await db.store.get(1), await db.store.get(2)

    updated, keys, first, second = run(scenario())

    assert updated == [2]
    assert keys == [1, 2]
    assert first.attributes == {"label": "A"}
    assert second.attributes == {"label": "B"}


def test_delete_batch_and_has_embeddings(db):
    async def scenario():
        await db.insert_manual_batch([{"id": i, "vector": [float(i + 1)]} for i in range(3)])
        await db.insert_manual_vectors({"id": "empty"})
        await db.delete_batch([0, 1])
        return (
            await db.has_embedding(2),
            await db.has_embedding("empty"),
            await db.has_embeddings([0, 2, "empty"]),
        )

    assert run(scenario()) == (True, False, {0: False, 2: True, "empty": False})


def test_errors_surface_through_facade(db):
    with pytest.raises(MissingIdentifier):
        run(db.insert({"text": "no id"}))
    with pytest.raises(NotFound):
        run(db.update("ghost", {"label": "x"}))


def test_custom_vector_field_in_results():
    db = EntityDB(
        {"vector_field": "embedding"},
        backend=MemoryBackend("custom"),
        embedder=DeterministicHashEmbedding(dimension=8),
    )

    async def scenario():
        await db.insert_manual_vectors({"id": 1, "embedding": [0.0, 1.0]})
        return await db.query_manual_vectors([0.0, 1.0], limit=1)

    result = run(scenario())[0]
    assert result["embedding"] == [0.0, 1.0]
    assert "vector" not in result


def test_async_context_manager_closes_backend(tmp_path, monkeypatch):
    monkeypatch.setenv("ENTITYDB_DB_PATH", str(tmp_path / "ctx.db"))
    monkeypatch.setenv("ENTITYDB_BACKEND", "sqlite")

    async def scenario():
        async with EntityDB({"name": "ctx"}, embedder=DeterministicHashEmbedding(dimension=8)) as db:
            await db.insert_manual_vectors({"id": 1, "vector": [1.0, 0.0]})
            keys = await db.get_all_keys()
        return keys, db.backend

    keys, backend = run(scenario())
    assert keys == [1]
    assert backend.closed


def test_camel_case_vector_field_option():
    db = EntityDB(
        {"vectorField": "embedding"},
        backend=MemoryBackend("camel"),
        embedder=DeterministicHashEmbedding(dimension=8),
    )

    async def scenario():
        await db.insert_manual_vectors({"id": 1, "embedding": [1.0, 0.0]})
        return await db.has_embedding(1)

    assert db.vector_field == "embedding"
    assert run(scenario()) is True
