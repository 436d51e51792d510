"""
Tests for loading and validating the accelerated kernel module.
"""

import sys
import types

import numpy as np
import pytest

from entitydb.core.errors import AccelerationUnavailable
from entitydb.vector import _kernel
from entitydb.vector.accel import load_kernel, validate_instance


def _register(monkeypatch, name, **attrs):
    module = types.ModuleType(name)
    for key, value in attrs.items():
        setattr(module, key, value)
    monkeypatch.setitem(sys.modules, name, module)
    return module


class _NoMemory:
    def hamming_distance(self, a, b, n):
        return 0

    def grow(self, pages):
        return 1


class _ReadOnlyMemory(_NoMemory):
    def __init__(self, pages=1):
        self.memory = bytes(65536)


class _NoEntryPoint:
    def __init__(self, pages=1):
        self.memory = np.zeros(65536, dtype=np.uint8)

    def grow(self, pages):
        return 1


def test_load_default_kernel():
    instance = load_kernel()
    assert instance.pages == 1
    assert callable(instance.hamming_distance)


def test_load_kernel_with_pages():
    instance = load_kernel(pages=3)
    assert instance.memory.size == 3 * _kernel.PAGE_SIZE


def test_missing_module_is_unavailable():
    with pytest.raises(AccelerationUnavailable):
        load_kernel("entitydb_kernel_that_does_not_exist")


def test_wrong_abi_version_is_unavailable(monkeypatch):
    _register(monkeypatch, "fake_kernel_abi", KERNEL_ABI_VERSION=99, instantiate=_kernel.instantiate)
    with pytest.raises(AccelerationUnavailable, match="ABI"):
        load_kernel("fake_kernel_abi")


def test_missing_instantiate_is_unavailable(monkeypatch):
    _register(monkeypatch, "fake_kernel_noinit", KERNEL_ABI_VERSION=1)
    with pytest.raises(AccelerationUnavailable, match="instantiate"):
        load_kernel("fake_kernel_noinit")


def test_missing_memory_export_is_unavailable(monkeypatch):
    """An instance without exported memory fails fast."""
    _register(monkeypatch, "fake_kernel_nomem", KERNEL_ABI_VERSION=1, instantiate=lambda pages: _NoMemory())
    with pytest.raises(AccelerationUnavailable, match="memory"):
        load_kernel("fake_kernel_nomem")


def test_read_only_memory_is_unavailable(monkeypatch):
    _register(monkeypatch, "fake_kernel_romem", KERNEL_ABI_VERSION=1, instantiate=_ReadOnlyMemory)
    with pytest.raises(AccelerationUnavailable, match="read-only"):
        load_kernel("fake_kernel_romem")


def test_missing_entry_point_is_unavailable():
    with pytest.raises(AccelerationUnavailable, match="hamming_distance"):
        validate_instance(_NoEntryPoint())


def test_kernel_module_from_environment(monkeypatch):
    monkeypatch.setenv("ENTITYDB_KERNEL_MODULE", "entitydb_kernel_that_does_not_exist")
    with pytest.raises(AccelerationUnavailable):
        load_kernel()


def test_kernel_bounds_check():
    instance = _kernel.instantiate(1)
    with pytest.raises(IndexError):
        instance.hamming_distance(0, _kernel.PAGE_SIZE - 4, 64)


def test_kernel_grow_returns_previous_pages():
    instance = _kernel.instantiate(1)
    instance.memory[:4] = [1, 2, 3, 4]
    assert instance.grow(2) == 1
    assert instance.pages == 3
    assert instance.memory[:4].tolist() == [1, 2, 3, 4]
