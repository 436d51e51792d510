"""
Loader for the accelerated Hamming distance kernel.

The kernel module is resolved by import path, its ABI constants are checked,
and a fresh instance is validated (writable linear memory, callable entry
point) before it is handed to the distance engine.
"""

import importlib
from typing import Any, Optional

from ..core.config import get_kernel_module, get_kernel_pages
from ..core.errors import AccelerationUnavailable
from ..util.logging import logger

SUPPORTED_ABI_VERSION = 1


def _exported_memory(instance: Any) -> memoryview:
    memory = getattr(instance, "memory", None)
    if memory is None:
        raise AccelerationUnavailable("Kernel instance does not export memory", operation="load_kernel")
    try:
        view = memoryview(memory)
    except TypeError as e:
        raise AccelerationUnavailable(
            f"Kernel memory does not expose a buffer: {e}", operation="load_kernel"
        ) from e
    if view.readonly:
        raise AccelerationUnavailable("Kernel memory is read-only", operation="load_kernel")
    return view


def validate_instance(instance: Any) -> Any:
    """Check that an instance exports writable memory and a hamming_distance entry point."""
    with _exported_memory(instance) as view:
        if view.nbytes == 0:
            raise AccelerationUnavailable("Kernel memory is empty", operation="load_kernel")

    if not callable(getattr(instance, "hamming_distance", None)):
        raise AccelerationUnavailable(
            "Kernel instance does not export hamming_distance", operation="load_kernel"
        )
    if not callable(getattr(instance, "grow", None)):
        raise AccelerationUnavailable("Kernel instance does not export grow", operation="load_kernel")
    return instance


def load_kernel(module_name: Optional[str] = None, pages: Optional[int] = None) -> Any:
    """
    Import, validate and instantiate the accelerated kernel.

    Args:
        module_name: Import path of the kernel module, defaults to config
        pages: Initial linear memory size in 64 KiB pages, defaults to config

    Returns:
        A validated kernel instance

    Raises:
        AccelerationUnavailable: if the module is missing or fails validation
    """
    module_name = module_name or get_kernel_module()
    pages = pages or get_kernel_pages()

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        logger.log_kernel_event(module_name, "failed", {"error": str(e)})
        raise AccelerationUnavailable(
            f"Kernel module could not be imported: {e}", operation="load_kernel"
        ) from e

    try:
        abi = getattr(module, "KERNEL_ABI_VERSION", None)
        if abi != SUPPORTED_ABI_VERSION:
            raise AccelerationUnavailable(
                f"Unsupported kernel ABI version {abi!r} (expected {SUPPORTED_ABI_VERSION})",
                operation="load_kernel",
            )

        instantiate = getattr(module, "instantiate", None)
        if not callable(instantiate):
            raise AccelerationUnavailable("Kernel module has no instantiate()", operation="load_kernel")

        instance = validate_instance(instantiate(pages))
    except AccelerationUnavailable as e:
        logger.log_kernel_event(module_name, "failed", {"error": e.message})
        raise

    logger.log_kernel_event(module_name, "success", {
        "name": getattr(module, "KERNEL_NAME", module_name),
        "version": getattr(module, "KERNEL_VERSION", "unknown"),
        "pages": pages,
    })
    return instance
