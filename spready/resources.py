"""System resource checks used while scanning."""

from __future__ import annotations

import logging

import psutil

logger = logging.getLogger(__name__)


def available_memory() -> int:
    """Bytes of memory currently available to new allocations."""
    return int(psutil.virtual_memory().available)


def is_memory_low(threshold_bytes: int) -> bool:
    """True when available memory has dropped below ``threshold_bytes``.

    A threshold of 0 disables the check.
    """
    if threshold_bytes <= 0:
        return False
    available = available_memory()
    if available < threshold_bytes:
        logger.debug("Available memory %d below threshold %d", available, threshold_bytes)
        return True
    return False
