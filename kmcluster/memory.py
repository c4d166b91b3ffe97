"""Memory estimates for full-batch training."""

import logging
from typing import Dict, Any

import psutil


logger = logging.getLogger(__name__)

VALUE_SIZE = 8  # bytes per stored feature value
REFERENCE_SIZE = 8  # bytes per instance reference
CLASS_OVERHEAD = 64 * 1024  # fixed footprint of the engine structures
MINIMUM_AVAILABLE = 16 * 1024 * 1024  # below this, mini-batch passes stop


def available_memory() -> int:
    """Available system memory in bytes."""
    return int(psutil.virtual_memory().available)


def required_memory(n_instances: int, n_attributes: int) -> int:
    """Rough memory needed to hold n instances in RAM.

    Args:
        n_instances: Number of instances to load.
        n_attributes: Number of loaded attributes per instance.

    Returns:
        Estimated bytes.
    """
    per_attribute = (1 + n_instances) * VALUE_SIZE
    return int(per_attribute * n_attributes + CLASS_OVERHEAD + n_instances * REFERENCE_SIZE)


def check_memory_usage(n_instances: int, n_attributes: int) -> Dict[str, Any]:
    """Check whether a full-batch run will fit in memory.

    Returns:
        Dict with required/available bytes and a ``sufficient`` flag.
    """
    required = required_memory(n_instances, n_attributes)
    available = available_memory()
    sufficient = available >= required
    if not sufficient:
        logger.warning(
            "Available memory = %.1f MB, needed memory for training phase = %.1f MB.",
            available / 1024 / 1024, required / 1024 / 1024,
        )
    return {
        "required_bytes": required,
        "available_bytes": available,
        "sufficient": sufficient,
    }


def has_minimum_memory() -> bool:
    """Whether available memory is above the hard minimum."""
    return available_memory() >= MINIMUM_AVAILABLE
