"""
Compute device selection for the inference engine.
CUDA is probed through ctranslate2, the runtime faster-whisper runs on.
"""

import logging
from typing import Callable, Optional

import ctranslate2

from .errors import ModelError

logger = logging.getLogger(__name__)

DEVICES = ("auto", "cpu", "cuda")


def cuda_device_count() -> int:
    """Number of CUDA devices ctranslate2 can use (0 when unavailable)."""
    try:
        return int(ctranslate2.get_cuda_device_count())
    except RuntimeError as e:
        logger.warning(f"CUDA check failed: {e}")
        return 0


def is_cuda_available() -> bool:
    """Check whether CUDA is available to ctranslate2."""
    count = cuda_device_count()
    if count > 0:
        logger.info(f"CUDA available: {count} device(s)")
        return True
    logger.info("CUDA not available")
    return False


def resolve_device(requested: str = "auto",
                   cuda_available_checker: Optional[Callable[[], bool]] = None) -> str:
    """Resolve ``auto``/``cpu``/``cuda`` to a concrete device."""
    if requested not in DEVICES:
        raise ModelError(f"Unsupported device '{requested}'. Expected one of: {', '.join(DEVICES)}")
    if requested == "cpu":
        return "cpu"

    checker = cuda_available_checker or is_cuda_available
    available = checker()

    if requested == "cuda":
        if not available:
            raise ModelError("Requested device cuda, but CUDA is unavailable")
        return "cuda"

    resolved = "cuda" if available else "cpu"
    logger.debug(f"Device auto resolved to {resolved}")
    return resolved


def resolve_compute_type(requested: str, device: str) -> str:
    """Pick a compute type the device supports when ``auto`` is requested."""
    if requested != "auto":
        return requested
    return "float16" if device == "cuda" else "int8"
