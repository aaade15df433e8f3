"""JAX configuration for polyrel.

JAX supplies the chi-squared and normal distribution functions used for
p-values and confidence-interval thresholds. Tail probabilities of large
likelihood-ratio statistics are tiny, so 64-bit precision is enabled.
"""

from __future__ import annotations

from typing import Any

import jax
from loguru import logger


def configure_jax(enable_x64: bool = True, platform: str | None = None) -> None:
    """Configure JAX precision and platform.

    Args:
        enable_x64: Enable 64-bit floating point precision. Defaults to True.
        platform: Optional platform name ("cpu", "gpu", "tpu"). If None,
            JAX auto-selects.

    Example:
        >>> configure_jax(platform="cpu")
    """
    if enable_x64:
        jax.config.update("jax_enable_x64", True)
        logger.debug("JAX 64-bit precision enabled")

    if platform is not None:
        jax.config.update("jax_platform_name", platform)
        logger.debug(f"JAX platform set to: {platform}")


def get_jax_info() -> dict[str, Any]:
    """Version, backend and precision of the current JAX setup."""
    return {
        "version": jax.__version__,
        "backend": jax.default_backend(),
        "x64_enabled": jax.config.jax_enable_x64,
    }
