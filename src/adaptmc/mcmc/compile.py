"""
Chunk Kernel Compilation and Caching.

This module handles JAX compilation of the sampler kernel:
- _run_chain_chunk: Module-level chunk runner (lax.scan over chain_scan_body)
- _compute_cache_key: In-memory cache key for compiled kernels
- compile_chunk_kernel: AOT-compile (or fetch) a kernel for a given carry
- _COMPILED_KERNEL_CACHE: Bounded in-memory cache for compiled kernels
"""

import time
from functools import partial
from typing import Any, Callable, Dict, Tuple

import jax
import jax.lax

from .scan import chain_scan_body
from .types import RunParams

import logging
logger = logging.getLogger('adaptmc')


# --- COMPILED FUNCTION CACHE ---
# Cache compiled kernels by configuration (in-memory, within session).
# Keys hold the log-density, so the cache is bounded; oldest entries go first.
_COMPILED_KERNEL_CACHE = {}
MAX_CACHED_KERNELS = 32


def _compute_cache_key(log_density_fn: Callable, run_params: RunParams, length: int,
                       vectorized: bool, carry: Tuple) -> Tuple:
    """
    Compute a cache key for a compiled chunk kernel.

    The key captures everything that affects the compiled function:
    - The log-density function object
    - RunParams (adapt flag, target, exponent, nugget, chunk size)
    - Chunk length (the final chunk of a run may be shorter)
    - Whether the kernel is vmapped over chains
    - Shapes and dtypes of the carry (dimension, chain count, precision)
    """
    leaf_signature = tuple(
        (tuple(leaf.shape), str(leaf.dtype)) for leaf in jax.tree_util.tree_leaves(carry)
    )
    return (log_density_fn, run_params, length, vectorized, leaf_signature)


def get_compiled_kernel_cache() -> Dict:
    """Get reference to the compiled kernel cache."""
    return _COMPILED_KERNEL_CACHE


def clear_compiled_kernel_cache() -> None:
    """Drop all cached kernels (e.g. after redefining a log-density)."""
    _COMPILED_KERNEL_CACHE.clear()


def _run_chain_chunk(carry, log_density_fn, run_params, length):
    """
    Run `length` sampler iterations for one chain.

    Returns:
        final_carry, (samples (length, d), log_densities (length,))
    """
    scan_body = partial(chain_scan_body, log_density_fn=log_density_fn, run_params=run_params)
    return jax.lax.scan(scan_body, carry, None, length=length)


def compile_chunk_kernel(
    log_density_fn: Callable,
    run_params: RunParams,
    length: int,
    carry: Tuple,
    vectorized: bool = False,
) -> Tuple[Any, float]:
    """
    Compile the chunk kernel, using cache if available.

    Args:
        log_density_fn: Caller's log-density
        run_params: RunParams with run configuration
        length: Iterations per call of the kernel
        carry: Example carry (single chain, or stacked over chains when vectorized)
        vectorized: vmap the kernel over the leading carry axis

    Returns:
        Tuple of (compiled_chunk_fn, compile_time)
    """
    cache_key = _compute_cache_key(log_density_fn, run_params, length, vectorized, carry)
    compiled_chunk = _COMPILED_KERNEL_CACHE.get(cache_key)
    if compiled_chunk is not None:
        return compiled_chunk, 0.0

    chunk_fn = partial(_run_chain_chunk, log_density_fn=log_density_fn,
                       run_params=run_params, length=length)
    if vectorized:
        # Chains share nothing: every carry leaf is batched on axis 0
        chunk_fn = jax.vmap(chunk_fn)

    compile_start = time.perf_counter()
    compiled_chunk = jax.jit(chunk_fn).lower(carry).compile()
    compile_time = time.perf_counter() - compile_start
    logger.debug(f"Compiled chunk kernel (length={length}, vectorized={vectorized}) "
                 f"in {compile_time:.4f}s")

    while len(_COMPILED_KERNEL_CACHE) >= MAX_CACHED_KERNELS:
        del _COMPILED_KERNEL_CACHE[next(iter(_COMPILED_KERNEL_CACHE))]
    _COMPILED_KERNEL_CACHE[cache_key] = compiled_chunk
    return compiled_chunk, compile_time
