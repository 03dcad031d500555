"""
MCMC Single Run - Single-chain adaptive sampling engine.

This module provides run_chain() and its helper functions for executing one
chain. For several independent chains in one vectorized run, see
backend.run_chains().

Helper functions:
- _run_sampler_iterations: Execute the chunked sampling loop
- _split_carry: Pull acceptance count and ProposalState from a final carry
"""

import time
from datetime import timedelta
from typing import Callable, Optional, Tuple

import jax
import numpy as np

from .compile import compile_chunk_kernel
from .config import configure_sampler, initialize_proposal_state
from .scan import initialize_carry
from .types import ChainRecord, RunParams

import logging
logger = logging.getLogger('adaptmc')

# Public API for this module
__all__ = [
    'run_chain',
]

# Signature of the cooperative stop hook: (n_completed, n_accepted) -> bool
StopHook = Callable[[int, np.ndarray], bool]


def _run_sampler_iterations(
    log_density_fn: Callable,
    initial_carry,
    n_iterations: int,
    run_params: RunParams,
    should_stop: Optional[StopHook] = None,
    vectorized: bool = False,
) -> Tuple[object, np.ndarray, np.ndarray, float]:
    """
    Execute the main sampling loop in compiled chunks.

    should_stop is consulted only between chunks, never inside an iteration,
    so the ProposalState in the returned carry is always consistent.

    Args:
        log_density_fn: Caller's log-density
        initial_carry: Initial carry (stacked over chains when vectorized)
        n_iterations: Iterations requested
        run_params: RunParams (CHUNK_SIZE sets the check granularity)
        should_stop: Optional hook; returning True ends the run early
        vectorized: Carry is batched over chains

    Returns:
        final_carry: Carry after the last completed chunk
        samples: (n, d), or (n_chains, n, d) when vectorized
        log_densities: (n,), or (n_chains, n) when vectorized
        wall_time: Total wall clock time for sampling
    """
    chunk_size = run_params.CHUNK_SIZE
    time_axis = 1 if vectorized else 0
    num_chunks = (n_iterations + chunk_size - 1) // chunk_size

    start_run_time = time.perf_counter()
    current_carry = initial_carry
    sample_chunks = []
    lp_chunks = []
    completed = 0

    for i in range(num_chunks):
        length = min(chunk_size, n_iterations - completed)
        compiled_chunk, _ = compile_chunk_kernel(
            log_density_fn, run_params, length, current_carry, vectorized
        )
        current_carry, (chunk_samples, chunk_lps) = compiled_chunk(current_carry)
        sample_chunks.append(chunk_samples)
        lp_chunks.append(chunk_lps)
        completed += length

        if i % max(1, num_chunks // 10) == 0:
            logger.debug(f"  Chunk {i+1}/{num_chunks} ({completed}/{n_iterations} iterations)")

        if should_stop is not None and completed < n_iterations:
            n_accepted = np.asarray(jax.device_get(current_carry[5]))
            if should_stop(completed, n_accepted):
                logger.info(f"Stopped early after {completed}/{n_iterations} iterations")
                break

    jax.block_until_ready(current_carry)
    wall_time = time.perf_counter() - start_run_time

    samples = np.concatenate(jax.device_get(sample_chunks), axis=time_axis)
    log_densities = np.concatenate(jax.device_get(lp_chunks), axis=time_axis)

    return current_carry, samples, log_densities, wall_time


def _split_carry(final_carry):
    """Return (n_accepted, proposal_state) from a final carry."""
    return final_carry[5], final_carry[2]


def run_chain(target, sampler_config, should_stop: Optional[StopHook] = None) -> ChainRecord:
    """
    Run one adaptive Metropolis-Hastings chain.

    Args:
        target: Log-density callable (theta -> scalar) or registered target name
        sampler_config: Dict with required keys
            n_iterations (int >= 1), initial_state (d,), initial_scale (d, d),
            adapt (bool), target_accept_rate (0 < r < 1), rng_seed (int)
            and optional keys adaptation_exponent, cov_nugget, chunk_size,
            use_double, dim.
        should_stop: Optional hook (n_completed, n_accepted) -> bool, checked
            between chunks for cooperative early termination.

    Returns:
        ChainRecord with one sample per completed iteration

    Raises:
        ConfigurationError: Before any sampling, if the configuration is invalid
    """
    user_config, runtime_ctx, run_params = configure_sampler(target, sampler_config)
    log_density_fn = runtime_ctx['log_density_fn']
    dtype = runtime_ctx['jnp_float_dtype']

    proposal_state = initialize_proposal_state(
        runtime_ctx['initial_state'], runtime_ctx['initial_scale'], dtype
    )
    initial_carry = initialize_carry(
        runtime_ctx['initial_state'],
        proposal_state,
        runtime_ctx['initial_scale'],
        runtime_ctx['master_key'],
        log_density_fn,
        run_params,
    )

    logger.info(
        f"Running chain: {user_config['n_iterations']} iterations, dim={user_config['dim']}, "
        f"adapt={user_config['adapt']}, target acceptance={user_config['target_accept_rate']:.2f}"
    )

    final_carry, samples, log_densities, wall_time = _run_sampler_iterations(
        log_density_fn,
        initial_carry,
        user_config['n_iterations'],
        run_params,
        should_stop=should_stop,
    )

    n_accepted, final_proposal_state = _split_carry(final_carry)
    record = ChainRecord.from_arrays(
        samples=samples,
        log_densities=log_densities,
        n_accepted=jax.device_get(n_accepted),
        proposal_state=final_proposal_state,
        n_iterations_requested=user_config['n_iterations'],
    )

    logger.info(
        f"Chain finished: acceptance rate {record.acceptance_rate:.1%}, "
        f"wall time {timedelta(seconds=int(wall_time))} ({wall_time:.2f}s)"
    )
    return record
