"""
MCMC Backend - Multi-chain orchestrator.

run_chains() runs several independent chains from dispersed starting points
in one vectorized kernel. Chains share no mutable state: each has its own
key, ProposalState and acceptance count, and they only meet again when the
caller hands the finished ChainRecords to the diagnostics.
"""

from typing import List, Optional

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np

from ..error_handling import ConfigurationError, diagnose_chain_issues, print_diagnostics
from ..registry import get_target
from .config import configure_sampler, initialize_proposal_state
from .diagnostics import log_acceptance_summary
from .scan import initialize_carry
from .single_run import StopHook, _run_sampler_iterations, _split_carry
from .types import ChainRecord

import logging
logger = logging.getLogger('adaptmc')


def _resolve_initial_states(target, sampler_config, initial_states, n_chains):
    """Initial states from the argument, or from a registered target's generator."""
    if initial_states is not None:
        return np.asarray(initial_states, dtype=np.float64)

    if isinstance(target, str):
        init_fn = get_target(target).get('initial_states')
        if init_fn is not None:
            return np.asarray(init_fn(n_chains, sampler_config.get('rng_seed', 0)), dtype=np.float64)

    raise ConfigurationError([(
        'initial_states',
        "must be given unless the target is registered with an 'initial_states' function"
    )])


def run_chains(
    target,
    sampler_config,
    initial_states=None,
    n_chains: int = 2,
    should_stop: Optional[StopHook] = None,
) -> List[ChainRecord]:
    """
    Run independent adaptive chains, one per initial state.

    Args:
        target: Log-density callable or registered target name
        sampler_config: Same keys as run_chain; 'initial_state' is taken from
            initial_states instead and may be omitted.
        initial_states: (n_chains, d) starting points. If None, the registered
            target's 'initial_states' function is used with n_chains.
        n_chains: Chain count when initial_states is None
        should_stop: Optional hook (n_completed, n_accepted_per_chain) -> bool

    Returns:
        List of ChainRecord, one per chain, in initial-state order

    Raises:
        ConfigurationError: If the configuration or any initial state is invalid
    """
    initial_states = _resolve_initial_states(target, sampler_config, initial_states, n_chains)
    if initial_states.ndim != 2 or initial_states.shape[0] < 1:
        raise ConfigurationError([(
            'initial_states',
            f"must have shape (n_chains, dim), got {initial_states.shape}"
        )])

    # Validate every starting point the same way a single chain would be
    configured = [
        configure_sampler(target, {**sampler_config, 'initial_state': state})
        for state in initial_states
    ]
    user_config, runtime_ctx, run_params = configured[0]
    log_density_fn = runtime_ctx['log_density_fn']
    dtype = runtime_ctx['jnp_float_dtype']
    n_chains = initial_states.shape[0]

    chain_keys = random.split(runtime_ctx['master_key'], n_chains)
    carries = []
    for (_, ctx, _), key in zip(configured, chain_keys):
        proposal_state = initialize_proposal_state(ctx['initial_state'], ctx['initial_scale'], dtype)
        carries.append(initialize_carry(
            ctx['initial_state'], proposal_state, ctx['initial_scale'],
            key, log_density_fn, run_params,
        ))
    initial_carry = jax.tree_util.tree_map(lambda *leaves: jnp.stack(leaves), *carries)

    logger.info(
        f"Running {n_chains} chains: {user_config['n_iterations']} iterations each, "
        f"dim={user_config['dim']}, adapt={user_config['adapt']}"
    )

    final_carry, samples, log_densities, wall_time = _run_sampler_iterations(
        log_density_fn,
        initial_carry,
        user_config['n_iterations'],
        run_params,
        should_stop=should_stop,
        vectorized=True,
    )
    logger.info(f"All chains finished in {wall_time:.2f}s")

    n_accepted, proposal_states = _split_carry(final_carry)
    n_accepted = np.asarray(jax.device_get(n_accepted))

    records = []
    for c in range(n_chains):
        chain_proposal_state = jax.tree_util.tree_map(lambda leaf: leaf[c], proposal_states)
        records.append(ChainRecord.from_arrays(
            samples=samples[c],
            log_densities=log_densities[c],
            n_accepted=n_accepted[c],
            proposal_state=chain_proposal_state,
            n_iterations_requested=user_config['n_iterations'],
        ))

    log_acceptance_summary(records)
    target_rate = user_config['target_accept_rate'] if user_config['adapt'] else None
    print_diagnostics(diagnose_chain_issues(records, target_rate))

    return records
