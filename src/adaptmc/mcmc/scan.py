"""
MCMC Scan Body and Carry Construction.

This module contains the per-iteration loop components:
- initialize_carry: Build the scan carry for one chain
- chain_scan_body: One full sampler iteration (propose, evaluate, accept, adapt)

Carry tuple (6 elements):
    0: state          current chain state (d,)
    1: lp             cached log-density of state (-inf if invalid)
    2: proposal_state ProposalState
    3: chol_factor    Cholesky factor used for the next proposal (d, d)
    4: key            JAX random key
    5: n_accepted     running acceptance count (int32)
"""

from typing import Tuple

import jax.numpy as jnp

from .adaptation import proposal_cholesky, refresh_cholesky, update_proposal_state
from .sampling import metropolis_step, safe_log_density
from .types import ProposalState, RunParams


def initialize_carry(
    initial_state: jnp.ndarray,
    proposal_state: ProposalState,
    initial_scale: jnp.ndarray,
    key,
    log_density_fn,
    run_params: RunParams,
) -> Tuple:
    """
    Build the initial carry for one chain.

    When adapting, proposals are drawn from the regularized running covariance
    from the very first iteration. When not adapting, the factor of
    initial_scale is computed once and reused for the whole run.
    """
    if run_params.ADAPT:
        chol_factor = proposal_cholesky(proposal_state, run_params.COV_NUGGET)
    else:
        chol_factor = jnp.linalg.cholesky(initial_scale)

    lp = safe_log_density(log_density_fn, initial_state)
    n_accepted = jnp.zeros((), dtype=jnp.int32)

    return (initial_state, lp, proposal_state, chol_factor, key, n_accepted)


def chain_scan_body(carry, _, log_density_fn, run_params: RunParams):
    """
    One iteration: Propose -> Evaluate -> AcceptOrReject -> [Adapt].

    The recorded sample is the post-decision state, so a rejection repeats
    the previous state.

    Returns:
        new_carry, (recorded_state, recorded_lp)
    """
    state, lp, proposal_state, chol_factor, key, n_accepted = carry

    next_state, lp_next, accepted, key = metropolis_step(
        key, state, lp, chol_factor, proposal_state.log_scale, log_density_fn
    )

    # run_params is static, so the non-adaptive kernel carries no update code
    if run_params.ADAPT:
        proposal_state = update_proposal_state(
            proposal_state, next_state, accepted,
            run_params.TARGET_ACCEPT_RATE, run_params.ADAPTATION_EXPONENT
        )
        chol_factor = refresh_cholesky(proposal_state, run_params.COV_NUGGET, chol_factor)

    n_accepted = n_accepted + accepted.astype(jnp.int32)

    new_carry = (next_state, lp_next, proposal_state, chol_factor, key, n_accepted)
    return new_carry, (next_state, lp_next)
