"""
MCMC Sampling Functions.

Core sampling functions for the adaptive sampler:
- propose_random_walk: Draw y = x + exp(log_scale) * L z
- safe_log_density: Evaluate a log-density, mapping non-finite values to -inf
- metropolis_step: One propose/evaluate/accept-or-reject unit
"""

import jax.numpy as jnp
import jax.random as random


def propose_random_walk(key, current_state, chol_factor, log_scale):
    """
    Gaussian random-walk proposal centred on the current state.

    Proposal: y ~ N(x, exp(2 * log_scale) * L L^T)

    Hastings ratio: 0 (symmetric proposal, q(y|x) = q(x|y))

    Args:
        key: JAX random key (consumed)
        current_state: Current parameter values (d,)
        chol_factor: Lower Cholesky factor L of the proposal covariance (d, d)
        log_scale: Log of the scalar step multiplier

    Returns:
        proposal: Proposed parameter values (d,)
    """
    noise = random.normal(key, shape=current_state.shape, dtype=current_state.dtype)
    return current_state + jnp.exp(log_scale) * (chol_factor @ noise)


def safe_log_density(log_density_fn, state):
    """Scalar log-density with NaN/+-Inf replaced by -inf."""
    lp = jnp.reshape(jnp.asarray(log_density_fn(state), dtype=state.dtype), ())
    return jnp.where(jnp.isfinite(lp), lp, -jnp.inf)


def metropolis_step(key, current_state, lp_current, chol_factor, log_scale, log_density_fn):
    """
    Perform one Metropolis-Hastings step.

    A non-finite proposal or proposal log-density forces rejection. A current
    log-density of -inf (invalid start) lets any finite proposal through.

    Args:
        key: JAX random key
        current_state: Current parameter values (d,)
        lp_current: Cached log-density of current_state (-inf if invalid)
        chol_factor: Lower Cholesky factor of the proposal covariance
        log_scale: Log of the scalar step multiplier
        log_density_fn: Caller's log-density

    Returns:
        next_state, lp_next, accepted (1.0/0.0), new_key
    """
    new_key, proposal_key, accept_key = random.split(key, 3)

    proposal = propose_random_walk(proposal_key, current_state, chol_factor, log_scale)
    proposal_is_finite = jnp.all(jnp.isfinite(proposal))

    lp_proposed = safe_log_density(log_density_fn, proposal)

    # -inf - -inf is NaN; both it and an invalid proposal mean "reject"
    raw_ratio = lp_proposed - lp_current
    log_ratio = jnp.where(
        proposal_is_finite & jnp.isfinite(lp_proposed),
        jnp.nan_to_num(raw_ratio, nan=-jnp.inf),
        -jnp.inf
    )

    log_uniform = jnp.log(random.uniform(accept_key, shape=(), dtype=current_state.dtype))

    accept = log_uniform < log_ratio
    next_state = jnp.where(accept, proposal, current_state)
    lp_next = jnp.where(accept, lp_proposed, lp_current)
    accepted = accept.astype(current_state.dtype)

    return next_state, lp_next, accepted, new_key
