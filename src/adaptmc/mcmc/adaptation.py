"""
Proposal Adaptation (Robbins-Monro).

Online tracking of the target's location, shape and a global proposal scale:
- adaptation_step_size: Diminishing gain gamma_t = (t + 1)^(-kappa)
- update_proposal_state: One mean/covariance/log-scale update
- regularized_cov: Covariance actually used for proposals
- proposal_cholesky: Cholesky factor of the regularized covariance
- refresh_cholesky: New factor, keeping the previous one if factorization fails

Recursion after iteration t, using state x_t and accept indicator a_t:

    delta      = x_t - mean
    mean      <- mean + gamma_t * delta
    cov       <- cov  + gamma_t * (delta delta^T - cov)
    log_scale <- log_scale + gamma_t * (a_t - target_accept_rate)

kappa in (0.5, 1] makes gamma_t -> 0 while sum(gamma_t) diverges, so the
adaptation diminishes and the chain keeps the target as its stationary
distribution. Too many acceptances grow the scale, too many rejections
shrink it.
"""

import jax.numpy as jnp

from .types import ProposalState


def adaptation_step_size(t, exponent):
    """
    Gain for the t-th update (t >= 1).

    The +1 offset counts the initial scale as one pseudo-observation, so
    gamma_t <= 2^-kappa < 1 and the first update cannot wipe out the
    initial covariance.
    """
    return (t + 1.0) ** (-exponent)


def update_proposal_state(
    proposal_state: ProposalState,
    current_state: jnp.ndarray,
    accepted: jnp.ndarray,
    target_accept_rate: float,
    exponent: float,
) -> ProposalState:
    """
    Apply one Robbins-Monro update.

    Args:
        proposal_state: State before the update
        current_state: Chain state after the accept/reject decision (d,)
        accepted: 1.0 if the last proposal was accepted else 0.0
        target_accept_rate: Desired long-run acceptance rate
        exponent: kappa in (0.5, 1]

    Returns:
        Updated ProposalState
    """
    dtype = proposal_state.running_mean.dtype
    t = proposal_state.iteration + 1
    gamma = adaptation_step_size(t.astype(dtype), exponent)

    # Deviation from the mean *before* this update
    delta = current_state - proposal_state.running_mean
    new_mean = proposal_state.running_mean + gamma * delta

    # outer(delta, delta) is exactly symmetric, and so is the convex combination
    new_cov = proposal_state.running_cov + gamma * (jnp.outer(delta, delta) - proposal_state.running_cov)

    new_log_scale = proposal_state.log_scale + gamma * (accepted.astype(dtype) - target_accept_rate)

    return ProposalState(
        running_mean=new_mean,
        running_cov=new_cov,
        log_scale=new_log_scale,
        iteration=t,
    )


def regularized_cov(proposal_state: ProposalState, nugget: float) -> jnp.ndarray:
    """
    Symmetrized running covariance plus a nugget on the diagonal.

    The nugget is relative to the average variance (never below nugget
    itself), so it stays above the rounding error of the update in float32
    as well as float64.
    """
    cov = proposal_state.running_cov
    dim = cov.shape[-1]
    cov = 0.5 * (cov + cov.T)
    jitter = nugget * jnp.maximum(jnp.trace(cov) / dim, 1.0)
    return cov + jitter * jnp.eye(dim, dtype=cov.dtype)


def proposal_cholesky(proposal_state: ProposalState, nugget: float) -> jnp.ndarray:
    """Lower Cholesky factor of the regularized proposal covariance."""
    return jnp.linalg.cholesky(regularized_cov(proposal_state, nugget))


def refresh_cholesky(proposal_state: ProposalState, nugget: float, previous_factor: jnp.ndarray) -> jnp.ndarray:
    """
    Factor of the updated proposal covariance, or previous_factor if that
    factorization failed (non-finite entries).
    """
    factor = proposal_cholesky(proposal_state, nugget)
    return jnp.where(jnp.all(jnp.isfinite(factor)), factor, previous_factor)
