"""
adaptmc - Adaptive Metropolis-Hastings Sampling Package

Public API:
    Sampling:
        run_chain - Run one adaptive chain
        run_chains - Run independent chains from dispersed starting points

    Results:
        ChainRecord - Read-only samples, log-densities and acceptance count
        ProposalState - Running mean/covariance/log-scale of the proposal
        DiagnosticResult - Per-dimension R-hat and ESS

    Diagnostics:
        potential_scale_reduction - Gelman-Rubin R-hat
        effective_sample_size - Autocorrelation-adjusted sample count
        autocorrelation - Lag-k sample autocorrelation of one chain
        compute_diagnostics - R-hat and ESS together
        log_diagnostic_summary - Log a convergence report

    Registration:
        register_target - Register a named log-density
        get_target - Retrieve a registered target
        list_targets - List all registered targets

    Errors:
        ConfigurationError - Invalid sampler configuration
        DiagnosticInputError - Invalid diagnostic input

Example:
    import jax.numpy as jnp
    import numpy as np
    from adaptmc import run_chains, compute_diagnostics

    def log_density(theta):
        return -0.5 * jnp.sum(theta ** 2)

    chains = run_chains(log_density, {
        'n_iterations': 5000,
        'initial_scale': 0.1 * np.eye(2),
        'adapt': True,
        'target_accept_rate': 0.234,
        'rng_seed': 1,
    }, initial_states=np.array([[-3.0, 3.0], [3.0, -3.0]]))

    result = compute_diagnostics(chains, burn_in=2500)
    result.converged()
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

from .registry import register_target, get_target, list_targets
from .error_handling import ConfigurationError, DiagnosticInputError
from .mcmc.types import ProposalState, ChainRecord, DiagnosticResult

# Main entry points
from .mcmc import (
    run_chain,
    run_chains,
    potential_scale_reduction,
    effective_sample_size,
    autocorrelation,
    compute_diagnostics,
    log_diagnostic_summary,
)

__version__ = "0.1.0"
