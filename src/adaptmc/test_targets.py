"""
Test Targets - Log-densities with Known Answers

Simple targets used for testing the sampler. Each one has a known mean and
covariance (or a known failure mode), so runs can be checked against the truth.

DO NOT import this module in production sampling code.
These targets are for testing/validation only.
"""

import numpy as np
import jax.numpy as jnp


# ============================================================================
# CORRELATED 2D GAUSSIAN
# ============================================================================

CORRELATED_MEAN = np.array([3.0, 1.0])
CORRELATED_COV = np.array([[1.0, 1.99],
                           [1.99, 4.0]])


def correlated_gaussian_log_density(theta):
    """
    Strongly correlated bivariate normal (rho = 0.995).

    Model:
        theta ~ N((3, 1), [[1, 1.99], [1.99, 4]])

    A random walk with isotropic steps mixes badly here; a proposal that has
    learned the covariance moves along the ridge.
    """
    precision = jnp.asarray(np.linalg.inv(CORRELATED_COV), dtype=theta.dtype)
    diff = theta - jnp.asarray(CORRELATED_MEAN, dtype=theta.dtype)
    return -0.5 * diff @ precision @ diff


def correlated_gaussian_initial_states(n_chains, seed):
    """Dispersed starting points around the mode."""
    rng = np.random.default_rng(seed)
    return CORRELATED_MEAN + rng.normal(scale=2.0, size=(n_chains, 2))


# ============================================================================
# STANDARD NORMAL
# ============================================================================

def standard_normal_log_density(theta):
    """theta ~ N(0, I) in any dimension."""
    return -0.5 * jnp.sum(theta ** 2)


def standard_normal_initial_states(n_chains, seed, dim=3):
    rng = np.random.default_rng(seed)
    return rng.normal(scale=3.0, size=(n_chains, dim))


# ============================================================================
# HALF-NORMAL (BOUNDED SUPPORT)
# ============================================================================

def half_normal_log_density(theta):
    """
    theta ~ N(0, 1) restricted to theta > 0.

    Returns -inf outside the support, so proposals that cross zero are rejected.
    """
    x = theta[0]
    return jnp.where(x > 0, -0.5 * x ** 2, -jnp.inf)


# ============================================================================
# BROKEN TARGETS
# ============================================================================

def nan_log_density(theta):
    """Every evaluation is NaN; no proposal can ever be accepted."""
    return jnp.sum(theta) * jnp.nan


def vector_log_density(theta):
    """Returns a vector instead of a scalar; configuration must reject it."""
    return -0.5 * theta ** 2


# ============================================================================
# REGISTRY
# ============================================================================

TEST_TARGETS = {
    'test_correlated_gaussian': {
        'log_density': correlated_gaussian_log_density,
        'dim': 2,
        'initial_states': correlated_gaussian_initial_states,
        'description': 'Bivariate normal, mean (3, 1), correlation 0.995',
    },
    'test_standard_normal_3d': {
        'log_density': standard_normal_log_density,
        'dim': 3,
        'initial_states': standard_normal_initial_states,
        'description': 'Standard normal in 3 dimensions',
    },
    'test_half_normal': {
        'log_density': half_normal_log_density,
        'dim': 1,
        'description': 'Half-normal on the positive axis',
    },
}
