"""
Pytest configuration and shared fixtures for adaptmc tests.
"""

import pytest
import numpy as np
import jax

from adaptmc.registry import register_target, _REGISTRY
from adaptmc import test_targets

# Tests compare against float64 references
jax.config.update("jax_enable_x64", True)


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 42


@pytest.fixture
def base_config():
    """Minimal valid 2D sampler configuration."""
    return {
        'n_iterations': 500,
        'initial_state': np.array([0.0, 1.0]),
        'initial_scale': 0.1 * np.eye(2),
        'adapt': True,
        'target_accept_rate': 0.234,
        'rng_seed': 42,
    }


@pytest.fixture
def register_test_targets():
    """
    Fixture to register test targets and clean up after test.

    Usage:
        def test_something(register_test_targets):
            # Test targets are now registered
            ...
    """
    # Save any existing registrations
    original_registrations = {}
    for name, config in test_targets.TEST_TARGETS.items():
        if name in _REGISTRY:
            original_registrations[name] = _REGISTRY.pop(name)
        register_target(name, config)

    yield  # Run the test

    # Restore original registry state
    for name in test_targets.TEST_TARGETS.keys():
        if name in original_registrations:
            _REGISTRY[name] = original_registrations[name]
        elif name in _REGISTRY:
            del _REGISTRY[name]


def make_ar1_chain(phi, n, dim=1, seed=0, innovations=None):
    """
    Simulate a stationary AR(1) process x_t = phi * x_{t-1} + e_t.

    Passing the same innovations for different phi isolates the effect of phi.
    """
    if innovations is None:
        innovations = np.random.default_rng(seed).normal(size=(n, dim))
    x = np.zeros_like(innovations)
    x[0] = innovations[0] / np.sqrt(1.0 - phi ** 2)
    for t in range(1, n):
        x[t] = phi * x[t - 1] + innovations[t]
    return x


def direct_autocorrelation(x, lag):
    """Reference lag-k autocorrelation computed term by term (x is 1-D)."""
    c = x - x.mean()
    return np.sum(c[:len(c) - lag] * c[lag:]) / np.sum(c * c)


@pytest.fixture
def restore_x64():
    """Re-enable float64 after a test that runs with use_double=False."""
    yield
    jax.config.update("jax_enable_x64", True)
