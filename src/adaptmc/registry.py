"""
Target Registration System

This module provides an optional registry of log-density targets. The sampler
accepts either a plain callable or the name of a registered target; a
registered target also declares its dimension, which lets the sampler reject
a mismatched initial_state before any sampling starts.

Example usage:
    from adaptmc import register_target, run_chain

    def my_log_density(theta):
        return -0.5 * jnp.sum(theta ** 2)

    register_target('std_normal_3d', {
        'log_density': my_log_density,
        'dim': 3,
    })

    record = run_chain('std_normal_3d', config)
"""

_REGISTRY = {}


def register_target(name, config):
    """
    Register a log-density target.

    Args:
        name: Unique target identifier string (e.g., 'banana_2d')
        config: Dict with keys:

            Required:
                log_density: fn(theta) -> scalar
                    Unnormalized log posterior; may return -inf or NaN.

                dim: int
                    Dimension of the parameter vector.

            Optional:
                initial_states: fn(n_chains, seed) -> array (n_chains, dim)
                    Dispersed starting points for multi-chain runs.

                description: str

    Raises:
        ValueError: If required keys are missing, dim is invalid, or name is
            already registered.
    """
    if name in _REGISTRY:
        raise ValueError(f"Target '{name}' is already registered")

    required_keys = ['log_density', 'dim']
    missing = [k for k in required_keys if k not in config]
    if missing:
        raise ValueError(f"Missing required keys for target '{name}': {missing}")

    if not callable(config['log_density']):
        raise ValueError(f"Target '{name}': 'log_density' must be callable")

    if int(config['dim']) < 1:
        raise ValueError(f"Target '{name}': 'dim' must be >= 1, got {config['dim']}")

    _REGISTRY[name] = config


def get_target(name):
    """
    Get a registered target configuration by name.

    Raises:
        KeyError: If the target is not registered
    """
    if name not in _REGISTRY:
        available = list(_REGISTRY.keys())
        raise KeyError(f"Unknown target '{name}'. Available: {available}")
    return _REGISTRY[name]


def list_targets():
    """List all registered target names."""
    return list(_REGISTRY.keys())


def clear_registry():
    """
    Clear all registered targets. Primarily for testing.
    """
    _REGISTRY.clear()


def resolve_target(target):
    """
    Turn a callable or registered name into (log_density_fn, declared_dim).

    declared_dim is None for bare callables.
    """
    if isinstance(target, str):
        config = get_target(target)
        return config['log_density'], int(config['dim'])
    if callable(target):
        return target, None
    raise TypeError(
        f"Target must be a callable log-density or a registered target name, "
        f"got {type(target).__name__}"
    )
