"""
Sampler Configuration and Initialization.

This module handles setting up and validating sampler configurations:
- configure_sampler: Main configuration entry point
- validate_sampler_config: Validate configuration before sampling
- initialize_proposal_state: Build the initial ProposalState
- gen_rng_key: Generate the JAX random key for a run
- set_precision: Switch JAX float precision (process-wide)

Configuration is split into two parts:
- user_config: Plain-Python values that can be logged or compared
- runtime_ctx: JAX-dependent objects that exist only during execution

All config keys use lowercase with underscores (e.g., 'n_iterations', 'rng_seed').
"""

import numbers
from typing import Any, Callable, Dict, List, Optional, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax.experimental import checkify

from ..error_handling import ConfigurationError, validate_initial_scale
from ..registry import resolve_target
from .types import ProposalState, RunParams
from .utils import REQUIRED_CONFIG_KEYS, clean_config

import logging
logger = logging.getLogger('adaptmc')


def gen_rng_key(rng_seed: int):
    """Generate the master JAX PRNGKey for a run from an integer seed."""
    return jax.random.PRNGKey(rng_seed)


def _is_int(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, (bool, np.bool_))


def _is_bool(value) -> bool:
    return isinstance(value, (bool, np.bool_))


def check_log_density_shape(log_density_fn: Callable, dim: int, dtype) -> Optional[str]:
    """
    Trace the log-density abstractly on a (dim,) vector without evaluating it.

    Returns:
        Problem description, or None if the function maps (dim,) to a scalar.
    """
    abstract_theta = jax.ShapeDtypeStruct((dim,), dtype)
    try:
        out = jax.eval_shape(log_density_fn, abstract_theta)
    except (TypeError, ValueError, IndexError) as exc:
        return f"log_density cannot be evaluated on a vector of length {dim}: {exc}"

    shape = getattr(out, 'shape', None)
    if shape is None:
        return f"log_density must return an array scalar, got {type(out).__name__}"
    if int(np.prod(shape)) != 1:
        return f"log_density must return a scalar for a length-{dim} input, got shape {shape}"
    return None


def check_log_density_indexing(log_density_fn: Callable, initial_state: np.ndarray, dtype) -> Optional[str]:
    """
    Evaluate the log-density once at initial_state with index checks enabled.

    JAX clamps out-of-bounds dynamic indices instead of raising, so a log-density
    written for a longer vector still traces on a short one; checkify turns
    those accesses into a reportable error.

    Returns:
        Problem description, or None if every index is in bounds.
    """
    checked_fn = checkify.checkify(log_density_fn, errors=checkify.index_checks)
    err, _ = checked_fn(jnp.asarray(initial_state, dtype=dtype))
    message = err.get()
    if message is not None:
        return (f"log_density indexes outside a vector of length {initial_state.shape[0]}: "
                f"{message.splitlines()[0]}")
    return None


def validate_sampler_config(
    config: Dict[str, Any],
    log_density_fn: Optional[Callable] = None,
    declared_dim: Optional[int] = None,
) -> int:
    """
    Validate a cleaned sampler configuration before any sampling starts.

    Args:
        config: Config dict (after clean_config)
        log_density_fn: Log-density to check against initial_state, if given
        declared_dim: Dimension declared by a registered target or 'dim' key

    Returns:
        Dimension d of the parameter vector

    Raises:
        ConfigurationError: Listing every offending parameter
    """
    errors: List[Tuple[str, str]] = []

    for key in REQUIRED_CONFIG_KEYS:
        if key not in config:
            errors.append((key, "missing required config key"))
    if errors:
        raise ConfigurationError(errors)

    n_iterations = config['n_iterations']
    if not _is_int(n_iterations):
        errors.append(('n_iterations', f"must be an integer, got {n_iterations!r}"))
    elif n_iterations < 1:
        errors.append(('n_iterations', f"must be >= 1, got {n_iterations}"))

    target = config['target_accept_rate']
    if not isinstance(target, numbers.Real) or not (0.0 < float(target) < 1.0):
        errors.append(('target_accept_rate', f"must be in (0, 1), got {target!r}"))

    if not _is_bool(config['adapt']):
        errors.append(('adapt', f"must be True or False, got {config['adapt']!r}"))

    if not _is_int(config['rng_seed']):
        errors.append(('rng_seed', f"must be an integer, got {config['rng_seed']!r}"))

    kappa = config['adaptation_exponent']
    if not isinstance(kappa, numbers.Real) or not (0.5 < float(kappa) <= 1.0):
        errors.append(('adaptation_exponent', f"must be in (0.5, 1], got {kappa!r}"))

    nugget = config['cov_nugget']
    if not isinstance(nugget, numbers.Real) or not float(nugget) > 0.0:
        errors.append(('cov_nugget', f"must be > 0, got {nugget!r}"))

    chunk_size = config['chunk_size']
    if not _is_int(chunk_size) or chunk_size < 1:
        errors.append(('chunk_size', f"must be an integer >= 1, got {chunk_size!r}"))

    dim = None
    initial_state = np.asarray(config['initial_state'], dtype=np.float64)
    if initial_state.ndim != 1 or initial_state.size < 1:
        errors.append(('initial_state', f"must be a non-empty 1-D vector, got shape {initial_state.shape}"))
    elif not np.all(np.isfinite(initial_state)):
        errors.append(('initial_state', "contains NaN or Inf entries"))
    else:
        dim = initial_state.shape[0]

    if declared_dim is None and 'dim' in config:
        declared_dim = config['dim']

    if dim is not None:
        if declared_dim is not None and int(declared_dim) != dim:
            errors.append((
                'initial_state',
                f"dimension {dim} does not match the log-density dimension {declared_dim}"
            ))
        else:
            for msg in validate_initial_scale(config['initial_scale'], dim):
                errors.append(('initial_scale', msg))

            if log_density_fn is not None:
                dtype = jnp.float64 if config['use_double'] else jnp.float32
                problem = check_log_density_shape(log_density_fn, dim, dtype)
                if problem is None:
                    problem = check_log_density_indexing(log_density_fn, initial_state, dtype)
                if problem is not None:
                    errors.append(('initial_state', problem))

    if errors:
        raise ConfigurationError(errors)

    return dim


def set_precision(use_double: bool) -> None:
    """
    Set JAX's process-wide x64 flag, warning when a run changes it.

    The flag also governs any JAX code the caller runs afterwards.
    """
    if bool(jax.config.jax_enable_x64) != use_double:
        # Only a drop to float32 is a warning
        log = logger.info if use_double else logger.warning
        log(
            f"Switching JAX to {'64' if use_double else '32'}-bit floats for this process "
            f"(use_double={use_double}); later JAX code runs at this precision too"
        )
        jax.config.update("jax_enable_x64", use_double)


def configure_sampler(
    target,
    sampler_config: Dict[str, Any],
) -> Tuple[Dict[str, Any], Dict[str, Any], RunParams]:
    """
    Configure a sampler run from a target and a config dict.

    Args:
        target: Log-density callable or registered target name
        sampler_config: Input configuration dict (see utils.REQUIRED_CONFIG_KEYS)

    Returns:
        user_config: Clean config with plain-Python values + derived 'dim'
        runtime_ctx: Dict with the log-density, dtype, master key, arrays
        run_params: RunParams for the compiled kernel

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    sampler_config = clean_config(sampler_config)
    log_density_fn, declared_dim = resolve_target(target)

    # Precision must be set before tracing the log-density for validation
    use_double = bool(sampler_config['use_double'])
    set_precision(use_double)
    jnp_float_dtype = jnp.float64 if use_double else jnp.float32

    dim = validate_sampler_config(sampler_config, log_density_fn, declared_dim)

    user_config = {
        'n_iterations': int(sampler_config['n_iterations']),
        'adapt': bool(sampler_config['adapt']),
        'target_accept_rate': float(sampler_config['target_accept_rate']),
        'rng_seed': int(sampler_config['rng_seed']),
        'adaptation_exponent': float(sampler_config['adaptation_exponent']),
        'cov_nugget': float(sampler_config['cov_nugget']),
        'chunk_size': int(sampler_config['chunk_size']),
        'use_double': use_double,
        # Derived values
        'dim': int(dim),
    }

    initial_state = jnp.asarray(sampler_config['initial_state'], dtype=jnp_float_dtype)
    initial_scale = np.asarray(sampler_config['initial_scale'], dtype=np.float64)
    # Symmetrize once; every adaptation update preserves exact symmetry
    initial_scale = jnp.asarray(0.5 * (initial_scale + initial_scale.T), dtype=jnp_float_dtype)

    runtime_ctx = {
        'log_density_fn': log_density_fn,
        'jnp_float_dtype': jnp_float_dtype,
        'master_key': gen_rng_key(user_config['rng_seed']),
        'initial_state': initial_state,
        'initial_scale': initial_scale,
    }

    run_params = RunParams(
        ADAPT=user_config['adapt'],
        TARGET_ACCEPT_RATE=user_config['target_accept_rate'],
        ADAPTATION_EXPONENT=user_config['adaptation_exponent'],
        COV_NUGGET=user_config['cov_nugget'],
        CHUNK_SIZE=user_config['chunk_size'],
    )

    return user_config, runtime_ctx, run_params


def initialize_proposal_state(initial_state, initial_scale, dtype) -> ProposalState:
    """
    Fresh ProposalState centred on the initial state.

    running_cov starts at initial_scale and log_scale at 0, so the first
    proposal uses exactly the caller's initial scale.
    """
    return ProposalState(
        running_mean=jnp.asarray(initial_state, dtype=dtype),
        running_cov=jnp.asarray(initial_scale, dtype=dtype),
        log_scale=jnp.zeros((), dtype=dtype),
        iteration=jnp.zeros((), dtype=jnp.int32),
    )
