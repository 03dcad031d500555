"""
MCMC Data Structures and Type Definitions.

This module contains the core data structures used by the sampler:
- ProposalState: Running proposal mean/covariance/log-scale (JAX pytree)
- RunParams: Immutable run parameters for JAX static arguments
- ChainRecord: Host-side, read-only result of one chain
- DiagnosticResult: Per-dimension convergence statistics
"""

from dataclasses import dataclass
from typing import Dict

import jax
import jax.numpy as jnp
import numpy as np


@dataclass(frozen=True)
class ProposalState:
    """
    Adaptive proposal state owned by exactly one chain.

    The covariance used to draw proposals is never running_cov itself but
    running_cov + cov_nugget * I (see adaptation.regularized_cov).

    Registered as a JAX pytree so it can travel through scan/vmap carries.
    """
    running_mean: jnp.ndarray   # (d,)
    running_cov: jnp.ndarray    # (d, d), exactly symmetric
    log_scale: jnp.ndarray      # scalar, proposal std multiplier is exp(log_scale)
    iteration: jnp.ndarray      # scalar int, number of adaptation updates applied

    @property
    def dim(self) -> int:
        return self.running_mean.shape[-1]

    @property
    def scale(self):
        return jnp.exp(self.log_scale)

    def to_host(self) -> "ProposalState":
        """Copy every field to read-only numpy arrays."""
        fields = jax.device_get((self.running_mean, self.running_cov,
                                 self.log_scale, self.iteration))
        return ProposalState(*(_readonly(np.asarray(f)) for f in fields))


def _proposal_state_flatten(ps):
    children = (ps.running_mean, ps.running_cov, ps.log_scale, ps.iteration)
    return children, None


def _proposal_state_unflatten(aux_data, children):
    del aux_data
    running_mean, running_cov, log_scale, iteration = children
    return ProposalState(
        running_mean=running_mean,
        running_cov=running_cov,
        log_scale=log_scale,
        iteration=iteration,
    )


# Register ProposalState as a JAX pytree
jax.tree_util.register_pytree_node(
    ProposalState,
    _proposal_state_flatten,
    _proposal_state_unflatten
)


@dataclass(frozen=True)
class RunParams:
    """
    Immutable run parameters.

    Frozen (hashable) so it can be a static argument of the compiled chunk
    kernel. Uppercase fields mirror compile-time constants.
    """
    ADAPT: bool
    TARGET_ACCEPT_RATE: float
    ADAPTATION_EXPONENT: float
    COV_NUGGET: float
    CHUNK_SIZE: int


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class ChainRecord:
    """
    Output of one sampler run.

    Append-only while sampling (the scan carry), immutable once returned:
    the dataclass is frozen and every array is flagged read-only.

    Fields:
        samples: Recorded states, one per completed iteration (n, d)
        acceptance_rate: n_accepted / n
        n_accepted: Number of accepted proposals
        log_densities: Log-density of each recorded state (n,), -inf if invalid
        proposal_state: Final ProposalState (host arrays)
        n_iterations_requested: Iterations asked for in the configuration
    """
    samples: np.ndarray
    acceptance_rate: float
    n_accepted: int
    log_densities: np.ndarray
    proposal_state: ProposalState
    n_iterations_requested: int

    @classmethod
    def from_arrays(cls, samples, log_densities, n_accepted, proposal_state,
                    n_iterations_requested) -> "ChainRecord":
        samples = _readonly(np.array(samples))
        log_densities = _readonly(np.array(log_densities))
        n_samples = samples.shape[0]
        n_accepted = int(n_accepted)
        acceptance_rate = n_accepted / n_samples if n_samples > 0 else 0.0
        return cls(
            samples=samples,
            acceptance_rate=float(acceptance_rate),
            n_accepted=n_accepted,
            log_densities=log_densities,
            proposal_state=proposal_state.to_host(),
            n_iterations_requested=int(n_iterations_requested),
        )

    @property
    def n_samples(self) -> int:
        return self.samples.shape[0]

    @property
    def dim(self) -> int:
        return self.samples.shape[1]

    @property
    def stopped_early(self) -> bool:
        return self.n_samples < self.n_iterations_requested


@dataclass(frozen=True)
class DiagnosticResult:
    """Per-dimension convergence statistics for a set of chains."""
    potential_scale_reduction: Dict[int, float]
    effective_sample_size: Dict[int, float]
    burn_in: int
    n_chains: int
    n_samples_per_chain: int

    def converged(self, threshold: float = 1.1) -> bool:
        """True when every dimension's potential scale reduction is below threshold."""
        values = np.array(list(self.potential_scale_reduction.values()))
        return bool(np.all(np.isfinite(values)) and np.all(values < threshold))
