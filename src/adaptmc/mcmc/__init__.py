"""
MCMC Subpackage - Adaptive Metropolis-Hastings implementation.

This package contains the core sampling logic:
- backend: Multi-chain orchestrator (run_chains)
- single_run: Single-chain engine (run_chain) and helpers
- compile: Chunk kernel compilation and caching
- config: Configuration, validation and initialization
- adaptation: Robbins-Monro updates of the proposal state
- sampling: Random-walk proposal and MH accept/reject
- scan: JAX scan body and carry construction
- diagnostics: R-hat, effective sample size, autocorrelation
- types: Core data structures (ProposalState, ChainRecord, ...)
- utils: Config defaults
"""

# Import types first (needed by other modules)
from .types import ProposalState, RunParams, ChainRecord, DiagnosticResult

# Import main entry points
from .backend import run_chains
from .single_run import run_chain

# Import commonly used functions
from .config import (
    configure_sampler,
    validate_sampler_config,
    initialize_proposal_state,
)
from .diagnostics import (
    potential_scale_reduction,
    effective_sample_size,
    autocorrelation,
    compute_diagnostics,
    log_diagnostic_summary,
    log_acceptance_summary,
)
from .compile import clear_compiled_kernel_cache

__all__ = [
    # Main entry points
    'run_chain',
    'run_chains',
    # Types
    'ProposalState',
    'RunParams',
    'ChainRecord',
    'DiagnosticResult',
    # Config
    'configure_sampler',
    'validate_sampler_config',
    'initialize_proposal_state',
    # Diagnostics
    'potential_scale_reduction',
    'effective_sample_size',
    'autocorrelation',
    'compute_diagnostics',
    'log_diagnostic_summary',
    'log_acceptance_summary',
    # Compile
    'clear_compiled_kernel_cache',
]
