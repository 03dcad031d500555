"""
Error Handling and Validation Utilities for the Adaptive Sampler

This module defines the error taxonomy and the validation/diagnostic helpers:
- ConfigurationError: bad sampler configuration, raised before sampling
- DiagnosticInputError: bad input to a convergence diagnostic
- validate_initial_scale: shape/symmetry/positive-definiteness of a matrix
- diagnose_chain_issues / print_diagnostics: post-run sanity report
"""

from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

import logging
logger = logging.getLogger('adaptmc')


class ConfigurationError(ValueError):
    """
    Invalid sampler configuration.

    Collects every problem found so a caller can fix them in one pass.
    `parameters` lists the offending configuration keys, in report order.
    """

    def __init__(self, errors: Sequence[Tuple[str, str]]):
        self.errors = list(errors)
        self.parameters = [param for param, _ in self.errors]
        lines = [f"{param}: {msg}" for param, msg in self.errors]
        super().__init__("Invalid sampler configuration:\n  " + "\n  ".join(lines))


class DiagnosticInputError(ValueError):
    """Invalid input to a convergence diagnostic."""

    def __init__(self, parameter: str, message: str):
        self.parameter = parameter
        self.parameters = [parameter]
        super().__init__(f"Invalid diagnostic input: {parameter}: {message}")


def validate_initial_scale(initial_scale: np.ndarray, dim: int) -> List[str]:
    """
    Check that initial_scale is a symmetric positive-definite (dim, dim) matrix.

    Returns:
        List of problem descriptions (empty if the matrix is valid)
    """
    scale = np.asarray(initial_scale, dtype=np.float64)
    if scale.shape != (dim, dim):
        return [f"must have shape ({dim}, {dim}) to match initial_state, got {scale.shape}"]
    if not np.all(np.isfinite(scale)):
        return ["contains NaN or Inf entries"]
    if not np.allclose(scale, scale.T, rtol=1e-10, atol=1e-12):
        return ["must be symmetric"]
    try:
        np.linalg.cholesky(scale)
    except np.linalg.LinAlgError:
        return ["must be positive-definite"]
    return []


def diagnose_chain_issues(chains: Sequence, target_accept_rate: float = None) -> Dict[str, Any]:
    """
    Analyzes finished chains to identify common issues.

    Nothing here is fatal: a chain that never accepts is a valid outcome,
    it is just reported.

    Args:
        chains: Sequence of ChainRecord
        target_accept_rate: Optional target to compare acceptance rates against

    Returns:
        diagnostics: Dictionary with 'issues', 'warnings' and 'info' lists
    """
    diagnostics = {
        'issues': [],
        'warnings': [],
        'info': []
    }

    for idx, chain in enumerate(chains):
        samples = chain.samples
        if not np.all(np.isfinite(samples)):
            diagnostics['issues'].append(
                f"Chain {idx} contains NaN or Inf states - sampler became unstable"
            )

        if chain.n_accepted == 0:
            diagnostics['issues'].append(
                f"Chain {idx} never accepted a proposal "
                f"(log-density may be non-finite everywhere near the start)"
            )
        elif samples.shape[0] > 1 and np.all(np.var(samples, axis=0) < 1e-10):
            diagnostics['warnings'].append(
                f"Chain {idx} appears stuck (near-zero variance)"
            )

        if chain.acceptance_rate < 0.05 and chain.n_accepted > 0:
            diagnostics['warnings'].append(
                f"Chain {idx} acceptance rate is {chain.acceptance_rate:.1%} (< 5%)"
            )
        if target_accept_rate is not None and abs(chain.acceptance_rate - target_accept_rate) > 0.1:
            diagnostics['warnings'].append(
                f"Chain {idx} acceptance rate {chain.acceptance_rate:.1%} is far from "
                f"target {target_accept_rate:.1%}"
            )

        if chain.stopped_early:
            diagnostics['info'].append(
                f"Chain {idx} stopped early after {chain.n_samples}/"
                f"{chain.n_iterations_requested} iterations"
            )

    if chains:
        diagnostics['info'].append(f"Number of chains: {len(chains)}")
        diagnostics['info'].append(f"Samples per chain: {[c.n_samples for c in chains]}")
        diagnostics['info'].append(f"Number of parameters: {chains[0].dim}")

    return diagnostics


def print_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Log the report produced by diagnose_chain_issues."""
    if diagnostics['issues']:
        logger.error("[ERROR] ISSUES:")
        for issue in diagnostics['issues']:
            logger.error(f"  - {issue}")

    if diagnostics['warnings']:
        logger.warning("[WARN] WARNINGS:")
        for warning in diagnostics['warnings']:
            logger.warning(f"  - {warning}")

    if diagnostics['info']:
        logger.info("[INFO] INFO:")
        for info in diagnostics['info']:
            logger.info(f"  - {info}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.info("[OK] No issues detected")
