"""
MCMC Diagnostics.

Convergence diagnostics for finished chains. Every dimension of the parameter
vector is diagnosed separately, and burn-in is always removed first:
- potential_scale_reduction: Gelman-Rubin R-hat across >= 2 chains
- effective_sample_size: Pooled ESS from the initial positive autocorrelations
- autocorrelation: Lag-k sample autocorrelation of one chain
- compute_diagnostics: Both multi-chain statistics as a DiagnosticResult
- log_diagnostic_summary / log_acceptance_summary: Logging-only reports
"""

import numbers
from functools import partial
from typing import Optional, Sequence

import jax
import jax.numpy as jnp
import numpy as np

from ..error_handling import DiagnosticInputError
from .types import DiagnosticResult

import logging
logger = logging.getLogger('adaptmc')


# =============================================================================
# INPUT HANDLING
# =============================================================================

def _as_samples(chain) -> np.ndarray:
    """Samples of a ChainRecord, or an (n, d) / (n,) array, as (n, d)."""
    samples = chain.samples if hasattr(chain, 'samples') else chain
    samples = np.asarray(samples, dtype=np.float64)
    if samples.ndim == 1:
        samples = samples[:, np.newaxis]
    if samples.ndim != 2:
        raise DiagnosticInputError('chains', f"each chain must be (n_samples, dim), got shape {samples.shape}")
    return samples


def _check_burn_in(burn_in, n_samples: int) -> None:
    if not isinstance(burn_in, numbers.Integral) or isinstance(burn_in, bool):
        raise DiagnosticInputError('burn_in', f"must be an integer, got {burn_in!r}")
    if burn_in < 0:
        raise DiagnosticInputError('burn_in', f"must be >= 0, got {burn_in}")
    if burn_in >= n_samples:
        raise DiagnosticInputError(
            'burn_in', f"({burn_in}) must be smaller than the chain length ({n_samples})"
        )


def _post_burn_in_history(chains: Sequence, burn_in: int) -> np.ndarray:
    """
    Stack post-burn-in samples of >= 2 chains into (n_samples, n_chains, dim).

    Chains of unequal length (e.g. stopped early) are truncated to the
    shortest one so every chain contributes the same n.
    """
    if chains is None or len(chains) < 2:
        n_given = 0 if chains is None else len(chains)
        raise DiagnosticInputError('chains', f"at least 2 chains are required, got {n_given}")

    all_samples = [_as_samples(c) for c in chains]
    dims = {s.shape[1] for s in all_samples}
    if len(dims) != 1:
        raise DiagnosticInputError('chains', f"chains have different dimensions: {sorted(dims)}")

    for samples in all_samples:
        _check_burn_in(burn_in, samples.shape[0])

    n_keep = min(s.shape[0] for s in all_samples) - burn_in
    return np.stack([s[burn_in:burn_in + n_keep] for s in all_samples], axis=1)


def _constant_mask(history: np.ndarray) -> np.ndarray:
    """
    True where a chain never moves in a dimension: (n, m, d) -> (m, d).

    Checked on the host with exact comparisons; compiled means carry rounding
    error, so a zero variance does not come out of the kernels as exactly 0.
    """
    return np.ptp(history, axis=0) == 0


# =============================================================================
# KERNELS
# =============================================================================

@jax.jit
def compute_potential_scale_reduction(history: jnp.ndarray) -> jnp.ndarray:
    """
    Gelman-Rubin potential scale reduction.

    Args:
        history: Post-burn-in samples (n_samples, n_chains, n_params)

    Returns:
        rhat: (n_params,) array, sqrt(((n-1)/n) W + B/n) / sqrt(W)
    """
    n_samples = history.shape[0]

    # Between-chain variance: B = n * var(chain_means)
    chain_means = jnp.mean(history, axis=0)  # (n_chains, n_params)
    B = n_samples * jnp.var(chain_means, axis=0, ddof=1)

    # Within-chain variance: average of per-chain sample variances
    W = jnp.mean(jnp.var(history, axis=0, ddof=1), axis=0)

    n = n_samples
    V_hat = ((n - 1) / n) * W + B / n

    # Zero within-chain variance (stuck chains) has no meaningful ratio
    return jnp.where(W > 0, jnp.sqrt(V_hat) / jnp.sqrt(W), jnp.nan)


def _split_history(history: np.ndarray) -> np.ndarray:
    """Halve every chain: (n, m, d) -> (n // 2, 2m, d), dropping a trailing odd sample."""
    half = history.shape[0] // 2
    return np.concatenate([history[:half], history[half:2 * half]], axis=1)


def _autocorrelation_1chain(samples: jnp.ndarray) -> jnp.ndarray:
    """
    Lag-k sample autocorrelation for every lag 0..n-1 via FFT.

    rho_k = sum_t c_t c_{t+k} / sum_t c_t^2 with c the centered samples.
    Zero-padding to >= 2n makes the circular correlation equal the linear one.
    Dividing by the lag-0 term makes rho_0 exactly 1.0.

    Args:
        samples: (n, d)

    Returns:
        (n, d) autocorrelations, NaN for zero-variance dimensions
    """
    n = samples.shape[0]
    centered = samples - jnp.mean(samples, axis=0)
    n_fft = 1 << (2 * n - 1).bit_length()
    spectrum = jnp.fft.rfft(centered, n=n_fft, axis=0)
    autocov = jnp.fft.irfft(spectrum * jnp.conj(spectrum), n=n_fft, axis=0)[:n]
    return autocov / autocov[0]


_autocorrelation_kernel = jax.jit(_autocorrelation_1chain)


@partial(jax.jit, static_argnums=(1,))
def compute_effective_sample_size(history: jnp.ndarray, max_lag: int) -> jnp.ndarray:
    """
    Effective sample size pooled over chains.

    The per-chain autocorrelations are averaged over chains, then summed from
    lag 1 up to (not including) the first non-positive value, or max_lag:

        tau = 1 + 2 * sum_k rho_k,    ESS = n_chains * n_samples / tau

    Args:
        history: Post-burn-in samples (n_samples, n_chains, n_params)
        max_lag: Safety cutoff lag (static)

    Returns:
        ess: (n_params,) array, never above n_chains * n_samples
    """
    n_samples, n_chains, _ = history.shape
    rho = jax.vmap(_autocorrelation_1chain, in_axes=1)(history)  # (n_chains, n_samples, n_params)
    rho_mean = jnp.mean(rho, axis=0)

    lagged = rho_mean[1:max_lag + 1]
    # 1 up to the first non-positive lag, 0 from there on
    positive_run = jnp.cumprod((lagged > 0).astype(lagged.dtype), axis=0)
    tau = 1.0 + 2.0 * jnp.sum(lagged * positive_run, axis=0)

    return n_chains * n_samples / tau


# =============================================================================
# PUBLIC API
# =============================================================================

def potential_scale_reduction(chains: Sequence, burn_in: int, split: bool = False) -> np.ndarray:
    """
    Per-dimension potential scale reduction (R-hat) of >= 2 chains.

    Values near 1 indicate the chains agree; values at or above ~1.1 mean
    more iterations or better adaptation are needed. This only reports,
    it never rejects samples.

    Args:
        chains: Sequence of ChainRecord (or (n, d) arrays)
        burn_in: Samples to discard from the start of every chain
        split: Halve each chain first (split R-hat), which also catches
            drift within a chain

    Returns:
        (dim,) array; entry i is the value for dimension i, NaN where no
        chain moves. compute_diagnostics gives the same values as a
        {dimension: value} mapping.

    Raises:
        DiagnosticInputError: Fewer than 2 chains, or burn_in out of range
    """
    history = _post_burn_in_history(chains, burn_in)
    if split:
        history = _split_history(history)
    rhat = np.asarray(jax.device_get(compute_potential_scale_reduction(jnp.asarray(history))))
    # No within-chain variance anywhere: W is zero and the ratio is undefined
    return np.where(np.all(_constant_mask(history), axis=0), np.nan, rhat)


def effective_sample_size(chains: Sequence, burn_in: int, max_lag: Optional[int] = None) -> np.ndarray:
    """
    Per-dimension effective sample size of >= 2 chains.

    Args:
        chains: Sequence of ChainRecord (or (n, d) arrays)
        burn_in: Samples to discard from the start of every chain
        max_lag: Safety cutoff for the autocorrelation sum (default n - 1)

    Returns:
        (dim,) array; entry i is the value for dimension i, each <=
        n_chains * n_post_burn_in and NaN where any chain is constant.
        compute_diagnostics gives the same values as a {dimension: value}
        mapping.

    Raises:
        DiagnosticInputError: Fewer than 2 chains, burn_in or max_lag out of range
    """
    history = _post_burn_in_history(chains, burn_in)
    n_samples = history.shape[0]
    if max_lag is None:
        max_lag = n_samples - 1
    _check_max_lag(max_lag, n_samples)
    ess = np.asarray(jax.device_get(compute_effective_sample_size(jnp.asarray(history), int(max_lag))))
    # A constant chain has no autocorrelation sequence to average
    return np.where(np.any(_constant_mask(history), axis=0), np.nan, ess)


def _check_max_lag(max_lag, n_samples: int) -> None:
    if not isinstance(max_lag, numbers.Integral) or isinstance(max_lag, bool):
        raise DiagnosticInputError('max_lag', f"must be an integer, got {max_lag!r}")
    if max_lag < 0 or max_lag > n_samples - 1:
        raise DiagnosticInputError(
            'max_lag', f"must be in [0, {n_samples - 1}] for {n_samples} post-burn-in samples, got {max_lag}"
        )


def autocorrelation(chain, *, burn_in: int, max_lag: int) -> np.ndarray:
    """
    Lag-k sample autocorrelation of one chain after burn-in removal.

    Both arguments are required; burn-in is removed before anything else.

    Args:
        chain: ChainRecord (or (n, d) array)
        burn_in: Samples to discard from the start (keyword-only, required)
        max_lag: Largest lag to return (keyword-only, required)

    Returns:
        (max_lag + 1, dim) array; row k is the lag-k autocorrelation and
        row 0 is exactly 1.0 for every non-degenerate dimension

    Raises:
        DiagnosticInputError: burn_in or max_lag out of range
    """
    samples = _as_samples(chain)
    _check_burn_in(burn_in, samples.shape[0])
    post = samples[burn_in:]
    _check_max_lag(max_lag, post.shape[0])

    rho = np.asarray(jax.device_get(_autocorrelation_kernel(jnp.asarray(post))[:max_lag + 1]))
    constant = _constant_mask(post[:, np.newaxis, :])[0]
    return np.where(constant[np.newaxis, :], np.nan, rho)


def compute_diagnostics(
    chains: Sequence,
    burn_in: int,
    max_lag: Optional[int] = None,
    split: bool = False,
) -> DiagnosticResult:
    """
    Compute potential scale reduction and effective sample size together.

    Returns:
        DiagnosticResult with per-dimension mappings
    """
    rhat = potential_scale_reduction(chains, burn_in, split=split)
    ess = effective_sample_size(chains, burn_in, max_lag=max_lag)
    n_per_chain = min(_as_samples(c).shape[0] for c in chains) - burn_in

    return DiagnosticResult(
        potential_scale_reduction={i: float(v) for i, v in enumerate(rhat)},
        effective_sample_size={i: float(v) for i, v in enumerate(ess)},
        burn_in=int(burn_in),
        n_chains=len(chains),
        n_samples_per_chain=int(n_per_chain),
    )


def log_diagnostic_summary(result: DiagnosticResult, threshold: float = 1.1) -> None:
    """
    Log R-hat and ESS summary statistics with a convergence verdict.

    Args:
        result: DiagnosticResult from compute_diagnostics
        threshold: R-hat value below which a dimension counts as converged
    """
    rhat = np.array(list(result.potential_scale_reduction.values()))
    ess = np.array(list(result.effective_sample_size.values()))
    total = result.n_chains * result.n_samples_per_chain

    logger.info(f"--- Convergence Diagnostics ({result.n_chains} chains, "
                f"{result.n_samples_per_chain} samples each after burn-in {result.burn_in}) ---")
    logger.info(f"  R-hat Max: {np.nanmax(rhat):.4f}  Median: {np.nanmedian(rhat):.4f}")
    logger.info(f"  ESS Min: {np.nanmin(ess):.1f}  Median: {np.nanmedian(ess):.1f}  (of {total} draws)")

    n_nan = int(np.sum(~np.isfinite(rhat)))
    if n_nan > 0:
        logger.warning(f"  {n_nan} dimension(s) have NaN/Inf R-hat (stuck chains)")

    if result.converged(threshold):
        logger.info(f"  Converged (max < {threshold:.4f})")
    else:
        logger.warning(f"  Not Converged (max = {np.nanmax(rhat):.4f} >= {threshold:.4f})")


def log_acceptance_summary(chains: Sequence) -> None:
    """
    Log summary statistics for MH acceptance rates.

    Args:
        chains: Sequence of ChainRecord
    """
    if not chains:
        return

    rates = np.array([c.acceptance_rate for c in chains])
    logger.info(f"--- MH Acceptance Rates ({len(rates)} chains) ---")
    logger.info(f"  Mean: {np.mean(rates):.1%}  Median: {np.median(rates):.1%}  "
                f"Min: {np.min(rates):.1%}  Max: {np.max(rates):.1%}")

    # Warn about low acceptance rates
    low_rate_mask = rates < 0.10
    if np.any(low_rate_mask):
        low_chains = [str(i) for i, is_low in enumerate(low_rate_mask) if is_low]
        logger.warning(f"  {len(low_chains)} chain(s) have acceptance rate < 10%: {', '.join(low_chains)}")
