"""
Chain Runner Tests

Tests run_chain() and run_chains() end to end on small problems:
- Sample count, read-only records, determinism under a fixed seed
- Fixed (non-adaptive) proposals leave the proposal state untouched
- Acceptance counting, invalid log-densities, bounded support
- Cooperative early stopping between chunks
- Acceptance rate tracking its target under adaptation

Run with: pytest tests/test_chain.py -v
"""

import numpy as np
import jax.numpy as jnp
import pytest

from adaptmc import run_chain, run_chains, ChainRecord
from adaptmc.mcmc.compile import get_compiled_kernel_cache, clear_compiled_kernel_cache
from adaptmc import test_targets


def std_normal(theta):
    return -0.5 * jnp.sum(theta ** 2)


def count_moves(initial_state, samples):
    """Number of iterations whose recorded state differs from the previous one."""
    previous = np.vstack([initial_state[np.newaxis, :], samples[:-1]])
    return int(np.sum(np.any(samples != previous, axis=1)))


# ============================================================================
# SINGLE CHAIN
# ============================================================================

class TestRunChain:
    """Basic properties of a single-chain run."""

    def test_returns_one_sample_per_iteration(self, base_config):
        record = run_chain(std_normal, base_config)
        assert isinstance(record, ChainRecord)
        assert record.samples.shape == (500, 2)
        assert record.log_densities.shape == (500,)
        assert record.n_samples == 500
        assert record.dim == 2
        assert not record.stopped_early

    def test_chunk_size_not_dividing_iterations(self, base_config):
        base_config['n_iterations'] = 250
        base_config['chunk_size'] = 100
        record = run_chain(std_normal, base_config)
        assert record.n_samples == 250

    def test_record_is_read_only(self, base_config):
        record = run_chain(std_normal, base_config)
        with pytest.raises(ValueError):
            record.samples[0, 0] = 1.0
        with pytest.raises(ValueError):
            record.log_densities[0] = 1.0
        with pytest.raises(AttributeError):
            record.n_accepted = 0

    def test_same_seed_same_chain(self, base_config):
        a = run_chain(std_normal, base_config)
        b = run_chain(std_normal, base_config)
        np.testing.assert_array_equal(a.samples, b.samples)
        np.testing.assert_array_equal(a.log_densities, b.log_densities)
        assert a.n_accepted == b.n_accepted

    def test_different_seed_different_chain(self, base_config):
        a = run_chain(std_normal, base_config)
        base_config['rng_seed'] = 43
        b = run_chain(std_normal, base_config)
        assert not np.array_equal(a.samples, b.samples)

    def test_acceptance_count_matches_moves(self, base_config):
        record = run_chain(std_normal, base_config)
        assert record.n_accepted == count_moves(base_config['initial_state'], record.samples)
        assert record.acceptance_rate == pytest.approx(record.n_accepted / record.n_samples)
        assert 0.0 <= record.acceptance_rate <= 1.0

    def test_log_densities_match_samples(self, base_config):
        record = run_chain(std_normal, base_config)
        expected = -0.5 * np.sum(record.samples ** 2, axis=1)
        np.testing.assert_allclose(record.log_densities, expected, rtol=1e-10, atol=1e-12)

    def test_kernel_cache_reused(self, base_config):
        clear_compiled_kernel_cache()
        run_chain(std_normal, base_config)
        n_cached = len(get_compiled_kernel_cache())
        assert n_cached >= 1
        base_config['rng_seed'] = 7
        run_chain(std_normal, base_config)
        assert len(get_compiled_kernel_cache()) == n_cached


class TestProposalState:
    """Final proposal state reported in the record."""

    def test_fixed_proposal_never_changes(self, base_config):
        base_config['adapt'] = False
        record = run_chain(std_normal, base_config)
        ps = record.proposal_state
        np.testing.assert_array_equal(ps.running_mean, base_config['initial_state'])
        np.testing.assert_array_equal(ps.running_cov, base_config['initial_scale'])
        assert float(ps.log_scale) == 0.0
        assert int(ps.iteration) == 0

    def test_adaptive_proposal_updated_every_iteration(self, base_config):
        record = run_chain(std_normal, base_config)
        ps = record.proposal_state
        assert int(ps.iteration) == base_config['n_iterations']
        assert np.array_equal(ps.running_cov, ps.running_cov.T)
        assert np.all(np.linalg.eigvalsh(ps.running_cov) > -1e-12)

    def test_proposal_state_is_host_and_read_only(self, base_config):
        record = run_chain(std_normal, base_config)
        assert isinstance(record.proposal_state.running_cov, np.ndarray)
        with pytest.raises(ValueError):
            record.proposal_state.running_mean[0] = 0.0


class TestInvalidDensities:
    """NaN and -inf log-densities are rejections, never crashes."""

    def test_nan_everywhere_never_accepts(self, base_config):
        record = run_chain(test_targets.nan_log_density, base_config)
        assert record.n_accepted == 0
        assert record.acceptance_rate == 0.0
        assert np.all(record.samples == base_config['initial_state'])
        assert np.all(record.log_densities == -np.inf)

    def test_bounded_support_respected(self, base_config):
        base_config['initial_state'] = np.array([1.0])
        base_config['initial_scale'] = np.eye(1)
        base_config['n_iterations'] = 2000
        record = run_chain(test_targets.half_normal_log_density, base_config)
        assert np.all(record.samples > 0.0)
        assert record.n_accepted > 0

    def test_start_outside_support_moves_in(self, base_config):
        base_config['initial_state'] = np.array([-0.05])
        base_config['initial_scale'] = np.eye(1)
        base_config['n_iterations'] = 2000
        record = run_chain(test_targets.half_normal_log_density, base_config)
        assert record.log_densities[0] == -np.inf or record.samples[0, 0] > 0.0
        assert record.samples[-1, 0] > 0.0


class TestEarlyStop:
    """Cooperative termination via should_stop."""

    def test_stop_after_first_chunk(self, base_config):
        base_config['chunk_size'] = 50
        record = run_chain(std_normal, base_config, should_stop=lambda n, acc: True)
        assert record.n_samples == 50
        assert record.stopped_early
        assert record.n_iterations_requested == 500
        assert int(record.proposal_state.iteration) == 50
        assert record.acceptance_rate == pytest.approx(record.n_accepted / 50)

    def test_hook_called_between_chunks_only(self, base_config):
        base_config['chunk_size'] = 100
        calls = []

        def hook(n_completed, n_accepted):
            calls.append((n_completed, int(n_accepted)))
            return False

        record = run_chain(std_normal, base_config, should_stop=hook)
        assert [c[0] for c in calls] == [100, 200, 300, 400]
        assert all(0 <= acc <= n for n, acc in calls)
        assert record.n_samples == 500

    def test_stop_on_acceptance_count(self, base_config):
        base_config['chunk_size'] = 25
        record = run_chain(std_normal, base_config, should_stop=lambda n, acc: acc >= 20)
        assert record.n_samples % 25 == 0
        assert record.n_accepted >= 20 or record.n_samples == 500

    def test_stopped_prefix_matches_full_run(self, base_config):
        base_config['chunk_size'] = 100
        full = run_chain(std_normal, base_config)
        stopped = run_chain(std_normal, base_config, should_stop=lambda n, acc: n >= 200)
        assert stopped.n_samples == 200
        np.testing.assert_array_equal(stopped.samples, full.samples[:200])


class TestAcceptanceTracking:
    """Adaptation drives the empirical acceptance rate towards its target."""

    @pytest.mark.parametrize("target", [0.2, 0.4])
    def test_acceptance_near_target(self, base_config, target):
        base_config['n_iterations'] = 20000
        base_config['target_accept_rate'] = target
        base_config['chunk_size'] = 1000
        record = run_chain(std_normal, base_config)
        assert abs(record.acceptance_rate - target) < 0.1

    def test_fixed_small_scale_ignores_target(self, base_config):
        base_config['n_iterations'] = 5000
        base_config['adapt'] = False
        base_config['initial_scale'] = 1e-4 * np.eye(2)
        base_config['target_accept_rate'] = 0.2
        record = run_chain(std_normal, base_config)
        assert record.acceptance_rate > 0.9


# ============================================================================
# MULTIPLE CHAINS
# ============================================================================

class TestRunChains:
    """Independent chains in one vectorized run."""

    def test_one_record_per_initial_state(self, base_config):
        states = np.array([[0.0, 1.0], [2.0, 2.0], [-1.0, 0.5]])
        records = run_chains(std_normal, base_config, initial_states=states)
        assert len(records) == 3
        for record, state in zip(records, states):
            assert record.samples.shape == (500, 2)
            assert record.n_accepted == count_moves(state, record.samples)

    def test_chains_are_independent(self, base_config):
        states = np.array([[0.0, 1.0], [0.0, 1.0]])
        a, b = run_chains(std_normal, base_config, initial_states=states)
        assert not np.array_equal(a.samples, b.samples)

    def test_deterministic(self, base_config):
        states = np.array([[0.0, 1.0], [2.0, 2.0]])
        first = run_chains(std_normal, base_config, initial_states=states)
        second = run_chains(std_normal, base_config, initial_states=states)
        for a, b in zip(first, second):
            np.testing.assert_array_equal(a.samples, b.samples)

    def test_registered_initial_states(self, register_test_targets, base_config):
        base_config['initial_scale'] = 0.1 * np.eye(3)
        records = run_chains('test_standard_normal_3d', base_config, n_chains=4)
        assert len(records) == 4
        assert all(r.dim == 3 for r in records)

    def test_registered_initial_states_dimension_checked(self, register_test_targets, base_config):
        states = np.zeros((2, 3))
        base_config['initial_scale'] = 0.1 * np.eye(3)
        records = run_chains('test_standard_normal_3d', base_config, initial_states=states)
        assert len(records) == 2

    def test_early_stop_sees_all_chains(self, base_config):
        states = np.array([[0.0, 1.0], [2.0, 2.0]])
        base_config['chunk_size'] = 100
        seen = []

        def hook(n_completed, n_accepted):
            seen.append(np.asarray(n_accepted).shape)
            return n_completed >= 300

        records = run_chains(std_normal, base_config, initial_states=states, should_stop=hook)
        assert seen[0] == (2,)
        assert all(r.n_samples == 300 for r in records)
        assert all(r.stopped_early for r in records)

    def test_fixed_proposal_in_every_chain(self, base_config):
        base_config['adapt'] = False
        states = np.array([[0.0, 1.0], [2.0, 2.0]])
        records = run_chains(std_normal, base_config, initial_states=states)
        for record, state in zip(records, states):
            np.testing.assert_array_equal(record.proposal_state.running_mean, state)
            assert int(record.proposal_state.iteration) == 0


# ============================================================================
# SINGLE PRECISION AND KERNEL CACHE
# ============================================================================

class TestSinglePrecision:
    """Adaptive runs in float32 on a nearly singular target."""

    def test_near_degenerate_target_keeps_moving(self, base_config, restore_x64):
        rho = 1.0 - 1e-7
        precision = np.linalg.inv(1e4 * np.array([[1.0, rho], [rho, 1.0]]))

        def ridge(theta):
            return -0.5 * theta @ jnp.asarray(precision, dtype=theta.dtype) @ theta

        base_config['use_double'] = False
        base_config['n_iterations'] = 20000
        base_config['chunk_size'] = 1000
        base_config['initial_state'] = np.array([0.0, 0.0])
        base_config['initial_scale'] = np.eye(2)
        record = run_chain(ridge, base_config)

        assert record.samples.dtype == np.float32
        assert np.all(np.isfinite(record.samples))
        assert np.all(np.isfinite(record.proposal_state.running_cov))
        assert record.n_accepted > 0
        tail = record.samples[-5000:]
        assert count_moves(record.samples[-5001], tail) > 100


class TestKernelCacheBound:

    def test_oldest_kernel_evicted(self, base_config, monkeypatch):
        from adaptmc.mcmc import compile as compile_module

        monkeypatch.setattr(compile_module, 'MAX_CACHED_KERNELS', 2)
        clear_compiled_kernel_cache()
        base_config['n_iterations'] = 50
        for shift in (1.0, 2.0, 3.0):
            run_chain(lambda theta, s=shift: -0.5 * jnp.sum((theta - s) ** 2), base_config)
            assert len(get_compiled_kernel_cache()) <= 2
        clear_compiled_kernel_cache()
