# Iterations per compiled chunk; early-stop checks happen between chunks
DEFAULT_CHUNK_SIZE = 100

REQUIRED_CONFIG_KEYS = (
    'n_iterations',
    'initial_state',
    'initial_scale',
    'adapt',
    'target_accept_rate',
    'rng_seed',
)


def clean_config(sampler_config):
    """
    Returns a copy of the config with defaults set for optional keys.
    All config keys use lowercase with underscores. Required keys are left
    alone; validate_sampler_config reports them if missing.
    """
    sampler_config = dict(sampler_config)

    sampler_config.setdefault('adaptation_exponent', 0.7)
    sampler_config.setdefault('cov_nugget', 1e-6)
    sampler_config.setdefault('chunk_size', DEFAULT_CHUNK_SIZE)
    sampler_config.setdefault('use_double', True)

    return sampler_config
