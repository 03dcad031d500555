"""
JAX Environment Defaults - MUST be imported before any JAX imports.

Sets process-level environment variables that JAX only reads at import time:
- Persistent compilation cache, so chunk kernels survive across sessions
- XLA C++ log verbosity
"""
import os
from pathlib import Path

# Quiet the CUDA/XLA C++ startup chatter; does not hide Python warnings
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")

# Chunk kernels are small but compiled once per target, so cache them on disk
_JAX_CACHE_DIR = Path.home() / ".cache" / "jax" / "adaptmc_cache"
_JAX_CACHE_DIR.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("JAX_COMPILATION_CACHE_DIR", str(_JAX_CACHE_DIR))
os.environ.setdefault("JAX_PERSISTENT_CACHE_MIN_COMPILE_TIME_SECS", "1.0")
