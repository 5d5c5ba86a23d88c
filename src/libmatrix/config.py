"""Worker configuration and validation for the libmatrix event loop."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass
class WorkerConfig:
    backend: str = "numpy"
    debug: bool = False
    # only honoured by the in-process harness; MPI collectives never time out
    timeout_s: Optional[float] = None


_CONFIG: Optional[WorkerConfig] = None

class ConfigError(ValueError):
    pass

def _parse_flag(name: str, value: str) -> bool:
    value = value.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("", "0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be 0 or 1, got {value!r}")

def configure_worker(
    *,
    backend: str = "numpy",
    debug: bool = False,
    timeout_s: Optional[float] = None,
) -> WorkerConfig:
    """Validate worker settings and make them the active configuration."""
    if not backend:
        raise ConfigError("backend cannot be empty")
    if timeout_s is not None and timeout_s <= 0:
        raise ConfigError("timeout_s must be positive if set")

    cfg = WorkerConfig(backend=backend, debug=bool(debug), timeout_s=timeout_s)

    global _CONFIG
    _CONFIG = cfg
    return cfg

#LIBMATRIX_* variables are read once, when the worker starts
def config_from_env(environ: Optional[Mapping[str, str]] = None) -> WorkerConfig:
    env = os.environ if environ is None else environ
    timeout = env.get("LIBMATRIX_TIMEOUT")
    if timeout:
        try:
            timeout_s: Optional[float] = float(timeout)
        except ValueError:
            raise ConfigError(f"LIBMATRIX_TIMEOUT must be a number, got {timeout!r}") from None
    else:
        timeout_s = None
    return configure_worker(
        backend=env.get("LIBMATRIX_BACKEND", "numpy"),
        debug=_parse_flag("LIBMATRIX_DEBUG", env.get("LIBMATRIX_DEBUG", "0")),
        timeout_s=timeout_s,
    )

def get_config() -> Optional[WorkerConfig]:
    return _CONFIG

def clear_config() -> None:
    global _CONFIG
    _CONFIG = None
