"""Worker configuration parsing and validation."""

import pytest

from libmatrix.config import ConfigError, clear_config, config_from_env, configure_worker, get_config


@pytest.fixture(autouse=True)
def _reset_config():
    clear_config()
    yield
    clear_config()


def test_defaults_from_empty_env():
    cfg = config_from_env({})
    assert cfg.backend == "numpy"
    assert cfg.debug is False
    assert cfg.timeout_s is None
    assert get_config() is cfg


def test_env_values():
    cfg = config_from_env({"LIBMATRIX_DEBUG": "1", "LIBMATRIX_TIMEOUT": "2.5", "LIBMATRIX_BACKEND": "numpy"})
    assert cfg.debug is True
    assert cfg.timeout_s == 2.5


def test_rejects_bad_values():
    with pytest.raises(ConfigError):
        config_from_env({"LIBMATRIX_DEBUG": "maybe"})
    with pytest.raises(ConfigError):
        config_from_env({"LIBMATRIX_TIMEOUT": "soon"})
    with pytest.raises(ConfigError):
        configure_worker(timeout_s=0)
    with pytest.raises(ConfigError):
        configure_worker(backend="")
    assert get_config() is None
