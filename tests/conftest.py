"""Pytest configuration and fixtures."""

import pytest

from op_env_sync.config_loader import Config
from op_env_sync.remote_store import InMemoryRemoteStore, RemoteRef

VAULT = "Personal"
ITEM = "env-secrets"


@pytest.fixture
def remote_ref():
    """Reference to the remote item used by the sync tests."""
    return RemoteRef(vault=VAULT, item=ITEM)


@pytest.fixture
def env_path(tmp_path):
    """Path of the local env file (not created)."""
    return tmp_path / ".env"


@pytest.fixture
def make_config(env_path):
    """Build a Config pointing at the temporary env file."""

    def _make(**overrides):
        config_dict = {
            "vault": VAULT,
            "item": ITEM,
            "env_file": str(env_path),
            "strategy": "ours",
        }
        config_dict.update(overrides)
        return Config(config_dict)

    return _make


@pytest.fixture
def store(remote_ref):
    """In-memory remote store with an empty item in a known vault."""
    return InMemoryRemoteStore(items={remote_ref: {}})


@pytest.fixture
def sample_config(tmp_path):
    """Create a sample config file for testing."""
    config_path = tmp_path / "op-env-sync.yaml"
    config_content = """
vault: Personal
item: app-secrets
section: production
env_file: /tmp/project/.env
strategy: theirs

backup:
  enabled: false

remote:
  op_binary: /usr/local/bin/op
  timeout_seconds: 10
  max_retries: 5

logging:
  level: DEBUG
  file_path: sync.log
"""
    config_path.write_text(config_content)
    return config_path
