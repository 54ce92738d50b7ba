"""Tests for configuration loader."""

from pathlib import Path

import pytest
import yaml

from op_env_sync.config_loader import (
    Config,
    ConfigError,
    load_config,
    load_config_from_env,
    merge_config_dicts,
)
from op_env_sync.conflict import ConflictStrategy, SyncDirection
from op_env_sync.remote_store import RemoteRef


def test_defaults():
    """Test defaults for everything but the vault."""
    config = Config({"vault": "Personal"})

    assert config.item == "env-secrets"
    assert config.section is None
    assert config.env_file == ".env"
    assert config.strategy == ConflictStrategy.INTERACTIVE
    assert not config.dry_run
    assert config.backup_enabled
    assert config.op_binary == "op"
    assert config.max_retries == 3
    assert config.retry_delay == 1.0
    assert config.backoff_factor == 2.0
    assert config.max_delay == 30.0
    assert config.create_missing_item
    assert config.log_file_path is None
    assert config.log_level == "INFO"


def test_paths_default_next_to_env_file():
    """Test that state and backups live beside the env file."""
    config = Config({"vault": "v", "env_file": "/srv/app/.env"})

    assert Path(config.state_file) == Path("/srv/app/.op-env-sync.state")
    assert Path(config.backup_directory) == Path("/srv/app/.op-env-sync/backups")


def test_remote_ref():
    """Test building the remote reference."""
    config = Config({"vault": "Work", "item": "api", "section": "prod"})
    assert config.remote_ref == RemoteRef("Work", "api", "prod")


def test_missing_vault():
    """Test that the vault is required."""
    with pytest.raises(ConfigError, match="vault"):
        Config({"item": "x"})


def test_vault_must_be_string():
    """Test that a non-string vault is rejected."""
    with pytest.raises(ConfigError, match="must be a string"):
        Config({"vault": 42})


def test_invalid_strategy():
    """Test that unknown strategies are rejected."""
    with pytest.raises(ConfigError, match="Invalid strategy: latest"):
        Config({"vault": "v", "strategy": "latest"})


def test_negative_retries():
    """Test that negative retry counts are rejected."""
    with pytest.raises(ConfigError, match="max_retries"):
        Config({"vault": "v", "remote": {"max_retries": -1}})


@pytest.mark.parametrize(
    "section,values",
    [
        ("remote", {"max_retries": "many"}),
        ("remote", {"timeout_seconds": "soon"}),
        ("remote", {"backoff_factor": [2]}),
        ("logging", {"max_size_mb": "big"}),
    ],
)
def test_non_numeric_settings(section, values):
    """Test that non-numeric values are reported as config errors."""
    with pytest.raises(ConfigError, match="Invalid numeric setting"):
        Config({"vault": "v", section: values})


def test_section_must_be_mapping():
    """Test that a scalar where a section belongs is rejected."""
    with pytest.raises(ConfigError, match="'remote' must be a mapping"):
        Config({"vault": "v", "remote": "fast"})


def test_log_level_must_be_string():
    """Test that a non-string log level is rejected."""
    with pytest.raises(ConfigError, match="log level"):
        Config({"vault": "v", "logging": {"level": 10}})


def test_direction():
    """Test the direction setting and its default."""
    assert Config({"vault": "v"}).direction == SyncDirection.BOTH
    assert Config({"vault": "v", "direction": "pull"}).direction == SyncDirection.PULL


def test_invalid_direction():
    """Test that unknown directions are rejected."""
    with pytest.raises(ConfigError, match="Invalid direction: sideways"):
        Config({"vault": "v", "direction": "sideways"})


def test_invalid_log_level():
    """Test that unknown log levels are rejected."""
    with pytest.raises(ConfigError, match="log level"):
        Config({"vault": "v", "logging": {"level": "LOUD"}})


def test_config_is_not_shared():
    """Test that mutating the source dict does not change the config."""
    source = {"vault": "v", "remote": {"max_retries": 1}}
    config = Config(source)
    source["remote"]["max_retries"] = 9

    assert config.max_retries == 1
    config.to_dict()["vault"] = "other"
    assert config.vault == "v"


def test_merge_skips_unset_sections():
    """Test that a section of unset flags does not reach the merged config."""
    merged = merge_config_dicts(
        {"vault": "v"},
        {"item": None, "backup": {"enabled": None}, "logging": {"level": None, "file_path": None}},
    )

    assert merged == {"vault": "v"}
    config = Config(merged)
    assert config.log_level == "INFO"
    assert config.backup_enabled is True


def test_merge_adds_new_section():
    """Test that set values create a section the base does not have."""
    merged = merge_config_dicts(
        {"vault": "v"}, {"logging": {"level": "DEBUG", "file_path": None}}
    )
    assert merged == {"vault": "v", "logging": {"level": "DEBUG"}}


def test_merge_does_not_mutate_inputs():
    """Test that both inputs are left as they were."""
    base = {"vault": "v", "remote": {"max_retries": 1}}
    overrides = {"strategy": "theirs", "remote": {"timeout_seconds": 5}}

    merged = merge_config_dicts(base, overrides)

    assert merged["remote"] == {"max_retries": 1, "timeout_seconds": 5}
    assert base == {"vault": "v", "remote": {"max_retries": 1}}
    assert Config(merged).strategy == ConflictStrategy.THEIRS


def test_null_values_use_defaults():
    """Test that explicit nulls in the file behave like missing keys."""
    config = Config(
        {
            "vault": "v",
            "backup": {"enabled": None},
            "remote": {"max_retries": None, "retry_jitter": None},
            "logging": None,
        }
    )

    assert config.backup_enabled is True
    assert config.max_retries == 3
    assert config.retry_jitter is True
    assert config.log_level == "INFO"


def test_merge_config_dicts_nested():
    """Test merging nested sections key by key."""
    merged = merge_config_dicts(
        {"backup": {"enabled": True, "directory": "/b"}},
        {"backup": {"enabled": False, "directory": None}},
    )
    assert merged == {"backup": {"enabled": False, "directory": "/b"}}


def test_load_config(sample_config):
    """Test loading a YAML file."""
    config = load_config(str(sample_config))

    assert config.vault == "Personal"
    assert config.item == "app-secrets"
    assert config.section == "production"
    assert config.strategy == ConflictStrategy.THEIRS
    assert not config.backup_enabled
    assert config.op_binary == "/usr/local/bin/op"
    assert config.remote_timeout == 10.0
    assert config.max_retries == 5
    assert config.log_level == "DEBUG"
    assert config.log_file_path == "sync.log"


def test_load_config_missing_file(tmp_path):
    """Test that a missing file raises ConfigError."""
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "missing.yaml"))


def test_load_config_invalid_yaml(tmp_path):
    """Test that broken YAML raises ConfigError."""
    path = tmp_path / "broken.yaml"
    path.write_text("vault: [unclosed\n")

    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(str(path))


def test_load_config_not_a_mapping(tmp_path):
    """Test that a YAML list is rejected."""
    path = tmp_path / "list.yaml"
    path.write_text(yaml.safe_dump(["vault", "item"]))

    with pytest.raises(ConfigError, match="mapping"):
        load_config(str(path))


def test_load_config_from_env(sample_config, monkeypatch):
    """Test loading the file named by OP_ENV_SYNC_CONFIG."""
    monkeypatch.setenv("OP_ENV_SYNC_CONFIG", str(sample_config))
    assert load_config_from_env().item == "app-secrets"


def test_load_config_from_env_unset(monkeypatch):
    """Test that an unset variable raises ConfigError."""
    monkeypatch.delenv("OP_ENV_SYNC_CONFIG", raising=False)
    with pytest.raises(ConfigError, match="OP_ENV_SYNC_CONFIG"):
        load_config_from_env()
