import pytest
import tempfile
from pathlib import Path
from casso.config import (
    EPSILON,
    Config,
    default_config,
    _get_config_paths,
    _parse_config_value,
)
from casso.priority import Priority


def test_config_default_values():
    """Test that Config() returns default values without loading from file."""
    config = Config()
    assert config.epsilon == EPSILON
    assert config.max_strength == 1500
    assert config.stay_priority == Priority.LOW
    assert config.edit_priority == Priority.HIGH


def test_config_load_from_file():
    """Test loading config from a specific file."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".toml", delete=False) as f:
        f.write("""
epsilon = 1e-6
max_strength = 1000
stay_priority = "medium"
edit_priority = 900
        """)
        f.flush()
        temp_path = Path(f.name)

    try:
        config = Config.load(temp_path)
        assert config.epsilon == 1e-6
        assert config.max_strength == 1000
        assert config.stay_priority == Priority.MEDIUM
        assert config.edit_priority == Priority(900)
    finally:
        temp_path.unlink()


def test_config_load_no_file():
    """Test that Config.load() returns defaults when no file exists."""
    config = Config.load("/nonexistent/path/config.toml")
    # Should return defaults without error
    assert config.max_strength == 1500


def test_config_paths_order():
    """Test that the working directory is searched before the home directory."""
    paths = _get_config_paths()
    assert paths[0] == Path.cwd() / ".cassorc.toml"
    assert paths[1] == Path.home() / ".cassorc.toml"
    assert paths[2].parts[-2:] == ("casso", "config.toml")


def test_parse_config_value_priorities():
    """Test parsing priorities given by name or strength."""
    assert _parse_config_value("stay_priority", "low") == Priority.LOW
    assert _parse_config_value("edit_priority", "High") == Priority.HIGH
    assert _parse_config_value("edit_priority", 600) == Priority(600)
    assert _parse_config_value("stay_priority", "required").is_required


def test_parse_config_value_bad_priority():
    """Test that unknown priority names are rejected."""
    with pytest.raises(ValueError):
        _parse_config_value("stay_priority", "urgent")


def test_parse_config_value_epsilon():
    """Test that an integer epsilon is converted to a float."""
    result = _parse_config_value("epsilon", 0)
    assert isinstance(result, float)
    assert result == 0.0


def test_parse_config_value_passthrough():
    """Test that non-special values pass through unchanged."""
    assert _parse_config_value("max_strength", 1200) == 1200
    assert _parse_config_value("epsilon", 1e-9) == 1e-9


def test_default_config_caching():
    """Test that default_config() returns the same instance on repeated calls."""
    # Reset the global cache first
    import casso.config

    casso.config._default_config = None

    config1 = default_config()
    config2 = default_config()
    assert config1 is config2


def test_config_with_partial_settings():
    """Test loading a config file with only some settings."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".toml", delete=False) as f:
        f.write("""
stay_priority = "high"
        """)
        f.flush()
        temp_path = Path(f.name)

    try:
        config = Config.load(temp_path)
        # Modified values
        assert config.stay_priority == Priority.HIGH
        # Default values for unspecified settings
        assert config.edit_priority == Priority.HIGH
        assert config.epsilon == EPSILON
    finally:
        temp_path.unlink()


def test_config_invalid_key_ignored():
    """Test that invalid config keys are ignored gracefully."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".toml", delete=False) as f:
        f.write("""
max_strength = 1400
invalid_key = "should_be_ignored"
another_invalid = 42
        """)
        f.flush()
        temp_path = Path(f.name)

    try:
        config = Config.load(temp_path)
        assert config.max_strength == 1400
        assert not hasattr(config, "invalid_key")
        assert not hasattr(config, "another_invalid")
    finally:
        temp_path.unlink()
