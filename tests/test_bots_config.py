"""Tests for bots.config module."""

import os
from unittest import mock

import pytest

from bots.config import EnvironmentConfig, env_bool, env_int


class TestEnvBool:
    """Test env_bool function."""

    def test_env_bool_default_false(self):
        """Should return default False when env var not set."""
        with mock.patch.dict(os.environ, {}, clear=True):
            assert env_bool("TEST_VAR") is False

    def test_env_bool_default_true(self):
        """Should return custom default when env var not set."""
        with mock.patch.dict(os.environ, {}, clear=True):
            assert env_bool("TEST_VAR", default=True) is True

    def test_env_bool_true_values(self):
        """Should return True for valid true values."""
        for value in ["1", "true", "yes", "on", "TRUE", " True ", " 1 "]:
            with mock.patch.dict(os.environ, {"TEST_VAR": value}, clear=True):
                assert env_bool("TEST_VAR") is True, f"Failed for value: {value}"

    def test_env_bool_false_values(self):
        """Should return False for valid false values."""
        for value in ["0", "false", "no", "off", "OFF", " False "]:
            with mock.patch.dict(os.environ, {"TEST_VAR": value}, clear=True):
                assert env_bool("TEST_VAR", default=True) is False, (
                    f"Failed for value: {value}"
                )

    def test_env_bool_invalid_values(self):
        """Should return default for invalid values."""
        for value in ["invalid", "maybe", "2", "", "  "]:
            with mock.patch.dict(os.environ, {"TEST_VAR": value}, clear=True):
                assert env_bool("TEST_VAR", default=True) is True
                assert env_bool("TEST_VAR", default=False) is False


class TestEnvInt:
    """Test env_int function."""

    def test_env_int_default_none(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            assert env_int("TEST_VAR") is None

    def test_env_int_empty_string(self):
        with mock.patch.dict(os.environ, {"TEST_VAR": ""}, clear=True):
            assert env_int("TEST_VAR", default=42) == 42

    def test_env_int_valid_values(self):
        for env_value, expected in [("123", 123), ("0", 0), ("-456", -456)]:
            with mock.patch.dict(os.environ, {"TEST_VAR": env_value}, clear=True):
                assert env_int("TEST_VAR") == expected

    def test_env_int_invalid_values(self):
        for value in ["not_a_number", "12.34", "abc123"]:
            with mock.patch.dict(os.environ, {"TEST_VAR": value}, clear=True):
                assert env_int("TEST_VAR", default=42) == 42


class TestEnvironmentConfig:
    """Test EnvironmentConfig.load."""

    def test_load_requires_token_and_table(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError) as excinfo:
                EnvironmentConfig.load()
        assert "DISCORD_TOKEN" in str(excinfo.value)
        assert "GIVEAWAY_TABLE_NAME" in str(excinfo.value)

    def test_load_defaults(self):
        env = {"DISCORD_TOKEN": "tok", "GIVEAWAY_TABLE_NAME": "giveaways"}
        with mock.patch.dict(os.environ, env, clear=True):
            config = EnvironmentConfig.load()

        assert config.discord_token == "tok"
        assert config.giveaway_table_name == "giveaways"
        assert config.aws_region == "us-east-1"
        assert config.admin_role_id is None
        assert config.guild_id is None
        assert config.sweep_seconds == 60
        assert config.winner_channels is True

    def test_load_optional_values(self):
        env = {
            "DISCORD_TOKEN": "tok",
            "GIVEAWAY_TABLE_NAME": "giveaways",
            "AWS_REGION": "eu-west-1",
            "GIVEAWAY_ADMIN_ROLE_ID": "555",
            "GIVEAWAY_GUILD_ID": "777",
            "GIVEAWAY_SWEEP_SECONDS": "15",
            "GIVEAWAY_WINNER_CHANNELS": "off",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = EnvironmentConfig.load()

        assert config.aws_region == "eu-west-1"
        assert config.admin_role_id == 555
        assert config.guild_id == 777
        assert config.sweep_seconds == 15
        assert config.winner_channels is False

    def test_config_is_frozen(self):
        config = EnvironmentConfig(discord_token="t", giveaway_table_name="n")
        with pytest.raises(AttributeError):
            config.discord_token = "other"
