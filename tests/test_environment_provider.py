"""Tests for the environment variable provider."""

from __future__ import annotations

import base64
from pathlib import Path

import pytest

from layerconf.errors import ConfigFileNotFoundError, ValueNotConvertibleError
from layerconf.providers.environment import EnvironmentVariablesProvider
from layerconf.values import ConfigType, ConfigValue
from tests.utils import key


def lookup(provider: EnvironmentVariablesProvider, name: str, type: ConfigType):
    value = provider.value(key(name), type).value
    return None if value is None else value.content


class TestEnvironmentVariablesProvider:
    """Test reading and parsing environment variables."""

    def test_key_encoding(self) -> None:
        """Test that camelCase keys map to upper snake case variables."""
        provider = EnvironmentVariablesProvider({"HTTP_SERVER_TIMEOUT": "15"})
        result = provider.value(key("http.serverTimeout"), ConfigType.INT)
        assert result.encoded_key == "HTTP_SERVER_TIMEOUT"
        assert result.value == ConfigValue.of(15)

    def test_reads_os_environ_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LAYERCONF_TEST_VALUE", "hello")
        provider = EnvironmentVariablesProvider()
        assert lookup(provider, "layerconf.test.value", ConfigType.STRING) == "hello"

    def test_environ_copied_at_creation(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that later environment changes are not seen."""
        monkeypatch.setenv("LAYERCONF_LATE", "before")
        provider = EnvironmentVariablesProvider()
        monkeypatch.setenv("LAYERCONF_LATE", "after")
        assert lookup(provider, "layerconf.late", ConfigType.STRING) == "before"

    def test_scalar_types(self) -> None:
        provider = EnvironmentVariablesProvider({
            "PORT": "8080",
            "RATIO": "0.5",
            "DEBUG": "yes",
            "TOKEN": base64.b64encode(b"\x01\x02").decode(),
        })
        assert lookup(provider, "port", ConfigType.INT) == 8080
        assert lookup(provider, "ratio", ConfigType.DOUBLE) == 0.5
        assert lookup(provider, "debug", ConfigType.BOOL) is True
        assert lookup(provider, "token", ConfigType.BYTES) == b"\x01\x02"

    def test_arrays_split_and_trimmed(self) -> None:
        """Test splitting on the separator, trimming, and dropping empty items."""
        provider = EnvironmentVariablesProvider({"HOSTS": "a, b ,,c", "PORTS": "1;2"}, array_separator=",")
        assert lookup(provider, "hosts", ConfigType.STRING_ARRAY) == ("a", "b", "c")
        custom = EnvironmentVariablesProvider({"PORTS": "1;2"}, array_separator=";")
        assert lookup(custom, "ports", ConfigType.INT_ARRAY) == (1, 2)

    def test_unparseable_value_raises(self) -> None:
        provider = EnvironmentVariablesProvider({"PORT": "http"})
        with pytest.raises(ValueNotConvertibleError) as exc_info:
            provider.value(key("port"), ConfigType.INT)
        assert exc_info.value.name == "PORT"

    def test_absent_is_none(self) -> None:
        provider = EnvironmentVariablesProvider({})
        assert provider.value(key("port"), ConfigType.INT).value is None

    def test_secret_names(self) -> None:
        provider = EnvironmentVariablesProvider({"API_TOKEN": "abc"}, secret_names={"API_TOKEN"})
        value = provider.value(key("api.token"), ConfigType.STRING).value
        assert value.is_secret
        assert "abc" not in repr(value)

    def test_environment_value(self) -> None:
        provider = EnvironmentVariablesProvider({"RAW": "x"})
        assert provider.environment_value("RAW") == "x"
        assert provider.environment_value("OTHER") is None


class TestEnvFile:
    """Test loading variables from a dotenv file."""

    def test_from_env_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text('# comment\nDB_HOST=localhost\nDB_PORT=5432\nQUOTED="a b"\nEMPTY_DECL\n')
        provider = EnvironmentVariablesProvider.from_env_file(env_file)
        assert provider.provider_name == "EnvironmentVariablesProvider[.env]"
        assert lookup(provider, "db.host", ConfigType.STRING) == "localhost"
        assert lookup(provider, "db.port", ConfigType.INT) == 5432
        assert lookup(provider, "quoted", ConfigType.STRING) == "a b"
        assert lookup(provider, "emptyDecl", ConfigType.STRING) is None

    def test_missing_env_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigFileNotFoundError):
            EnvironmentVariablesProvider.from_env_file(tmp_path / "missing.env")

    def test_missing_env_file_allowed(self, tmp_path: Path) -> None:
        provider = EnvironmentVariablesProvider.from_env_file(tmp_path / "missing.env", allow_missing=True)
        assert provider.value(key("anything"), ConfigType.STRING).value is None
