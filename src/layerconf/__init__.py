"""layerconf: layered configuration with hot reloading.

Reads configuration from a prioritized chain of providers (command line,
environment, JSON/YAML files, in-memory maps) through one reader, with
get, fetch and watch access patterns.

Example usage:
    from layerconf import (
        ConfigReader,
        ConfigType,
        EnvironmentVariablesProvider,
        reloading_yaml_provider,
    )

    file_provider = await reloading_yaml_provider("config.yaml", poll_interval=5.0)
    async with file_provider:
        reader = ConfigReader([EnvironmentVariablesProvider(), file_provider])
        timeout = reader.get("http.timeout", ConfigType.INT, default=30)
"""

__version__ = "0.1.0"

from layerconf.access import (
    AccessEvent,
    AccessKind,
    AccessLogger,
    AccessReporter,
    BroadcastingAccessReporter,
    FileAccessLogger,
)
from layerconf.errors import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    MissingRequiredValueError,
    ValueNotConvertibleError,
)
from layerconf.key import ConfigKey
from layerconf.logging import get_logger, setup_logging
from layerconf.multi import MultiProvider, MultiSnapshot, ProviderResult, Resolution
from layerconf.provider import ConfigProvider, ConfigSnapshot, LookupResult, Result
from layerconf.providers import (
    CommandLineArgumentsProvider,
    DirectoryFilesProvider,
    EnvironmentVariablesProvider,
    FileProvider,
    InMemoryProvider,
    KeyMappingProvider,
    MutableInMemoryProvider,
    ReloadingFileProvider,
    SecretMarkingProvider,
    reloading_json_provider,
    reloading_yaml_provider,
)
from layerconf.reader import ConfigReader, ConfigSnapshotReader
from layerconf.schema import LoggingConfig, ReloadingFileSettings, load_logging_config
from layerconf.updates import UpdateStream
from layerconf.values import ConfigType, ConfigValue

__all__ = [
    # Main API
    "ConfigReader",
    "ConfigSnapshotReader",
    "ConfigKey",
    "ConfigType",
    "ConfigValue",
    # Providers
    "ConfigProvider",
    "ConfigSnapshot",
    "LookupResult",
    "Result",
    "UpdateStream",
    "MultiProvider",
    "MultiSnapshot",
    "ProviderResult",
    "Resolution",
    "InMemoryProvider",
    "MutableInMemoryProvider",
    "EnvironmentVariablesProvider",
    "CommandLineArgumentsProvider",
    "FileProvider",
    "DirectoryFilesProvider",
    "ReloadingFileProvider",
    "reloading_json_provider",
    "reloading_yaml_provider",
    "KeyMappingProvider",
    "SecretMarkingProvider",
    # Access reporting
    "AccessEvent",
    "AccessKind",
    "AccessReporter",
    "AccessLogger",
    "BroadcastingAccessReporter",
    "FileAccessLogger",
    # Errors
    "ConfigError",
    "ValueNotConvertibleError",
    "MissingRequiredValueError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    # Settings and logging
    "LoggingConfig",
    "ReloadingFileSettings",
    "load_logging_config",
    "setup_logging",
    "get_logger",
]
