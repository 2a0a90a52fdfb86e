"""Configuration providers.

- ``InMemoryProvider`` / ``MutableInMemoryProvider``: Python mappings
- ``EnvironmentVariablesProvider``: ``os.environ`` or a dotenv file
- ``CommandLineArgumentsProvider``: ``--option value`` arguments
- ``FileProvider``: a JSON or YAML file read once
- ``DirectoryFilesProvider``: one file per key, such as mounted secrets
- ``ReloadingFileProvider``: a JSON or YAML file polled for changes
- ``KeyMappingProvider`` / ``SecretMarkingProvider``: wrappers
"""

from layerconf.providers.cli import CommandLineArgumentsProvider
from layerconf.providers.directory import DirectoryFilesProvider
from layerconf.providers.environment import EnvironmentVariablesProvider
from layerconf.providers.file import FileProvider
from layerconf.providers.files import FileSystem, LocalFileSystem
from layerconf.providers.memory import InMemoryProvider, MutableInMemoryProvider
from layerconf.providers.reloading import (
    MISSING,
    FileSource,
    ReloadingFileProvider,
    reloading_json_provider,
    reloading_yaml_provider,
)
from layerconf.providers.snapshots import (
    EmptySnapshot,
    JSONSnapshot,
    YAMLSnapshot,
    json_parser,
    yaml_parser,
)
from layerconf.providers.wrappers import KeyMappingProvider, SecretMarkingProvider

__all__ = [
    # Static providers
    "InMemoryProvider",
    "EnvironmentVariablesProvider",
    "CommandLineArgumentsProvider",
    "FileProvider",
    "DirectoryFilesProvider",
    # Reloading
    "MutableInMemoryProvider",
    "ReloadingFileProvider",
    "reloading_json_provider",
    "reloading_yaml_provider",
    "FileSource",
    "MISSING",
    # Wrappers
    "KeyMappingProvider",
    "SecretMarkingProvider",
    # Snapshots and parsers
    "JSONSnapshot",
    "YAMLSnapshot",
    "EmptySnapshot",
    "json_parser",
    "yaml_parser",
    # File access
    "FileSystem",
    "LocalFileSystem",
]
