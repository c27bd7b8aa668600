import os
import tomllib
from pathlib import Path

from .errors import ConfigurationError

CONFIG_ENV = 'WATCHES_CONFIG'

SETTING_ROOTS = 'roots'
SETTING_EXCLUDE = 'compare.exclude'
SETTING_CHUNK_SIZE = 'compare.chunk_size'
SETTING_CONCURRENCY = 'compare.concurrency'
SETTING_PATH_CONCURRENCY = 'compare.path_concurrency'
SETTING_FAIL_ON_MISMATCH = 'compare.fail_on_mismatch'
SETTING_REPORT = 'compare.report'
SETTING_LOG_PATH = 'logging.path'
SETTING_LOG_LEVEL = 'logging.level'


class CompareSettings:
    """Read-only view of a TOML configuration file.

    Example file:

        roots = ["/backup/a", "/backup/b"]

        [compare]
        exclude = ["*.tmp", ".cache"]
        chunk_size = 16777216
        fail_on_mismatch = true

        [logging]
        level = "WARNING"

    Without a file every get() returns its default.
    """

    def __init__(self, config_path: Path | None = None):
        """Load settings from config_path.

        Raises:
            ConfigurationError: The file cannot be read or is not valid TOML
        """
        self._config_path = config_path
        self._settings = {}

        if config_path is not None:
            try:
                with open(config_path, 'rb') as f:
                    self._settings = tomllib.load(f)
            except OSError as e:
                raise ConfigurationError(f"cannot read config file {config_path}: {e.strerror or e}") from e
            except tomllib.TOMLDecodeError as e:
                raise ConfigurationError(f"invalid config file {config_path}: {e}") from e

    @classmethod
    def load(cls, config_path: str | os.PathLike | None = None) -> 'CompareSettings':
        """Load from config_path, falling back to $WATCHES_CONFIG, then to no file."""
        if config_path is None:
            config_path = os.environ.get(CONFIG_ENV) or None
        return cls(Path(config_path) if config_path is not None else None)

    @property
    def config_path(self) -> Path | None:
        return self._config_path

    def get(self, key: str, default=None):
        """Look up a dotted key, e.g. 'compare.chunk_size' reads settings['compare']['chunk_size']."""
        value = self._settings

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_int(self, key: str, default: int | None = None) -> int | None:
        value = self.get(key, default)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise ConfigurationError(f"setting {key} must be an integer, got {value!r}")
        return value

    def get_list(self, key: str) -> list[str]:
        value = self.get(key, [])
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigurationError(f"setting {key} must be a list of strings, got {value!r}")
        return value

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, default)
        if not isinstance(value, bool):
            raise ConfigurationError(f"setting {key} must be true or false, got {value!r}")
        return value

    def get_str(self, key: str, default: str | None = None) -> str | None:
        value = self.get(key, default)
        if value is not None and not isinstance(value, str):
            raise ConfigurationError(f"setting {key} must be a string, got {value!r}")
        return value
