# pyright: reportExplicitAny=false, reportAny=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""Configuration models with typed access.

This module defines the section models (logging, service, provisioning,
chat) and the Config container that merges configuration sources and
exposes each section as an immutable pydantic model.
"""

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, ClassVar, Self, TypeVar, overload

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from knowlang_bridge.exceptions import ConfigValidationError
from knowlang_bridge.utils import get_default_archive_dir, get_default_install_root

from ._defaults import DEFAULT_CONFIG
from ._loader import copy_value, deep_merge, parse_env_vars, read_toml_file

T = TypeVar("T")
SectionT = TypeVar("SectionT", bound=BaseModel)


class LogLevel(StrEnum):
    """Log level threshold values."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


class ProvisioningSource(StrEnum):
    """Where service archives come from.

    - RELEASE: download from the release registry into the archive cache
    - BUNDLED: only use archives already present in the archive cache
    """

    RELEASE = "release"
    BUNDLED = "bundled"


class ConfigSourceName(StrEnum):
    """Configuration source names in precedence order (highest first)."""

    CLI = "cli"
    ENV = "env"
    PROJECT = "project"
    USER = "user"
    DEFAULT = "default"


@dataclass(frozen=True, slots=True)
class ConfigSource:
    """Represents a configuration source.

    Attributes:
        name: The source type identifier.
        path: Path to the config file, or None for non-file sources.
        exists: Whether the source exists (file exists, or values are present).
        values: Configuration values from this source.
    """

    name: ConfigSourceName
    path: Path | None
    exists: bool
    values: dict[str, Any]


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to log file (empty uses the default log location).
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    file: str = ""


class ServiceConfig(BaseModel):
    """Connection and lifecycle settings for the supervised service.

    Immutable for the lifetime of a controller; the base URL is derived
    and therefore constant as well.

    Attributes:
        host: Host the service binds to.
        port: Port the service listens on.
        api_prefix: Path prefix of the service API.
        auto_start: Start the service as soon as the controller is entered.
        health_check_interval: Seconds between readiness polls.
        health_timeout: Seconds to wait for the service to become healthy.
        stop_timeout: Grace period in seconds before a stop turns into a kill.
        restart_delay: Pause in seconds between stop and start on restart.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=1, le=65535)
    api_prefix: str = "/api/v1"
    auto_start: bool = True
    health_check_interval: float = Field(default=1.0, gt=0)
    health_timeout: float = Field(default=60.0, gt=0)
    stop_timeout: float = Field(default=5.0, ge=0)
    restart_delay: float = Field(default=1.0, ge=0)

    @property
    def base_url(self) -> str:
        """Return the HTTP base URL of the service API."""
        prefix = self.api_prefix.rstrip("/")
        if prefix and not prefix.startswith("/"):
            prefix = f"/{prefix}"
        return f"http://{self.host}:{self.port}{prefix}"


class ProvisioningConfig(BaseModel):
    """Settings for locating, downloading and extracting service binaries.

    Attributes:
        source: Which archive source is authoritative.
        install_dir: Root directory that holds per-platform binaries.
        archive_dir: Directory where archives are cached.
        repository: Release registry repository in ``owner/name`` form.
        release_tag: Release tag to fetch, or ``latest``.
        api_timeout: Seconds allowed for registry metadata requests.
        download_timeout: Seconds allowed for an archive download.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    source: ProvisioningSource = ProvisioningSource.RELEASE
    install_dir: Path = Field(default_factory=get_default_install_root)
    archive_dir: Path = Field(default_factory=get_default_archive_dir)
    repository: str = "KnowLangOrg/know-lang"
    release_tag: str = "latest"
    api_timeout: float = Field(default=10.0, gt=0)
    download_timeout: float = Field(default=300.0, gt=0)


class ChatConfig(BaseModel):
    """Settings for streaming chat sessions.

    Attributes:
        timeout: Overall wall-clock budget for one chat, in seconds.
        legacy_error_heuristic: Also end a stream when the answer text
            contains "error processing", whatever its status says.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    timeout: float = Field(default=120.0, gt=0)
    legacy_error_heuristic: bool = False


def _parse_log_level(value: str) -> LogLevel:
    """Parse log level string to LogLevel enum, defaulting to INFO."""
    try:
        return LogLevel(value)
    except ValueError:
        return LogLevel.INFO


def _parse_log_format(value: str) -> LogFormat:
    """Parse log format string to LogFormat enum, defaulting to JSON."""
    try:
        return LogFormat(value)
    except ValueError:
        return LogFormat.JSON


def _parse_logging(data: dict[str, Any]) -> LoggingConfig:
    return LoggingConfig(
        level=_parse_log_level(str(data.get("level", "info"))),
        format=_parse_log_format(str(data.get("format", "json"))),
        file=str(data.get("file", "")),
    )


def _validate_section(
    model: type[SectionT],
    section: str,
    data: dict[str, Any],
    source: str | None,
) -> SectionT:
    """Validate one section, reporting the first failing key.

    Raises:
        ConfigValidationError: If any value in the section is invalid.
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        key = ".".join([section, *(str(part) for part in error["loc"])])
        msg = f"Invalid value for '{key}': {error['msg']}"
        raise ConfigValidationError(
            msg,
            key=key,
            value=error.get("input"),
            expected=error["msg"],
            source=source,
        ) from e


def _parse_provisioning(
    data: dict[str, Any], source: str | None
) -> ProvisioningConfig:
    # Empty path strings mean "use the platformdirs default"
    values = {k: v for k, v in data.items() if v != ""}
    return _validate_section(ProvisioningConfig, "provisioning", values, source)


class Config(BaseModel):
    """Configuration container with typed access.

    Use factory methods to create instances rather than the constructor.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    _data: dict[str, Any] = PrivateAttr(default_factory=dict)
    _sources: tuple[ConfigSource, ...] = PrivateAttr(default=())
    _logging: LoggingConfig = PrivateAttr(default_factory=LoggingConfig)
    _service: ServiceConfig = PrivateAttr(default_factory=ServiceConfig)
    _provisioning: ProvisioningConfig = PrivateAttr(
        default_factory=ProvisioningConfig
    )
    _chat: ChatConfig = PrivateAttr(default_factory=ChatConfig)

    def __init__(
        self,
        *,
        _data: dict[str, Any] | None = None,
        _sources: tuple[ConfigSource, ...] = (),
        _logging: LoggingConfig | None = None,
        _service: ServiceConfig | None = None,
        _provisioning: ProvisioningConfig | None = None,
        _chat: ChatConfig | None = None,
    ) -> None:
        """Initialize configuration container.

        This constructor is intended for internal use. Use from_dict(),
        from_file() or load() to create Config instances.
        """
        super().__init__()
        self._data = _data if _data is not None else {}
        self._sources = _sources
        self._logging = _logging if _logging is not None else LoggingConfig()
        self._service = _service if _service is not None else ServiceConfig()
        self._provisioning = (
            _provisioning if _provisioning is not None else ProvisioningConfig()
        )
        self._chat = _chat if _chat is not None else ChatConfig()

    @classmethod
    def _from_merged(
        cls,
        merged: dict[str, Any],
        sources: tuple[ConfigSource, ...],
        *,
        source: str | None = None,
    ) -> Self:
        return cls(
            _data=merged,
            _sources=sources,
            _logging=_parse_logging(merged.get("logging", {})),
            _service=_validate_section(
                ServiceConfig, "service", merged.get("service", {}), source
            ),
            _provisioning=_parse_provisioning(merged.get("provisioning", {}), source),
            _chat=_validate_section(ChatConfig, "chat", merged.get("chat", {}), source),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create configuration from a dictionary merged over the defaults.

        Raises:
            ConfigValidationError: If a section fails validation.
        """
        return cls._from_merged(deep_merge(DEFAULT_CONFIG, data), ())

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Load configuration from a single TOML file merged over the defaults.

        Raises:
            FileNotFoundError: If the file does not exist.
            ConfigLoadError: If the file cannot be parsed.
            ConfigValidationError: If validation fails.
        """
        data = read_toml_file(path)
        source = ConfigSource(
            name=ConfigSourceName.PROJECT,
            path=path,
            exists=True,
            values=data,
        )
        return cls._from_merged(
            deep_merge(DEFAULT_CONFIG, data), (source,), source=str(path)
        )

    @classmethod
    def load(
        cls,
        *,
        project_root: Path | None = None,
        include_env: bool = True,
        cli_overrides: dict[str, Any] | None = None,
    ) -> Self:
        """Load merged configuration from all sources.

        Merges defaults -> user -> project -> env -> cli, later sources
        taking precedence.

        Args:
            project_root: Directory holding ``knowlang.toml``. If None,
                auto-detect by searching upward from the working directory.
            include_env: Include KNOWLANG_* environment variables.
            cli_overrides: Values supplied on the command line.

        Raises:
            ConfigLoadError: If config files cannot be loaded.
            ConfigValidationError: If merged config fails validation.
        """
        from ._discovery import discover_sources  # noqa: PLC0415

        sources = discover_sources(
            project_root=project_root,
            include_env=include_env,
            cli_overrides=cli_overrides,
        )

        merged: dict[str, Any] = {}
        loaded_sources: list[ConfigSource] = []

        for source in reversed(sources):
            values: dict[str, Any] = {}
            if source.name == ConfigSourceName.ENV:
                values = parse_env_vars()
            elif source.path is not None:
                if source.exists:
                    values = read_toml_file(source.path)
            else:
                values = source.values

            loaded_sources.append(
                ConfigSource(
                    name=source.name,
                    path=source.path,
                    exists=source.exists,
                    values=values,
                )
            )
            if values:
                merged = deep_merge(merged, values)

        return cls._from_merged(merged, tuple(reversed(loaded_sources)))

    @property
    def sources(self) -> list[ConfigSource]:
        """Return the sources that contributed to this configuration."""
        return list(self._sources)

    @property
    def logging(self) -> LoggingConfig:
        """Return the logging configuration section."""
        return self._logging

    @property
    def service(self) -> ServiceConfig:
        """Return the service configuration section."""
        return self._service

    @property
    def provisioning(self) -> ProvisioningConfig:
        """Return the provisioning configuration section."""
        return self._provisioning

    @property
    def chat(self) -> ChatConfig:
        """Return the chat configuration section."""
        return self._chat

    @overload
    def get(self, key: str) -> Any: ...

    @overload
    def get(self, key: str, default: T) -> T: ...

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dot-notation key.

        Examples:
            >>> config.get("service.port")
            8080
            >>> config.get("nonexistent", "fallback")
            'fallback'
        """
        current: Any = self._data
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current

    def to_dict(self) -> dict[str, Any]:
        """Return a deep copy of the merged configuration."""
        return copy_value(self._data)

    def to_toml(self) -> str:
        """Render the merged configuration as a TOML document."""
        return tomli_w.dumps(self.to_dict())
